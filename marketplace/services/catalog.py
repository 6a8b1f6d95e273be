# marketplace/services/catalog.py
import logging
from typing import List, Sequence

from sqlalchemy.orm import Session

from marketplace.models.course import Course
from marketplace.models.group_purchase import GroupPurchase
from marketplace.schemas.pricing import CourseOffering

logger = logging.getLogger(__name__)


class CatalogService:
    """Read-only course lookups used by checkout and settlement."""

    def __init__(self, db: Session):
        self.db = db

    @staticmethod
    def to_offering(course: Course) -> CourseOffering:
        return CourseOffering(
            id=course.id,
            tutor_id=course.tutor_id,
            base_price=course.base_price,
            current_price=course.current_price,
            price=course.price,
            title=course.title,
        )

    def get_offerings(self, course_ids: Sequence[int]) -> List[CourseOffering]:
        """
        Snapshots for ``course_ids`` in the order given.
        Duplicates are dropped and unknown ids are skipped.
        """
        unique_ids = list(dict.fromkeys(course_ids))
        if not unique_ids:
            return []

        courses = self.db.query(Course).filter(Course.id.in_(unique_ids)).all()
        course_map = {course.id: course for course in courses}

        missing = [course_id for course_id in unique_ids if course_id not in course_map]
        if missing:
            logger.warning(f"Courses not found in catalog: {missing}")

        return [
            self.to_offering(course_map[course_id])
            for course_id in unique_ids
            if course_id in course_map
        ]

    def get_group_offering(self, group: GroupPurchase) -> CourseOffering:
        """The group's course, priced at the group price the starter paid."""
        course = self.db.query(Course).filter(Course.id == group.course_id).first()
        if course is None:
            raise LookupError(f"Course {group.course_id} not found for group {group.id}")
        return CourseOffering(
            id=course.id,
            tutor_id=course.tutor_id,
            base_price=group.group_price,
            current_price=group.group_price,
            price=group.group_price,
            title=course.title,
        )

# marketplace/models/course_enrollment.py
from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from marketplace.core.database import Base


class CourseEnrollment(Base):
    """
    Tracks user course enrollments.
    One row per (user, course); settlement inserts it only if absent.
    """

    __tablename__ = "course_enrollments"
    __table_args__ = (
        UniqueConstraint("user_id", "course_id", name="uq_enrollment_user_course"),
    )

    id = Column(Integer, primary_key=True, index=True)

    # User and Course relationship
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    course_id = Column(Integer, ForeignKey("courses.id"), nullable=False, index=True)

    # Enrollment details
    status = Column(String(20), nullable=False, default="ACTIVE")
    enrollment_type = Column(String(50), nullable=False, default="paid")  # paid, group
    price_paid = Column(Numeric(14, 2), nullable=True)

    # Payment reference (if applicable)
    payment_reference = Column(String(255), nullable=True)

    enrolled_at = Column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    # Relationships
    user = relationship("User", backref="enrollments")
    course = relationship("Course", backref="enrollments")

    def __repr__(self):
        return f"<CourseEnrollment(id={self.id}, user_id={self.user_id}, course_id={self.course_id}, type={self.enrollment_type})>"

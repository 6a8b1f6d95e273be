from sqlalchemy import Column, DateTime, ForeignKey, Integer
from sqlalchemy.sql import func

from marketplace.core.database import Base, JSONType


class LearnerProfile(Base):
    """Created once, the first time a user completes a course purchase."""

    __tablename__ = "learner_profiles"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(
        Integer, ForeignKey("users.id"), unique=True, nullable=False, index=True
    )
    interests = Column(JSONType, nullable=False, default=list)
    goals = Column(JSONType, nullable=False, default=list)

    created_at = Column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

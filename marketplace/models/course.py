from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, Numeric, String
from sqlalchemy.sql import func

from marketplace.core.database import Base


class Course(Base):
    __tablename__ = "courses"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(200), nullable=False)
    tutor_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    # Price fallback order is base_price -> current_price -> price, see services/pricing.py
    base_price = Column(Numeric(14, 2), nullable=True)
    current_price = Column(Numeric(14, 2), nullable=True)
    price = Column(Numeric(14, 2), nullable=True)
    currency = Column(String(3), nullable=False, default="NGN")

    is_published = Column(Boolean, default=True, nullable=False)
    group_buying_enabled = Column(Boolean, default=False, nullable=False)

    created_at = Column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    def __repr__(self):
        return f"Course(id={self.id}, title={self.title}, tutor_id={self.tutor_id})"

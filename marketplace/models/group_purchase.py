from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String
from sqlalchemy.sql import func

from marketplace.core.database import Base

GROUP_PENDING_PAYMENT = "PENDING_PAYMENT"
GROUP_ACTIVE = "ACTIVE"
GROUP_COMPLETED = "COMPLETED"
GROUP_CANCELLED = "CANCELLED"


class GroupPurchase(Base):
    __tablename__ = "group_purchases"

    id = Column(Integer, primary_key=True, index=True)
    course_id = Column(Integer, ForeignKey("courses.id"), nullable=False, index=True)
    creator_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    invite_code = Column(String(20), unique=True, nullable=False, index=True)

    status = Column(String(20), nullable=False, default=GROUP_PENDING_PAYMENT)
    member_count = Column(Integer, nullable=False, default=1)
    member_limit = Column(Integer, nullable=False)
    group_price = Column(Numeric(14, 2), nullable=False)

    paid_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    def __repr__(self):
        return f"GroupPurchase(id={self.id}, invite_code={self.invite_code}, status={self.status})"

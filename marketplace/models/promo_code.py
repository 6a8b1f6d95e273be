from sqlalchemy import (
    Boolean,
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

PROMO_PLATFORM = "PLATFORM"
PROMO_INSTRUCTOR = "INSTRUCTOR"

DISCOUNT_PERCENTAGE = "PERCENTAGE"
DISCOUNT_FIXED = "FIXED"


class PromoCode(Base):
    __tablename__ = "promo_codes"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(50), unique=True, nullable=False, index=True)  # stored upper-case

    promo_type = Column(String(20), nullable=False, default=PROMO_PLATFORM)
    discount_type = Column(String(20), nullable=False, default=DISCOUNT_PERCENTAGE)
    discount_value = Column(Numeric(14, 2), nullable=False)
    is_global = Column(Boolean, default=False, nullable=False)

    # Optional scoping to one course or one creator (tutor)
    course_id = Column(Integer, ForeignKey("courses.id"), nullable=True)
    creator_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    is_active = Column(Boolean, default=True, nullable=False)
    starts_at = Column(DateTime(timezone=True), nullable=True)
    ends_at = Column(DateTime(timezone=True), nullable=True)
    max_redemptions = Column(Integer, nullable=True)
    per_user_limit = Column(Integer, nullable=True)

    created_at = Column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    allowed_users = relationship(
        "PromoCodeAllowedUser", backref="promo_code", cascade="all, delete-orphan"
    )

    def __repr__(self):
        return f"PromoCode(id={self.id}, code={self.code}, type={self.promo_type})"


class PromoCodeAllowedUser(Base):
    __tablename__ = "promo_code_allowed_users"
    __table_args__ = (
        UniqueConstraint("promo_code_id", "user_id", name="uq_promo_allowed_user"),
    )

    id = Column(Integer, primary_key=True, index=True)
    promo_code_id = Column(Integer, ForeignKey("promo_codes.id"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)


class PromoRedemption(Base):
    __tablename__ = "promo_redemptions"
    __table_args__ = (
        UniqueConstraint(
            "promo_code_id", "transaction_id", name="uq_redemption_promo_transaction"
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    promo_code_id = Column(Integer, ForeignKey("promo_codes.id"), nullable=False, index=True)
    transaction_id = Column(Integer, ForeignKey("transactions.id"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    discount_amount = Column(Numeric(14, 2), nullable=False, default=0)
    redeemed_at = Column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from marketplace.core.database import Base, JSONType

# Transaction states. COMPLETED and FAILED are terminal.
TX_PENDING = "PENDING"
TX_COMPLETED = "COMPLETED"
TX_FAILED = "FAILED"


class Transaction(Base):
    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, index=True)
    reference = Column(String(100), unique=True, nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    # Checkout intent: either a list of courses or one group purchase
    course_id = Column(Integer, ForeignKey("courses.id"), nullable=True)
    course_ids = Column(JSONType, nullable=True)
    group_purchase_id = Column(Integer, ForeignKey("group_purchases.id"), nullable=True)

    amount = Column(Numeric(14, 2), nullable=False, default=0)
    currency = Column(String(3), nullable=False, default="NGN")
    status = Column(String(20), nullable=False, default=TX_PENDING, index=True)
    payment_method = Column(String(30), nullable=False, default="PAYSTACK")
    payment_id = Column(String(100), nullable=True)
    payment_date = Column(DateTime(timezone=True), nullable=True)
    description = Column(Text, nullable=True)

    # Aggregates, equal to the sums over line items
    subtotal_amount = Column(Numeric(14, 2), nullable=True)
    discount_amount = Column(Numeric(14, 2), nullable=True)
    vat_amount = Column(Numeric(14, 2), nullable=True)
    tutor_share_amount = Column(Numeric(14, 2), nullable=True)
    platform_share_amount = Column(Numeric(14, 2), nullable=True)
    total_amount = Column(Numeric(14, 2), nullable=True)

    promo_code_id = Column(Integer, ForeignKey("promo_codes.id"), nullable=True)

    # Gateway verification payload and checkout hints
    meta = Column("metadata", JSONType, nullable=True)

    created_at = Column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    line_items = relationship(
        "TransactionLineItem",
        backref="transaction",
        order_by="TransactionLineItem.id",
        cascade="all, delete-orphan",
    )
    promo_code = relationship("PromoCode")

    def __repr__(self):
        return f"Transaction(id={self.id}, reference={self.reference}, status={self.status})"


class TransactionLineItem(Base):
    __tablename__ = "transaction_line_items"
    __table_args__ = (
        UniqueConstraint("transaction_id", "course_id", name="uq_line_item_tx_course"),
    )

    id = Column(Integer, primary_key=True, index=True)
    transaction_id = Column(
        Integer, ForeignKey("transactions.id"), nullable=False, index=True
    )
    course_id = Column(Integer, ForeignKey("courses.id"), nullable=False)
    tutor_id = Column(Integer, ForeignKey("users.id"), nullable=False)

    base_price = Column(Numeric(14, 2), nullable=False)
    discounted_price = Column(Numeric(14, 2), nullable=False)
    discount_amount = Column(Numeric(14, 2), nullable=False)
    vat_amount = Column(Numeric(14, 2), nullable=False)
    total_amount = Column(Numeric(14, 2), nullable=False)
    tutor_share_amount = Column(Numeric(14, 2), nullable=False)
    platform_share_amount = Column(Numeric(14, 2), nullable=False)
    split_percent = Column(Numeric(5, 4), nullable=False)

    # Only set when the promo applied to this item
    promo_code_id = Column(Integer, ForeignKey("promo_codes.id"), nullable=True)
    promo_type = Column(String(20), nullable=True)
    promo_discount_type = Column(String(20), nullable=True)
    promo_discount_value = Column(Numeric(14, 2), nullable=True)

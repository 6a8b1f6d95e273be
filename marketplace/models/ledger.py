# marketplace/models/ledger.py
"""
Settlement ledgers.

Every row here is keyed so that a retried settlement finds the existing row
instead of writing a second one.
"""

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.sql import func

from marketplace.core.database import Base

EARNING_AVAILABLE = "AVAILABLE"


class SettlementMarker(Base):
    """Claimed at the start of the apply unit; one per settled transaction."""

    __tablename__ = "settlement_markers"

    id = Column(Integer, primary_key=True, index=True)
    transaction_id = Column(
        Integer, ForeignKey("transactions.id"), unique=True, nullable=False
    )
    applied_at = Column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


class VatLedger(Base):
    __tablename__ = "vat_ledger"

    id = Column(Integer, primary_key=True, index=True)
    transaction_id = Column(
        Integer, ForeignKey("transactions.id"), unique=True, nullable=False
    )
    amount = Column(Numeric(14, 2), nullable=False)
    rate = Column(Numeric(6, 4), nullable=False)
    recorded_at = Column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


class TutorEarning(Base):
    __tablename__ = "tutor_earnings"
    __table_args__ = (
        UniqueConstraint(
            "transaction_id", "line_item_id", name="uq_earning_tx_line_item"
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    transaction_id = Column(Integer, ForeignKey("transactions.id"), nullable=False)
    line_item_id = Column(
        Integer, ForeignKey("transaction_line_items.id"), nullable=False
    )
    tutor_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    course_id = Column(Integer, ForeignKey("courses.id"), nullable=False)

    amount = Column(Numeric(14, 2), nullable=False)
    split_percent = Column(Numeric(5, 4), nullable=False)
    status = Column(String(20), nullable=False, default=EARNING_AVAILABLE)

    created_at = Column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

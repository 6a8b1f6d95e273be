# marketplace/services/line_items.py
from typing import List

from sqlalchemy.orm import Session

from marketplace.models.transaction import Transaction, TransactionLineItem
from marketplace.schemas.pricing import CheckoutTotals


def persist_line_items(
    db: Session, transaction: Transaction, totals: CheckoutTotals
) -> List[TransactionLineItem]:
    """Store a priced cart on its transaction. Flushes, does not commit."""
    items = [
        TransactionLineItem(transaction_id=transaction.id, **line_item.model_dump())
        for line_item in totals.line_items
    ]
    db.add_all(items)

    transaction.subtotal_amount = totals.subtotal_amount
    transaction.discount_amount = totals.discount_amount
    transaction.vat_amount = totals.vat_amount
    transaction.tutor_share_amount = totals.tutor_share_amount
    transaction.platform_share_amount = totals.platform_share_amount
    transaction.total_amount = totals.total_amount

    db.flush()
    return items

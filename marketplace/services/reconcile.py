# marketplace/services/reconcile.py
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from marketplace.models.transaction import TX_PENDING, Transaction
from marketplace.services.settlement import SettlementService

logger = logging.getLogger(__name__)


def find_stale_pending(
    db: Session, older_than_minutes: int, limit: int, now: Optional[datetime] = None
) -> List[str]:
    """References of PENDING transactions created before the cutoff, oldest first."""
    now = now or datetime.now(timezone.utc)
    cutoff = now - timedelta(minutes=older_than_minutes)
    rows = (
        db.query(Transaction.reference)
        .filter(Transaction.status == TX_PENDING, Transaction.created_at < cutoff)
        .order_by(Transaction.created_at, Transaction.id)
        .limit(limit)
        .all()
    )
    return [row.reference for row in rows]


def reconcile_pending(
    db: Session,
    service_factory: Callable[[Session], SettlementService],
    older_than_minutes: int,
    limit: int,
    now: Optional[datetime] = None,
) -> Dict[str, int]:
    """
    Retry settlement for transactions nobody finalized.

    Returns a count of outcomes by reason (``none`` for settled).
    """
    references = find_stale_pending(db, older_than_minutes, limit, now)
    db.rollback()

    outcomes: Dict[str, int] = {}
    if not references:
        return outcomes

    service = service_factory(db)
    for reference in references:
        result = service.finalize_by_reference(reference)
        outcomes[result.reason] = outcomes.get(result.reason, 0) + 1

    logger.info(f"Reconciled {len(references)} pending transaction(s): {outcomes}")
    return outcomes

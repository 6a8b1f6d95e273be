import logging
from datetime import datetime, timezone

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from marketplace.core.config import settings
from marketplace.core.database import SessionLocal
from marketplace.services.reconcile import reconcile_pending
from marketplace.services.settlement import build_settlement_service

logger = logging.getLogger(__name__)


def reconcile_pending_transactions(realtime=None, side_effects=None):
    """
    Scheduled task that re-runs settlement for stale PENDING transactions.
    Picks up verifications that were indeterminate and apply units that rolled back.
    """
    db = SessionLocal()
    try:
        outcomes = reconcile_pending(
            db,
            lambda session: build_settlement_service(
                session, realtime=realtime, side_effects=side_effects
            ),
            older_than_minutes=settings.reconcile_after_minutes,
            limit=settings.reconcile_batch_size,
        )
        if outcomes:
            logger.info(
                f"[{datetime.now(timezone.utc)}] Reconcile sweep completed: {outcomes}"
            )
    except Exception as e:
        logger.error(f"Error during reconcile sweep: {e}", exc_info=True)
    finally:
        db.close()


def start_scheduler(realtime=None, side_effects=None):
    """
    Initialize and start the APScheduler for the reconcile sweep.
    """
    scheduler = BackgroundScheduler(timezone="UTC")

    scheduler.add_job(
        reconcile_pending_transactions,
        trigger=IntervalTrigger(minutes=settings.reconcile_interval_minutes),
        kwargs={"realtime": realtime, "side_effects": side_effects},
        id="reconcile_pending_transactions",
        name="Settle stale pending transactions",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )

    scheduler.start()
    logger.info(
        f"Reconcile scheduler started. Sweep every {settings.reconcile_interval_minutes} minutes."
    )

    return scheduler


def shutdown_scheduler(scheduler: BackgroundScheduler):
    """
    Gracefully shutdown the scheduler.
    """
    if scheduler:
        scheduler.shutdown(wait=False)
        logger.info("Reconcile scheduler shut down.")

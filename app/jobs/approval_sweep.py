"""
Approval Sweep Scheduler - periodic housekeeping for the approval workflow

- clears approval-link tokens past their expiry
- reports batches that are expired or close to expiry
- reports tools due for maintenance
"""
import asyncio
from datetime import date
from typing import Dict, Optional
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.database import SessionLocal
from app.services import AdjustmentService, StockService

logger = logging.getLogger(__name__)

_scheduler = None


# ========== Job bodies ==========

def sweep_expired_tokens(db: Session) -> int:
    return AdjustmentService.expire_stale_tokens(db)


def report_expiring_batches(db: Session, days: Optional[int] = None, as_of: Optional[date] = None) -> Dict[str, int]:
    """Counts of expired and soon-to-expire batches that still hold stock"""
    today = as_of or date.today()
    days = settings.EXPIRY_WARNING_DAYS if days is None else days
    batches = StockService.get_expiring_batches(db, days, today)
    expired = [batch for batch in batches if batch.expiry_date < today]

    for batch in expired:
        logger.warning(
            f"Batch {batch.batch_number or batch.id} of item {batch.inventory_item_id} expired on "
            f"{batch.expiry_date} with {batch.quantity_on_hand} on hand"
        )
    if batches:
        logger.info(f"{len(batches) - len(expired)} batches expire within {days} days")
    return {"expired": len(expired), "expiring": len(batches) - len(expired)}


def report_maintenance_due(db: Session, as_of: Optional[date] = None) -> int:
    items = StockService.get_items_due_for_maintenance(db, as_of=as_of)
    for item in items:
        logger.info(f"Maintenance due for '{item.item_name}' on {item.next_maintenance_due_date}")
    return len(items)


class ApprovalSweepScheduler:
    """
    Runs the sweep jobs on an interval inside the application event loop
    """

    def __init__(self, interval_minutes: Optional[int] = None):
        self.scheduler = AsyncIOScheduler()
        self.interval_minutes = interval_minutes or settings.SWEEP_INTERVAL_MINUTES
        self.is_running = False

    def start(self):
        """Start the scheduler"""
        if self.is_running:
            return
        self.scheduler.add_job(
            func=self._run_sweep,
            trigger=IntervalTrigger(minutes=self.interval_minutes),
            id="approval_sweep",
            name="Approval token and expiry sweep",
            replace_existing=True,
            max_instances=1,
        )
        self.scheduler.start()
        self.is_running = True
        logger.info(f"Approval sweep scheduler started, every {self.interval_minutes} minutes")

    def stop(self):
        """Stop the scheduler"""
        if self.is_running:
            self.scheduler.shutdown(wait=False)
            self.is_running = False
            logger.info("Approval sweep scheduler stopped")

    async def _run_sweep(self):
        # database work blocks, keep it off the event loop
        await asyncio.to_thread(run_sweep_once)


def run_sweep_once() -> Dict[str, int]:
    """One pass over every sweep job with its own session"""
    db = SessionLocal()
    try:
        cleared = sweep_expired_tokens(db)
        expiry = report_expiring_batches(db)
        maintenance = report_maintenance_due(db)
        stats = {"tokens_cleared": cleared, "maintenance_due": maintenance, **expiry}
        logger.info(f"Sweep completed: {stats}")
        return stats
    except Exception as e:
        db.rollback()
        logger.error(f"Sweep failed: {e}")
        raise
    finally:
        db.close()


# ========== Global Functions ==========

def get_scheduler() -> "ApprovalSweepScheduler":
    """Get or create the global scheduler instance"""
    global _scheduler
    if _scheduler is None:
        _scheduler = ApprovalSweepScheduler()
    return _scheduler


def start_scheduler():
    """Start the global scheduler"""
    get_scheduler().start()


def stop_scheduler():
    """Stop the global scheduler"""
    global _scheduler
    if _scheduler:
        _scheduler.stop()
        _scheduler = None


# ========== CLI Commands ==========

if __name__ == "__main__":
    """
    python -m app.jobs.approval_sweep         # run the scheduler
    python -m app.jobs.approval_sweep once    # one pass and exit
    """
    import sys

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    if len(sys.argv) > 1 and sys.argv[1] == "once":
        run_sweep_once()
    else:
        print("Starting approval sweep scheduler...")
        print("Press Ctrl+C to stop")

        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        try:
            start_scheduler()
            loop.run_forever()
        except KeyboardInterrupt:
            stop_scheduler()
            print("Scheduler stopped")

"""
APScheduler Configuration for Ledger Reconciliation

Runs the ledger self-consistency scan and reports recent payment failures
on a fixed interval. The job is re-registered at every startup, so an
in-memory job store is enough.
"""
import logging
from typing import Optional

from apscheduler.executors.asyncio import AsyncIOExecutor
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..config import settings
from .transaction_ledger import TransactionLedger

logger = logging.getLogger(__name__)

RECONCILIATION_JOB_ID = "ledger_reconciliation"


async def run_reconciliation(ledger: TransactionLedger, hours_back: int) -> None:
    """Scheduled job: reconcile the ledger and report recent failures."""
    report = await ledger.reconcile()
    for discrepancy in report.discrepancies:
        logger.warning(f"[Reconciliation] {discrepancy.reference}: {discrepancy.issue}")

    failures = await ledger.get_recent_failures(hours_back)
    if failures:
        logger.warning(f"[Reconciliation] {len(failures)} failed or rejected payments in the last {hours_back}h")


class ReconciliationScheduler:
    """
    Owns the AsyncIOScheduler for the reconciliation job.

    Created and started in the FastAPI lifespan, shut down on exit.
    """

    def __init__(self, ledger: TransactionLedger, interval_hours: Optional[int] = None):
        self._ledger = ledger
        self._interval_hours = interval_hours or settings.reconciliation_interval_hours
        self._scheduler = AsyncIOScheduler(
            executors={"default": AsyncIOExecutor()},
            job_defaults={
                "coalesce": True,  # Combine missed runs into one
                "max_instances": 1,
                "misfire_grace_time": 300  # 5 minutes grace period for misfires
            },
            timezone="UTC"
        )

    @property
    def running(self) -> bool:
        return self._scheduler.running

    def start(self) -> None:
        """Register the reconciliation job and start the scheduler."""
        if self._scheduler.running:
            logger.warning("Scheduler already running")
            return

        self._scheduler.add_job(
            run_reconciliation,
            trigger=IntervalTrigger(hours=self._interval_hours),
            id=RECONCILIATION_JOB_ID,
            name="Ledger reconciliation",
            replace_existing=True,
            kwargs={"ledger": self._ledger, "hours_back": self._interval_hours},
        )
        self._scheduler.start()
        logger.info(f"Scheduler started: reconciliation every {self._interval_hours}h")

    def shutdown(self, wait: bool = True) -> None:
        """
        Shutdown the scheduler gracefully.

        Args:
            wait: Wait for a running reconciliation to complete
        """
        if self._scheduler.running:
            self._scheduler.shutdown(wait=wait)
            logger.info(f"Scheduler shutdown (wait={wait})")

    def get_job(self):
        return self._scheduler.get_job(RECONCILIATION_JOB_ID)

"""
Transaction Ledger

Durable record of every payment attempt, keyed by Paystack reference.

- record_initialized() commits what the user agreed to pay before redirecting
  to Paystack; the webhook is later validated against it
- Status markers follow the TransactionStatus state machine
- Write failures propagate as LedgerWriteError; read helpers used by the
  admin surface degrade to empty results
"""
import logging
from datetime import datetime, timedelta
from typing import Dict, Any, Optional, List

from sqlalchemy import select, func, case
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from ..config import settings
from ..db.models import PaymentTransactionModel, utcnow
from ..exceptions import (
    DuplicateReferenceError,
    HypeConnectError,
    LedgerWriteError,
    TransactionNotFoundError,
)
from ..models.transactions import (
    ReconciliationDiscrepancy,
    ReconciliationReport,
    TransactionRecord,
    TransactionStats,
    TransactionStatus,
)

logger = logging.getLogger(__name__)

# Field each status must carry for the record to be self-consistent
_STATUS_REQUIRED_FIELD = {
    TransactionStatus.VERIFIED: "verified_at",
    TransactionStatus.COMPLETED: "completed_at",
    TransactionStatus.FAILED: "failure_reason",
    TransactionStatus.REJECTED: "failure_reason",
}


def _to_record(row: PaymentTransactionModel) -> TransactionRecord:
    return TransactionRecord(
        reference=row.reference,
        user_id=row.user_id,
        email=row.email,
        expected_amount=row.expected_amount,
        metadata=row.payment_metadata or {},
        status=row.status,
        initiated_at=row.initiated_at,
        verified_at=row.verified_at,
        completed_at=row.completed_at,
        failed_at=row.failed_at,
        rejected_at=row.rejected_at,
        failure_reason=row.failure_reason,
        gateway_response=row.gateway_response,
    )


class TransactionLedger:
    """Ledger of payment attempts backed by the payment_transactions table."""

    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    # ========================================================================
    # Writes
    # ========================================================================

    async def record_initialized(
        self,
        reference: str,
        user_id: str,
        email: str,
        expected_amount: int,
        metadata: Optional[Dict[str, Any]] = None
    ) -> TransactionRecord:
        """
        Record a payment attempt before the user is sent to Paystack.

        Args:
            reference: Paystack payment reference
            user_id: User initiating the payment
            email: User's email
            expected_amount: Amount the user agreed to pay (Naira)
            metadata: Booking/event/hypeman identifiers

        Returns:
            The stored TransactionRecord

        Raises:
            DuplicateReferenceError: reference already recorded
            LedgerWriteError: storage failure
        """
        row = PaymentTransactionModel(
            reference=reference,
            user_id=user_id,
            email=email,
            expected_amount=expected_amount,
            payment_metadata=dict(metadata or {}),
            status=TransactionStatus.INITIALIZED.value,
            initiated_at=utcnow(),
            environment=settings.environment,
        )

        try:
            async with self._session_factory() as session:
                session.add(row)
                await session.commit()
        except IntegrityError as e:
            logger.error(f"[PaymentTransaction] Duplicate reference rejected: {reference}")
            raise DuplicateReferenceError(
                f"Payment reference {reference} is already recorded",
                details={"reference": reference}
            ) from e
        except SQLAlchemyError as e:
            logger.error(f"[PaymentTransaction] Error recording payment {reference}: {e}", exc_info=True)
            raise LedgerWriteError(
                "Failed to record payment transaction",
                details={"reference": reference}
            ) from e

        logger.info(
            f"[PaymentTransaction] Recorded initialization: {reference}, "
            f"amount: ₦{expected_amount}, user: {user_id}"
        )
        return _to_record(row)

    async def mark_verified(self, reference: str, gateway_response: Optional[Dict[str, Any]] = None) -> TransactionRecord:
        """Webhook passed amount and metadata validation."""
        return await self._transition(
            reference,
            TransactionStatus.VERIFIED,
            verified_at=utcnow(),
            gateway_response=gateway_response,
        )

    async def mark_completed(self, reference: str) -> TransactionRecord:
        """Settlement (wallet credits, booking confirmation) is done."""
        return await self._transition(reference, TransactionStatus.COMPLETED, completed_at=utcnow())

    async def mark_failed(self, reference: str, reason: str) -> TransactionRecord:
        """Payment failed at the gateway or during settlement."""
        return await self._transition(
            reference, TransactionStatus.FAILED, failure_reason=reason, failed_at=utcnow()
        )

    async def mark_rejected(self, reference: str, reason: str) -> TransactionRecord:
        """Payment rejected by fraud/validation checks."""
        return await self._transition(
            reference, TransactionStatus.REJECTED, failure_reason=reason, rejected_at=utcnow()
        )

    async def _transition(self, reference: str, target: TransactionStatus, **fields: Any) -> TransactionRecord:
        """
        Apply one status change through the state machine.

        Re-applying the current status rewrites its timestamp (last write wins).

        Raises:
            TransactionNotFoundError: unknown reference
            InvalidStatusTransitionError: edge not allowed
            LedgerWriteError: storage failure
        """
        try:
            async with self._session_factory() as session:
                row = await session.get(PaymentTransactionModel, reference)
                if row is None:
                    raise TransactionNotFoundError(
                        f"No payment transaction for reference {reference}",
                        details={"reference": reference}
                    )

                row.status = TransactionStatus.transition(row.status, target).value
                for name, value in fields.items():
                    setattr(row, name, value)

                await session.commit()
                record = _to_record(row)
        except HypeConnectError:
            raise
        except SQLAlchemyError as e:
            logger.error(f"[PaymentTransaction] Error marking {reference} {target.value}: {e}", exc_info=True)
            raise LedgerWriteError(
                "Failed to update payment status",
                details={"reference": reference, "target": target.value}
            ) from e

        reason = fields.get("failure_reason")
        if reason:
            logger.info(f"[PaymentTransaction] Marked as {target.value}: {reference}, reason: {reason}")
        else:
            logger.info(f"[PaymentTransaction] Marked as {target.value}: {reference}")
        return record

    # ========================================================================
    # Reads
    # ========================================================================

    async def get(self, reference: str) -> Optional[TransactionRecord]:
        """
        Fetch one ledger entry.

        Storage errors propagate so callers can choose their own
        fail-open/fail-closed default.
        """
        async with self._session_factory() as session:
            row = await session.get(PaymentTransactionModel, reference)
            return _to_record(row) if row else None

    async def get_for_user(self, user_id: str, limit: int = 50) -> List[TransactionRecord]:
        """Payment history for a user, most recent first."""
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(PaymentTransactionModel)
                    .where(PaymentTransactionModel.user_id == user_id)
                    .order_by(PaymentTransactionModel.initiated_at.desc())
                    .limit(limit)
                )
                return [_to_record(row) for row in result.scalars().all()]
        except SQLAlchemyError as e:
            logger.error(f"[PaymentTransaction] Error fetching user transactions: {e}")
            return []

    async def get_stats(self) -> TransactionStats:
        """Counts by status with total and average expected amount."""
        status = PaymentTransactionModel.status
        pending = [TransactionStatus.INITIALIZED.value, TransactionStatus.VERIFIED.value]

        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(
                        func.count(),
                        func.coalesce(func.sum(PaymentTransactionModel.expected_amount), 0),
                        func.count(case((status == TransactionStatus.COMPLETED.value, 1))),
                        func.count(case((status == TransactionStatus.FAILED.value, 1))),
                        func.count(case((status == TransactionStatus.REJECTED.value, 1))),
                        func.count(case((status.in_(pending), 1))),
                    )
                )
                total, total_amount, completed, failed, rejected, pending_count = result.one()
        except SQLAlchemyError as e:
            logger.error(f"[PaymentTransaction] Error fetching stats: {e}")
            return TransactionStats()

        total_amount = int(total_amount or 0)
        return TransactionStats(
            total=total,
            completed=completed,
            failed=failed,
            rejected=rejected,
            pending=pending_count,
            avg_amount=round(total_amount / total) if total > 0 else 0,
            total_amount=total_amount,
        )

    async def get_recent_failures(self, hours_back: int = 24) -> List[TransactionRecord]:
        """Failed or rejected payments initiated within the window."""
        cutoff = utcnow() - timedelta(hours=hours_back)
        return await self._window_query(
            [TransactionStatus.FAILED, TransactionStatus.REJECTED], cutoff, user_id=None
        )

    async def find_duplicate_attempts(self, user_id: str, within_minutes: int = 5) -> List[TransactionRecord]:
        """
        Open (initialized/verified) attempts by the same user within the window.

        Used to flag double submission of the same payment.
        """
        cutoff = utcnow() - timedelta(minutes=within_minutes)
        return await self._window_query(
            [TransactionStatus.INITIALIZED, TransactionStatus.VERIFIED], cutoff, user_id=user_id
        )

    async def _window_query(
        self,
        statuses: List[TransactionStatus],
        cutoff: datetime,
        user_id: Optional[str]
    ) -> List[TransactionRecord]:
        query = (
            select(PaymentTransactionModel)
            .where(PaymentTransactionModel.status.in_([s.value for s in statuses]))
            .where(PaymentTransactionModel.initiated_at > cutoff)
        )
        if user_id is not None:
            query = query.where(PaymentTransactionModel.user_id == user_id)
        query = query.order_by(PaymentTransactionModel.initiated_at.desc())

        try:
            async with self._session_factory() as session:
                result = await session.execute(query)
                return [_to_record(row) for row in result.scalars().all()]
        except SQLAlchemyError as e:
            logger.error(f"[PaymentTransaction] Error scanning transactions since {cutoff}: {e}")
            return []

    async def reconcile(self) -> ReconciliationReport:
        """
        Self-consistency scan of the ledger.

        Flags records whose status lacks the field that status guarantees,
        and records missing identifying fields. Does not call Paystack.
        """
        try:
            async with self._session_factory() as session:
                result = await session.execute(select(PaymentTransactionModel))
                report = ReconciliationReport()

                for tx in result.scalars():
                    report.scanned += 1
                    required = _STATUS_REQUIRED_FIELD.get(TransactionStatus(tx.status))

                    if required is None or getattr(tx, required):
                        report.matched += 1
                    else:
                        report.discrepancies.append(ReconciliationDiscrepancy(
                            reference=tx.reference,
                            issue=f"Invalid status flow for {tx.status}: missing {required}"
                        ))

                    if not tx.user_id or not tx.email or not tx.expected_amount:
                        report.discrepancies.append(ReconciliationDiscrepancy(
                            reference=tx.reference,
                            issue="Missing required fields"
                        ))
        except SQLAlchemyError as e:
            logger.error(f"[Reconciliation] Error reconciling transactions: {e}", exc_info=True)
            return ReconciliationReport()

        logger.info(
            f"[Reconciliation] Scanned {report.scanned} transactions, matched {report.matched}, "
            f"found {len(report.discrepancies)} discrepancies"
        )
        return report

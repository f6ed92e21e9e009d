"""
Webhook Service

Applies Paystack webhook events to the ledger and settlement targets.

charge.success protocol:
1. Skip webhooks already handled (webhook_logs) and references already completed
2. For bookings: reject double charges, then take the booking lock
3. Validate amount and metadata against the ledger entry
4. On failure: mark rejected, release the lock, respond 400
5. On success: mark verified (once), settle, mark completed

Duplicate deliveries are acknowledged with 200 so Paystack stops retrying.
Unexpected errors release the lock, leave the ledger entry where it was, and
propagate so the gateway sees a 5xx and retries.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, Any, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..config import settings
from ..db.models import WebhookLogModel, utcnow
from ..exceptions import HypeConnectError, InvalidStatusTransitionError
from ..models.payments import PaystackEvent, kobo_to_naira
from ..models.transactions import TransactionStatus
from .payment_core import PaymentCore

logger = logging.getLogger(__name__)

# Log statuses that mean the webhook must not be applied again
HANDLED_LOG_STATUSES = frozenset({"success", "rejected", "skipped", "failure"})

TRANSFER_EVENT_STATUS = {
    "transfer.success": "completed",
    "transfer.failed": "failed",
    "transfer.reversed": "reversed",
}


def _fmt_amount(amount: float) -> str:
    return str(int(amount)) if float(amount).is_integer() else str(amount)


@dataclass
class WebhookResult:
    """HTTP response for Paystack."""
    status_code: int
    content: Dict[str, Any] = field(default_factory=dict)


@dataclass
class _BookingLock:
    booking_id: str
    token: str
    released: bool = False


class WebhookProcessor:
    """Processes one parsed Paystack event at a time."""

    def __init__(self, core: PaymentCore):
        self._core = core

    async def process(self, event: PaystackEvent) -> WebhookResult:
        webhook_id = event.webhook_id

        if await self._already_processed(webhook_id):
            logger.info(f"Webhook {webhook_id} already processed, skipping to prevent duplicates")
            return WebhookResult(200, {"success": True, "message": "Webhook already processed (idempotent)"})

        if event.event == "charge.success":
            return await self._handle_charge_success(event)

        if event.event == "charge.failure":
            return await self._handle_charge_failure(event)

        if event.event in TRANSFER_EVENT_STATUS:
            return await self._handle_transfer(event)

        return WebhookResult(200, {"success": True, "message": "Event processed"})

    # ========================================================================
    # charge.success
    # ========================================================================

    async def _handle_charge_success(self, event: PaystackEvent) -> WebhookResult:
        core = self._core
        data = event.data
        reference = data.reference
        webhook_id = event.webhook_id

        if not reference or data.amount is None:
            await self._mark_processed(webhook_id, event.event, "rejected", "Missing reference or amount")
            return WebhookResult(400, {"error": "Payment validation failed", "details": "Missing reference or amount"})

        amount = kobo_to_naira(data.amount)
        metadata = data.metadata
        booking_id = metadata.get("bookingId") if metadata.get("hypemanId") else None
        lock: Optional[_BookingLock] = None
        booking_settled = False

        try:
            record = await core.ledger.get(reference)
            if record is not None and record.status == TransactionStatus.COMPLETED:
                return await self._skip_completed(event)

            if booking_id:
                if (
                    record is not None
                    and record.status == TransactionStatus.VERIFIED
                    and await core.settlement.is_settled_by(booking_id, reference)
                ):
                    # An earlier delivery settled the booking but stopped before completing the ledger
                    logger.info(f"[Webhook] Booking {booking_id} already settled by {reference}, completing ledger")
                    booking_settled = True

                elif await core.validator.is_already_paid(booking_id):
                    logger.error(f"[Webhook] Booking {booking_id} already paid, rejecting duplicate payment")
                    await self._mark_processed(
                        webhook_id, event.event, "skipped", "Booking already paid (duplicate prevention)",
                        keep_existing=True
                    )
                    return WebhookResult(200, {
                        "success": True,
                        "message": "Booking already confirmed - duplicate webhook ignored",
                    })

                else:
                    token = await core.settlement.lock(booking_id)
                    if token is None:
                        # Another delivery holds or has finished with this booking
                        await self._mark_processed(
                            webhook_id, event.event, "skipped", "Booking lock not acquired", keep_existing=True
                        )
                        return WebhookResult(200, {
                            "success": True,
                            "message": "Booking is already being processed - duplicate webhook ignored",
                        })
                    lock = _BookingLock(booking_id, token)

            logger.info(f"[Webhook] Validating payment amount for reference: {reference}")
            amount_check = await core.validator.validate_amount(reference, amount)
            if not amount_check.valid:
                if amount_check.transaction_found:
                    reason = (
                        f"Amount tampering detected: expected ₦{_fmt_amount(amount_check.expected_amount)}, "
                        f"received ₦{_fmt_amount(amount)}"
                    )
                else:
                    reason = "Payment received for unknown reference"
                logger.error(f"[Webhook] Amount validation FAILED for {reference}: {reason}")
                return await self._reject(
                    event, reason, "Amount mismatch", lock, ledger_entry_exists=amount_check.transaction_found
                )

            logger.info(f"[Webhook] Validating metadata for reference: {reference}")
            metadata_check = await core.validator.validate_metadata(reference, metadata)
            if not metadata_check.valid:
                logger.error(f"[Webhook] Metadata validation FAILED for reference: {reference}")
                return await self._reject(
                    event, "Metadata tampering detected", "Metadata tampering detected", lock,
                    ledger_entry_exists=True
                )

            if not await self._verify_once(reference, data.model_dump()):
                if lock is not None:
                    lock.released = await core.settlement.unlock(lock.booking_id, lock.token)
                return await self._skip_completed(event)

            verified_amount = int(amount_check.expected_amount)

            if lock is not None:
                await core.settlement.settle_booking(lock.booking_id, lock.token, reference, verified_amount)
                lock.released = True
            elif booking_settled:
                logger.info(f"[Webhook] Skipping booking settlement for {reference}: already applied")

            if metadata.get("eventId") and metadata.get("userId") and metadata.get("message"):
                await core.settlement.settle_hype(reference, metadata, verified_amount)

            await core.ledger.mark_completed(reference)

        except Exception as e:
            await self._recover(event, lock, e)
            raise

        await self._mark_processed(webhook_id, event.event, "success")
        return WebhookResult(200, {"success": True, "message": "Payment confirmed and processed"})

    async def _verify_once(self, reference: str, gateway_response: Dict[str, Any]) -> bool:
        """
        Move the ledger entry to verified unless a retry already did.

        Returns:
            False if another delivery already completed the payment
        """
        ledger = self._core.ledger
        record = await ledger.get(reference)

        if record.status == TransactionStatus.COMPLETED:
            return False
        if record.status == TransactionStatus.VERIFIED:
            return True

        try:
            await ledger.mark_verified(reference, gateway_response)
        except InvalidStatusTransitionError:
            current = await ledger.get(reference)
            if current is None or current.status != TransactionStatus.COMPLETED:
                raise
            return False
        return True

    async def _skip_completed(self, event: PaystackEvent) -> WebhookResult:
        logger.info(f"[Webhook] Payment {event.data.reference} already completed, ignoring duplicate")
        await self._mark_processed(
            event.webhook_id, event.event, "skipped", "Payment already completed", keep_existing=True
        )
        return WebhookResult(200, {
            "success": True,
            "message": "Payment already processed - duplicate webhook ignored",
        })

    async def _reject(
        self,
        event: PaystackEvent,
        reason: str,
        details: str,
        lock: Optional[_BookingLock],
        ledger_entry_exists: bool
    ) -> WebhookResult:
        """Validation failed: release the lock and mark the ledger entry rejected."""
        reference = event.data.reference

        if lock is not None:
            lock.released = await self._core.settlement.unlock(lock.booking_id, lock.token)

        if ledger_entry_exists:
            try:
                await self._core.ledger.mark_rejected(reference, reason)
            except InvalidStatusTransitionError as e:
                logger.warning(f"[Webhook] Not marking {reference} rejected: {e.message}")

        await self._mark_processed(event.webhook_id, event.event, "rejected", reason)
        return WebhookResult(400, {"error": "Payment validation failed", "details": details})

    async def _recover(
        self,
        event: PaystackEvent,
        lock: Optional[_BookingLock],
        error: Exception
    ) -> None:
        """
        Release what an unexpected failure left held.

        The ledger entry keeps its status (initialized or verified) so the
        gateway's retry of this webhook can still settle the payment.
        """
        reference = event.data.reference
        logger.error(f"Webhook processing error for {reference}: {error}", exc_info=True)

        if lock is not None and not lock.released:
            lock.released = await self._core.settlement.unlock(lock.booking_id, lock.token)

        message = error.message if isinstance(error, HypeConnectError) else str(error)
        await self._mark_processed(event.webhook_id, event.event, "error", message)

    # ========================================================================
    # charge.failure / transfers
    # ========================================================================

    async def _handle_charge_failure(self, event: PaystackEvent) -> WebhookResult:
        reference = event.data.reference
        logger.info(f"Payment failed: {reference}")

        if reference:
            record = await self._core.ledger.get(reference)
            if record and TransactionStatus.can_transition(record.status, TransactionStatus.FAILED):
                await self._core.ledger.mark_failed(
                    reference, event.data.gateway_response or "Payment failed at gateway"
                )

        await self._mark_processed(event.webhook_id, event.event, "failure")
        return WebhookResult(200, {"success": True, "message": "Payment failure recorded"})

    async def _handle_transfer(self, event: PaystackEvent) -> WebhookResult:
        data = event.data
        status = TRANSFER_EVENT_STATUS[event.event]

        if data.reference:
            await self._core.settlement.apply_transfer_result(
                data.reference, data.metadata, status, data.transfer_code
            )

        await self._mark_processed(event.webhook_id, event.event, "success")
        message = "Transfer confirmed" if status == "completed" else "Transfer failure recorded"
        return WebhookResult(200, {"success": True, "message": message})

    # ========================================================================
    # Idempotency log
    # ========================================================================

    async def _already_processed(self, webhook_id: str) -> bool:
        async with self._core.session_factory() as session:
            log = await session.get(WebhookLogModel, webhook_id)
            return log is not None and log.status in HANDLED_LOG_STATUSES

    async def _mark_processed(
        self,
        webhook_id: str,
        event_type: str,
        status: str,
        error: Optional[str] = None,
        keep_existing: bool = False
    ) -> None:
        """
        Write the webhook log entry. Failures are logged, not raised.

        With keep_existing the entry is only inserted; an outcome already
        logged for this webhook (e.g. a retryable error) is left as is.
        """
        row = WebhookLogModel(
            webhook_id=webhook_id,
            event=event_type,
            status=status,
            error=error,
            processed_at=utcnow(),
            environment=settings.environment,
        )

        try:
            async with self._core.session_factory() as session:
                if keep_existing:
                    session.add(row)
                else:
                    await session.merge(row)
                await session.commit()
        except IntegrityError:
            logger.info(f"Webhook {webhook_id} already logged, keeping existing status")
        except SQLAlchemyError as e:
            logger.error(f"Failed to log webhook {webhook_id}: {e}")

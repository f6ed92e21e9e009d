"""
Payment Validator

Decides at webhook time whether a claimed payment matches what was recorded
when the payment was initialized.

Failure policy:
- validate_amount fails closed: if the ledger cannot be read the amount is
  not trusted
- is_already_paid fails open: an unreadable booking must not block
  settlement forever; the booking lock still prevents double settlement
"""
import logging
from typing import Dict, Any, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from ..db.models import BookingModel
from ..models.fraud import PaymentValidation, MetadataValidation
from .fraud_alerts import FraudAlertStore
from .transaction_ledger import TransactionLedger

logger = logging.getLogger(__name__)

# Metadata fields whose stored value must match the webhook
CRITICAL_METADATA_FIELDS = ("userId", "bookingId", "eventId", "hypemanId")

PAID_BOOKING_STATUSES = ("confirmed", "completed")

# Placeholder reference for double-charge alerts on bookings with no reference
UNKNOWN_REFERENCE = "unknown"


class PaymentValidator:
    """Amount, metadata, and double-charge checks. Each check is independent."""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        ledger: TransactionLedger,
        alerts: FraudAlertStore
    ):
        self._session_factory = session_factory
        self._ledger = ledger
        self._alerts = alerts

    async def validate_amount(
        self,
        reference: str,
        actual_amount: float,
        max_variance: float = 0
    ) -> PaymentValidation:
        """
        Validate a webhook amount against the ledger's expected amount.

        Args:
            reference: Paystack payment reference
            actual_amount: Amount reported by the webhook (Naira)
            max_variance: Allowed absolute difference (default exact match)

        Returns:
            PaymentValidation; valid is False for unknown references,
            mismatches beyond max_variance, and ledger read errors
        """
        try:
            record = await self._ledger.get(reference)
        except SQLAlchemyError as e:
            logger.error(f"[PaymentValidator] Error validating payment {reference}: {e}", exc_info=True)
            return PaymentValidation(
                valid=False,
                expected_amount=0,
                actual_amount=actual_amount,
                discrepancy=actual_amount,
                fraud_detected=True,
                transaction_found=False,
            )

        if record is None:
            logger.error(f"[PaymentValidator] Transaction not found for reference: {reference}")
            await self._alerts.create_alert(
                reference,
                "unknown_transaction",
                0,
                actual_amount,
                "Payment received for unknown reference"
            )
            return PaymentValidation(
                valid=False,
                expected_amount=0,
                actual_amount=actual_amount,
                discrepancy=actual_amount,
                fraud_detected=True,
                transaction_found=False,
            )

        expected_amount = record.expected_amount
        discrepancy = actual_amount - expected_amount
        fraud_detected = abs(discrepancy) > max_variance

        logger.info(
            f"[PaymentValidator] Reference: {reference}, Expected: ₦{expected_amount}, "
            f"Actual: ₦{actual_amount}, Discrepancy: ₦{discrepancy}, Valid: {not fraud_detected}"
        )

        if fraud_detected:
            await self._alerts.create_alert(
                reference,
                "amount_mismatch",
                expected_amount,
                actual_amount,
                f"Amount tampering detected: expected ₦{expected_amount}, received ₦{actual_amount}"
            )

        return PaymentValidation(
            valid=not fraud_detected,
            expected_amount=expected_amount,
            actual_amount=actual_amount,
            discrepancy=discrepancy,
            fraud_detected=fraud_detected,
        )

    async def validate_metadata(
        self,
        reference: str,
        webhook_metadata: Optional[Dict[str, Any]]
    ) -> MetadataValidation:
        """
        Compare critical webhook metadata fields to the stored metadata.

        A field is checked only if the stored record has a value for it.
        Every mismatched field gets its own metadata_tampering alert.
        """
        webhook_metadata = webhook_metadata or {}

        try:
            record = await self._ledger.get(reference)
        except SQLAlchemyError as e:
            logger.error(f"[PaymentValidator] Error validating metadata for {reference}: {e}", exc_info=True)
            return MetadataValidation(valid=False)

        if record is None:
            logger.error(f"[PaymentValidator] Transaction not found: {reference}")
            return MetadataValidation(valid=False)

        stored_metadata = record.metadata
        tampered = []

        for field in CRITICAL_METADATA_FIELDS:
            stored_value = stored_metadata.get(field)
            if stored_value and stored_value != webhook_metadata.get(field):
                logger.error(
                    f"[PaymentValidator] Metadata tampering detected for {field}: "
                    f"expected {stored_value}, got {webhook_metadata.get(field)}"
                )
                tampered.append(field)
                await self._alerts.create_alert(
                    reference,
                    "metadata_tampering",
                    0,
                    0,
                    f"Metadata field {field} was tampered with"
                )

        return MetadataValidation(
            valid=not tampered,
            stored_metadata=stored_metadata,
            tampered_fields=tampered,
        )

    async def is_already_paid(self, booking_id: str) -> bool:
        """
        True if the booking is already confirmed or completed.

        Emits a double_charge_attempt alert when True. Returns False when
        the booking is missing or cannot be read.
        """
        try:
            async with self._session_factory() as session:
                booking = await session.get(BookingModel, booking_id)
                status = booking.status if booking else None
                paystack_reference = booking.paystack_reference if booking else None
        except SQLAlchemyError as e:
            logger.error(f"[PaymentValidator] Error checking booking status: {e}")
            return False

        if status is None:
            logger.warning(f"[PaymentValidator] Booking not found: {booking_id}")
            return False

        if status not in PAID_BOOKING_STATUSES:
            return False

        logger.warning(
            f"[PaymentValidator] Booking {booking_id} already {status}, rejecting duplicate payment"
        )
        await self._alerts.create_alert(
            paystack_reference or UNKNOWN_REFERENCE,
            "double_charge_attempt",
            0,
            0,
            f"Attempted to confirm booking {booking_id} which is already {status}"
        )
        return True

"""
Settlement Coordinator

Guarantees at most one settlement per booking under concurrent or retried
webhook delivery.

The booking lock is a single conditional UPDATE (pending -> processing) so
the database decides the winner; there is no read-then-write window. The
winner receives a lock token, and only that token can release or settle
the booking.
"""
import logging
import uuid
from typing import Dict, Any, Optional, Tuple

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from ..config import settings
from ..db.models import (
    BookingModel,
    HypeModel,
    PlatformEarningsModel,
    WalletModel,
    WithdrawalModel,
    utcnow,
)
from ..exceptions import BookingNotPayableError, SettlementError

logger = logging.getLogger(__name__)

PLATFORM_ACCOUNT_ID = "main"


def split_amount(amount: int, fee_percent: int) -> Tuple[int, int]:
    """
    Split a booking amount into (platform_fee, hypeman_amount).

    The fee is rounded half up to whole Naira.
    """
    platform_fee = (amount * fee_percent + 50) // 100
    return platform_fee, amount - platform_fee


class SettlementCoordinator:
    """Booking lock plus the domain writes that settle a verified payment."""

    def __init__(self, session_factory: async_sessionmaker, platform_fee_percent: Optional[int] = None):
        self._session_factory = session_factory
        self._fee_percent = (
            settings.platform_fee_percent if platform_fee_percent is None else platform_fee_percent
        )

    # ========================================================================
    # Booking Lock
    # ========================================================================

    async def lock(self, booking_id: str) -> Optional[str]:
        """
        Atomically move a booking from pending to processing.

        Args:
            booking_id: Booking identifier

        Returns:
            Lock token if this caller acquired the lock, None if the booking
            is missing, not pending (including already processing), or the
            database could not be reached
        """
        token = uuid.uuid4().hex

        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    update(BookingModel)
                    .where(BookingModel.id == booking_id)
                    .where(BookingModel.status == "pending")
                    .values(status="processing", processed_at=utcnow(), lock_token=token)
                    .execution_options(synchronize_session=False)
                )
                await session.commit()

                if result.rowcount == 1:
                    logger.info(f"[BookingLock] Locked booking {booking_id} for payment")
                    return token

                current_status = await session.scalar(
                    select(BookingModel.status).where(BookingModel.id == booking_id)
                )
        except SQLAlchemyError as e:
            logger.error(f"[BookingLock] Error locking booking {booking_id}: {e}", exc_info=True)
            return None

        if current_status is None:
            logger.warning(f"[BookingLock] Cannot lock booking {booking_id}: booking not found")
        else:
            logger.warning(
                f"[BookingLock] Cannot lock booking {booking_id}: status is {current_status}, expected pending"
            )
        return None

    async def unlock(self, booking_id: str, lock_token: str) -> bool:
        """
        Release a lock after validation failed so a legitimate retry can proceed.

        Only the holder of the current lock token can release it; a stale
        token (the lock was since re-acquired) is a no-op.

        Returns:
            True if the booking went back to pending
        """
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    update(BookingModel)
                    .where(BookingModel.id == booking_id)
                    .where(BookingModel.status == "processing")
                    .where(BookingModel.lock_token == lock_token)
                    .values(status="pending", processed_at=None, lock_token=None)
                    .execution_options(synchronize_session=False)
                )
                await session.commit()
        except SQLAlchemyError as e:
            logger.error(f"[BookingLock] Error unlocking booking {booking_id}: {e}", exc_info=True)
            return False

        if result.rowcount != 1:
            logger.warning(f"[BookingLock] Unlock ignored for booking {booking_id}: lock token not current")
            return False

        logger.info(f"[BookingLock] Unlocked booking {booking_id} after payment failure")
        return True

    # ========================================================================
    # Payment initialization support
    # ========================================================================

    async def get_payable_booking(self, booking_id: str, amount: int) -> BookingModel:
        """
        Return a booking that can be paid for with this amount.

        Raises:
            BookingNotPayableError: missing, not pending, or amount differs
        """
        async with self._session_factory() as session:
            booking = await session.get(BookingModel, booking_id)

        if booking is None:
            raise BookingNotPayableError(f"Booking {booking_id} not found", details={"booking_id": booking_id})
        if booking.status != "pending":
            raise BookingNotPayableError(
                f"Booking {booking_id} is {booking.status}, expected pending",
                details={"booking_id": booking_id, "status": booking.status}
            )
        if booking.amount != amount:
            raise BookingNotPayableError(
                f"Booking {booking_id} costs ₦{booking.amount}, not ₦{amount}",
                details={"booking_id": booking_id, "amount": booking.amount}
            )
        return booking

    async def attach_payment(self, booking_id: str, reference: str, payment_url: str) -> None:
        """Store the Paystack reference and checkout URL on a booking."""
        async with self._session_factory() as session:
            await session.execute(
                update(BookingModel)
                .where(BookingModel.id == booking_id)
                .values(payment_reference=reference, payment_url=payment_url)
                .execution_options(synchronize_session=False)
            )
            await session.commit()

    # ========================================================================
    # Settlement
    # ========================================================================

    async def settle_booking(
        self,
        booking_id: str,
        lock_token: str,
        reference: str,
        amount: int
    ) -> Dict[str, Any]:
        """
        Confirm a locked booking and credit the hypeman and platform.

        Booking confirmation and both wallet credits commit in one transaction.

        Args:
            booking_id: Booking identifier
            lock_token: Token returned by lock()
            reference: Paystack reference that paid for the booking
            amount: Verified amount (Naira)

        Returns:
            Settlement summary with the fee split

        Raises:
            SettlementError: lock no longer held by this token
        """
        platform_fee, hypeman_amount = split_amount(amount, self._fee_percent)
        now = utcnow()

        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    update(BookingModel)
                    .where(BookingModel.id == booking_id)
                    .where(BookingModel.status == "processing")
                    .where(BookingModel.lock_token == lock_token)
                    .values(
                        status="confirmed",
                        paystack_reference=reference,
                        confirmed_at=now,
                        lock_token=None,
                        platform_fee=platform_fee,
                        hypeman_amount=hypeman_amount,
                    )
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    raise SettlementError(
                        f"Booking {booking_id} is not locked by this payment attempt",
                        details={"booking_id": booking_id, "reference": reference}
                    )

                hypeman_id = await session.scalar(
                    select(BookingModel.hypeman_id).where(BookingModel.id == booking_id)
                )

                wallet = await session.get(WalletModel, hypeman_id, with_for_update=True)
                if wallet is None:
                    wallet = WalletModel(hypeman_id=hypeman_id, balance=0, total_earned=0)
                    session.add(wallet)
                wallet.balance = (wallet.balance or 0) + hypeman_amount
                wallet.total_earned = (wallet.total_earned or 0) + hypeman_amount
                wallet.last_updated = now

                platform = await session.get(PlatformEarningsModel, PLATFORM_ACCOUNT_ID, with_for_update=True)
                if platform is None:
                    platform = PlatformEarningsModel(id=PLATFORM_ACCOUNT_ID, booking_fees=0, total_earned=0)
                    session.add(platform)
                platform.booking_fees = (platform.booking_fees or 0) + platform_fee
                platform.total_earned = (platform.total_earned or 0) + platform_fee
                platform.last_updated = now

        logger.info(
            f"Booking {booking_id} confirmed. Hypeman: ₦{hypeman_amount}, Platform: ₦{platform_fee}"
        )
        return {
            "booking_id": booking_id,
            "hypeman_id": hypeman_id,
            "reference": reference,
            "amount": amount,
            "platform_fee": platform_fee,
            "hypeman_amount": hypeman_amount,
        }

    async def is_settled_by(self, booking_id: str, reference: str) -> bool:
        """True if the booking was already confirmed by this Paystack reference."""
        async with self._session_factory() as session:
            booking = await session.get(BookingModel, booking_id)

        return (
            booking is not None
            and booking.status in ("confirmed", "completed")
            and booking.paystack_reference == reference
        )

    async def settle_hype(self, reference: str, metadata: Dict[str, Any], amount: int) -> str:
        """
        Create the confirmed hype message for a paid event tip.

        Idempotent per Paystack reference: a second call returns the
        existing hype ID.
        """
        async with self._session_factory() as session:
            existing = await session.scalar(
                select(HypeModel.id).where(HypeModel.paystack_reference == reference)
            )
            if existing:
                logger.info(f"Hype for reference {reference} already exists: {existing}")
                return existing

            hype_id = f"hype_{uuid.uuid4().hex[:16]}"
            session.add(HypeModel(
                id=hype_id,
                event_id=metadata["eventId"],
                user_id=metadata["userId"],
                message=metadata["message"],
                amount=amount,
                sender_name=metadata.get("senderName") or "Anonymous",
                paystack_reference=reference,
                status="confirmed",
                timestamp=utcnow(),
            ))
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                existing = await session.scalar(
                    select(HypeModel.id).where(HypeModel.paystack_reference == reference)
                )
                if existing is None:
                    raise
                return existing

        logger.info(f"Hype message created for event {metadata['eventId']}")
        return hype_id

    async def apply_transfer_result(
        self,
        reference: str,
        metadata: Dict[str, Any],
        status: str,
        transfer_code: Optional[str] = None
    ) -> bool:
        """
        Record the outcome of a payout transfer on its withdrawal.

        Args:
            reference: Transfer reference (fallback withdrawal ID)
            metadata: Transfer metadata, may carry withdrawalId
            status: "completed", "failed" or "reversed"
            transfer_code: Paystack transfer code on success

        Returns:
            True if a withdrawal was updated
        """
        withdrawal_id = metadata.get("withdrawalId") or reference
        now = utcnow()

        values: Dict[str, Any] = {"status": status}
        if status == "completed":
            values.update(completed_at=now, transfer_code=transfer_code)
        else:
            values["failed_at"] = now

        async with self._session_factory() as session:
            result = await session.execute(
                update(WithdrawalModel)
                .where(WithdrawalModel.id == withdrawal_id)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            await session.commit()

        if result.rowcount != 1:
            logger.warning(f"Transfer {reference}: withdrawal {withdrawal_id} not found")
            return False

        logger.info(f"Transfer {status}: withdrawalId={withdrawal_id}, transferCode={transfer_code}")
        return True

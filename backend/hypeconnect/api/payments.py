"""
Payments API Endpoints

Starts Paystack payments and exposes a user's payment history.

The ledger entry is committed before the checkout URL is returned, so every
webhook that can arrive has something to be validated against.
"""
from fastapi import APIRouter, Depends, Query
from typing import Dict, Any
import logging

from ..models.payments import InitializePaymentRequest, InitializePaymentResponse
from ..services.payment_core import PaymentCore, get_payment_core

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/initialize", response_model=InitializePaymentResponse)
async def initialize_payment_endpoint(
    body: InitializePaymentRequest,
    core: PaymentCore = Depends(get_payment_core)
) -> InitializePaymentResponse:
    """
    Initialize a booking or hype payment.

    Request Body:
        {
            "user_id": str,
            "email": str,
            "amount": int,  # Naira
            "metadata": {"bookingId": ..., "hypemanId": ...} | {"eventId": ..., "message": ...}
        }

    Returns:
        Paystack checkout URL and reference

    Errors:
        409: booking not pending or amount differs from booking price
        502: Paystack rejected the initialization
        500: ledger write failed (no checkout URL is issued)
    """
    booking_id = body.metadata.get("bookingId")
    if booking_id:
        await core.settlement.get_payable_booking(booking_id, body.amount)

    duplicates = await core.ledger.find_duplicate_attempts(body.user_id)
    if duplicates:
        logger.warning(
            f"User {body.user_id} has {len(duplicates)} open payment attempts in the last 5 minutes"
        )

    metadata = {**body.metadata, "userId": body.metadata.get("userId", body.user_id)}
    paystack_data = await core.paystack.initialize_payment(body.amount, body.email, metadata)
    reference = paystack_data["reference"]

    await core.ledger.record_initialized(
        reference=reference,
        user_id=body.user_id,
        email=body.email,
        expected_amount=body.amount,
        metadata=metadata,
    )

    if booking_id:
        await core.settlement.attach_payment(booking_id, reference, paystack_data["authorization_url"])

    return InitializePaymentResponse(
        reference=reference,
        authorization_url=paystack_data["authorization_url"],
        access_code=paystack_data.get("access_code"),
        duplicate_attempts=len(duplicates),
    )


@router.get("/verify/{reference}")
async def verify_payment_endpoint(
    reference: str,
    core: PaymentCore = Depends(get_payment_core)
) -> Dict[str, Any]:
    """
    Verify a payment with Paystack (used by the payment callback page).

    Example:
        GET /api/payments/verify/T8234567890
    """
    logger.debug(f"Verifying payment with Paystack: {reference}")
    return await core.paystack.verify_payment(reference)


@router.get("/user/{user_id}")
async def get_user_payments_endpoint(
    user_id: str,
    limit: int = Query(50, ge=1, le=200, description="Max results"),
    core: PaymentCore = Depends(get_payment_core)
) -> Dict[str, Any]:
    """
    Get a user's payment attempts, most recent first.

    Example:
        GET /api/payments/user/user_abc123?limit=20
    """
    transactions = await core.ledger.get_for_user(user_id, limit)

    return {
        "user_id": user_id,
        "count": len(transactions),
        "transactions": [t.model_dump(mode="json", exclude={"gateway_response"}) for t in transactions],
    }

"""
Webhooks API Endpoints

Receives Paystack webhook deliveries. The raw body is signature-checked
before it is parsed.
"""
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError
import logging

from ..models.payments import PaystackEvent
from ..services.payment_core import PaymentCore, get_payment_core
from ..services.signature_service import SIGNATURE_HEADER, verify_paystack_webhook
from ..services.webhook_service import WebhookProcessor

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/paystack")
async def paystack_webhook_endpoint(
    request: Request,
    core: PaymentCore = Depends(get_payment_core)
) -> JSONResponse:
    """
    Handle a Paystack webhook.

    Headers:
        x-paystack-signature: HMAC-SHA512 hex digest of the raw body

    Responses:
        200: processed, or acknowledged duplicate
        400: payment validation failed (fraud alert raised)
        401: missing or invalid signature
        500: processing error; Paystack will retry
    """
    body = await request.body()
    verify_paystack_webhook(body, request.headers.get(SIGNATURE_HEADER))

    try:
        event = PaystackEvent.model_validate_json(body)
    except ValidationError as e:
        logger.warning(f"Malformed Paystack webhook: {e.error_count()} validation errors")
        raise HTTPException(
            status_code=400,
            detail={"error_code": "webhook:malformed", "message": "Malformed webhook payload"}
        )

    logger.info(f"Received Paystack webhook: {event.event} ({event.webhook_id})")

    result = await WebhookProcessor(core).process(event)
    return JSONResponse(status_code=result.status_code, content=result.content)

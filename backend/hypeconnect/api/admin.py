"""
Admin API Endpoints

Payment analytics and fraud-alert review for the back-office.
All routes require the X-Admin-Token header.
"""
import hmac
import logging
from typing import Dict, Any, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query

from ..config import settings
from ..models.fraud import ResolveAlertRequest
from ..services.payment_core import PaymentCore, get_payment_core

logger = logging.getLogger(__name__)


async def require_admin(x_admin_token: Optional[str] = Header(None)) -> None:
    """Reject requests without the configured admin token."""
    if not settings.admin_api_token:
        raise HTTPException(
            status_code=503,
            detail={"error_code": "admin:disabled", "message": "Admin API is not configured"}
        )
    if not x_admin_token or not hmac.compare_digest(
        x_admin_token.encode("utf-8"), settings.admin_api_token.encode("utf-8")
    ):
        logger.warning("Rejected admin request with missing or invalid token")
        raise HTTPException(
            status_code=401,
            detail={"error_code": "admin:unauthorized", "message": "Invalid admin token"}
        )


router = APIRouter(dependencies=[Depends(require_admin)])


# ============================================================================
# Payment Analytics
# ============================================================================

@router.get("/payments/stats")
async def payment_stats_endpoint(core: PaymentCore = Depends(get_payment_core)) -> Dict[str, Any]:
    """Ledger counts by status with total and average amount."""
    stats = await core.ledger.get_stats()
    return stats.model_dump()


@router.get("/payments/failures")
async def recent_failures_endpoint(
    hours_back: int = Query(24, ge=1, le=24 * 30),
    core: PaymentCore = Depends(get_payment_core)
) -> Dict[str, Any]:
    """Failed and rejected payments initiated in the last `hours_back` hours."""
    failures = await core.ledger.get_recent_failures(hours_back)
    return {
        "hours_back": hours_back,
        "count": len(failures),
        "transactions": [t.model_dump(mode="json") for t in failures],
    }


@router.get("/payments/duplicates/{user_id}")
async def duplicate_attempts_endpoint(
    user_id: str,
    within_minutes: int = Query(5, ge=1, le=24 * 60),
    core: PaymentCore = Depends(get_payment_core)
) -> Dict[str, Any]:
    """Open payment attempts by one user inside the window."""
    attempts = await core.ledger.find_duplicate_attempts(user_id, within_minutes)
    return {
        "user_id": user_id,
        "within_minutes": within_minutes,
        "count": len(attempts),
        "transactions": [t.model_dump(mode="json") for t in attempts],
    }


@router.post("/payments/reconcile")
async def reconcile_endpoint(core: PaymentCore = Depends(get_payment_core)) -> Dict[str, Any]:
    """Run the ledger self-consistency scan now."""
    report = await core.ledger.reconcile()
    return report.model_dump()


# ============================================================================
# Fraud Alerts
# ============================================================================

@router.get("/fraud-alerts")
async def list_fraud_alerts_endpoint(
    limit: int = Query(50, ge=1, le=500),
    status: Optional[str] = Query(None, pattern="^(unreviewed|reviewed)$"),
    severity: Optional[str] = Query(None, pattern="^(critical|high|medium)$"),
    alert_type: Optional[str] = Query(None, alias="type"),
    core: PaymentCore = Depends(get_payment_core)
) -> Dict[str, Any]:
    """
    List fraud alerts, newest first.

    Query Parameters:
        limit: Max results (default 50)
        status: unreviewed | reviewed
        severity: critical | high | medium
        type: amount_mismatch | unknown_transaction | metadata_tampering | double_charge_attempt
    """
    alerts = await core.alerts.get_alerts(limit, status=status, severity=severity, alert_type=alert_type)
    return {
        "success": True,
        "count": len(alerts),
        "alerts": [a.model_dump(mode="json") for a in alerts],
    }


@router.post("/fraud-alerts/{alert_id}/resolve")
async def resolve_fraud_alert_endpoint(
    alert_id: str,
    body: ResolveAlertRequest,
    core: PaymentCore = Depends(get_payment_core)
) -> Dict[str, Any]:
    """
    Mark a fraud alert reviewed.

    Errors:
        404: unknown alert
        409: alert already resolved
    """
    alert = await core.alerts.resolve_alert(alert_id, body.resolution)
    return {
        "success": True,
        "message": "Fraud alert resolved",
        "alert": alert.model_dump(mode="json"),
    }

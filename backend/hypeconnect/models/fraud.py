"""
Pydantic Fraud Models

FraudAlert records plus the structured results the validation engine
returns to the webhook handler.
"""
from datetime import datetime
from typing import Optional, Literal, Dict, Any, List
from pydantic import BaseModel, Field

AlertType = Literal[
    "amount_mismatch",
    "unknown_transaction",
    "metadata_tampering",
    "double_charge_attempt",
]
AlertSeverity = Literal["critical", "high", "medium"]
AlertStatus = Literal["unreviewed", "reviewed"]
AlertResolution = Literal["false_positive", "confirmed_fraud", "other"]


def severity_for(alert_type: str) -> str:
    """Amount mismatches are critical; every other finding is high."""
    return "critical" if alert_type == "amount_mismatch" else "high"


class FraudAlert(BaseModel):
    """
    A detected anomaly awaiting admin review.

    discrepancy is always actual_amount - expected_amount.
    resolution is set only once status is reviewed.
    """
    id: str
    reference: str
    type: AlertType
    expected_amount: float = 0
    actual_amount: float = 0
    discrepancy: float = 0
    severity: AlertSeverity
    status: AlertStatus = "unreviewed"
    resolution: Optional[AlertResolution] = None
    description: str
    timestamp: datetime
    reviewed_at: Optional[datetime] = None


class PaymentValidation(BaseModel):
    """Outcome of comparing a webhook amount to the ledger entry."""
    valid: bool
    expected_amount: float
    actual_amount: float
    discrepancy: float
    fraud_detected: bool
    transaction_found: bool = True


class MetadataValidation(BaseModel):
    """Outcome of comparing webhook metadata to the stored metadata."""
    valid: bool
    stored_metadata: Dict[str, Any] = Field(default_factory=dict)
    tampered_fields: List[str] = Field(default_factory=list)


class ResolveAlertRequest(BaseModel):
    resolution: AlertResolution

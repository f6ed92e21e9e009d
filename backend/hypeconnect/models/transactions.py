"""
Pydantic Payment Transaction Models

TransactionRecord is the source of truth for what a user agreed to pay.
Status changes go through TransactionStatus.transition(), which only allows
forward edges of the ledger state machine.
"""
from datetime import datetime
from enum import Enum
from typing import Optional, Dict, Any, List
from pydantic import BaseModel, Field

from ..exceptions import InvalidStatusTransitionError


class TransactionStatus(str, Enum):
    """
    Ledger lifecycle.

    initialized -> verified -> completed
    initialized | verified -> failed | rejected
    completed, failed and rejected are terminal.
    """
    INITIALIZED = "initialized"
    VERIFIED = "verified"
    COMPLETED = "completed"
    FAILED = "failed"
    REJECTED = "rejected"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @classmethod
    def can_transition(cls, current: "TransactionStatus", target: "TransactionStatus") -> bool:
        """Re-applying the current status is allowed (idempotent marker)."""
        return target in _ALLOWED_TRANSITIONS[cls(current)]

    @classmethod
    def transition(cls, current: "TransactionStatus", target: "TransactionStatus") -> "TransactionStatus":
        """
        Return the target status if current -> target is an allowed edge.

        Raises:
            InvalidStatusTransitionError: edge not in the state machine
        """
        current = cls(current)
        target = cls(target)
        if not cls.can_transition(current, target):
            raise InvalidStatusTransitionError(
                f"Cannot move payment from {current.value} to {target.value}",
                details={"current": current.value, "target": target.value}
            )
        return target


TERMINAL_STATUSES = frozenset({
    TransactionStatus.COMPLETED,
    TransactionStatus.FAILED,
    TransactionStatus.REJECTED,
})

_ALLOWED_TRANSITIONS = {
    TransactionStatus.INITIALIZED: frozenset({
        TransactionStatus.INITIALIZED,
        TransactionStatus.VERIFIED,
        TransactionStatus.FAILED,
        TransactionStatus.REJECTED,
    }),
    TransactionStatus.VERIFIED: frozenset({
        TransactionStatus.VERIFIED,
        TransactionStatus.COMPLETED,
        TransactionStatus.FAILED,
        TransactionStatus.REJECTED,
    }),
    TransactionStatus.COMPLETED: frozenset({TransactionStatus.COMPLETED}),
    TransactionStatus.FAILED: frozenset({TransactionStatus.FAILED}),
    TransactionStatus.REJECTED: frozenset({TransactionStatus.REJECTED}),
}


class TransactionRecord(BaseModel):
    """
    One payment attempt, keyed by the Paystack reference.

    Amounts are whole Naira. expected_amount and metadata never change
    after initialization.
    """
    reference: str = Field(min_length=1)
    user_id: str
    email: str
    expected_amount: int
    metadata: Dict[str, Any] = Field(default_factory=dict)
    status: TransactionStatus
    initiated_at: datetime
    verified_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None
    failure_reason: Optional[str] = None  # Present on failed/rejected
    gateway_response: Optional[Dict[str, Any]] = None

    model_config = {
        "json_schema_extra": {
            "example": {
                "reference": "T8234567890",
                "user_id": "user_abc123",
                "email": "fan@example.com",
                "expected_amount": 25000,
                "metadata": {"bookingId": "booking_xyz", "hypemanId": "hypeman_001"},
                "status": "initialized",
                "initiated_at": "2025-10-17T14:30:00Z",
            }
        }
    }


class TransactionStats(BaseModel):
    """Aggregate ledger counts for the admin dashboard."""
    total: int = 0
    completed: int = 0
    failed: int = 0
    rejected: int = 0
    pending: int = 0  # initialized + verified
    avg_amount: int = 0
    total_amount: int = 0


class ReconciliationDiscrepancy(BaseModel):
    reference: str
    issue: str


class ReconciliationReport(BaseModel):
    """Result of a ledger self-consistency scan."""
    scanned: int = 0
    matched: int = 0
    discrepancies: List[ReconciliationDiscrepancy] = Field(default_factory=list)

"""
HypeConnect Exception Hierarchy

Every error carries a stable error code and the HTTP status the API layer
responds with. Fraud findings are not exceptions; they are returned as
validation results.
"""
from typing import Optional, Dict, Any


class HypeConnectError(Exception):
    """Base exception for all payment core errors."""

    status_code: int = 400

    def __init__(
        self,
        error_code: str,
        message: str,
        details: Optional[Dict[str, Any]] = None
    ):
        self.error_code = error_code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to API error response format."""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details
        }


class LedgerWriteError(HypeConnectError):
    """
    The ledger could not be written.

    The ledger is the source of truth for what a user agreed to pay, so this
    is always surfaced to the caller as fatal.
    """

    status_code = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("ledger:write_failed", message, details)


class DuplicateReferenceError(HypeConnectError):
    """A ledger entry already exists for this payment reference."""

    status_code = 409

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("ledger:duplicate_reference", message, details)


class TransactionNotFoundError(HypeConnectError):
    """No ledger entry exists for the payment reference."""

    status_code = 404

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("ledger:transaction_not_found", message, details)


class InvalidStatusTransitionError(HypeConnectError):
    """
    Requested status change is not an edge of the ledger state machine.

    Examples:
    - completed -> rejected
    - initialized -> completed (skips verification)
    """

    status_code = 409

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("ledger:invalid_transition", message, details)


class FraudAlertNotFoundError(HypeConnectError):
    """Fraud alert ID does not exist."""

    status_code = 404

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("fraud:alert_not_found", message, details)


class FraudAlertAlreadyReviewedError(HypeConnectError):
    """Fraud alert was already resolved by an admin."""

    status_code = 409

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("fraud:alert_already_reviewed", message, details)


class BookingNotPayableError(HypeConnectError):
    """Booking is missing or not awaiting payment."""

    status_code = 409

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("booking:not_payable", message, details)


class SettlementError(HypeConnectError):
    """Settlement could not be applied (lock lost or booking missing)."""

    status_code = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("settlement:failed", message, details)


class WebhookSignatureError(HypeConnectError):
    """Webhook signature header missing or does not match the body."""

    status_code = 401

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("webhook:signature_invalid", message, details)


class PaystackAPIError(HypeConnectError):
    """Paystack API call failed or returned status=false."""

    status_code = 502

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("paystack:api_error", message, details)

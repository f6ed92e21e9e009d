"""
Pydantic Models for Paystack Payloads and Payment Requests
"""
from typing import Optional, Dict, Any, Union
from pydantic import BaseModel, EmailStr, Field, field_validator

KOBO_PER_NAIRA = 100


def kobo_to_naira(amount_kobo: int) -> Union[int, float]:
    """
    Convert a Paystack amount (kobo) to Naira.

    Whole amounts stay integers; a fractional result is kept as a float so
    the validator still sees the exact discrepancy.
    """
    naira, kobo = divmod(amount_kobo, KOBO_PER_NAIRA)
    return naira if kobo == 0 else amount_kobo / KOBO_PER_NAIRA


class PaystackEventData(BaseModel):
    """The `data` object of a Paystack webhook event."""
    reference: Optional[str] = None
    amount: Optional[int] = None  # kobo
    status: Optional[str] = None
    gateway_response: Optional[str] = None
    transfer_code: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    model_config = {"extra": "allow"}

    @field_validator("metadata", mode="before")
    @classmethod
    def metadata_as_dict(cls, v: Any) -> Dict[str, Any]:
        """Paystack sends an empty string when no metadata was attached."""
        return v if isinstance(v, dict) else {}


class PaystackEvent(BaseModel):
    """Parsed Paystack webhook body."""
    event: str
    id: Optional[Union[str, int]] = None
    data: PaystackEventData = Field(default_factory=PaystackEventData)

    model_config = {"extra": "allow"}

    @property
    def webhook_id(self) -> str:
        """Paystack event ID when present, else event type plus reference."""
        if self.id is not None:
            return str(self.id)
        return f"{self.event}-{self.data.reference}"


class InitializePaymentRequest(BaseModel):
    """Request body for starting a booking or hype payment."""
    user_id: str = Field(min_length=1)
    email: EmailStr
    amount: int = Field(gt=0, description="Amount in Naira")
    metadata: Dict[str, Any] = Field(default_factory=dict)


class InitializePaymentResponse(BaseModel):
    reference: str
    authorization_url: str
    access_code: Optional[str] = None
    duplicate_attempts: int = 0

"""
Signature Service for Paystack Webhooks

Paystack signs every webhook with HMAC-SHA512 over the raw request body,
keyed with the account secret key, and sends the hex digest in the
x-paystack-signature header.
"""
import hmac
import hashlib
from typing import Optional, Union

from ..config import settings
from ..exceptions import WebhookSignatureError

SIGNATURE_HEADER = "x-paystack-signature"


def compute_signature(body: Union[bytes, str], secret_key: str) -> str:
    """
    Compute the hex HMAC-SHA512 digest of a webhook body.

    Args:
        body: Raw request body exactly as received
        secret_key: Paystack secret key

    Returns:
        Lowercase hexadecimal digest
    """
    if isinstance(body, str):
        body = body.encode("utf-8")

    return hmac.new(
        secret_key.encode("utf-8"),
        body,
        hashlib.sha512
    ).hexdigest()


def verify_signature(body: Union[bytes, str], signature: str, secret_key: str) -> bool:
    """
    Verify a webhook signature using constant-time comparison.

    Header values may hold any character, so both sides are compared as bytes.

    Returns:
        True if signature matches the body, False otherwise
    """
    if not secret_key or not signature:
        return False

    expected = compute_signature(body, secret_key)
    return hmac.compare_digest(expected.encode("ascii"), signature.encode("utf-8"))


def verify_paystack_webhook(body: bytes, signature: Optional[str]) -> None:
    """
    Verify a Paystack webhook against the configured secret.

    Raises:
        WebhookSignatureError: header missing or signature invalid
    """
    if not signature:
        raise WebhookSignatureError("No signature provided")

    if not verify_signature(body, signature, settings.paystack_secret_key):
        raise WebhookSignatureError("Invalid signature")

"""Webhook signature verification."""

import base64
import hashlib
import hmac
from typing import Optional

from fastapi import HTTPException, Request, status

SIGNATURE_HEADERS = ("Calendly-Webhook-Signature", "X-Webhook-Signature")


def compute_signature(secret: str, body: bytes) -> str:
    """
    Compute the expected signature of a raw body.

    Args:
        secret: Shared webhook secret
        body: Raw request body

    Returns:
        Base64-encoded HMAC-SHA256 digest
    """
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("utf-8")


def get_signature_header(request: Request) -> Optional[str]:
    for header in SIGNATURE_HEADERS:
        value = request.headers.get(header)
        if value:
            return value
    return None


def verify_webhook_signature(request: Request, body: bytes, secret: str) -> None:
    """
    Validate the webhook signature header against the raw body.

    Verification is skipped when no secret is configured.

    Args:
        request: FastAPI request object
        body: Raw request body
        secret: Shared webhook secret

    Raises:
        HTTPException: 401 if the signature is missing or invalid
    """
    if not secret:
        return

    signature = get_signature_header(request)
    if not signature:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing webhook signature header",
        )

    # Constant-time comparison
    if not hmac.compare_digest(compute_signature(secret, body), signature):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid webhook signature",
        )

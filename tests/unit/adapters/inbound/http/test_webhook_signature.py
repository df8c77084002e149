"""Unit tests for webhook signature verification."""

import base64
import hashlib
import hmac
from unittest.mock import MagicMock

import pytest
from fastapi import HTTPException

from app.adapters.inbound.http.webhook_signature import compute_signature, verify_webhook_signature

BODY = b'{"event":"invitee.created"}'


def make_request(headers):
    request = MagicMock()
    request.headers = headers
    return request


def test_compute_signature_is_base64_hmac_sha256():
    expected = base64.b64encode(hmac.new(b"secret", BODY, hashlib.sha256).digest()).decode()
    assert compute_signature("secret", BODY) == expected


def test_verification_skipped_without_secret():
    verify_webhook_signature(make_request({}), BODY, "")


def test_missing_signature_rejected():
    with pytest.raises(HTTPException) as exc_info:
        verify_webhook_signature(make_request({}), BODY, "secret")
    assert exc_info.value.status_code == 401


def test_invalid_signature_rejected():
    request = make_request({"X-Webhook-Signature": compute_signature("other", BODY)})
    with pytest.raises(HTTPException) as exc_info:
        verify_webhook_signature(request, BODY, "secret")
    assert exc_info.value.detail == "Invalid webhook signature"


@pytest.mark.parametrize("header", ["Calendly-Webhook-Signature", "X-Webhook-Signature"])
def test_valid_signature_accepted(header):
    verify_webhook_signature(make_request({header: compute_signature("secret", BODY)}), BODY, "secret")

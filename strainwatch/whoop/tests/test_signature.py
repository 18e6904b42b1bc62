"""Tests for WHOOP webhook signature verification."""

from __future__ import annotations

import base64
import hashlib
import hmac

from strainwatch.whoop.signature import compute_signature, verify_signature

SECRET = "client-secret"
TIMESTAMP = "1760000000000"
BODY = b'{"user_id":10129,"id":"w-1","type":"workout.updated","trace_id":"t"}'


def test_signature_is_base64_hmac_of_timestamp_and_body() -> None:
    expected = base64.b64encode(
        hmac.new(SECRET.encode(), TIMESTAMP.encode() + BODY, hashlib.sha256).digest()
    ).decode()
    assert compute_signature(TIMESTAMP, BODY, SECRET) == expected


def test_valid_signature_verifies() -> None:
    signature = compute_signature(TIMESTAMP, BODY, SECRET)
    assert verify_signature(TIMESTAMP, BODY, signature, SECRET) is True


def test_tampered_body_fails() -> None:
    signature = compute_signature(TIMESTAMP, BODY, SECRET)
    assert verify_signature(TIMESTAMP, BODY + b" ", signature, SECRET) is False


def test_other_timestamp_fails() -> None:
    signature = compute_signature(TIMESTAMP, BODY, SECRET)
    assert verify_signature("1760000000001", BODY, signature, SECRET) is False


def test_missing_headers_never_verify() -> None:
    signature = compute_signature(TIMESTAMP, BODY, SECRET)
    assert verify_signature(None, BODY, signature, SECRET) is False
    assert verify_signature(TIMESTAMP, BODY, None, SECRET) is False
    assert verify_signature(TIMESTAMP, BODY, "", SECRET) is False

"""WHOOP webhook signature verification.

WHOOP signs each webhook with base64(HMAC-SHA256(timestamp + raw_body)) keyed
by the OAuth client secret, sent in ``X-WHOOP-Signature`` alongside
``X-WHOOP-Signature-Timestamp``.
"""

from __future__ import annotations

import base64
import hashlib
import hmac


def compute_signature(timestamp: str, body: bytes, secret: str) -> str:
    digest = hmac.new(secret.encode(), timestamp.encode() + body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode()


def verify_signature(timestamp: str | None, body: bytes, signature: str | None, secret: str) -> bool:
    """Return True when the signature matches; missing headers never verify."""
    if not timestamp or not signature or not secret:
        return False
    return hmac.compare_digest(compute_signature(timestamp, body, secret), signature)

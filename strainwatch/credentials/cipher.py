"""Authenticated encryption for stored credentials.

Each record is serialized to JSON and sealed with AES-256-GCM using a fresh
random 96-bit nonce per write.  The user id is bound as associated data, so
a record copied under another user's key fails authentication as well.

Stored envelope::

    {"v": 1, "nonce": "<base64>", "ciphertext": "<base64 ciphertext+tag>"}
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from strainwatch.errors import CorruptionError

logger = logging.getLogger("strainwatch.credentials.cipher")

_ENVELOPE_VERSION = 1
_NONCE_BYTES = 12
_KEY_SALT = b"strainwatch.credential-vault"


def derive_key(secret: str) -> bytes:
    """Stretch the configured vault secret into a 256-bit AES key."""
    if not secret:
        raise ValueError("vault secret must not be empty")
    kdf = Scrypt(salt=_KEY_SALT, length=32, n=2**14, r=8, p=1)
    return kdf.derive(secret.encode("utf-8"))


class CredentialCipher:
    """Seal and open credential records with AES-256-GCM."""

    def __init__(self, secret: str | None = None, key: bytes | None = None) -> None:
        if key is None:
            key = derive_key(secret or "")
        self._aead = AESGCM(key)

    def encrypt(self, user_id: str, record: dict) -> dict:
        nonce = os.urandom(_NONCE_BYTES)
        plaintext = json.dumps(record, separators=(",", ":")).encode("utf-8")
        sealed = self._aead.encrypt(nonce, plaintext, user_id.encode("utf-8"))
        return {
            "v": _ENVELOPE_VERSION,
            "nonce": base64.b64encode(nonce).decode("ascii"),
            "ciphertext": base64.b64encode(sealed).decode("ascii"),
        }

    def decrypt(self, user_id: str, envelope: dict) -> dict:
        """Open an envelope.

        Raises:
            CorruptionError: On a failed authentication tag, a malformed
                envelope, or a payload that is not a JSON object.
        """
        try:
            nonce = base64.b64decode(envelope["nonce"], validate=True)
            sealed = base64.b64decode(envelope["ciphertext"], validate=True)
        except (KeyError, TypeError, binascii.Error) as exc:
            raise CorruptionError(f"Malformed credential envelope for user {user_id}") from exc

        try:
            plaintext = self._aead.decrypt(nonce, sealed, user_id.encode("utf-8"))
        except (InvalidTag, ValueError) as exc:
            raise CorruptionError(
                f"Credential for user {user_id} failed authentication"
            ) from exc

        try:
            record = json.loads(plaintext)
        except ValueError as exc:
            raise CorruptionError(f"Credential for user {user_id} is not valid JSON") from exc
        if not isinstance(record, dict):
            raise CorruptionError(f"Credential for user {user_id} is not a JSON object")
        return record

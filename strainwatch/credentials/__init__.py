"""Credential vault for WHOOP OAuth tokens.

Modules:
    models — Credential and TokenGrant records
    cipher — AES-256-GCM sealing of stored records
    store  — persistence backends (JSON file, Postgres, memory)
    vault  — TokenVault: read path with single-flight refresh
"""

from strainwatch.credentials.cipher import CredentialCipher
from strainwatch.credentials.models import Credential, TokenGrant
from strainwatch.credentials.store import (
    CredentialStore,
    JsonFileCredentialStore,
    MemoryCredentialStore,
    PostgresCredentialStore,
)
from strainwatch.credentials.vault import TokenVault

__all__ = [
    "Credential",
    "TokenGrant",
    "CredentialCipher",
    "CredentialStore",
    "JsonFileCredentialStore",
    "MemoryCredentialStore",
    "PostgresCredentialStore",
    "TokenVault",
]

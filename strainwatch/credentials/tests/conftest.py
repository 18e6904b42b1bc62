"""Shared fixtures for credential vault tests."""

from __future__ import annotations

import asyncio

import pytest

from strainwatch.credentials.cipher import CredentialCipher
from strainwatch.credentials.models import TokenGrant
from strainwatch.credentials.store import MemoryCredentialStore
from strainwatch.credentials.vault import TokenVault

# Fixed wall clock for expiry arithmetic (epoch ms)
NOW_MS = 1_760_000_000_000
USER_ID = "10129"


class FakeRefresher:
    """Stands in for WhoopClient.refresh_token.

    Counts round trips; ``gate`` (when set) holds every refresh until released
    so tests can pile up concurrent callers.
    """

    def __init__(self, grant: TokenGrant | None = None, error: Exception | None = None) -> None:
        self.grant = grant or TokenGrant(access_token="at-new", refresh_token="rt-new", expires_in=3600)
        self.error = error
        self.calls: list[tuple[str, str]] = []
        self.gate: asyncio.Event | None = None

    async def refresh_token(self, user_id: str, refresh_token: str) -> TokenGrant:
        self.calls.append((user_id, refresh_token))
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.grant


@pytest.fixture
def cipher() -> CredentialCipher:
    # raw key skips scrypt to keep the suite fast
    return CredentialCipher(key=bytes(range(32)))


@pytest.fixture
def store() -> MemoryCredentialStore:
    return MemoryCredentialStore()


@pytest.fixture
def refresher() -> FakeRefresher:
    return FakeRefresher()


@pytest.fixture
def vault(store: MemoryCredentialStore, cipher: CredentialCipher, refresher: FakeRefresher) -> TokenVault:
    return TokenVault(store, cipher, refresher, clock=lambda: NOW_MS)

"""Encrypted credential vault with transparent, single-flight token refresh.

``TokenVault.get`` is the read path used by polling cycles and request
handlers.  When the stored access token has expired it refreshes it against
the WHOOP token endpoint, persists the new pair, and returns it.  Concurrent
readers of the same expired credential share one refresh round trip.

Failure policy:
    - Transient refresh failures (network, timeout, 5xx) keep the credential;
      a later cycle may still succeed.
    - An explicit ``invalid_grant`` rejection deletes the credential, since a
      refresh token that can never be used again would only keep generating
      failing calls.  The record is only deleted while it still holds the
      refresh token that was rejected; a pair stored during the round trip
      is kept, and a successful refresh never overwrites it either.
    - A record that fails authenticated decryption is treated as absent.

Usage::

    vault = TokenVault(JsonFileCredentialStore("data/tokens.json"),
                       CredentialCipher(secret), whoop_client)
    credential = await vault.get(user_id)
"""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Protocol

from strainwatch.credentials.cipher import CredentialCipher
from strainwatch.credentials.models import (
    DEFAULT_LIFETIME_MS,
    Credential,
    TokenGrant,
    now_ms,
    utc_iso,
)
from strainwatch.credentials.store import CredentialStore
from strainwatch.errors import CorruptionError, CredentialNotFound, RefreshFailed, RefreshRejected

logger = logging.getLogger("strainwatch.credentials.vault")


class TokenRefresher(Protocol):
    async def refresh_token(self, user_id: str, refresh_token: str) -> TokenGrant: ...


class TokenVault:
    """One encrypted credential per WHOOP user id."""

    def __init__(
        self,
        store: CredentialStore,
        cipher: CredentialCipher,
        refresher: TokenRefresher,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        """Initialize the vault.

        Args:
            store:     Envelope persistence backend.
            cipher:    AEAD cipher sealing each record.
            refresher: Object exposing ``refresh_token(user_id, refresh_token)``,
                       normally the WhoopClient.
            clock:     Epoch-millisecond clock (injectable for tests).
        """
        self._store = store
        self._cipher = cipher
        self._refresher = refresher
        self._clock = clock
        self._inflight: dict[str, asyncio.Future[Credential]] = {}
        self._write_locks: dict[str, asyncio.Lock] = {}
        self._lock_users: Counter[str] = Counter()

    # ------------------------------------------------------------------
    # Read path
    # ------------------------------------------------------------------

    async def get(self, user_id: str) -> Credential:
        """Return a valid, non-expired credential, refreshing it if needed.

        Raises:
            CredentialNotFound: Nothing usable is stored for user_id.
            RefreshFailed:      The refresh attempt failed (see subclasses).
            PersistenceError:   The store could not be read or written.
        """
        credential = await self.get_raw(user_id)
        if credential is None:
            raise CredentialNotFound(user_id)
        if not credential.is_expired(self._clock()):
            return credential
        return await self._refresh_single_flight(user_id)

    async def get_raw(self, user_id: str) -> Credential | None:
        """Return the stored credential as-is, without any refresh side effect."""
        envelope = await self._store.read(user_id)
        if envelope is None:
            return None
        try:
            return self._open(user_id, envelope)
        except CorruptionError as exc:
            logger.error("Ignoring unreadable credential for user %s: %s", user_id, exc)
            return None

    async def enabled_user_ids(self) -> list[str]:
        """User ids whose stored credential has polling enabled."""
        enabled: list[str] = []
        for user_id, envelope in (await self._store.read_all()).items():
            try:
                credential = self._open(user_id, envelope)
            except CorruptionError as exc:
                logger.error("Skipping unreadable credential for user %s: %s", user_id, exc)
                continue
            if credential.polling_enabled:
                enabled.append(user_id)
        return sorted(enabled)

    # ------------------------------------------------------------------
    # Write path
    # ------------------------------------------------------------------

    async def set(self, user_id: str, create: bool = True, **changes) -> Credential:
        """Merge ``changes`` into the stored record, stamp updated_at, and persist.

        Creating a new record requires access_token and refresh_token; a record
        without expires_at is given one day of validity.  With ``create=False``
        the record must already exist.

        Raises:
            CredentialNotFound: ``create`` is False and nothing is stored.
            ValueError:       Creating a record without a token pair.
            PersistenceError: The store write failed.
        """
        changes.pop("user_id", None)
        async with self._user_lock(user_id):
            existing = await self.get_raw(user_id)
            if existing is None and not create:
                raise CredentialNotFound(user_id)
            return await self._write(user_id, existing, changes)

    async def delete(self, user_id: str) -> bool:
        async with self._user_lock(user_id):
            removed = await self._store.delete(user_id)
        if removed:
            logger.info("Credential deleted for user %s", user_id)
        return removed

    async def purge_corrupt(self) -> list[str]:
        """Delete every record that no longer decrypts; return their user ids."""
        purged: list[str] = []
        for user_id, envelope in (await self._store.read_all()).items():
            try:
                self._open(user_id, envelope)
            except CorruptionError:
                await self._store.delete(user_id)
                purged.append(user_id)
        if purged:
            logger.warning("Purged %d unreadable credential(s)", len(purged))
        return purged

    async def _write(self, user_id: str, existing: Credential | None, changes: dict) -> Credential:
        # caller holds the user's lock
        merged = existing.to_dict() if existing else {}
        merged.update({k: v for k, v in changes.items() if v is not None})
        if not merged.get("access_token") or not merged.get("refresh_token"):
            raise ValueError(f"A new credential for user {user_id} needs a token pair")
        merged["user_id"] = user_id
        merged["updated_at"] = utc_iso()
        if not merged.get("expires_at"):
            merged["expires_at"] = self._clock() + DEFAULT_LIFETIME_MS

        credential = Credential.from_dict(merged)
        await self._store.write(user_id, self._cipher.encrypt(user_id, credential.to_dict()))
        return credential

    @asynccontextmanager
    async def _user_lock(self, user_id: str) -> AsyncIterator[None]:
        """Serialize writes for one user; the lock is dropped once nobody holds or awaits it."""
        lock = self._write_locks.get(user_id)
        if lock is None:
            lock = self._write_locks[user_id] = asyncio.Lock()
        self._lock_users[user_id] += 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[user_id] -= 1
            if self._lock_users[user_id] == 0:
                del self._lock_users[user_id]
                del self._write_locks[user_id]

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------

    def refresh_in_flight(self, user_id: str) -> bool:
        return user_id in self._inflight

    async def _refresh_single_flight(self, user_id: str) -> Credential:
        flight = self._inflight.get(user_id)
        if flight is None:
            flight = asyncio.ensure_future(self._refresh(user_id))
            self._inflight[user_id] = flight
            flight.add_done_callback(lambda f, uid=user_id: self._land(uid, f))
        # A cancelled waiter must not cancel the refresh other callers share
        return await asyncio.shield(flight)

    def _land(self, user_id: str, flight: asyncio.Future) -> None:
        if self._inflight.get(user_id) is flight:
            del self._inflight[user_id]
        if not flight.cancelled():
            flight.exception()  # mark retrieved when every waiter went away

    async def _refresh(self, user_id: str) -> Credential:
        credential = await self.get_raw(user_id)
        if credential is None:
            raise CredentialNotFound(user_id)
        if not credential.is_expired(self._clock()):
            return credential

        sent = credential.refresh_token
        logger.info("Token expired for user %s, refreshing", user_id)
        try:
            grant = await self._refresher.refresh_token(user_id, sent)
        except RefreshRejected as exc:
            async with self._user_lock(user_id):
                current = await self.get_raw(user_id)
                if current is not None and current.refresh_token != sent:
                    logger.info("Refresh rejected for user %s, keeping the pair stored since", user_id)
                    replaced = current
                else:
                    logger.warning("Refresh rejected for user %s, deleting credential: %s", user_id, exc)
                    await self._store.delete(user_id)
                    replaced = None
            if replaced is None or replaced.is_expired(self._clock()):
                raise
            return replaced
        except RefreshFailed as exc:
            logger.warning("Refresh failed for user %s, keeping credential: %s", user_id, exc)
            raise

        async with self._user_lock(user_id):
            current = await self.get_raw(user_id)
            # never recreate a credential deleted during the round trip
            if current is None:
                raise CredentialNotFound(user_id)
            if current.refresh_token != sent:
                logger.info("Discarding refresh for user %s, a new pair was stored meanwhile", user_id)
                return current
            refreshed = await self._write(
                user_id,
                current,
                {
                    "access_token": grant.access_token,
                    "refresh_token": grant.refresh_token,
                    "expires_at": grant.expires_at(self._clock()),
                    "refreshed_at": utc_iso(),
                },
            )
        logger.info("Token refreshed for user %s", user_id)
        return refreshed

    # ------------------------------------------------------------------

    def _open(self, user_id: str, envelope: dict) -> Credential:
        record = self._cipher.decrypt(user_id, envelope)
        try:
            return Credential.from_dict(record)
        except TypeError as exc:
            raise CorruptionError(f"Credential for user {user_id} is missing fields") from exc

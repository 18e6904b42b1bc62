"""Persistence backends for encrypted credential envelopes.

Stores only ever see sealed envelopes (see ``cipher.py``); encryption and
refresh logic live in the vault.  Every backend raises ``PersistenceError``
on I/O failure so callers never need to know which engine is in use.

Backends:
    JsonFileCredentialStore — single JSON file, atomic replace on write
    PostgresCredentialStore — one row per user in ``whoop_credentials``
    MemoryCredentialStore   — process-local dict (development, tests)
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path

import asyncpg

from strainwatch.errors import PersistenceError
from strainwatch.services.database import get_connection

logger = logging.getLogger("strainwatch.credentials.store")


class CredentialStore(ABC):
    """Contract for envelope storage keyed by external user id."""

    @abstractmethod
    async def read(self, user_id: str) -> dict | None:
        """Return the stored envelope or None."""

    @abstractmethod
    async def read_all(self) -> dict[str, dict]:
        """Return every stored envelope keyed by user id."""

    @abstractmethod
    async def write(self, user_id: str, envelope: dict) -> None:
        """Insert or replace the envelope for user_id."""

    @abstractmethod
    async def delete(self, user_id: str) -> bool:
        """Remove the envelope; return True if one existed."""


class MemoryCredentialStore(CredentialStore):
    def __init__(self) -> None:
        self._records: dict[str, dict] = {}

    async def read(self, user_id: str) -> dict | None:
        envelope = self._records.get(user_id)
        return dict(envelope) if envelope is not None else None

    async def read_all(self) -> dict[str, dict]:
        return {uid: dict(env) for uid, env in self._records.items()}

    async def write(self, user_id: str, envelope: dict) -> None:
        self._records[user_id] = dict(envelope)

    async def delete(self, user_id: str) -> bool:
        return self._records.pop(user_id, None) is not None


class JsonFileCredentialStore(CredentialStore):
    """All envelopes in one JSON object on disk.

    Writes go through a temp file and ``os.replace`` so a crash never leaves
    a half-written file behind.  An asyncio lock serializes read-modify-write
    cycles within the process.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._lock = asyncio.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> dict[str, dict]:
        if not self._path.exists():
            return {}
        try:
            with self._path.open("r", encoding="utf-8") as fh:
                data = json.load(fh)
        except OSError as exc:
            raise PersistenceError(f"Cannot read credential file {self._path}: {exc}") from exc
        except ValueError as exc:
            raise PersistenceError(f"Credential file {self._path} is not valid JSON") from exc
        if not isinstance(data, dict):
            raise PersistenceError(f"Credential file {self._path} must hold a JSON object")
        return data

    def _dump(self, data: dict[str, dict]) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self._path.name}.", dir=self._path.parent
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    json.dump(data, fh, indent=2)
                os.replace(tmp_name, self._path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            raise PersistenceError(f"Cannot write credential file {self._path}: {exc}") from exc

    async def read(self, user_id: str) -> dict | None:
        data = await asyncio.to_thread(self._load)
        return data.get(user_id)

    async def read_all(self) -> dict[str, dict]:
        return await asyncio.to_thread(self._load)

    async def write(self, user_id: str, envelope: dict) -> None:
        async with self._lock:
            data = await asyncio.to_thread(self._load)
            data[user_id] = envelope
            await asyncio.to_thread(self._dump, data)

    async def delete(self, user_id: str) -> bool:
        async with self._lock:
            data = await asyncio.to_thread(self._load)
            if user_id not in data:
                return False
            del data[user_id]
            await asyncio.to_thread(self._dump, data)
            return True


class PostgresCredentialStore(CredentialStore):
    """Envelopes in Postgres, one row per user.

    Uses the shared asyncpg pool from ``strainwatch.services.database``;
    call ``ensure_schema()`` once after the pool is up.
    """

    TABLE = "whoop_credentials"

    async def ensure_schema(self) -> None:
        await self._execute(
            f"""
            CREATE TABLE IF NOT EXISTS {self.TABLE} (
                user_id    TEXT PRIMARY KEY,
                envelope   JSONB NOT NULL,
                updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            )
            """
        )

    async def _execute(self, query: str, *args) -> str:
        try:
            async with get_connection() as conn:
                return await conn.execute(query, *args)
        except (asyncpg.PostgresError, OSError) as exc:
            raise PersistenceError(f"Credential store write failed: {exc}") from exc

    async def read(self, user_id: str) -> dict | None:
        try:
            async with get_connection() as conn:
                raw = await conn.fetchval(
                    f"SELECT envelope::text FROM {self.TABLE} WHERE user_id = $1", user_id
                )
        except (asyncpg.PostgresError, OSError) as exc:
            raise PersistenceError(f"Credential store read failed: {exc}") from exc
        return json.loads(raw) if raw is not None else None

    async def read_all(self) -> dict[str, dict]:
        try:
            async with get_connection() as conn:
                rows = await conn.fetch(f"SELECT user_id, envelope::text AS envelope FROM {self.TABLE}")
        except (asyncpg.PostgresError, OSError) as exc:
            raise PersistenceError(f"Credential store read failed: {exc}") from exc
        return {r["user_id"]: json.loads(r["envelope"]) for r in rows}

    async def write(self, user_id: str, envelope: dict) -> None:
        await self._execute(
            f"""
            INSERT INTO {self.TABLE} (user_id, envelope, updated_at)
            VALUES ($1, $2::jsonb, NOW())
            ON CONFLICT (user_id) DO UPDATE
                SET envelope = EXCLUDED.envelope, updated_at = NOW()
            """,
            user_id,
            json.dumps(envelope),
        )

    async def delete(self, user_id: str) -> bool:
        status = await self._execute(f"DELETE FROM {self.TABLE} WHERE user_id = $1", user_id)
        return status != "DELETE 0"

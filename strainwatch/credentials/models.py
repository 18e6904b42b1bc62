"""Credential record stored in the vault.

One record exists per external WHOOP user id.  Timestamps are epoch
milliseconds so the stored JSON stays engine-neutral.
"""

from __future__ import annotations

import time
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, timezone

# Records written without an expiry are assumed to live for one day
DEFAULT_LIFETIME_MS = 24 * 60 * 60 * 1000


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def utc_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class Credential:
    """OAuth token pair plus polling preference for one WHOOP user.

    Attributes:
        user_id:         External WHOOP user id.
        access_token:    Bearer token for API calls.
        refresh_token:   Token used to obtain a new access_token.
        expires_at:      Epoch ms after which access_token is unusable.
        polling_enabled: Whether the user opted in to background polling.
        updated_at:      ISO-8601 UTC timestamp of the last write.
        refreshed_at:    ISO-8601 UTC timestamp of the last successful refresh.
    """

    user_id: str
    access_token: str
    refresh_token: str
    expires_at: int
    polling_enabled: bool = False
    updated_at: str = field(default_factory=utc_iso)
    refreshed_at: str | None = None

    def is_expired(self, at_ms: int | None = None) -> bool:
        """A token is usable only while now < expires_at."""
        return (now_ms() if at_ms is None else at_ms) >= self.expires_at

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "Credential":
        """Build a Credential, ignoring unknown keys from older records."""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})


@dataclass
class TokenGrant:
    """Token pair returned by the OAuth token endpoint."""

    access_token: str
    refresh_token: str
    expires_in: int  # seconds

    def expires_at(self, issued_at_ms: int | None = None) -> int:
        issued = now_ms() if issued_at_ms is None else issued_at_ms
        return issued + self.expires_in * 1000

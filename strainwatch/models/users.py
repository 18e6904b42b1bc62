"""Pydantic schemas for per-user credential, polling and strain endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import Field, model_validator

from strainwatch.models.base import StrainwatchBase


# ---------- Credentials ----------

class CredentialCreate(StrainwatchBase):
    """Token pair handed over by the OAuth handshake."""

    access_token: str = Field(min_length=1)
    refresh_token: str = Field(min_length=1)
    expires_in: int | None = Field(default=None, gt=0, description="Seconds until expiry")
    expires_at: int | None = Field(default=None, gt=0, description="Epoch ms")
    polling_enabled: bool | None = Field(default=None, description="Omit to keep the stored flag")

    @model_validator(mode="after")
    def _one_expiry(self) -> "CredentialCreate":
        if self.expires_in is not None and self.expires_at is not None:
            raise ValueError("Provide expires_in or expires_at, not both")
        return self


class CredentialRead(StrainwatchBase):
    """Credential metadata. Token values are never returned."""

    user_id: str
    expires_at: int
    expired: bool
    polling_enabled: bool
    updated_at: str
    refreshed_at: str | None = None


# ---------- Polling ----------

class PollingStatus(StrainwatchBase):
    user_id: str
    enabled: bool
    active: bool
    interval_seconds: float
    cycles: int = 0
    started_at: datetime | None = None
    last_sample_at: datetime | None = None
    last_error: str | None = None


# ---------- Strain ----------

class StrainRead(StrainwatchBase):
    user_id: str
    strain: float
    average_heart_rate: float = 0
    max_heart_rate: float = 0
    kilojoule: float = 0
    start: str | None = None
    end: str | None = None
    score_state: str | None = None
    cycle_id: Any = None
    timestamp: datetime

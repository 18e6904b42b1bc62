"""Records produced and tracked by the polling scheduler."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Sample:
    """One strain reading taken from the user's latest WHOOP cycle.

    Ephemeral: forwarded to the sink, published to live viewers, then
    discarded.  Never persisted.

    Attributes:
        user_id:      WHOOP user id.
        strain:       Day strain score (0–21); 0 when not yet scored.
        auxiliary:    Heart-rate, energy and cycle bookkeeping fields.
        collected_at: UTC time the sample was taken.
    """

    user_id: str
    strain: float
    auxiliary: dict = field(default_factory=dict)
    collected_at: datetime = field(default_factory=_utc_now)

    @classmethod
    def from_cycle(cls, user_id: str, cycle: dict) -> "Sample":
        """Build a sample from a ``/developer/v1/cycle`` record.

        Unscored cycles carry no ``score`` object; their numeric fields read as 0.
        """
        score = cycle.get("score") or {}
        return cls(
            user_id=user_id,
            strain=float(score.get("strain") or 0),
            auxiliary={
                "average_heart_rate": score.get("average_heart_rate") or 0,
                "max_heart_rate": score.get("max_heart_rate") or 0,
                "kilojoule": score.get("kilojoule") or 0,
                "start": cycle.get("start"),
                "end": cycle.get("end"),
                "score_state": cycle.get("score_state"),
                "cycle_id": cycle.get("id"),
            },
        )

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "strain": self.strain,
            **self.auxiliary,
            "timestamp": self.collected_at.isoformat(),
        }


@dataclass
class ScheduleEntry:
    """The single active polling schedule for one user."""

    user_id: str
    interval_seconds: float
    task: asyncio.Task | None = None
    in_cycle: bool = False
    cycles: int = 0
    started_at: datetime = field(default_factory=_utc_now)
    last_sample_at: datetime | None = None
    last_error: str | None = None

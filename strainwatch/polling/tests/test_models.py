"""Tests for Sample construction from WHOOP cycle records."""

from __future__ import annotations

from datetime import datetime, timezone

from strainwatch.polling.models import Sample

SCORED_CYCLE = {
    "id": 93845,
    "user_id": 10129,
    "start": "2026-10-18T06:25:14.059Z",
    "end": "2026-10-19T06:11:02.431Z",
    "timezone_offset": "-05:00",
    "score_state": "SCORED",
    "score": {
        "strain": 5.2951527,
        "kilojoule": 8288.297,
        "average_heart_rate": 68,
        "max_heart_rate": 141,
    },
}


def test_scored_cycle_maps_score_fields() -> None:
    sample = Sample.from_cycle("10129", SCORED_CYCLE)
    assert sample.strain == 5.2951527
    assert sample.auxiliary["average_heart_rate"] == 68
    assert sample.auxiliary["max_heart_rate"] == 141
    assert sample.auxiliary["kilojoule"] == 8288.297
    assert sample.auxiliary["cycle_id"] == 93845
    assert sample.auxiliary["score_state"] == "SCORED"


def test_unscored_cycle_reads_as_zero() -> None:
    cycle = {"id": 93846, "start": "2026-10-19T06:11:02.431Z", "end": None, "score_state": "PENDING_SCORE"}
    sample = Sample.from_cycle("10129", cycle)
    assert sample.strain == 0.0
    assert sample.auxiliary["max_heart_rate"] == 0
    assert sample.auxiliary["end"] is None


def test_to_dict_flattens_auxiliary_and_timestamp() -> None:
    collected = datetime(2026, 10, 19, 8, 0, tzinfo=timezone.utc)
    sample = Sample(user_id="10129", strain=12.4, auxiliary={"kilojoule": 9000}, collected_at=collected)
    assert sample.to_dict() == {
        "user_id": "10129",
        "strain": 12.4,
        "kilojoule": 9000,
        "timestamp": "2026-10-19T08:00:00+00:00",
    }

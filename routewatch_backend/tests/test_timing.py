from __future__ import annotations

from datetime import datetime, timedelta, timezone

from routewatch_backend.scheduler import (
    compute_cycle_interval,
    effective_end_time,
    is_window_expired,
    normalize_cycle_seconds,
)
from routewatch_backend.storage.models import RouteJob

T0 = datetime(2024, 3, 1, 8, 0, tzinfo=timezone.utc)


def _job(**fields) -> RouteJob:
    values = {
        "start_location": "A",
        "end_location": "B",
        "cycle_seconds": 600,
        "duration_days": 1,
        "created_at": T0,
        "start_time": None,
        "end_time": None,
    }
    values.update(fields)
    return RouteJob(**values)


def test_normalize_prefers_positive_seconds():
    assert normalize_cycle_seconds(cycle_minutes=5, cycle_seconds=30) == 30
    assert normalize_cycle_seconds(cycle_minutes=5, cycle_seconds=0) == 300
    assert normalize_cycle_seconds(cycle_minutes=0) == 60
    assert normalize_cycle_seconds() == 3600
    assert normalize_cycle_seconds(default_minutes=15) == 900


def test_interval_respects_floor():
    assert compute_cycle_interval(_job(cycle_seconds=3), 10) == 10.0
    assert compute_cycle_interval(_job(cycle_seconds=600), 10) == 600.0


def test_window_anchored_to_created_at_before_first_start():
    job = _job()
    assert effective_end_time(job) == T0 + timedelta(days=1)
    assert not is_window_expired(job, T0 + timedelta(days=1))
    assert is_window_expired(job, T0 + timedelta(days=1, seconds=1))


def test_window_anchored_to_start_time():
    started = T0 + timedelta(days=3)
    job = _job(start_time=started)
    assert effective_end_time(job) == started + timedelta(days=1)
    assert not is_window_expired(job, T0 + timedelta(days=2))


def test_explicit_end_time_wins():
    end = T0 + timedelta(hours=2)
    job = _job(start_time=T0, end_time=end, duration_days=30)
    assert effective_end_time(job) == end
    assert is_window_expired(job, T0 + timedelta(hours=3))


def test_naive_timestamps_are_treated_as_utc():
    job = _job(created_at=T0.replace(tzinfo=None))
    assert effective_end_time(job) == T0 + timedelta(days=1)

from __future__ import annotations

from datetime import timedelta

from conftest import make_job
from routewatch_backend.directions.base import Route
from routewatch_backend.storage.models import JobStatus, utcnow


def test_create_sets_pending_and_timestamps(store):
    job = make_job(store, name="Commute")

    loaded = store.get(job.id)
    assert loaded.status == JobStatus.PENDING
    assert loaded.name == "Commute"
    assert loaded.navigation_type == "driving"
    assert loaded.created_at == loaded.updated_at
    assert loaded.created_at.tzinfo is not None


def test_list_for_owner_filters_and_orders(store):
    first = make_job(store, owner_id="alice")
    second = make_job(store, owner_id="alice")
    make_job(store, owner_id="bob")

    ids = [job.id for job in store.list_for_owner("alice")]

    assert set(ids) == {first.id, second.id}
    assert store.get_for_owner(first.id, "bob") is None
    assert store.get_for_owner(first.id, "alice").id == first.id


def test_update_and_status_helpers(store):
    job = make_job(store)

    updated = store.update(job.id, name="Renamed", cycle_seconds=120)
    assert updated.name == "Renamed"
    assert updated.cycle_seconds == 120
    assert updated.updated_at >= job.updated_at

    assert store.set_status(job.id, JobStatus.RUNNING) is True
    assert [j.id for j in store.list_running()] == [job.id]
    assert store.set_status("missing", JobStatus.RUNNING) is False
    assert store.update("missing", name="x") is None


def test_snapshots_share_timestamp_and_order(store):
    job = make_job(store)
    t0 = utcnow()
    routes = [
        Route(route_index=0, duration_seconds=600, distance_meters=5000, summary="main"),
        Route(route_index=1, duration_seconds=700, distance_meters=5500),
    ]

    assert store.insert_snapshots(job.id, t0 + timedelta(minutes=10), routes) == 2
    assert store.insert_snapshots(job.id, t0, routes[:1]) == 1
    assert store.insert_snapshots(job.id, t0, []) == 0

    snapshots = store.list_snapshots(job.id)
    assert [(s.collected_at, s.route_index) for s in snapshots] == [
        (t0, 0),
        (t0 + timedelta(minutes=10), 0),
        (t0 + timedelta(minutes=10), 1),
    ]
    assert snapshots[0].route_details["summary"] == "main"
    assert len(store.list_snapshots(job.id, route_index=0)) == 2
    assert store.count_snapshots(job.id) == 3


def test_delete_removes_snapshots(store):
    job = make_job(store)
    store.insert_snapshots(job.id, utcnow(), [Route(0, 600, 5000)])

    assert store.delete(job.id) is True
    assert store.get(job.id) is None
    assert store.count_snapshots(job.id) == 0
    assert store.delete(job.id) is False

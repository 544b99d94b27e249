"""HTTP API 集成测试

通过 create_app 注入 FakeDirections 与 FakeClock，定时器不会自行触发，
每次 start/resume 只产生一次立即采集。
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from conftest import FakeClock, FakeDirections
from routewatch_backend.app import create_app
from routewatch_backend.config.settings import SchedulerConfig, Settings, StorageConfig
from routewatch_backend.directions.base import Route, RoutePreview

OWNER = {"X-User-Id": "alice"}


@pytest.fixture
def directions():
    return FakeDirections(
        routes=[
            Route(route_index=0, duration_seconds=930, distance_meters=12000, summary="A1"),
            Route(route_index=1, duration_seconds=1100, distance_meters=14000, summary="B2"),
        ]
    )


@pytest.fixture
def client(tmp_path, directions):
    settings = Settings(storage=StorageConfig(db_path=str(tmp_path / "api.db")))
    app = create_app(settings=settings, directions=directions, clock=FakeClock())
    with TestClient(app) as test_client:
        yield test_client


def _create(client, **overrides):
    payload = {"start_location": "A", "end_location": "B", "cycle_minutes": 5}
    payload.update(overrides)
    response = client.post("/api/v1/jobs", json=payload, headers=OWNER)
    assert response.status_code == 201, response.text
    return response.json()


def test_create_and_list_jobs(client):
    job = _create(client, name="  Commute  ", start_name="")

    assert job["status"] == "pending"
    assert job["cycle_seconds"] == 300
    assert job["name"] == "Commute"
    assert job["start_name"] is None
    assert job["navigation_type"] == "driving"

    listed = client.get("/api/v1/jobs", headers=OWNER).json()
    assert [item["id"] for item in listed] == [job["id"]]


def test_cycle_seconds_wins_over_minutes(client):
    job = _create(client, cycle_minutes=5, cycle_seconds=45)
    assert job["cycle_seconds"] == 45


def test_patch_without_interval_uses_configured_default(tmp_path):
    settings = Settings(
        scheduler=SchedulerConfig(default_cycle_minutes=15),
        storage=StorageConfig(db_path=str(tmp_path / "api.db")),
    )
    app = create_app(settings=settings, directions=FakeDirections(), clock=FakeClock())
    with TestClient(app) as client:
        created = client.post(
            "/api/v1/jobs",
            json={"start_location": "A", "end_location": "B", "cycle_seconds": 0},
            headers=OWNER,
        ).json()
        assert created["cycle_seconds"] == 900

        edited = client.patch(
            f"/api/v1/jobs/{created['id']}", json={"cycle_seconds": 0}, headers=OWNER
        )

        assert edited.status_code == 200
        assert edited.json()["cycle_seconds"] == 900



def test_jobs_are_scoped_to_owner(client):
    job = _create(client)
    other = {"X-User-Id": "bob"}

    assert client.get("/api/v1/jobs", headers=other).json() == []
    assert client.get(f"/api/v1/jobs/{job['id']}", headers=other).status_code == 404
    assert client.post(f"/api/v1/jobs/{job['id']}/start", headers=other).status_code == 404


def test_blank_location_is_rejected(client):
    response = client.post(
        "/api/v1/jobs", json={"start_location": "  ", "end_location": "B"}, headers=OWNER
    )
    assert response.status_code == 422


def test_start_collects_immediately(client):
    job = _create(client)

    started = client.post(f"/api/v1/jobs/{job['id']}/start", headers=OWNER)

    assert started.status_code == 200
    assert started.json()["status"] == "running"
    assert started.json()["start_time"] is not None

    snapshots = client.get(f"/api/v1/jobs/{job['id']}/snapshots", headers=OWNER).json()
    assert [s["route_index"] for s in snapshots] == [0, 1]
    assert snapshots[0]["route_details"]["summary"] == "A1"

    status = client.get("/status").json()
    assert status["active_job_ids"] == [job["id"]]


def test_running_job_rejects_schedule_edits(client):
    job = _create(client)
    client.post(f"/api/v1/jobs/{job['id']}/start", headers=OWNER)

    conflict = client.patch(
        f"/api/v1/jobs/{job['id']}", json={"cycle_seconds": 60}, headers=OWNER
    )
    assert conflict.status_code == 409
    assert "cycle_seconds" in conflict.json()["detail"]

    renamed = client.patch(
        f"/api/v1/jobs/{job['id']}",
        json={"name": "Morning", "start_location": "A"},
        headers=OWNER,
    )
    assert renamed.status_code == 200
    assert renamed.json()["name"] == "Morning"

    paused = client.post(f"/api/v1/jobs/{job['id']}/pause", headers=OWNER)
    assert paused.json()["status"] == "paused"

    edited = client.patch(
        f"/api/v1/jobs/{job['id']}", json={"cycle_seconds": 60}, headers=OWNER
    )
    assert edited.status_code == 200
    assert edited.json()["cycle_seconds"] == 60


def test_pause_resume_stop(client, directions):
    job = _create(client)
    client.post(f"/api/v1/jobs/{job['id']}/start", headers=OWNER)
    client.post(f"/api/v1/jobs/{job['id']}/pause", headers=OWNER)
    assert client.get("/status").json()["active_job_ids"] == []

    resumed = client.post(f"/api/v1/jobs/{job['id']}/resume", headers=OWNER)
    assert resumed.json()["status"] == "running"
    assert directions.calls == 2

    stopped = client.post(f"/api/v1/jobs/{job['id']}/stop", headers=OWNER)
    assert stopped.json()["status"] == "completed"

    again = client.post(f"/api/v1/jobs/{job['id']}/resume", headers=OWNER)
    assert again.json()["status"] == "completed"
    assert directions.calls == 2


def test_export_csv_contains_primary_route_only(client):
    job = _create(client)
    client.post(f"/api/v1/jobs/{job['id']}/start", headers=OWNER)

    response = client.get(f"/api/v1/jobs/{job['id']}/export?format=csv", headers=OWNER)

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    lines = response.text.strip().splitlines()
    assert lines[0] == "collected_at,duration_seconds,distance_meters,duration_minutes"
    assert len(lines) == 2
    assert lines[1].split(",")[1:] == ["930", "12000", "16"]


def test_export_json(client):
    job = _create(client)
    client.post(f"/api/v1/jobs/{job['id']}/start", headers=OWNER)

    exported = client.get(f"/api/v1/jobs/{job['id']}/export", headers=OWNER).json()

    assert exported["job"]["id"] == job["id"]
    assert len(exported["snapshots"]) == 2


def test_export_rejects_unknown_format(client):
    job = _create(client)
    response = client.get(f"/api/v1/jobs/{job['id']}/export?format=xml", headers=OWNER)
    assert response.status_code == 422


def test_delete_job(client):
    job = _create(client)
    client.post(f"/api/v1/jobs/{job['id']}/start", headers=OWNER)

    deleted = client.delete(f"/api/v1/jobs/{job['id']}", headers=OWNER)

    assert deleted.json() == {"ok": True}
    assert client.get(f"/api/v1/jobs/{job['id']}", headers=OWNER).status_code == 404
    assert client.get("/status").json()["active_job_ids"] == []


def test_start_without_api_key_returns_503(tmp_path):
    settings = Settings(storage=StorageConfig(db_path=str(tmp_path / "api.db")))
    app = create_app(
        settings=settings, directions=FakeDirections(configured=False), clock=FakeClock()
    )
    with TestClient(app) as client:
        job = _create(client)

        response = client.post(f"/api/v1/jobs/{job['id']}/start", headers=OWNER)

        assert response.status_code == 503
        assert client.get(f"/api/v1/jobs/{job['id']}", headers=OWNER).json()["status"] == "pending"
        assert client.get("/api/v1/route-preview?origin=A&destination=B").status_code == 503


def test_route_preview(client, directions):
    assert client.get("/api/v1/route-preview?origin=A&destination=B").status_code == 404

    directions.preview = RoutePreview(
        points=[(38.5, -120.2), (40.7, -120.95)],
        start=(38.5, -120.2),
        end=(40.7, -120.95),
        duration_seconds=600,
    )
    response = client.get(
        "/api/v1/route-preview?origin=A&destination=B&mode=walking&avoid_tolls=true"
    )

    assert response.status_code == 200
    body = response.json()
    assert body["points"] == [[38.5, -120.2], [40.7, -120.95]]
    assert body["end"] == [40.7, -120.95]
    assert directions.last_options.mode.value == "walking"


def test_reverse_geocode(client, directions):
    directions.address = "1 Main St"
    response = client.get("/api/v1/reverse-geocode?lat=1.5&lng=2.5")
    assert response.json() == {"address": "1 Main St"}

    assert client.get("/api/v1/reverse-geocode?lat=100&lng=0").status_code == 422

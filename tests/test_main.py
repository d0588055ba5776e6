"""Tests for the HTTP presentation layer."""

import pytest
from fastapi.testclient import TestClient

import main
from main import app


@pytest.fixture()
def client():
    """Test client fixture (lifespan not started: no serial port, no ticker)."""
    return TestClient(app)


@pytest.fixture(autouse=True)
def fresh_processor():
    main.cadence_processor.reset(reset_gravity=True)
    yield
    main.cadence_processor.reset(reset_gravity=True)


@pytest.fixture()
def clock(monkeypatch):
    """Controllable monotonic clock for request handlers."""
    now = {"ms": 10000.0}
    monkeypatch.setattr(main, "monotonic_ms", lambda: now["ms"])
    return now


def test_root(client):
    response = client.get("/")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "running"
    assert data["name"] == "Cadence Tracker API"
    assert "serial_connected" in data


def test_cadence_uninitialized(client):
    response = client.get("/api/cadence")
    assert response.status_code == 200
    data = response.json()
    assert data["rate"] is None
    assert data["state"] == "uninitialized"


def test_simulated_steps_and_tick(client, clock):
    response = client.post("/api/steps/simulate")
    assert response.json() == {"accepted": True, "event_count": 1}

    clock["ms"] += 100
    response = client.post("/api/steps/simulate")
    assert response.json() == {"accepted": False, "event_count": 1}

    clock["ms"] += 900
    assert client.post("/api/steps/simulate").json()["accepted"] is True

    main.cadence_processor.on_tick(clock["ms"])
    data = client.get("/api/cadence").json()
    assert data["rate"] == pytest.approx(24.0)
    assert data["state"] == "walking"
    assert data["label"] == "Walking"


def test_history(client):
    data = client.get("/api/history").json()
    assert data["capacity"] == 60
    assert data["values"] == [None] * 60

    main.cadence_processor.on_tick(0.0)
    data = client.get("/api/history").json()
    assert len(data["values"]) == 60
    assert data["values"][-1] == 0.0


def test_bands(client):
    data = client.get("/api/bands").json()
    assert [b["state"] for b in data] == ["stationary", "walking", "brisk_walking"]
    assert data[-1]["upper_bound"] is None


def test_ingest_samples(client, clock):
    payload = {"samples": [
        {"x": 0.0, "y": 0.0, "z": 9.81},
        {"x": 0.0, "y": 0.0},
        {"x": 0.1, "y": 0.2, "z": 9.7},
    ]}
    response = client.post("/api/samples", json=payload)
    assert response.status_code == 200
    data = response.json()
    assert data["accepted"] == 2
    assert data["dropped"] == 1
    assert main.cadence_processor.dropped_samples == 1


def test_ingest_rejects_bad_body(client):
    response = client.post("/api/samples", json={"samples": [{"x": "fast"}]})
    assert response.status_code == 422


def test_reset(client, clock):
    client.post("/api/samples", json={"samples": [{"x": 0.0, "y": 0.0, "z": 9.81}]})
    client.post("/api/steps/simulate")
    main.cadence_processor.on_tick(clock["ms"])

    response = client.post("/api/reset")
    assert response.status_code == 200
    assert client.get("/api/cadence").json()["state"] == "uninitialized"
    assert client.get("/api/history").json()["values"] == [None] * 60
    assert main.cadence_processor.gravity_filter.gravity != [0.0, 0.0, 0.0]

    client.post("/api/reset", params={"reset_gravity": True})
    assert main.cadence_processor.gravity_filter.gravity == [0.0, 0.0, 0.0]


def test_sensor_status_without_reader(client, monkeypatch):
    monkeypatch.setattr(main, "serial_reader", None)
    data = client.get("/api/sensor/status").json()
    assert data["connected"] is False


AT_REST = {"x": 0.0, "y": 0.0, "z": 9.81}
BUMP = {"x": 0.0, "y": 0.0, "z": 12.81}


def walking_batch(bumps=(5, 20, 35), count=48):
    """~50 Hz batch with a 3 m/s² vertical bump every 300 ms."""
    return [dict(BUMP) if i in bumps else dict(AT_REST) for i in range(count)]


def settle(client, clock):
    """Converge the gravity estimate, then clear the startup transient."""
    client.post("/api/samples", json={"samples": [AT_REST] * 100, "interval_ms": 20})
    client.post("/api/reset")
    clock["ms"] += 2000


def test_sample_times_from_interval():
    batch = main.SampleBatch(samples=[AT_REST] * 3, interval_ms=20)
    assert main.sample_times(batch, 1000.0) == [960.0, 980.0, 1000.0]


def test_sample_times_from_sender_timestamps():
    samples = [dict(AT_REST, timestamp_ms=t) for t in (5000.0, 5015.0, 5040.0)]
    batch = main.SampleBatch(samples=samples, interval_ms=99)
    assert main.sample_times(batch, 1000.0) == [960.0, 975.0, 1000.0]


def test_sample_times_never_run_backwards():
    samples = [dict(AT_REST, timestamp_ms=t) for t in (100.0, 50.0, 200.0)]
    batch = main.SampleBatch(samples=samples)
    assert main.sample_times(batch, 1000.0) == [900.0, 900.0, 1000.0]


def test_sample_times_default_to_arrival():
    batch = main.SampleBatch(samples=[AT_REST] * 2)
    assert main.sample_times(batch, 1000.0) == [1000.0, 1000.0]


def test_batch_interval_rejects_non_positive(client):
    response = client.post("/api/samples", json={"samples": [AT_REST], "interval_ms": 0})
    assert response.status_code == 422


def test_batch_with_interval_detects_every_step(client, clock):
    settle(client, clock)

    response = client.post("/api/samples", json={"samples": walking_batch(), "interval_ms": 20})
    assert response.json() == {"accepted": 48, "dropped": 0, "steps_detected": 3}
    assert len(main.cadence_processor.rate_estimator) == 3


def test_batch_with_sender_timestamps_detects_every_step(client, clock):
    settle(client, clock)

    samples = walking_batch()
    for i, sample in enumerate(samples):
        sample["timestamp_ms"] = 123456.0 + i * 20
    response = client.post("/api/samples", json={"samples": samples})
    assert response.json()["steps_detected"] == 3


def test_stats(client, clock):
    client.post("/api/samples", json={"samples": [AT_REST, {"x": 1.0}]})
    client.post("/api/steps/simulate")

    response = client.get("/api/stats")
    assert response.status_code == 200
    assert response.json() == {
        "total_samples": 1,
        "dropped_samples": 1,
        "total_steps": 1,
        "steps_in_window": 1,
    }

from datetime import datetime, timedelta, timezone

from hydro.errors import StoreError

VALID = {"temperature": 23.1, "ph": 5.9, "ec": 1.6, "waterLevel": 72}


def _iso(dt: datetime) -> str:
    return dt.isoformat()


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"
    # tests run in simulator mode
    assert r.json()["mode"] == "sim"


def test_latest_on_empty_store_returns_fallback(client):
    r = client.get("/api/sensors/latest")
    assert r.status_code == 200
    body = r.json()
    assert body["temperature"] == 24.5
    assert body["ph"] == 6.2
    assert body["ec"] == 1.8
    assert body["waterLevel"] == 85
    assert "timestamp" in body
    assert "id" not in body
    assert r.headers["X-Reading-Fallback"] == "true"


def test_ingest_then_latest_round_trip(client):
    r = client.post("/api/sensors", json=VALID)
    assert r.status_code == 201
    stored = r.json()
    for key, value in VALID.items():
        assert stored[key] == value
    assert stored["id"] >= 1
    assert stored["timestamp"]

    latest = client.get("/api/sensors/latest")
    assert latest.status_code == 200
    assert latest.headers["X-Reading-Fallback"] == "false"
    assert latest.json() == stored


def test_ingest_keeps_supplied_timestamp(client):
    ts = datetime(2026, 10, 1, 12, 30, tzinfo=timezone.utc)
    r = client.post("/api/sensors", json={**VALID, "timestamp": _iso(ts)})
    assert r.status_code == 201
    assert datetime.fromisoformat(r.json()["timestamp"].replace("Z", "+00:00")) == ts


def test_ingest_rejects_water_level_out_of_range(client):
    r = client.post("/api/sensors", json={"temperature": 1, "ph": 2, "ec": 3, "waterLevel": 150})
    assert r.status_code == 400
    assert "waterLevel" in r.json()["error"]

    # nothing was stored
    assert client.get("/api/sensors/latest").headers["X-Reading-Fallback"] == "true"


def test_ingest_reports_first_missing_field(client):
    r = client.post("/api/sensors", json={"temperature": 20, "ec": 1.1, "waterLevel": 50})
    assert r.status_code == 400
    assert r.json()["error"].startswith("ph")


def test_ingest_rejects_non_numeric_values(client):
    r = client.post("/api/sensors", json={**VALID, "temperature": "warm"})
    assert r.status_code == 400
    assert "temperature" in r.json()["error"]

    r = client.post("/api/sensors", json={**VALID, "ec": True})
    assert r.status_code == 400
    assert "ec" in r.json()["error"]


def test_ingest_rejects_non_object_and_malformed_bodies(client):
    r = client.post("/api/sensors", json=[1, 2, 3])
    assert r.status_code == 400
    assert "error" in r.json()

    r = client.post(
        "/api/sensors", content=b"{not json", headers={"Content-Type": "application/json"}
    )
    assert r.status_code == 400
    assert "error" in r.json()


def test_water_level_bounds_are_inclusive(client):
    assert client.post("/api/sensors", json={**VALID, "waterLevel": 0}).status_code == 201
    assert client.post("/api/sensors", json={**VALID, "waterLevel": 100}).status_code == 201
    assert client.post("/api/sensors", json={**VALID, "waterLevel": -0.1}).status_code == 400


def test_history_window_and_order(client):
    now = datetime.now(timezone.utc)
    # inserted out of order on purpose
    for age in (timedelta(minutes=30), timedelta(hours=30), timedelta(hours=2)):
        r = client.post("/api/sensors", json={**VALID, "timestamp": _iso(now - age)})
        assert r.status_code == 201

    def _count(params):
        r = client.get("/api/sensors/history", params=params)
        assert r.status_code == 200
        stamps = [row["timestamp"] for row in r.json()]
        parsed = [datetime.fromisoformat(s.replace("Z", "+00:00")) for s in stamps]
        assert parsed == sorted(parsed)
        return len(parsed)

    assert _count({"hours": 1}) == 1
    assert _count({"hours": 3}) == 2
    assert _count({"hours": 48}) == 3
    # default window is 24h
    assert _count({}) == 2


def test_history_invalid_hours_fall_back_to_default(client):
    now = datetime.now(timezone.utc)
    client.post("/api/sensors", json={**VALID, "timestamp": _iso(now - timedelta(hours=2))})
    client.post("/api/sensors", json={**VALID, "timestamp": _iso(now - timedelta(hours=30))})

    for value in ("0", "-5", "abc", ""):
        r = client.get("/api/sensors/history", params={"hours": value})
        assert r.status_code == 200
        assert len(r.json()) == 1, value


def test_control_relay_response_and_actuator(client, actuator):
    r = client.post("/api/controls/pump", json={"value": True})
    assert r.status_code == 200
    assert r.json() == {"success": True, "action": "pump", "value": True}
    assert actuator.commands == [("pump", True)]


def test_control_accepts_any_action_and_numeric_value(client, actuator):
    r = client.post("/api/controls/dose", json={"value": 2.5})
    assert r.status_code == 200
    assert r.json()["value"] == 2.5

    r = client.post("/api/controls/fan-speed", json={"value": 3})
    assert r.json() == {"success": True, "action": "fan-speed", "value": 3}
    assert actuator.commands[-1] == ("fan-speed", 3)


def test_control_requires_value(client, actuator):
    r = client.post("/api/controls/pump", json={})
    assert r.status_code == 400
    assert "value" in r.json()["error"]

    r = client.post("/api/controls/pump", json={"value": None})
    assert r.status_code == 400
    assert actuator.commands == []


def test_store_failure_returns_500(client, monkeypatch):
    def _broken():
        raise StoreError("disk I/O error")

    monkeypatch.setattr("hydro.service.fetch_latest_reading", _broken)
    r = client.get("/api/sensors/latest")
    assert r.status_code == 500
    assert r.json() == {"error": "disk I/O error"}

    monkeypatch.setattr("hydro.service.fetch_readings_since", lambda since: _broken())
    r = client.get("/api/sensors/history")
    assert r.status_code == 500
    assert "error" in r.json()

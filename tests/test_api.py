"""HTTP API tests against an in-memory monitor."""

import pytest
from fastapi.testclient import TestClient

from ncc_monitor.config import settings
from ncc_monitor.main import app

from tests.conftest import hit

OWNER = {"X-Owner-Id": "1"}
OTHER = {"X-Owner-Id": "2"}


@pytest.fixture
def client(monitor, monkeypatch):
    monkeypatch.setattr(settings, "auto_scan_enabled", False)
    app.state.monitor = monitor
    with TestClient(app) as test_client:
        yield test_client
    del app.state.monitor


def _create(client, name="Router", serial_number="ccah21lp1234t5", headers=OWNER):
    response = client.post(
        "/api/serials", json={"name": name, "serial_number": serial_number}, headers=headers
    )
    assert response.status_code == 201
    return response.json()


def test_health(client):
    assert client.get("/health").json() == {"status": "healthy"}


def test_metrics_exposed(client):
    response = client.get("/metrics")
    assert response.status_code == 200
    assert "ncc_monitor_info" in response.text


def test_owner_header_required(client):
    assert client.get("/api/serials").status_code == 422
    assert client.get("/api/serials", headers={"X-Owner-Id": "0"}).status_code == 400


def test_serial_lifecycle(client):
    created = _create(client)
    assert created["serial_number"] == "CCAH21LP1234T5"
    assert created["is_active"] is True

    listed = client.get("/api/serials", headers=OWNER).json()
    assert [s["id"] for s in listed] == [created["id"]]
    assert client.get("/api/serials", headers=OTHER).json() == []

    path = f"/api/serials/{created['id']}"
    assert client.get(path, headers=OTHER).status_code == 404

    patched = client.patch(path, json={"is_active": False}, headers=OWNER)
    assert patched.status_code == 200
    assert patched.json()["is_active"] is False

    assert client.delete(path, headers=OWNER).status_code == 204
    assert client.get(path, headers=OWNER).status_code == 404


def test_invalid_serial_rejected(client):
    response = client.post(
        "/api/serials", json={"name": "Router", "serial_number": "   "}, headers=OWNER
    )
    assert response.status_code == 422


def test_scan_and_review(client, search_client, notifier):
    search_client.marketplace = [hit("https://shopee.tw/x-i.1.2", "X")]
    search_client.general = [hit("https://other.com/y", "Y")]
    serial = _create(client)

    response = client.post(
        f"/api/scans/serials/{serial['id']}", json={"search_type": "all"}, headers=OWNER
    )
    assert response.status_code == 200
    body = response.json()
    assert body["new_detections"] == 2
    assert body["marketplace_detections"] == 1
    assert len(notifier.sent) == 1

    marketplace = client.get("/api/detections?filter=marketplace", headers=OWNER).json()
    assert len(marketplace) == 1
    assert marketplace[0]["shop_id"] == "1"
    assert marketplace[0]["product_id"] == "2"

    general = client.get("/api/detections?filter=general", headers=OWNER).json()
    assert [d["source_url"] for d in general] == ["https://other.com/y"]

    assert client.get("/api/detections/new-count", headers=OWNER).json() == {"count": 2}

    detection_id = marketplace[0]["id"]
    response = client.patch(
        f"/api/detections/{detection_id}", json={"status": "processed"}, headers=OWNER
    )
    assert response.status_code == 200
    assert client.get("/api/detections/new-count", headers=OWNER).json() == {"count": 1}

    assert (
        client.patch(
            f"/api/detections/{detection_id}", json={"status": "ignored"}, headers=OTHER
        ).status_code
        == 404
    )

    history = client.get(f"/api/serials/{serial['id']}/scans", headers=OWNER).json()
    assert len(history) == 1
    assert history[0]["scan_type"] == "manual"

    stats = client.get("/api/dashboard/stats", headers=OWNER).json()
    assert stats["total_serials"] == 1
    assert stats["total_detections"] == 2
    assert stats["new_marketplace_detections"] == 0


def test_scan_search_unavailable(client, search_client):
    serial = _create(client, serial_number="DOWN1")
    search_client.fail_for = {"DOWN1"}

    response = client.post(f"/api/scans/serials/{serial['id']}", headers=OWNER)
    assert response.status_code == 503


def test_scan_unknown_serial(client):
    assert client.post("/api/scans/serials/999", headers=OWNER).status_code == 404


def test_scan_all(client, search_client):
    search_client.general = [hit("https://other.com/y")]
    first = _create(client, name="A", serial_number="AAA")
    second = _create(client, name="B", serial_number="BBB")
    search_client.fail_for = {"BBB"}

    response = client.post("/api/scans/all", json={"search_type": "general"}, headers=OWNER)
    assert response.status_code == 200
    body = response.json()
    assert body["scanned_count"] == 1
    assert body["total_new"] == 1
    outcomes = {r["serial_id"]: r for r in body["results"]}
    assert outcomes[first["id"]]["error"] is None
    assert outcomes[second["id"]]["error"]


def test_detection_list_names_the_serial(client, search_client):
    search_client.general = [hit("https://other.com/y")]
    serial = _create(client)
    client.post(f"/api/scans/serials/{serial['id']}", json={"search_type": "general"}, headers=OWNER)

    detections = client.get("/api/detections", headers=OWNER).json()
    assert detections[0]["serial_name"] == "Router"
    assert detections[0]["serial_number"] == "CCAH21LP1234T5"


@pytest.mark.parametrize("limit", [0, -1, 101])
def test_scan_history_limit_validated(client, limit):
    serial = _create(client)
    response = client.get(f"/api/serials/{serial['id']}/scans?limit={limit}", headers=OWNER)
    assert response.status_code == 422


def test_scan_history_limit(client):
    serial = _create(client)
    for _ in range(2):
        client.post(f"/api/scans/serials/{serial['id']}", headers=OWNER)

    history = client.get(f"/api/serials/{serial['id']}/scans?limit=1", headers=OWNER).json()
    assert len(history) == 1
    assert len(client.get(f"/api/serials/{serial['id']}/scans", headers=OWNER).json()) == 2

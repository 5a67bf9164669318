import pytest

pytest.importorskip("fastapi")
from fastapi.testclient import TestClient

from app.main import app


class _FakeProvisionerService:
    def __init__(self) -> None:
        self.calls: list[tuple[str, dict]] = []

    def status(self):
        return {
            "ok": True,
            "service": {"running": False, "no_delay_disabled": False},
            "labels": [],
            "runtime": {"pending_launch_count": 2},
        }

    def start(self):
        return {"ok": True, "running": True, "already_running": False}

    def stop(self):
        return {"ok": True, "running": False}

    def run_round(self, *, label=None):
        self.calls.append(("run_round", {"label": label}))
        return {"ok": True, "rounds": [{"label": label or "linux", "decision": "complete"}], "failures": []}

    def update_load(self, **kwargs):
        self.calls.append(("update_load", kwargs))
        return {"ok": True, "label": kwargs["label"]}

    def list_launches(self, *, label=None, pending_only=False):
        self.calls.append(("list_launches", {"label": label, "pending_only": pending_only}))
        return {"ok": True, "launches": []}

    def complete_launch(self, *, launch_id):
        return {"ok": True, "launch": {"launch_id": launch_id, "status": "live"}}

    def fail_launch(self, *, launch_id):
        return {"ok": True, "launch": {"launch_id": launch_id, "status": "failed"}}

    def release_launch(self, *, launch_id):
        self.calls.append(("release_launch", {"launch_id": launch_id}))
        return {"ok": True, "launch": {"launch_id": launch_id, "status": "released"}}


@pytest.fixture()
def fake_service(monkeypatch):
    fake = _FakeProvisionerService()
    monkeypatch.setattr("app.main.get_provisioner_service", lambda: fake)
    return fake


@pytest.fixture()
def client(fake_service):
    with TestClient(app) as test_client:
        yield test_client


def test_health(client):
    res = client.get("/health")
    assert res.status_code == 200
    assert res.json() == {
        "ok": True,
        "provisioner": {"running": False, "no_delay_disabled": False, "pending_launch_count": 2},
    }


def test_provisioner_lifecycle_routes(client):
    assert client.get("/api/provisioner/status").json()["service"]["running"] is False
    assert client.post("/api/provisioner/start").json()["running"] is True
    assert client.post("/api/provisioner/stop").json()["running"] is False


def test_round_route_passes_label(client, fake_service):
    res = client.post("/api/provisioner/round", json={"label": "linux"})
    assert res.status_code == 200
    assert res.json()["rounds"][0]["decision"] == "complete"
    assert fake_service.calls[-1] == ("run_round", {"label": "linux"})

    client.post("/api/provisioner/round", json={})
    assert fake_service.calls[-1] == ("run_round", {"label": None})


def test_load_route_validates_payload(client, fake_service):
    ok = client.post("/api/load", json={"label": "linux", "live_executors": 1, "queue_length": 4})
    assert ok.status_code == 200
    assert fake_service.calls[-1] == (
        "update_load",
        {"label": "linux", "live_executors": 1, "connecting_executors": 0, "queue_length": 4},
    )

    bad = client.post("/api/load", json={"label": "linux", "queue_length": -1})
    assert bad.status_code == 422
    missing = client.post("/api/load", json={"label": ""})
    assert missing.status_code == 422


def test_launch_routes(client, fake_service):
    listed = client.get("/api/launches", params={"label": "linux", "pending_only": "true"})
    assert listed.status_code == 200
    assert fake_service.calls[-1] == ("list_launches", {"label": "linux", "pending_only": True})

    assert client.post("/api/launches/launch_1/complete").json()["launch"]["status"] == "live"
    assert client.post("/api/launches/launch_2/fail").json()["launch"]["status"] == "failed"


def test_release_route_frees_live_launch(client, fake_service):
    res = client.post("/api/launches/launch_3/release")
    assert res.status_code == 200
    assert res.json()["launch"]["status"] == "released"
    assert fake_service.calls[-1] == ("release_launch", {"launch_id": "launch_3"})

import pytest
from fastapi.testclient import TestClient

from dip_surfer.api import create_app
from dip_surfer.config import RuntimeConfig
from dip_surfer.runtime import SurferRuntime
from dip_surfer.state_store import JsonStateStore

from test_runtime import ScriptedVenue


@pytest.fixture
def runtime(tmp_path, make_engine):
    cfg = RuntimeConfig(data_dir=str(tmp_path), admin_token="s3cret")
    rt = SurferRuntime(make_engine(), ScriptedVenue(), JsonStateStore(tmp_path, "SOL"), cfg)
    rt.initialise()
    return rt


@pytest.fixture
def client(runtime):
    return TestClient(create_app(runtime))


def test_health(client):
    for path in ("/", "/health"):
        body = client.get(path).json()
        assert body["status"] == "ok"
        assert body["token"] == "SOL"
        assert body["warmup_complete"] is False
        assert body["position"] is None


def test_trades_and_metrics(client, runtime):
    runtime.last_price = 150.0
    runtime.execute_buy(150.0)
    runtime.last_price = 160.0
    runtime.execute_sell("tp1")

    trades = client.get("/trades").json()
    assert trades["count"] == 1
    assert trades["trades"][0]["reason"] == "tp1"

    metrics = client.get("/metrics").json()
    assert metrics["bot"] == "SOL Surfer"
    assert metrics["total_trades"] == 1
    assert metrics["position"] == "none"


def test_admin_requires_token(client):
    assert client.post("/admin/save").status_code == 403
    assert client.post("/admin/save", headers={"x-admin-token": "wrong"}).status_code == 403
    assert client.post("/admin/save", headers={"x-admin-token": "s3cret"}).json() == {"saved": True}
    assert client.post("/admin/save", params={"token": "s3cret"}).status_code == 200


def test_admin_close(client, runtime):
    resp = client.post("/admin/close", params={"token": "s3cret"})
    assert resp.json() == {"message": "no position to close"}

    runtime.last_price = 150.0
    runtime.execute_buy(150.0)
    body = client.post("/admin/close", params={"token": "s3cret"}).json()
    assert body["message"] == "position closed"
    assert body["position"] is None
    assert runtime.store.load_trades()[0].reason == "timeout"

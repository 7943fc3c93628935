import asyncio
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from inventoryd.api import create_app
from inventoryd.config import DaemonConfig
from inventoryd.envelope import IntegrityEnvelope
from inventoryd.errors import StoreError

from tests.fakes import make_report


@pytest.fixture
def config():
    return DaemonConfig.model_validate({"refresh_rpm": 2, "report": {"refresh_interval_secs": 0}})


@pytest.fixture
def client(service, config):
    return TestClient(create_app(service, config, background=False))


def test_health_when_empty(client):
    r = client.get("/health")
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "ok"
    assert body["report_cached"] is False
    assert body["report_stale"] is True
    assert body["identity_loaded"] is False


def test_not_ready_until_report(client, service):
    assert client.get("/ready").status_code == 503
    asyncio.run(service.refresh())
    r = client.get("/ready")
    assert r.status_code == 200
    assert r.json()["checksum"] == service.cached_report().checksum


def test_report_empty_is_503(client):
    r = client.get("/api/v1/report")
    assert r.status_code == 503


def test_report_returns_envelope(client, service):
    envelope = asyncio.run(service.refresh())
    r = client.get("/api/v1/report")
    assert r.status_code == 200
    assert r.headers["X-Report-Stale"] == "false"
    body = r.json()
    assert body["checksum"] == envelope.checksum
    assert body["report"]["hostname"] == "testbox"
    assert IntegrityEnvelope.model_validate(body).verify()


def test_report_stale_header(client, service):
    old = make_report()
    envelope = IntegrityEnvelope.wrap(old, now=old.timestamp - timedelta(days=30))
    service._cache.replace(envelope)
    r = client.get("/api/v1/report")
    assert r.status_code == 200
    assert r.headers["X-Report-Stale"] == "true"


def test_manual_refresh(client, service):
    r = client.post("/api/v1/report/refresh")
    assert r.status_code == 200
    assert r.json()["checksum"] == service.cached_report().checksum
    assert service.store.exists()


def test_manual_refresh_rate_limited(client):
    assert client.post("/api/v1/report/refresh").status_code == 200
    assert client.post("/api/v1/report/refresh").status_code == 200
    r = client.post("/api/v1/report/refresh")
    assert r.status_code == 429
    assert int(r.headers["Retry-After"]) >= 1


def test_manual_refresh_error_is_verbatim(client, service, monkeypatch):
    def broken_write(envelope):
        raise StoreError("/srv/report.json", "failed to write report (read-only file system)")

    monkeypatch.setattr(service.store, "write", broken_write)
    r = client.post("/api/v1/report/refresh")
    assert r.status_code == 500
    assert r.json()["detail"] == "failed to write report (read-only file system): /srv/report.json"
    assert client.get("/api/v1/report").status_code == 503


def test_identity_404_when_not_loaded(client):
    assert client.get("/api/v1/identity").status_code == 404


def test_identity_is_redacted(client, service):
    service.load_identity()
    r = client.get("/api/v1/identity")
    assert r.status_code == 200
    body = r.json()
    assert body["hostname"] == "testbox"
    assert "age_keys" not in body["secrets"]
    assert "age_key_file" not in body["secrets"]
    assert "attic" not in body["nix"]
    assert "age1qqqq" not in r.text


def test_identity_reload(client, service, overlay_dir):
    service.load_identity()
    (overlay_dir / "50-env.yaml").write_text("fleet: {environment: prod}\n", encoding="utf-8")
    r = client.post("/api/v1/identity/reload")
    assert r.status_code == 200
    assert r.json() == {"status": "reloaded", "hostname": "testbox"}
    assert client.get("/api/v1/identity").json()["fleet"]["environment"] == "prod"


def test_identity_reload_error_keeps_previous(client, service, identity_path):
    service.load_identity()
    identity_path.write_text("version: '1'\nprofile: x\nhostname: h\nbogus: 1\n", encoding="utf-8")
    r = client.post("/api/v1/identity/reload")
    assert r.status_code == 500
    assert "bogus" in r.json()["detail"]
    assert client.get("/api/v1/identity").json()["hostname"] == "testbox"


def test_request_id_echoed(client):
    r = client.get("/health", headers={"X-Request-ID": "req-123"})
    assert r.headers["X-Request-ID"] == "req-123"
    generated = client.get("/health").headers["X-Request-ID"]
    assert len(generated) == 36


def test_lifespan_loads_cache_and_identity(service, config):
    first = asyncio.run(service.refresh())
    app = create_app(type(service)(
        collector=service.collector,
        store=type(service.store)(service.store.path),
        loader=service.loader,
        identity_path=service.identity_path,
        private_fields=service.private_fields,
    ), config)

    with TestClient(app) as client:
        assert client.get("/ready").status_code == 200
        assert client.get("/api/v1/identity").status_code == 200
        body = client.get("/api/v1/report").json()
        assert body["report"]["hostname"] == first.report.hostname

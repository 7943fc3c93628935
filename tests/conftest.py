import shutil
from pathlib import Path

import pytest

from inventoryd.collector import Collector
from inventoryd.identity import IdentityLoader
from inventoryd.service import NodeService
from inventoryd.store import PersistentStore

from tests.fakes import FakeProbes

FIXTURES = Path(__file__).parent / "fixtures"


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch, tmp_path):
    """Keep the real user config and INVENTORYD_* variables out of every test."""
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
    for var in ("INVENTORYD_CONFIG", "INVENTORYD_HTTP_ADDR", "INVENTORYD_LOG_LEVEL",
                "INVENTORYD_REPORT_CACHE_FILE", "INVENTORYD_REPORT_MAX_AGE",
                "INVENTORYD_REFRESH_INTERVAL", "INVENTORYD_IDENTITY_PATH",
                "INVENTORYD_OVERLAY_DIRS", "INVENTORYD_DEBUG", "INVENTORYD_LOG_FILE"):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def identity_path(tmp_path):
    path = tmp_path / "node.yaml"
    shutil.copy(FIXTURES / "node.yaml", path)
    return path


@pytest.fixture
def overlay_dir(tmp_path):
    path = tmp_path / "identity.d"
    path.mkdir()
    return path


@pytest.fixture
def probes():
    return FakeProbes()


@pytest.fixture
def make_service(tmp_path, identity_path, overlay_dir):
    """Factory for a NodeService over fake probes and a temp report file."""
    def factory(probes=None, report_path=None, max_age_seconds=3600):
        return NodeService(
            collector=Collector(probes or FakeProbes()),
            store=PersistentStore(report_path or tmp_path / "state" / "report.json"),
            loader=IdentityLoader(overlay_dir),
            identity_path=identity_path,
            private_fields=["secrets.age_keys", "secrets.age_key_file", "nix.attic"],
            max_age_seconds=max_age_seconds,
        )
    return factory


@pytest.fixture
def service(make_service):
    return make_service()

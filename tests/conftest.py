"""Shared fixtures for Quiver Analytics tests."""
import pytest

from fakes import FakeClock, ManualTimerFactory, ScriptedTransport
from quiver_analytics.core.config import Settings


@pytest.fixture(autouse=True)
def isolate_environment(tmp_path, monkeypatch):
    """Keep real QUIVER_* variables and .env files out of the tests."""
    for name in ("QUIVER_AUTH_TOKEN", "QUIVER_ANALYTICS_AUTH_TOKEN", "QUIVER_CONSENT_REQUIRED"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def settings(tmp_path):
    return Settings(
        auth_token="test-token",
        config_file_path=tmp_path / "analytics.json",
        queue_file_path=tmp_path / "analytics_queue.json",
        auto_add_event_on_launch=False,
        auto_add_event_on_quit=False,
        debug_build=False,
        export_template=False,
    )


@pytest.fixture
def timers():
    return ManualTimerFactory()


@pytest.fixture
def transport():
    return ScriptedTransport()


@pytest.fixture
def clock():
    return FakeClock()

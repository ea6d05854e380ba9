# Ensure backend is at sys.path[0] when pytest runs (from repo root or from backend dir)
import sys
from pathlib import Path

_tests_dir = Path(__file__).resolve().parent
_backend = _tests_dir.parent
_str_backend = str(_backend)
if sys.path[0:1] != [_str_backend]:
    sys.path.insert(0, _str_backend)

from typing import Any, Dict, List, Optional

import httpx
import pytest
import pytest_asyncio

from core.config import Settings
from core.database import DatabaseManager
from dev.stub_server import create_stub_app
from ingestion.live_io import reset_metrics
from ingestion.rate_limiter import RouteRateLimiter
from ops.alerts import AlertSink
from ops.control import InMemoryControlChannel
from runner.services import build_services


class SleepRecorder:
    """Injected in place of asyncio.sleep; records requested delays, never waits."""

    def __init__(self) -> None:
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


class LimiterClock:
    """Manual clock for the rate limiter; its sleep advances time instead of waiting."""

    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.now += seconds


class RecordingAlertSink(AlertSink):
    def __init__(self) -> None:
        self.sent: List[Dict[str, Any]] = []

    async def send(self, title, message, error=None, context=None) -> None:
        self.sent.append({"title": title, "message": message, "error": error, "context": dict(context or {})})

    def titles(self) -> List[str]:
        return [a["title"] for a in self.sent]


@pytest.fixture(autouse=True)
def fresh_live_io_metrics():
    """Clients built without explicit metrics share the process-wide counters."""
    reset_metrics()
    yield
    reset_metrics()


@pytest_asyncio.fixture
async def db(tmp_path):
    """File-backed SQLite under tmp_path with every collector table."""
    manager = DatabaseManager(f"sqlite+aiosqlite:///{tmp_path / 'collector.db'}")
    await manager.init()
    await manager.create_all()
    yield manager
    await manager.dispose()


@pytest.fixture
def settings(tmp_path, monkeypatch) -> Settings:
    """Deterministic settings: one platform, explicit key, no seeds or league sampling, no admin key file."""
    monkeypatch.delenv("RIOT_API_KEY", raising=False)
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'collector.db'}",
        riot_api_key="RGAPI-test-0000",
        api_key_file=str(tmp_path / "admin" / "riot-apikey.json"),
        api_host_template="http://{host}.stub",
        platforms=["euw1"],
        primary_region="euw1",
        seed_players=[],
        league_exp_divisions=[],
        cycle_delay_seconds=5.0,
        control_dir=str(tmp_path / "cron"),
    )


@pytest.fixture
def sleeps() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def alert_sink() -> RecordingAlertSink:
    return RecordingAlertSink()


@pytest_asyncio.fixture
async def make_services(settings, db, sleeps, alert_sink):
    """Factory for collector services talking to the in-process stub over ASGITransport."""
    created = []

    def _make(app=None, *, settings_override: Optional[Settings] = None, control=None):
        app = app if app is not None else create_stub_app()
        clock = LimiterClock()
        services = build_services(
            settings_override or settings,
            db,
            control=control or InMemoryControlChannel(),
            alert_sink=alert_sink,
            transport=httpx.ASGITransport(app=app),
            limiter=RouteRateLimiter(clock=clock, sleep=clock.sleep),
            sleep=sleeps,
        )
        created.append(services)
        return services

    yield _make
    for services in created:
        await services.aclose()

"""
Pytest configuration and shared fixtures for Pomopilot tests.
"""

from datetime import datetime, timedelta

import pytest

from pomopilot.config import AIConfig, TimerBehaviorConfig
from pomopilot.core.ai_service import AITextService
from pomopilot.core.cycle_engine import CycleEngine
from pomopilot.core.database import DatabaseManager, InMemoryStore
from pomopilot.core.events import CycleEvents
from pomopilot.core.models import TimerSettings
from pomopilot.core.session_aggregator import SessionAggregator
from pomopilot.services.data_export import SessionExporter
from pomopilot.services.notifications import NotificationService


class FakeClock:
    """Controllable replacement for datetime.now"""

    def __init__(self, start: datetime = datetime(2026, 10, 18, 9, 0, 0)):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def ai_config():
    """Mock-mode AI config without simulated latency."""
    return AIConfig(openai_api_key=None, mock_delay_seconds=0)


@pytest.fixture
def behavior():
    return TimerBehaviorConfig(
        reminder_threshold_seconds=120,
        break_engagement_offset_seconds=30,
        break_engagement_delay_seconds=0,
        report_timeout_seconds=5,
        export_success_reset_seconds=0,
        export_delay_seconds=0,
    )


@pytest.fixture
def settings():
    return TimerSettings(
        work_minutes=25,
        short_break_minutes=5,
        long_break_minutes=15,
        cycles_before_long_break=4,
        delay_seconds=30,
    )


@pytest.fixture
def ai_service(ai_config):
    return AITextService(ai_config)


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def database(store):
    return DatabaseManager(store)


@pytest.fixture
def events():
    return CycleEvents()


@pytest.fixture
def notifier():
    return NotificationService()


@pytest.fixture
def exporter(tmp_path):
    return SessionExporter(tmp_path / "exports", target="file")


@pytest.fixture
def engine(settings, ai_service, notifier, events, behavior, clock):
    return CycleEngine(
        settings,
        ai_service,
        notifier=notifier,
        events=events,
        behavior=behavior,
        clock=clock,
    )


@pytest.fixture
def aggregator(database, ai_service, events, exporter, behavior, clock):
    return SessionAggregator(
        database,
        ai_service,
        events=events,
        exporter=exporter,
        behavior=behavior,
        missing_session_policy="raise",
        clock=clock,
    )


@pytest.fixture
def run_ticks(clock):
    """Advance the fake clock and tick the engine once per second."""

    def _run(engine, count: int) -> None:
        for _ in range(count):
            clock.advance(1)
            engine.tick()

    return _run

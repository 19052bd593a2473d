"""End-to-end runs of the engine and aggregator wired through domain events."""

import json

import pytest

from pomopilot.config import PomopilotConfig
from pomopilot.core.database import InMemoryStore
from pomopilot.core.models import GateMode, PhaseType, TimerSettings
from pomopilot.main import PomopilotApp, build_parser, handle_command


@pytest.mark.asyncio
async def test_full_chain_produces_one_session(engine, aggregator, run_ticks):
    engine.start()
    engine.submit_session_start_input("I'm working on the quarterly report. It's due Friday.")
    assert aggregator.current_session is not None

    for index in range(4):
        run_ticks(engine, 25 * 60)
        engine.submit_work_input(f"finished part {index + 1}")
        run_ticks(engine, 30)

        expected_break = PhaseType.LONG_BREAK if index == 3 else PhaseType.SHORT_BREAK
        assert engine.phase == expected_break
        assert engine.current_cycle == index + 1

        run_ticks(engine, engine.time_remaining)
        assert engine.phase == PhaseType.DELAY
        if index < 3:
            run_ticks(engine, 30)
            assert engine.phase == PhaseType.WORK

    await aggregator.drain_pending()

    assert engine.current_cycle == 1
    assert aggregator.current_session is None
    assert len(aggregator.sessions) == 1

    session = aggregator.sessions[0]
    assert session.is_completed
    assert [p.input for p in session.work_periods] == [f"finished part {i}" for i in range(1, 5)]
    assert all(p.task_description == "the quarterly report" for p in session.work_periods)
    assert session.total_work_duration == 4 * 25 * 60
    assert session.seed_narration.startswith("I'm working on the quarterly report")
    assert session.ai_report.startswith("Productivity Report: You completed 4 focused work periods")

    run_ticks(engine, 30)
    assert engine.phase == PhaseType.WORK
    assert engine.pending_gate == GateMode.TEXT


@pytest.mark.asyncio
async def test_break_feedback_reaches_session(engine, aggregator, run_ticks):
    engine.start()
    engine.skip_session_start()
    run_ticks(engine, 25 * 60)
    period = engine.submit_work_input("outline")
    run_ticks(engine, 30 + 30)
    await engine.drain_pending()

    engine.submit_break_feedback("Too many notifications")
    await engine.drain_pending()

    stored = aggregator.current_session.find_work_period(period.id)
    assert stored.break_feedback == "Too many notifications"
    assert stored.ai_response.startswith("Thanks for sharing that.")


@pytest.fixture
def app_config(monkeypatch, tmp_path):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.setenv("POMOPILOT_ENV", "production")
    monkeypatch.setenv("EXPORT_DIR", str(tmp_path / "exports"))
    cfg = PomopilotConfig()
    cfg.ai.mock_delay_seconds = 0
    return cfg


def test_app_wiring_and_settings_update(app_config):
    store = InMemoryStore()
    app = PomopilotApp(app_config, store=store)

    assert app.aggregator.missing_session_policy.value == "auto_create"
    assert not app.ai_service.enabled

    assert app.update_settings(TimerSettings(work_minutes=50))
    assert app.engine.time_remaining == 50 * 60
    assert PomopilotApp(app_config, store=store).settings.work_minutes == 50


@pytest.mark.asyncio
async def test_console_commands_drive_engine(app_config, capsys):
    app = PomopilotApp(app_config, store=InMemoryStore())

    assert await handle_command(app, "plan nothing yet")
    assert "⚠️" in capsys.readouterr().out

    app.engine.start()
    assert await handle_command(app, "plan Focus on the budget")
    assert app.engine.is_running
    assert app.engine.task_description == "the budget"

    assert await handle_command(app, "pause")
    assert not app.engine.is_running
    assert not await handle_command(app, "quit")


def test_cli_parser_commands():
    parser = build_parser()

    assert parser.parse_args(["list"]).command == "list"
    assert parser.parse_args(["export", "--format", "csv"]).format == "csv"


@pytest.mark.asyncio
async def test_stats_command_reports_components(app_config, capsys):
    app = PomopilotApp(app_config, store=InMemoryStore())
    app.engine.start()
    await handle_command(app, "skip")
    capsys.readouterr()

    assert await handle_command(app, "stats")
    stats = json.loads(capsys.readouterr().out)

    assert stats["engine"]["phase"] == "Work"
    assert stats["engine"]["is_running"] is True
    assert stats["sessions"]["sessions"] == 1
    assert stats["sessions"]["completed_sessions"] == 0
    assert stats["ai"]["provider"] == "mock"
    assert stats["database"]["keys"] == ["savedSessions"]

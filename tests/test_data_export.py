"""Tests for session document rendering and exporters."""

from datetime import datetime, timedelta

import pandas as pd
import pytest

from pomopilot.core.models import Session, WorkPeriod
from pomopilot.services.data_export import (
    ExportError, SessionExporter, export_to_csv, export_to_json, format_duration,
    render_session_document, synthesize_local_report
)


@pytest.fixture
def session():
    start = datetime(2026, 10, 18, 9, 0)
    session = Session.create(start)
    for index, minutes in enumerate((25, 40)):
        period = WorkPeriod.create(start + timedelta(hours=index), task_description="quarterly report")
        period.end_time = period.start_time + timedelta(minutes=minutes)
        period.input = f"step {index + 1}"
        session.work_periods.append(period)
    session.work_periods[0].break_feedback = "felt focused"
    session.work_periods[0].ai_response = "Keep it up"
    session.ai_report = "Solid session."
    return session


@pytest.mark.parametrize("seconds,expected", [
    (0, "0 minutes"),
    (25 * 60, "25 minutes"),
    (3600, "1h 0m"),
    (65 * 60 + 59, "1h 5m"),
])
def test_format_duration(seconds, expected):
    assert format_duration(seconds) == expected


def test_render_session_document(session):
    document = render_session_document(session)

    assert document.startswith("# POMOPILOT SESSION REPORT\n\n**Date:** Oct 18, 2026 at 09:00\n")
    assert "**Total Work Duration:** 1h 5m\n\n## Work Periods\n\n" in document
    assert "### Period 1 - 25 minutes\n\n" in document
    assert "**Accomplishments:**\nstep 1\n\n**Break Feedback:**\nfelt focused\n\n**AI Insights:**\nKeep it up\n\n" in document
    assert "### Period 2 - 40 minutes" in document
    assert document.count("**Break Feedback:**") == 1
    assert document.endswith("## Productivity Report\n\nSolid session.")


def test_report_section_omitted_without_report(session):
    session.ai_report = ""
    assert "## Productivity Report" not in render_session_document(session)


def test_local_report_summarizes_session(session):
    report = synthesize_local_report(session)

    assert report.startswith("Productivity Report: You completed 2 focused work periods totalling 1h 5m.")
    assert "period 2 (40 minutes)" in report
    assert "Main focus: quarterly report." in report


def test_csv_export_has_row_per_period(session, tmp_path):
    path = export_to_csv([session], tmp_path / "sessions.csv")

    frame = pd.read_csv(path)
    assert list(frame["period"]) == [1, 2]
    assert list(frame["duration_minutes"]) == [25.0, 40.0]
    assert frame.loc[0, "break_feedback"] == "felt focused"


def test_json_export_contains_sessions(session, tmp_path):
    path = export_to_json([session], tmp_path / "sessions.json")
    assert session.id in path.read_text(encoding="utf-8")


@pytest.mark.asyncio
async def test_file_exporter_writes_markdown(session, tmp_path):
    exporter = SessionExporter(tmp_path / "exports")

    location = await exporter.export_session(session)

    assert location.endswith(".md")
    with open(location, encoding="utf-8") as f:
        assert f.read() == render_session_document(session)


@pytest.mark.asyncio
async def test_mock_cloud_exporter_returns_document_link(session, tmp_path):
    exporter = SessionExporter(tmp_path, target="mock_cloud")

    link = await exporter.export_sessions([session, session])

    assert link.startswith("https://docs.google.com/document/d/")
    assert not any(tmp_path.iterdir())


@pytest.mark.asyncio
async def test_unknown_format_is_rejected(session, tmp_path):
    with pytest.raises(ExportError):
        await SessionExporter(tmp_path).export_session(session, fmt="pdf")

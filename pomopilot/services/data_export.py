# services/data_export.py

import json
import uuid
import asyncio
import logging
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Sequence

import pandas as pd

from pomopilot.core.models import Session

logger = logging.getLogger(__name__)

MOCK_DOCUMENT_URL = "https://docs.google.com/document/d/{document_id}"

CSV_COLUMNS = [
    "session_id", "session_date", "period", "start_time", "end_time",
    "duration_minutes", "task", "accomplishments", "break_feedback", "ai_insights"
]


class ExportError(Exception):
    """Ошибка экспорта сессий"""
    pass


def format_duration(seconds: float) -> str:
    total = int(seconds)
    hours = total // 3600
    minutes = (total % 3600) // 60
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes} minutes"


def render_session_document(session: Session) -> str:
    """Markdown-документ одной сессии"""
    report = "# POMOPILOT SESSION REPORT\n\n"
    report += f"**Date:** {session.formatted_date}\n"
    report += f"**Total Work Duration:** {format_duration(session.total_work_duration)}\n\n"

    if session.seed_narration:
        report += f"**Session Plan:**\n{session.seed_narration}\n\n"

    report += "## Work Periods\n\n"
    for index, period in enumerate(session.work_periods, start=1):
        report += f"### Period {index} - {format_duration(period.duration)}\n\n"
        if period.task_description:
            report += f"**Task:** {period.task_description}\n\n"
        report += f"**Accomplishments:**\n{period.input}\n\n"

        if period.break_feedback:
            report += f"**Break Feedback:**\n{period.break_feedback}\n\n"

        if period.ai_response:
            report += f"**AI Insights:**\n{period.ai_response}\n\n"

    if session.ai_report:
        report += "## Productivity Report\n\n"
        report += session.ai_report

    return report


def render_sessions_document(sessions: Sequence[Session]) -> str:
    return "\n\n---\n\n".join(render_session_document(session) for session in sessions)


def synthesize_local_report(session: Session) -> str:
    """Отчет без обращения к модели, по фактическим данным сессии"""
    periods = session.work_periods
    if not periods:
        return "Productivity Report: No work periods were completed in this session."

    count = len(periods)
    noun = "period" if count == 1 else "periods"
    lines = [
        f"Productivity Report: You completed {count} focused work {noun} "
        f"totalling {format_duration(session.total_work_duration)}."
    ]

    longest_index, longest = max(enumerate(periods, start=1), key=lambda item: item[1].duration)
    if count > 1:
        lines.append(f"Your longest stretch was period {longest_index} ({format_duration(longest.duration)}).")

    tasks = []
    for period in periods:
        if period.task_description and period.task_description not in tasks:
            tasks.append(period.task_description)
    if tasks:
        lines.append(f"Main focus: {', '.join(tasks)}.")

    noted = sum(1 for period in periods if period.input.strip())
    if noted < count:
        lines.append(f"Accomplishments were recorded for {noted} of {count} {noun}; "
                     "short notes after each period make patterns easier to spot.")

    with_feedback = sum(1 for period in periods if period.break_feedback)
    if with_feedback:
        lines.append(f"You reflected during {with_feedback} break(s); keep using breaks to reset priorities.")
    else:
        lines.append("Try a quick reflection during your next break to plan the following period.")

    return " ".join(lines)


def sessions_to_rows(sessions: Sequence[Session]) -> List[dict]:
    rows = []
    for session in sessions:
        for index, period in enumerate(session.work_periods, start=1):
            rows.append({
                "session_id": session.id,
                "session_date": session.start_time.date().isoformat(),
                "period": index,
                "start_time": period.start_time.isoformat(),
                "end_time": period.end_time.isoformat() if period.end_time else "",
                "duration_minutes": round(period.duration / 60, 2),
                "task": period.task_description,
                "accomplishments": period.input,
                "break_feedback": period.break_feedback,
                "ai_insights": period.ai_response
            })
    return rows


def export_to_json(sessions: Sequence[Session], filename: Path) -> Path:
    payload = {
        "export_info": {
            "format": "json",
            "exported_at": datetime.now().isoformat(),
            "sessions": len(sessions)
        },
        "sessions": [session.to_dict() for session in sessions]
    }
    with open(filename, "w", encoding="utf-8") as f:
        json.dump(payload, f, ensure_ascii=False, indent=2)
    return filename


def export_to_csv(sessions: Sequence[Session], filename: Path) -> Path:
    df = pd.DataFrame(sessions_to_rows(sessions), columns=CSV_COLUMNS)
    df.to_csv(filename, index=False, encoding="utf-8")
    return filename


def export_to_markdown(sessions: Sequence[Session], filename: Path) -> Path:
    with open(filename, "w", encoding="utf-8") as f:
        f.write(render_sessions_document(sessions))
    return filename


WRITERS = {
    "md": export_to_markdown,
    "json": export_to_json,
    "csv": export_to_csv,
}


class SessionExporter:
    """Доставка документа сессии: файл на диске или ссылка на облачный документ"""

    def __init__(self, export_dir: Path, target: str = "file", delay_seconds: float = 0.0):
        if target not in ("file", "mock_cloud"):
            raise ValueError(f"Unknown export target: {target}")
        self.export_dir = Path(export_dir)
        self.target = target
        self.delay_seconds = delay_seconds

    async def export_session(self, session: Session, fmt: str = "md") -> str:
        stamp = session.start_time.strftime("%Y%m%d_%H%M")
        return await self._export([session], f"pomopilot_session_{stamp}_{session.id[:8]}", fmt)

    async def export_sessions(self, sessions: Sequence[Session], fmt: str = "md") -> str:
        stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        return await self._export(list(sessions), f"pomopilot_sessions_{stamp}", fmt)

    async def _export(self, sessions: List[Session], basename: str, fmt: str) -> str:
        writer = WRITERS.get(fmt)
        if writer is None:
            raise ExportError(f"Unsupported export format: {fmt}")
        if not sessions:
            raise ExportError("Nothing to export")

        if self.delay_seconds > 0:
            await asyncio.sleep(self.delay_seconds)

        if self.target == "mock_cloud":
            link = MOCK_DOCUMENT_URL.format(document_id=uuid.uuid4())
            logger.info(f"📄 Exported {len(sessions)} session(s) to {link}")
            return link

        filename = self.export_dir / f"{basename}.{fmt}"
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self._write, writer, sessions, filename)
        except OSError as e:
            raise ExportError(f"Failed to write {filename}: {e}") from e

        logger.info(f"📄 Exported {len(sessions)} session(s) to {filename}")
        return str(filename)

    def _write(self, writer, sessions: List[Session], filename: Path) -> Optional[Path]:
        self.export_dir.mkdir(parents=True, exist_ok=True)
        return writer(sessions, filename)

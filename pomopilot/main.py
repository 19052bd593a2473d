#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Pomopilot - Application entry point
Сборка компонентов и консольный запуск таймера
"""

import asyncio
import argparse
import json
import logging
import signal
import sys
from typing import Any, Dict, List, Optional

from pomopilot.config import config, PomopilotConfig
from pomopilot.core.models import GateMode, TimerSettings
from pomopilot.core.events import CycleEvents
from pomopilot.core.ai_service import AITextService
from pomopilot.core.cycle_engine import CycleEngine, EngineStateError
from pomopilot.core.session_aggregator import SessionAggregator, SessionInvariantError
from pomopilot.core.database import DatabaseManager, JsonFileStore, KeyValueStore
from pomopilot.services.notifications import NotificationService, Notification
from pomopilot.services.data_export import SessionExporter, format_duration
from pomopilot.services.scheduler import TickDriver
from pomopilot.utils.logger import setup_logging
from pomopilot.utils.text_utils import truncate, single_line

logger = logging.getLogger(__name__)

# ===== APPLICATION =====

class PomopilotApp:
    """Связка движка, агрегатора, AI сервиса и хранилища"""

    def __init__(self, cfg: Optional[PomopilotConfig] = None,
                 store: Optional[KeyValueStore] = None,
                 ai_client: Optional[Any] = None):
        self.config = cfg or config

        self.database = DatabaseManager(store or JsonFileStore(self.config.storage.path))
        self.settings = self.database.load_settings()

        self.ai_service = AITextService(self.config.ai, client=ai_client)
        self.notifications = NotificationService()
        self.events = CycleEvents()

        self.engine = CycleEngine(
            self.settings,
            self.ai_service,
            notifier=self.notifications,
            events=self.events,
            behavior=self.config.timer
        )

        self.aggregator = SessionAggregator(
            self.database,
            self.ai_service,
            events=self.events,
            exporter=SessionExporter(
                self.config.storage.export_dir,
                target=self.config.session.export_target,
                delay_seconds=self.config.timer.export_delay_seconds
            ),
            behavior=self.config.timer,
            missing_session_policy=self.config.session.missing_session_policy
        )

        self.tick_driver = TickDriver(self.engine)

        logger.info(f"🚀 Pomopilot initialized: {self.config.to_dict()}")

    def update_settings(self, settings: TimerSettings) -> bool:
        """Сохранение и применение новых настроек"""
        saved = self.database.save_settings(settings)
        self.settings = settings
        self.engine.update_settings(settings)
        return saved

    def get_stats(self) -> Dict[str, Any]:
        """Сводная статистика компонентов"""
        return {
            'engine': self.engine.snapshot().to_dict(),
            'sessions': self.aggregator.get_stats(),
            'ai': self.ai_service.get_stats(),
            'database': self.database.get_stats(),
            'ticks': self.tick_driver.tick_count
        }

    def start(self) -> None:
        if not self.tick_driver.running:
            self.tick_driver.start()
        self.engine.start()

    async def shutdown(self) -> None:
        self.tick_driver.shutdown()
        self.engine.pause()
        self.engine.cancel_pending()
        await self.aggregator.drain_pending()
        logger.info("🛑 Pomopilot stopped")

# ===== CONSOLE RUNNER =====

HELP_TEXT = """Commands:
  start | pause | resume | stop | reset | status | stats
  plan <text>       describe the session (text mode)
  say <text>        talk to the assistant (voice mode)
  skip              skip session planning
  done <text>       record what you accomplished after a work phase
  feedback <text>   answer the break question
  dismiss           hide AI messages
  quit"""


def print_notification(notification: Notification) -> None:
    print(f"\n🔔 {notification.title}: {notification.body}")


def format_status(app: PomopilotApp) -> str:
    snapshot = app.engine.snapshot()
    minutes, seconds = divmod(snapshot.time_remaining, 60)
    state = "running" if snapshot.is_running else "paused"
    line = (
        f"{snapshot.phase.value} {minutes:02d}:{seconds:02d} "
        f"(cycle {snapshot.current_cycle}/{app.settings.cycles_before_long_break}, {state})"
    )
    if snapshot.pending_gate == GateMode.TEXT:
        line += "\nWhat will you work on this session? Use: plan <text> or skip"
    elif snapshot.pending_gate == GateMode.VOICE:
        line += f"\nAssistant: {app.engine.conversation.turns[-1].text}"
    if snapshot.awaiting_work_input:
        line += "\nWork phase finished. Use: done <what you accomplished>"
    if snapshot.show_ai_reminder or snapshot.show_ai_break_engagement:
        line += f"\nAI: {snapshot.ai_message}"
    if snapshot.show_ai_break_response:
        line += f"\nAI: {snapshot.ai_break_response}"
    return line


async def handle_command(app: PomopilotApp, line: str) -> bool:
    """Обработка одной команды; False означает выход"""
    command, _, argument = line.strip().partition(" ")
    command = command.lower()

    try:
        if command in ("quit", "exit"):
            return False
        if command == "start":
            app.start()
        elif command == "pause":
            app.engine.pause()
        elif command == "resume":
            app.engine.resume()
        elif command == "stop":
            app.engine.stop()
        elif command == "reset":
            app.engine.reset()
        elif command == "plan":
            app.engine.submit_session_start_input(argument)
        elif command == "say":
            reply = await app.engine.submit_voice_utterance(argument)
            print(f"Assistant: {reply.text}")
        elif command == "skip":
            app.engine.skip_session_start()
        elif command == "done":
            app.engine.submit_work_input(argument)
        elif command == "feedback":
            app.engine.submit_break_feedback(argument)
        elif command == "dismiss":
            app.engine.dismiss_ai_interaction()
        elif command == "stats":
            print(json.dumps(app.get_stats(), ensure_ascii=False, indent=2))
            return True
        elif command in ("", "status"):
            pass
        else:
            print(HELP_TEXT)
            return True
    except (EngineStateError, SessionInvariantError) as e:
        print(f"⚠️ {e}")

    print(format_status(app))
    return True


async def run_console(app: PomopilotApp) -> None:
    app.notifications.add_handler(print_notification)
    loop = asyncio.get_running_loop()
    stop_event = asyncio.Event()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except (NotImplementedError, RuntimeError):
            pass

    print(HELP_TEXT)
    app.start()
    print(format_status(app))

    try:
        while not stop_event.is_set():
            read = loop.run_in_executor(None, sys.stdin.readline)
            waiter = asyncio.ensure_future(stop_event.wait())
            done, _ = await asyncio.wait({read, waiter}, return_when=asyncio.FIRST_COMPLETED)
            waiter.cancel()
            if read not in done:
                break
            line = read.result()
            if not line:
                break
            if not await handle_command(app, line):
                break
    finally:
        await app.shutdown()


def list_sessions(app: PomopilotApp) -> None:
    sessions = app.aggregator.sessions
    if not sessions:
        print("No saved sessions.")
        return

    for session in sessions:
        status = "completed" if session.is_completed else "in progress"
        print(
            f"{session.formatted_date} | {len(session.work_periods)} period(s) | "
            f"{format_duration(session.total_work_duration)} | {status}"
        )
        if session.ai_report:
            print(f"    {truncate(single_line(session.ai_report), 96)}")


async def export_sessions(app: PomopilotApp, fmt: str) -> int:
    link = await app.aggregator.export_all_sessions(fmt)
    await app.aggregator.drain_pending()
    if link is None:
        print(f"Export failed: {app.aggregator.export_status.export_error}")
        return 1
    print(link)
    return 0

# ===== MAIN =====

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="pomopilot", description="Pomodoro timer with an AI co-pilot")
    parser.add_argument("--log-level", default=None, help="override LOG_LEVEL")

    subparsers = parser.add_subparsers(dest="command")
    subparsers.add_parser("run", help="run the interactive timer")
    subparsers.add_parser("list", help="list saved sessions")
    export_parser = subparsers.add_parser("export", help="export all sessions")
    export_parser.add_argument("--format", choices=["md", "json", "csv"], default="md")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(config, level=args.log_level.upper() if args.log_level else None)

    try:
        config.ensure_directories()
        app = PomopilotApp()

        if args.command == "list":
            list_sessions(app)
            return 0
        if args.command == "export":
            return asyncio.run(export_sessions(app, args.format))

        asyncio.run(run_console(app))
        return 0

    except KeyboardInterrupt:
        logger.info("👋 Stopped by user")
        return 0
    except Exception as e:
        logger.error(f"💥 Fatal error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())

#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Pomopilot - Session Aggregator
Накопление рабочих периодов в сессии, отчеты и экспорт
"""

import asyncio
import logging
from datetime import datetime
from typing import Callable, Coroutine, Dict, List, Optional, Any, Set, Union
from dataclasses import dataclass
from enum import Enum

from pomopilot.config import config, TimerBehaviorConfig
from pomopilot.core.models import Session, WorkPeriod, BreakFeedback
from pomopilot.core.events import CycleEvents
from pomopilot.core.database import DatabaseManager
from pomopilot.services.data_export import SessionExporter, synthesize_local_report

logger = logging.getLogger(__name__)

# ===== EXCEPTIONS =====

class SessionAggregatorError(Exception):
    """Базовое исключение агрегатора сессий"""
    pass

class SessionInvariantError(SessionAggregatorError):
    """Нарушение инварианта сессий: ошибка последовательности вызовов"""
    pass

# ===== ENUMS =====

class MissingSessionPolicy(Enum):
    """Поведение при событии без активной сессии"""
    RAISE = "raise"
    AUTO_CREATE = "auto_create"

# ===== DATA CLASSES =====

@dataclass(frozen=True)
class ExportStatus:
    """Наблюдаемое состояние экспорта"""
    is_exporting: bool = False
    export_error: Optional[str] = None
    export_success: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            'is_exporting': self.is_exporting,
            'export_error': self.export_error,
            'export_success': self.export_success
        }

# ===== AGGREGATOR =====

class SessionAggregator:
    """Единственный владелец сохраненных сессий.

    Держит не больше одной активной сессии. Каждое изменение сразу
    сохраняется; ошибка сохранения доступна в ``last_persistence_error``.
    """

    def __init__(self, database: DatabaseManager, ai_service,
                 events: Optional[CycleEvents] = None,
                 exporter: Optional[SessionExporter] = None,
                 behavior: Optional[TimerBehaviorConfig] = None,
                 missing_session_policy: Union[MissingSessionPolicy, str, None] = None,
                 clock: Callable[[], datetime] = datetime.now):
        self.database = database
        self.ai_service = ai_service
        self.behavior = behavior or config.timer
        self.clock = clock

        policy = missing_session_policy or config.session.missing_session_policy
        self.missing_session_policy = MissingSessionPolicy(policy) if isinstance(policy, str) else policy

        self.exporter = exporter or SessionExporter(
            config.storage.export_dir,
            target=config.session.export_target,
            delay_seconds=self.behavior.export_delay_seconds
        )

        self.sessions: List[Session] = []
        self.current_session: Optional[Session] = None
        self.export_status = ExportStatus()
        self.last_persistence_error: Optional[str] = None

        self._pending: Set[asyncio.Task] = set()
        self._export_generation = 0
        self._unsubscribers: List[Callable[[], None]] = []

        self._load()
        if events is not None:
            self.attach(events)

    # ===== WIRING =====

    def attach(self, events: CycleEvents) -> None:
        """Подписка на события движка циклов"""
        self._unsubscribers.extend([
            events.session_started.subscribe(self.on_session_started),
            events.work_period_completed.subscribe(self.on_work_period_completed),
            events.break_feedback_received.subscribe(self.on_break_feedback_received),
            events.full_cycle_completed.subscribe(self.on_full_cycle_completed),
        ])

    def detach(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()

    def _load(self) -> None:
        self.sessions = self.database.load_sessions()
        open_sessions = [session for session in self.sessions if not session.is_completed]

        if len(open_sessions) > 1:
            logger.error(
                f"Data integrity error: {len(open_sessions)} open sessions found, "
                "keeping the most recent and finalizing the rest"
            )
            keep = max(open_sessions, key=lambda session: session.start_time)
            for session in open_sessions:
                if session is not keep:
                    session.end_time = self._inferred_end_time(session)
            self.current_session = keep
            self._persist()
        elif open_sessions:
            self.current_session = open_sessions[0]

        if self.current_session is not None:
            logger.info(f"Restored in-progress session {self.current_session.id}")

    @staticmethod
    def _inferred_end_time(session: Session) -> datetime:
        ends = [period.end_time for period in session.work_periods if period.end_time]
        return max(ends) if ends else session.start_time

    # ===== SESSIONS =====

    @property
    def completed_sessions(self) -> List[Session]:
        return [session for session in self.sessions if session.is_completed]

    def get_session(self, session_id: str) -> Optional[Session]:
        for session in self.sessions:
            if session.id == session_id:
                return session
        return None

    def start_new_session(self, seed_narration: str = "") -> Session:
        """Новая сессия; при уже активной сессии ничего не создается"""
        if self.current_session is not None:
            if seed_narration and not self.current_session.seed_narration:
                self.current_session.seed_narration = seed_narration
                self._persist()
            logger.debug(f"Session {self.current_session.id} is already active")
            return self.current_session

        session = Session.create(self.clock(), seed_narration)
        self.sessions.append(session)
        self.current_session = session
        self._persist()

        logger.info(f"🍅 Session {session.id} started")
        return session

    def on_session_started(self, seed_narration: str) -> None:
        self.start_new_session(seed_narration)

    def on_work_period_completed(self, work_period: WorkPeriod) -> None:
        if not work_period.is_completed:
            self._violation(f"Work period {work_period.id} has no end time")
            return

        session = self._require_session("work period completion")
        if session.find_work_period(work_period.id) is not None:
            self._violation(f"Work period {work_period.id} was already recorded")
            return

        session.work_periods.append(work_period.copy())
        self._persist()
        logger.info(f"Work period {len(session.work_periods)} recorded for session {session.id}")

    def on_break_feedback_received(self, feedback: BreakFeedback) -> None:
        if self.current_session is None:
            logger.debug("Break feedback ignored: no active session")
            return

        period = self.current_session.find_work_period(feedback.work_period_id)
        if period is None:
            logger.debug(f"Break feedback ignored: work period {feedback.work_period_id} not in current session")
            return

        period.break_feedback = feedback.feedback
        period.ai_response = feedback.ai_response
        self._persist()

    def on_full_cycle_completed(self) -> None:
        self.complete_current_session()

    def complete_current_session(self) -> Optional[asyncio.Task]:
        """Завершение активной сессии; отчет генерируется в фоне"""
        session = self._require_session("session completion")
        session.end_time = self.clock()

        self._upsert(session)
        self.current_session = None
        self._persist()

        logger.info(f"🏁 Session {session.id} completed with {len(session.work_periods)} work period(s)")

        task = self._spawn(self._generate_report(session))
        if task is None:
            session.ai_report = synthesize_local_report(session)
            self._persist()
        return task

    def delete_session(self, session_id: str) -> bool:
        before = len(self.sessions)
        self.sessions = [session for session in self.sessions if session.id != session_id]
        if len(self.sessions) == before:
            return False

        if self.current_session is not None and self.current_session.id == session_id:
            self.current_session = None
        self._persist()
        logger.info(f"🗑️ Session {session_id} deleted")
        return True

    def delete_all(self) -> None:
        self.sessions = []
        self.current_session = None
        if self.database.clear_sessions():
            self.last_persistence_error = None
        else:
            self.last_persistence_error = self.database.last_error
        logger.info("🗑️ All sessions deleted")

    # ===== REPORT =====

    async def _generate_report(self, session: Session) -> str:
        try:
            response = await asyncio.wait_for(
                self.ai_service.get_productivity_report(session.work_periods, session.seed_narration),
                timeout=self.behavior.report_timeout_seconds
            )
            report = response.content if response.is_live else synthesize_local_report(session)
        except asyncio.TimeoutError:
            logger.warning(f"Report generation timed out for session {session.id}")
            report = synthesize_local_report(session)

        session.ai_report = report
        self._persist()
        return report

    # ===== EXPORT =====

    async def export_session(self, session: Session, fmt: str = "md") -> Optional[str]:
        return await self._run_export([session], fmt)

    async def export_all_sessions(self, fmt: str = "md") -> Optional[str]:
        return await self._run_export(list(self.sessions), fmt)

    async def _run_export(self, sessions: List[Session], fmt: str) -> Optional[str]:
        if self.export_status.is_exporting:
            logger.warning("Export already in progress")
            return None

        self._export_generation += 1
        self.export_status = ExportStatus(is_exporting=True)

        try:
            if len(sessions) == 1:
                link = await self.exporter.export_session(sessions[0], fmt)
            else:
                link = await self.exporter.export_sessions(sessions, fmt)
        except Exception as e:
            logger.error(f"❌ Export failed: {e}")
            self.export_status = ExportStatus(export_error=str(e))
            return None
        finally:
            # Отмена задачи экспорта не должна оставлять флаг навсегда
            if self.export_status.is_exporting:
                self.export_status = ExportStatus()

        for session in sessions:
            stored = self.get_session(session.id)
            if stored is not None:
                stored.export_link = link
            session.export_link = link
        self._persist()

        self.export_status = ExportStatus(export_success=True)
        self._spawn(self._clear_export_success(self._export_generation))
        return link

    async def _clear_export_success(self, generation: int) -> None:
        await asyncio.sleep(self.behavior.export_success_reset_seconds)
        if generation == self._export_generation and self.export_status.export_success:
            self.export_status = ExportStatus()

    # ===== INTERNALS =====

    def _require_session(self, action: str) -> Session:
        if self.current_session is not None:
            return self.current_session

        message = f"No active session for {action}"
        if self.missing_session_policy == MissingSessionPolicy.RAISE:
            raise SessionInvariantError(message)

        logger.error(f"{message}, creating one")
        return self.start_new_session()

    def _violation(self, message: str) -> None:
        if self.missing_session_policy == MissingSessionPolicy.RAISE:
            raise SessionInvariantError(message)
        logger.error(message)

    def _upsert(self, session: Session) -> None:
        for index, existing in enumerate(self.sessions):
            if existing.id == session.id:
                self.sessions[index] = session
                return
        self.sessions.append(session)

    def _persist(self) -> bool:
        if self.database.save_sessions(self.sessions):
            self.last_persistence_error = None
            return True
        self.last_persistence_error = self.database.last_error
        return False

    def _spawn(self, coro: Coroutine) -> Optional[asyncio.Task]:
        try:
            task = asyncio.get_running_loop().create_task(coro)
        except RuntimeError:
            coro.close()
            return None
        self._pending.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"❌ Background task failed: {error!r}")

    async def drain_pending(self) -> None:
        """Дождаться фоновых отчетов и сброса статуса экспорта"""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def cancel_pending(self) -> None:
        for task in list(self._pending):
            task.cancel()
        self._pending.clear()

    def get_stats(self) -> Dict[str, Any]:
        return {
            'sessions': len(self.sessions),
            'completed_sessions': len(self.completed_sessions),
            'current_session': self.current_session.id if self.current_session else None,
            'missing_session_policy': self.missing_session_policy.value,
            'export_status': self.export_status.to_dict(),
            'last_persistence_error': self.last_persistence_error
        }


__all__ = [
    'SessionAggregatorError',
    'SessionInvariantError',
    'MissingSessionPolicy',
    'ExportStatus',
    'SessionAggregator'
]

#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Pomopilot - Cycle Engine
Машина состояний фаз помодоро: отсчет, циклы, побочные AI-эффекты
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Callable, Coroutine, Dict, Optional, Set
from dataclasses import dataclass, asdict

from pomopilot.config import config, TimerBehaviorConfig
from pomopilot.core.models import (
    PhaseType, GateMode, TimerSettings, WorkPeriod, BreakFeedback
)
from pomopilot.core.events import CycleEvents
from pomopilot.core.conversation import (
    VoiceConversation, ConversationReply, extract_task_from_conversation
)
from pomopilot.services.notifications import NotificationService

logger = logging.getLogger(__name__)

# ===== EXCEPTIONS =====

class EngineStateError(Exception):
    """Операция недопустима в текущем состоянии движка"""
    pass

# ===== SNAPSHOT =====

@dataclass(frozen=True)
class EngineSnapshot:
    """Наблюдаемое состояние движка в один момент времени"""
    phase: PhaseType
    time_remaining: int
    total_time: int
    current_cycle: int
    is_running: bool
    epoch: int
    pending_gate: Optional[GateMode]
    awaiting_work_input: bool
    has_open_work_period: bool
    ai_message: str
    show_ai_reminder: bool
    show_ai_break_engagement: bool
    show_break_feedback_prompt: bool
    ai_break_response: str
    show_ai_break_response: bool

    @property
    def progress(self) -> float:
        if self.total_time <= 0:
            return 1.0
        return 1.0 - self.time_remaining / self.total_time

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['phase'] = self.phase.value
        data['pending_gate'] = self.pending_gate.value if self.pending_gate else None
        data['progress'] = round(self.progress, 4)
        return data

# ===== ENGINE =====

class CycleEngine:
    """Движок циклов.

    Работает в одном потоке событийного цикла asyncio: ``tick()`` вызывается
    внешним источником раз в секунду, AI-запросы запускаются как задачи и
    применяются, только если эпоха на момент запуска совпадает с текущей.
    Движок ничего не сохраняет сам: завершенные периоды уходят подписчикам
    через ``CycleEvents``.
    """

    def __init__(self, settings: TimerSettings, ai_service,
                 notifier: Optional[NotificationService] = None,
                 events: Optional[CycleEvents] = None,
                 behavior: Optional[TimerBehaviorConfig] = None,
                 clock: Callable[[], datetime] = datetime.now):
        self.settings = settings
        self.ai_service = ai_service
        self.notifier = notifier or NotificationService()
        self.events = events or CycleEvents()
        self.behavior = behavior or config.timer
        self.clock = clock

        # Отсчет
        self.phase = PhaseType.WORK
        self.current_cycle = 1
        self.total_time = settings.duration_for(PhaseType.WORK)
        self.time_remaining = self.total_time
        self.is_running = False

        # Отмена устаревших AI-результатов
        self.epoch = 0
        self._pending: Set[asyncio.Task] = set()

        # Рабочие периоды и сессия
        self._open_work_period: Optional[WorkPeriod] = None
        self._last_completed_work_period_id: Optional[str] = None
        self._delay_after: Optional[PhaseType] = None
        self._seed_narration: Optional[str] = None
        self._task_description = ""

        # Флаги фазы
        self._reminder_shown = False
        self._engagement_scheduled = False

        # Ожидание ввода пользователя
        self.pending_gate: Optional[GateMode] = None
        self.conversation: Optional[VoiceConversation] = None
        self.awaiting_work_input = False

        # Поверхности AI
        self.ai_message = ""
        self.show_ai_reminder = False
        self.show_ai_break_engagement = False
        self.show_break_feedback_prompt = False
        self.ai_break_response = ""
        self.show_ai_break_response = False

    # ===== PROPERTIES =====

    @property
    def has_open_work_period(self) -> bool:
        return self._open_work_period is not None

    @property
    def open_work_period(self) -> Optional[WorkPeriod]:
        """Копия открытого периода; сам период принадлежит движку"""
        return self._open_work_period.copy() if self._open_work_period else None

    @property
    def seed_narration(self) -> Optional[str]:
        return self._seed_narration

    @property
    def task_description(self) -> str:
        return self._task_description

    @property
    def last_completed_work_period_id(self) -> Optional[str]:
        return self._last_completed_work_period_id

    @property
    def pending_task_count(self) -> int:
        return len(self._pending)

    def snapshot(self) -> EngineSnapshot:
        return EngineSnapshot(
            phase=self.phase,
            time_remaining=self.time_remaining,
            total_time=self.total_time,
            current_cycle=self.current_cycle,
            is_running=self.is_running,
            epoch=self.epoch,
            pending_gate=self.pending_gate,
            awaiting_work_input=self.awaiting_work_input,
            has_open_work_period=self.has_open_work_period,
            ai_message=self.ai_message,
            show_ai_reminder=self.show_ai_reminder,
            show_ai_break_engagement=self.show_ai_break_engagement,
            show_break_feedback_prompt=self.show_break_feedback_prompt,
            ai_break_response=self.ai_break_response,
            show_ai_break_response=self.show_ai_break_response
        )

    # ===== CONTROL =====

    def start(self) -> None:
        """Запуск отсчета или открытие ввода перед первой рабочей фазой"""
        if self.is_running or self.pending_gate is not None or self.awaiting_work_input:
            return
        self._continue()

    def resume(self) -> None:
        self.start()

    def pause(self) -> None:
        """Остановка отсчета с сохранением оставшегося времени"""
        if not self.is_running:
            return
        self.is_running = False
        self._invalidate()
        logger.info(f"⏸️ Paused {self.phase.value} at {self.time_remaining}s")

    def stop(self) -> None:
        """Полный сброс к первой рабочей фазе; открытый период отбрасывается"""
        self.is_running = False
        self._invalidate()

        if self._open_work_period is not None:
            logger.info(f"Discarding open work period {self._open_work_period.id}")
        self._open_work_period = None
        self._delay_after = None

        self.phase = PhaseType.WORK
        self.current_cycle = 1
        self.total_time = self.settings.duration_for(PhaseType.WORK)
        self.time_remaining = self.total_time
        self._reset_phase_flags()

        self.pending_gate = None
        self.conversation = None
        self.awaiting_work_input = False
        self.show_break_feedback_prompt = False
        self.dismiss_ai_interaction()

        logger.info("⏹️ Cycle engine stopped")

    def reset(self) -> None:
        """Пауза и возврат текущей фазы к полному времени"""
        if self.awaiting_work_input or self.pending_gate is not None:
            return
        self.pause()
        self._invalidate()
        self.total_time = self.settings.duration_for(self.phase)
        self.time_remaining = self.total_time
        self._reset_phase_flags()
        self.show_ai_reminder = False

    def tick(self) -> None:
        """Один шаг отсчета; при нуле фаза завершается в этом же шаге"""
        if not self.is_running:
            return

        if self.time_remaining > 0:
            self.time_remaining -= 1
            self._check_side_effects()

        if self.is_running and self.time_remaining <= 0:
            self._complete_phase()

    def update_settings(self, settings: TimerSettings) -> None:
        """Замена настроек с сохранением уже прошедшего времени фазы"""
        elapsed = self.total_time - self.time_remaining
        self.settings = settings
        self.total_time = settings.duration_for(self.phase)

        if not self.awaiting_work_input:
            self.time_remaining = max(0, self.total_time - elapsed)

        if self.current_cycle > settings.cycles_before_long_break:
            self.current_cycle = settings.cycles_before_long_break

        # Открытый ввод переключается на новый режим, начатый диалог отбрасывается
        if self.pending_gate is not None and self.pending_gate != self._gate_mode():
            self.conversation = None
            self._open_gate()

        logger.info(
            f"Settings updated: {self.phase.value} now {self.total_time}s, "
            f"{self.time_remaining}s remaining, cycle {self.current_cycle}"
        )

    # ===== USER INPUT =====

    def submit_work_input(self, text: str) -> WorkPeriod:
        """Передача завершенного рабочего периода агрегатору и переход к задержке"""
        if not self.awaiting_work_input or self._open_work_period is None:
            raise EngineStateError("No completed work period is awaiting input")

        period = self._open_work_period
        period.input = text
        completed = period.copy()

        self._open_work_period = None
        self._last_completed_work_period_id = completed.id
        self.awaiting_work_input = False

        try:
            self.events.work_period_completed.emit(completed)
        finally:
            self._delay_after = PhaseType.WORK
            self._enter_phase(PhaseType.DELAY)
            self._continue()

        return completed

    def submit_session_start_input(self, text: str) -> None:
        """Текстовое описание планов на сессию"""
        if self.pending_gate != GateMode.TEXT:
            raise EngineStateError("Session start input is not expected right now")
        narration = text.strip()
        self._resolve_gate(narration, narration)

    def skip_session_start(self) -> None:
        if self.pending_gate is None:
            raise EngineStateError("Session start input is not expected right now")
        if self.pending_gate == GateMode.VOICE:
            self.finish_voice_conversation()
        else:
            self._resolve_gate("", "")

    async def submit_voice_utterance(self, text: str) -> ConversationReply:
        """Реплика пользователя в голосовом диалоге планирования"""
        if self.pending_gate != GateMode.VOICE or self.conversation is None:
            raise EngineStateError("Voice conversation is not active")

        conversation = self.conversation
        reply = await conversation.handle_utterance(text)

        # Диалог мог быть прерван через stop() во время запроса
        if conversation is not self.conversation:
            return reply

        if reply.finished:
            self._resolve_gate(conversation.transcript(), conversation.user_text())
        return reply

    def finish_voice_conversation(self) -> None:
        if self.pending_gate != GateMode.VOICE or self.conversation is None:
            raise EngineStateError("Voice conversation is not active")
        conversation = self.conversation
        conversation.finish()
        self._resolve_gate(conversation.transcript(), conversation.user_text())

    def submit_break_feedback(self, text: str) -> Optional[asyncio.Task]:
        """Отзыв с перерыва; пустой текст просто закрывает запрос"""
        self.show_break_feedback_prompt = False
        feedback = text.strip()
        if not feedback:
            return None
        return self._spawn(self._process_break_feedback(feedback, self._last_completed_work_period_id))

    def dismiss_ai_interaction(self) -> None:
        self.ai_message = ""
        self.show_ai_reminder = False
        self.show_ai_break_engagement = False
        self.ai_break_response = ""
        self.show_ai_break_response = False

    # ===== PENDING TASKS =====

    def cancel_pending(self) -> None:
        self._invalidate()

    async def drain_pending(self) -> None:
        """Дождаться всех запущенных побочных эффектов"""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # ===== INTERNALS =====

    def _continue(self) -> None:
        """Автопродолжение: открыть ввод перед сессией или запустить отсчет"""
        if (self.phase == PhaseType.WORK and self.current_cycle == 1
                and self._seed_narration is None and self._open_work_period is None):
            self._open_gate()
            return

        if self.phase == PhaseType.WORK and self._open_work_period is None:
            self._open_work_period = WorkPeriod.create(self.clock(), self._task_description)
            logger.debug(f"Opened work period {self._open_work_period.id}")

        self.is_running = True

    def _gate_mode(self) -> GateMode:
        return GateMode.VOICE if self.settings.use_voice_interaction else GateMode.TEXT

    def _open_gate(self) -> None:
        mode = self._gate_mode()
        self.pending_gate = mode
        if mode == GateMode.VOICE:
            self.conversation = VoiceConversation(self.ai_service)
        logger.info(f"Waiting for session planning input ({mode.value})")

    def _resolve_gate(self, narration: str, task_source: str) -> None:
        self.pending_gate = None
        self.conversation = None
        self._seed_narration = narration
        self._task_description = extract_task_from_conversation(task_source)

        if self._task_description:
            logger.info(f"🎯 Session task: {self._task_description}")

        self.events.session_started.emit(narration)
        self._continue()

    def _complete_phase(self) -> None:
        # Отсчет останавливается первым, чтобы поздний тик не завершил фазу дважды
        self.is_running = False
        completed = self.phase
        self._invalidate()

        logger.info(f"✅ {completed.value} complete (cycle {self.current_cycle})")
        self.notifier.phase_complete(completed.value, completed == PhaseType.WORK)

        if completed == PhaseType.WORK:
            if self._open_work_period is None:
                logger.error("Work phase completed without an open work period, opening one now")
                self._open_work_period = WorkPeriod.create(self.clock(), self._task_description)
            self._open_work_period.end_time = self.clock()
            self.show_ai_reminder = False
            self.awaiting_work_input = True
            return

        try:
            if completed == PhaseType.DELAY:
                self._enter_phase(self._phase_after_delay())
            elif completed == PhaseType.SHORT_BREAK:
                self.current_cycle += 1
                self._delay_after = completed
                self._enter_phase(PhaseType.DELAY)
            elif completed == PhaseType.LONG_BREAK:
                self.current_cycle = 1
                self._seed_narration = None
                self._task_description = ""
                self._delay_after = completed
                self._enter_phase(PhaseType.DELAY)
                self.events.full_cycle_completed.emit()
        finally:
            # Ошибка подписчика не должна останавливать отсчет
            self._continue()

    def _phase_after_delay(self) -> PhaseType:
        if self._delay_after == PhaseType.WORK:
            if self.current_cycle % self.settings.cycles_before_long_break == 0:
                return PhaseType.LONG_BREAK
            return PhaseType.SHORT_BREAK
        return PhaseType.WORK

    def _enter_phase(self, phase: PhaseType) -> None:
        self._invalidate()
        self.phase = phase
        self.total_time = self.settings.duration_for(phase)
        self.time_remaining = self.total_time
        self._reset_phase_flags()

        self.show_ai_reminder = False
        if not phase.is_break:
            self.show_ai_break_engagement = False
            self.show_break_feedback_prompt = False
            self.show_ai_break_response = False

        logger.info(f"▶️ {phase.value} ({self.total_time}s), cycle {self.current_cycle}")

    def _reset_phase_flags(self) -> None:
        self._reminder_shown = False
        self._engagement_scheduled = False

    def _invalidate(self) -> None:
        self.epoch += 1
        for task in list(self._pending):
            task.cancel()
        self._pending.clear()

    def _check_side_effects(self) -> None:
        # Пороговые сравнения: фаза короче порога тоже получает свой эффект
        if self.time_remaining <= 0:
            return

        if (self.phase == PhaseType.WORK and not self._reminder_shown
                and self.time_remaining <= self.behavior.reminder_threshold_seconds):
            # Флаг ставится до запроса: повторов в той же фазе не будет
            self._reminder_shown = True
            self._spawn(self._show_wrap_up_reminder())

        elif (self.phase.is_break and not self._engagement_scheduled
                and self.time_remaining <= self.total_time - self.behavior.break_engagement_offset_seconds):
            self._engagement_scheduled = True
            self._spawn(self._run_break_engagement())

    def _spawn(self, coro: Coroutine) -> Optional[asyncio.Task]:
        try:
            task = asyncio.get_running_loop().create_task(coro)
        except RuntimeError:
            coro.close()
            logger.warning("No running event loop, AI side effect skipped")
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
            logger.error(f"❌ Side effect task failed: {error!r}")

    async def _show_wrap_up_reminder(self) -> None:
        epoch = self.epoch
        message = await self.ai_service.get_end_of_session_reminder()
        if epoch != self.epoch:
            logger.debug("Discarding stale wrap-up reminder")
            return

        self.ai_message = message
        self.show_ai_reminder = True
        self.notifier.wrap_up_reminder(message)

    async def _run_break_engagement(self) -> None:
        epoch = self.epoch
        delay = self.behavior.break_engagement_delay_seconds
        if delay > 0:
            await asyncio.sleep(delay)
        if epoch != self.epoch:
            return

        if self.phase == PhaseType.LONG_BREAK:
            minutes = self.settings.long_break_minutes
        else:
            minutes = self.settings.short_break_minutes

        message = await self.ai_service.get_break_engagement(minutes)
        if epoch != self.epoch:
            logger.debug("Discarding stale break engagement")
            return

        self.ai_message = message
        self.show_ai_break_engagement = True
        self.show_break_feedback_prompt = True

    async def _process_break_feedback(self, feedback: str, work_period_id: Optional[str]) -> None:
        epoch = self.epoch
        response = await self.ai_service.process_break_feedback(feedback)
        if epoch != self.epoch:
            logger.debug("Discarding stale break feedback response")
            return

        self.ai_break_response = response
        self.show_ai_break_response = True
        self.show_ai_break_engagement = False

        if work_period_id is None:
            logger.warning("Break feedback received before any work period completed")
            return

        self.events.break_feedback_received.emit(
            BreakFeedback(work_period_id=work_period_id, feedback=feedback, ai_response=response)
        )


__all__ = [
    'EngineStateError',
    'EngineSnapshot',
    'CycleEngine'
]

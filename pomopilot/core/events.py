#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Pomopilot - Domain Events
Типизированные каналы событий между движком циклов и агрегатором сессий
"""

import logging
from typing import Callable, Generic, List, TypeVar

from pomopilot.core.models import WorkPeriod, BreakFeedback

logger = logging.getLogger(__name__)

T = TypeVar('T')

# ===== EVENT CHANNEL =====

class EventChannel(Generic[T]):
    """Канал событий одного типа.

    Подписчики вызываются синхронно в порядке подписки. Исключение подписчика
    не глотается: нарушение инварианта должно дойти до источника события.
    """

    def __init__(self, name: str):
        self.name = name
        self._listeners: List[Callable[..., None]] = []

    def subscribe(self, listener: Callable[..., None]) -> Callable[[], None]:
        """Подписка; возвращает функцию отписки"""
        if not callable(listener):
            raise ValueError("Listener must be callable")
        self._listeners.append(listener)
        return lambda: self.unsubscribe(listener)

    def unsubscribe(self, listener: Callable[..., None]) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def emit(self, *payload: T) -> None:
        logger.debug(f"Event '{self.name}' -> {len(self._listeners)} listener(s)")
        for listener in list(self._listeners):
            listener(*payload)


class CycleEvents:
    """Набор каналов, которыми движок сообщает о завершении фаз"""

    def __init__(self):
        self.work_period_completed: EventChannel[WorkPeriod] = EventChannel("work_period_completed")
        self.full_cycle_completed: EventChannel[None] = EventChannel("full_cycle_completed")
        self.break_feedback_received: EventChannel[BreakFeedback] = EventChannel("break_feedback_received")
        self.session_started: EventChannel[str] = EventChannel("session_started")


__all__ = [
    'EventChannel',
    'CycleEvents'
]

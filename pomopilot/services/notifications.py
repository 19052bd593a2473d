"""
Сервис уведомлений
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, Deque, List

logger = logging.getLogger(__name__)


class NotificationType(Enum):
    WRAP_UP_REMINDER = "wrap_up_reminder"
    PHASE_COMPLETE = "phase_complete"


@dataclass(frozen=True)
class Notification:
    """Локальное уведомление для пользователя"""
    type: NotificationType
    title: str
    body: str
    created_at: datetime = field(default_factory=datetime.now)


NotificationHandler = Callable[[Notification], None]


class NotificationService:
    """Формирование уведомлений и рассылка зарегистрированным обработчикам.

    Способ доставки определяют обработчики; ошибка доставки только логируется.
    """

    WRAP_UP_TITLE = "Time to wrap up!"

    def __init__(self, history_size: int = 50):
        self.handlers: List[NotificationHandler] = []
        self.history: Deque[Notification] = deque(maxlen=history_size)

    def add_handler(self, handler: NotificationHandler) -> None:
        self.handlers.append(handler)

    def wrap_up_reminder(self, message: str) -> Notification:
        """Напоминание за две минуты до конца рабочей фазы"""
        return self._deliver(Notification(
            type=NotificationType.WRAP_UP_REMINDER,
            title=self.WRAP_UP_TITLE,
            body=message
        ))

    def phase_complete(self, phase_name: str, is_work_phase: bool) -> Notification:
        """Уведомление о завершении фазы"""
        if is_work_phase:
            body = "Time to take a break! What did you accomplish?"
        else:
            body = "Break complete. Get ready for your next work session."

        return self._deliver(Notification(
            type=NotificationType.PHASE_COMPLETE,
            title=f"{phase_name} Complete",
            body=body
        ))

    def _deliver(self, notification: Notification) -> Notification:
        self.history.append(notification)
        logger.info(f"🔔 {notification.title}")

        for handler in list(self.handlers):
            try:
                handler(notification)
            except Exception as e:
                logger.error(f"❌ Notification delivery failed ({notification.type.value}): {e}")

        return notification


__all__ = [
    'NotificationType',
    'Notification',
    'NotificationService'
]

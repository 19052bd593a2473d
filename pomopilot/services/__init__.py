"""
Сервисы Pomopilot: уведомления, экспорт, источник тиков
"""

from pomopilot.services.notifications import NotificationService, Notification, NotificationType
from pomopilot.services.data_export import SessionExporter, ExportError
from pomopilot.services.scheduler import TickDriver

__all__ = [
    'NotificationService',
    'Notification',
    'NotificationType',
    'SessionExporter',
    'ExportError',
    'TickDriver'
]

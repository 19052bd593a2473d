#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Pomopilot - Configuration
Централизованная конфигурация с валидацией
"""

import os
import sys
from pathlib import Path
from typing import Optional, Dict, Any
from dataclasses import dataclass
from enum import Enum


class Environment(Enum):
    """Среды выполнения"""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class LogLevel(Enum):
    """Уровни логирования"""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


@dataclass
class AIConfig:
    """Конфигурация AI сервиса"""
    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4o-mini"
    openai_max_tokens: int = 400
    request_timeout: int = 30
    mock_delay_seconds: float = 0.5


@dataclass
class StorageConfig:
    """Конфигурация хранилища"""
    path: Path = Path("data") / "pomopilot.json"
    export_dir: Path = Path("exports")


@dataclass
class TimerBehaviorConfig:
    """Пороги побочных эффектов таймера (в секундах)"""
    reminder_threshold_seconds: int = 120
    break_engagement_offset_seconds: int = 30
    break_engagement_delay_seconds: float = 30.0
    report_timeout_seconds: float = 60.0
    export_success_reset_seconds: float = 3.0
    export_delay_seconds: float = 2.0


@dataclass
class SessionConfig:
    """Политики агрегатора сессий"""
    missing_session_policy: str = "raise"
    export_target: str = "file"


class PomopilotConfig:
    """Главный класс конфигурации"""

    VALID_POLICIES = ("raise", "auto_create")
    VALID_EXPORT_TARGETS = ("file", "mock_cloud")

    def __init__(self):
        self.environment = Environment(os.getenv('POMOPILOT_ENV', 'development'))
        self._load_config()
        self._validate_config()

    def _load_config(self):
        """Загрузка конфигурации из переменных окружения"""

        # Директории
        self.data_dir = Path(os.getenv('DATA_DIR', 'data'))
        self.export_dir = Path(os.getenv('EXPORT_DIR', 'exports'))
        self.log_dir = Path(os.getenv('LOG_DIR', 'logs'))

        self.storage = StorageConfig(
            path=self.data_dir / "pomopilot.json",
            export_dir=self.export_dir
        )

        # AI конфигурация
        self.ai = AIConfig(
            openai_api_key=os.getenv('OPENAI_API_KEY') or None,
            openai_model=os.getenv('OPENAI_MODEL', 'gpt-4o-mini'),
            openai_max_tokens=int(os.getenv('OPENAI_MAX_TOKENS', 400)),
            request_timeout=int(os.getenv('AI_TIMEOUT', 30)),
            mock_delay_seconds=float(os.getenv('AI_MOCK_DELAY', 0.5))
        )

        # Таймер
        self.timer = TimerBehaviorConfig(
            reminder_threshold_seconds=int(os.getenv('REMINDER_THRESHOLD', 120)),
            break_engagement_offset_seconds=int(os.getenv('BREAK_ENGAGEMENT_OFFSET', 30)),
            break_engagement_delay_seconds=float(os.getenv('BREAK_ENGAGEMENT_DELAY', 30)),
            report_timeout_seconds=float(os.getenv('REPORT_TIMEOUT', 60)),
            export_success_reset_seconds=float(os.getenv('EXPORT_SUCCESS_RESET', 3)),
            export_delay_seconds=float(os.getenv('EXPORT_DELAY', 2))
        )

        # Сессии: в разработке нарушения инвариантов должны падать громко
        default_policy = "raise" if self.environment == Environment.DEVELOPMENT else "auto_create"
        self.session = SessionConfig(
            missing_session_policy=os.getenv('MISSING_SESSION_POLICY', default_policy).lower(),
            export_target=os.getenv('EXPORT_TARGET', 'file').lower()
        )

        # Логирование
        self.log_level = LogLevel(os.getenv('LOG_LEVEL', 'INFO').upper())
        self.log_to_file = os.getenv('LOG_TO_FILE', 'false').lower() == 'true'
        self.log_format = os.getenv(
            'LOG_FORMAT',
            '%(asctime)s [%(levelname)s] %(name)s: %(message)s'
        )

    def _validate_config(self):
        """Валидация конфигурации"""
        errors = []

        if self.ai.request_timeout <= 0:
            errors.append("AI_TIMEOUT должен быть положительным числом")

        if self.ai.mock_delay_seconds < 0:
            errors.append("AI_MOCK_DELAY не может быть отрицательным")

        if self.timer.reminder_threshold_seconds <= 0:
            errors.append("REMINDER_THRESHOLD должен быть положительным числом")

        if self.timer.break_engagement_offset_seconds < 0:
            errors.append("BREAK_ENGAGEMENT_OFFSET не может быть отрицательным")

        if self.timer.break_engagement_delay_seconds < 0:
            errors.append("BREAK_ENGAGEMENT_DELAY не может быть отрицательным")

        if self.timer.report_timeout_seconds <= 0:
            errors.append("REPORT_TIMEOUT должен быть положительным числом")

        if self.session.missing_session_policy not in self.VALID_POLICIES:
            errors.append(f"MISSING_SESSION_POLICY должен быть одним из: {list(self.VALID_POLICIES)}")

        if self.session.export_target not in self.VALID_EXPORT_TARGETS:
            errors.append(f"EXPORT_TARGET должен быть одним из: {list(self.VALID_EXPORT_TARGETS)}")

        if errors:
            raise ValueError("Ошибки конфигурации:\n" + "\n".join(f"• {error}" for error in errors))

    def ensure_directories(self):
        """Создание необходимых директорий"""
        directories = [
            self.data_dir,
            self.export_dir,
        ]
        if self.log_to_file:
            directories.append(self.log_dir)

        for directory in directories:
            directory.mkdir(parents=True, exist_ok=True)

    def get_logging_config(self) -> Dict[str, Any]:
        """Получение конфигурации логирования"""
        handlers = ['console']
        if self.log_to_file:
            handlers.append('file')

        logging_config = {
            'version': 1,
            'disable_existing_loggers': False,
            'formatters': {
                'default': {
                    'format': self.log_format,
                    'datefmt': '%Y-%m-%d %H:%M:%S'
                }
            },
            'handlers': {
                'console': {
                    'class': 'logging.StreamHandler',
                    'level': self.log_level.value,
                    'formatter': 'default',
                    'stream': sys.stdout
                }
            },
            'loggers': {
                '': {
                    'level': self.log_level.value,
                    'handlers': handlers,
                    'propagate': False
                },
                'httpx': {
                    'level': 'WARNING',
                    'handlers': handlers,
                    'propagate': False
                },
                'openai': {
                    'level': 'WARNING',
                    'handlers': handlers,
                    'propagate': False
                },
                'apscheduler': {
                    'level': 'WARNING',
                    'handlers': handlers,
                    'propagate': False
                }
            }
        }

        if self.log_to_file:
            logging_config['handlers']['file'] = {
                'class': 'logging.handlers.RotatingFileHandler',
                'level': self.log_level.value,
                'formatter': 'default',
                'filename': str(self.log_dir / f"pomopilot_{self.environment.value}.log"),
                'maxBytes': 10485760,  # 10MB
                'backupCount': 5,
                'encoding': 'utf-8'
            }

        return logging_config

    def to_dict(self) -> Dict[str, Any]:
        """Сериализация конфигурации в словарь"""
        return {
            'environment': self.environment.value,
            'ai_enabled': bool(self.ai.openai_api_key),
            'openai_model': self.ai.openai_model,
            'storage_path': str(self.storage.path),
            'export_dir': str(self.storage.export_dir),
            'missing_session_policy': self.session.missing_session_policy,
            'export_target': self.session.export_target,
            'log_level': self.log_level.value
        }


# Глобальный экземпляр конфигурации
config = PomopilotConfig()

__all__ = [
    'config',
    'PomopilotConfig',
    'Environment',
    'LogLevel',
    'AIConfig',
    'StorageConfig',
    'TimerBehaviorConfig',
    'SessionConfig'
]

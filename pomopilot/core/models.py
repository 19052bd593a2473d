#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Pomopilot - Core Data Models
Модели данных таймера и сессий с валидацией и сериализацией
"""

import uuid
import logging
from datetime import datetime
from typing import Dict, List, Optional, Any
from dataclasses import dataclass, field, replace
from enum import Enum

logger = logging.getLogger(__name__)

# ===== ENUMS =====

class PhaseType(Enum):
    """Фазы цикла помодоро"""
    WORK = "Work"
    SHORT_BREAK = "Short Break"
    LONG_BREAK = "Long Break"
    DELAY = "Delay"

    @property
    def is_break(self) -> bool:
        return self in (PhaseType.SHORT_BREAK, PhaseType.LONG_BREAK)


class GateMode(Enum):
    """Режим сбора описания задачи перед первой рабочей фазой"""
    TEXT = "text"
    VOICE = "voice"

# ===== VALIDATION HELPERS =====

class ValidationError(Exception):
    """Ошибка валидации данных"""
    pass


def validate_int(value: Any, minimum: int, field_name: str) -> int:
    """Валидация целочисленных полей"""
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field_name} должен быть целым числом")
    if value < minimum:
        raise ValidationError(f"{field_name} должен быть не меньше {minimum}")
    return value


def parse_datetime(value: Any) -> Optional[datetime]:
    """Разбор ISO-строки; None для пустых и некорректных значений"""
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str) or not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        logger.warning(f"Invalid datetime value in stored data: {value!r}")
        return None


def format_datetime(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _text(data: Dict[str, Any], key: str) -> str:
    value = data.get(key, "")
    return value if isinstance(value, str) else ""

# ===== SETTINGS =====

@dataclass(frozen=True)
class TimerSettings:
    """Снимок настроек таймера. Неизменяемый: обновление = новый экземпляр"""
    work_minutes: int = 25
    short_break_minutes: int = 5
    long_break_minutes: int = 15
    cycles_before_long_break: int = 4
    delay_seconds: int = 30
    use_voice_interaction: bool = False

    # Имя поля в хранилище -> (атрибут, минимум)
    FIELD_MAP = {
        'workMinutes': ('work_minutes', 1),
        'shortBreakMinutes': ('short_break_minutes', 1),
        'longBreakMinutes': ('long_break_minutes', 1),
        'cyclesBeforeLongBreak': ('cycles_before_long_break', 1),
        'delaySeconds': ('delay_seconds', 0),
    }

    def __post_init__(self):
        for key, (attr, minimum) in self.FIELD_MAP.items():
            validate_int(getattr(self, attr), minimum, key)
        if not isinstance(self.use_voice_interaction, bool):
            raise ValidationError("useVoiceInteraction должен быть булевым значением")

    def duration_for(self, phase: PhaseType) -> int:
        """Полная длительность фазы в секундах"""
        if phase == PhaseType.WORK:
            return self.work_minutes * 60
        if phase == PhaseType.SHORT_BREAK:
            return self.short_break_minutes * 60
        if phase == PhaseType.LONG_BREAK:
            return self.long_break_minutes * 60
        return self.delay_seconds

    def to_dict(self) -> Dict[str, Any]:
        data = {key: getattr(self, attr) for key, (attr, _) in self.FIELD_MAP.items()}
        data['useVoiceInteraction'] = self.use_voice_interaction
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TimerSettings":
        """Загрузка с откатом к значению по умолчанию для каждого поля"""
        defaults = cls()
        values = {}

        for key, (attr, minimum) in cls.FIELD_MAP.items():
            value = data.get(key, getattr(defaults, attr))
            try:
                values[attr] = validate_int(value, minimum, key)
            except ValidationError as e:
                logger.warning(f"Falling back to default for {key}: {e}")
                values[attr] = getattr(defaults, attr)

        voice = data.get('useVoiceInteraction', defaults.use_voice_interaction)
        values['use_voice_interaction'] = voice if isinstance(voice, bool) else defaults.use_voice_interaction

        return cls(**values)

    @classmethod
    def default(cls) -> "TimerSettings":
        return cls()

# ===== CORE MODELS =====

@dataclass
class WorkPeriod:
    """Одна рабочая фаза с описанием пользователя и отзывом с перерыва"""
    id: str
    start_time: datetime
    end_time: Optional[datetime] = None
    input: str = ""
    task_description: str = ""
    break_feedback: str = ""
    ai_response: str = ""

    @property
    def is_completed(self) -> bool:
        return self.end_time is not None

    @property
    def duration(self) -> float:
        """Длительность в секундах, 0 для незавершенного периода"""
        if self.end_time is None:
            return 0.0
        return max(0.0, (self.end_time - self.start_time).total_seconds())

    def copy(self) -> "WorkPeriod":
        return replace(self)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'startTime': format_datetime(self.start_time),
            'endTime': format_datetime(self.end_time),
            'input': self.input,
            'taskDescription': self.task_description,
            'breakFeedback': self.break_feedback,
            'aiResponse': self.ai_response
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WorkPeriod":
        start_time = parse_datetime(data.get('startTime'))
        end_time = parse_datetime(data.get('endTime'))
        if start_time is None:
            # Без начала длительность не определена: считаем период мгновенным
            start_time = end_time or datetime.now()

        period_id = data.get('id')
        return cls(
            id=period_id if isinstance(period_id, str) and period_id else str(uuid.uuid4()),
            start_time=start_time,
            end_time=end_time,
            input=_text(data, 'input'),
            task_description=_text(data, 'taskDescription'),
            break_feedback=_text(data, 'breakFeedback'),
            ai_response=_text(data, 'aiResponse')
        )

    @classmethod
    def create(cls, start_time: Optional[datetime] = None, task_description: str = "") -> "WorkPeriod":
        """Создание нового открытого периода"""
        return cls(
            id=str(uuid.uuid4()),
            start_time=start_time or datetime.now(),
            task_description=task_description
        )


@dataclass
class Session:
    """Сессия: все рабочие периоды от начала до завершения полного цикла"""
    id: str
    start_time: datetime
    end_time: Optional[datetime] = None
    work_periods: List[WorkPeriod] = field(default_factory=list)
    ai_report: str = ""
    export_link: str = ""
    seed_narration: str = ""

    @property
    def is_completed(self) -> bool:
        return self.end_time is not None

    @property
    def total_work_duration(self) -> float:
        return sum(period.duration for period in self.work_periods)

    @property
    def formatted_date(self) -> str:
        return self.start_time.strftime("%b %d, %Y at %H:%M")

    def find_work_period(self, work_period_id: str) -> Optional[WorkPeriod]:
        for period in self.work_periods:
            if period.id == work_period_id:
                return period
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'startTime': format_datetime(self.start_time),
            'endTime': format_datetime(self.end_time),
            'workPeriods': [period.to_dict() for period in self.work_periods],
            'aiReport': self.ai_report,
            'exportLink': self.export_link,
            'seedNarration': self.seed_narration
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Session":
        periods = []
        raw_periods = data.get('workPeriods')
        if isinstance(raw_periods, list):
            for raw in raw_periods:
                if isinstance(raw, dict):
                    periods.append(WorkPeriod.from_dict(raw))
                else:
                    logger.warning(f"Skipping malformed work period entry: {raw!r}")

        start_time = parse_datetime(data.get('startTime'))
        if start_time is None:
            start_time = periods[0].start_time if periods else datetime.now()

        session_id = data.get('id')
        return cls(
            id=session_id if isinstance(session_id, str) and session_id else str(uuid.uuid4()),
            start_time=start_time,
            end_time=parse_datetime(data.get('endTime')),
            work_periods=periods,
            ai_report=_text(data, 'aiReport'),
            export_link=_text(data, 'exportLink'),
            seed_narration=_text(data, 'seedNarration')
        )

    @classmethod
    def create(cls, start_time: Optional[datetime] = None, seed_narration: str = "") -> "Session":
        """Создание новой активной сессии"""
        return cls(
            id=str(uuid.uuid4()),
            start_time=start_time or datetime.now(),
            seed_narration=seed_narration
        )

# ===== EVENT PAYLOADS =====

@dataclass(frozen=True)
class BreakFeedback:
    """Отзыв пользователя с перерыва и ответ AI для уже завершенного периода"""
    work_period_id: str
    feedback: str
    ai_response: str


__all__ = [
    'PhaseType',
    'GateMode',
    'ValidationError',
    'validate_int',
    'parse_datetime',
    'format_datetime',
    'TimerSettings',
    'WorkPeriod',
    'Session',
    'BreakFeedback'
]

#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Pomopilot - AI Text Service
Генерация напоминаний, вопросов на перерыве и отчетов о продуктивности
"""

import asyncio
import time
import logging
from datetime import datetime
from typing import Dict, List, Optional, Any, Sequence, Tuple
from dataclasses import dataclass, field
from enum import Enum

from openai import AsyncOpenAI

from pomopilot.config import config, AIConfig
from pomopilot.core.models import WorkPeriod

logger = logging.getLogger(__name__)

# ===== EXCEPTIONS =====

class AIServiceError(Exception):
    """Базовое исключение для AI сервиса"""
    pass

class AIProviderError(AIServiceError):
    """Ошибка провайдера AI"""
    pass

# ===== ENUMS =====

class AIProvider(Enum):
    """Источник ответа"""
    OPENAI = "openai"
    MOCK = "mock"
    FALLBACK = "fallback"

class PromptCategory(Enum):
    """Категории промптов"""
    REMINDER = "reminder"
    BREAK_ENGAGEMENT = "break_engagement"
    REPORT = "report"
    FEEDBACK = "feedback"
    START = "start"
    GENERAL = "general"

# ===== DATA CLASSES =====

@dataclass
class AIResponse:
    """Ответ AI"""
    content: str
    category: PromptCategory
    provider: AIProvider
    tokens_used: int = 0
    response_time_ms: int = 0
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())

    @property
    def is_live(self) -> bool:
        return self.provider == AIProvider.OPENAI

    def to_dict(self) -> Dict[str, Any]:
        return {
            'content': self.content,
            'category': self.category.value,
            'provider': self.provider.value,
            'tokens_used': self.tokens_used,
            'response_time_ms': self.response_time_ms,
            'timestamp': self.timestamp
        }

@dataclass
class AIStats:
    """Статистика AI сервиса"""
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    mock_responses: int = 0
    total_tokens_used: int = 0
    average_response_time_ms: float = 0.0
    requests_by_category: Dict[str, int] = field(default_factory=dict)
    provider_usage: Dict[str, int] = field(default_factory=dict)

    @property
    def success_rate(self) -> float:
        live_requests = self.successful_requests + self.failed_requests
        if live_requests == 0:
            return 0.0
        return (self.successful_requests / live_requests) * 100

    def to_dict(self) -> Dict[str, Any]:
        return {
            'total_requests': self.total_requests,
            'successful_requests': self.successful_requests,
            'failed_requests': self.failed_requests,
            'mock_responses': self.mock_responses,
            'total_tokens_used': self.total_tokens_used,
            'average_response_time_ms': round(self.average_response_time_ms, 2),
            'success_rate': round(self.success_rate, 2),
            'requests_by_category': self.requests_by_category,
            'provider_usage': self.provider_usage
        }

# ===== PROMPTS =====

class PromptBuilder:
    """Построение промптов для каждой точки взаимодействия"""

    SYSTEM_PROMPT = (
        "You are a supportive productivity assistant built into a Pomodoro timer. "
        "Keep answers short, warm and practical."
    )

    @staticmethod
    def end_of_session_reminder() -> str:
        return (
            "Generate a short, encouraging reminder that a work session is ending in 2 minutes. "
            "The message should remind the user to wrap up what they're doing and prepare for a break."
        )

    @staticmethod
    def break_engagement(break_minutes: int) -> str:
        return (
            f"Generate a short, thoughtful message for someone on a {break_minutes}-minute break from work. "
            "Ask them a reflective question about their work quality, break experience, "
            "or plans for their next session."
        )

    @staticmethod
    def break_feedback(feedback: str) -> str:
        return (
            f"Based on this break-time feedback: '{feedback}', generate a thoughtful, personalized "
            "response that acknowledges the feedback and provides a relevant question or suggestion "
            "to improve the next work session."
        )

    @staticmethod
    def productivity_report(work_periods: Sequence[WorkPeriod], seed_narration: str = "") -> str:
        prompt = "Generate a concise productivity report based on these work sessions:\n"
        if seed_narration:
            prompt += f"Session plan: {seed_narration}\n"

        for index, period in enumerate(work_periods, start=1):
            minutes = int(period.duration // 60)
            line = f"Session {index} ({minutes} minutes): {period.input}"
            if period.task_description:
                line += f" | Task: {period.task_description}"
            if period.break_feedback:
                line += f" | Break feedback: {period.break_feedback}"
            prompt += line + "\n"

        prompt += (
            "\nProvide actionable insights about productivity patterns, focused work time quality, "
            "and suggestions for improvement."
        )
        return prompt

    @staticmethod
    def session_planning(history: Sequence[Tuple[str, str]], utterance: str) -> str:
        """Промпт для голосового диалога перед первой рабочей фазой"""
        lines = [
            "You are helping someone plan their work session before a Pomodoro timer starts.",
            "Reply in one or two sentences and ask what specific task they will focus on.",
            "",
            "Conversation so far:"
        ]
        for speaker, text in history:
            lines.append(f"{speaker}: {text}")
        lines.append(f"User: {utterance}")
        return "\n".join(lines)


class RequestClassifier:
    """Определение категории промпта по ключевым фразам"""

    def __init__(self):
        self.patterns = self._load_patterns()

    def _load_patterns(self) -> List[Tuple[PromptCategory, List[str]]]:
        # Порядок важен: побеждает первая найденная категория
        return [
            (PromptCategory.REMINDER, ['ending in 2 minutes']),
            (PromptCategory.BREAK_ENGAGEMENT, ['break from work']),
            (PromptCategory.REPORT, ['productivity report']),
            (PromptCategory.FEEDBACK, ['break-time feedback']),
            (PromptCategory.START, ['plan their work session']),
        ]

    def classify(self, prompt: str) -> PromptCategory:
        prompt_lower = prompt.lower()
        for category, keywords in self.patterns:
            if any(keyword in prompt_lower for keyword in keywords):
                return category
        return PromptCategory.GENERAL


class FallbackResponseProvider:
    """Фиксированные ответы без обращения к модели"""

    def __init__(self):
        self.responses = self._load_responses()

    def _load_responses(self) -> Dict[PromptCategory, str]:
        return {
            PromptCategory.REMINDER: (
                "You have 2 minutes remaining in this session. Start wrapping up your current task "
                "and prepare for your break."
            ),
            PromptCategory.BREAK_ENGAGEMENT: (
                "How's your break going? Take a moment to reflect: what aspect of your last work "
                "session felt most productive to you?"
            ),
            PromptCategory.REPORT: (
                "Productivity Report: You had 3 focused work sessions with good output. Your second "
                "session appears to have been your most productive. Consider scheduling challenging "
                "tasks during that time of day for peak performance."
            ),
            PromptCategory.FEEDBACK: (
                "Thanks for sharing that. It sounds like you found some good momentum in your last "
                "session. For your next session, consider setting a specific mini-goal to maintain "
                "that focus. What would be a satisfying accomplishment to reach in the next 25 minutes?"
            ),
            PromptCategory.START: (
                "I'm here to help you plan your work session. What specific task will you be "
                "focusing on today?"
            ),
            PromptCategory.GENERAL: (
                "I'm here to help you stay productive. Let me know if you need anything specific."
            ),
        }

    def get_response(self, category: PromptCategory) -> str:
        return self.responses.get(category, self.responses[PromptCategory.GENERAL])

# ===== MAIN AI SERVICE =====

class AITextService:
    """Сервис генерации текста.

    Никогда не выбрасывает исключения вызывающему коду: без ключа API отвечает
    фиксированным текстом после короткой задержки, при ошибке провайдера
    возвращает тот же текст и записывает ``last_error``.
    """

    def __init__(self, ai_config: Optional[AIConfig] = None, client: Optional[Any] = None):
        self.ai_config = ai_config or config.ai
        self.openai_client = client
        self.enabled = self._initialize_openai()

        self.classifier = RequestClassifier()
        self.fallback_provider = FallbackResponseProvider()
        self.prompts = PromptBuilder()

        self.stats = AIStats()
        self.last_error: Optional[str] = None
        self._in_flight = 0

        logger.info(f"AI Text Service initialized - OpenAI: {'✅' if self.enabled else '❌ (mock mode)'}")

    def _initialize_openai(self) -> bool:
        """Инициализация OpenAI клиента"""
        if self.openai_client is not None:
            return True

        if not self.ai_config.openai_api_key:
            logger.warning("OpenAI API key not configured, using mock responses")
            return False

        try:
            self.openai_client = AsyncOpenAI(
                api_key=self.ai_config.openai_api_key,
                timeout=self.ai_config.request_timeout
            )
            logger.info("OpenAI client initialized successfully")
            return True
        except Exception as e:
            logger.error(f"Failed to initialize OpenAI client: {e}")
            return False

    @property
    def is_loading(self) -> bool:
        """True, пока выполняется хотя бы один запрос"""
        return self._in_flight > 0

    @property
    def provider(self) -> AIProvider:
        return AIProvider.OPENAI if self.enabled else AIProvider.MOCK

    async def generate(self, prompt: str) -> str:
        response = await self.generate_response(prompt)
        return response.content

    async def generate_response(self, prompt: str) -> AIResponse:
        """Генерация ответа с откатом на фиксированный текст"""
        category = self.classifier.classify(prompt)
        start_time = time.time()

        self._in_flight += 1
        self.stats.total_requests += 1
        try:
            if not self.enabled:
                if self.ai_config.mock_delay_seconds > 0:
                    await asyncio.sleep(self.ai_config.mock_delay_seconds)
                self.stats.mock_responses += 1
                response = self._generate_fallback_response(category, AIProvider.MOCK)
            else:
                self.last_error = None
                try:
                    response = await self._generate_openai_response(prompt, category)
                    self.stats.successful_requests += 1
                except Exception as e:
                    logger.error(f"AI provider error ({category.value}): {e}")
                    self.last_error = str(e) or e.__class__.__name__
                    self.stats.failed_requests += 1
                    response = self._generate_fallback_response(category, AIProvider.FALLBACK)

            response.response_time_ms = int((time.time() - start_time) * 1000)
            self._update_request_stats(category, response)
            return response
        finally:
            self._in_flight -= 1

    async def _generate_openai_response(self, prompt: str, category: PromptCategory) -> AIResponse:
        """Один запрос к OpenAI без повторов"""
        messages = [
            {"role": "system", "content": PromptBuilder.SYSTEM_PROMPT},
            {"role": "user", "content": prompt}
        ]

        response = await self.openai_client.chat.completions.create(
            model=self.ai_config.openai_model,
            messages=messages,
            max_tokens=self.ai_config.openai_max_tokens,
            temperature=0.7,
            timeout=self.ai_config.request_timeout
        )

        if not response.choices:
            raise AIProviderError("OpenAI returned no choices")

        content = response.choices[0].message.content
        if not content or not content.strip():
            raise AIProviderError("OpenAI returned an empty message")

        usage = getattr(response, 'usage', None)
        tokens_used = getattr(usage, 'total_tokens', 0) if usage else 0

        return AIResponse(
            content=content.strip(),
            category=category,
            provider=AIProvider.OPENAI,
            tokens_used=tokens_used or 0
        )

    def _generate_fallback_response(self, category: PromptCategory, provider: AIProvider) -> AIResponse:
        return AIResponse(
            content=self.fallback_provider.get_response(category),
            category=category,
            provider=provider
        )

    def _update_request_stats(self, category: PromptCategory, response: AIResponse) -> None:
        key = category.value
        self.stats.requests_by_category[key] = self.stats.requests_by_category.get(key, 0) + 1

        provider = response.provider.value
        self.stats.provider_usage[provider] = self.stats.provider_usage.get(provider, 0) + 1

        self.stats.total_tokens_used += response.tokens_used

        # Скользящее среднее по всем запросам
        total = self.stats.total_requests
        current_avg = self.stats.average_response_time_ms
        self.stats.average_response_time_ms = ((current_avg * (total - 1)) + response.response_time_ms) / total

    # ===== CONVENIENCE METHODS =====

    async def get_end_of_session_reminder(self) -> str:
        return await self.generate(self.prompts.end_of_session_reminder())

    async def get_break_engagement(self, break_minutes: int) -> str:
        return await self.generate(self.prompts.break_engagement(break_minutes))

    async def process_break_feedback(self, feedback: str) -> str:
        return await self.generate(self.prompts.break_feedback(feedback))

    async def get_productivity_report(self, work_periods: Sequence[WorkPeriod],
                                      seed_narration: str = "") -> AIResponse:
        return await self.generate_response(
            self.prompts.productivity_report(work_periods, seed_narration)
        )

    async def converse(self, history: Sequence[Tuple[str, str]], utterance: str) -> str:
        """Реплика ассистента в диалоге планирования сессии"""
        return await self.generate(self.prompts.session_planning(history, utterance))

    # ===== STATS =====

    def get_stats(self) -> Dict[str, Any]:
        return {
            'service': self.stats.to_dict(),
            'enabled': self.enabled,
            'provider': self.provider.value,
            'model': self.ai_config.openai_model,
            'last_error': self.last_error,
            'is_loading': self.is_loading
        }


__all__ = [
    # Exceptions
    'AIServiceError',
    'AIProviderError',

    # Enums
    'AIProvider',
    'PromptCategory',

    # Data classes
    'AIResponse',
    'AIStats',

    # Components
    'PromptBuilder',
    'RequestClassifier',
    'FallbackResponseProvider',

    # Main service
    'AITextService'
]

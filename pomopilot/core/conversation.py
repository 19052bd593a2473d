#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Pomopilot - Session Planning Conversation
Сбор описания задачи перед стартом: извлечение задачи и голосовой диалог
"""

import re
import logging
from typing import List, Optional, Tuple
from dataclasses import dataclass
from enum import Enum

logger = logging.getLogger(__name__)

# Проверяются по порядку, побеждает первый найденный
TASK_INDICATORS = (
    "work on",
    "working on",
    "focus on",
    "focusing on",
    "task is",
    "project is",
)

START_TRIGGERS = ("ready", "let's go", "start", "begin", "yes", "sure", "okay", "ok")

MIN_UTTERANCE_LENGTH = 10
MAX_WHOLE_INPUT_LENGTH = 100

USER = "User"
ASSISTANT = "Assistant"

_SENTENCE_SPLIT = re.compile(r"[.!?]")

# ===== TASK EXTRACTION =====

def split_sentences(text: str) -> List[str]:
    return [sentence.strip() for sentence in _SENTENCE_SPLIT.split(text)]


def extract_task_from_conversation(text: str) -> str:
    """Эвристическое извлечение описания задачи из свободного текста"""
    if not text or not text.strip():
        return ""

    sentences = split_sentences(text)

    for sentence in sentences:
        lowered = sentence.lower()
        for indicator in TASK_INDICATORS:
            position = lowered.find(indicator)
            if position == -1:
                continue
            remainder = sentence[position + len(indicator):].strip()
            if remainder:
                return remainder

    for sentence in sentences:
        if sentence:
            return sentence

    stripped = text.strip()
    if len(stripped) < MAX_WHOLE_INPUT_LENGTH:
        return stripped
    return ""


def is_start_trigger(text: str) -> bool:
    lowered = text.lower()
    return any(trigger in lowered for trigger in START_TRIGGERS)

# ===== VOICE CONVERSATION =====

class ReplyKind(Enum):
    """Тип ответа ассистента на реплику"""
    CLARIFY = "clarify"
    ASSISTANT = "assistant"
    READY = "ready"


@dataclass(frozen=True)
class ConversationTurn:
    speaker: str
    text: str


@dataclass(frozen=True)
class ConversationReply:
    kind: ReplyKind
    text: str

    @property
    def finished(self) -> bool:
        return self.kind == ReplyKind.READY


class VoiceConversation:
    """Диалог планирования сессии.

    Реплики поступают уже распознанным текстом. Фраза-триггер учитывается
    только после хотя бы одной предыдущей реплики пользователя.
    """

    GREETING = (
        "I'm here to help you plan your work session. What specific task will you be "
        "focusing on today?"
    )
    CLARIFY_MESSAGE = "Could you tell me a bit more about what you'd like to accomplish in this session?"
    READY_MESSAGE = "Great! Starting your Pomodoro session now. Focus well!"

    def __init__(self, ai_service, greeting: Optional[str] = None):
        self.ai_service = ai_service
        self.turns: List[ConversationTurn] = [ConversationTurn(ASSISTANT, greeting or self.GREETING)]
        self.finished = False

    @property
    def user_turns(self) -> List[ConversationTurn]:
        return [turn for turn in self.turns if turn.speaker == USER]

    def history(self) -> List[Tuple[str, str]]:
        return [(turn.speaker, turn.text) for turn in self.turns]

    async def handle_utterance(self, text: str) -> ConversationReply:
        if self.finished:
            return ConversationReply(ReplyKind.READY, self.READY_MESSAGE)

        utterance = text.strip()
        if not utterance:
            return self._reply(ReplyKind.CLARIFY, self.CLARIFY_MESSAGE)

        history = self.history()
        had_user_turn = bool(self.user_turns)
        self.turns.append(ConversationTurn(USER, utterance))

        if had_user_turn and is_start_trigger(utterance):
            self.finished = True
            logger.info("Voice planning finished by trigger phrase")
            return self._reply(ReplyKind.READY, self.READY_MESSAGE)

        if len(utterance) < MIN_UTTERANCE_LENGTH:
            return self._reply(ReplyKind.CLARIFY, self.CLARIFY_MESSAGE)

        answer = await self.ai_service.converse(history, utterance)
        return self._reply(ReplyKind.ASSISTANT, answer)

    def _reply(self, kind: ReplyKind, text: str) -> ConversationReply:
        self.turns.append(ConversationTurn(ASSISTANT, text))
        return ConversationReply(kind, text)

    def finish(self) -> None:
        self.finished = True

    def transcript(self) -> str:
        """Полная история диалога одной строкой"""
        return "\n".join(f"{turn.speaker}: {turn.text}" for turn in self.turns)

    def user_text(self) -> str:
        """Только реплики пользователя, каждая как отдельное предложение"""
        parts = []
        for turn in self.user_turns:
            text = turn.text
            parts.append(text if text[-1] in ".!?" else text + ".")
        return " ".join(parts)


__all__ = [
    'TASK_INDICATORS',
    'START_TRIGGERS',
    'split_sentences',
    'extract_task_from_conversation',
    'is_start_trigger',
    'ReplyKind',
    'ConversationTurn',
    'ConversationReply',
    'VoiceConversation'
]

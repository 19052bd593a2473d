"""Tests for the AI text service: mock mode, live client handling and prompts."""

import asyncio
from datetime import datetime, timedelta
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from pomopilot.config import AIConfig
from pomopilot.core.ai_service import (
    AITextService, AIProvider, PromptBuilder, PromptCategory, RequestClassifier
)
from pomopilot.core.models import WorkPeriod

REMINDER_TEXT = (
    "You have 2 minutes remaining in this session. Start wrapping up your current task "
    "and prepare for your break."
)


def _fake_client(content=None, error=None):
    if error is not None:
        create = AsyncMock(side_effect=error)
    else:
        response = SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content=content))],
            usage=SimpleNamespace(total_tokens=42),
        )
        create = AsyncMock(return_value=response)
    return SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))


@pytest.mark.asyncio
async def test_mock_reminder_is_deterministic(ai_service):
    prompt = PromptBuilder.end_of_session_reminder()

    first = await ai_service.generate(prompt)
    await ai_service.generate(PromptBuilder.break_engagement(5))
    second = await ai_service.generate(prompt)

    assert first == REMINDER_TEXT
    assert second == first
    assert ai_service.last_error is None
    assert ai_service.stats.mock_responses == 3


@pytest.mark.parametrize("prompt,category", [
    (PromptBuilder.end_of_session_reminder(), PromptCategory.REMINDER),
    (PromptBuilder.break_engagement(5), PromptCategory.BREAK_ENGAGEMENT),
    (PromptBuilder.productivity_report([]), PromptCategory.REPORT),
    (PromptBuilder.break_feedback("felt scattered"), PromptCategory.FEEDBACK),
    (PromptBuilder.session_planning([], "I need to write tests"), PromptCategory.START),
    ("What's the weather like?", PromptCategory.GENERAL),
])
def test_classifier_matches_prompt_builders(prompt, category):
    assert RequestClassifier().classify(prompt) == category


@pytest.mark.asyncio
async def test_is_loading_while_request_in_flight():
    service = AITextService(AIConfig(openai_api_key=None, mock_delay_seconds=0.05))

    task = asyncio.create_task(service.generate("hello"))
    await asyncio.sleep(0)
    assert service.is_loading

    result = await task
    assert not service.is_loading
    assert result.startswith("I'm here to help you stay productive")


@pytest.mark.asyncio
async def test_live_client_response_is_used(ai_config):
    client = _fake_client(content="  Wrap it up, great work!  ")
    service = AITextService(ai_config, client=client)

    response = await service.generate_response(PromptBuilder.end_of_session_reminder())

    assert response.content == "Wrap it up, great work!"
    assert response.provider == AIProvider.OPENAI
    assert response.tokens_used == 42
    assert service.stats.successful_requests == 1
    client.chat.completions.create.assert_awaited_once()


@pytest.mark.asyncio
async def test_provider_error_falls_back_and_records_error(ai_config):
    service = AITextService(ai_config, client=_fake_client(error=RuntimeError("network down")))

    response = await service.generate_response(PromptBuilder.end_of_session_reminder())

    assert response.content == REMINDER_TEXT
    assert response.provider == AIProvider.FALLBACK
    assert service.last_error == "network down"
    assert service.stats.failed_requests == 1
    assert not service.is_loading


@pytest.mark.asyncio
async def test_empty_live_message_falls_back(ai_config):
    service = AITextService(ai_config, client=_fake_client(content="   "))

    text = await service.process_break_feedback("good focus today")

    assert text.startswith("Thanks for sharing that.")
    assert service.last_error is not None


def test_report_prompt_lists_each_period():
    start = datetime(2026, 10, 18, 9, 0)
    period = WorkPeriod.create(start, task_description="quarterly report")
    period.end_time = start + timedelta(minutes=25)
    period.input = "drafted the summary"
    period.break_feedback = "felt focused"

    prompt = PromptBuilder.productivity_report([period], seed_narration="finish the report")

    assert "Session plan: finish the report" in prompt
    assert "Session 1 (25 minutes): drafted the summary" in prompt
    assert "Task: quarterly report" in prompt
    assert "Break feedback: felt focused" in prompt
    assert "productivity report" in prompt

# tests/test_enhancer.py

from __future__ import annotations

import json

import httpx
import openai
import pytest

from taskgenie.ai.client import OpenAITaskEnhancer, classify_error
from taskgenie.ai.enhancement import FALLBACK_ENHANCEMENT, apply_enhancement, parse_enhancement
from taskgenie.ai.offline import OfflineTaskEnhancer
from taskgenie.errors import AIServiceError
from taskgenie.tasks.task_models import Priority, SubTask, TaskDraft

from .fakes import FakeOpenAIClient, RecordingSleep

_REQUEST = httpx.Request("POST", "https://ai.example/v1/chat/completions")

GOOD_REPLY = json.dumps(
    {
        "description": "Prepare the quarterly report.",
        "priority": "High",
        "subtasks": ["a", "b", "c", "d", "e", "f"],
        "tags": ["Work", "Report", "Q3", "Extra"],
    }
)


def _status_error(cls, status: int):
    return cls("error", response=httpx.Response(status, request=_REQUEST), body=None)


def _enhancer(settings, script, sleep=None) -> tuple[OpenAITaskEnhancer, FakeOpenAIClient]:
    client = FakeOpenAIClient(script)
    return OpenAITaskEnhancer(settings, client=client, sleep=sleep or RecordingSleep()), client


@pytest.mark.asyncio
async def test_success_caps_lists(settings) -> None:
    enhancer, client = _enhancer(settings, [GOOD_REPLY])

    result = await enhancer.enhance("Quarterly report")

    assert result.priority is Priority.HIGH
    assert len(result.subtasks) == 5
    assert result.tags == ["Work", "Report", "Q3"]
    call = client.completions.calls[0]
    assert call["model"] == "test-model"
    assert call["response_format"] == {"type": "json_object"}
    assert "Quarterly report" in call["messages"][-1]["content"]


@pytest.mark.asyncio
async def test_transient_errors_are_retried_with_backoff(settings) -> None:
    sleep = RecordingSleep()
    enhancer, client = _enhancer(
        settings,
        [_status_error(openai.RateLimitError, 429), "not json", GOOD_REPLY],
        sleep=sleep,
    )

    result = await enhancer.enhance("Quarterly report")

    assert result.description == "Prepare the quarterly report."
    assert len(client.completions.calls) == 3
    assert sleep.delays == [1.0, 2.0]


@pytest.mark.asyncio
async def test_gives_up_after_max_attempts(settings) -> None:
    sleep = RecordingSleep()
    enhancer, client = _enhancer(
        settings,
        [openai.APIConnectionError(request=_REQUEST), "", _status_error(openai.InternalServerError, 503)],
        sleep=sleep,
    )

    with pytest.raises(AIServiceError) as exc:
        await enhancer.enhance("x")

    assert exc.value.kind == "transient"
    assert len(client.completions.calls) == 3
    assert sleep.delays == [1.0, 2.0]


@pytest.mark.asyncio
async def test_auth_errors_are_not_retried(settings) -> None:
    sleep = RecordingSleep()
    enhancer, client = _enhancer(
        settings, [_status_error(openai.AuthenticationError, 401), GOOD_REPLY], sleep=sleep
    )

    with pytest.raises(AIServiceError) as exc:
        await enhancer.enhance("x")

    assert exc.value.kind == "configuration"
    assert len(client.completions.calls) == 1
    assert sleep.delays == []


def test_missing_key_is_a_configuration_error(settings) -> None:
    with pytest.raises(AIServiceError) as exc:
        OpenAITaskEnhancer(settings)
    assert not exc.value.retryable


def test_classify_error_kinds() -> None:
    assert classify_error(_status_error(openai.PermissionDeniedError, 403)).kind == "configuration"
    assert classify_error(_status_error(openai.BadRequestError, 400)).kind == "configuration"
    assert classify_error(_status_error(openai.InternalServerError, 500)).kind == "transient"
    assert classify_error(RuntimeError("weird")).kind == "transient"


def test_parse_enhancement_defaults_priority() -> None:
    result = parse_enhancement(json.dumps({"description": "d", "priority": "Sometime"}))
    assert result.priority is Priority.MEDIUM
    assert result.subtasks == [] and result.tags == []
    with pytest.raises(AIServiceError):
        parse_enhancement("[1, 2]")


def test_apply_enhancement_replaces_subtasks_and_appends_tags() -> None:
    draft = TaskDraft(
        title="Report",
        tags=["Work"],
        subtasks=[SubTask(id="old", title="old step", is_completed=True)],
    )

    out = apply_enhancement(draft, parse_enhancement(GOOD_REPLY))

    assert out.title == "Report"
    assert out.priority is Priority.HIGH
    assert [s.title for s in out.subtasks] == ["a", "b", "c", "d", "e"]
    assert not any(s.is_completed for s in out.subtasks)
    assert out.tags == ["Work", "Report", "Q3"]
    assert draft.tags == ["Work"]


@pytest.mark.asyncio
async def test_offline_enhancer_returns_fallback() -> None:
    result = await OfflineTaskEnhancer().enhance("anything")
    assert result == FALLBACK_ENHANCEMENT
    assert result.subtasks == ["Review task details"]

# src/taskgenie/ai/client.py

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

import httpx
import openai
from openai import AsyncOpenAI

from ..errors import AIServiceError
from .enhancement import Enhancement, parse_enhancement

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = "You are an intelligent productivity assistant helping to organize tasks."

_PROMPT_TEMPLATE = """
I am creating a task manager task with the title: "{title}".
Please analyze this task title and provide:
1. A better, more professional description (max 2 sentences).
2. A suggested priority level (Low, Medium, High, or Urgent).
3. A list of up to 5 breakdown sub-steps.
4. A list of up to 3 short relevant tags.
Reply with a JSON object with keys "description", "priority", "subtasks", "tags".
"""

Sleep = Callable[[float], Awaitable[Any]]


def _is_auth_error(exc: Exception) -> bool:
    if isinstance(exc, (openai.AuthenticationError, openai.PermissionDeniedError)):
        return True
    return exc.__class__.__name__ in {
        "AuthenticationError",
        "PermissionDeniedError",
        "UnauthorizedError",
    }


def _is_rate_limit_error(exc: Exception) -> bool:
    if isinstance(exc, openai.RateLimitError):
        return True
    return exc.__class__.__name__ in {"RateLimitError", "TooManyRequestsError"}


def _is_connection_error(exc: Exception) -> bool:
    if isinstance(exc, (openai.APIConnectionError, openai.APITimeoutError)):
        return True
    return exc.__class__.__name__ in {
        "APIConnectionError",
        "APITimeoutError",
        "Timeout",
        "ConnectTimeout",
        "ReadTimeout",
        "WriteTimeout",
    }


def _is_server_error(exc: Exception) -> bool:
    status = getattr(exc, "status_code", None)
    return isinstance(status, int) and status >= 500


def classify_error(exc: Exception) -> AIServiceError:
    """Map a provider exception onto configuration (fail fast) vs transient (retry)."""
    if isinstance(exc, AIServiceError):
        return exc
    if _is_auth_error(exc):
        return AIServiceError(
            "AI authentication failed. Check your API key (TASKGENIE_AI_API_KEY).",
            kind="configuration",
        )
    if _is_rate_limit_error(exc):
        return AIServiceError("AI service is busy (rate-limited). Try again later.", kind="transient")
    if _is_connection_error(exc):
        return AIServiceError("AI network/timeout error. Try again later.", kind="transient")
    if _is_server_error(exc):
        return AIServiceError("AI service is unavailable. Try again later.", kind="transient")
    if isinstance(exc, openai.BadRequestError) or exc.__class__.__name__ == "NotFoundError":
        return AIServiceError(f"AI request rejected: {exc}", kind="configuration")
    return AIServiceError(f"AI request failed: {exc.__class__.__name__}", kind="transient")


def friendly_ai_error_message(err: AIServiceError) -> str:
    if err.kind == "configuration":
        return f"{err} (check your key and model settings)."
    return str(err)


class OpenAITaskEnhancer:
    """
    Title -> Enhancement via an OpenAI-compatible chat completions endpoint.

    Behavior:
    - missing key or auth/permission errors -> AIServiceError(kind="configuration"), no retry
    - rate limit / network / 5xx / garbled reply -> retried up to max_attempts with
      exponential backoff (backoff_seconds * 2**n)
    """

    def __init__(
        self,
        settings: Any,
        *,
        client: Any = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        api_key = getattr(settings, "ai_api_key", None)
        if client is None:
            if not api_key or not str(api_key).strip():
                raise AIServiceError(
                    "AI API key is not set. Set TASKGENIE_AI_API_KEY in your .env.",
                    kind="configuration",
                )
            timeout = float(getattr(settings, "ai_timeout_seconds", 30.0))
            # SDK retries are disabled; retry policy lives in enhance().
            client = AsyncOpenAI(
                api_key=str(api_key),
                base_url=str(getattr(settings, "ai_base_url", "") or "") or None,
                timeout=httpx.Timeout(timeout, connect=5.0),
                max_retries=0,
            )
        self._client = client
        self._model = str(getattr(settings, "ai_model", "gemini-2.5-flash"))
        self._max_attempts = max(1, int(getattr(settings, "ai_max_attempts", 3)))
        self._backoff = max(0.0, float(getattr(settings, "ai_backoff_seconds", 1.0)))
        self._sleep = sleep

    async def _request(self, title: str) -> Enhancement:
        resp = await self._client.chat.completions.create(
            model=self._model,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": _PROMPT_TEMPLATE.format(title=title)},
            ],
            response_format={"type": "json_object"},
        )
        try:
            text = resp.choices[0].message.content
        except (AttributeError, IndexError):
            text = None
        return parse_enhancement(text)

    async def enhance(self, title: str) -> Enhancement:
        if not title or not title.strip():
            raise AIServiceError("A task title is required for AI enhancement.", kind="configuration")

        last_error: AIServiceError | None = None
        for attempt in range(1, self._max_attempts + 1):
            try:
                result = await self._request(title.strip())
                logger.debug("AI enhancement ok model=%s attempt=%d", self._model, attempt)
                return result
            except Exception as e:
                err = classify_error(e)
                if not err.retryable:
                    logger.info("AI enhancement failed (not retried): %s", err)
                    if err is e:
                        raise
                    raise err from e
                last_error = err
                if attempt < self._max_attempts:
                    delay = self._backoff * (2 ** (attempt - 1))
                    logger.info(
                        "AI enhancement attempt %d/%d failed (%s); retrying in %.1fs",
                        attempt,
                        self._max_attempts,
                        err,
                        delay,
                    )
                    await self._sleep(delay)

        assert last_error is not None
        raise last_error

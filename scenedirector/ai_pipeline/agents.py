# scenedirector/ai_pipeline/agents.py
"""
Gemini API integration for the command director.

The director only needs "prompt in, raw text out"; anything that satisfies
``EnvelopeModel`` can stand in for Gemini (tests use a scripted fake).
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Awaitable, Callable, Protocol, TypeVar

from google import genai
from google.genai import errors, types

from ..config import Settings, settings as default_settings
from .router import ThinkingLevel


logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_STATUSES = frozenset({429, 500, 502, 503})

_RETRY_DELAY_RE = re.compile(r'retryDelay"?\s*:\s*"(\d+)s"', re.IGNORECASE)

_client: genai.Client | None = None


def _get_client(api_key: str | None) -> genai.Client:
    """Lazy initialization of the Gemini client."""
    global _client
    if _client is None:
        if not api_key:
            raise RuntimeError("GEMINI_API_KEY environment variable not set")
        _client = genai.Client(api_key=api_key)
    return _client


class ModelCallError(RuntimeError):
    """A model call failed; ``status`` carries the HTTP status when known."""

    def __init__(self, message: str, status: int | None = None, retry_after_s: float | None = None) -> None:
        super().__init__(message)
        self.status = status
        self.retry_after_s = retry_after_s


class EnvelopeModel(Protocol):
    async def generate(
        self,
        system_instruction: str,
        user_prompt: str,
        model: str,
        thinking_level: ThinkingLevel,
    ) -> str:
        ...


def suggested_retry_delay(message: str) -> float | None:
    """Server-suggested ``retryDelay`` (seconds) embedded in an error message."""
    match = _RETRY_DELAY_RE.search(message)
    return float(match.group(1)) if match else None


class GeminiEnvelopeAgent:
    """Calls Gemini with a JSON response mime type and returns the raw text."""

    name: str = "CommandDirector"

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or default_settings

    async def generate(
        self,
        system_instruction: str,
        user_prompt: str,
        model: str,
        thinking_level: ThinkingLevel,
    ) -> str:
        client = _get_client(self.settings.gemini_api_key)
        level = getattr(types.ThinkingLevel, thinking_level.value.upper(), types.ThinkingLevel.LOW)

        logger.info("[%s] Calling Gemini (model=%s, thinking=%s)", self.name, model, thinking_level.value)
        try:
            response = await asyncio.wait_for(
                client.aio.models.generate_content(
                    model=model,
                    contents=user_prompt,
                    config=types.GenerateContentConfig(
                        system_instruction=system_instruction,
                        temperature=self.settings.temperature,
                        response_mime_type="application/json",
                        thinking_config=types.ThinkingConfig(thinking_level=level),
                    ),
                ),
                timeout=self.settings.model_timeout_s,
            )
        except asyncio.TimeoutError as e:
            raise ModelCallError(f"API call timed out after {self.settings.model_timeout_s:.0f} seconds") from e
        except errors.APIError as e:
            raise ModelCallError(str(e), status=e.code, retry_after_s=suggested_retry_delay(str(e))) from e

        return response.text or ""


async def call_with_retries(
    fn: Callable[[], Awaitable[T]],
    max_retries: int = 2,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """
    Run ``fn`` and retry transient failures (429/500/502/503).

    Backoff is the server-suggested delay when present, otherwise
    ``min(1.2s * (attempt + 1), 6s)``. Non-retryable errors propagate at once.
    """
    attempt = 0
    while True:
        try:
            return await fn()
        except ModelCallError as e:
            if e.status not in RETRYABLE_STATUSES or attempt >= max_retries:
                raise
            delay = e.retry_after_s if e.retry_after_s is not None else min(1.2 * (attempt + 1), 6.0)
            logger.warning(
                "[*] Model call failed with status %s, retry %d/%d in %.1fs",
                e.status, attempt + 1, max_retries, delay,
            )
            await sleep(delay)
            attempt += 1

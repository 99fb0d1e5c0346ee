"""OpenRouter completion client built on the OpenAI-compatible SDK."""
from __future__ import annotations

import time
from typing import Any

from app.config import settings
from app.services import logger as log_service


class UpstreamError(Exception):
    """The completion service failed, timed out or returned no text."""


class CompletionClient:
    """Single-prompt, single-response access to the completion service.

    No conversation state and no streaming: every call sends one user
    message and returns the raw text of the first choice.
    """

    def __init__(self, openai_client: Any, model: str):
        self._client = openai_client
        self.model = model

    @staticmethod
    def _response_text(response: Any) -> str:
        choices = getattr(response, "choices", None) or []
        if not choices:
            return ""
        message = getattr(choices[0], "message", None)
        text = getattr(message, "content", None)
        return text if isinstance(text, str) else ""

    async def complete(self, prompt: str, *, caller: str = "completion") -> str:
        t0 = time.monotonic()
        try:
            response = await self._client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
                max_tokens=settings.llm_max_tokens,
            )
        except Exception as e:
            log_service.log_llm_call(
                model=self.model,
                caller=caller,
                duration_ms=int((time.monotonic() - t0) * 1000),
                status="error",
                error=str(e),
            )
            raise UpstreamError(f"Completion request failed: {e}") from e

        usage = getattr(response, "usage", None)
        log_service.log_llm_call(
            model=self.model,
            caller=caller,
            input_tokens=getattr(usage, "prompt_tokens", 0) or 0,
            output_tokens=getattr(usage, "completion_tokens", 0) or 0,
            duration_ms=int((time.monotonic() - t0) * 1000),
        )

        text = self._response_text(response)
        if not text.strip():
            raise UpstreamError("Completion response contained no text")
        return text


def get_model() -> str:
    """Get the active OpenRouter model id."""
    if settings.openrouter_model:
        return settings.openrouter_model
    return settings.default_model


def get_client() -> CompletionClient:
    """Build a completion client for OpenRouter.

    Retries and timeouts are delegated to the SDK so the stage contracts
    above this boundary stay unchanged.
    """
    from openai import AsyncOpenAI

    base_url = settings.openrouter_base_url.strip() or "https://openrouter.ai/api/v1"
    openai_client = AsyncOpenAI(
        api_key=settings.openrouter_api_key,
        base_url=base_url,
        timeout=settings.llm_timeout_seconds,
        max_retries=settings.llm_max_retries,
    )
    return CompletionClient(openai_client, model=get_model())


_client: CompletionClient | None = None


def client() -> CompletionClient:
    """Get or create the completion client."""
    global _client
    if _client is None:
        _client = get_client()
    return _client

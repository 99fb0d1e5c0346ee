from __future__ import annotations

from typing import Any

from loguru import logger

from app.llm_client import CompletionClient, UpstreamError
from app.llm_client import client as llm_client
from app.research_core.extract.service import extract_json_object


class BaseAgent:
    """Prompt-in, JSON-list-out wrapper around the completion client.

    Subclasses build a prompt and name the JSON key holding their results.
    Failures never escape a stage: an upstream error or an unparseable
    response both come back as an empty list.
    """

    name: str = "base"

    def __init__(self, client: CompletionClient | None = None):
        self.client = client

    def _active_client(self) -> CompletionClient:
        return self.client or llm_client()

    async def _complete_list(self, prompt: str, key: str, *, subject: str) -> list[Any]:
        try:
            text = await self._active_client().complete(prompt, caller=self.name)
        except UpstreamError as e:
            logger.warning(f"{self.name}: completion failed for {subject}: {e}")
            return []

        payload = extract_json_object(text)
        if payload is None:
            logger.warning(f"{self.name}: no JSON object in response for {subject}")
            return []

        items = payload.get(key)
        if not isinstance(items, list):
            logger.warning(f"{self.name}: response for {subject} has no '{key}' list")
            return []
        return items

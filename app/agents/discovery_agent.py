from __future__ import annotations

from app.agents.base import BaseAgent
from app.research_core.models.interfaces import DiscoveredCasino
from app.services.prompt_store import render_prompt


class DiscoveryAgent(BaseAgent):
    """Asks the completion service for the licensed casinos of one state."""

    name = "discovery"

    async def discover(self, state_name: str) -> list[DiscoveredCasino]:
        prompt = render_prompt("discovery.casinos_prompt", state=state_name)
        items = await self._complete_list(prompt, "casinos", subject=state_name)
        casinos = [DiscoveredCasino.from_payload(item) for item in items]
        return [c for c in casinos if c is not None]

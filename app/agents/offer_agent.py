from __future__ import annotations

from app.agents.base import BaseAgent
from app.research_core.models.interfaces import DiscoveredOffer
from app.services.prompt_store import render_prompt


class OfferResearchAgent(BaseAgent):
    """Asks the completion service for a casino's current (non-sports) promotions."""

    name = "offer_research"

    async def research(self, casino_name: str, state_name: str) -> list[DiscoveredOffer]:
        prompt = render_prompt(
            "offers.research_prompt",
            casino_name=casino_name,
            state=state_name,
        )
        items = await self._complete_list(prompt, "offers", subject=f"{casino_name} ({state_name})")
        offers = [DiscoveredOffer.from_payload(item) for item in items]
        return [o for o in offers if o is not None]

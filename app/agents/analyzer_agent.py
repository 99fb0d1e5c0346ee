from __future__ import annotations

from loguru import logger

from app.agents.base import BaseAgent
from app.models.schemas import OfferAnalysis, OfferSummary
from app.research_core.extract.service import extract_json_object
from app.services.prompt_store import render_prompt


def _format_offers(offers: list[OfferSummary], *, with_description: bool = False) -> str:
    if not offers:
        return "(none)"
    lines = []
    for i, o in enumerate(offers, 1):
        line = f"{i}. {o.name} - Type: {o.type}, Deposit: {o.deposit}, Bonus: {o.bonus}"
        if with_description and o.description:
            line += f", Description: {o.description}"
        lines.append(line)
    return "\n".join(lines)


class AnalyzerAgent(BaseAgent):
    """Judges whether newly discovered offers beat the ones already on file.

    Unlike the research stages, upstream failures propagate so the caller can
    report them.
    """

    name = "analyzer"

    async def analyze(
        self,
        casino_name: str,
        current_offers: list[OfferSummary],
        new_offers: list[OfferSummary],
    ) -> list[OfferAnalysis]:
        prompt = render_prompt(
            "analyzer.compare_prompt",
            casino_name=casino_name,
            current_offers=_format_offers(current_offers),
            new_offers=_format_offers(new_offers, with_description=True),
        )
        text = await self._active_client().complete(prompt, caller=self.name)
        payload = extract_json_object(text)
        items = payload.get("analysis") if payload else None
        if not isinstance(items, list):
            logger.warning(f"analyzer: no analysis list in response for {casino_name}")
            return []

        results: list[OfferAnalysis] = []
        for item in items:
            if not isinstance(item, dict) or not item.get("offerName"):
                continue
            recommendation = str(item.get("recommendation") or "skip").strip().lower()
            results.append(
                OfferAnalysis(
                    offer_name=str(item["offerName"]),
                    is_superior=item.get("isSuperior") is True,
                    reasoning=str(item.get("reasoning") or ""),
                    recommendation="add" if recommendation == "add" else "skip",
                )
            )
        return results

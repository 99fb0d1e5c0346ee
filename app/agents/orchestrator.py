from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

from loguru import logger

from app.agents.discovery_agent import DiscoveryAgent
from app.agents.offer_agent import OfferResearchAgent
from app.config import settings
from app.models.schemas import RunStatus, Source
from app.research_core.models.interfaces import DiscoveredOffer, State
from app.research_core.reconcile.service import (
    find_new_offers,
    offer_row_summary,
    reconcile_casinos,
)
from app.research_core.states import STATES
from app.services import database as db
from app.services import logger as log_service


@dataclass
class RunTally:
    """Results accumulated over one run; persisted when the run ends."""

    missing_casinos: list[dict[str, Any]] = field(default_factory=list)
    offer_comparisons: list[dict[str, Any]] = field(default_factory=list)
    states_processed: list[str] = field(default_factory=list)
    casinos_processed: int = 0
    offers_processed: int = 0

    @property
    def total_missing_casinos(self) -> int:
        return sum(len(entry["casinos"]) for entry in self.missing_casinos)

    @property
    def total_new_offers(self) -> int:
        return sum(len(entry["new_offers"]) for entry in self.offer_comparisons)

    def summary(self) -> dict[str, Any]:
        return {
            "total_missing_casinos": self.total_missing_casinos,
            "total_new_offers": self.total_new_offers,
            "states_processed": list(self.states_processed),
        }


class ResearchRunOrchestrator:
    """Drives one research run from in-progress to a terminal status.

    Flow, per state in fixed order:
      1. Discover licensed casinos
      2. Record casinos missing from the store as ai-discovered
      3. For every casino in the state, research offers
      4. Record offers no reference offer accounts for, plus a comparison entry
    Then write the summary and mark the run completed.

    The orchestrator is the only writer of its run record. Stage failures
    degrade to empty results inside the agents; anything that escapes the
    loop fails the run.
    """

    def __init__(
        self,
        run_id: UUID,
        *,
        discovery: DiscoveryAgent | None = None,
        offer_research: OfferResearchAgent | None = None,
        states: tuple[State, ...] = STATES,
        bonus_threshold: float | None = None,
    ):
        self.run_id = run_id
        self.discovery = discovery or DiscoveryAgent()
        self.offer_research = offer_research or OfferResearchAgent()
        self.states = states
        self.bonus_threshold = (
            settings.offer_bonus_match_threshold if bonus_threshold is None else bonus_threshold
        )
        self.tally = RunTally()
        self._current_state: str | None = None
        self._current_casino: str | None = None

    async def _log(self, message: str) -> None:
        entry = f"[{datetime.now(timezone.utc).isoformat()}] {message}"
        log_service.log_research_step(
            str(self.run_id),
            message,
            state=self._current_state,
            casino=self._current_casino,
        )
        await db.append_run_log(self.run_id, entry)

    async def run(self) -> RunTally:
        try:
            await self._log("Research started for all states")
            for state in self.states:
                await self._process_state(state)
            await self._complete()
        except Exception as e:
            logger.exception(f"Research run {self.run_id} failed")
            await self._fail(e)
        return self.tally

    async def _process_state(self, state: State) -> None:
        self._current_state = state.name
        self._current_casino = None
        await db.update_run(self.run_id, current_state=state.name, current_casino=None)
        await self._log(f"Researching {state.name} ({state.abbreviation})...")

        await self._log(f"Discovering casinos in {state.name}...")
        discovered = await self.discovery.discover(state.name)
        await self._log(f"Found {len(discovered)} casinos in official records")

        stored = await db.find_casinos(state.abbreviation)
        reconciliation = reconcile_casinos(discovered, [c["name"] for c in stored])

        missing: list[str] = []
        for casino in reconciliation.new_casinos:
            created = await db.create_casino(
                name=casino.name,
                state=state.name,
                state_abbreviation=state.abbreviation,
                source=Source.AI_DISCOVERED.value,
                website=casino.website,
                license_number=casino.license_number,
                city=casino.city,
            )
            if created is None:
                # Another writer stored the same identity key since we looked.
                continue
            missing.append(casino.name)
            await self._log(f"Discovered new casino: {casino.name}")

        if missing:
            self.tally.missing_casinos.append({"state": state.name, "casinos": missing})
            await self._log(f"Missing casinos in {state.name}: {len(missing)}")
        else:
            await self._log(f"No missing casinos in {state.name}")

        casinos = await db.find_casinos(state.abbreviation)
        await self._log(f"Researching offers for {len(casinos)} casinos in {state.name}...")
        for casino in casinos:
            await self._process_casino(state, casino)

        self.tally.states_processed.append(state.name)
        await self._log(f"Completed {state.name} - Processed {len(casinos)} casinos")

    async def _process_casino(self, state: State, casino: dict[str, Any]) -> None:
        name = casino["name"]
        self._current_casino = name
        self.tally.casinos_processed += 1
        await db.update_run(
            self.run_id,
            current_casino=name,
            casinos_processed=self.tally.casinos_processed,
        )
        await self._log(f"Processing: {name}...")

        discovered = await self.offer_research.research(name, state.name)
        await self._log(f"Found {len(discovered)} offers")

        current = await db.find_offers(name, state.abbreviation, source=Source.REFERENCE.value)
        new_offers = find_new_offers(discovered, current, bonus_threshold=self.bonus_threshold)
        if not new_offers:
            return

        await self._log(f"Found {len(new_offers)} new offers for {name}")
        for offer in new_offers:
            await self._store_offer(state, casino, offer)

        self.tally.offers_processed += len(new_offers)
        await db.update_run(self.run_id, offers_processed=self.tally.offers_processed)
        self.tally.offer_comparisons.append(
            {
                "casino_name": name,
                "state": state.name,
                "current_offers": [offer_row_summary(row) for row in current],
                "discovered_offers": [o.summary() for o in discovered],
                "new_offers": [o.summary(with_description=True) for o in new_offers],
            }
        )

    async def _store_offer(self, state: State, casino: dict[str, Any], offer: DiscoveredOffer) -> None:
        await db.create_offer(
            casino_id=casino.get("id"),
            casino_name=casino["name"],
            state=state.name,
            state_abbreviation=state.abbreviation,
            offer_name=offer.offer_name,
            offer_type=offer.normalized_type.value,
            expected_deposit=offer.expected_deposit,
            expected_bonus=offer.expected_bonus,
            description=offer.description,
            terms=offer.terms,
            source=Source.AI_DISCOVERED.value,
        )

    async def _complete(self) -> None:
        self._current_state = None
        self._current_casino = None
        await self._log("Research completed successfully")
        await self._log(f"Total missing casinos: {self.tally.total_missing_casinos}")
        await self._log(f"Total new offers: {self.tally.total_new_offers}")
        await db.update_run(
            self.run_id,
            status=RunStatus.COMPLETED.value,
            completed_at=datetime.now(timezone.utc),
            current_state=None,
            current_casino=None,
            missing_casinos=self.tally.missing_casinos,
            offer_comparisons=self.tally.offer_comparisons,
            summary=self.tally.summary(),
        )

    async def _fail(self, error: Exception) -> None:
        # Best effort: the store may be the thing that failed.
        try:
            await self._log(f"Research failed: {error}")
        except Exception as e:
            self._report_finalize_error("progress log", e)
        try:
            await db.update_run(
                self.run_id,
                status=RunStatus.FAILED.value,
                completed_at=datetime.now(timezone.utc),
                current_state=None,
                current_casino=None,
                missing_casinos=self.tally.missing_casinos,
                offer_comparisons=self.tally.offer_comparisons,
                summary=self.tally.summary(),
            )
        except Exception as e:
            self._report_finalize_error("status", e)

    def _report_finalize_error(self, what: str, error: Exception) -> None:
        log_service.log_event(
            event_type="run_finalize_error",
            message=f"Failed to record research run failure ({what})",
            run_id=str(self.run_id),
            error=str(error),
        )

"""Import of the reference casino/offer dataset from the upstream feed."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import httpx

from app.config import settings
from app.research_core.models.interfaces import coerce_amount
from app.research_core.reconcile.service import identity_key, normalize_offer_type
from app.services import database as db
from app.services import logger as log_service


class ReferenceImportError(Exception):
    """The reference feed is unavailable or returned something unusable."""


@dataclass
class ReferenceOffer:
    """One row of the reference feed."""

    casino_name: str
    state: str
    state_abbreviation: str
    offer_name: str
    offer_type: str
    expected_deposit: float
    expected_bonus: float
    casinodb_id: int | None = None


@dataclass
class ImportResult:
    offers_imported: int
    casinos_imported: int

    @property
    def message(self) -> str:
        return f"Imported {self.offers_imported} offers from {self.casinos_imported} casinos"


def _optional_int(value: Any) -> int | None:
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def parse_feed_item(item: Any) -> ReferenceOffer | None:
    """Map a feed row onto a ReferenceOffer; rows without casino or state are skipped.

    Feed rows look like::

        {"Name": "...", "state": {"Name": "New Jersey", "Abbreviation": "NJ"},
         "Offer_Name": "...", "offer_type": "...", "Expected_Deposit": 100,
         "Expected_Bonus": 100, "casinodb_id": 12}
    """
    if not isinstance(item, dict):
        return None
    state = item.get("state") if isinstance(item.get("state"), dict) else {}
    casino_name = str(item.get("Name") or "").strip()
    state_name = str(state.get("Name") or "").strip()
    abbreviation = str(state.get("Abbreviation") or "").strip().upper()
    if not casino_name or not abbreviation:
        return None
    return ReferenceOffer(
        casino_name=casino_name,
        state=state_name or abbreviation,
        state_abbreviation=abbreviation,
        offer_name=str(item.get("Offer_Name") or "").strip(),
        offer_type=normalize_offer_type(item.get("offer_type")) or "unknown",
        expected_deposit=coerce_amount(item.get("Expected_Deposit")),
        expected_bonus=coerce_amount(item.get("Expected_Bonus")),
        casinodb_id=_optional_int(item.get("casinodb_id")),
    )


async def fetch_feed() -> list[Any]:
    url = settings.reference_feed_url.strip()
    if not url:
        raise ReferenceImportError("REFERENCE_FEED_URL not configured")

    try:
        async with httpx.AsyncClient() as client:
            response = await client.get(url, timeout=settings.reference_feed_timeout_seconds)
            response.raise_for_status()
            payload = response.json()
    except (httpx.HTTPError, ValueError) as e:
        raise ReferenceImportError(f"Reference feed request failed: {e}") from e

    if not isinstance(payload, list):
        raise ReferenceImportError("Reference feed must return a JSON list")
    return payload


async def import_reference_data() -> ImportResult:
    """Upsert every feed offer and the casinos they belong to, all as source=reference."""
    items = await fetch_feed()
    log_service.log_event(
        event_type="reference_import",
        message=f"Fetched {len(items)} offers from reference feed",
    )

    casinos: dict[tuple[str, str], ReferenceOffer] = {}
    offers_imported = 0
    for item in items:
        offer = parse_feed_item(item)
        if offer is None:
            continue
        await db.upsert_reference_offer(
            casino_name=offer.casino_name,
            state=offer.state,
            state_abbreviation=offer.state_abbreviation,
            offer_name=offer.offer_name,
            offer_type=offer.offer_type,
            expected_deposit=offer.expected_deposit,
            expected_bonus=offer.expected_bonus,
            casinodb_id=offer.casinodb_id,
        )
        offers_imported += 1
        casinos.setdefault(identity_key(offer.casino_name, offer.state_abbreviation), offer)

    for offer in casinos.values():
        await db.upsert_reference_casino(
            name=offer.casino_name,
            state=offer.state,
            state_abbreviation=offer.state_abbreviation,
            casinodb_id=offer.casinodb_id,
        )

    result = ImportResult(offers_imported=offers_imported, casinos_imported=len(casinos))
    log_service.log_event(event_type="reference_import", message=result.message)
    return result

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any

from app.models.schemas import OfferType


def _clean_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def coerce_amount(value: Any) -> float:
    """Turn model-supplied amounts ("$1,000", "1000", 1000) into numbers; 0 when absent."""
    if isinstance(value, bool) or value is None:
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)
    match = re.search(r"(\d+(?:\.\d+)?)", str(value).replace(",", ""))
    if match:
        return float(match.group(1))
    return 0.0


@dataclass(slots=True)
class State:
    abbreviation: str
    name: str


@dataclass(slots=True)
class DiscoveredCasino:
    name: str
    website: str | None = None
    license_number: str | None = None
    city: str | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> DiscoveredCasino | None:
        if not isinstance(payload, dict):
            return None
        name = _clean_str(payload.get("name"))
        if not name:
            return None
        return cls(
            name=name,
            website=_clean_str(payload.get("website")),
            license_number=_clean_str(payload.get("licenseNumber")),
            city=_clean_str(payload.get("city")),
        )


@dataclass(slots=True)
class DiscoveredOffer:
    offer_name: str
    offer_type: str = ""
    expected_deposit: float = 0.0
    expected_bonus: float = 0.0
    description: str | None = None
    terms: str | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> DiscoveredOffer | None:
        if not isinstance(payload, dict):
            return None
        offer_name = _clean_str(payload.get("offerName")) or ""
        offer_type = _clean_str(payload.get("offerType")) or ""
        if not offer_name and not offer_type:
            return None
        return cls(
            offer_name=offer_name,
            offer_type=offer_type,
            expected_deposit=coerce_amount(payload.get("expectedDeposit")),
            expected_bonus=coerce_amount(payload.get("expectedBonus")),
            description=_clean_str(payload.get("description")),
            terms=_clean_str(payload.get("terms")),
        )

    @property
    def normalized_type(self) -> OfferType:
        return OfferType.coerce(self.offer_type)

    def summary(self, *, with_description: bool = False) -> dict[str, Any]:
        data: dict[str, Any] = {
            "name": self.offer_name,
            "type": self.offer_type,
            "deposit": self.expected_deposit,
            "bonus": self.expected_bonus,
        }
        if with_description:
            data["description"] = self.description
        return data


@dataclass(slots=True)
class CasinoReconciliation:
    """Outcome of matching one state's discovery result against stored casinos."""

    new_casinos: list[DiscoveredCasino] = field(default_factory=list)
    known_names: list[str] = field(default_factory=list)

    @property
    def missing_names(self) -> list[str]:
        return [c.name for c in self.new_casinos]

"""Known-vs-new classification for discovered casinos and offers.

Anything no stored record accounts for is reported as new; near-duplicates
are left in the comparison report for review.
"""
from __future__ import annotations

from typing import Any, Iterable, Mapping

from app.research_core.models.interfaces import CasinoReconciliation, DiscoveredCasino, DiscoveredOffer

DEFAULT_BONUS_THRESHOLD = 50.0


def normalize_name(name: str | None) -> str:
    return (name or "").strip().lower()


def identity_key(name: str | None, state_abbreviation: str) -> tuple[str, str]:
    return normalize_name(name), state_abbreviation.strip().upper()


def is_known_casino(candidate_name: str, stored_names: Iterable[str]) -> bool:
    key = normalize_name(candidate_name)
    return any(key == normalize_name(name) for name in stored_names)


def reconcile_casinos(
    discovered: Iterable[DiscoveredCasino],
    stored_names: Iterable[str],
) -> CasinoReconciliation:
    """Split a state's discovery result into already-stored and new casinos.

    Candidates repeated within the same result collapse onto the first one.
    """
    seen = {normalize_name(name) for name in stored_names}
    result = CasinoReconciliation()
    for casino in discovered:
        key = normalize_name(casino.name)
        if not key:
            continue
        if key in seen:
            result.known_names.append(casino.name)
            continue
        seen.add(key)
        result.new_casinos.append(casino)
    return result


def normalize_offer_type(value: Any) -> str:
    return str(value or "").strip().lower().replace("_", "-").replace(" ", "-")


def _names_overlap(a: str | None, b: str | None) -> bool:
    left, right = normalize_name(a), normalize_name(b)
    if not left or not right:
        return False
    return left in right or right in left


def _amount(value: Any) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def is_known_offer(
    candidate: DiscoveredOffer,
    current_offers: Iterable[Mapping[str, Any]],
    *,
    bonus_threshold: float = DEFAULT_BONUS_THRESHOLD,
) -> bool:
    """True when any stored offer matches by name containment, or by type plus a close bonus."""
    candidate_type = normalize_offer_type(candidate.offer_type)
    candidate_bonus = _amount(candidate.expected_bonus)
    for current in current_offers:
        if _names_overlap(current.get("offer_name"), candidate.offer_name):
            return True
        type_match = normalize_offer_type(current.get("offer_type")) == candidate_type
        amount_match = abs(_amount(current.get("expected_bonus")) - candidate_bonus) < bonus_threshold
        if type_match and amount_match:
            return True
    return False


def find_new_offers(
    discovered: Iterable[DiscoveredOffer],
    current_offers: list[Mapping[str, Any]],
    *,
    bonus_threshold: float = DEFAULT_BONUS_THRESHOLD,
) -> list[DiscoveredOffer]:
    return [
        offer
        for offer in discovered
        if not is_known_offer(offer, current_offers, bonus_threshold=bonus_threshold)
    ]


def offer_row_summary(row: Mapping[str, Any]) -> dict[str, Any]:
    """Comparison-report view of a stored offer row."""
    return {
        "name": row.get("offer_name"),
        "type": row.get("offer_type"),
        "deposit": row.get("expected_deposit"),
        "bonus": row.get("expected_bonus"),
    }

"""Shared fixtures: required settings, an in-memory store, and scripted research agents."""
from __future__ import annotations

import copy
import os
import tempfile
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import UUID, uuid4

import pytest

os.environ.setdefault("OPENROUTER_API_KEY", "test")
os.environ.setdefault("DEFAULT_MODEL", "openai/gpt-4o-mini")
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="offerscout-logs-"))

from app.research_core.models.interfaces import DiscoveredCasino, DiscoveredOffer  # noqa: E402
from app.services import database as db  # noqa: E402

TERMINAL = ("completed", "failed")


class InMemoryStore:
    """Stand-in for app.services.database with the same async functions."""

    def __init__(self):
        self.casinos: list[dict[str, Any]] = []
        self.offers: list[dict[str, Any]] = []
        self.runs: dict[UUID, dict[str, Any]] = {}
        self._clock = datetime(2026, 1, 1, tzinfo=timezone.utc)

    def _tick(self) -> datetime:
        self._clock += timedelta(seconds=1)
        return self._clock

    # --- seeding helpers ---

    def add_casino(self, name: str, state: str, abbreviation: str, source: str = "reference") -> dict[str, Any]:
        row = {
            "id": uuid4(),
            "name": name,
            "state": state,
            "state_abbreviation": abbreviation,
            "website": None,
            "license_number": None,
            "city": None,
            "casinodb_id": None,
            "source": source,
            "created_at": self._tick(),
            "last_updated": self._clock,
        }
        self.casinos.append(row)
        return row

    def add_offer(self, casino_name: str, abbreviation: str, offer_name: str, offer_type: str, bonus: float,
                  *, deposit: float = 0, source: str = "reference") -> dict[str, Any]:
        row = {
            "id": uuid4(),
            "casino_id": None,
            "casino_name": casino_name,
            "state": abbreviation,
            "state_abbreviation": abbreviation,
            "offer_name": offer_name,
            "offer_type": offer_type,
            "expected_deposit": deposit,
            "expected_bonus": bonus,
            "description": None,
            "terms": None,
            "source": source,
            "casinodb_id": None,
            "discovered_at": self._tick(),
            "verified": source == "reference",
            "notes": None,
        }
        self.offers.append(row)
        return row

    # --- casinos ---

    async def find_casinos(self, state_abbreviation: str, *, source: str | None = None):
        rows = [
            c for c in self.casinos
            if c["state_abbreviation"] == state_abbreviation and (source is None or c["source"] == source)
        ]
        return [dict(c) for c in sorted(rows, key=lambda c: c["name"])]

    async def create_casino(self, *, name, state, state_abbreviation, source, website=None,
                            license_number=None, city=None):
        key = name.strip().lower()
        for c in self.casinos:
            if c["state_abbreviation"] == state_abbreviation and c["name"].strip().lower() == key:
                return None
        row = self.add_casino(name.strip(), state, state_abbreviation, source)
        row.update(website=website, license_number=license_number, city=city)
        return dict(row)

    async def upsert_reference_casino(self, *, name, state, state_abbreviation, casinodb_id=None):
        key = name.strip().lower()
        for c in self.casinos:
            if c["state_abbreviation"] == state_abbreviation and c["name"].strip().lower() == key:
                c.update(state=state, casinodb_id=casinodb_id, source="reference", last_updated=self._tick())
                return dict(c)
        row = self.add_casino(name.strip(), state, state_abbreviation)
        row["casinodb_id"] = casinodb_id
        return dict(row)

    # --- offers ---

    async def find_offers(self, casino_name: str, state_abbreviation: str, *, source: str):
        return [
            dict(o) for o in self.offers
            if o["casino_name"] == casino_name
            and o["state_abbreviation"] == state_abbreviation
            and o["source"] == source
        ]

    async def create_offer(self, *, casino_id, casino_name, state, state_abbreviation, offer_name, offer_type,
                           expected_deposit, expected_bonus, description, terms, source):
        row = self.add_offer(casino_name, state_abbreviation, offer_name, offer_type, expected_bonus,
                             deposit=expected_deposit, source=source)
        row.update(casino_id=casino_id, state=state, description=description, terms=terms)
        return dict(row)

    async def upsert_reference_offer(self, *, casino_name, state, state_abbreviation, offer_name, offer_type,
                                     expected_deposit, expected_bonus, casinodb_id=None):
        for o in self.offers:
            if (o["source"] == "reference" and o["casino_name"] == casino_name
                    and o["state_abbreviation"] == state_abbreviation and o["offer_name"] == offer_name):
                o.update(offer_type=offer_type, expected_deposit=expected_deposit, expected_bonus=expected_bonus)
                return dict(o)
        row = self.add_offer(casino_name, state_abbreviation, offer_name, offer_type, expected_bonus,
                             deposit=expected_deposit)
        row.update(state=state, casinodb_id=casinodb_id)
        return dict(row)

    # --- runs ---

    async def create_run(self, status: str):
        run_id = uuid4()
        self.runs[run_id] = {
            "id": run_id,
            "status": status,
            "started_at": self._tick(),
            "completed_at": None,
            "current_state": None,
            "current_casino": None,
            "casinos_processed": 0,
            "offers_processed": 0,
            "progress_log": [],
            "missing_casinos": [],
            "offer_comparisons": [],
            "summary": None,
        }
        return copy.deepcopy(self.runs[run_id])

    async def get_run(self, run_id: UUID):
        run = self.runs.get(run_id)
        return copy.deepcopy(run) if run else None

    async def list_runs(self, limit: int):
        runs = sorted(self.runs.values(), key=lambda r: r["started_at"], reverse=True)
        return copy.deepcopy(runs[:limit])

    async def get_active_run(self):
        for run in self.runs.values():
            if run["status"] == "in-progress":
                return copy.deepcopy(run)
        return None

    async def update_run(self, run_id: UUID, **fields):
        run = self.runs[run_id]
        if run["status"] in TERMINAL:
            return
        run.update({k: copy.deepcopy(v) for k, v in fields.items() if k in db.RUN_UPDATABLE})

    async def append_run_log(self, run_id: UUID, entry: str):
        run = self.runs[run_id]
        if run["status"] in TERMINAL:
            return
        run["progress_log"].append(entry)

    async def fail_interrupted_runs(self, entry: str) -> int:
        count = 0
        for run in self.runs.values():
            if run["status"] in ("pending", "in-progress"):
                run.update(status="failed", completed_at=self._tick(), current_state=None, current_casino=None)
                run["progress_log"].append(entry)
                count += 1
        return count


STORE_FUNCTIONS = (
    "find_casinos",
    "create_casino",
    "upsert_reference_casino",
    "find_offers",
    "create_offer",
    "upsert_reference_offer",
    "create_run",
    "get_run",
    "list_runs",
    "get_active_run",
    "update_run",
    "append_run_log",
    "fail_interrupted_runs",
)


@pytest.fixture
def store(monkeypatch) -> InMemoryStore:
    fake = InMemoryStore()
    for name in STORE_FUNCTIONS:
        monkeypatch.setattr(db, name, getattr(fake, name))
    return fake


class ScriptedDiscovery:
    """Discovery stage returning canned casinos per state name."""

    def __init__(self, results: dict[str, list[str]] | None = None):
        self.results = results or {}
        self.calls: list[str] = []

    async def discover(self, state_name: str) -> list[DiscoveredCasino]:
        self.calls.append(state_name)
        return [DiscoveredCasino(name=n) for n in self.results.get(state_name, [])]


class ScriptedOfferResearch:
    """Offer research stage returning canned offers per casino name."""

    def __init__(self, results: dict[str, list[DiscoveredOffer]] | None = None):
        self.results = results or {}
        self.calls: list[tuple[str, str]] = []

    async def research(self, casino_name: str, state_name: str) -> list[DiscoveredOffer]:
        self.calls.append((casino_name, state_name))
        return list(self.results.get(casino_name, []))

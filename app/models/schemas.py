from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field


class RunStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (RunStatus.COMPLETED, RunStatus.FAILED)


class Source(str, Enum):
    REFERENCE = "reference"
    AI_DISCOVERED = "ai-discovered"


class OfferType(str, Enum):
    WELCOME = "welcome"
    DEPOSIT_MATCH = "deposit-match"
    LOSSBACK = "lossback"
    FREE_SPINS = "free-spins"
    RELOAD = "reload"
    LOYALTY = "loyalty"
    UNKNOWN = "unknown"

    @classmethod
    def coerce(cls, value: Any) -> "OfferType":
        text = str(value or "").strip().lower().replace("_", "-").replace(" ", "-")
        try:
            return cls(text)
        except ValueError:
            return cls.UNKNOWN


# --- Research runs ---


class MissingCasinos(BaseModel):
    state: str
    casinos: list[str]


class OfferComparison(BaseModel):
    casino_name: str
    state: str
    current_offers: list[dict[str, Any]]
    discovered_offers: list[dict[str, Any]]
    new_offers: list[dict[str, Any]]


class RunSummary(BaseModel):
    total_missing_casinos: int = 0
    total_new_offers: int = 0
    states_processed: list[str] = Field(default_factory=list)


class ResearchRunResponse(BaseModel):
    id: UUID
    status: RunStatus
    started_at: datetime
    completed_at: datetime | None = None
    current_state: str | None = None
    current_casino: str | None = None
    casinos_processed: int = 0
    offers_processed: int = 0
    progress_log: list[str] = Field(default_factory=list)
    missing_casinos: list[MissingCasinos] = Field(default_factory=list)
    offer_comparisons: list[OfferComparison] = Field(default_factory=list)
    summary: RunSummary | None = None


class RunStartResponse(BaseModel):
    run_id: UUID
    status: RunStatus


# --- Reference import ---


class ImportResponse(BaseModel):
    success: bool
    offers_imported: int
    casinos: int
    message: str


# --- Offer analysis ---


class OfferSummary(BaseModel):
    name: str | None = None
    type: str | None = None
    deposit: float | None = None
    bonus: float | None = None
    description: str | None = None


class AnalyzeRequest(BaseModel):
    casino_name: str
    current_offers: list[OfferSummary] = Field(default_factory=list)
    new_offers: list[OfferSummary] = Field(default_factory=list)


class OfferAnalysis(BaseModel):
    offer_name: str
    is_superior: bool = False
    reasoning: str = ""
    recommendation: str = "skip"


class AnalyzeResponse(BaseModel):
    analysis: list[OfferAnalysis]

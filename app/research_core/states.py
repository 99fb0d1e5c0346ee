from __future__ import annotations

from app.research_core.models.interfaces import State

# Processing order is part of the run contract: every run walks these in sequence.
STATES: tuple[State, ...] = (
    State("NJ", "New Jersey"),
    State("MI", "Michigan"),
    State("PA", "Pennsylvania"),
    State("WV", "West Virginia"),
)

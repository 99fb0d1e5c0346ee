"""Starts research runs in the background and exposes them for polling."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any, Callable
from uuid import UUID

from app.agents.orchestrator import ResearchRunOrchestrator
from app.config import settings
from app.models.schemas import RunStatus
from app.services import database as db
from app.services import logger as log_service


class RunAlreadyActiveError(Exception):
    def __init__(self, run_id: Any):
        super().__init__(f"Research run {run_id} is still in progress")
        self.run_id = run_id


# Strong references so running tasks are not garbage collected mid-run.
_tasks: set[asyncio.Task] = set()

# Serializes the active-run check with the insert that follows it.
_start_lock = asyncio.Lock()

OrchestratorFactory = Callable[[UUID], ResearchRunOrchestrator]


def _default_factory(run_id: UUID) -> ResearchRunOrchestrator:
    return ResearchRunOrchestrator(run_id)


def _on_task_done(task: asyncio.Task) -> None:
    _tasks.discard(task)
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        log_service.log_event(
            event_type="run_task_error",
            message="Research run task ended with an unhandled error",
            error=str(error),
        )


async def start_run(orchestrator_factory: OrchestratorFactory | None = None) -> UUID:
    """Create an in-progress run record, schedule its orchestrator, and return the id.

    Does not wait for the run. Refuses to start while another run is in
    progress unless concurrent runs are allowed in settings.
    """
    async with _start_lock:
        if not settings.allow_concurrent_runs:
            active = await db.get_active_run()
            if active is not None:
                raise RunAlreadyActiveError(active["id"])
        try:
            run = await db.create_run(RunStatus.IN_PROGRESS.value)
        except db.ActiveRunConflictError:
            # Another process started one between the check and the insert.
            active = await db.get_active_run()
            raise RunAlreadyActiveError(active["id"] if active else None)

    run_id = run["id"] if isinstance(run["id"], UUID) else UUID(str(run["id"]))

    orchestrator = (orchestrator_factory or _default_factory)(run_id)
    task = asyncio.create_task(orchestrator.run(), name=f"research-run-{run_id}")
    _tasks.add(task)
    task.add_done_callback(_on_task_done)

    log_service.log_event(
        event_type="run_started",
        message="Research run scheduled",
        run_id=str(run_id),
    )
    return run_id


async def get_run(run_id: UUID) -> dict[str, Any] | None:
    return await db.get_run(run_id)


async def list_runs(limit: int | None = None) -> list[dict[str, Any]]:
    return await db.list_runs(limit or settings.run_list_limit)


async def recover_interrupted_runs() -> int:
    """Fail runs whose worker died with a previous process."""
    entry = f"[{datetime.now(timezone.utc).isoformat()}] Research failed: run interrupted by service restart"
    count = await db.fail_interrupted_runs(entry)
    if count:
        log_service.log_event(
            event_type="runs_recovered",
            message=f"Marked {count} interrupted research runs as failed",
        )
    return count


async def wait_for_active_runs() -> None:
    """Wait for every run scheduled by this process to finish."""
    if _tasks:
        await asyncio.gather(*list(_tasks), return_exceptions=True)

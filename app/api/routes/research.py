from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, HTTPException

from app.models.schemas import ImportResponse, ResearchRunResponse, RunStartResponse, RunStatus
from app.services import reference_import
from app.services import run_manager

router = APIRouter(prefix="/api/research", tags=["research"])


@router.post("/run", response_model=RunStartResponse)
async def start_run():
    """Start a research run in the background. Poll /runs/{run_id} for progress."""
    try:
        run_id = await run_manager.start_run()
    except run_manager.RunAlreadyActiveError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return RunStartResponse(run_id=run_id, status=RunStatus.IN_PROGRESS)


@router.get("/runs", response_model=list[ResearchRunResponse])
async def list_runs():
    """Most recent research runs, newest first."""
    return await run_manager.list_runs()


@router.get("/runs/{run_id}", response_model=ResearchRunResponse)
async def get_run(run_id: UUID):
    run = await run_manager.get_run(run_id)
    if not run:
        raise HTTPException(status_code=404, detail="Research run not found")
    return run


@router.post("/init", response_model=ImportResponse)
async def import_reference_data():
    """Load the reference casinos and offers the runs are compared against."""
    try:
        result = await reference_import.import_reference_data()
    except reference_import.ReferenceImportError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return ImportResponse(
        success=True,
        offers_imported=result.offers_imported,
        casinos=result.casinos_imported,
        message=result.message,
    )

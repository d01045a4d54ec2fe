"""Run API endpoints."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from nodeflow.core.auth import verify_api_key
from nodeflow.core.database import get_session
from nodeflow.schemas.run import RunListResponse, RunResponse, RunStatusResponse
from nodeflow.services.run_service import RunService

router = APIRouter(prefix="/runs", tags=["runs"])


@router.get("", response_model=RunListResponse)
async def list_all_runs(
    limit: int = 20,
    session: AsyncSession = Depends(get_session),
    _: str = Depends(verify_api_key),
):
    """List recent runs across all pipelines."""
    runs = await RunService(session).list_recent(limit=limit)
    return RunListResponse(runs=runs, total=len(runs))


@router.get("/{run_id}", response_model=RunStatusResponse)
async def get_run_status(
    run_id: str,
    session: AsyncSession = Depends(get_session),
    _: str = Depends(verify_api_key),
):
    """Run status, output or error, progress and per-node results."""
    return await RunService(session).get_run_status(run_id)


@router.post("/{run_id}/cancel", response_model=RunResponse)
async def cancel_run(
    run_id: str,
    session: AsyncSession = Depends(get_session),
    _: str = Depends(verify_api_key),
):
    return await RunService(session).cancel_run(run_id)

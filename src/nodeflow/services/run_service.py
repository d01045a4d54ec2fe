"""Run service — business logic for pipeline run operations."""

from __future__ import annotations
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from nodeflow.engine.errors import InvalidTransitionError, NotFoundError
from nodeflow.engine.runtime import PipelineEngine
from nodeflow.engine.state import RunStateTracker
from nodeflow.models.node_result import NodeResult, NodeResultStatus
from nodeflow.models.pipeline import PipelineStatus
from nodeflow.models.run import PipelineRun, RunStatus
from nodeflow.repositories.pipeline_repo import PipelineRepository

logger = logging.getLogger("nodeflow.runs")


def progress_percent(results: list[NodeResult]) -> int:
    """Share of node results that are completed or skipped, 0-100."""
    if not results:
        return 0
    done = sum(
        1 for r in results
        if r.status in (NodeResultStatus.COMPLETED.value, NodeResultStatus.SKIPPED.value)
    )
    return round(done * 100 / len(results))


class RunService:
    def __init__(self, session: AsyncSession, engine: PipelineEngine | None = None):
        self.tracker = RunStateTracker(session)
        self.repo = self.tracker.runs
        self.pipelines = PipelineRepository(session)
        self.engine = engine

    async def create_run(self, pipeline_id: str, input_data: dict | None = None) -> PipelineRun:
        """Create a pending run and start its coordinator loop."""
        pipeline = await self.pipelines.get_by_id(pipeline_id)
        if pipeline is None:
            raise NotFoundError("Pipeline", pipeline_id)
        if pipeline.status == PipelineStatus.ARCHIVED.value:
            raise InvalidTransitionError("pipeline", "run", pipeline.status)

        run = await self.repo.create(
            pipeline_id=pipeline_id,
            status=RunStatus.PENDING.value,
            input_data=input_data or {},
        )
        logger.info(f"Created run {run.id} for pipeline '{pipeline.name}'")
        if self.engine is not None:
            await self.engine.submit(run.id)
        else:
            logger.warning(f"No engine running, run {run.id} stays pending")
        return run

    async def get_run(self, run_id: str) -> PipelineRun:
        return await self.tracker.get_run(run_id)

    async def get_run_status(self, run_id: str) -> dict:
        """Run status plus output (on success) or error (on failure) and per-node results."""
        run = await self.tracker.get_run(run_id)
        results = await self.tracker.results.list_by_run(run.id)
        return {
            "id": run.id,
            "pipeline_id": run.pipeline_id,
            "status": run.status,
            "started_at": run.started_at,
            "completed_at": run.completed_at,
            "duration_ms": run.duration_ms,
            "input_data": run.input_data,
            "output_data": run.output_data,
            "error_message": run.error_message,
            "created_at": run.created_at,
            "progress_percent": progress_percent(results),
            "nodes": results,
        }

    async def cancel_run(self, run_id: str) -> PipelineRun:
        """Cancel a pending or running run and skip its pending nodes.

        Node tasks already executing finish, but their results no longer
        affect the run.
        """
        run = await self.tracker.get_run(run_id)
        cancelled = await self.tracker.cancel_run(run)
        if cancelled is None:
            current = await self.tracker.get_run(run_id)
            raise InvalidTransitionError("pipeline run", "cancel", current.status)
        skipped = await self.tracker.skip_pending_nodes(cancelled)
        logger.info(f"Cancelled run {run_id} ({skipped} pending node(s) skipped)")
        return cancelled

    async def list_runs(self, pipeline_id: str, limit: int = 20) -> list[PipelineRun]:
        return await self.repo.list_by_pipeline(pipeline_id, limit=limit)

    async def list_recent(self, limit: int = 20) -> list[PipelineRun]:
        return await self.repo.list_recent(limit=limit)

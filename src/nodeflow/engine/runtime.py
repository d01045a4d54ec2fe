"""Pipeline engine — wires the queue, coordinator, node task and executor together."""

from __future__ import annotations
import logging

import httpx
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlalchemy.ext.asyncio import async_sessionmaker

from nodeflow.core.config import NodeflowSettings
from nodeflow.engine.coordinator import COORDINATOR_TASK, NODE_TASK, PipelineCoordinator
from nodeflow.engine.executor import NodeExecutor
from nodeflow.engine.node_task import NodeExecutionTask
from nodeflow.engine.state import RunStateTracker
from nodeflow.nodes.registry import NodeTypeRegistry, default_registry
from nodeflow.workers.queue import TaskQueue

logger = logging.getLogger("nodeflow.engine")

# Engine is initialized by the daemon on startup
_engine: "PipelineEngine | None" = None


def set_engine(engine: "PipelineEngine | None"):
    global _engine
    _engine = engine


def get_engine() -> "PipelineEngine | None":
    return _engine


class PipelineEngine:
    """One engine per process.

    Build it with the session factory and settings, then ``start()`` it so
    queued ticks and node tasks have handlers.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        settings: NodeflowSettings,
        registry: NodeTypeRegistry | None = None,
        queue: TaskQueue | None = None,
        scheduler: AsyncIOScheduler | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.session_factory = session_factory
        self.settings = settings
        self.registry = registry or default_registry()
        self.queue = queue or TaskQueue(
            max_concurrent=settings.max_concurrent,
            default_max_attempts=settings.coordinator_max_attempts,
            backoff_base=settings.retry_backoff_base,
            backoff_cap=settings.retry_backoff_cap,
            scheduler=scheduler,
        )
        self.executor = NodeExecutor(self.registry, settings, transport=transport)
        self.coordinator = PipelineCoordinator(session_factory, self.queue, settings)
        self.node_task = NodeExecutionTask(session_factory, self.executor, settings)

    def start(self) -> None:
        self.queue.register(
            COORDINATOR_TASK, self.coordinator.handle, self.settings.coordinator_max_attempts
        )
        self.queue.register(NODE_TASK, self.node_task.handle, self.settings.node_max_attempts)
        logger.info(f"Engine started (node types: {', '.join(self.registry.names())})")

    async def submit(self, run_id: str) -> str:
        """Start the coordinator loop for a run."""
        return await self.coordinator.schedule(run_id)

    async def recover(self) -> list[str]:
        """Resubmit runs a previous process left pending or running.

        Their queued tasks died with that process, so node work it had
        claimed is released first. Returns the ids of the resubmitted runs.
        """
        async with self.session_factory() as session:
            tracker = RunStateTracker(session)
            runs = await tracker.list_active_runs()
            for run in runs:
                recovered = await tracker.recover_run(run)
                logger.info(f"Recovering run {run.id} ({run.status}, {recovered} node result(s) released)")
            run_ids = [run.id for run in runs]
        for run_id in run_ids:
            await self.submit(run_id)
        return run_ids

    async def shutdown(self) -> None:
        await self.queue.shutdown()
        await self.executor.close()
        logger.info("Engine stopped")

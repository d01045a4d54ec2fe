"""Pipeline coordinator — drives one run to a terminal state, one tick at a time.

A tick loads the run, makes sure every node has a result record, decides
whether the run is finished, and otherwise dispatches whatever is ready.
Ticks are idempotent: running two at once, or re-running one after a
crash, only ever makes normal progress.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import Iterable

from sqlalchemy.ext.asyncio import async_sessionmaker

from nodeflow.core.config import NodeflowSettings
from nodeflow.dag.resolver import find_ready_nodes
from nodeflow.engine.errors import NotFoundError
from nodeflow.engine.state import RunStateTracker
from nodeflow.models.node import Node
from nodeflow.models.node_result import NodeResult, NodeResultStatus
from nodeflow.models.run import RunStatus
from nodeflow.repositories.edge_repo import EdgeRepository
from nodeflow.repositories.node_repo import NodeRepository
from nodeflow.workers.queue import QueuedTask, TaskQueue

logger = logging.getLogger("nodeflow.coordinator")

COORDINATOR_TASK = "coordinator_tick"
NODE_TASK = "node_execution"

DEFAULT_FAILURE_MESSAGE = "Node execution failed"


def coordinator_key(run_id: str) -> str:
    return f"coordinator:{run_id}"


@dataclass
class TickResult:
    run_id: str
    status: str
    dispatched: list[str] = field(default_factory=list)
    reschedule: bool = False
    message: str | None = None


@dataclass
class RunOutcome:
    """Classification of a run from its node results."""
    status: str  # running / completed / failed
    output: dict | None = None
    error: str | None = None


def classify(nodes: Iterable[Node], results: dict[str, NodeResult]) -> RunOutcome:
    """Decide the run's status from its node results, walking nodes in order."""
    nodes = list(nodes)
    statuses = [results[node.id].status for node in nodes]

    for node, status in zip(nodes, statuses):
        if status == NodeResultStatus.FAILED.value:
            return RunOutcome(
                status=RunStatus.FAILED.value,
                error=results[node.id].error_message or DEFAULT_FAILURE_MESSAGE,
            )

    done = {NodeResultStatus.COMPLETED.value, NodeResultStatus.SKIPPED.value}
    if all(status in done for status in statuses):
        output: dict = {}
        for node, status in zip(nodes, statuses):
            if status == NodeResultStatus.COMPLETED.value:
                output.update(results[node.id].output_data or {})
        return RunOutcome(status=RunStatus.COMPLETED.value, output=output)

    return RunOutcome(status=RunStatus.RUNNING.value)


class PipelineCoordinator:
    def __init__(
        self,
        session_factory: async_sessionmaker,
        queue: TaskQueue,
        settings: NodeflowSettings,
    ):
        self.session_factory = session_factory
        self.queue = queue
        self.settings = settings

    async def tick(self, run_id: str) -> TickResult:
        """Advance a run by one step. Raises NotFoundError for an unknown run."""
        async with self.session_factory() as session:
            tracker = RunStateTracker(session)
            run = await tracker.get_run(run_id)

            if run.is_terminal:
                return TickResult(run_id=run_id, status=run.status)

            if run.status == RunStatus.PENDING.value:
                started = await tracker.start_run(run)
                run = started or await tracker.get_run(run_id)
                if run.is_terminal:
                    return TickResult(run_id=run_id, status=run.status)
                logger.info(f"Run {run_id} started")

            nodes = await NodeRepository(session).list_by_pipeline(run.pipeline_id)
            edges = await EdgeRepository(session).list_by_pipeline(run.pipeline_id)
            results = await tracker.ensure_node_results(run, nodes)

            outcome = classify(nodes, results)
            if outcome.status == RunStatus.FAILED.value:
                return await self._finish_failed(tracker, run, outcome.error)
            if outcome.status == RunStatus.COMPLETED.value:
                finished = await tracker.complete_run(run, outcome.output)
                status = finished.status if finished else (await tracker.get_run(run_id)).status
                logger.info(f"Run {run_id} {status}")
                return TickResult(run_id=run_id, status=status)

            statuses = {node.id: results[node.id].status for node in nodes}
            ready = find_ready_nodes(nodes, edges, statuses)
            running = [n for n in nodes if statuses[n.id] == NodeResultStatus.RUNNING.value]

            if not ready and not running:
                stuck = [n.name for n in nodes if statuses[n.id] == NodeResultStatus.PENDING.value]
                message = f"Pipeline cannot make progress: nodes never became ready: {', '.join(stuck)}"
                return await self._finish_failed(tracker, run, message)

            dispatched = []
            for node in ready:
                result = results[node.id]
                if not await tracker.claim_dispatch(result, lease=self.settings.dispatch_lease):
                    continue
                try:
                    await self.queue.enqueue(
                        NODE_TASK,
                        {"run_id": run_id, "node_id": node.id},
                        max_attempts=self.settings.node_max_attempts,
                    )
                except Exception:
                    await tracker.release_dispatch(result)
                    raise
                dispatched.append(node.id)
                logger.info(f"Run {run_id}: dispatched node '{node.name}' ({node.type})")

            return TickResult(
                run_id=run_id,
                status=run.status,
                dispatched=dispatched,
                reschedule=True,
            )

    async def _finish_failed(self, tracker: RunStateTracker, run, message: str) -> TickResult:
        failed = await tracker.fail_run(run, message)
        if failed is None:
            current = await tracker.get_run(run.id)
            return TickResult(run_id=run.id, status=current.status)
        skipped = await tracker.skip_pending_nodes(failed)
        logger.warning(f"Run {run.id} failed: {message} ({skipped} pending node(s) skipped)")
        return TickResult(run_id=run.id, status=failed.status, message=message)

    async def handle(self, task: QueuedTask) -> None:
        """Queue handler: tick once, then re-arm while the run is in progress."""
        run_id = task.payload["run_id"]
        try:
            result = await self.tick(run_id)
        except NotFoundError as e:
            logger.error(f"Coordinator tick aborted: {e}")
            return
        except Exception:
            if not task.is_final_attempt:
                raise
            # Out of retries: keep the run driven instead of leaving it unticked
            logger.exception(f"Coordinator tick for run {run_id} failed on its final attempt, re-arming")
            await self.schedule(run_id, delay=self.settings.tick_interval)
            return

        if result.reschedule:
            await self.schedule(run_id, delay=self.settings.tick_interval)

    async def schedule(self, run_id: str, delay: float | None = None) -> str:
        return await self.queue.enqueue(
            COORDINATOR_TASK,
            {"run_id": run_id},
            delay=delay,
            max_attempts=self.settings.coordinator_max_attempts,
            key=coordinator_key(run_id),
        )

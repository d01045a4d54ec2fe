"""Node execution task — runs one node of one run, within the queue's retry budget."""

from __future__ import annotations
import logging
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from nodeflow.core.config import NodeflowSettings
from nodeflow.engine.errors import NotFoundError
from nodeflow.engine.executor import NodeExecutor
from nodeflow.engine.state import RunStateTracker
from nodeflow.models.node import Node
from nodeflow.models.node_result import NodeResultStatus
from nodeflow.models.run import PipelineRun
from nodeflow.nodes.base import NodeError
from nodeflow.repositories.edge_repo import EdgeRepository
from nodeflow.repositories.node_repo import NodeRepository
from nodeflow.workers.queue import QueuedTask

logger = logging.getLogger("nodeflow.node_task")


async def gather_inputs(
    session: AsyncSession, tracker: RunStateTracker, run: PipelineRun, node: Node
) -> dict[str, Any]:
    """Inputs for a node: the run's input data for entry nodes, else upstream outputs.

    Upstream outputs are merged in edge creation order, so when two sources
    produce the same key the later edge wins.
    """
    edges = await EdgeRepository(session).list_by_target(node.id)
    if not edges:
        return dict(run.input_data or {})

    outputs = {r.node_id: r.output_data or {} for r in await tracker.results.list_by_run(run.id)}
    inputs: dict[str, Any] = {}
    for edge in edges:
        inputs.update(outputs.get(edge.source_node_id, {}))
    return inputs


class NodeExecutionTask:
    def __init__(
        self,
        session_factory: async_sessionmaker,
        executor: NodeExecutor,
        settings: NodeflowSettings,
    ):
        self.session_factory = session_factory
        self.executor = executor
        self.settings = settings

    async def handle(self, task: QueuedTask) -> None:
        """Queue handler. Raises NodeError to ask the queue for another attempt.

        Any other error is retried the same way; on the final attempt the
        node result is failed instead, so the run does not wait on it forever.
        """
        run_id, node_id = task.payload["run_id"], task.payload["node_id"]
        try:
            await self.run(run_id, node_id, attempt=task.attempt, max_attempts=task.max_attempts)
        except NotFoundError as e:
            logger.error(f"Node task dropped: {e}")
        except Exception as e:
            if not task.is_final_attempt:
                raise
            logger.exception(f"Node {node_id} of run {run_id} errored on its final attempt")
            await self.give_up(run_id, node_id, f"{type(e).__name__}: {e}", retry_count=task.attempt - 1)

    async def give_up(self, run_id: str, node_id: str, message: str, retry_count: int) -> str | None:
        """Fail a node result from a fresh session. Returns the new status, or
        None when the result had already finished."""
        async with self.session_factory() as session:
            tracker = RunStateTracker(session)
            try:
                result = await tracker.get_node_result(run_id, node_id)
            except NotFoundError as e:
                logger.error(f"Node task dropped: {e}")
                return None
            failed = await tracker.fail_node(
                result, message, {"retry_count": retry_count, "last_error": message}
            )
            return failed.status if failed else None

    async def run(
        self, run_id: str, node_id: str, attempt: int = 1, max_attempts: int = 1
    ) -> str | None:
        """Execute the node and return the result's final status.

        Returns None when the task had nothing to do (duplicate delivery, or
        the result already finished).
        """
        async with self.session_factory() as session:
            tracker = RunStateTracker(session)
            node = await NodeRepository(session).get_by_id(node_id)
            if node is None:
                raise NotFoundError("Node", node_id)
            result = await tracker.get_node_result(run_id, node_id)
            run = await tracker.get_run(run_id)

            if run.is_terminal:
                if result.status == NodeResultStatus.PENDING.value:
                    await tracker.skip_node(result)
                    return NodeResultStatus.SKIPPED.value
                return None

            retry_count = attempt - 1
            if result.status == NodeResultStatus.PENDING.value:
                started = await tracker.start_node(result, retry_count)
                if started is None:
                    logger.info(f"Node {node_id} in run {run_id} already started elsewhere")
                    return None
                result = started
            elif result.status == NodeResultStatus.RUNNING.value and attempt > 1:
                logger.info(f"Node {node_id} in run {run_id}: attempt {attempt}/{max_attempts}")
            else:
                logger.info(f"Node {node_id} in run {run_id} is {result.status}, nothing to do")
                return None

            inputs = await gather_inputs(session, tracker, run, node)
            result = await tracker.record_attempt(result, retry_count, input_data=inputs)

            outcome = await self.executor.execute(
                node, inputs, self.executor.context_for(run_id, node)
            )

            if outcome.succeeded:
                await tracker.complete_node(
                    result, outcome.output, {**outcome.metadata, "retry_count": retry_count}
                )
                logger.info(f"Node '{node.name}' completed in {outcome.duration_ms}ms")
                return NodeResultStatus.COMPLETED.value

            if outcome.retryable and attempt < max_attempts:
                await tracker.record_attempt(result, retry_count, last_error=outcome.error)
                raise NodeError(outcome.error)

            await tracker.fail_node(
                result, outcome.error, {"retry_count": retry_count, "last_error": outcome.error}
            )
            logger.warning(f"Node '{node.name}' failed: {outcome.error}")
            return NodeResultStatus.FAILED.value

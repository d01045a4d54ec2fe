"""Run state tracker — state machines and guarded transitions for runs and node results.

Nothing here takes an in-process lock. Each transition is one conditional
UPDATE whose WHERE clause lists the legal source states, so two writers
racing on the same record cannot both win: the loser gets ``None`` back.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Iterable

from sqlalchemy.ext.asyncio import AsyncSession

from nodeflow.engine.errors import InvalidTransitionError, NotFoundError
from nodeflow.models.node import Node
from nodeflow.models.node_result import NodeResult, NodeResultStatus
from nodeflow.models.run import PipelineRun, RunStatus
from nodeflow.repositories.node_result_repo import NodeResultRepository
from nodeflow.repositories.run_repo import RunRepository

logger = logging.getLogger("nodeflow.state")


@dataclass(frozen=True)
class StateMachine:
    """Event → (allowed source states, target state)."""
    name: str
    transitions: dict[str, tuple[frozenset[str], str]]

    def sources(self, event: str) -> frozenset[str]:
        return self.transitions[event][0]

    def target(self, event: str, current: str | None = None) -> str:
        """Target state of an event; raises if ``current`` cannot take it."""
        if event not in self.transitions:
            raise InvalidTransitionError(self.name, event, current or "?")
        sources, target = self.transitions[event]
        if current is not None and current not in sources:
            raise InvalidTransitionError(self.name, event, current)
        return target

    def can(self, event: str, current: str) -> bool:
        return event in self.transitions and current in self.transitions[event][0]


def _states(*statuses) -> frozenset[str]:
    return frozenset(s.value for s in statuses)


RUN_MACHINE = StateMachine(
    name="pipeline run",
    transitions={
        "start": (_states(RunStatus.PENDING), RunStatus.RUNNING.value),
        "complete": (_states(RunStatus.RUNNING), RunStatus.COMPLETED.value),
        "fail": (_states(RunStatus.PENDING, RunStatus.RUNNING), RunStatus.FAILED.value),
        "cancel": (_states(RunStatus.PENDING, RunStatus.RUNNING), RunStatus.CANCELLED.value),
    },
)

NODE_MACHINE = StateMachine(
    name="node result",
    transitions={
        "start": (_states(NodeResultStatus.PENDING), NodeResultStatus.RUNNING.value),
        "complete": (_states(NodeResultStatus.RUNNING), NodeResultStatus.COMPLETED.value),
        "fail": (
            _states(NodeResultStatus.PENDING, NodeResultStatus.RUNNING),
            NodeResultStatus.FAILED.value,
        ),
        "skip": (_states(NodeResultStatus.PENDING), NodeResultStatus.SKIPPED.value),
        "requeue": (_states(NodeResultStatus.RUNNING), NodeResultStatus.PENDING.value),
    },
)


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


class RunStateTracker:
    """Owns every status mutation of PipelineRun and NodeResult records."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.runs = RunRepository(session)
        self.results = NodeResultRepository(session)

    # ─── Runs ───

    async def get_run(self, run_id: str) -> PipelineRun:
        run = await self.runs.get_by_id(run_id)
        if run is None:
            raise NotFoundError("Pipeline run", run_id)
        return run

    async def _run_event(self, run: PipelineRun, event: str, **values) -> PipelineRun | None:
        target = RUN_MACHINE.target(event)
        updated = await self.runs.transition(
            run.id, RUN_MACHINE.sources(event), status=target, **values
        )
        if updated is None:
            logger.info(f"Run {run.id}: '{event}' rejected (no longer in {sorted(RUN_MACHINE.sources(event))})")
        return updated

    async def start_run(self, run: PipelineRun) -> PipelineRun | None:
        return await self._run_event(run, "start", started_at=_now())

    async def complete_run(self, run: PipelineRun, output_data: dict) -> PipelineRun | None:
        return await self._run_event(run, "complete", output_data=output_data, completed_at=_now())

    async def fail_run(self, run: PipelineRun, error_message: str) -> PipelineRun | None:
        return await self._run_event(run, "fail", error_message=error_message, completed_at=_now())

    async def cancel_run(self, run: PipelineRun) -> PipelineRun | None:
        return await self._run_event(run, "cancel", completed_at=_now())

    async def list_active_runs(self) -> list[PipelineRun]:
        return await self.runs.list_by_status(
            [RunStatus.PENDING.value, RunStatus.RUNNING.value]
        )

    # ─── Node results ───

    async def ensure_node_results(
        self, run: PipelineRun, nodes: Iterable[Node]
    ) -> dict[str, NodeResult]:
        """Create a pending NodeResult for every node that lacks one.

        Returns results keyed by node id. Safe to call from concurrent ticks:
        rows another tick inserted first are kept, never duplicated.
        """
        existing = {r.node_id: r for r in await self.results.list_by_run(run.id)}
        missing = [node.id for node in nodes if node.id not in existing]
        if missing:
            await self.results.create_missing(run.id, missing)
            existing = {r.node_id: r for r in await self.results.list_by_run(run.id)}
        return existing

    async def get_node_result(self, run_id: str, node_id: str) -> NodeResult:
        result = await self.results.get_for_node(run_id, node_id)
        if result is None:
            raise NotFoundError("Node result", f"{run_id}/{node_id}")
        return result

    async def claim_dispatch(self, result: NodeResult, lease: float | None = None) -> bool:
        """Mark a pending result as dispatched. Only the first claim succeeds.

        With a ``lease`` (seconds), a claim that old is treated as lost: the
        result stays pending, so its task never started, and it may be claimed again.
        """
        now = _now()
        stale_before = now - timedelta(seconds=lease) if lease is not None else None
        return await self.results.claim_dispatch(result.id, now, stale_before)

    async def release_dispatch(self, result: NodeResult) -> bool:
        """Drop the dispatch claim of a still-pending result."""
        return await self.results.release_dispatch(result.id)

    async def _node_event(self, result: NodeResult, event: str, **values) -> NodeResult | None:
        target = NODE_MACHINE.target(event)
        updated = await self.results.transition(
            result.id, NODE_MACHINE.sources(event), status=target, **values
        )
        if updated is None:
            logger.info(f"Node result {result.id}: '{event}' rejected")
        return updated

    async def start_node(self, result: NodeResult, retry_count: int = 0) -> NodeResult | None:
        metadata = {**(result.metadata_ or {}), "retry_count": retry_count}
        return await self._node_event(result, "start", started_at=_now(), metadata_=metadata)

    async def record_attempt(
        self,
        result: NodeResult,
        retry_count: int,
        last_error: str | None = None,
        input_data: dict | None = None,
    ) -> NodeResult:
        """Update bookkeeping on a running result without changing its status."""
        metadata = {**(result.metadata_ or {}), "retry_count": retry_count}
        if last_error is not None:
            metadata["last_error"] = last_error
        values = {"metadata_": metadata}
        if input_data is not None:
            values["input_data"] = input_data
        return await self.results.update(result, **values)

    async def complete_node(self, result: NodeResult, output_data: dict, metadata: dict) -> NodeResult | None:
        merged = {**(result.metadata_ or {}), **metadata}
        return await self._node_event(
            result, "complete", output_data=output_data, metadata_=merged, completed_at=_now()
        )

    async def fail_node(self, result: NodeResult, error_message: str, metadata: dict) -> NodeResult | None:
        merged = {**(result.metadata_ or {}), **metadata}
        return await self._node_event(
            result, "fail", error_message=error_message, metadata_=merged, completed_at=_now()
        )

    async def skip_node(self, result: NodeResult) -> NodeResult | None:
        return await self._node_event(result, "skip", completed_at=_now())

    async def skip_pending_nodes(self, run: PipelineRun) -> int:
        """Skip every still-pending result of a run. Returns how many were skipped."""
        skipped = 0
        for result in await self.results.list_by_run(run.id):
            if result.status == NodeResultStatus.PENDING.value and await self.skip_node(result):
                skipped += 1
        return skipped

    async def recover_run(self, run: PipelineRun) -> int:
        """Make a run's interrupted node work dispatchable again.

        Used at startup: tasks queued or executing in the previous process are
        gone, so dispatch claims on pending results are released and running
        results go back to pending. Returns how many results were touched.
        """
        recovered = 0
        for result in await self.results.list_by_run(run.id):
            if result.status == NodeResultStatus.PENDING.value and result.dispatched_at is not None:
                if await self.release_dispatch(result):
                    recovered += 1
            elif result.status == NodeResultStatus.RUNNING.value:
                if await self._node_event(result, "requeue", dispatched_at=None, started_at=None):
                    recovered += 1
        return recovered

"""Tests for run/node state machines and the state tracker."""

import asyncio

import pytest

from nodeflow.engine.errors import InvalidTransitionError, NotFoundError
from nodeflow.engine.state import NODE_MACHINE, RUN_MACHINE, RunStateTracker
from nodeflow.repositories.node_repo import NodeRepository
from nodeflow.repositories.run_repo import RunRepository


class TestStateMachines:
    def test_run_targets(self):
        assert RUN_MACHINE.target("start", "pending") == "running"
        assert RUN_MACHINE.target("complete", "running") == "completed"
        assert RUN_MACHINE.target("fail", "pending") == "failed"
        assert RUN_MACHINE.target("cancel", "running") == "cancelled"

    def test_run_illegal_event(self):
        with pytest.raises(InvalidTransitionError) as exc:
            RUN_MACHINE.target("complete", "pending")
        assert str(exc.value) == "Cannot complete pipeline run in state 'pending'"

    def test_terminal_run_states_take_no_events(self):
        for state in ("completed", "failed", "cancelled"):
            for event in ("start", "complete", "fail", "cancel"):
                assert not RUN_MACHINE.can(event, state)

    def test_node_machine(self):
        assert NODE_MACHINE.can("skip", "pending")
        assert not NODE_MACHINE.can("skip", "running")
        assert NODE_MACHINE.can("fail", "pending")
        assert NODE_MACHINE.can("fail", "running")
        assert not NODE_MACHINE.can("complete", "pending")
        assert not NODE_MACHINE.can("start", "completed")
        assert NODE_MACHINE.target("requeue", "running") == "pending"
        assert not NODE_MACHINE.can("requeue", "completed")


@pytest.fixture
def make_run(db_session, build_pipeline):
    async def _make(nodes=None, edges=()):
        nodes = nodes or [{"name": "a", "type": "text", "config": {"content": "x"}}]
        pipeline_id, ids = await build_pipeline(nodes, edges)
        run = await RunRepository(db_session).create(pipeline_id=pipeline_id, input_data={})
        node_list = await NodeRepository(db_session).list_by_pipeline(pipeline_id)
        return run, node_list, ids
    return _make


class TestRunStateTracker:
    @pytest.mark.asyncio
    async def test_get_run_not_found(self, db_session):
        with pytest.raises(NotFoundError, match="Pipeline run 'missing' not found"):
            await RunStateTracker(db_session).get_run("missing")

    @pytest.mark.asyncio
    async def test_start_is_guarded(self, db_session, make_run):
        run, _, _ = await make_run()
        tracker = RunStateTracker(db_session)

        started = await tracker.start_run(run)
        assert started.status == "running"
        assert started.started_at is not None
        assert await tracker.start_run(run) is None

    @pytest.mark.asyncio
    async def test_complete_sets_output(self, db_session, make_run):
        run, _, _ = await make_run()
        tracker = RunStateTracker(db_session)
        await tracker.start_run(run)

        done = await tracker.complete_run(run, {"text": "hi"})
        assert done.status == "completed"
        assert done.output_data == {"text": "hi"}
        assert done.completed_at is not None
        assert await tracker.cancel_run(run) is None

    @pytest.mark.asyncio
    async def test_fail_leaves_output_unset(self, db_session, make_run):
        run, _, _ = await make_run()
        tracker = RunStateTracker(db_session)

        failed = await tracker.fail_run(run, "boom")
        assert failed.status == "failed"
        assert failed.error_message == "boom"
        assert failed.output_data is None

    @pytest.mark.asyncio
    async def test_ensure_node_results_is_idempotent(self, db_session, make_run):
        run, nodes, _ = await make_run([
            {"name": "a", "type": "text", "config": {"content": "x"}},
            {"name": "b", "type": "text", "config": {"content": "y"}},
        ])
        tracker = RunStateTracker(db_session)

        first = await tracker.ensure_node_results(run, nodes)
        second = await tracker.ensure_node_results(run, nodes)
        assert set(first) == {n.id for n in nodes}
        assert {r.id for r in first.values()} == {r.id for r in second.values()}
        assert all(r.status == "pending" for r in second.values())
        assert len(await tracker.results.list_by_run(run.id)) == 2

    @pytest.mark.asyncio
    async def test_claim_dispatch_once(self, db_session, make_run):
        run, nodes, _ = await make_run()
        tracker = RunStateTracker(db_session)
        result = (await tracker.ensure_node_results(run, nodes))[nodes[0].id]

        assert await tracker.claim_dispatch(result) is True
        assert await tracker.claim_dispatch(result) is False

    @pytest.mark.asyncio
    async def test_claim_dispatch_expires_after_lease(self, db_session, make_run):
        run, nodes, _ = await make_run()
        tracker = RunStateTracker(db_session)
        result = (await tracker.ensure_node_results(run, nodes))[nodes[0].id]

        assert await tracker.claim_dispatch(result, lease=300) is True
        assert await tracker.claim_dispatch(result, lease=300) is False
        await asyncio.sleep(0.02)
        assert await tracker.claim_dispatch(result, lease=0.01) is True

        await tracker.start_node(result)
        assert await tracker.claim_dispatch(result, lease=0) is False

    @pytest.mark.asyncio
    async def test_node_lifecycle(self, db_session, make_run):
        run, nodes, _ = await make_run()
        tracker = RunStateTracker(db_session)
        result = (await tracker.ensure_node_results(run, nodes))[nodes[0].id]

        running = await tracker.start_node(result, retry_count=2)
        assert running.status == "running"
        assert running.retry_count == 2
        assert await tracker.start_node(result) is None
        assert await tracker.skip_node(result) is None

        done = await tracker.complete_node(running, {"text": "x"}, {"output_length": 1})
        assert done.status == "completed"
        assert done.output_data == {"text": "x"}
        assert done.metadata_ == {"retry_count": 2, "output_length": 1}
        assert done.duration_ms is not None

    @pytest.mark.asyncio
    async def test_fail_node_records_last_error(self, db_session, make_run):
        run, nodes, _ = await make_run()
        tracker = RunStateTracker(db_session)
        result = (await tracker.ensure_node_results(run, nodes))[nodes[0].id]
        running = await tracker.start_node(result)

        failed = await tracker.fail_node(running, "bad", {"last_error": "bad"})
        assert failed.status == "failed"
        assert failed.error_message == "bad"
        assert failed.metadata_["last_error"] == "bad"

    @pytest.mark.asyncio
    async def test_skip_pending_nodes(self, db_session, make_run):
        run, nodes, _ = await make_run([
            {"name": "a", "type": "text", "config": {"content": "x"}},
            {"name": "b", "type": "text", "config": {"content": "y"}},
        ])
        tracker = RunStateTracker(db_session)
        results = await tracker.ensure_node_results(run, nodes)
        await tracker.start_node(results[nodes[0].id])

        assert await tracker.skip_pending_nodes(run) == 1
        statuses = {r.node_id: r.status for r in await tracker.results.list_by_run(run.id)}
        assert statuses == {nodes[0].id: "running", nodes[1].id: "skipped"}

    @pytest.mark.asyncio
    async def test_get_node_result_not_found(self, db_session, make_run):
        run, _, _ = await make_run()
        with pytest.raises(NotFoundError):
            await RunStateTracker(db_session).get_node_result(run.id, "nope")

    @pytest.mark.asyncio
    async def test_recover_run_releases_interrupted_nodes(self, db_session, make_run):
        run, nodes, _ = await make_run([
            {"name": "a", "type": "text", "config": {"content": "x"}},
            {"name": "b", "type": "text", "config": {"content": "y"}},
            {"name": "c", "type": "text", "config": {"content": "z"}},
        ])
        a, b, c = (node.id for node in nodes)
        tracker = RunStateTracker(db_session)
        results = await tracker.ensure_node_results(run, nodes)
        await tracker.claim_dispatch(results[a])
        await tracker.start_node(results[a])
        await tracker.claim_dispatch(results[b])
        done = await tracker.start_node(results[c])
        await tracker.complete_node(done, {"text": "z"}, {})

        assert await tracker.recover_run(run) == 2
        after = {r.node_id: r for r in await tracker.results.list_by_run(run.id)}
        assert after[a].status == "pending"
        assert after[a].started_at is None
        assert after[a].dispatched_at is None
        assert after[b].status == "pending"
        assert after[b].dispatched_at is None
        assert after[c].status == "completed"
        assert await tracker.claim_dispatch(after[a]) is True

    @pytest.mark.asyncio
    async def test_list_active_runs(self, db_session, make_run):
        run, _, _ = await make_run()
        tracker = RunStateTracker(db_session)
        assert [r.id for r in await tracker.list_active_runs()] == [run.id]

        await tracker.fail_run(run, "stopped")
        assert await tracker.list_active_runs() == []

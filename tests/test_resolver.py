"""Tests for ready-node discovery and DAG resolution."""

from dataclasses import dataclass

import pytest
from nodeflow.dag.resolver import DAGResolver, CycleError, find_ready_nodes


@dataclass
class N:
    id: str


@dataclass
class E:
    source_node_id: str
    target_node_id: str


# ─── Ready nodes ───

class TestFindReadyNodes:
    def test_roots_ready_when_pending(self):
        nodes = [N("a"), N("b")]
        ready = find_ready_nodes(nodes, [], {"a": "pending", "b": "pending"})
        assert [n.id for n in ready] == ["a", "b"]

    def test_missing_status_counts_as_pending(self):
        ready = find_ready_nodes([N("a")], [], {})
        assert [n.id for n in ready] == ["a"]

    def test_waits_for_upstream(self):
        nodes = [N("a"), N("b")]
        edges = [E("a", "b")]
        assert [n.id for n in find_ready_nodes(nodes, edges, {"a": "pending", "b": "pending"})] == ["a"]
        assert find_ready_nodes(nodes, edges, {"a": "running", "b": "pending"}) == []
        assert [n.id for n in find_ready_nodes(nodes, edges, {"a": "completed", "b": "pending"})] == ["b"]

    def test_fan_in_waits_for_all(self):
        nodes = [N("a"), N("b"), N("c")]
        edges = [E("a", "c"), E("b", "c")]
        statuses = {"a": "completed", "b": "running", "c": "pending"}
        assert find_ready_nodes(nodes, edges, statuses) == []
        statuses["b"] = "completed"
        assert [n.id for n in find_ready_nodes(nodes, edges, statuses)] == ["c"]

    def test_skipped_upstream_never_satisfies(self):
        nodes = [N("a"), N("b")]
        edges = [E("a", "b")]
        assert find_ready_nodes(nodes, edges, {"a": "skipped", "b": "pending"}) == []

    def test_non_pending_nodes_excluded(self):
        nodes = [N("a"), N("b"), N("c")]
        statuses = {"a": "running", "b": "completed", "c": "failed"}
        assert find_ready_nodes(nodes, [], statuses) == []

    def test_does_not_mutate_inputs(self):
        nodes = [N("a"), N("b")]
        edges = [E("a", "b")]
        statuses = {"a": "completed", "b": "pending"}
        find_ready_nodes(nodes, edges, statuses)
        assert statuses == {"a": "completed", "b": "pending"}
        assert nodes == [N("a"), N("b")]


# ─── Resolver ───

class TestDAGResolver:
    def test_empty_dag(self):
        dag = DAGResolver()
        assert dag.parallel_groups() == []

    def test_single_node(self):
        dag = DAGResolver()
        dag.add_node("a")
        assert dag.parallel_groups() == [["a"]]

    def test_linear_chain(self):
        dag = DAGResolver()
        dag.add_edge("extract", "transform")
        dag.add_edge("transform", "load")
        assert dag.parallel_groups() == [["extract"], ["transform"], ["load"]]

    def test_parallel_groups_diamond(self):
        """A → B, A → C, B → D, C → D"""
        dag = DAGResolver()
        dag.add_edge("A", "B")
        dag.add_edge("A", "C")
        dag.add_edge("B", "D")
        dag.add_edge("C", "D")
        assert dag.parallel_groups() == [["A"], ["B", "C"], ["D"]]

    def test_from_edges(self):
        dag = DAGResolver.from_edges(["a", "b", "c"], [E("a", "b")])
        assert dag.parallel_groups() == [["a", "c"], ["b"]]

    def test_cycle_detection_three_node(self):
        dag = DAGResolver()
        dag.add_edge("A", "B")
        dag.add_edge("B", "C")
        dag.add_edge("C", "A")
        cycle = dag.detect_cycles()
        assert cycle is not None
        assert set(cycle) == {"A", "B", "C"}
        assert cycle[0] == cycle[-1]

    def test_no_cycle(self):
        dag = DAGResolver()
        dag.add_edge("A", "B")
        dag.add_edge("B", "C")
        assert dag.detect_cycles() is None

    def test_parallel_groups_raises_on_cycle(self):
        dag = DAGResolver()
        dag.add_edge("A", "B")
        dag.add_edge("B", "A")
        with pytest.raises(CycleError):
            dag.parallel_groups()

    def test_would_create_cycle(self):
        dag = DAGResolver()
        dag.add_edge("A", "B")
        dag.add_edge("B", "C")
        assert dag.would_create_cycle("C", "A") == ["A", "B", "C", "A"]
        assert dag.would_create_cycle("A", "C") is None
        assert dag.would_create_cycle("B", "B") == ["B", "B"]
        # Nothing was added
        assert dag.detect_cycles() is None


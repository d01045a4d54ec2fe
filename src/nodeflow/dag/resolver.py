"""DAG dependency resolver — ready-node discovery, cycle detection, parallel groups."""

from __future__ import annotations
from collections import defaultdict, deque
from dataclasses import dataclass, field
from typing import Iterable, Mapping, Protocol, Sequence, TypeVar


class _HasId(Protocol):
    id: str


class _EdgeLike(Protocol):
    source_node_id: str
    target_node_id: str


N = TypeVar("N", bound=_HasId)

PENDING = "pending"
COMPLETED = "completed"


def find_ready_nodes(
    nodes: Sequence[N],
    edges: Iterable[_EdgeLike],
    statuses: Mapping[str, str],
) -> list[N]:
    """Return the nodes that can be dispatched now.

    A node is ready when its status is ``pending`` and the source of every
    edge pointing at it is ``completed``. Nodes without incoming edges are
    ready as soon as they are pending; nodes missing from ``statuses`` count
    as pending. Pure: nothing is mutated and input order is preserved.
    """
    dependencies: dict[str, list[str]] = defaultdict(list)
    for edge in edges:
        dependencies[edge.target_node_id].append(edge.source_node_id)

    return [
        node
        for node in nodes
        if statuses.get(node.id, PENDING) == PENDING
        and all(statuses.get(dep) == COMPLETED for dep in dependencies[node.id])
    ]


@dataclass
class DAGNode:
    """A node in the dependency graph."""
    id: str
    upstream: set[str] = field(default_factory=set)
    downstream: set[str] = field(default_factory=set)


class CycleError(Exception):
    """Raised when a dependency cycle is detected."""
    def __init__(self, cycle: list[str]):
        self.cycle = cycle
        super().__init__(f"Dependency cycle detected: {' → '.join(cycle)}")


class DAGResolver:
    """Dependency graph over node ids."""

    def __init__(self):
        self._nodes: dict[str, DAGNode] = {}

    @classmethod
    def from_edges(cls, node_ids: Iterable[str], edges: Iterable[_EdgeLike]) -> "DAGResolver":
        dag = cls()
        for node_id in node_ids:
            dag.add_node(node_id)
        for edge in edges:
            dag.add_edge(edge.source_node_id, edge.target_node_id)
        return dag

    def add_node(self, node_id: str) -> None:
        if node_id not in self._nodes:
            self._nodes[node_id] = DAGNode(id=node_id)

    def add_edge(self, source: str, target: str) -> None:
        """Add a dependency: target depends on source."""
        self.add_node(source)
        self.add_node(target)
        self._nodes[source].downstream.add(target)
        self._nodes[target].upstream.add(source)

    def detect_cycles(self) -> list[str] | None:
        """Detect cycles using DFS. Returns cycle path or None."""
        WHITE, GRAY, BLACK = 0, 1, 2
        color = {n: WHITE for n in self._nodes}
        parent = {}

        def dfs(node: str) -> list[str] | None:
            color[node] = GRAY
            for child in sorted(self._nodes[node].downstream):
                if color[child] == GRAY:
                    # Found cycle — walk parents back to the child
                    cycle = [node]
                    current = node
                    while current != child and current in parent:
                        current = parent[current]
                        cycle.append(current)
                    cycle.reverse()
                    cycle.append(child)
                    return cycle
                if color[child] == WHITE:
                    parent[child] = node
                    result = dfs(child)
                    if result:
                        return result
            color[node] = BLACK
            return None

        for node in list(self._nodes):
            if color[node] == WHITE:
                result = dfs(node)
                if result:
                    return result
        return None

    def would_create_cycle(self, source: str, target: str) -> list[str] | None:
        """Cycle path that adding ``source → target`` would close, or None."""
        if source == target:
            return [source, target]
        if target not in self._nodes or source not in self._nodes:
            return None
        path = self._path(target, source)
        return path + [target] if path else None

    def _path(self, start: str, end: str) -> list[str] | None:
        """Shortest downstream path from start to end (BFS)."""
        previous: dict[str, str | None] = {start: None}
        queue = deque([start])
        while queue:
            current = queue.popleft()
            if current == end:
                path = []
                while current is not None:
                    path.append(current)
                    current = previous[current]
                return list(reversed(path))
            for child in sorted(self._nodes[current].downstream):
                if child not in previous:
                    previous[child] = current
                    queue.append(child)
        return None

    def parallel_groups(self) -> list[list[str]]:
        """Return execution groups — nodes in the same group can run in parallel.

        Each group only runs after all previous groups have completed. The
        number of groups is the length of the longest dependency chain.
        """
        cycle = self.detect_cycles()
        if cycle:
            raise CycleError(cycle)

        in_degree = {n: len(self._nodes[n].upstream) for n in self._nodes}
        current_group = [n for n, d in in_degree.items() if d == 0]
        groups = []

        while current_group:
            groups.append(sorted(current_group))  # Sort for deterministic output
            next_group = []
            for node in current_group:
                for child in self._nodes[node].downstream:
                    in_degree[child] -= 1
                    if in_degree[child] == 0:
                        next_group.append(child)
            current_group = next_group

        return groups

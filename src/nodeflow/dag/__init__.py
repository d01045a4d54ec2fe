"""DAG dependency resolution."""

from nodeflow.dag.resolver import DAGResolver, CycleError, find_ready_nodes

__all__ = ["DAGResolver", "CycleError", "find_ready_nodes"]

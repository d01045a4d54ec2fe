"""Execution engine: coordinator, node tasks, executor and run state."""

from nodeflow.engine.coordinator import PipelineCoordinator, TickResult
from nodeflow.engine.errors import InvalidTransitionError, NotFoundError
from nodeflow.engine.executor import ExecutionContext, NodeExecutionResult, NodeExecutor
from nodeflow.engine.node_task import NodeExecutionTask
from nodeflow.engine.runtime import PipelineEngine, get_engine, set_engine
from nodeflow.engine.state import RunStateTracker

__all__ = [
    "ExecutionContext",
    "InvalidTransitionError",
    "NodeExecutionResult",
    "NodeExecutionTask",
    "NodeExecutor",
    "NotFoundError",
    "PipelineCoordinator",
    "PipelineEngine",
    "RunStateTracker",
    "TickResult",
    "get_engine",
    "set_engine",
]

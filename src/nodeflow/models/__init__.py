"""SQLAlchemy models — importing this package registers every table."""

from nodeflow.models.pipeline import Pipeline, PipelineStatus
from nodeflow.models.node import Node, NodeKind
from nodeflow.models.edge import Edge
from nodeflow.models.run import PipelineRun, RunStatus, TERMINAL_RUN_STATUSES
from nodeflow.models.node_result import NodeResult, NodeResultStatus, TERMINAL_NODE_STATUSES

__all__ = [
    "Pipeline", "PipelineStatus",
    "Node", "NodeKind",
    "Edge",
    "PipelineRun", "RunStatus", "TERMINAL_RUN_STATUSES",
    "NodeResult", "NodeResultStatus", "TERMINAL_NODE_STATUSES",
]

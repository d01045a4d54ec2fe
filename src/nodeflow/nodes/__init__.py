"""Node types executed by the engine."""

from nodeflow.nodes.base import (
    NodeConfigError,
    NodeError,
    NodeOutput,
    NodeType,
    UnknownNodeTypeError,
)
from nodeflow.nodes.registry import NodeTypeRegistry, default_registry

__all__ = [
    "NodeConfigError",
    "NodeError",
    "NodeOutput",
    "NodeType",
    "NodeTypeRegistry",
    "UnknownNodeTypeError",
    "default_registry",
]

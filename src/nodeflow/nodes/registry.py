"""Node type registry — maps a node's ``type`` to its implementation."""

from __future__ import annotations
import logging
from typing import Any

from pydantic import BaseModel

from nodeflow.nodes.base import NodeType, UnknownNodeTypeError

logger = logging.getLogger("nodeflow.nodes")


class NodeTypeRegistry:
    def __init__(self):
        self._types: dict[str, NodeType] = {}

    def register(self, node_type: NodeType) -> None:
        if node_type.type_name in self._types:
            logger.warning(f"Replacing node type '{node_type.type_name}'")
        self._types[node_type.type_name] = node_type

    def get(self, type_name: str) -> NodeType:
        try:
            return self._types[type_name]
        except KeyError:
            raise UnknownNodeTypeError(type_name) from None

    def has(self, type_name: str) -> bool:
        return type_name in self._types

    def validate_config(self, type_name: str, config: dict[str, Any] | None) -> BaseModel:
        return self.get(type_name).validate_config(config)

    def names(self) -> list[str]:
        return sorted(self._types)


def default_registry() -> NodeTypeRegistry:
    """Registry with every built-in node type."""
    from nodeflow.nodes.http_request import HttpRequestNode
    from nodeflow.nodes.llm import LlmNode
    from nodeflow.nodes.text import TextNode

    registry = NodeTypeRegistry()
    for node_type in (TextNode(), HttpRequestNode(), LlmNode()):
        registry.register(node_type)
    return registry

"""Node executor — validates a node's config and runs it through its node type."""

from __future__ import annotations
import logging
import time
from dataclasses import dataclass, field
from typing import Any

import httpx
from pydantic import BaseModel

from nodeflow.core.config import NodeflowSettings
from nodeflow.models.node import Node
from nodeflow.models.node_result import NodeResultStatus
from nodeflow.nodes.base import NodeConfigError, NodeError
from nodeflow.nodes.registry import NodeTypeRegistry

logger = logging.getLogger("nodeflow.executor")


@dataclass
class ExecutionContext:
    """What a node type may touch while executing, besides its inputs."""
    run_id: str
    node_id: str
    settings: NodeflowSettings
    client: httpx.AsyncClient


@dataclass
class NodeExecutionResult:
    status: str = NodeResultStatus.PENDING.value
    output: dict[str, Any] = field(default_factory=dict)
    metadata: dict[str, Any] = field(default_factory=dict)
    error: str | None = None
    retryable: bool = False
    duration_ms: int | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == NodeResultStatus.COMPLETED.value


class NodeExecutor:
    """Routes a node to its registered type.

    ``transport`` is handed to the shared httpx client; tests pass a stub
    transport so no request leaves the process.
    """

    def __init__(
        self,
        registry: NodeTypeRegistry,
        settings: NodeflowSettings,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.registry = registry
        self.settings = settings
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                transport=self._transport, timeout=self.settings.http_timeout
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def validate_config(self, node: Node) -> BaseModel:
        """Parse the node's config against its type. Raises NodeConfigError."""
        return self.registry.validate_config(node.type, node.config)

    def context_for(self, run_id: str, node: Node) -> ExecutionContext:
        return ExecutionContext(
            run_id=run_id, node_id=node.id, settings=self.settings, client=self.client
        )

    async def execute(
        self, node: Node, inputs: dict[str, Any], context: ExecutionContext
    ) -> NodeExecutionResult:
        """Execute one node. Node-level problems come back as a failed result."""
        result = NodeExecutionResult(status=NodeResultStatus.RUNNING.value)
        start = time.monotonic()

        try:
            config = self.validate_config(node)
            node_type = self.registry.get(node.type)
            output = await node_type.execute(config, inputs or {}, context)
            result.status = NodeResultStatus.COMPLETED.value
            result.output = output.output
            result.metadata = output.metadata
        except NodeConfigError as e:
            result.status = NodeResultStatus.FAILED.value
            result.error = str(e)
            result.retryable = False
            logger.warning(f"Node {node.id} ({node.type}) rejected: {e}")
        except NodeError as e:
            result.status = NodeResultStatus.FAILED.value
            result.error = str(e)
            result.retryable = e.retryable
            logger.warning(f"Node {node.id} ({node.type}) failed: {e}")
        except Exception as e:
            result.status = NodeResultStatus.FAILED.value
            result.error = f"{type(e).__name__}: {e}"
            result.retryable = True
            logger.exception(f"Node {node.id} ({node.type}) raised unexpectedly")
        finally:
            result.duration_ms = int((time.monotonic() - start) * 1000)

        return result

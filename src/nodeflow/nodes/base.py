"""Base node type interface."""

from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, ClassVar, TYPE_CHECKING

from pydantic import BaseModel, ValidationError

if TYPE_CHECKING:
    from nodeflow.engine.executor import ExecutionContext


class NodeError(Exception):
    """A node failed while executing. Retryable unless stated otherwise."""

    retryable: bool = True

    def __init__(self, message: str, retryable: bool | None = None):
        super().__init__(message)
        if retryable is not None:
            self.retryable = retryable


class NodeConfigError(NodeError):
    """A node's config does not satisfy its type. Never retried."""

    retryable = False


class UnknownNodeTypeError(NodeConfigError):
    def __init__(self, type_name: str):
        self.type_name = type_name
        super().__init__(f"Unknown node type: {type_name}")


@dataclass
class NodeOutput:
    """What a node type hands back on success."""
    output: dict[str, Any]
    metadata: dict[str, Any] = field(default_factory=dict)


class NodeType(ABC):
    """Base class for all node kinds.

    Subclasses declare ``type_name``, a human ``label`` used in messages,
    the ``required_fields`` of their config and a pydantic ``config_model``.
    """

    type_name: ClassVar[str]
    label: ClassVar[str]
    required_fields: ClassVar[tuple[str, ...]] = ()
    config_model: ClassVar[type[BaseModel]]

    def validate_config(self, config: dict[str, Any] | None) -> BaseModel:
        """Parse ``config`` into the config model or raise NodeConfigError."""
        config = config or {}
        missing = [name for name in self.required_fields if config.get(name) in (None, "")]
        if missing:
            raise NodeConfigError(f"{self.label} node requires: {', '.join(missing)}")
        try:
            return self.config_model.model_validate(config)
        except ValidationError as e:
            raise NodeConfigError(_first_error(e)) from e

    @abstractmethod
    async def execute(
        self, config: BaseModel, inputs: dict[str, Any], context: "ExecutionContext"
    ) -> NodeOutput:
        """Run the node against its inputs. Raises NodeError on failure."""
        ...


def _first_error(error: ValidationError) -> str:
    detail = error.errors()[0]
    message = detail.get("msg", str(error))
    # Custom validators surface as "Value error, <message>"
    if message.startswith("Value error, "):
        return message[len("Value error, "):]
    location = ".".join(str(part) for part in detail.get("loc", ()))
    return f"Invalid '{location}': {message}" if location else message

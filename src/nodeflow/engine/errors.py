"""Engine error taxonomy."""

from __future__ import annotations


class NotFoundError(Exception):
    """A run, pipeline, node or node result does not exist.

    Fatal to the current tick or task and never retried: the next attempt
    would hit the same error.
    """

    def __init__(self, kind: str, identifier: str):
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} '{identifier}' not found")


class InvalidTransitionError(Exception):
    """Raised when a state machine event is not allowed from the current state."""

    def __init__(self, machine: str, event: str, current: str):
        self.machine = machine
        self.event = event
        self.current = current
        super().__init__(f"Cannot {event} {machine} in state '{current}'")


class InvalidDefinitionError(Exception):
    """A pipeline definition change would leave the graph malformed."""

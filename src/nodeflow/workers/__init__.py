"""In-process task queue."""

from nodeflow.workers.queue import QueuedTask, TaskQueue

__all__ = ["QueuedTask", "TaskQueue"]

"""Task queue — bounded in-process worker pool with retries and delayed delivery.

Delivery is at-least-once: a handler that raises is run again, with
exponential backoff, until the task's attempt budget is spent. Handlers must
therefore be safe to repeat.
"""

from __future__ import annotations
import asyncio
import logging
import uuid
from dataclasses import dataclass, field, replace
from typing import Any, Awaitable, Callable

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from nodeflow.daemon.scheduler import add_delayed_job, get_scheduler, remove_job, start_scheduler

logger = logging.getLogger("nodeflow.queue")


@dataclass(frozen=True)
class QueuedTask:
    task_type: str
    payload: dict[str, Any]
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    attempt: int = 1
    max_attempts: int = 1
    key: str | None = None
    last_error: str | None = None

    @property
    def is_final_attempt(self) -> bool:
        return self.attempt >= self.max_attempts


Handler = Callable[[QueuedTask], Awaitable[Any]]


class TaskQueue:
    """Runs registered handlers for enqueued tasks.

    Immediate tasks start as asyncio tasks gated by a semaphore of
    ``max_concurrent``. Delayed tasks and retries become one-shot scheduler
    jobs; a task ``key`` names the job, so enqueueing again under the same key
    replaces the one still waiting.
    """

    def __init__(
        self,
        max_concurrent: int = 10,
        default_max_attempts: int = 3,
        backoff_base: float = 1.0,
        backoff_cap: float = 10.0,
        scheduler: AsyncIOScheduler | None = None,
    ):
        self.max_concurrent = max_concurrent
        self.default_max_attempts = default_max_attempts
        self.backoff_base = backoff_base
        self.backoff_cap = backoff_cap
        self.scheduler = scheduler or get_scheduler()
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._handlers: dict[str, tuple[Handler, int]] = {}
        self._active: dict[str, asyncio.Task] = {}  # task id → asyncio task
        self._scheduled: set[str] = set()  # job ids waiting in the scheduler
        self._closed = False
        self._stats = {"completed": 0, "retried": 0, "failed": 0}

    def register(self, task_type: str, handler: Handler, max_attempts: int | None = None) -> None:
        self._handlers[task_type] = (handler, max_attempts or self.default_max_attempts)
        logger.info(f"Registered handler for '{task_type}' (max_attempts={max_attempts or self.default_max_attempts})")

    def backoff(self, attempt: int) -> float:
        """Delay before retrying after a failed ``attempt`` (1-based)."""
        return min(self.backoff_base * 2 ** (attempt - 1), self.backoff_cap)

    async def enqueue(
        self,
        task_type: str,
        payload: dict[str, Any],
        delay: float | None = None,
        max_attempts: int | None = None,
        key: str | None = None,
    ) -> str:
        """Queue a task and return its id."""
        if self._closed:
            raise RuntimeError("Task queue is shut down")
        if task_type not in self._handlers:
            raise KeyError(f"No handler registered for task type '{task_type}'")

        _, default_attempts = self._handlers[task_type]
        task = QueuedTask(
            task_type=task_type,
            payload=payload,
            max_attempts=max_attempts or default_attempts,
            key=key,
        )
        self._submit(task, delay)
        return task.id

    def _submit(self, task: QueuedTask, delay: float | None) -> None:
        if delay and delay > 0:
            job_id = task.key or f"task:{task.id}"
            start_scheduler(self.scheduler)
            add_delayed_job(
                job_id, self._fire, delay, kwargs={"job_id": job_id, "task": task},
                scheduler=self.scheduler,
            )
            self._scheduled.add(job_id)
            return
        self._start(task)

    async def _fire(self, job_id: str, task: QueuedTask) -> None:
        self._scheduled.discard(job_id)
        if not self._closed:
            self._start(task)

    def _start(self, task: QueuedTask) -> None:
        running = asyncio.get_running_loop().create_task(self._run(task))
        self._active[task.id] = running
        running.add_done_callback(lambda _: self._active.pop(task.id, None))

    async def _run(self, task: QueuedTask) -> None:
        handler, _ = self._handlers[task.task_type]
        async with self._semaphore:
            try:
                await handler(task)
            except Exception as e:
                self._handle_failure(task, e)
            else:
                self._stats["completed"] += 1

    def _handle_failure(self, task: QueuedTask, error: Exception) -> None:
        if task.is_final_attempt or self._closed:
            self._stats["failed"] += 1
            logger.error(
                f"Task {task.task_type} {task.id} failed on attempt "
                f"{task.attempt}/{task.max_attempts}, giving up: {error}"
            )
            return

        delay = self.backoff(task.attempt)
        self._stats["retried"] += 1
        logger.warning(
            f"Task {task.task_type} {task.id} failed on attempt "
            f"{task.attempt}/{task.max_attempts}: {error} (retrying in {delay:.1f}s)"
        )
        self._submit(replace(task, attempt=task.attempt + 1, last_error=str(error)), delay)

    async def join(self) -> None:
        """Wait until no task is running. Delayed jobs are not waited for."""
        while self._active:
            await asyncio.gather(*list(self._active.values()), return_exceptions=True)

    async def shutdown(self, timeout: float | None = 10.0) -> None:
        """Drop waiting jobs, let running tasks finish, cancel stragglers."""
        self._closed = True
        for job_id in list(self._scheduled):
            remove_job(job_id, scheduler=self.scheduler)
        self._scheduled.clear()

        try:
            await asyncio.wait_for(self.join(), timeout=timeout)
        except asyncio.TimeoutError:
            stragglers = list(self._active.values())
            logger.warning(f"Cancelling {len(stragglers)} task(s) still running at shutdown")
            for running in stragglers:
                running.cancel()
            await asyncio.gather(*stragglers, return_exceptions=True)

    def info(self) -> dict:
        return {
            "max_concurrent": self.max_concurrent,
            "active": len(self._active),
            "scheduled": sorted(self._scheduled),
            "task_types": sorted(self._handlers),
            **self._stats,
        }

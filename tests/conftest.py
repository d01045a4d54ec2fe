"""Shared test fixtures for Nodeflow tests."""

from dataclasses import replace
from typing import Callable

import httpx
import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

from nodeflow.core.config import NodeflowSettings
from nodeflow.core.database import init_engine, create_tables, dispose_engine
from nodeflow.daemon.main import create_app
from nodeflow.engine.runtime import PipelineEngine, set_engine
from nodeflow.models.pipeline import PipelineStatus
from nodeflow.services.pipeline_service import PipelineService
from nodeflow.workers.queue import QueuedTask


class StubTransport(httpx.AsyncBaseTransport):
    """Answers outbound requests with ``handler(request)`` and records them."""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response] | None = None):
        self.handler = handler or (lambda request: httpx.Response(200, json={"ok": True}))
        self.requests: list[httpx.Request] = []

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.handler(request)


class RecordingQueue:
    """Stands in for TaskQueue: records enqueued tasks, runs them on demand.

    ``run_pending`` delivers every queued task once, in order, and re-queues
    a task whose handler raises (with the next attempt number) until its
    attempt budget is spent, the way TaskQueue retries.
    """

    def __init__(self):
        self.handlers: dict = {}
        self.pending: list[QueuedTask] = []
        self.enqueued: list[tuple[QueuedTask, float | None]] = []
        self.errors: list[tuple[QueuedTask, Exception]] = []

    def register(self, task_type, handler, max_attempts=None):
        self.handlers[task_type] = (handler, max_attempts or 1)

    async def enqueue(self, task_type, payload, delay=None, max_attempts=None, key=None):
        default_attempts = self.handlers.get(task_type, (None, 1))[1]
        task = QueuedTask(
            task_type=task_type,
            payload=payload,
            max_attempts=max_attempts or default_attempts,
            key=key,
        )
        if key is not None:
            # Same key replaces the waiting task
            self.pending = [t for t in self.pending if t.key != key]
        self.pending.append(task)
        self.enqueued.append((task, delay))
        return task.id

    def of_type(self, task_type: str) -> list[QueuedTask]:
        return [t for t in self.pending if t.task_type == task_type]

    async def run_pending(self) -> int:
        batch, self.pending = self.pending, []
        for task in batch:
            handler, _ = self.handlers[task.task_type]
            try:
                await handler(task)
            except Exception as e:
                self.errors.append((task, e))
                if not task.is_final_attempt:
                    self.pending.append(replace(task, attempt=task.attempt + 1, last_error=str(e)))
        return len(batch)

    async def drain(self, max_rounds: int = 50) -> int:
        """Deliver tasks until none are left. Returns the number of rounds."""
        rounds = 0
        while self.pending and rounds < max_rounds:
            await self.run_pending()
            rounds += 1
        return rounds

    async def shutdown(self):
        self.pending.clear()

    def info(self) -> dict:
        return {"max_concurrent": 1, "active": 0, "scheduled": [], "task_types": sorted(self.handlers)}


def make_settings(**overrides) -> NodeflowSettings:
    values = {
        "api_key": "test_key",
        "database_url": "sqlite+aiosqlite://",
        "tick_interval": 0.01,
        "openrouter_api_key": None,
        "xai_api_key": None,
        "openrouter_url": "https://openrouter.test/api/v1/chat/completions",
        "xai_url": "https://xai.test/v1/chat/completions",
    }
    values.update(overrides)
    return NodeflowSettings(_env_file=None, **values)


@pytest.fixture
def settings() -> NodeflowSettings:
    return make_settings()


@pytest.fixture
def transport() -> StubTransport:
    return StubTransport()


@pytest_asyncio.fixture(scope="function")
async def session_factory():
    """Fresh in-memory SQLite database for each test."""
    factory = init_engine("sqlite+aiosqlite://")
    await create_tables()
    yield factory
    await dispose_engine()


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory):
    """Get a database session for direct DB operations in tests."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def queue() -> RecordingQueue:
    return RecordingQueue()


@pytest_asyncio.fixture(scope="function")
async def engine(session_factory, settings, queue, transport):
    """Engine driven by the recording queue, with outbound HTTP stubbed."""
    _engine = PipelineEngine(session_factory, settings, queue=queue, transport=transport)
    _engine.start()
    set_engine(_engine)
    yield _engine
    set_engine(None)
    await _engine.executor.close()


@pytest_asyncio.fixture(scope="function")
async def app(engine, settings):
    """App sharing the test database and engine. Lifespan does not run under ASGITransport."""
    return create_app(settings)


@pytest_asyncio.fixture(scope="function")
async def client(app):
    """Async HTTP client pointed at the test app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport,
        base_url="http://test",
        headers={"Authorization": "Bearer test_key"},
    ) as c:
        yield c


@pytest_asyncio.fixture(scope="function")
async def unauthed_client(app):
    """Async HTTP client without auth."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest.fixture
def build_pipeline(session_factory):
    """Create a published pipeline from node specs and (source, target) name pairs.

    Returns the pipeline id and a name → node id mapping.
    """

    async def _build(nodes: list[dict], edges: list[tuple[str, str]] = ()) -> tuple[str, dict[str, str]]:
        async with session_factory() as session:
            service = PipelineService(session)
            pipeline = await service.create("test_pipeline")
            ids = {}
            for spec in nodes:
                node = await service.add_node(
                    pipeline.id, spec["name"], spec["type"], spec.get("config", {})
                )
                ids[spec["name"]] = node.id
            for source, target in edges:
                await service.add_edge(pipeline.id, ids[source], ids[target])
            await service.publish(pipeline.id)
            assert (await service.get(pipeline.id)).status == PipelineStatus.ACTIVE.value
            return pipeline.id, ids

    return _build

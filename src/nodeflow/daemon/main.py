"""Nodeflow daemon — FastAPI app with the pipeline engine, task queue and scheduler."""

import logging
import uvicorn
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from nodeflow import __version__
from nodeflow.core.config import NodeflowSettings, get_settings
from nodeflow.core.database import init_engine, create_tables, dispose_engine
from nodeflow.api.router import api_router
from nodeflow.dag.resolver import CycleError
from nodeflow.daemon.scheduler import get_scheduler, start_scheduler, stop_scheduler, list_jobs
from nodeflow.engine.errors import InvalidDefinitionError, InvalidTransitionError, NotFoundError
from nodeflow.engine.runtime import PipelineEngine, get_engine, set_engine
from nodeflow.nodes.base import NodeConfigError

logger = logging.getLogger("nodeflow")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown."""
    settings: NodeflowSettings = app.state.settings

    # Init database
    session_factory = init_engine(settings.database_url)
    await create_tables()
    logger.info(f"Database initialized: {settings.database_url}")

    # Start scheduler
    scheduler = get_scheduler()
    start_scheduler(scheduler)

    # Init engine
    engine = PipelineEngine(session_factory, settings, scheduler=scheduler)
    engine.start()
    set_engine(engine)
    logger.info(f"Task queue initialized (max_concurrent={settings.max_concurrent})")

    # Runs interrupted by the last shutdown
    recovered = await engine.recover()
    if recovered:
        logger.info(f"Resubmitted {len(recovered)} unfinished run(s)")

    yield

    # Shutdown
    await engine.shutdown()
    set_engine(None)
    stop_scheduler(scheduler)
    await dispose_engine()
    logger.info("Nodeflow daemon stopped")


def _error(status_code: int):
    async def handler(request: Request, exc: Exception):
        return JSONResponse(status_code=status_code, content={"detail": str(exc)})
    return handler


def create_app(settings: NodeflowSettings | None = None) -> FastAPI:
    app = FastAPI(
        title="Nodeflow",
        description="DAG workflow engine for text, HTTP and LLM nodes",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings or get_settings()

    app.include_router(api_router)

    app.add_exception_handler(NotFoundError, _error(404))
    app.add_exception_handler(NodeConfigError, _error(422))
    app.add_exception_handler(InvalidTransitionError, _error(409))
    app.add_exception_handler(InvalidDefinitionError, _error(400))
    app.add_exception_handler(CycleError, _error(400))

    @app.get("/health")
    async def health():
        engine = get_engine()
        return {
            "status": "ok",
            "version": __version__,
            "scheduler_jobs": list_jobs(),
            "queue": engine.queue.info() if engine else None,
        }

    return app


def main():
    """Entry point for `nodeflowd` command."""
    import sys

    settings = get_settings()

    # Configure logging
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper()),
        format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
        datefmt="%H:%M:%S",
    )

    host = settings.host
    port = settings.port

    # Parse CLI args (simple, no dep on typer for daemon)
    args = sys.argv[1:]
    for i, arg in enumerate(args):
        if arg == "--port" and i + 1 < len(args):
            port = int(args[i + 1])
        if arg == "--host" and i + 1 < len(args):
            host = args[i + 1]

    logger.info(f"Starting Nodeflow daemon v{__version__} on {host}:{port}")

    app = create_app(settings)
    uvicorn.run(app, host=host, port=port, log_level=settings.log_level)


if __name__ == "__main__":
    main()

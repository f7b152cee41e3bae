"""
attackbench/server/api.py
FastAPI application: HTTP control surface and live output streaming for the workbench.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from attackbench import __version__
from attackbench.base.config import WorkbenchConfig, get_config, setup_logging
from attackbench.errors import WorkbenchError
from attackbench.server.routers import attacks, evidence, realtime, tools
from attackbench.server.state import ApplicationState, build_state
from attackbench.utils.async_helpers import create_safe_task, run_periodically

logger = logging.getLogger(__name__)

# Seconds between history prune passes
PRUNE_INTERVAL = 60.0


@asynccontextmanager
async def lifespan(app: FastAPI):
    state: ApplicationState = app.state.workbench

    await state.evidence.load()
    await asyncio.to_thread(state.monitor.refresh)
    state.prune_task = create_safe_task(
        run_periodically(PRUNE_INTERVAL, state.manager.prune_history, name="history_prune"),
        name="history_prune",
    )
    logger.info("[API] Workbench ready")
    try:
        yield
    finally:
        state.prune_task.cancel()
        await state.manager.shutdown()
        await state.wait_for_seals()
        await state.evidence.index.close()
        logger.info("[API] Workbench stopped")


def create_app(state: Optional[ApplicationState] = None) -> FastAPI:
    """Build the FastAPI app around an already-wired ApplicationState."""
    app = FastAPI(
        title="AttackBench API",
        description="Managed execution of offensive-security tools with evidence capture",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.workbench = state or build_state()

    @app.exception_handler(WorkbenchError)
    async def workbench_error_handler(request: Request, exc: WorkbenchError):
        if exc.http_status >= 500:
            logger.error(f"[API] {exc.code.value}: {exc.message}")
        else:
            logger.warning(f"[API] {exc.code.value}: {exc.message}")
        return JSONResponse(status_code=exc.http_status, content=exc.to_dict())

    @app.get("/health")
    async def health_check():
        return {"status": "ok", "version": __version__}

    app.include_router(tools.router)
    app.include_router(attacks.router)
    app.include_router(evidence.router)
    app.include_router(realtime.router)
    return app


def serve(host: Optional[str] = None, port: Optional[int] = None, config: Optional[WorkbenchConfig] = None):
    config = config or get_config()
    setup_logging(config)
    app = create_app(build_state(config))
    uvicorn.run(
        app,
        host=host or config.api_host,
        port=port or config.api_port,
        log_level="debug" if config.debug else "info",
    )

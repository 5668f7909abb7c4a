"""
HTTP server process.

The file-serving and link routes live in their own layer; this module owns the
process lifecycle: load permissions, open the control pipe, serve HTTP, and
stop everything cleanly when `shutdown` arrives on the pipe (or on SIGINT /
SIGTERM via uvicorn).
"""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse

from file2link.config import AppConfig, configure_logging, load_app_config
from file2link.errors import ChannelError
from file2link.runtime import ControlPlane

logger = logging.getLogger(__name__)


def create_app(plane: ControlPlane) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        # Must run before uvicorn re-raises a captured SIGINT/SIGTERM.
        await plane.stop()

    app = FastAPI(title="file2link", lifespan=lifespan)
    app.state.control_plane = plane

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log all incoming HTTP requests."""
        start_time = time.time()
        response = await call_next(request)
        process_time = time.time() - start_time
        logger.debug("%s %s - %d (%.3fs)", request.method, request.url.path, response.status_code, process_time)
        return response

    @app.get("/", response_class=PlainTextResponse)
    def root() -> str:
        return "Server working"

    @app.get("/healthz")
    def healthz() -> JSONResponse:
        snap = plane.store.snapshot()
        return JSONResponse(
            content={
                "ok": not plane.stopping,
                "permissions_loaded": snap.generation > 0,
                "permissions_generation": snap.generation,
            }
        )

    return app


async def serve(config: AppConfig) -> None:
    import uvicorn

    plane = ControlPlane(config)
    plane.load_initial()
    await plane.start()

    uvicorn_log_level = (
        config.log_level.lower()
        if config.log_level.lower() in ["critical", "error", "warning", "info", "debug", "trace"]
        else "info"
    )
    server = uvicorn.Server(
        uvicorn.Config(
            create_app(plane),
            host=config.server_host,
            port=config.server_port,
            log_level=uvicorn_log_level,
            timeout_graceful_shutdown=config.shutdown_grace_seconds,
        )
    )

    def _stop_http() -> None:
        server.should_exit = True

    plane.add_shutdown_hook(_stop_http)

    logger.info(
        "Starting server on %s:%d (domain=%s, pipe=%s, permissions=%s)",
        config.server_host,
        config.server_port,
        config.domain,
        config.pipe_path,
        config.permissions_path,
    )
    try:
        await server.serve()
    finally:
        await plane.stop()


def run(config: Optional[AppConfig] = None) -> int:
    """Run the server until shutdown. Returns the process exit status."""
    cfg = config or load_app_config()
    configure_logging(cfg.log_level)
    try:
        asyncio.run(serve(cfg))
    except ChannelError as e:
        logger.error("Control pipe unavailable, refusing to start: %s", e)
        return 1
    return 0

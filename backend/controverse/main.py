"""ControVerse Backend Application.

This is the main entry point for the ControVerse chat relay. Clients connect
over a WebSocket, exchange short text messages, and see who else is online
and typing.

Modules:
    - chat: WebSocket endpoint, coordinator, and the room state behind it
    - config: YAML settings with PORT environment override
    - http_limits: per-IP request limiting for the HTTP routes

HTTP endpoints:
    - GET /health: liveness plus connected user count
    - GET /api/stats: user count, history length, uptime
    - GET /: static client (when the configured static_dir exists)

Every HTTP route shares a per-IP budget (100 requests per 15 minutes by
default); requests beyond it get 429.
"""
import asyncio
import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from controverse.chat.coordinator import BroadcastCoordinator
from controverse.chat.router import router as chat_router
from controverse.chat.transport import WebSocketTransport
from controverse.config import AppConfig, get_config
from controverse.http_limits import IPRateLimitMiddleware

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

logger = logging.getLogger(__name__)


def _log_unhandled(loop: asyncio.AbstractEventLoop, context: dict) -> None:
    """Event loop exception handler: log and keep serving."""
    exc = context.get("exception")
    logger.error(
        "Unhandled error in event loop: %s",
        context.get("message", "unknown"),
        exc_info=exc,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup/shutdown events."""
    # Startup
    config: AppConfig = app.state.config

    # Apply configured log level to root logger so that
    # `logging.level: "debug"` in controverse.settings.yaml activates DEBUG output.
    configured_level = getattr(logging, config.logging.level.upper(), None)
    if configured_level is not None:
        logging.getLogger().setLevel(configured_level)
        logger.info("Root logger level set to %s", config.logging.level.upper())

    asyncio.get_running_loop().set_exception_handler(_log_unhandled)

    logger.info(
        f"ControVerse server started at http://{config.server.host}:{config.server.port}"
    )
    logger.info(
        f"Health check available at http://{config.server.host}:{config.server.port}/health"
    )

    yield  # Application runs here

    # Shutdown
    logger.info("Application shutdown complete")


def create_app(config: Optional[AppConfig] = None) -> FastAPI:
    """Build a FastAPI app with its own transport and coordinator.

    Each app owns independent chat state, so tests can create as many
    isolated rooms as they need.
    """
    config = config or get_config()

    app = FastAPI(
        title="ControVerse API",
        description="Real-time group chat relay",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.started_at = time.monotonic()
    app.state.transport = WebSocketTransport()
    app.state.coordinator = BroadcastCoordinator(app.state.transport, config.chat)

    app.add_middleware(
        IPRateLimitMiddleware,
        limit=config.server.http_rate_limit,
        window_seconds=config.server.http_rate_window_seconds,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.server.cors_origins,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    app.include_router(chat_router)

    @app.get("/health")
    async def health(request: Request) -> dict:
        """Health check endpoint.

        Returns:
            dict: Status, connected users, uptime seconds, and server time.
        """
        coordinator: BroadcastCoordinator = request.app.state.coordinator
        return {
            "status": "ok",
            "users": coordinator.stats()["activeUsers"],
            "uptime": time.monotonic() - request.app.state.started_at,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    @app.get("/api/stats")
    async def stats(request: Request) -> dict:
        """Room statistics.

        Returns:
            dict: activeUsers, totalMessages (history length), uptime in
            whole seconds.
        """
        coordinator: BroadcastCoordinator = request.app.state.coordinator
        return {
            **coordinator.stats(),
            "uptime": int(time.monotonic() - request.app.state.started_at),
        }

    # Mounted last: a mount at "/" would otherwise shadow the routes above
    static_dir = Path(config.server.static_dir)
    if static_dir.is_dir():
        app.mount("/", StaticFiles(directory=static_dir, html=True), name="static")
        logger.info("Serving static files from %s", static_dir.resolve())

    return app


app = create_app()


def run() -> None:
    """Serve the module-level app with uvicorn on the configured host/port."""
    config = app.state.config
    uvicorn.run(app, host=config.server.host, port=config.server.port)


if __name__ == "__main__":
    run()

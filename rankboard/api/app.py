"""
Application factory.

`create_app()` wires the process: configuration, database engine, one
EventBus, the ChannelHub subscribed to score updates, and the leaderboard
services, all stored on `app.state` for the request dependencies.

Lifespan
--------
Startup:
1. Validate static configuration and load YAML tunables.
2. Initialize the database engine; create tables when
   `DATABASE_AUTO_CREATE` is enabled.
3. Build the event bus, attach the hub and construct services.

Shutdown:
1. Wait for background listeners.
2. Dispose the database engine.
"""

from __future__ import annotations

import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from rankboard.api import routes, websocket
from rankboard.api.errors import register_exception_handlers
from rankboard.core.config.config import Config
from rankboard.core.config.manager import ConfigManager
from rankboard.core.database.service import DatabaseService
from rankboard.core.event.bus import EventBus
from rankboard.core.logging.logger import LogContext, get_logger
from rankboard.modules.leaderboard.aggregation import AggregationService
from rankboard.modules.leaderboard.score_service import ScoreUpdateService
from rankboard.modules.leaderboard.service import LeaderboardService
from rankboard.modules.realtime.hub import ChannelHub

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    Config.validate()
    ConfigManager.initialize()

    await DatabaseService.initialize()
    if Config.DATABASE_AUTO_CREATE:
        await DatabaseService.create_schema()

    event_bus = EventBus(config_manager=ConfigManager)
    channel_hub = ChannelHub(ConfigManager)
    channel_hub.attach(event_bus)

    app.state.event_bus = event_bus
    app.state.channel_hub = channel_hub
    app.state.leaderboard_service = LeaderboardService(ConfigManager)
    app.state.aggregation_service = AggregationService(ConfigManager)
    app.state.score_update_service = ScoreUpdateService(ConfigManager, event_bus)

    logger.info("Rankboard started", extra=Config.get_config_summary())

    try:
        yield
    finally:
        await event_bus.drain()
        await DatabaseService.shutdown()
        logger.info("Rankboard stopped")


def create_app() -> FastAPI:
    app = FastAPI(
        title="Rankboard",
        version=Config.SERVICE_VERSION,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=Config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def request_context_middleware(request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex[:12]

        async with LogContext(
            request_id=request_id,
            user_id=request.headers.get("X-User-Id"),
            route=f"{request.method} {request.url.path}",
            component="api",
        ):
            response = await call_next(request)

        response.headers[REQUEST_ID_HEADER] = request_id
        return response

    register_exception_handlers(app)
    app.include_router(routes.router)
    app.include_router(websocket.router)

    return app

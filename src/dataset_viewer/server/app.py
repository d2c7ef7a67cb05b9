"""ASGI application for standalone deployment."""

import asyncio
import contextlib
from collections.abc import AsyncIterator
from typing import TYPE_CHECKING

from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware

from dataset_viewer.observability import get_logger
from dataset_viewer.server.middleware import BodySizeLimitMiddleware, RequestContextMiddleware
from dataset_viewer.server.routes import create_routes

if TYPE_CHECKING:
    from dataset_viewer.state import AppState

logger = get_logger(__name__)

# Seconds between idle-session sweeps
CLEANUP_INTERVAL = 60.0


async def _expire_sessions(state: "AppState", interval: float) -> None:
    while True:
        await asyncio.sleep(interval)
        expired = await state.registry.cleanup_expired()
        if expired:
            logger.info("Closed idle sessions", context={"count": len(expired)})


def create_app(state: "AppState", cleanup_interval: float = CLEANUP_INTERVAL) -> Starlette:
    """Create the ASGI application.

    Args:
        state: The application state
        cleanup_interval: Seconds between idle-session sweeps

    Returns:
        Starlette application
    """

    @contextlib.asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        sweeper = asyncio.create_task(_expire_sessions(state, cleanup_interval))
        try:
            yield
        finally:
            sweeper.cancel()
            await state.shutdown()

    # Middleware stack (order matters - executed in reverse order)
    # So: CORS -> RequestContext -> BodySizeLimit -> Route handler
    middleware = [
        Middleware(
            CORSMiddleware,
            allow_origins=state.config.server.cors_origins or ["*"],
            allow_methods=["*"],
            allow_headers=["*"],
        ),
        Middleware(RequestContextMiddleware),
        Middleware(
            BodySizeLimitMiddleware,
            max_body_bytes=state.config.server.max_body_bytes,
        ),
    ]

    return Starlette(
        routes=create_routes(state),
        middleware=middleware,
        lifespan=lifespan,
    )

"""
Common Grounds FastAPI Application Entry Point.

Run with: uvicorn common_grounds.main:app --reload
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from common_grounds.api.errors import register_exception_handlers
from common_grounds.api.routes import (
    auth,
    classes,
    friends,
    messages,
    realtime,
    users,
)
from common_grounds.config import Settings, get_settings
from common_grounds.container import AppContainer

logger = logging.getLogger(__name__)


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def create_app(
    settings: Settings | None = None,
    container: AppContainer | None = None,
) -> FastAPI:
    """
    Build the application.

    When `container` is given it is used as-is and left for the caller to
    close; otherwise the lifespan builds one and tears it down on shutdown.
    """
    settings = settings or (container.settings if container else get_settings())

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan manager for startup/shutdown."""
        configure_logging(settings)
        if container is not None:
            yield
            return

        app.state.container = AppContainer.build(settings)
        await app.state.container.start()
        logger.info("%s started (%s)", settings.app_name, settings.environment)
        try:
            yield
        finally:
            await app.state.container.aclose()

    app = FastAPI(
        title=settings.app_name,
        description="Find classmates, friends and anonymous class discussion at UVA",
        version="0.1.0",
        lifespan=lifespan,
    )
    if container is not None:
        app.state.container = container

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app, settings)

    # Include routers
    app.include_router(auth.router)
    app.include_router(users.router)
    app.include_router(users.search_router)
    app.include_router(classes.router)
    app.include_router(messages.router)
    app.include_router(friends.router)
    app.include_router(realtime.router)

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "healthy"}

    return app


app = create_app()

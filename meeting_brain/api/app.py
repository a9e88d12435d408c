"""
FastAPI application setup for the meeting transcript pipeline.

This module:
- Creates and configures the FastAPI application
- Registers routes and error handlers
- Connects the stores and starts the services for the app's lifetime
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from meeting_brain.api.routes import register_error_handlers, router
from meeting_brain.constructor import ServerManagerType
from meeting_brain.context import Context
from meeting_brain.server.constructor import construct_server_manager
from meeting_brain.services.constructor import construct_services_manager

load_dotenv(dotenv_path=".env.local")

logger = logging.getLogger(__name__)


async def start_context(service_type: ServerManagerType) -> Context:
    """Build a context, connect every store and start every service."""
    context = Context()

    server_manager = construct_server_manager(service_type, context)
    context.set_server_manager(server_manager)
    await server_manager.connect_all()

    services_manager = construct_services_manager(service_type, context)
    context.set_services_manager(services_manager)
    await services_manager.initialize_all()

    return context


def create_app(
    service_type: ServerManagerType = ServerManagerType.PRODUCTION,
    context: Context | None = None,
) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        service_type: Store backends to connect when no context is given
        context: Already started context; its lifecycle is then left to the caller

    Returns:
        Configured FastAPI app
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if context is not None:
            yield
            return

        app.state.context = await start_context(service_type)
        logger.info("Meeting pipeline started")
        try:
            yield
        finally:
            await app.state.context.services_manager.shutdown_all()
            logger.info("Meeting pipeline stopped")

    app = FastAPI(
        title="Meeting Brain API",
        description="Meeting transcript ingestion and semantic search",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[os.getenv("APP_URL", "http://localhost:5173")],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    if context is not None:
        app.state.context = context

    app.include_router(router)
    register_error_handlers(app)
    return app

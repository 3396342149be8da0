"""
Ticket Manager - Main Application
=================================

Ticket-management backend over PostgreSQL, MySQL or SQL Server.

Clean Architecture Layers:
- Interfaces: FastAPI controllers
- Application: ManageTickets, pagination and DTOs
- Domain: Entities and value objects
- Infrastructure: Database providers, cache, attachment storage
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

# Configuration and Core
from ticket_manager.config import settings
from ticket_manager.core import ApplicationException

# Ticket module
from ticket_manager.tickets.application.services import create_ticket_manager
from ticket_manager.tickets.interfaces import tickets_router

# Shared
from ticket_manager.shared.api.middleware import (
    CorrelationIDMiddleware,
    LoggingMiddleware,
    TimingMiddleware,
    application_exception_handler,
    global_exception_handler,
)
from ticket_manager.shared.infrastructure.logging import get_logger, setup_logging

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan manager.

    STARTUP:
    1. Setup structured logging
    2. Build the ticket manager (engine, cache, attachment storage)
    3. Apply migrations and check the database context

    SHUTDOWN:
    1. Close the cache
    2. Close database connections
    """
    # === STARTUP ===
    setup_logging(settings.log_level, settings.environment)
    logger.info("Starting Ticket Manager", extra={
        "version": settings.app_version,
        "environment": settings.environment,
        "provider": settings.database_provider
    })

    app.state.settings = settings
    manager = create_ticket_manager(settings)

    # If the database is not available, the server still starts; ticket
    # endpoints answer 503 until it is restarted with a reachable database
    try:
        await manager.start()
    except ApplicationException as e:
        logger.warning(
            "Database not available - running in degraded mode",
            extra={"error": e.message, "provider": settings.database_provider}
        )

    app.state.ticket_manager = manager
    logger.info("Ticket Manager started")

    yield  # Application runs here

    # === SHUTDOWN ===
    logger.info("Shutting down Ticket Manager")
    await manager.stop()
    logger.info("Ticket Manager shutdown complete")


def create_app() -> FastAPI:
    """Build the FastAPI application with middleware, handlers and routes."""
    application = FastAPI(
        title="Ticket Manager API",
        description="""
    ## Ticket Management Service

    CRUD backend for support tickets over PostgreSQL, MySQL or SQL Server.

    **Features:**
    - Create, read, update and delete tickets
    - Search with sorting, paging and match modes
    - Filters by keyword, assignee, title, tag and promise date
    - Up to two attachments per upload, with download and replace
    - Cached reads with invalidation on every change
    """,
        version=settings.app_version,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan
    )

    # === CORS Middleware ===
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # === Custom Middleware (from shared) ===
    application.add_middleware(LoggingMiddleware)
    application.add_middleware(TimingMiddleware)
    application.add_middleware(CorrelationIDMiddleware)
    application.add_exception_handler(ApplicationException, application_exception_handler)
    application.add_exception_handler(Exception, global_exception_handler)

    # === Include Module Routers ===
    application.include_router(tickets_router)

    @application.get("/health", tags=["Health"], responses={
        200: {
            "description": "Service health",
            "content": {
                "application/json": {
                    "example": {
                        "status": "healthy",
                        "version": "1.0.0",
                        "environment": "development",
                        "checks": {"database": "connected", "cache": "memory"}
                    }
                }
            }
        }
    })
    async def health_check(request: Request):
        """
        Health check endpoint for load balancers and orchestrators.

        Reports ``degraded`` while the database context is not created.
        """
        manager = getattr(request.app.state, "ticket_manager", None)
        connected = bool(manager and manager.is_context_created)
        return {
            "status": "healthy" if connected else "degraded",
            "version": settings.app_version,
            "environment": settings.environment,
            "checks": {
                "database": "connected" if connected else "unavailable",
                "cache": settings.cache_backend
            }
        }

    @application.get("/", tags=["Root"])
    async def root():
        """Root endpoint with API information."""
        return {
            "service": "Ticket Manager",
            "version": settings.app_version,
            "docs": "/docs",
            "health": "/health",
            "tickets": tickets_router.prefix
        }

    return application


app = create_app()


# === Development Entry Point ===

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "ticket_manager.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.environment == "development",
        log_level="info"
    )

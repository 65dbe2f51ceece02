"""
FastAPI application factory for MedSync.

Creates the control API and ties the replication listener's lifetime to the
application's lifespan.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from medsync.config import get_settings
from medsync.service import get_replication_service
from medsync.structured_logger import configure_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan context manager.

    Starts the replication listener on startup; stops the listener and peer
    discovery on shutdown.
    """
    # ===== STARTUP =====
    settings = get_settings()
    configure_logging(settings.log_level, structured=settings.structured_logs)

    service = get_replication_service()
    if settings.autostart_listener:
        port = await service.start_listener()
        logger.info(f"Replication listener started on port {port}")

    yield

    # ===== SHUTDOWN =====
    logger.info("Shutting down replication service...")
    await service.shutdown()


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application for MedSync.

    Returns:
        Configured FastAPI application instance
    """
    app = FastAPI(
        title="MedSync API",
        description="Offline device-to-device replication of medical records",
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json",
    )

    from medsync.routes import router as replication_router
    app.include_router(replication_router)

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app


# ============================================================================
# DEVELOPMENT SERVER
# ============================================================================

if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(create_app(), host=settings.api_host, port=settings.api_port)

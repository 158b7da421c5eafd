"""Image job service - FastAPI application."""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.staticfiles import StaticFiles
from loguru import logger

from imagejobs.api.errors import register_exception_handlers
from imagejobs.api.v1.health import router as health_root_router
from imagejobs.api.v1.router import v1_router
from imagejobs.config import Settings, settings as default_settings
from imagejobs.logging_setup import configure_logging
from imagejobs.services import Services, build_services


def create_app(
    settings: Optional[Settings] = None,
    services: Optional[Services] = None,
) -> FastAPI:
    settings = settings or (services.settings if services else default_settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup and shutdown logic."""
        configure_logging(settings)
        svc = services or build_services(settings)
        app.state.services = svc

        logger.info(f"Starting image job service on port {settings.port}")
        logger.info(f"Record store: {settings.record_store}")
        logger.info(f"Queue: {settings.queue_name}, concurrency {settings.worker_concurrency}")
        logger.info(f"Uploads dir: {settings.uploads_dir}, temp dir: {settings.temp_dir}")

        if settings.start_worker:
            await svc.pool.start()
            logger.info("Image processing worker started")

        yield

        logger.info("Shutting down image job service")
        await svc.pool.stop()
        await svc.queue.close()
        removed = svc.workspace.cleanup_expired()
        if removed:
            logger.info(f"Removed {removed} expired working directories")

    app = FastAPI(
        title="Image Job Service",
        description="Asynchronous image processing jobs with crash recovery",
        version="0.1.0",
        lifespan=lifespan,
    )
    register_exception_handlers(app)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        logger.bind(query=dict(request.query_params)).debug(
            f"{request.method} {request.url.path}"
        )
        return await call_next(request)

    app.include_router(health_root_router, tags=["health"])  # GET /health at root
    app.include_router(v1_router)  # All /api/v1/* endpoints
    app.mount(
        "/uploads",
        StaticFiles(directory=settings.uploads_dir, check_dir=False),
        name="uploads",
    )
    return app


app = create_app()

"""FastAPI application setup with lifespan and exception handlers."""

import asyncio
from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from arcrunner import __version__
from arcrunner.config import settings
from arcrunner.db import init_database, shutdown
from arcrunner.runtime import build_services
from arcrunner.api.routes import router

logger = logging.getLogger(__name__)


async def _run_recovery(services) -> None:
    try:
        await services.recovery.recover_all()
    except Exception as e:
        logger.error(f"Startup recovery failed: {e}", exc_info=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager.

    Startup:
        - Initialize database schema
        - Recover clips left in Generating (background)
        - Start the poller

    Shutdown:
        - Stop the poller, close the provider client and database
    """
    logger.info("Starting ArcRunner API...")
    await init_database()
    services = build_services(settings)
    app.state.services = services

    recovery_task = asyncio.create_task(_run_recovery(services), name="startup-recovery")
    if settings.polling.enabled:
        services.poller.start()
    logger.info("API startup complete")

    yield

    logger.info("Shutting down ArcRunner API...")
    if not recovery_task.done():
        recovery_task.cancel()
    try:
        await recovery_task
    except asyncio.CancelledError:
        pass
    await services.close()
    await shutdown()
    logger.info("API shutdown complete")


app = FastAPI(
    title="ArcRunner API",
    version=__version__,
    lifespan=lifespan,
)

# CORS for Vite dev server
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173"],
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router)


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    """Catch-all exception handler to prevent stack traces in API responses."""
    logger.error(f"Unhandled exception in {request.method} {request.url.path}: {type(exc).__name__}: {str(exc)}")
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "detail": str(exc),
        }
    )

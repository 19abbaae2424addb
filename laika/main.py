"""LAIKA — FastAPI Application Entry Point."""

from contextlib import asynccontextmanager

from fastapi import FastAPI

from laika import __version__
from laika.scheduler.jobs import start_scheduler, stop_scheduler
from laika.api.run_routes import router as run_router
from laika.core.logging import get_logger

logger = get_logger("main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle."""
    logger.info("🚀 LAIKA starting up...")
    start_scheduler()
    yield
    stop_scheduler()
    logger.info("LAIKA shut down")


app = FastAPI(
    title="LAIKA",
    description="Monthly site metrics computed from the analytics provider and stored per tenant.",
    version=__version__,
    lifespan=lifespan,
)

app.include_router(run_router)


@app.get("/health", tags=["System"])
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "service": "laika",
        "version": __version__,
    }

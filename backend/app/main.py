"""Main FastAPI application."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app import __version__
from app.config import get_settings
from app.database import close_db, init_db
from app.routers import coverage_router, health_router, metrics_router

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Startup
    logger.info("Starting coverage aggregator...")

    if settings.store_backend == "sql":
        await init_db()
        logger.info("Database initialized")
    if not settings.admin_token:
        logger.warning("ADMIN_TOKEN is not set; clearing coverage data is disabled")

    yield

    # Shutdown
    logger.info("Shutting down coverage aggregator...")
    await close_db()
    logger.info("Shutdown complete")


# Create FastAPI application
app = FastAPI(
    title="Coverage Aggregator",
    description="Merges crowd-sourced connectivity probes into a decaying reliability map",
    version=__version__,
    lifespan=lifespan,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)

# Include routers
app.include_router(health_router)
app.include_router(metrics_router)
app.include_router(coverage_router)


@app.get("/")
async def root():
    """Root endpoint - shows API info."""
    return {
        "name": "Coverage Aggregator",
        "version": __version__,
        "docs": "/docs",
        "health": "/health",
        "metrics": "/metrics",
        "samples": "/api/samples",
    }

"""Main FastAPI application."""
from fastapi import FastAPI
from contextlib import asynccontextmanager

from gacx.config import get_settings
from gacx.middleware.logging import LoggingMiddleware, configure_logging, get_logger
from gacx.api import experiments, health

settings = get_settings()
configure_logging(settings.debug)
logger = get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifespan - startup and shutdown."""
    logger.info(
        "startup",
        domain_name=settings.domain_name,
        cache_dir=settings.cache_dir,
        cache_ttl=settings.cache_ttl
    )

    yield  # App runs here

    await experiments.close_experiment_data_client()
    logger.info("shutdown")

# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    description="Server-side variation choice for content experiments",
    version="0.1.0",
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
    lifespan=lifespan
)

# Logging middleware
app.add_middleware(LoggingMiddleware)

# Include routers
app.include_router(health.router, tags=["health"])
app.include_router(experiments.router, tags=["experiments"])


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "service": settings.app_name,
        "version": "0.1.0",
        "docs": "/docs" if settings.debug else "disabled",
        "endpoints": {
            "health": "/health",
            "choose": "GET /experiments/{experiment_id}/variation",
            "set": "POST /experiments/{experiment_id}/variation"
        }
    }


# uvicorn gacx.main:app --reload

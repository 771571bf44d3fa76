"""
MaintFlow API Main Application

Entry point for the FastAPI application.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import make_asgi_app

from maintflow.platform.config import settings
from maintflow.platform.logging import configure_logging, get_logger
from maintflow.api.routers import flows, rules
from maintflow.api.dependencies import (
    init_resources,
    close_resources,
    get_postgres_adapter,
    get_flow_engine,
)

# Configure logging on import
configure_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan handler for startup/shutdown."""
    logger.info("Starting MaintFlow API...")
    try:
        await init_resources()
        logger.info("Resources initialized successfully.")
    except Exception as e:
        logger.error(f"Failed to initialize resources: {e}")
        raise

    yield

    logger.info("Shutting down MaintFlow API...")
    await close_resources()
    logger.info("Resources closed.")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.VERSION,
    description="Maintenance flow automation: trigger, condition and action rules",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS.split(",") if settings.CORS_ORIGINS else ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# =============================================================================
# OBSERVABILITY
# =============================================================================

if settings.METRICS_ENABLED:
    app.mount("/metrics", make_asgi_app())


# =============================================================================
# HEALTH ENDPOINTS
# =============================================================================


@app.get("/health/live", tags=["Health"])
async def liveness() -> dict:
    """Liveness probe - is the service running?"""
    return {"status": "alive"}


@app.get("/health/ready", tags=["Health"])
async def readiness() -> dict:
    """
    Readiness probe - is the service ready to accept traffic?
    Checks the database and that the flow engine has started.
    """
    postgres_healthy = False
    try:
        postgres_healthy = get_postgres_adapter().health_check()
    except Exception as e:
        logger.warning(f"Database health check failed: {e}")

    engine_started = get_flow_engine().started

    return {
        "status": "ready" if (postgres_healthy and engine_started) else "not_ready",
        "version": settings.VERSION,
        "checks": {
            "postgres": "healthy" if postgres_healthy else "unhealthy",
            "flow_engine": "started" if engine_started else "stopped",
        },
    }


# =============================================================================
# API ROUTERS
# =============================================================================

app.include_router(flows.router, prefix="/api/v1/flows", tags=["Flows"])
app.include_router(rules.router, prefix="/api/v1/rules", tags=["Rules"])


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "maintflow.api.main:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        reload=settings.DEBUG,
    )

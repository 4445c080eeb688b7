# app/main.py
"""
FastAPI application with Redis lifecycle management.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.config import settings
from app.features.team_health.api.router import router as team_health_router
from app.infrastructure.observability.logging import get_logger, setup_logging
from app.middleware import RequestContextMiddleware
from app.routes import debug, health
from app.services.redis_client import fast_redis

# Setup logging before creating the app
setup_logging(log_level=settings.LOG_LEVEL)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle application startup and shutdown."""

    logger.info("Application starting", environment=settings.environment, debug=settings.debug)

    try:
        logger.info("Initializing Redis connection")
        await fast_redis.initialize()
        logger.info("All services initialized successfully", services=["redis"])
    except Exception as e:
        logger.error("Failed to initialize services", error=str(e))
        raise

    if not settings.openai_configured():
        logger.warning("OPENAI_API_KEY not set, scoring and insights will run in fallback mode")

    yield

    logger.info("Application shutting down")
    try:
        logger.info("Closing Redis connection")
        await fast_redis.close()
        logger.info("All services closed successfully")
    except Exception as e:
        logger.error("Error closing Redis", error=str(e))


app = FastAPI(
    title="Team Pulse",
    description="Message sentiment scoring and weekly team health insights",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(RequestContextMiddleware)

# Include routers
app.include_router(health.router)
app.include_router(team_health_router)
app.include_router(debug.router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)

"""
FastAPI application with database pool and Redis lifecycle management.
"""

import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from app.config import settings
from app.db.pool import db_pool
from app.features.triage.api.router import router as triage_router
from app.infrastructure.observability.logging import get_logger, setup_logging
from app.routes import health
from app.services.infrastructure.redis_client import RedisUnavailableError, fast_redis

# Setup logging before creating the app
setup_logging(log_level=settings.LOG_LEVEL)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle application startup and shutdown with proper resource management."""
    logger.info("Application starting", environment=settings.environment, debug=settings.debug)

    logger.info("Initializing database pool")
    await db_pool.initialize()

    # Redis only backs the per-user sync lock; runs proceed unlocked without it
    logger.info("Initializing Redis connection")
    try:
        await fast_redis.initialize()
    except RedisUnavailableError as e:
        logger.warning("Redis unavailable at startup, sync lock disabled", error=str(e))

    logger.info("All services initialized")

    yield

    # Shutdown sequence (reverse order)
    logger.info("Application shutting down")
    await fast_redis.close()
    await db_pool.close()
    logger.info("All services closed")


app = FastAPI(
    title="Triage Pipeline",
    description="Ingests email, tasks and calendar events into a scored review queue",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(health.router)
app.include_router(triage_router)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log HTTP requests with timing."""
    start_time = time.time()
    response = await call_next(request)
    process_time = (time.time() - start_time) * 1000

    logger.info(
        "HTTP request completed",
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        duration_ms=round(process_time, 2),
    )
    return response


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)

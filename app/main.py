# app/main.py
"""
Booking engine API with database pool and client lifecycle management.
"""

import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError

from app.config import settings
from app.db.pool import db_pool
from app.dependencies import build_engine
from app.infrastructure.observability.logging import get_logger, log_request, setup_logging
from app.routes import availability, bookings, customer_profile, health
from app.routes.errors import error_response

# Setup logging before creating the app
setup_logging(log_level=settings.LOG_LEVEL)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle application startup and shutdown with proper resource management."""

    logger.info("Application starting", environment=settings.environment, debug=settings.debug)

    startup_tasks = []

    try:
        if settings.database_configured():
            logger.info("Initializing database pool")
            await db_pool.initialize()
            startup_tasks.append("database_pool")
        else:
            logger.warning("SUPABASE_DB_URL not set, bookings are kept in memory")

        app.state.engine = build_engine(use_database=db_pool.initialized)
        startup_tasks.append("booking_engine")

        logger.info("All services initialized successfully", services=startup_tasks)

    except Exception as e:
        logger.error("Failed to initialize services", error=str(e), completed_tasks=startup_tasks)

        if "database_pool" in startup_tasks:
            try:
                await db_pool.close()
            except Exception as cleanup_error:
                logger.error("Error cleaning up database pool", error=str(cleanup_error))

        raise

    yield

    # Shutdown sequence (reverse order)
    logger.info("Application shutting down")

    shutdown_errors = []

    try:
        await app.state.engine.close()
    except Exception as e:
        logger.error("Error closing booking engine clients", error=str(e))
        shutdown_errors.append(f"Engine: {e}")

    if db_pool.initialized:
        try:
            logger.info("Closing database pool")
            await db_pool.close()
        except Exception as e:
            logger.error("Error closing database pool", error=str(e))
            shutdown_errors.append(f"Database: {e}")

    if shutdown_errors:
        logger.warning("Some services had shutdown errors", errors=shutdown_errors)
    else:
        logger.info("All services closed successfully")


app = FastAPI(
    title="Coaching Booking Engine",
    description="Availability computation and slot booking for a coaching practice",
    version="0.1.0",
    lifespan=lifespan,
)

# Include routers
app.include_router(health.router)
app.include_router(availability.router)
app.include_router(bookings.router)
app.include_router(customer_profile.router)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed requests get the booking error envelope with HTTP 400."""
    details = [
        {"loc": list(err["loc"]), "msg": err["msg"], "type": err["type"]} for err in exc.errors()
    ]
    logger.info("Request validation failed", path=request.url.path, error_count=len(details))
    return error_response("Invalid payload", 400, details)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log HTTP requests with timing."""
    start_time = time.time()
    response = await call_next(request)
    process_time = (time.time() - start_time) * 1000

    log_request(
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        duration_ms=round(process_time, 2),
    )
    return response


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)

"""FastAPI application setup"""
import asyncio
import logging
from contextlib import asynccontextmanager, suppress
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from streakkeeper.api.routes import router
from streakkeeper.api.middleware import setup_cors, setup_rate_limiting, setup_request_metrics
from streakkeeper.config import LOG_LEVEL, settings, validate_config
from streakkeeper.db.connection import db
from streakkeeper.exceptions import (
    AuthenticationError,
    ConfigurationError,
    ConnectionError,
    DatabaseError,
    NotFoundError,
    StreakKeeperError,
    ValidationError,
)
from streakkeeper.services.container import init_container, reset_container
from streakkeeper.utils.cache import ResultCache
from streakkeeper.validators import format_validation_error

# Configure logging
logging.basicConfig(
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    level=getattr(logging, LOG_LEVEL)
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifecycle manager for FastAPI application"""
    # Startup
    logger.info("Starting API server...")
    validate_config()
    await db.init_pool()
    logger.info("Database pool initialized")

    cache = ResultCache(enabled=settings.cache_enabled)
    init_container(db, cache, lookback_days=settings.progress_lookback_days)
    sweep_task = asyncio.create_task(
        cache.run_expiry_sweep(settings.cache_sweep_interval_seconds)
    )

    yield

    # Shutdown
    logger.info("Shutting down API server...")
    sweep_task.cancel()
    with suppress(asyncio.CancelledError):
        await sweep_task
    reset_container()
    await db.close_pool()
    logger.info("Database pool closed")


def error_status(exc: StreakKeeperError) -> int:
    """HTTP status for an error of our hierarchy"""
    if isinstance(exc, ValidationError):
        return status.HTTP_400_BAD_REQUEST
    if isinstance(exc, AuthenticationError):
        return status.HTTP_401_UNAUTHORIZED
    if isinstance(exc, NotFoundError):
        return status.HTTP_404_NOT_FOUND
    if isinstance(exc, (ConnectionError, ConfigurationError)):
        return status.HTTP_503_SERVICE_UNAVAILABLE
    if isinstance(exc, DatabaseError):
        return status.HTTP_500_INTERNAL_SERVER_ERROR
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def create_api_application(use_lifespan: bool = True) -> FastAPI:
    """
    Create and configure FastAPI application

    Args:
        use_lifespan: Open the database pool and service container on startup.
            Tests pass False and override the services dependency instead.
    """
    app = FastAPI(
        title="StreakKeeper API",
        description="Habit frequency, streak and progress analytics",
        version="1.0.0",
        lifespan=lifespan if use_lifespan else None
    )

    # Setup middleware
    setup_cors(app)
    setup_rate_limiting(app)
    setup_request_metrics(app)

    # Include routes
    app.include_router(router)

    @app.exception_handler(StreakKeeperError)
    async def streakkeeper_exception_handler(request: Request, exc: StreakKeeperError):
        return JSONResponse(status_code=error_status(exc), content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        if errors:
            first = errors[0]
            field = ".".join(str(part) for part in first.get("loc", ()))
            message = f"{field}: {first.get('msg', 'Invalid value')}"
        else:
            message = format_validation_error(exc)
        logger.warning(f"Request validation failed on {request.url.path}: {message}")
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "ValidationError", "message": message, "user_message": message}
        )

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request, exc):
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"error": "Internal server error", "detail": str(exc)}
        )

    logger.info("FastAPI application created")

    return app

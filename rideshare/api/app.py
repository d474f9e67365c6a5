"""
FastAPI application factory.

* Registers routes for rides, users and admin.
* Renders domain errors as ``{"error", "detail", "retryable"}`` with a
  status derived from the error's category.
* Applies rate-limiting middleware.
* Disposes the DB engine and Redis pool via lifespan events.
* Swagger / OpenAPI UI available at ``/docs``.
"""

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from rideshare.api.middleware import limiter
from rideshare.api.routes import admin, rides, users
from rideshare.config import settings
from rideshare.domain.errors import (
    AuthorizationError,
    ConcurrencyConflict,
    NotFound,
    RideShareError,
    StateConflict,
    ValidationFailed,
)
from rideshare.infrastructure.database import engine
from rideshare.infrastructure.redis_client import close_redis

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

# Most specific first; ``status_for`` returns the first match
ERROR_STATUS: list[tuple[type[RideShareError], int]] = [
    (ValidationFailed, 422),
    (NotFound, 404),
    (AuthorizationError, 403),
    (StateConflict, 409),
    (ConcurrencyConflict, 503),
]


def status_for(exc: RideShareError) -> int:
    for kind, status in ERROR_STATUS:
        if isinstance(exc, kind):
            return status
    return 400


async def ride_share_error_handler(request: Request, exc: RideShareError) -> JSONResponse:
    status = status_for(exc)
    if exc.retryable:
        logger.warning("%s %s -> %s: %s", request.method, request.url.path, exc.code, exc.detail)
    return JSONResponse(
        status_code=status,
        content={"error": exc.code, "detail": exc.detail, "retryable": exc.retryable},
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Release pooled connections on shutdown."""
    yield
    await close_redis()
    await engine.dispose()


def create_app() -> FastAPI:
    app = FastAPI(
        title="Campus Ride Share API",
        description=(
            "Host or join campus car-pool rides.  Fares split among riders "
            "at join time, cancellations cost credibility, and a driver who "
            "cancels hands the ride to the earliest-booked rider."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )

    # Rate limiter
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # Domain errors
    app.add_exception_handler(RideShareError, ride_share_error_handler)

    # Routers
    app.include_router(rides.router, prefix="/api/v1")
    app.include_router(users.router, prefix="/api/v1")
    app.include_router(admin.router, prefix="/api/v1")

    return app

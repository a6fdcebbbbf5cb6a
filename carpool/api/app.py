"""
FastAPI application factory.

* Registers routes for auth, users, rides, ride requests, bookings,
  payments, ratings, messages, address lookup and admin.
* Mounts the real-time relay at ``/api/v1/ws``.
* Renders ``DomainError`` as ``{"detail", "kind"}`` with its HTTP status.
* Applies rate-limiting and CORS middleware.
* Swagger / OpenAPI UI available at ``/docs``.
"""

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from carpool.api import websocket
from carpool.api.middleware import limiter
from carpool.api.routes import (
    admin,
    auth,
    bookings,
    geocode,
    messages,
    payments,
    ratings,
    requests,
    rides,
    users,
)
from carpool.config import settings
from carpool.domain.errors import DomainError
from carpool.infrastructure.pubsub import close_redis

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Release the shared Redis pool on shutdown."""
    yield
    await close_redis()


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "kind": exc.kind},
    )


async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = exc.errors()
    if errors:
        first = errors[0]
        field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        detail = f"{field}: {first.get('msg')}" if field else str(first.get("msg"))
    else:
        detail = "Invalid request"
    return JSONResponse(
        status_code=400,
        content={"detail": detail, "kind": "validation_error"},
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "kind": "internal_error"},
    )


def create_app() -> FastAPI:
    app = FastAPI(
        title="Carpool API",
        description=(
            "Matches drivers offering rides with riders requesting them, "
            "manages the booking lifecycle with held payments, ratings and "
            "in-app messaging with a real-time relay."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )

    # Rate limiter
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # Errors
    app.add_exception_handler(DomainError, domain_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Routers
    for module in (
        auth, users, rides, requests, bookings, payments, ratings, messages, geocode, admin,
    ):
        app.include_router(module.router, prefix="/api/v1")
    app.include_router(websocket.router, prefix="/api/v1")

    return app

# cart_engine/api/__init__.py
import redis
import requests
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError

from cart_engine.api.identity import set_guest_cookie
from cart_engine.api.routers import carts
from cart_engine.api.routers.health import router as health_router
from cart_engine.domain.exceptions import (
    CartConflictError,
    CartError,
    CartNotFoundError,
    InsufficientStockError,
)
from cart_engine.utils.logging import get_logger

logger = get_logger(__name__)


def _status_for(exc: CartError) -> int:
    if isinstance(exc, CartNotFoundError):
        return 404
    if isinstance(exc, CartConflictError):
        return 409
    return 400


def _with_guest_token(request: Request, response: JSONResponse) -> JSONResponse:
    token = getattr(request.state, "guest_token", None)
    if token:
        set_guest_cookie(response, token)
    return response


async def cart_error_handler(request: Request, exc: CartError):
    body = {"detail": exc.message, "error": exc.kind}
    if isinstance(exc, InsufficientStockError):
        body["product_id"] = exc.product_id
        body["requested"] = exc.requested
        body["available"] = exc.available
    return _with_guest_token(request, JSONResponse(status_code=_status_for(exc), content=body))


async def infrastructure_error_handler(request: Request, exc: Exception):
    logger.error(f"Dependency failure on {request.method} {request.url.path}: {type(exc).__name__}", exc_info=exc)
    response = JSONResponse(
        status_code=503,
        content={"detail": "Service temporarily unavailable, try again", "error": "unavailable"},
    )
    return _with_guest_token(request, response)


def create_app(lifespan=None) -> FastAPI:
    app = FastAPI(
        title="Cart Service",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_exception_handler(CartError, cart_error_handler)
    for exc_type in (OperationalError, redis.RedisError, requests.RequestException):
        app.add_exception_handler(exc_type, infrastructure_error_handler)

    app.include_router(health_router)
    app.include_router(carts.router)
    return app

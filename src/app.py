"""ShopStream FastAPI application.

Cart and order endpoints over the ordering services. Settings come from
``domain.toml`` with the ``PROTEAN_ENV`` overlay applied.

Usage:
    uvicorn app:create_app --factory --app-dir src --host 0.0.0.0 --port 8000
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from identity.caller.identity import TrustedHeaderIdentityProvider
from ordering.api import cart_router, order_router
from ordering.services import build_services
from shared.config import load_settings
from shared.exceptions import (
    CartEmptyError,
    CheckoutTimeoutError,
    ConfigurationError,
    ExpectedVersionError,
    InsufficientStockError,
    InvalidStateTransitionError,
    ObjectNotFoundError,
    PersistenceError,
    ProductUnavailableError,
    ShopStreamError,
    TransientInfraError,
    UnauthorizedError,
    ValidationError,
)
from shared.utils.logging import configure_logging

logger = structlog.get_logger(__name__)

# Map exception types to HTTP status codes
ERROR_STATUS_CODES: dict[type, int] = {
    ValidationError: 400,
    CartEmptyError: 400,
    UnauthorizedError: 403,
    ObjectNotFoundError: 404,
    ProductUnavailableError: 409,
    InsufficientStockError: 409,
    InvalidStateTransitionError: 409,
    ExpectedVersionError: 409,
    ConfigurationError: 500,
    PersistenceError: 503,
    TransientInfraError: 503,
    CheckoutTimeoutError: 504,
}


async def shopstream_error_handler(request: Request, exc: ShopStreamError) -> JSONResponse:
    """Map ShopStreamError subclasses to appropriate HTTP responses."""
    status_code = ERROR_STATUS_CODES.get(type(exc), 500)
    if status_code >= 500:
        logger.error("Request failed", path=request.url.path, error=exc.code)
    return JSONResponse(
        status_code=status_code,
        content={"error": exc.code, "messages": exc.messages},
    )


def create_app(settings=None, services=None, identity_provider=None) -> FastAPI:
    """Build the application.

    Args:
        settings: Loaded ``Settings``; read from the environment when omitted.
        services: Pre-wired ``OrderingServices`` (tests pass their own).
        identity_provider: ``IdentityPort`` used to resolve callers.
    """
    settings = settings or load_settings()
    configure_logging(settings.logging.level, settings.logging.json_output)
    services = services or build_services(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        services.close()

    app = FastAPI(
        title="ShopStream API",
        description="E-commerce platform — Cart, Checkout & Orders",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.services = services
    app.state.identity_provider = identity_provider or TrustedHeaderIdentityProvider()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(ShopStreamError, shopstream_error_handler)

    app.include_router(cart_router)
    app.include_router(order_router)

    # -----------------------------------------------------------------------
    # Health / root
    # -----------------------------------------------------------------------
    @app.get("/health")
    async def health():
        return JSONResponse(
            content={
                "status": "ok",
                "env": settings.env,
                "database": services.database.engine.dialect.name,
            }
        )

    return app

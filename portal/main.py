"""FastAPI application entry point."""

import asyncio
import logging
from contextlib import asynccontextmanager, suppress
from typing import AsyncGenerator

from fastapi import APIRouter, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from portal.api.middleware.error_handler import error_handler_middleware
from portal.api.middleware.latency_logging import latency_logging_middleware
from portal.api.middleware.request_size import request_size_limit_middleware
from portal.api.middleware.security_headers import security_headers_middleware
from portal.api.routes import (
    admin,
    auth,
    catalog,
    checkout_sessions,
    health,
    oauth,
    orders,
    payments,
    projects,
    support,
)
from portal.core.cache import init_cache, shutdown_cache
from portal.core.config import get_settings
from portal.core.rate_limiter import RateLimiter
from portal.services.auth_service import AuthService
from portal.services.checkout_session_service import CheckoutSessionService
from portal.services.session_service import SessionService

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

MAINTENANCE_INTERVAL_SECONDS = 3600


async def run_maintenance() -> dict[str, int]:
    """Delete expired sessions, checkout sessions and reset tokens.

    Returns:
        dict: Number of rows removed per kind.
    """
    return {
        "sessions": await SessionService().cleanup_expired_sessions(),
        "checkout_sessions": await CheckoutSessionService().cleanup_expired_sessions(),
        "reset_tokens": await AuthService().cleanup_expired_reset_tokens(),
    }


async def _maintenance_loop() -> None:
    """Background loop running the expiry sweeps."""
    while True:
        await asyncio.sleep(MAINTENANCE_INTERVAL_SECONDS)
        try:
            removed = await run_maintenance()
            logger.info("Maintenance sweep removed %s", removed)
        except Exception as e:
            logger.error("Maintenance sweep failed: %s", str(e))


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Start the rate limiter, cache and expiry sweeps, then tear them down on exit.

    The bootstrap admin is ensured here; a failure is logged and startup continues.
    """
    settings = get_settings()
    logger.info("Starting %s in %s mode", settings.app_name, settings.app_env)

    if not settings.paystack_configured:
        logger.warning("PAYSTACK_SECRET_KEY not set, payments are disabled")

    app.state.rate_limiter = RateLimiter.from_settings()
    await app.state.rate_limiter.start_cleanup_task()
    logger.info("Rate limiter initialized")

    await init_cache()
    logger.info("Cache initialized")

    try:
        await AuthService().bootstrap_admin()
    except Exception as e:
        logger.error("Admin bootstrap failed: %s", str(e))

    maintenance_task = asyncio.create_task(_maintenance_loop())

    yield

    maintenance_task.cancel()
    with suppress(asyncio.CancelledError):
        await maintenance_task
    await shutdown_cache()
    logger.info("Cache shutdown")
    await app.state.rate_limiter.stop_cleanup_task()
    logger.info("Rate limiter shutdown")
    logger.info("Shutting down %s", settings.app_name)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        FastAPI: Configured application instance.
    """
    settings = get_settings()

    app = FastAPI(
        title="Agency Portal API",
        description="Client portal backend: accounts, orders, payments and project tracking",
        version="0.1.0",
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
        lifespan=lifespan,
    )

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Error handler wraps the routes directly
    app.add_middleware(BaseHTTPMiddleware, dispatch=error_handler_middleware)

    app.add_middleware(BaseHTTPMiddleware, dispatch=security_headers_middleware)

    # Timing includes error rendering and headers
    app.add_middleware(BaseHTTPMiddleware, dispatch=latency_logging_middleware)

    # Outermost of all, so oversized bodies never reach a route
    app.add_middleware(BaseHTTPMiddleware, dispatch=request_size_limit_middleware)

    # Probes live outside /api
    app.include_router(health.router)

    api_router = APIRouter(prefix="/api")

    # Authentication routes (before OAuth so /auth/user is not taken as a provider)
    api_router.include_router(auth.router)
    api_router.include_router(oauth.router)

    # Catalog and checkout
    api_router.include_router(catalog.router)
    api_router.include_router(checkout_sessions.router)

    # Orders and payments
    api_router.include_router(orders.router)
    api_router.include_router(payments.router)

    # Delivery
    api_router.include_router(projects.router)
    api_router.include_router(support.router)

    # Staff
    api_router.include_router(admin.router)

    app.include_router(api_router)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "portal.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )

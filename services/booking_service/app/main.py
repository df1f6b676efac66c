"""FastAPI application for the Booking Service."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from libs.common.config import get_settings
from libs.common.error_handler import add_exception_handlers
from libs.common.events import close_event_pool
from libs.common.middleware import add_observability_middleware
from libs.common.rate_limit import limiter, rate_limit_exceeded_handler
from services.booking_service.routers import (
    catalog_router,
    enrollments_router,
    payments_router,
    promo_codes_router,
    schedules_router,
    waitlist_router,
    webhooks_router,
)
from slowapi.errors import RateLimitExceeded


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await close_event_pool()


def create_app() -> FastAPI:
    """Create and configure the Booking Service FastAPI app."""
    settings = get_settings()
    app = FastAPI(
        title="RangeReady Booking Service",
        version="0.1.0",
        description="Course catalog, scheduling, enrollment, promo codes and payments.",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.BACKEND_CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    add_observability_middleware(app)
    add_exception_handlers(app)

    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

    @app.get("/health", tags=["system"])
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "ok", "service": "booking"}

    app.include_router(catalog_router)
    app.include_router(schedules_router)
    app.include_router(enrollments_router)
    app.include_router(waitlist_router)
    app.include_router(promo_codes_router)
    app.include_router(payments_router)
    app.include_router(webhooks_router)

    return app


app = create_app()

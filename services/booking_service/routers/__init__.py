"""Booking service routers."""

from services.booking_service.routers.catalog import router as catalog_router
from services.booking_service.routers.enrollments import router as enrollments_router
from services.booking_service.routers.payments import router as payments_router
from services.booking_service.routers.promo_codes import router as promo_codes_router
from services.booking_service.routers.schedules import router as schedules_router
from services.booking_service.routers.waitlist import router as waitlist_router
from services.booking_service.routers.webhooks import router as webhooks_router

__all__ = [
    "catalog_router",
    "enrollments_router",
    "payments_router",
    "promo_codes_router",
    "schedules_router",
    "waitlist_router",
    "webhooks_router",
]

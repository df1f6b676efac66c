"""Booking Service models package."""

from services.booking_service.models.catalog import Category, Course, CourseSchedule
from services.booking_service.models.discount import Coupon, CouponUsage
from services.booking_service.models.enrollment import Enrollment, WaitlistEntry
from services.booking_service.models.enums import (
    ACTIVE_ENROLLMENT_STATUSES,
    DiscountType,
    EnrollmentStatus,
    PaymentOption,
    PaymentStatus,
    RecurrencePattern,
    WaitlistStatus,
)

__all__ = [
    "ACTIVE_ENROLLMENT_STATUSES",
    "Category",
    "Coupon",
    "CouponUsage",
    "Course",
    "CourseSchedule",
    "DiscountType",
    "Enrollment",
    "EnrollmentStatus",
    "PaymentOption",
    "PaymentStatus",
    "RecurrencePattern",
    "WaitlistEntry",
    "WaitlistStatus",
]

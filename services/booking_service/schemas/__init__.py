"""Booking Service schemas package.

Re-exports all schemas so routers can import from one place.
"""

from services.booking_service.schemas.catalog import (  # noqa: F401
    AvailabilityResponse,
    CategoryCreate,
    CategoryResponse,
    CategoryUpdate,
    CourseCreate,
    CourseDetailResponse,
    CourseResponse,
    CourseUpdate,
    ScheduleCreate,
    ScheduleResponse,
    ScheduleUpdate,
)
from services.booking_service.schemas.discount import (  # noqa: F401
    CouponCreate,
    CouponResponse,
    CouponUpdate,
    PromoApplyRequest,
    PromoQuoteResponse,
    PromoValidateRequest,
)
from services.booking_service.schemas.enrollment import (  # noqa: F401
    EnrollmentCancel,
    EnrollmentCreate,
    EnrollmentResponse,
    StudentInfo,
    WaitlistEntryResponse,
    WaitlistJoin,
)
from services.booking_service.schemas.payment import (  # noqa: F401
    PaymentConfirm,
    PaymentIntentCreate,
    PaymentIntentResponse,
    RefundCreate,
)

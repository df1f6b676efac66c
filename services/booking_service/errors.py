"""Booking domain errors.

Every error maps to one HTTP status and a stable code through
``libs.common.error_handler``. Callers cannot tell a lost race from an
ordinary prior state: both raise the same error.
"""

from libs.common.errors import AppError


class NotFound(AppError):
    status_code = 404
    code = "NOT_FOUND"
    default_message = "Resource not found"


class CapacityExceeded(AppError):
    status_code = 409
    code = "CAPACITY_EXCEEDED"
    default_message = "No spots left on this schedule"


class RegistrationClosed(AppError):
    status_code = 409
    code = "REGISTRATION_CLOSED"
    default_message = "Registration for this schedule has closed"


class InvalidTransition(AppError):
    status_code = 409
    code = "INVALID_TRANSITION"
    default_message = "Enrollment cannot move to the requested state"


class AlreadyApplied(AppError):
    status_code = 409
    code = "ALREADY_APPLIED"
    default_message = "A promo code has already been applied to this enrollment"


class PromoCodeInvalid(AppError):
    """Promo code rejected. ``reason`` is one of the REASON_* values."""

    status_code = 400
    code = "PROMO_CODE_INVALID"
    default_message = "Promo code is not valid"

    REASON_NOT_FOUND = "not_found"
    REASON_INACTIVE = "inactive"
    REASON_NOT_YET_ACTIVE = "not_yet_active"
    REASON_EXPIRED = "expired"
    REASON_COURSE_MISMATCH = "course_mismatch"
    REASON_BELOW_MINIMUM = "below_minimum"
    REASON_USAGE_LIMIT_REACHED = "usage_limit_reached"
    REASON_PER_USER_LIMIT_REACHED = "per_user_limit_reached"


class PaymentSetupFailed(AppError):
    status_code = 502
    code = "PAYMENT_SETUP_FAILED"
    default_message = "Payment could not be set up. Please try again."
    expected = False


class PaymentVerificationFailed(AppError):
    status_code = 400
    code = "PAYMENT_VERIFICATION_FAILED"
    default_message = "Payment could not be verified"


class Forbidden(AppError):
    status_code = 403
    code = "FORBIDDEN"
    default_message = "You do not have access to this resource"


class BusinessRuleViolation(AppError):
    status_code = 422
    code = "BUSINESS_RULE_VIOLATION"
    default_message = "Request violates a booking rule"

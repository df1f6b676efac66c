"""Stripe checkout for enrollments.

The enrollment's amount snapshot is the single source of the charged amount.
A payment only advances an enrollment after the intent has been verified
against it: same enrollment and student in the metadata, same currency, and
an amount within one cent of the snapshot total.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from libs.common.config import get_settings
from libs.common.currency import (
    cents_to_dollars,
    dollars_to_cents,
    prorate_tax_for_refund,
)
from libs.common.datetime_utils import utc_now
from libs.common.logging import get_logger
from services.booking_service.errors import (
    BusinessRuleViolation,
    InvalidTransition,
    NotFound,
    PaymentSetupFailed,
    PaymentVerificationFailed,
)
from services.booking_service.models import (
    Enrollment,
    EnrollmentStatus,
    PaymentStatus,
)
from services.booking_service.services import enrollment_ops
from services.booking_service.stripe_client import (
    PaymentIntent,
    StripeClient,
    StripeError,
)
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

# Rounding differences up to this many cents are accepted on verification
AMOUNT_TOLERANCE_CENTS = 1


@dataclass
class CheckoutResult:
    enrollment: Enrollment
    # None when nothing was left to pay and the enrollment was confirmed,
    # including an intent that had already succeeded
    intent: Optional[PaymentIntent]


async def _get_student_enrollment(
    db: AsyncSession, enrollment_id: uuid.UUID, student_id: Optional[str]
) -> Enrollment:
    enrollment = await db.get(Enrollment, enrollment_id)
    if enrollment is None or (
        student_id is not None and enrollment.student_id != student_id
    ):
        raise NotFound("Enrollment not found")
    return enrollment


def _intent_metadata(enrollment: Enrollment) -> dict[str, str]:
    return {
        "enrollment_id": str(enrollment.id),
        "course_id": str(enrollment.course_id),
        "schedule_id": str(enrollment.schedule_id),
        "student_id": enrollment.student_id,
        "payment_option": enrollment.payment_option.value,
    }


def verify_intent(enrollment: Enrollment, intent: PaymentIntent) -> None:
    """Raise PaymentVerificationFailed unless the intent pays this enrollment."""
    if intent.metadata.get("enrollment_id") != str(enrollment.id):
        raise PaymentVerificationFailed("Payment does not belong to this enrollment")
    if intent.metadata.get("student_id") != enrollment.student_id:
        raise PaymentVerificationFailed("Payment does not belong to this student")
    if intent.currency != get_settings().CURRENCY:
        raise PaymentVerificationFailed("Payment currency does not match")
    expected = dollars_to_cents(enrollment.total_amount)
    if abs(intent.amount - expected) > AMOUNT_TOLERANCE_CENTS:
        logger.warning(
            "Amount mismatch on intent %s: paid %d, expected %d",
            intent.id,
            intent.amount,
            expected,
        )
        raise PaymentVerificationFailed("Payment amount does not match")


async def create_payment_intent(
    db: AsyncSession,
    stripe: StripeClient,
    *,
    enrollment_id: uuid.UUID,
    student_id: str,
) -> CheckoutResult:
    """Create (or reuse) the payment intent for a pending enrollment.

    Provider failures leave the enrollment untouched and raise
    PaymentSetupFailed with a message safe to show the student.
    """
    settings = get_settings()
    enrollment = await _get_student_enrollment(db, enrollment_id, student_id)
    if (
        enrollment.status != EnrollmentStatus.PENDING
        or enrollment.payment_status != PaymentStatus.PENDING
    ):
        raise BusinessRuleViolation("Enrollment is not awaiting payment")

    amount_cents = dollars_to_cents(enrollment.total_amount)
    if amount_cents <= 0:
        enrollment = await enrollment_ops.confirm_enrollment(db, enrollment.id)
        return CheckoutResult(enrollment=enrollment, intent=None)

    idempotency_key = f"enrollment-{enrollment.id}-{amount_cents}"
    if enrollment.payment_intent_id:
        try:
            existing = await stripe.retrieve_payment_intent(
                enrollment.payment_intent_id
            )
        except StripeError as e:
            logger.warning(
                "Could not load intent %s, creating a new one: %s",
                enrollment.payment_intent_id,
                e.message,
            )
        else:
            if existing.succeeded:
                # Paid already; the client lost the confirm call
                verify_intent(enrollment, existing)
                logger.info(
                    "Intent %s already succeeded, confirming enrollment %s",
                    existing.id,
                    enrollment.id,
                )
                enrollment = await enrollment_ops.confirm_enrollment(
                    db, enrollment.id, payment_intent_id=existing.id
                )
                return CheckoutResult(enrollment=enrollment, intent=None)
            if (
                existing.is_open
                and existing.amount == amount_cents
                and existing.currency == settings.CURRENCY
            ):
                logger.info(
                    "Reusing intent %s for enrollment %s", existing.id, enrollment.id
                )
                return CheckoutResult(enrollment=enrollment, intent=existing)
        # Stripe replays the old response for a reused key
        idempotency_key = f"{idempotency_key}-after-{enrollment.payment_intent_id}"

    info = enrollment.student_info or {}
    try:
        intent = await stripe.create_payment_intent(
            amount=amount_cents,
            currency=settings.CURRENCY,
            metadata=_intent_metadata(enrollment),
            receipt_email=info.get("email"),
            description=f"Enrollment {enrollment.id}",
            idempotency_key=idempotency_key,
        )
    except StripeError as e:
        logger.warning(
            "Stripe rejected intent for enrollment %s: %s", enrollment.id, e.message
        )
        raise PaymentSetupFailed()

    enrollment.payment_intent_id = intent.id
    await db.commit()
    await db.refresh(enrollment)
    logger.info(
        "Created intent %s for enrollment %s (%d cents)",
        intent.id,
        enrollment.id,
        amount_cents,
    )
    return CheckoutResult(enrollment=enrollment, intent=intent)


async def confirm_payment(
    db: AsyncSession,
    stripe: StripeClient,
    *,
    enrollment_id: uuid.UUID,
    payment_intent_id: str,
    student_id: Optional[str] = None,
) -> Enrollment:
    """Verify a payment intent with Stripe and confirm the enrollment.

    An intent that has not succeeded yet leaves the enrollment pending.
    """
    enrollment = await _get_student_enrollment(db, enrollment_id, student_id)
    try:
        intent = await stripe.retrieve_payment_intent(payment_intent_id)
    except StripeError as e:
        logger.warning("Could not load intent %s: %s", payment_intent_id, e.message)
        raise PaymentSetupFailed("Payment could not be verified. Please try again.")

    verify_intent(enrollment, intent)
    if not intent.succeeded:
        logger.info(
            "Intent %s for enrollment %s is %s, not confirming",
            intent.id,
            enrollment.id,
            intent.status,
        )
        return enrollment

    return await enrollment_ops.confirm_enrollment(
        db, enrollment.id, payment_intent_id=intent.id
    )


async def handle_webhook_event(
    db: AsyncSession, event: dict[str, Any]
) -> Optional[Enrollment]:
    """Apply a verified Stripe event. Unknown events are ignored."""
    event_type = event.get("type")
    data = (event.get("data") or {}).get("object")
    if event_type not in ("payment_intent.succeeded", "payment_intent.payment_failed"):
        logger.debug("Ignoring Stripe event %s", event_type)
        return None

    if not isinstance(data, dict) or not data.get("id"):
        raise PaymentVerificationFailed("Event carries no payment intent")
    intent = PaymentIntent.from_api(data)
    raw_id = intent.metadata.get("enrollment_id")
    try:
        enrollment_id = uuid.UUID(raw_id) if raw_id else None
    except ValueError:
        enrollment_id = None
    enrollment = await db.get(Enrollment, enrollment_id) if enrollment_id else None
    if enrollment is None:
        logger.warning("Stripe event %s for unknown enrollment %s", event_type, raw_id)
        return None

    if event_type == "payment_intent.payment_failed":
        # Stays pending/pending so the student can retry with a new method
        error = data.get("last_payment_error") or {}
        logger.info(
            "Payment %s failed for enrollment %s: %s",
            intent.id,
            enrollment.id,
            error.get("message", "no reason given"),
        )
        return enrollment

    verify_intent(enrollment, intent)
    try:
        return await enrollment_ops.confirm_enrollment(
            db, enrollment.id, payment_intent_id=intent.id
        )
    except InvalidTransition:
        logger.warning(
            "Payment %s succeeded for %s enrollment %s",
            intent.id,
            enrollment.status.value,
            enrollment.id,
        )
        return enrollment


async def refund_enrollment(
    db: AsyncSession,
    stripe: StripeClient,
    *,
    enrollment_id: uuid.UUID,
    user_id: Optional[str] = None,
    is_admin: bool = False,
    refund_subtotal_cents: Optional[int] = None,
    now: Optional[datetime] = None,
) -> Enrollment:
    """Refund a cancelled, paid enrollment through Stripe.

    ``refund_subtotal_cents`` defaults to everything paid before tax; the
    matching share of the tax goes back with it. When ``user_id`` is given
    the caller must own the course, unless ``is_admin``.
    """
    now = now or utc_now()
    enrollment = await _get_student_enrollment(db, enrollment_id, None)
    if user_id is not None:
        await enrollment_ops.ensure_course_owner(db, enrollment, user_id, is_admin)
    if enrollment.refund_processed:
        return enrollment
    if (
        enrollment.status != EnrollmentStatus.CANCELLED
        or enrollment.payment_status != PaymentStatus.PAID
    ):
        raise InvalidTransition("Only cancelled, paid enrollments can be refunded")
    if not enrollment.payment_intent_id:
        raise BusinessRuleViolation("Enrollment has no payment to refund")

    paid_subtotal = dollars_to_cents(enrollment.subtotal_amount) - dollars_to_cents(
        enrollment.discount_amount
    )
    if refund_subtotal_cents is None:
        refund_subtotal_cents = paid_subtotal
    if refund_subtotal_cents <= 0 or refund_subtotal_cents > paid_subtotal:
        raise BusinessRuleViolation("Refund amount is out of range")

    refund_tax = prorate_tax_for_refund(
        paid_subtotal, refund_subtotal_cents, dollars_to_cents(enrollment.tax_amount)
    )
    amount_cents = refund_subtotal_cents + refund_tax

    try:
        refund = await stripe.create_refund(
            enrollment.payment_intent_id,
            amount_cents,
            metadata={"enrollment_id": str(enrollment.id)},
            idempotency_key=f"refund-{enrollment.id}",
        )
    except StripeError as e:
        logger.warning("Refund failed for enrollment %s: %s", enrollment.id, e.message)
        raise PaymentSetupFailed("Refund could not be processed. Please try again.")

    enrollment.payment_status = PaymentStatus.REFUNDED
    enrollment.refund_processed = True
    enrollment.refund_processed_at = now
    enrollment.refund_amount = cents_to_dollars(amount_cents)
    await db.commit()
    await db.refresh(enrollment)
    logger.info(
        "Refunded %d cents for enrollment %s (%s)", amount_cents, enrollment.id, refund.id
    )
    return enrollment

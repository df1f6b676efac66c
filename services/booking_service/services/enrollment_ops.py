"""Enrollment lifecycle: create, confirm, approve, cancel and complete.

States move ``pending -> confirmed -> completed``; ``cancelled`` is reachable
from pending and confirmed. Each operation commits its own transaction and
publishes its event only after the commit succeeded.
"""

import uuid
from datetime import datetime
from typing import Any, Optional

from libs.common import events
from libs.common.cache import course_key, invalidate, schedule_key
from libs.common.currency import dollars_to_cents
from libs.common.datetime_utils import as_utc, utc_now
from libs.common.logging import get_logger
from services.booking_service.errors import (
    BusinessRuleViolation,
    Forbidden,
    InvalidTransition,
    NotFound,
)
from services.booking_service.models import (
    ACTIVE_ENROLLMENT_STATUSES,
    Course,
    CourseSchedule,
    Enrollment,
    EnrollmentStatus,
    PaymentOption,
    PaymentStatus,
    WaitlistEntry,
    WaitlistStatus,
)
from services.booking_service.services import discounts, scheduling
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


async def schedule_context(
    db: AsyncSession, schedule_id: uuid.UUID
) -> dict[str, Any]:
    """Course and schedule details the notification templates show."""
    schedule = await db.get(CourseSchedule, schedule_id)
    if schedule is None:
        return {}
    course = await db.get(Course, schedule.course_id)
    return {
        "course_title": course.title if course else None,
        "start_date": schedule.start_date.isoformat(),
        "start_time": schedule.start_time,
        "location": schedule.location,
    }


async def enrollment_event_payload(
    db: AsyncSession, enrollment: Enrollment, **extra: Any
) -> dict[str, Any]:
    info = enrollment.student_info or {}
    payload = {
        "enrollment_id": str(enrollment.id),
        "student_id": enrollment.student_id,
        "course_id": str(enrollment.course_id),
        "schedule_id": str(enrollment.schedule_id),
        "status": enrollment.status.value,
        "payment_status": enrollment.payment_status.value,
        "total_amount": str(enrollment.total_amount),
        "student_email": info.get("email"),
        "student_phone": info.get("phone"),
        "student_name": info.get("name"),
    }
    payload.update(await schedule_context(db, enrollment.schedule_id))
    payload.update(extra)
    return payload


async def waitlist_event_payload(
    db: AsyncSession, entry: WaitlistEntry
) -> dict[str, Any]:
    payload = {
        "waitlist_entry_id": str(entry.id),
        "schedule_id": str(entry.schedule_id),
        "student_id": entry.student_id,
        "student_email": entry.student_email,
        "position": entry.position,
        "offer_expiry_date": (
            entry.offer_expiry_date.isoformat() if entry.offer_expiry_date else None
        ),
    }
    payload.update(await schedule_context(db, entry.schedule_id))
    return payload


async def _lock_enrollment(db: AsyncSession, enrollment_id: uuid.UUID) -> Enrollment:
    result = await db.execute(
        select(Enrollment)
        .where(Enrollment.id == enrollment_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    enrollment = result.scalar_one_or_none()
    if enrollment is None:
        raise NotFound("Enrollment not found")
    return enrollment


async def get_enrollment(db: AsyncSession, enrollment_id: uuid.UUID) -> Enrollment:
    enrollment = await db.get(Enrollment, enrollment_id)
    if enrollment is None:
        raise NotFound("Enrollment not found")
    return enrollment


async def ensure_course_owner(
    db: AsyncSession, enrollment: Enrollment, user_id: str, is_admin: bool = False
) -> None:
    """Only the course instructor (or an admin) manages its enrollments."""
    if is_admin:
        return
    course = await db.get(Course, enrollment.course_id)
    if course is None or course.instructor_id != user_id:
        raise Forbidden("Only the course instructor can manage this enrollment")


async def create_enrollment(
    db: AsyncSession,
    *,
    student_id: str,
    schedule_id: uuid.UUID,
    payment_option: PaymentOption = PaymentOption.FULL,
    student_info: Optional[dict[str, Any]] = None,
    now: Optional[datetime] = None,
) -> Enrollment:
    """Reserve a spot and record a pending enrollment with its price snapshot.

    Returns the existing enrollment when the student already holds an active
    one on this schedule.
    """
    now = now or utc_now()
    schedule = await scheduling.get_schedule(db, schedule_id)
    course = await db.get(Course, schedule.course_id)
    if course is None or not course.is_bookable:
        raise NotFound("Course not found")

    result = await db.execute(
        select(Enrollment).where(
            Enrollment.student_id == student_id,
            Enrollment.schedule_id == schedule_id,
            Enrollment.status.in_(ACTIVE_ENROLLMENT_STATUSES),
        )
    )
    existing = result.scalars().first()
    if existing is not None:
        logger.info(
            "Student %s already enrolled on schedule %s (%s)",
            student_id,
            schedule_id,
            existing.id,
        )
        return existing

    if payment_option == PaymentOption.DEPOSIT:
        if not course.deposit_amount:
            raise BusinessRuleViolation("This course does not accept deposits")
        subtotal_cents = dollars_to_cents(course.deposit_amount)
    else:
        subtotal_cents = dollars_to_cents(course.price)

    offer = await scheduling.get_live_offer(db, schedule_id, student_id, now=now)
    await scheduling.reserve_spot(
        db, schedule_id, holds_offer=offer is not None, now=now
    )
    if offer is not None:
        offer.status = WaitlistStatus.ENROLLED

    breakdown = discounts.price_breakdown(subtotal_cents)
    enrollment = Enrollment(
        student_id=student_id,
        course_id=course.id,
        schedule_id=schedule_id,
        status=EnrollmentStatus.PENDING,
        payment_status=PaymentStatus.PENDING,
        payment_option=payment_option,
        student_info=student_info,
        registration_date=now,
        **breakdown.snapshot(),
    )
    db.add(enrollment)
    await db.commit()
    await db.refresh(enrollment)

    logger.info(
        "Created enrollment %s for student %s on schedule %s (%d cents)",
        enrollment.id,
        student_id,
        schedule_id,
        breakdown.total_cents,
    )
    await invalidate(schedule_key(schedule_id), course_key(course.id))
    await events.publish_event(
        events.ENROLLMENT_CREATED, await enrollment_event_payload(db, enrollment)
    )
    return enrollment


async def confirm_enrollment(
    db: AsyncSession,
    enrollment_id: uuid.UUID,
    *,
    payment_intent_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Enrollment:
    """Record a successful payment.

    Schedules that auto-confirm move the enrollment to ``confirmed``; the rest
    stay ``pending`` until an instructor approves. Repeated calls are no-ops.
    """
    now = now or utc_now()
    enrollment = await _lock_enrollment(db, enrollment_id)

    if enrollment.status in (EnrollmentStatus.CANCELLED, EnrollmentStatus.COMPLETED):
        raise InvalidTransition(
            f"Cannot confirm a {enrollment.status.value} enrollment"
        )
    if (
        enrollment.status == EnrollmentStatus.CONFIRMED
        or enrollment.payment_status == PaymentStatus.PAID
    ):
        return enrollment

    schedule = await db.get(CourseSchedule, enrollment.schedule_id)
    enrollment.payment_status = PaymentStatus.PAID
    if payment_intent_id:
        enrollment.payment_intent_id = payment_intent_id
    awaiting_approval = not schedule.auto_confirm_registration
    if not awaiting_approval:
        enrollment.status = EnrollmentStatus.CONFIRMED
        enrollment.confirmation_date = now

    await discounts.finalize_usage(
        db,
        enrollment.id,
        payment_intent_id=enrollment.payment_intent_id,
        now=now,
    )
    await db.commit()
    await db.refresh(enrollment)

    logger.info(
        "Payment recorded for enrollment %s (status=%s)",
        enrollment.id,
        enrollment.status.value,
    )
    await events.publish_event(
        events.ENROLLMENT_CONFIRMED,
        await enrollment_event_payload(
            db, enrollment, awaiting_approval=awaiting_approval
        ),
    )
    return enrollment


async def approve_enrollment(
    db: AsyncSession,
    enrollment_id: uuid.UUID,
    *,
    user_id: Optional[str] = None,
    is_admin: bool = False,
    now: Optional[datetime] = None,
) -> Enrollment:
    """Instructor confirmation for schedules without auto-confirm."""
    now = now or utc_now()
    enrollment = await _lock_enrollment(db, enrollment_id)
    if user_id is not None:
        await ensure_course_owner(db, enrollment, user_id, is_admin)

    if enrollment.status == EnrollmentStatus.CONFIRMED:
        return enrollment
    if enrollment.status != EnrollmentStatus.PENDING:
        raise InvalidTransition(
            f"Cannot approve a {enrollment.status.value} enrollment"
        )
    if enrollment.payment_status != PaymentStatus.PAID:
        raise InvalidTransition("Enrollment has not been paid")

    enrollment.status = EnrollmentStatus.CONFIRMED
    enrollment.confirmation_date = now
    await db.commit()
    await db.refresh(enrollment)

    logger.info("Approved enrollment %s", enrollment.id)
    await events.publish_event(
        events.ENROLLMENT_CONFIRMED,
        await enrollment_event_payload(db, enrollment, awaiting_approval=False),
    )
    return enrollment


async def cancel_enrollment(
    db: AsyncSession,
    enrollment_id: uuid.UUID,
    *,
    reason: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Enrollment:
    """Cancel, free the spot and offer it down the waitlist.

    Paid enrollments are flagged for a refund; unpaid ones give back their
    coupon use.
    """
    now = now or utc_now()
    enrollment = await _lock_enrollment(db, enrollment_id)

    if enrollment.status not in ACTIVE_ENROLLMENT_STATUSES:
        raise InvalidTransition(
            f"Cannot cancel a {enrollment.status.value} enrollment"
        )

    enrollment.status = EnrollmentStatus.CANCELLED
    enrollment.cancellation_date = now
    enrollment.cancellation_reason = reason
    if enrollment.payment_status == PaymentStatus.PAID:
        enrollment.refund_requested = True
        enrollment.refund_requested_at = now
    else:
        await discounts.release_usage(db, enrollment.id)
    await db.flush()

    offer = await scheduling.release_spot(db, enrollment.schedule_id, now=now)
    await db.commit()
    await db.refresh(enrollment)

    logger.info("Cancelled enrollment %s", enrollment.id)
    await invalidate(
        schedule_key(enrollment.schedule_id), course_key(enrollment.course_id)
    )
    await events.publish_event(
        events.ENROLLMENT_CANCELLED,
        await enrollment_event_payload(
            db, enrollment, refund_requested=enrollment.refund_requested
        ),
    )
    if offer is not None:
        await events.publish_event(
            events.WAITLIST_OFFER, await waitlist_event_payload(db, offer)
        )
    return enrollment


async def complete_enrollment(
    db: AsyncSession,
    enrollment_id: uuid.UUID,
    *,
    user_id: Optional[str] = None,
    is_admin: bool = False,
    now: Optional[datetime] = None,
) -> Enrollment:
    now = now or utc_now()
    enrollment = await _lock_enrollment(db, enrollment_id)
    if user_id is not None:
        await ensure_course_owner(db, enrollment, user_id, is_admin)

    if enrollment.status == EnrollmentStatus.COMPLETED:
        return enrollment
    if enrollment.status != EnrollmentStatus.CONFIRMED:
        raise InvalidTransition(
            f"Cannot complete a {enrollment.status.value} enrollment"
        )

    schedule = await db.get(CourseSchedule, enrollment.schedule_id)
    if as_utc(schedule.end_date) > now:
        raise InvalidTransition("Schedule has not ended yet")

    enrollment.status = EnrollmentStatus.COMPLETED
    enrollment.completion_date = now
    await db.commit()
    await db.refresh(enrollment)
    logger.info("Completed enrollment %s", enrollment.id)
    return enrollment


async def complete_finished_enrollments(
    db: AsyncSession, *, now: Optional[datetime] = None
) -> int:
    """Complete every confirmed enrollment whose schedule has ended."""
    now = now or utc_now()
    result = await db.execute(
        select(Enrollment)
        .join(CourseSchedule, CourseSchedule.id == Enrollment.schedule_id)
        .where(
            Enrollment.status == EnrollmentStatus.CONFIRMED,
            CourseSchedule.end_date <= now,
        )
        .with_for_update(of=Enrollment)
    )
    enrollments = list(result.scalars().all())
    for enrollment in enrollments:
        enrollment.status = EnrollmentStatus.COMPLETED
        enrollment.completion_date = now
    if enrollments:
        await db.commit()
    logger.info("Completed %d enrollments", len(enrollments))
    return len(enrollments)


async def list_student_enrollments(
    db: AsyncSession, student_id: str
) -> list[Enrollment]:
    result = await db.execute(
        select(Enrollment)
        .where(Enrollment.student_id == student_id)
        .order_by(Enrollment.registration_date.desc())
    )
    return list(result.scalars().all())


async def list_schedule_enrollments(
    db: AsyncSession, schedule_id: uuid.UUID
) -> list[Enrollment]:
    result = await db.execute(
        select(Enrollment)
        .where(Enrollment.schedule_id == schedule_id)
        .order_by(Enrollment.registration_date)
    )
    return list(result.scalars().all())

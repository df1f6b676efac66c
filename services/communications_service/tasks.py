"""Booking event handlers.

The booking service publishes logical events; this module decides what each
event sends. Delivery failures are logged and dropped, never retried.
"""

from typing import Any, Awaitable, Callable

from libs.common.config import get_settings
from libs.common.logging import get_logger
from services.communications_service.templates import booking, sms

logger = get_logger(__name__)

Handler = Callable[[dict[str, Any]], Awaitable[bool]]


def _class_fields(payload: dict[str, Any]) -> dict[str, Any]:
    return {
        "course_title": payload.get("course_title"),
        "start_date": payload.get("start_date"),
        "start_time": payload.get("start_time"),
        "location": payload.get("location"),
    }


async def on_enrollment_created(payload: dict[str, Any]) -> bool:
    email = payload.get("student_email")
    if not email:
        return False
    return await booking.send_enrollment_received_email(
        to_email=email,
        student_name=payload.get("student_name"),
        total_amount=payload.get("total_amount") or "0",
        **_class_fields(payload),
    )


async def on_enrollment_confirmed(payload: dict[str, Any]) -> bool:
    sent = False
    email = payload.get("student_email")
    if email:
        sent = await booking.send_enrollment_confirmed_email(
            to_email=email,
            student_name=payload.get("student_name"),
            total_amount=payload.get("total_amount") or "0",
            awaiting_approval=bool(payload.get("awaiting_approval")),
            **_class_fields(payload),
        )
    phone = payload.get("student_phone")
    if phone and not payload.get("awaiting_approval"):
        sent = (
            await sms.send_enrollment_confirmed_sms(
                phone,
                payload.get("course_title"),
                payload.get("start_date"),
                payload.get("start_time"),
            )
            or sent
        )
    return sent


async def on_enrollment_cancelled(payload: dict[str, Any]) -> bool:
    email = payload.get("student_email")
    if not email:
        return False
    return await booking.send_enrollment_cancelled_email(
        to_email=email,
        student_name=payload.get("student_name"),
        refund_requested=bool(payload.get("refund_requested")),
        **_class_fields(payload),
    )


async def on_waitlist_offer(payload: dict[str, Any]) -> bool:
    email = payload.get("student_email")
    if not email:
        logger.info(
            "No email for waitlist entry %s, offer not sent",
            payload.get("waitlist_entry_id"),
        )
        return False
    return await booking.send_waitlist_offer_email(
        to_email=email,
        offer_expiry_date=payload.get("offer_expiry_date"),
        **_class_fields(payload),
    )


async def on_waitlist_expired(payload: dict[str, Any]) -> bool:
    email = payload.get("student_email")
    if not email:
        return False
    return await booking.send_waitlist_expired_email(
        to_email=email, **_class_fields(payload)
    )


async def on_schedule_created(payload: dict[str, Any]) -> bool:
    return await booking.send_schedule_created_email(
        to_email=get_settings().ADMIN_EMAIL,
        course_title=payload.get("course_title"),
        start_date=payload.get("start_date"),
        occurrences=len(payload.get("schedule_ids") or []),
    )


EVENT_HANDLERS: dict[str, Handler] = {
    "enrollment.created": on_enrollment_created,
    "enrollment.confirmed": on_enrollment_confirmed,
    "enrollment.cancelled": on_enrollment_cancelled,
    "waitlist.offer": on_waitlist_offer,
    "waitlist.expired": on_waitlist_expired,
    "schedule.created": on_schedule_created,
}


async def dispatch_event(event_type: str, payload: dict[str, Any]) -> bool:
    """Run the handler for an event. Returns whether anything was sent."""
    handler = EVENT_HANDLERS.get(event_type)
    if handler is None:
        logger.warning("No handler for event %s", event_type)
        return False
    try:
        sent = await handler(payload)
    except Exception:
        logger.exception("Handler for %s failed", event_type)
        return False
    logger.info("Handled %s (sent=%s)", event_type, sent)
    return sent

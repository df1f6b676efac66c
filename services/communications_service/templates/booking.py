"""
Enrollment and waitlist email templates.
"""

from datetime import datetime
from html import escape
from typing import Optional

from libs.common.config import get_settings
from libs.common.currency import format_currency
from libs.common.emails.core import send_email
from services.communications_service.templates.base import (
    COLOR_AMBER,
    COLOR_GREEN,
    COLOR_RED,
    COLOR_SLATE,
    cta_button,
    detail_box,
    sign_off,
    wrap_html,
)


def format_class_date(start_date: Optional[str], start_time: Optional[str] = None) -> str:
    """ISO date plus optional wall-clock time, formatted for humans."""
    if not start_date:
        return ""
    try:
        day = datetime.fromisoformat(start_date).strftime("%A, %B %d, %Y")
    except ValueError:
        day = start_date
    return f"{day} at {start_time}" if start_time else day


def _greeting(name: Optional[str]) -> str:
    return f"Hi {name}," if name else "Hi there,"


def _class_details(
    course_title: Optional[str],
    start_date: Optional[str],
    start_time: Optional[str],
    location: Optional[str],
    **extra: Optional[str],
) -> dict[str, Optional[str]]:
    details = {
        "Course": course_title,
        "Date": format_class_date(start_date, start_time),
        "Location": location,
    }
    details.update(extra)
    return details


def _plain_details(details: dict[str, Optional[str]]) -> str:
    return "\n".join(f"- {label}: {value}" for label, value in details.items() if value)


async def send_enrollment_received_email(
    to_email: str,
    student_name: Optional[str],
    course_title: Optional[str],
    start_date: Optional[str],
    start_time: Optional[str],
    location: Optional[str],
    total_amount: str,
) -> bool:
    """
    Spot reserved, payment still outstanding.
    """
    details = _class_details(
        course_title, start_date, start_time, location, Total=format_currency(total_amount)
    )
    subject = f"Spot reserved - {course_title}"
    body = f"""{_greeting(student_name)}

We've reserved your spot. Complete payment to secure it.

{_plain_details(details)}

The RangeReady Team
"""
    html_body = wrap_html(
        title="Your spot is reserved",
        subtitle="Complete payment to secure it",
        body_html=(
            f"<p>{escape(_greeting(student_name))}</p>"
            "<p>We've reserved your spot. Complete payment to secure it.</p>"
            + detail_box(details)
            + cta_button("View my bookings", f"{get_settings().FRONTEND_URL}/dashboard")
            + sign_off()
        ),
        header_color=COLOR_SLATE,
        preheader=f"Spot reserved for {course_title}",
    )
    return await send_email(to_email, subject, body, html_body)


async def send_enrollment_confirmed_email(
    to_email: str,
    student_name: Optional[str],
    course_title: Optional[str],
    start_date: Optional[str],
    start_time: Optional[str],
    location: Optional[str],
    total_amount: str,
    awaiting_approval: bool = False,
) -> bool:
    """
    Payment received. When the schedule needs instructor approval the email
    says so instead of confirming the seat.
    """
    details = _class_details(
        course_title, start_date, start_time, location, Paid=format_currency(total_amount)
    )
    if awaiting_approval:
        subject = f"Payment received - {course_title}"
        headline = "Payment received"
        message = "Your instructor will confirm your enrollment shortly."
    else:
        subject = f"You're booked - {course_title}"
        headline = "You're booked!"
        message = "Your enrollment is confirmed. Bring eye and ear protection and a valid photo ID."

    body = f"""{_greeting(student_name)}

{message}

{_plain_details(details)}

The RangeReady Team
"""
    html_body = wrap_html(
        title=headline,
        body_html=(
            f"<p>{escape(_greeting(student_name))}</p>"
            f"<p>{escape(message)}</p>"
            + detail_box(details, accent_color=COLOR_GREEN)
            + sign_off()
        ),
        header_color=COLOR_GREEN,
        preheader=message,
    )
    return await send_email(to_email, subject, body, html_body)


async def send_enrollment_cancelled_email(
    to_email: str,
    student_name: Optional[str],
    course_title: Optional[str],
    start_date: Optional[str],
    start_time: Optional[str],
    location: Optional[str],
    refund_requested: bool = False,
) -> bool:
    details = _class_details(course_title, start_date, start_time, location)
    refund_note = (
        "Your refund has been requested and will be processed within 5-10 business days."
        if refund_requested
        else ""
    )
    subject = f"Enrollment cancelled - {course_title}"
    body = f"""{_greeting(student_name)}

Your enrollment has been cancelled.
{refund_note}

{_plain_details(details)}

The RangeReady Team
"""
    html_body = wrap_html(
        title="Enrollment cancelled",
        body_html=(
            f"<p>{escape(_greeting(student_name))}</p>"
            "<p>Your enrollment has been cancelled.</p>"
            + detail_box(details, accent_color=COLOR_RED)
            + sign_off(refund_note)
        ),
        header_color=COLOR_RED,
    )
    return await send_email(to_email, subject, body, html_body)


async def send_waitlist_offer_email(
    to_email: str,
    course_title: Optional[str],
    start_date: Optional[str],
    start_time: Optional[str],
    location: Optional[str],
    offer_expiry_date: Optional[str],
) -> bool:
    """
    A spot opened up for a waitlisted student.
    """
    details = _class_details(
        course_title,
        start_date,
        start_time,
        location,
        **{"Offer expires": format_class_date(offer_expiry_date)},
    )
    subject = f"A spot opened up - {course_title}"
    body = f"""Hi there,

Good news! A spot opened up and we're holding it for you. Enroll before the
offer expires or it goes to the next person on the waitlist.

{_plain_details(details)}

The RangeReady Team
"""
    html_body = wrap_html(
        title="A spot opened up",
        subtitle="We're holding it for you",
        body_html=(
            "<p>Hi there,</p>"
            "<p>Good news! A spot opened up and we're holding it for you. Enroll "
            "before the offer expires or it goes to the next person on the waitlist.</p>"
            + detail_box(details, accent_color=COLOR_AMBER)
            + cta_button("Enroll now", f"{get_settings().FRONTEND_URL}/dashboard", COLOR_AMBER)
            + sign_off()
        ),
        header_color=COLOR_AMBER,
        preheader=f"A spot opened up in {course_title}",
    )
    return await send_email(to_email, subject, body, html_body)


async def send_waitlist_expired_email(
    to_email: str,
    course_title: Optional[str],
    start_date: Optional[str],
    start_time: Optional[str],
    location: Optional[str],
) -> bool:
    details = _class_details(course_title, start_date, start_time, location)
    subject = f"Waitlist offer expired - {course_title}"
    body = f"""Hi there,

Your waitlist offer expired and the spot has been passed on.

{_plain_details(details)}

The RangeReady Team
"""
    html_body = wrap_html(
        title="Waitlist offer expired",
        body_html=(
            "<p>Hi there,</p>"
            "<p>Your waitlist offer expired and the spot has been passed on.</p>"
            + detail_box(details)
            + sign_off("Keep an eye on our schedule for new dates.")
        ),
    )
    return await send_email(to_email, subject, body, html_body)


async def send_schedule_created_email(
    to_email: str,
    course_title: Optional[str],
    start_date: Optional[str],
    occurrences: int,
) -> bool:
    """Admin notice for newly published schedules."""
    subject = f"New schedule published - {course_title}"
    details = {
        "Course": course_title,
        "First date": format_class_date(start_date),
        "Occurrences": str(occurrences),
    }
    body = f"""New schedule published.

{_plain_details(details)}
"""
    html_body = wrap_html(
        title="New schedule published",
        body_html=detail_box(details),
    )
    return await send_email(to_email, subject, body, html_body)

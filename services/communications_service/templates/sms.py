"""
Short text messages for time-sensitive booking events.
"""

from typing import Optional

from libs.common.sms import send_sms
from services.communications_service.templates.booking import format_class_date


async def send_enrollment_confirmed_sms(
    to_number: str, course_title: Optional[str], start_date: Optional[str], start_time: Optional[str]
) -> bool:
    when = format_class_date(start_date, start_time)
    return await send_sms(
        to_number, f"RangeReady: you're booked for {course_title} on {when}."
    )


async def send_waitlist_offer_sms(
    to_number: str, course_title: Optional[str], offer_expiry_date: Optional[str]
) -> bool:
    expires = format_class_date(offer_expiry_date)
    return await send_sms(
        to_number,
        f"RangeReady: a spot opened up in {course_title}. Enroll before {expires} to keep it.",
    )

"""
SMS delivery through the Twilio REST API.
"""

from typing import Optional

import httpx

from libs.common.config import get_settings
from libs.common.logging import get_logger

logger = get_logger(__name__)

TWILIO_API_BASE = "https://api.twilio.com/2010-04-01"


async def send_sms(
    to_number: str, body: str, client: Optional[httpx.AsyncClient] = None
) -> bool:
    """
    Send a text message. Returns False when Twilio is not configured or the
    API rejects the message.
    """
    settings = get_settings()
    if not (
        settings.TWILIO_ACCOUNT_SID
        and settings.TWILIO_AUTH_TOKEN
        and settings.TWILIO_FROM_NUMBER
    ):
        logger.warning("Twilio not configured - SMS not sent")
        logger.info("Would have sent SMS to %s: %s", to_number, body[:80])
        return False

    url = f"{TWILIO_API_BASE}/Accounts/{settings.TWILIO_ACCOUNT_SID}/Messages.json"
    data = {"To": to_number, "From": settings.TWILIO_FROM_NUMBER, "Body": body}
    auth = (settings.TWILIO_ACCOUNT_SID, settings.TWILIO_AUTH_TOKEN)

    try:
        if client is not None:
            response = await client.post(url, data=data, auth=auth)
        else:
            async with httpx.AsyncClient(timeout=30.0) as http:
                response = await http.post(url, data=data, auth=auth)
        response.raise_for_status()
    except httpx.HTTPError as e:
        logger.error("Failed to send SMS to %s: %s", to_number, e)
        return False

    logger.info("SMS sent to %s", to_number)
    return True

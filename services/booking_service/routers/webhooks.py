"""Stripe webhook handler."""

import json

from fastapi import APIRouter, Depends, HTTPException, Request, status
from libs.common.config import get_settings
from libs.common.logging import get_logger
from libs.db.session import get_async_db
from services.booking_service.errors import PaymentVerificationFailed
from services.booking_service.services import checkout
from services.booking_service.stripe_client import verify_webhook_signature
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(prefix="/webhooks", tags=["webhooks"])
logger = get_logger(__name__)


def _is_event(event) -> bool:
    """A typed Stripe event; payment intent events must carry the intent id."""
    if not isinstance(event, dict) or not isinstance(event.get("type"), str):
        return False
    if not event["type"].startswith("payment_intent."):
        return True
    data = event.get("data")
    obj = data.get("object") if isinstance(data, dict) else None
    return isinstance(obj, dict) and bool(obj.get("id"))


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    db: AsyncSession = Depends(get_async_db),
):
    """
    Stripe webhook endpoint (no auth; verified by Stripe-Signature).
    """
    raw = await request.body()
    signature = request.headers.get("Stripe-Signature")
    if not verify_webhook_signature(
        raw, signature, get_settings().STRIPE_WEBHOOK_SECRET
    ):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid signature"
        )

    try:
        event = json.loads(raw.decode("utf-8") or "{}")
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid payload"
        )
    if not _is_event(event):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid payload"
        )

    try:
        await checkout.handle_webhook_event(db, event)
    except PaymentVerificationFailed as e:
        # Acknowledge so Stripe stops retrying; the mismatch needs a human
        logger.error("Webhook %s failed verification: %s", event.get("id"), e.message)

    return {"received": True}

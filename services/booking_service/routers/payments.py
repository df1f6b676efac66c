"""Stripe payment intent creation, confirmation and refunds."""

import uuid

from fastapi import APIRouter, Depends, Request
from libs.auth.dependencies import get_current_user, require_instructor
from libs.auth.models import AuthUser
from libs.common.config import get_settings
from libs.common.currency import dollars_to_cents
from libs.common.rate_limit import payment_limit
from libs.db.session import get_async_db
from services.booking_service.schemas import (
    EnrollmentResponse,
    PaymentConfirm,
    PaymentIntentCreate,
    PaymentIntentResponse,
    RefundCreate,
)
from services.booking_service.services import checkout
from services.booking_service.stripe_client import StripeClient, get_stripe_client
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(tags=["payments"])


@router.post("/payments/intents", response_model=PaymentIntentResponse)
@payment_limit
async def create_payment_intent(
    request: Request,
    payload: PaymentIntentCreate,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
    stripe: StripeClient = Depends(get_stripe_client),
):
    """
    Create the Stripe payment intent for a pending enrollment.

    Returns no client secret when nothing is left to pay; the enrollment is
    then confirmed straight away.
    """
    result = await checkout.create_payment_intent(
        db,
        stripe,
        enrollment_id=payload.enrollment_id,
        student_id=current_user.user_id,
    )
    intent = result.intent
    return PaymentIntentResponse(
        enrollment=EnrollmentResponse.model_validate(result.enrollment),
        payment_intent_id=intent.id if intent else None,
        client_secret=intent.client_secret if intent else None,
        amount_cents=(
            intent.amount
            if intent
            else dollars_to_cents(result.enrollment.total_amount)
        ),
        currency=get_settings().CURRENCY,
    )


@router.post("/payments/confirm", response_model=EnrollmentResponse)
@payment_limit
async def confirm_payment(
    request: Request,
    payload: PaymentConfirm,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
    stripe: StripeClient = Depends(get_stripe_client),
):
    """Verify the intent with Stripe and confirm the enrollment."""
    return await checkout.confirm_payment(
        db,
        stripe,
        enrollment_id=payload.enrollment_id,
        payment_intent_id=payload.payment_intent_id,
        student_id=current_user.user_id,
    )


@router.post("/enrollments/{enrollment_id}/refund", response_model=EnrollmentResponse)
async def refund_enrollment(
    enrollment_id: uuid.UUID,
    payload: RefundCreate,
    current_user: AuthUser = Depends(require_instructor),
    db: AsyncSession = Depends(get_async_db),
    stripe: StripeClient = Depends(get_stripe_client),
):
    return await checkout.refund_enrollment(
        db,
        stripe,
        enrollment_id=enrollment_id,
        user_id=current_user.user_id,
        is_admin=current_user.role == "admin",
        refund_subtotal_cents=(
            dollars_to_cents(payload.amount) if payload.amount is not None else None
        ),
    )

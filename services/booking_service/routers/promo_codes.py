"""Promo code validation/application and instructor coupon management."""

import uuid

from fastapi import APIRouter, Depends, Request, status
from libs.auth.dependencies import get_current_user, require_instructor
from libs.auth.models import AuthUser
from libs.common.currency import cents_to_dollars, dollars_to_cents
from libs.common.rate_limit import promo_limit
from libs.db.session import get_async_db
from services.booking_service.schemas import (
    CouponCreate,
    CouponResponse,
    CouponUpdate,
    EnrollmentResponse,
    PromoApplyRequest,
    PromoQuoteResponse,
    PromoValidateRequest,
)
from services.booking_service.services import discounts
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(prefix="/promo-codes", tags=["promo-codes"])


@router.post("/validate", response_model=PromoQuoteResponse)
@promo_limit
async def validate_promo_code(
    request: Request,
    payload: PromoValidateRequest,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    """
    Preview a promo code against a cart without using it up.

    Invalid codes return 400 with the failure reason.
    """
    amount_cents = dollars_to_cents(payload.amount)
    coupon, discount_cents = await discounts.validate_promo_code(
        db,
        code=payload.code,
        user_id=current_user.user_id,
        course_id=payload.course_id,
        amount_cents=amount_cents,
    )
    breakdown = discounts.price_breakdown(amount_cents, discount_cents)
    snapshot = breakdown.snapshot()
    return PromoQuoteResponse(
        code=coupon.code,
        discount_type=coupon.discount_type,
        discount_value=coupon.discount_value,
        subtotal=cents_to_dollars(breakdown.subtotal_cents),
        discount=snapshot["discount_amount"],
        tax_rate=snapshot["tax_rate"],
        tax=snapshot["tax_amount"],
        total=snapshot["total_amount"],
    )


@router.post("/apply", response_model=EnrollmentResponse)
@promo_limit
async def apply_promo_code(
    request: Request,
    payload: PromoApplyRequest,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    return await discounts.apply_promo_code(
        db,
        enrollment_id=payload.enrollment_id,
        code=payload.code,
        user_id=current_user.user_id,
    )


# ---------------------------------------------------------------------------
# Coupon management
# ---------------------------------------------------------------------------


@router.get("", response_model=list[CouponResponse])
async def list_coupons(
    _instructor: AuthUser = Depends(require_instructor),
    db: AsyncSession = Depends(get_async_db),
):
    return await discounts.list_coupons(db)


@router.post("", response_model=CouponResponse, status_code=status.HTTP_201_CREATED)
async def create_coupon(
    payload: CouponCreate,
    current_user: AuthUser = Depends(require_instructor),
    db: AsyncSession = Depends(get_async_db),
):
    return await discounts.create_coupon(
        db, created_by=current_user.user_id, **payload.model_dump()
    )


@router.patch("/{coupon_id}", response_model=CouponResponse)
async def update_coupon(
    coupon_id: uuid.UUID,
    payload: CouponUpdate,
    _instructor: AuthUser = Depends(require_instructor),
    db: AsyncSession = Depends(get_async_db),
):
    return await discounts.update_coupon(
        db, coupon_id, **payload.model_dump(exclude_unset=True)
    )


@router.delete("/{coupon_id}", response_model=CouponResponse)
async def deactivate_coupon(
    coupon_id: uuid.UUID,
    _instructor: AuthUser = Depends(require_instructor),
    db: AsyncSession = Depends(get_async_db),
):
    return await discounts.deactivate_coupon(db, coupon_id)

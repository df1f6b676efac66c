"""Promo code validation, application and price computation.

All arithmetic is done in integer cents. Dollar ``Decimal`` values only appear
when reading coupon/enrollment columns and when writing the amount snapshot.

Tax is charged on the amount left after the discount.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from libs.common.config import get_settings
from libs.common.currency import (
    calculate_tax_in_cents,
    calculate_total_in_cents,
    cents_to_dollars,
    dollars_to_cents,
    format_tax_rate,
    parse_tax_rate,
    round_half_up,
)
from libs.common.datetime_utils import as_utc, utc_now
from libs.common.logging import get_logger
from services.booking_service.errors import (
    AlreadyApplied,
    BusinessRuleViolation,
    NotFound,
    PromoCodeInvalid,
)
from services.booking_service.models import (
    Coupon,
    CouponUsage,
    DiscountType,
    Enrollment,
    EnrollmentStatus,
    PaymentStatus,
)
from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


@dataclass(frozen=True)
class PriceBreakdown:
    subtotal_cents: int
    discount_cents: int
    tax_rate: Decimal
    tax_cents: int
    total_cents: int

    @property
    def taxable_cents(self) -> int:
        return self.subtotal_cents - self.discount_cents

    def snapshot(self) -> dict[str, Any]:
        """Enrollment column values for this breakdown."""
        return {
            "subtotal_amount": cents_to_dollars(self.subtotal_cents),
            "discount_amount": cents_to_dollars(self.discount_cents),
            "tax_rate": format_tax_rate(self.tax_rate),
            "tax_amount": cents_to_dollars(self.tax_cents),
            "total_amount": cents_to_dollars(self.total_cents),
        }


def compute_discount_cents(
    discount_type: DiscountType, value: Decimal, base_cents: int
) -> int:
    """Discount for a base amount, clamped to ``[0, base_cents]``.

    Percentage values are percents (20 = 20%); fixed values are dollars.
    """
    if base_cents <= 0:
        return 0
    if discount_type == DiscountType.PERCENTAGE:
        discount = round_half_up(Decimal(base_cents) * Decimal(value) / 100)
    else:
        discount = dollars_to_cents(value)
    return max(0, min(discount, base_cents))


def get_tax_rate(jurisdiction: Optional[str] = None) -> Decimal:
    settings = get_settings()
    key = jurisdiction or settings.DEFAULT_TAX_JURISDICTION
    return parse_tax_rate(settings.TAX_RATES.get(key))


def price_breakdown(
    subtotal_cents: int,
    discount_cents: int = 0,
    tax_rate: Optional[Decimal] = None,
) -> PriceBreakdown:
    rate = get_tax_rate() if tax_rate is None else tax_rate
    discount_cents = max(0, min(discount_cents, subtotal_cents))
    taxable = subtotal_cents - discount_cents
    tax = calculate_tax_in_cents(taxable, rate)
    return PriceBreakdown(
        subtotal_cents=subtotal_cents,
        discount_cents=discount_cents,
        tax_rate=rate,
        tax_cents=tax,
        total_cents=calculate_total_in_cents(taxable, tax),
    )


def normalize_code(code: str) -> str:
    return code.strip().upper()


async def get_coupon_by_code(db: AsyncSession, code: str) -> Optional[Coupon]:
    result = await db.execute(select(Coupon).where(Coupon.code == normalize_code(code)))
    return result.scalar_one_or_none()


def _applies_to_course(coupon: Coupon, course_id: uuid.UUID) -> bool:
    if not coupon.applicable_course_ids:
        return True
    return str(course_id) in {str(cid) for cid in coupon.applicable_course_ids}


async def validate_promo_code(
    db: AsyncSession,
    *,
    code: str,
    user_id: str,
    course_id: uuid.UUID,
    amount_cents: int,
    now: Optional[datetime] = None,
) -> tuple[Coupon, int]:
    """Check a code against a cart. Returns the coupon and its discount in cents.

    Checks run in a fixed order and the first failure raises
    ``PromoCodeInvalid`` with its reason.
    """
    now = now or utc_now()
    coupon = await get_coupon_by_code(db, code)

    if coupon is None:
        raise PromoCodeInvalid(
            "Promo code not found", reason=PromoCodeInvalid.REASON_NOT_FOUND
        )
    if not coupon.is_active:
        raise PromoCodeInvalid(
            "Promo code is no longer active", reason=PromoCodeInvalid.REASON_INACTIVE
        )

    valid_from = as_utc(coupon.valid_from)
    if valid_from is not None and now < valid_from:
        raise PromoCodeInvalid(
            "Promo code is not active yet",
            reason=PromoCodeInvalid.REASON_NOT_YET_ACTIVE,
        )
    valid_until = as_utc(coupon.valid_until)
    if valid_until is not None and now > valid_until:
        raise PromoCodeInvalid(
            "Promo code has expired", reason=PromoCodeInvalid.REASON_EXPIRED
        )

    if not _applies_to_course(coupon, course_id):
        raise PromoCodeInvalid(
            "Promo code does not apply to this course",
            reason=PromoCodeInvalid.REASON_COURSE_MISMATCH,
        )

    minimum_cents = dollars_to_cents(coupon.minimum_order_amount)
    if amount_cents < minimum_cents:
        raise PromoCodeInvalid(
            f"Order must be at least ${cents_to_dollars(minimum_cents)} to use this code",
            reason=PromoCodeInvalid.REASON_BELOW_MINIMUM,
        )

    if (
        coupon.max_usage_total is not None
        and coupon.current_usage_count >= coupon.max_usage_total
    ):
        raise PromoCodeInvalid(
            "Promo code usage limit reached",
            reason=PromoCodeInvalid.REASON_USAGE_LIMIT_REACHED,
        )

    if coupon.max_usage_per_user is not None:
        used = await db.execute(
            select(func.count(CouponUsage.id)).where(
                CouponUsage.coupon_id == coupon.id,
                CouponUsage.user_id == user_id,
            )
        )
        if used.scalar_one() >= coupon.max_usage_per_user:
            raise PromoCodeInvalid(
                "You have already used this promo code",
                reason=PromoCodeInvalid.REASON_PER_USER_LIMIT_REACHED,
            )

    discount_cents = compute_discount_cents(
        coupon.discount_type, coupon.discount_value, amount_cents
    )
    return coupon, discount_cents


async def apply_promo_code(
    db: AsyncSession,
    *,
    enrollment_id: uuid.UUID,
    code: str,
    user_id: str,
    now: Optional[datetime] = None,
) -> Enrollment:
    """Apply a code to a pending, unpaid enrollment and reprice it.

    The usage count increment and the usage row insert commit together. A
    retry for the same coupon, user and enrollment raises AlreadyApplied.
    """
    now = now or utc_now()
    result = await db.execute(
        select(Enrollment).where(Enrollment.id == enrollment_id).with_for_update()
    )
    enrollment = result.scalar_one_or_none()
    if enrollment is None or enrollment.student_id != user_id:
        raise NotFound("Enrollment not found")

    coupon = await get_coupon_by_code(db, code)
    if coupon is not None:
        existing = await db.execute(
            select(CouponUsage.id).where(
                CouponUsage.coupon_id == coupon.id,
                CouponUsage.user_id == user_id,
                CouponUsage.enrollment_id == enrollment.id,
            )
        )
        if existing.first() is not None:
            raise AlreadyApplied()
    if enrollment.promo_code_applied:
        raise AlreadyApplied()

    if (
        enrollment.status != EnrollmentStatus.PENDING
        or enrollment.payment_status != PaymentStatus.PENDING
    ):
        raise BusinessRuleViolation("Promo codes can only be applied before payment")

    subtotal_cents = dollars_to_cents(enrollment.subtotal_amount)
    coupon, discount_cents = await validate_promo_code(
        db,
        code=code,
        user_id=user_id,
        course_id=enrollment.course_id,
        amount_cents=subtotal_cents,
        now=now,
    )

    claimed = await db.execute(
        update(Coupon)
        .where(
            Coupon.id == coupon.id,
            or_(
                Coupon.max_usage_total.is_(None),
                Coupon.current_usage_count < Coupon.max_usage_total,
            ),
        )
        .values(current_usage_count=Coupon.current_usage_count + 1)
        .execution_options(synchronize_session=False)
    )
    if claimed.rowcount == 0:
        raise PromoCodeInvalid(
            "Promo code usage limit reached",
            reason=PromoCodeInvalid.REASON_USAGE_LIMIT_REACHED,
        )

    breakdown = price_breakdown(
        subtotal_cents, discount_cents, parse_tax_rate(enrollment.tax_rate)
    )
    db.add(
        CouponUsage(
            coupon_id=coupon.id,
            user_id=user_id,
            enrollment_id=enrollment.id,
            original_amount=cents_to_dollars(subtotal_cents),
            discount_amount=cents_to_dollars(breakdown.discount_cents),
            final_amount=cents_to_dollars(breakdown.taxable_cents),
            used_at=now,
        )
    )
    for column, value in breakdown.snapshot().items():
        setattr(enrollment, column, value)
    applied_code = coupon.code
    enrollment.promo_code_applied = applied_code

    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        logger.info(
            "Duplicate promo application for enrollment %s (%s)",
            enrollment_id,
            applied_code,
        )
        raise AlreadyApplied()

    await db.refresh(enrollment)
    logger.info(
        "Applied %s to enrollment %s: -%d cents, total %d cents",
        applied_code,
        enrollment.id,
        breakdown.discount_cents,
        breakdown.total_cents,
    )
    return enrollment


async def finalize_usage(
    db: AsyncSession,
    enrollment_id: uuid.UUID,
    *,
    payment_intent_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Optional[CouponUsage]:
    """Mark the enrollment's coupon usage as paid for. Flushes only."""
    result = await db.execute(
        select(CouponUsage).where(
            CouponUsage.enrollment_id == enrollment_id,
            CouponUsage.is_finalized.is_(False),
        )
    )
    usage = result.scalar_one_or_none()
    if usage is None:
        return None

    usage.is_finalized = True
    usage.finalized_at = now or utc_now()
    if payment_intent_id:
        usage.payment_intent_id = payment_intent_id
    await db.flush()
    return usage


async def release_usage(db: AsyncSession, enrollment_id: uuid.UUID) -> bool:
    """Give back an unpaid enrollment's coupon use. Flushes only."""
    result = await db.execute(
        select(CouponUsage).where(
            CouponUsage.enrollment_id == enrollment_id,
            CouponUsage.is_finalized.is_(False),
        )
    )
    usage = result.scalar_one_or_none()
    if usage is None:
        return False

    await db.execute(
        update(Coupon)
        .where(Coupon.id == usage.coupon_id, Coupon.current_usage_count > 0)
        .values(current_usage_count=Coupon.current_usage_count - 1)
        .execution_options(synchronize_session=False)
    )
    await db.delete(usage)
    await db.flush()
    logger.info("Released coupon usage for enrollment %s", enrollment_id)
    return True


# ---------------------------------------------------------------------------
# Coupon management
# ---------------------------------------------------------------------------


async def list_coupons(db: AsyncSession, *, include_inactive: bool = True) -> list[Coupon]:
    query = select(Coupon).order_by(Coupon.created_at.desc())
    if not include_inactive:
        query = query.where(Coupon.is_active.is_(True))
    result = await db.execute(query)
    return list(result.scalars().all())


async def get_coupon(db: AsyncSession, coupon_id: uuid.UUID) -> Coupon:
    coupon = await db.get(Coupon, coupon_id)
    if coupon is None:
        raise NotFound("Promo code not found")
    return coupon


def _store_course_ids(fields: dict[str, Any]) -> dict[str, Any]:
    course_ids = fields.get("applicable_course_ids")
    if course_ids is not None:
        fields["applicable_course_ids"] = [str(cid) for cid in course_ids]
    return fields


async def create_coupon(
    db: AsyncSession, *, created_by: str, **fields: Any
) -> Coupon:
    fields = _store_course_ids(fields)
    fields["code"] = normalize_code(fields["code"])
    if await get_coupon_by_code(db, fields["code"]) is not None:
        raise BusinessRuleViolation(f"Promo code {fields['code']} already exists")

    coupon = Coupon(created_by=created_by, **fields)
    db.add(coupon)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise BusinessRuleViolation(f"Promo code {fields['code']} already exists")
    await db.refresh(coupon)
    logger.info("Created promo code %s", coupon.code)
    return coupon


async def update_coupon(
    db: AsyncSession, coupon_id: uuid.UUID, **fields: Any
) -> Coupon:
    coupon = await get_coupon(db, coupon_id)
    fields = _store_course_ids(fields)
    limit = fields.get("max_usage_total", coupon.max_usage_total)
    if limit is not None and limit < coupon.current_usage_count:
        raise BusinessRuleViolation(
            "Usage limit cannot be lower than the number of uses so far"
        )
    for key, value in fields.items():
        setattr(coupon, key, value)
    await db.commit()
    await db.refresh(coupon)
    return coupon


async def deactivate_coupon(db: AsyncSession, coupon_id: uuid.UUID) -> Coupon:
    """Coupons are never deleted; usage rows reference them."""
    return await update_coupon(db, coupon_id, is_active=False)

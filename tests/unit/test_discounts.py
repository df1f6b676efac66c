"""Unit tests for promo code validation, application and coupon management."""

import uuid
from datetime import timedelta
from decimal import Decimal

import pytest
from libs.common.datetime_utils import utc_now
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
    EnrollmentStatus,
    PaymentStatus,
)
from services.booking_service.services import discounts, enrollment_ops
from sqlalchemy import func, select
from tests.factories import CouponFactory, CourseFactory, EnrollmentFactory, ScheduleFactory

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _make_enrollment(db, **overrides):
    course = CourseFactory.create()
    schedule = ScheduleFactory.create(course_id=course.id, available_spots=9)
    enrollment = EnrollmentFactory.create(
        course_id=course.id, schedule_id=schedule.id, **overrides
    )
    db.add_all([course, schedule, enrollment])
    await db.commit()
    return enrollment


async def _make_coupon(db, **overrides):
    coupon = CouponFactory.create(**overrides)
    db.add(coupon)
    await db.commit()
    return coupon


async def _reload_coupon(db, coupon_id):
    result = await db.execute(
        select(Coupon)
        .where(Coupon.id == coupon_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()


async def _usage_count(db, coupon_id):
    result = await db.execute(
        select(func.count(CouponUsage.id)).where(CouponUsage.coupon_id == coupon_id)
    )
    return result.scalar_one()


async def _expect_reason(db, reason, *, coupon_code, course_id=None, amount_cents=10000):
    with pytest.raises(PromoCodeInvalid) as exc_info:
        await discounts.validate_promo_code(
            db,
            code=coupon_code,
            user_id="student-1",
            course_id=course_id or uuid.uuid4(),
            amount_cents=amount_cents,
        )
    assert exc_info.value.reason == reason


# ---------------------------------------------------------------------------
# apply_promo_code
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_apply_save20_reprices_enrollment(db_session):
    enrollment = await _make_enrollment(db_session)
    coupon = await _make_coupon(db_session, code="SAVE20")

    updated = await discounts.apply_promo_code(
        db_session,
        enrollment_id=enrollment.id,
        code="SAVE20",
        user_id=enrollment.student_id,
    )

    assert updated.promo_code_applied == "SAVE20"
    assert updated.subtotal_amount == Decimal("100.00")
    assert updated.discount_amount == Decimal("20.00")
    # Tax is charged on the $80 left after the discount
    assert updated.tax_amount == Decimal("6.10")
    assert updated.total_amount == Decimal("86.10")
    assert (await _reload_coupon(db_session, coupon.id)).current_usage_count == 1
    assert await _usage_count(db_session, coupon.id) == 1


@pytest.mark.asyncio
@pytest.mark.unit
async def test_apply_same_code_twice_is_already_applied(db_session):
    enrollment = await _make_enrollment(db_session)
    coupon = await _make_coupon(db_session, code="SAVE20")
    await discounts.apply_promo_code(
        db_session,
        enrollment_id=enrollment.id,
        code="SAVE20",
        user_id=enrollment.student_id,
    )

    with pytest.raises(AlreadyApplied):
        await discounts.apply_promo_code(
            db_session,
            enrollment_id=enrollment.id,
            code="save20",
            user_id=enrollment.student_id,
        )

    assert (await _reload_coupon(db_session, coupon.id)).current_usage_count == 1
    assert await _usage_count(db_session, coupon.id) == 1


@pytest.mark.asyncio
@pytest.mark.unit
async def test_second_code_on_same_enrollment_is_already_applied(db_session):
    enrollment = await _make_enrollment(db_session)
    await _make_coupon(db_session, code="SAVE20")
    other = await _make_coupon(
        db_session,
        code="TENOFF",
        discount_type=DiscountType.FIXED,
        discount_value=Decimal("10"),
    )
    await discounts.apply_promo_code(
        db_session,
        enrollment_id=enrollment.id,
        code="SAVE20",
        user_id=enrollment.student_id,
    )

    with pytest.raises(AlreadyApplied):
        await discounts.apply_promo_code(
            db_session,
            enrollment_id=enrollment.id,
            code="TENOFF",
            user_id=enrollment.student_id,
        )
    assert (await _reload_coupon(db_session, other.id)).current_usage_count == 0


@pytest.mark.asyncio
@pytest.mark.unit
async def test_apply_to_someone_elses_enrollment(db_session):
    enrollment = await _make_enrollment(db_session)
    await _make_coupon(db_session, code="SAVE20")

    with pytest.raises(NotFound):
        await discounts.apply_promo_code(
            db_session,
            enrollment_id=enrollment.id,
            code="SAVE20",
            user_id="someone-else",
        )


@pytest.mark.asyncio
@pytest.mark.unit
async def test_apply_after_payment_is_rejected(db_session):
    enrollment = await _make_enrollment(
        db_session,
        status=EnrollmentStatus.CONFIRMED,
        payment_status=PaymentStatus.PAID,
    )
    await _make_coupon(db_session, code="SAVE20")

    with pytest.raises(BusinessRuleViolation):
        await discounts.apply_promo_code(
            db_session,
            enrollment_id=enrollment.id,
            code="SAVE20",
            user_id=enrollment.student_id,
        )


@pytest.mark.asyncio
@pytest.mark.unit
async def test_fixed_discount_larger_than_price_makes_it_free(db_session):
    enrollment = await _make_enrollment(db_session)
    await _make_coupon(
        db_session,
        code="FREEDAY",
        discount_type=DiscountType.FIXED,
        discount_value=Decimal("250"),
    )

    updated = await discounts.apply_promo_code(
        db_session,
        enrollment_id=enrollment.id,
        code="FREEDAY",
        user_id=enrollment.student_id,
    )

    assert updated.discount_amount == Decimal("100.00")
    assert updated.tax_amount == Decimal("0.00")
    assert updated.total_amount == Decimal("0.00")


@pytest.mark.asyncio
@pytest.mark.unit
async def test_last_use_of_limited_coupon(db_session):
    coupon = await _make_coupon(
        db_session, code="ONEUSE", max_usage_total=1, current_usage_count=0
    )
    first = await _make_enrollment(db_session)
    second = await _make_enrollment(db_session)

    await discounts.apply_promo_code(
        db_session, enrollment_id=first.id, code="ONEUSE", user_id=first.student_id
    )
    with pytest.raises(PromoCodeInvalid) as exc_info:
        await discounts.apply_promo_code(
            db_session,
            enrollment_id=second.id,
            code="ONEUSE",
            user_id=second.student_id,
        )

    assert exc_info.value.reason == PromoCodeInvalid.REASON_USAGE_LIMIT_REACHED
    assert (await _reload_coupon(db_session, coupon.id)).current_usage_count == 1


# ---------------------------------------------------------------------------
# finalize / release
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_payment_finalizes_usage(db_session):
    enrollment = await _make_enrollment(db_session)
    coupon = await _make_coupon(db_session, code="SAVE20")
    await discounts.apply_promo_code(
        db_session,
        enrollment_id=enrollment.id,
        code="SAVE20",
        user_id=enrollment.student_id,
    )

    await enrollment_ops.confirm_enrollment(
        db_session, enrollment.id, payment_intent_id="pi_paid"
    )

    usage = (
        await db_session.execute(
            select(CouponUsage)
            .where(CouponUsage.coupon_id == coupon.id)
            .execution_options(populate_existing=True)
        )
    ).scalar_one()
    assert usage.is_finalized is True
    assert usage.payment_intent_id == "pi_paid"


@pytest.mark.asyncio
@pytest.mark.unit
async def test_cancelling_unpaid_enrollment_gives_back_the_use(db_session):
    enrollment = await _make_enrollment(db_session)
    coupon = await _make_coupon(db_session, code="SAVE20", max_usage_total=5)
    await discounts.apply_promo_code(
        db_session,
        enrollment_id=enrollment.id,
        code="SAVE20",
        user_id=enrollment.student_id,
    )

    await enrollment_ops.cancel_enrollment(db_session, enrollment.id)

    assert (await _reload_coupon(db_session, coupon.id)).current_usage_count == 0
    assert await _usage_count(db_session, coupon.id) == 0


# ---------------------------------------------------------------------------
# validate_promo_code
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_validate_returns_discount_without_using_the_code(db_session):
    coupon = await _make_coupon(db_session, code="SAVE20")

    found, discount = await discounts.validate_promo_code(
        db_session,
        code="save20",
        user_id="student-1",
        course_id=uuid.uuid4(),
        amount_cents=10000,
    )

    assert found.id == coupon.id
    assert discount == 2000
    assert (await _reload_coupon(db_session, coupon.id)).current_usage_count == 0


@pytest.mark.asyncio
@pytest.mark.unit
async def test_unknown_code(db_session):
    await _expect_reason(
        db_session, PromoCodeInvalid.REASON_NOT_FOUND, coupon_code="NOPE"
    )


@pytest.mark.asyncio
@pytest.mark.unit
async def test_inactive_is_reported_before_expiry(db_session):
    await _make_coupon(
        db_session,
        code="OLDCODE",
        is_active=False,
        valid_until=utc_now() - timedelta(days=1),
    )

    await _expect_reason(
        db_session, PromoCodeInvalid.REASON_INACTIVE, coupon_code="OLDCODE"
    )


@pytest.mark.asyncio
@pytest.mark.unit
async def test_expired_code(db_session):
    await _make_coupon(
        db_session, code="SUMMER", valid_until=utc_now() - timedelta(days=1)
    )

    await _expect_reason(
        db_session, PromoCodeInvalid.REASON_EXPIRED, coupon_code="SUMMER"
    )


@pytest.mark.asyncio
@pytest.mark.unit
async def test_code_not_active_yet(db_session):
    await _make_coupon(
        db_session, code="FALL", valid_from=utc_now() + timedelta(days=1)
    )

    await _expect_reason(
        db_session, PromoCodeInvalid.REASON_NOT_YET_ACTIVE, coupon_code="FALL"
    )


@pytest.mark.asyncio
@pytest.mark.unit
async def test_code_limited_to_other_courses(db_session):
    await _make_coupon(
        db_session, code="PISTOL", applicable_course_ids=[str(uuid.uuid4())]
    )

    await _expect_reason(
        db_session, PromoCodeInvalid.REASON_COURSE_MISMATCH, coupon_code="PISTOL"
    )


@pytest.mark.asyncio
@pytest.mark.unit
async def test_empty_course_list_applies_everywhere(db_session):
    await _make_coupon(db_session, code="ANYCLASS", applicable_course_ids=[])

    _, discount = await discounts.validate_promo_code(
        db_session,
        code="ANYCLASS",
        user_id="student-1",
        course_id=uuid.uuid4(),
        amount_cents=5000,
    )
    assert discount == 1000


@pytest.mark.asyncio
@pytest.mark.unit
async def test_order_below_minimum(db_session):
    await _make_coupon(
        db_session, code="BIGORDER", minimum_order_amount=Decimal("150.00")
    )

    await _expect_reason(
        db_session, PromoCodeInvalid.REASON_BELOW_MINIMUM, coupon_code="BIGORDER"
    )


@pytest.mark.asyncio
@pytest.mark.unit
async def test_usage_limit_reached(db_session):
    await _make_coupon(
        db_session, code="GONE", max_usage_total=3, current_usage_count=3
    )

    await _expect_reason(
        db_session, PromoCodeInvalid.REASON_USAGE_LIMIT_REACHED, coupon_code="GONE"
    )


@pytest.mark.asyncio
@pytest.mark.unit
async def test_per_user_limit_reached(db_session):
    coupon = await _make_coupon(db_session, code="ONCEEACH", max_usage_per_user=1)
    enrollment = await _make_enrollment(db_session, student_id="student-1")
    await discounts.apply_promo_code(
        db_session,
        enrollment_id=enrollment.id,
        code="ONCEEACH",
        user_id="student-1",
    )

    await _expect_reason(
        db_session,
        PromoCodeInvalid.REASON_PER_USER_LIMIT_REACHED,
        coupon_code=coupon.code,
    )


# ---------------------------------------------------------------------------
# Coupon management
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_create_coupon_uppercases_and_rejects_duplicates(db_session):
    course_id = uuid.uuid4()
    coupon = await discounts.create_coupon(
        db_session,
        created_by="instructor-1",
        code="spring10",
        discount_type=DiscountType.PERCENTAGE,
        discount_value=Decimal("10"),
        applicable_course_ids=[course_id],
    )

    assert coupon.code == "SPRING10"
    assert coupon.applicable_course_ids == [str(course_id)]
    with pytest.raises(BusinessRuleViolation):
        await discounts.create_coupon(
            db_session,
            created_by="instructor-1",
            code="Spring10",
            discount_type=DiscountType.FIXED,
            discount_value=Decimal("5"),
        )


@pytest.mark.asyncio
@pytest.mark.unit
async def test_usage_limit_cannot_drop_below_uses(db_session):
    coupon = await _make_coupon(db_session, max_usage_total=10, current_usage_count=4)

    with pytest.raises(BusinessRuleViolation):
        await discounts.update_coupon(db_session, coupon.id, max_usage_total=3)

    updated = await discounts.update_coupon(db_session, coupon.id, max_usage_total=4)
    assert updated.max_usage_total == 4


@pytest.mark.asyncio
@pytest.mark.unit
async def test_deactivate_coupon(db_session):
    coupon = await _make_coupon(db_session)

    deactivated = await discounts.deactivate_coupon(db_session, coupon.id)

    assert deactivated.is_active is False
    assert [c.id for c in await discounts.list_coupons(db_session, include_inactive=False)] == []

"""Integration tests for payment intents, confirmation and refunds."""

from decimal import Decimal

import pytest
from libs.common import events
from services.booking_service.models import EnrollmentStatus, PaymentStatus
from services.booking_service.stripe_client import StripeError
from tests.factories import CourseFactory, EnrollmentFactory, ScheduleFactory


async def _enrollment(seed, student_id="student-1", **overrides):
    course = CourseFactory.create()
    schedule = ScheduleFactory.create(course_id=course.id, available_spots=9)
    enrollment = EnrollmentFactory.create(
        course_id=course.id,
        schedule_id=schedule.id,
        student_id=student_id,
        **overrides,
    )
    await seed(course, schedule, enrollment)
    return enrollment


# ---------------------------------------------------------------------------
# Intents
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_create_intent_charges_snapshot_total(
    booking_client, acting_as, seed, fake_stripe
):
    enrollment = await _enrollment(seed)
    acting_as.student("student-1")

    response = await booking_client.post(
        "/payments/intents", json={"enrollment_id": str(enrollment.id)}
    )

    assert response.status_code == 200
    data = response.json()
    assert data["amount_cents"] == 10763
    assert data["currency"] == "usd"
    assert data["client_secret"] == f"{data['payment_intent_id']}_secret"
    assert data["enrollment"]["payment_intent_id"] == data["payment_intent_id"]
    [created] = fake_stripe.created
    assert created["idempotency_key"] == f"enrollment-{enrollment.id}-10763"
    assert created["metadata"]["student_id"] == "student-1"

    again = await booking_client.post(
        "/payments/intents", json={"enrollment_id": str(enrollment.id)}
    )
    assert again.json()["payment_intent_id"] == data["payment_intent_id"]
    assert len(fake_stripe.created) == 1


@pytest.mark.asyncio
@pytest.mark.integration
async def test_free_enrollment_confirms_without_stripe(
    booking_client, acting_as, seed, fake_stripe
):
    enrollment = await _enrollment(
        seed,
        discount_amount=Decimal("100.00"),
        tax_amount=Decimal("0.00"),
        total_amount=Decimal("0.00"),
    )
    acting_as.student("student-1")

    response = await booking_client.post(
        "/payments/intents", json={"enrollment_id": str(enrollment.id)}
    )

    data = response.json()
    assert data["client_secret"] is None
    assert data["amount_cents"] == 0
    assert data["enrollment"]["status"] == "confirmed"
    assert fake_stripe.created == []


@pytest.mark.asyncio
@pytest.mark.integration
async def test_stripe_outage_is_a_502(booking_client, acting_as, seed, fake_stripe):
    enrollment = await _enrollment(seed)
    acting_as.student("student-1")
    fake_stripe.fail_with = StripeError("api down", status_code=500)

    response = await booking_client.post(
        "/payments/intents", json={"enrollment_id": str(enrollment.id)}
    )

    assert response.status_code == 502
    error = response.json()["error"]
    assert error["code"] == "PAYMENT_SETUP_FAILED"
    assert "api down" not in error["message"]


@pytest.mark.asyncio
@pytest.mark.integration
async def test_cannot_pay_for_someone_elses_enrollment(booking_client, acting_as, seed):
    enrollment = await _enrollment(seed, student_id="student-1")
    acting_as.student("student-2")

    response = await booking_client.post(
        "/payments/intents", json={"enrollment_id": str(enrollment.id)}
    )

    assert response.status_code == 404


# ---------------------------------------------------------------------------
# Confirmation
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_confirm_after_stripe_success(
    booking_client, acting_as, seed, fake_stripe, published_events
):
    enrollment = await _enrollment(seed)
    acting_as.student("student-1")
    created = await booking_client.post(
        "/payments/intents", json={"enrollment_id": str(enrollment.id)}
    )
    intent_id = created.json()["payment_intent_id"]
    body = {"enrollment_id": str(enrollment.id), "payment_intent_id": intent_id}

    early = await booking_client.post("/payments/confirm", json=body)
    assert early.json()["status"] == "pending"
    assert early.json()["payment_status"] == "pending"

    fake_stripe.succeed(intent_id)
    response = await booking_client.post("/payments/confirm", json=body)

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "confirmed"
    assert data["payment_status"] == "paid"
    assert data["confirmation_date"] is not None
    assert published_events[-1][0] == events.ENROLLMENT_CONFIRMED


@pytest.mark.asyncio
@pytest.mark.integration
async def test_confirm_rejects_intent_for_another_enrollment(
    booking_client, acting_as, seed, fake_stripe
):
    enrollment = await _enrollment(seed)
    fake_stripe.add_intent(
        id="pi_other",
        amount=10763,
        currency="usd",
        status="succeeded",
        metadata={"enrollment_id": "somebody-else", "student_id": "student-1"},
    )
    acting_as.student("student-1")

    response = await booking_client.post(
        "/payments/confirm",
        json={"enrollment_id": str(enrollment.id), "payment_intent_id": "pi_other"},
    )

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "PAYMENT_VERIFICATION_FAILED"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_confirm_rejects_short_payment(booking_client, acting_as, seed, fake_stripe):
    enrollment = await _enrollment(seed)
    fake_stripe.add_intent(
        id="pi_short",
        amount=10000,
        currency="usd",
        status="succeeded",
        metadata={"enrollment_id": str(enrollment.id), "student_id": "student-1"},
    )
    acting_as.student("student-1")

    response = await booking_client.post(
        "/payments/confirm",
        json={"enrollment_id": str(enrollment.id), "payment_intent_id": "pi_short"},
    )

    assert response.status_code == 400


# ---------------------------------------------------------------------------
# Refunds
# ---------------------------------------------------------------------------


async def _cancelled_paid_enrollment(seed):
    return await _enrollment(
        seed,
        status=EnrollmentStatus.CANCELLED,
        payment_status=PaymentStatus.PAID,
        payment_intent_id="pi_paid",
        refund_requested=True,
    )


@pytest.mark.asyncio
@pytest.mark.integration
async def test_full_refund(booking_client, acting_as, seed, fake_stripe):
    enrollment = await _cancelled_paid_enrollment(seed)
    acting_as.instructor()

    response = await booking_client.post(f"/enrollments/{enrollment.id}/refund", json={})

    assert response.status_code == 200
    data = response.json()
    assert data["payment_status"] == "refunded"
    assert data["refund_processed"] is True
    assert Decimal(data["refund_amount"]) == Decimal("107.63")
    assert fake_stripe.refunds[0]["amount"] == 10763


@pytest.mark.asyncio
@pytest.mark.integration
async def test_partial_refund_returns_matching_tax(
    booking_client, acting_as, seed, fake_stripe
):
    enrollment = await _cancelled_paid_enrollment(seed)
    acting_as.instructor()

    response = await booking_client.post(
        f"/enrollments/{enrollment.id}/refund", json={"amount": "50.00"}
    )

    assert Decimal(response.json()["refund_amount"]) == Decimal("53.82")
    assert fake_stripe.refunds[0]["amount"] == 5382


@pytest.mark.asyncio
@pytest.mark.integration
async def test_refund_needs_a_cancelled_enrollment(booking_client, acting_as, seed):
    enrollment = await _enrollment(
        seed,
        status=EnrollmentStatus.CONFIRMED,
        payment_status=PaymentStatus.PAID,
        payment_intent_id="pi_paid",
    )
    acting_as.instructor()

    response = await booking_client.post(f"/enrollments/{enrollment.id}/refund", json={})

    assert response.status_code == 409


@pytest.mark.asyncio
@pytest.mark.integration
async def test_students_cannot_issue_refunds(booking_client, acting_as, seed):
    enrollment = await _cancelled_paid_enrollment(seed)
    acting_as.student("student-1")

    response = await booking_client.post(f"/enrollments/{enrollment.id}/refund", json={})

    assert response.status_code == 403


@pytest.mark.asyncio
@pytest.mark.integration
async def test_other_instructors_cannot_issue_refunds(
    booking_client, acting_as, seed, fake_stripe
):
    enrollment = await _cancelled_paid_enrollment(seed)
    acting_as.instructor("instructor-2")

    response = await booking_client.post(f"/enrollments/{enrollment.id}/refund", json={})

    assert response.status_code == 403
    assert fake_stripe.refunds == []

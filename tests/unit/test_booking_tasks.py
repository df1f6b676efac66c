"""Unit tests for the booking worker's periodic tasks."""

from datetime import timedelta

import pytest
from libs.common import events
from libs.common.datetime_utils import utc_now
from services.booking_service.models import (
    Enrollment,
    EnrollmentStatus,
    PaymentStatus,
    WaitlistStatus,
)
from services.booking_service.tasks import (
    complete_finished_enrollments,
    expire_waitlist_offers,
)
from sqlalchemy import select
from tests.factories import (
    CourseFactory,
    EnrollmentFactory,
    ScheduleFactory,
    WaitlistEntryFactory,
)


@pytest.mark.asyncio
@pytest.mark.unit
async def test_expire_waitlist_offers_publishes_expired_and_new_offers(
    session_factory, published_events
):
    course = CourseFactory.create(title="Basic Pistol")
    schedule = ScheduleFactory.create(course_id=course.id, max_spots=1)
    lapsed = WaitlistEntryFactory.create(
        schedule_id=schedule.id,
        position=1,
        status=WaitlistStatus.OFFERED,
        offer_date=utc_now() - timedelta(hours=49),
        offer_expiry_date=utc_now() - timedelta(hours=1),
    )
    waiting = WaitlistEntryFactory.create(schedule_id=schedule.id, position=2)
    async with session_factory() as db:
        db.add_all([course, schedule, lapsed, waiting])
        await db.commit()

    offered = await expire_waitlist_offers(session_factory=session_factory)

    assert offered == 1
    types = [event_type for event_type, _ in published_events]
    assert types == [events.WAITLIST_EXPIRED, events.WAITLIST_OFFER]
    expired_payload = published_events[0][1]
    offer_payload = published_events[1][1]
    assert expired_payload["waitlist_entry_id"] == str(lapsed.id)
    assert offer_payload["waitlist_entry_id"] == str(waiting.id)
    assert offer_payload["student_email"] == waiting.student_email
    assert offer_payload["offer_expiry_date"] is not None
    assert offer_payload["course_title"] == "Basic Pistol"


@pytest.mark.asyncio
@pytest.mark.unit
async def test_expire_waitlist_offers_is_quiet_when_nothing_lapsed(
    session_factory, published_events
):
    assert await expire_waitlist_offers(session_factory=session_factory) == 0
    assert published_events == []


@pytest.mark.asyncio
@pytest.mark.unit
async def test_complete_finished_enrollments_only_touches_ended_classes(
    session_factory,
):
    course = CourseFactory.create()
    past = ScheduleFactory.create(
        course_id=course.id, start_date=utc_now() - timedelta(days=2)
    )
    upcoming = ScheduleFactory.create(course_id=course.id)
    finished = EnrollmentFactory.create(
        course_id=course.id,
        schedule_id=past.id,
        status=EnrollmentStatus.CONFIRMED,
        payment_status=PaymentStatus.PAID,
    )
    unpaid = EnrollmentFactory.create(course_id=course.id, schedule_id=past.id)
    future = EnrollmentFactory.create(
        course_id=course.id,
        schedule_id=upcoming.id,
        status=EnrollmentStatus.CONFIRMED,
        payment_status=PaymentStatus.PAID,
    )
    async with session_factory() as db:
        db.add_all([course, past, upcoming, finished, unpaid, future])
        await db.commit()

    assert await complete_finished_enrollments(session_factory=session_factory) == 1

    async with session_factory() as db:
        rows = await db.execute(select(Enrollment.id, Enrollment.status))
        statuses = dict(rows.all())
    assert statuses[finished.id] == EnrollmentStatus.COMPLETED
    assert statuses[unpaid.id] == EnrollmentStatus.PENDING
    assert statuses[future.id] == EnrollmentStatus.CONFIRMED

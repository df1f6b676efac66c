"""Catalog reads and instructor-side catalog management.

Public reads go through the Redis cache; every write invalidates the keys of
the entities it touched after the commit.
"""

import uuid
from datetime import datetime
from typing import Any, Optional

from libs.common import events
from libs.common.cache import (
    COURSES_LIST_KEY,
    cache_get,
    cache_set,
    course_key,
    invalidate,
    schedule_key,
)
from libs.common.datetime_utils import as_utc, utc_now
from libs.common.logging import get_logger
from services.booking_service.errors import BusinessRuleViolation, Forbidden, NotFound
from services.booking_service.models import (
    ACTIVE_ENROLLMENT_STATUSES,
    Category,
    Course,
    CourseSchedule,
    Enrollment,
)
from services.booking_service.schemas import (
    CourseDetailResponse,
    CourseResponse,
    ScheduleResponse,
)
from services.booking_service.services import scheduling
from services.booking_service.services.enrollment_ops import waitlist_event_payload
from services.booking_service.services.recurrence import expand_occurrences
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------


async def list_categories(
    db: AsyncSession, *, include_inactive: bool = False
) -> list[Category]:
    query = select(Category).order_by(Category.sort_order, Category.name)
    if not include_inactive:
        query = query.where(Category.is_active.is_(True))
    result = await db.execute(query)
    return list(result.scalars().all())


async def create_category(db: AsyncSession, **fields: Any) -> Category:
    category = Category(**fields)
    db.add(category)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise BusinessRuleViolation(f"Category {fields.get('name')} already exists")
    await db.refresh(category)
    return category


async def update_category(
    db: AsyncSession, category_id: uuid.UUID, **fields: Any
) -> Category:
    category = await db.get(Category, category_id)
    if category is None:
        raise NotFound("Category not found")
    for key, value in fields.items():
        setattr(category, key, value)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise BusinessRuleViolation(f"Category {fields.get('name')} already exists")
    await db.refresh(category)
    return category


# ---------------------------------------------------------------------------
# Courses
# ---------------------------------------------------------------------------


def _ensure_owner(course: Course, user_id: str, is_admin: bool) -> None:
    if not is_admin and course.instructor_id != user_id:
        raise Forbidden("Only the course instructor can change this course")


async def get_course(
    db: AsyncSession, course_id: uuid.UUID, *, include_inactive: bool = False
) -> Course:
    course = await db.get(Course, course_id)
    if course is None or course.deleted_at is not None:
        raise NotFound("Course not found")
    if not include_inactive and not course.is_active:
        raise NotFound("Course not found")
    return course


async def _upcoming_schedules(
    db: AsyncSession, course_id: uuid.UUID, now: datetime
) -> list[CourseSchedule]:
    result = await db.execute(
        select(CourseSchedule)
        .where(
            CourseSchedule.course_id == course_id,
            CourseSchedule.deleted_at.is_(None),
            CourseSchedule.end_date >= now,
        )
        .order_by(CourseSchedule.start_date)
    )
    return list(result.scalars().all())


async def course_listing(db: AsyncSession) -> list[dict]:
    """Active courses as JSON-ready dicts (cached)."""
    cached = await cache_get(COURSES_LIST_KEY)
    if cached is not None:
        return cached

    result = await db.execute(
        select(Course)
        .where(Course.is_active.is_(True), Course.deleted_at.is_(None))
        .order_by(Course.title)
    )
    listing = [
        CourseResponse.model_validate(course).model_dump(mode="json")
        for course in result.scalars().all()
    ]
    await cache_set(COURSES_LIST_KEY, listing)
    return listing


async def course_detail(db: AsyncSession, course_id: uuid.UUID) -> dict:
    """One active course with its upcoming schedules (cached)."""
    key = course_key(course_id)
    cached = await cache_get(key)
    if cached is not None:
        return cached

    course = await get_course(db, course_id)
    schedules = await _upcoming_schedules(db, course_id, utc_now())
    detail = CourseDetailResponse(
        **CourseResponse.model_validate(course).model_dump(),
        schedules=[ScheduleResponse.model_validate(s) for s in schedules],
    )
    payload = detail.model_dump(mode="json")
    await cache_set(key, payload)
    return payload


async def create_course(db: AsyncSession, *, instructor_id: str, **fields: Any) -> Course:
    if fields.get("category_id") and await db.get(Category, fields["category_id"]) is None:
        raise NotFound("Category not found")
    course = Course(instructor_id=instructor_id, **fields)
    db.add(course)
    await db.commit()
    await db.refresh(course)
    logger.info("Created course %s (%s)", course.id, course.title)
    await invalidate(COURSES_LIST_KEY)
    return course


async def update_course(
    db: AsyncSession,
    course_id: uuid.UUID,
    *,
    user_id: str,
    is_admin: bool = False,
    **fields: Any,
) -> Course:
    course = await get_course(db, course_id, include_inactive=True)
    _ensure_owner(course, user_id, is_admin)

    deposit = fields.get("deposit_amount", course.deposit_amount)
    price = fields.get("price", course.price)
    if deposit is not None and deposit > price:
        raise BusinessRuleViolation("Deposit cannot exceed the course price")

    for key, value in fields.items():
        setattr(course, key, value)
    await db.commit()
    await db.refresh(course)
    await invalidate(COURSES_LIST_KEY, course_key(course.id))
    return course


async def delete_course(
    db: AsyncSession, course_id: uuid.UUID, *, user_id: str, is_admin: bool = False
) -> Course:
    """Soft delete. Existing enrollments keep pointing at the course."""
    course = await get_course(db, course_id, include_inactive=True)
    _ensure_owner(course, user_id, is_admin)

    active = await db.execute(
        select(func.count(Enrollment.id)).where(
            Enrollment.course_id == course_id,
            Enrollment.status.in_(ACTIVE_ENROLLMENT_STATUSES),
        )
    )
    if active.scalar_one() > 0:
        raise BusinessRuleViolation("Course has active enrollments")

    course.deleted_at = utc_now()
    course.is_active = False
    await db.commit()
    logger.info("Deleted course %s", course.id)
    await invalidate(COURSES_LIST_KEY, course_key(course.id))
    return course


# ---------------------------------------------------------------------------
# Schedules
# ---------------------------------------------------------------------------


async def list_course_schedules(
    db: AsyncSession, course_id: uuid.UUID, *, upcoming_only: bool = True
) -> list[CourseSchedule]:
    await get_course(db, course_id, include_inactive=True)
    if upcoming_only:
        return await _upcoming_schedules(db, course_id, utc_now())
    result = await db.execute(
        select(CourseSchedule)
        .where(
            CourseSchedule.course_id == course_id,
            CourseSchedule.deleted_at.is_(None),
        )
        .order_by(CourseSchedule.start_date)
    )
    return list(result.scalars().all())


async def create_schedule(
    db: AsyncSession,
    course_id: uuid.UUID,
    *,
    user_id: str,
    is_admin: bool = False,
    **fields: Any,
) -> list[CourseSchedule]:
    """Create a schedule, or one schedule per occurrence when recurring.

    The first occurrence carries the recurrence rule; the rest point at it
    through ``parent_schedule_id``. Each occurrence has its own capacity and
    keeps the registration deadline's offset from its start.
    """
    course = await get_course(db, course_id, include_inactive=True)
    _ensure_owner(course, user_id, is_admin)

    start: datetime = fields["start_date"]
    end: datetime = fields["end_date"]
    deadline: Optional[datetime] = fields.get("registration_deadline")
    deadline_offset = (deadline - start) if deadline is not None else None

    if fields.get("is_recurring"):
        occurrences = expand_occurrences(
            start,
            end,
            fields.get("recurrence_pattern"),
            fields.get("recurrence_interval", 1),
            fields.get("recurrence_end_date"),
            fields.get("days_of_week"),
        )
    else:
        occurrences = [(start, end)]
        for key in ("recurrence_pattern", "recurrence_end_date", "days_of_week"):
            fields.pop(key, None)

    recurrence_keys = (
        "is_recurring",
        "recurrence_pattern",
        "recurrence_interval",
        "recurrence_end_date",
        "days_of_week",
    )
    shared = {
        k: v
        for k, v in fields.items()
        if k not in ("start_date", "end_date", "registration_deadline")
        and k not in recurrence_keys
    }

    parent = CourseSchedule(
        course_id=course.id,
        start_date=occurrences[0][0],
        end_date=occurrences[0][1],
        registration_deadline=deadline,
        available_spots=fields["max_spots"],
        **{k: v for k, v in fields.items() if k in recurrence_keys},
        **shared,
    )
    db.add(parent)
    await db.flush()

    created = [parent]
    for occ_start, occ_end in occurrences[1:]:
        child = CourseSchedule(
            course_id=course.id,
            start_date=occ_start,
            end_date=occ_end,
            registration_deadline=(
                occ_start + deadline_offset if deadline_offset is not None else None
            ),
            available_spots=fields["max_spots"],
            parent_schedule_id=parent.id,
            **shared,
        )
        db.add(child)
        created.append(child)

    await db.commit()
    for schedule in created:
        await db.refresh(schedule)

    logger.info(
        "Created %d schedule(s) for course %s", len(created), course.id
    )
    await invalidate(course_key(course.id))
    await events.publish_event(
        events.SCHEDULE_CREATED,
        {
            "course_id": str(course.id),
            "course_title": course.title,
            "schedule_ids": [str(s.id) for s in created],
            "start_date": parent.start_date.isoformat(),
        },
    )
    return created


async def update_schedule(
    db: AsyncSession,
    schedule_id: uuid.UUID,
    *,
    user_id: str,
    is_admin: bool = False,
    **fields: Any,
) -> CourseSchedule:
    """Edit a schedule. Changing ``max_spots`` keeps the taken spots taken."""
    schedule = await scheduling.get_schedule(db, schedule_id, for_update=True)
    course = await get_course(db, schedule.course_id, include_inactive=True)
    _ensure_owner(course, user_id, is_admin)

    new_max = fields.pop("max_spots", None)
    if new_max is not None and new_max != schedule.max_spots:
        taken = schedule.max_spots - schedule.available_spots
        if new_max < taken:
            raise BusinessRuleViolation(
                f"Schedule already has {taken} spots taken"
            )
        schedule.max_spots = new_max
        schedule.available_spots = new_max - taken

    start = as_utc(fields.get("start_date", schedule.start_date))
    end = as_utc(fields.get("end_date", schedule.end_date))
    if end < start:
        raise BusinessRuleViolation("end_date must not be before start_date")

    for key, value in fields.items():
        setattr(schedule, key, value)
    await db.commit()
    await db.refresh(schedule)

    await invalidate(course_key(course.id), schedule_key(schedule.id))
    if new_max is not None and schedule.waitlist_enabled:
        offers = []
        while (offer := await scheduling.offer_next_spot(db, schedule)) is not None:
            offers.append(offer)
        if offers:
            await db.commit()
        for offer in offers:
            await events.publish_event(
                events.WAITLIST_OFFER, await waitlist_event_payload(db, offer)
            )
    return schedule


async def delete_schedule(
    db: AsyncSession, schedule_id: uuid.UUID, *, user_id: str, is_admin: bool = False
) -> CourseSchedule:
    schedule = await scheduling.get_schedule(db, schedule_id)
    course = await get_course(db, schedule.course_id, include_inactive=True)
    _ensure_owner(course, user_id, is_admin)

    active = await db.execute(
        select(func.count(Enrollment.id)).where(
            Enrollment.schedule_id == schedule_id,
            Enrollment.status.in_(ACTIVE_ENROLLMENT_STATUSES),
        )
    )
    if active.scalar_one() > 0:
        raise BusinessRuleViolation("Schedule has active enrollments")

    schedule.deleted_at = utc_now()
    await db.commit()
    await invalidate(course_key(course.id), schedule_key(schedule.id))
    return schedule


async def schedule_availability(db: AsyncSession, schedule_id: uuid.UUID) -> dict:
    """Availability of one schedule as a JSON-ready dict (cached)."""
    key = schedule_key(schedule_id)
    cached = await cache_get(key)
    if cached is not None:
        return cached

    availability = await scheduling.get_availability(db, schedule_id)
    payload = {
        "schedule_id": str(availability.schedule_id),
        "max_spots": availability.max_spots,
        "available_spots": availability.available_spots,
        "held_offers": availability.held_offers,
        "open_spots": availability.open_spots,
        "waiting_count": availability.waiting_count,
        "registration_open": availability.registration_open,
        "waitlist_enabled": availability.waitlist_enabled,
    }
    await cache_set(key, payload)
    return payload

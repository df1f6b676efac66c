"""Schedule capacity and waitlist operations.

Spot counts only ever change through single conditional UPDATE statements, so
two requests racing for the last spot cannot both win: the loser sees zero
affected rows and gets ``CapacityExceeded``.

A spot freed on a schedule with a waitlist is held for the first waiting
student. While an offer is live, other students cannot take the spot it holds.

``reserve_spot`` and ``release_spot`` only flush; the calling enrollment
operation owns the transaction. ``join_waitlist`` and ``expire_offers`` are
standalone operations and commit.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from libs.common.cache import invalidate, schedule_key
from libs.common.config import get_settings
from libs.common.datetime_utils import as_utc, utc_now
from libs.common.logging import get_logger
from services.booking_service.errors import (
    BusinessRuleViolation,
    CapacityExceeded,
    NotFound,
    RegistrationClosed,
)
from services.booking_service.models import (
    ACTIVE_ENROLLMENT_STATUSES,
    CourseSchedule,
    Enrollment,
    WaitlistEntry,
    WaitlistStatus,
)
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


@dataclass
class Availability:
    schedule_id: uuid.UUID
    max_spots: int
    available_spots: int
    held_offers: int
    waiting_count: int
    registration_open: bool
    waitlist_enabled: bool

    @property
    def open_spots(self) -> int:
        """Spots a student without an offer can take right now."""
        return max(self.available_spots - self.held_offers, 0)


def _registration_closed(schedule: CourseSchedule, now: datetime) -> bool:
    """Registration stays open up to and including the deadline instant."""
    deadline = as_utc(schedule.registration_deadline)
    return deadline is not None and deadline < now


def _live_offers_query(schedule_id: uuid.UUID, now: datetime):
    return select(func.count(WaitlistEntry.id)).where(
        WaitlistEntry.schedule_id == schedule_id,
        WaitlistEntry.status == WaitlistStatus.OFFERED,
        WaitlistEntry.offer_expiry_date > now,
    )


async def count_live_offers(
    db: AsyncSession, schedule_id: uuid.UUID, now: Optional[datetime] = None
) -> int:
    result = await db.execute(_live_offers_query(schedule_id, now or utc_now()))
    return result.scalar_one()


async def get_schedule(
    db: AsyncSession,
    schedule_id: uuid.UUID,
    *,
    for_update: bool = False,
    include_deleted: bool = False,
) -> CourseSchedule:
    """Load a schedule with fresh column values, or raise NotFound."""
    query = select(CourseSchedule).where(CourseSchedule.id == schedule_id)
    if not include_deleted:
        query = query.where(CourseSchedule.deleted_at.is_(None))
    if for_update:
        query = query.with_for_update()
    result = await db.execute(query.execution_options(populate_existing=True))
    schedule = result.scalar_one_or_none()
    if schedule is None:
        raise NotFound("Schedule not found")
    return schedule


async def reserve_spot(
    db: AsyncSession,
    schedule_id: uuid.UUID,
    *,
    holds_offer: bool = False,
    now: Optional[datetime] = None,
) -> CourseSchedule:
    """Take one spot on a schedule.

    Raises RegistrationClosed once the deadline has passed, whatever the spot
    count. Raises CapacityExceeded when no spot is free, counting spots held
    by live waitlist offers as taken unless ``holds_offer`` is set.
    """
    now = now or utc_now()
    schedule = await get_schedule(db, schedule_id)

    if _registration_closed(schedule, now):
        raise RegistrationClosed()

    if holds_offer:
        guard = CourseSchedule.available_spots > 0
    else:
        held = _live_offers_query(schedule_id, now).scalar_subquery()
        guard = CourseSchedule.available_spots > held

    result = await db.execute(
        update(CourseSchedule)
        .where(
            CourseSchedule.id == schedule_id,
            CourseSchedule.deleted_at.is_(None),
            guard,
        )
        .values(available_spots=CourseSchedule.available_spots - 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise CapacityExceeded()

    await db.refresh(schedule)
    logger.info(
        "Reserved spot on schedule %s (%d/%d left)",
        schedule_id,
        schedule.available_spots,
        schedule.max_spots,
    )
    return schedule


async def release_spot(
    db: AsyncSession,
    schedule_id: uuid.UUID,
    *,
    now: Optional[datetime] = None,
) -> Optional[WaitlistEntry]:
    """Give one spot back and offer it to the first waiting student.

    The increment is capped at ``max_spots``. Returns the entry that received
    an offer, if any.
    """
    now = now or utc_now()
    await db.execute(
        update(CourseSchedule)
        .where(
            CourseSchedule.id == schedule_id,
            CourseSchedule.available_spots < CourseSchedule.max_spots,
        )
        .values(available_spots=CourseSchedule.available_spots + 1)
        .execution_options(synchronize_session=False)
    )
    schedule = await get_schedule(db, schedule_id, include_deleted=True)
    logger.info(
        "Released spot on schedule %s (%d/%d left)",
        schedule_id,
        schedule.available_spots,
        schedule.max_spots,
    )

    if not schedule.waitlist_enabled or schedule.deleted_at is not None:
        return None
    return await offer_next_spot(db, schedule, now=now)


async def offer_next_spot(
    db: AsyncSession,
    schedule: CourseSchedule,
    *,
    now: Optional[datetime] = None,
) -> Optional[WaitlistEntry]:
    """Offer a free, unheld spot to the lowest-position waiting entry."""
    now = now or utc_now()
    held = await count_live_offers(db, schedule.id, now)
    if schedule.available_spots <= held:
        return None

    result = await db.execute(
        select(WaitlistEntry)
        .where(
            WaitlistEntry.schedule_id == schedule.id,
            WaitlistEntry.status == WaitlistStatus.WAITING,
        )
        .order_by(WaitlistEntry.position)
        .limit(1)
        .with_for_update()
    )
    entry = result.scalar_one_or_none()
    if entry is None:
        return None

    entry.status = WaitlistStatus.OFFERED
    entry.offer_date = now
    entry.offer_expiry_date = now + timedelta(
        hours=get_settings().WAITLIST_OFFER_HOURS
    )
    await db.flush()

    logger.info(
        "Offered spot on schedule %s to waitlist position %d (student %s)",
        schedule.id,
        entry.position,
        entry.student_id,
    )
    return entry


async def get_live_offer(
    db: AsyncSession,
    schedule_id: uuid.UUID,
    student_id: str,
    *,
    now: Optional[datetime] = None,
) -> Optional[WaitlistEntry]:
    result = await db.execute(
        select(WaitlistEntry).where(
            WaitlistEntry.schedule_id == schedule_id,
            WaitlistEntry.student_id == student_id,
            WaitlistEntry.status == WaitlistStatus.OFFERED,
            WaitlistEntry.offer_expiry_date > (now or utc_now()),
        )
    )
    return result.scalar_one_or_none()


async def join_waitlist(
    db: AsyncSession,
    schedule_id: uuid.UUID,
    student_id: str,
    *,
    student_email: Optional[str] = None,
    now: Optional[datetime] = None,
) -> WaitlistEntry:
    """Append a student to a full schedule's waitlist.

    Idempotent for a student who is already waiting or holds an offer.
    """
    now = now or utc_now()
    schedule = await get_schedule(db, schedule_id, for_update=True)

    if not schedule.waitlist_enabled:
        raise BusinessRuleViolation("This schedule does not have a waitlist")
    if _registration_closed(schedule, now):
        raise RegistrationClosed()

    result = await db.execute(
        select(WaitlistEntry).where(
            WaitlistEntry.schedule_id == schedule_id,
            WaitlistEntry.student_id == student_id,
        )
    )
    existing = result.scalar_one_or_none()
    if existing is not None:
        if existing.status in (WaitlistStatus.WAITING, WaitlistStatus.OFFERED):
            return existing
        raise BusinessRuleViolation(
            f"Waitlist entry for this schedule is already {existing.status.value}"
        )

    enrolled = await db.execute(
        select(Enrollment.id).where(
            Enrollment.schedule_id == schedule_id,
            Enrollment.student_id == student_id,
            Enrollment.status.in_(ACTIVE_ENROLLMENT_STATUSES),
        )
    )
    if enrolled.first() is not None:
        raise BusinessRuleViolation("Student is already enrolled on this schedule")

    held = await count_live_offers(db, schedule_id, now)
    if schedule.available_spots > held:
        raise BusinessRuleViolation("Spots are still available on this schedule")

    max_position = await db.execute(
        select(func.coalesce(func.max(WaitlistEntry.position), 0)).where(
            WaitlistEntry.schedule_id == schedule_id
        )
    )
    entry = WaitlistEntry(
        schedule_id=schedule_id,
        student_id=student_id,
        student_email=student_email,
        position=max_position.scalar_one() + 1,
        status=WaitlistStatus.WAITING,
    )
    db.add(entry)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        logger.info("Waitlist insert raced on schedule %s, retry needed", schedule_id)
        raise BusinessRuleViolation("Waitlist changed, please try again")

    await db.refresh(entry)
    logger.info(
        "Student %s joined waitlist for schedule %s at position %d",
        student_id,
        schedule_id,
        entry.position,
    )
    await invalidate(schedule_key(schedule_id))
    return entry


async def expire_offers(
    db: AsyncSession, *, now: Optional[datetime] = None
) -> tuple[list[WaitlistEntry], list[WaitlistEntry]]:
    """Expire lapsed offers and pass their spots down the waitlist.

    Returns ``(expired, offered)``.
    """
    now = now or utc_now()
    result = await db.execute(
        select(WaitlistEntry)
        .where(
            WaitlistEntry.status == WaitlistStatus.OFFERED,
            WaitlistEntry.offer_expiry_date <= now,
        )
        .with_for_update()
    )
    expired = list(result.scalars().all())
    if not expired:
        return [], []

    schedule_ids: list[uuid.UUID] = []
    for entry in expired:
        entry.status = WaitlistStatus.EXPIRED
        if entry.schedule_id not in schedule_ids:
            schedule_ids.append(entry.schedule_id)
    await db.flush()

    offered: list[WaitlistEntry] = []
    for schedule_id in schedule_ids:
        schedule = await get_schedule(db, schedule_id, include_deleted=True)
        if not schedule.waitlist_enabled or schedule.deleted_at is not None:
            continue
        while True:
            entry = await offer_next_spot(db, schedule, now=now)
            if entry is None:
                break
            offered.append(entry)

    await db.commit()
    logger.info(
        "Expired %d waitlist offers, made %d new offers", len(expired), len(offered)
    )
    return expired, offered


async def get_availability(
    db: AsyncSession,
    schedule_id: uuid.UUID,
    *,
    now: Optional[datetime] = None,
) -> Availability:
    now = now or utc_now()
    schedule = await get_schedule(db, schedule_id)
    held = await count_live_offers(db, schedule_id, now)
    waiting = await db.execute(
        select(func.count(WaitlistEntry.id)).where(
            WaitlistEntry.schedule_id == schedule_id,
            WaitlistEntry.status == WaitlistStatus.WAITING,
        )
    )
    return Availability(
        schedule_id=schedule.id,
        max_spots=schedule.max_spots,
        available_spots=schedule.available_spots,
        held_offers=held,
        waiting_count=waiting.scalar_one(),
        registration_open=not _registration_closed(schedule, now),
        waitlist_enabled=schedule.waitlist_enabled,
    )

"""Background tasks for the booking service."""

from libs.common import events
from libs.common.cache import invalidate, schedule_key
from libs.common.logging import get_logger
from libs.db.config import AsyncSessionLocal
from services.booking_service.services import enrollment_ops, scheduling

logger = get_logger(__name__)


async def expire_waitlist_offers(session_factory=AsyncSessionLocal) -> int:
    """Expire lapsed waitlist offers and pass the spots on. Returns new offers."""
    async with session_factory() as db:
        expired, offered = await scheduling.expire_offers(db)

        touched = {entry.schedule_id for entry in expired}
        if touched:
            await invalidate(*(schedule_key(schedule_id) for schedule_id in touched))
        for entry in expired:
            await events.publish_event(
                events.WAITLIST_EXPIRED,
                await enrollment_ops.waitlist_event_payload(db, entry),
            )
        for entry in offered:
            await events.publish_event(
                events.WAITLIST_OFFER,
                await enrollment_ops.waitlist_event_payload(db, entry),
            )
    return len(offered)


async def complete_finished_enrollments(session_factory=AsyncSessionLocal) -> int:
    async with session_factory() as db:
        return await enrollment_ops.complete_finished_enrollments(db)

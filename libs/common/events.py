"""Fire-and-forget domain events for the communications worker.

The booking service never formats messages or retries delivery. It only
enqueues a logical event onto the communications ARQ queue; the worker in
``services.communications_service`` decides what to send.

Usage:
    from libs.common.events import publish_event

    await publish_event("enrollment.confirmed", {"enrollment_id": str(e.id)})
"""

from typing import Any, Optional

from arq import create_pool
from arq.connections import ArqRedis
from libs.common.arq_config import get_redis_settings
from libs.common.config import get_settings
from libs.common.logging import get_logger, get_request_id

logger = get_logger(__name__)

EVENT_HANDLER_JOB = "handle_booking_event"

ENROLLMENT_CREATED = "enrollment.created"
ENROLLMENT_CONFIRMED = "enrollment.confirmed"
ENROLLMENT_CANCELLED = "enrollment.cancelled"
SCHEDULE_CREATED = "schedule.created"
WAITLIST_OFFER = "waitlist.offer"
WAITLIST_EXPIRED = "waitlist.expired"

_pool: Optional[ArqRedis] = None


async def _get_pool() -> ArqRedis:
    global _pool
    if _pool is None:
        _pool = await create_pool(
            get_redis_settings(),
            default_queue_name=get_settings().EVENTS_QUEUE_NAME,
        )
    return _pool


async def _enqueue(event_type: str, payload: dict[str, Any]) -> None:
    pool = await _get_pool()
    await pool.enqueue_job(EVENT_HANDLER_JOB, event_type, payload)


async def publish_event(event_type: str, payload: dict[str, Any]) -> bool:
    """Enqueue an event for the communications worker.

    Never raises: a broken queue must not fail the request that produced the
    event. Returns False when the event was not enqueued.
    """
    settings = get_settings()
    if not settings.EVENTS_ENABLED:
        logger.debug("Events disabled, dropping %s", event_type)
        return False

    request_id = get_request_id()
    if request_id:
        payload = {**payload, "request_id": request_id}

    try:
        await _enqueue(event_type, payload)
    except Exception as e:
        logger.warning("Failed to publish event %s: %s", event_type, e)
        return False

    logger.info("Published event %s", event_type)
    return True


async def close_event_pool() -> None:
    global _pool
    if _pool is not None:
        await _pool.close()
        _pool = None

"""ARQ worker for communications.

Consumes booking events from the communications queue.
Run with: arq services.communications_service.worker.WorkerSettings
"""

from libs.common.arq_config import get_redis_settings
from libs.common.config import get_settings
from libs.common.logging import configure_logging, get_logger, set_request_context

logger = get_logger(__name__)


async def startup(ctx: dict):
    configure_logging()


async def handle_booking_event(ctx: dict, event_type: str, payload: dict):
    """Queue entry point; the name must match ``libs.common.events``."""
    from services.communications_service.tasks import dispatch_event

    set_request_context(request_id=payload.get("request_id"))
    return await dispatch_event(event_type, payload)


class WorkerSettings:
    """ARQ worker settings."""

    redis_settings = get_redis_settings()
    queue_name = get_settings().EVENTS_QUEUE_NAME
    on_startup = startup

    functions = [handle_booking_event]

    # Delivery is not retried
    max_tries = 1

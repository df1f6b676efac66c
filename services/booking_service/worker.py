"""ARQ worker for waitlist offer expiry and enrollment completion."""

from arq import cron
from libs.common.arq_config import get_redis_settings
from libs.common.logging import configure_logging, get_logger

logger = get_logger(__name__)


async def startup(ctx: dict):
    configure_logging()


async def task_expire_waitlist_offers(ctx: dict):
    from services.booking_service.tasks import expire_waitlist_offers

    logger.info("Running: expire_waitlist_offers")
    await expire_waitlist_offers()


async def task_complete_finished_enrollments(ctx: dict):
    from services.booking_service.tasks import complete_finished_enrollments

    logger.info("Running: complete_finished_enrollments")
    await complete_finished_enrollments()


class WorkerSettings:
    redis_settings = get_redis_settings()
    queue_name = "arq:booking"
    on_startup = startup

    functions = [
        task_expire_waitlist_offers,
        task_complete_finished_enrollments,
    ]

    cron_jobs = [
        cron(
            task_expire_waitlist_offers,
            minute={0, 15, 30, 45},
            run_at_startup=True,
        ),
        cron(
            task_complete_finished_enrollments,
            minute={5},
            run_at_startup=False,
        ),
    ]

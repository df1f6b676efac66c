"""Redis connection settings shared by the booking and communications workers
and the event publisher."""

from arq.connections import RedisSettings
from libs.common.config import get_settings


def get_redis_settings() -> RedisSettings:
    """ARQ RedisSettings for REDIS_URL (``redis://`` or ``rediss://``)."""
    settings = RedisSettings.from_dsn(get_settings().REDIS_URL)
    # Fail fast when Redis is down; publishing must not stall a request
    settings.conn_timeout = 2
    settings.conn_retries = 1
    return settings

import os

import pytest

# Load .env.test for local overrides, then force an isolated test setup.
# This must run before anything imports libs.db.config (engine at import).
from dotenv import load_dotenv

env_test_path = os.path.join(os.path.dirname(__file__), ".env.test")
if os.path.exists(env_test_path):
    load_dotenv(env_test_path, override=False)

os.environ["ENVIRONMENT"] = "test"
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./rangeready-test.db")
os.environ["CACHE_ENABLED"] = "false"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["EVENTS_ENABLED"] = "true"
os.environ["STRIPE_SECRET_KEY"] = "sk_test_rangeready"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_rangeready"
os.environ["TAX_RATES"] = '{"NM": "0.0763"}'
os.environ["DEFAULT_TAX_JURISDICTION"] = "NM"

from libs.common.config import get_settings  # noqa: E402

# Clear cached settings to reload with new env vars
get_settings.cache_clear()
settings = get_settings()


@pytest.fixture(autouse=True)
def published_events(monkeypatch) -> list[tuple[str, dict]]:
    """
    Capture events instead of enqueueing them on Redis.

    Tests read ``published_events`` as a list of ``(event_type, payload)``.
    """
    from libs.common import events

    recorded: list[tuple[str, dict]] = []

    async def _record(event_type: str, payload: dict) -> None:
        recorded.append((event_type, payload))

    monkeypatch.setattr(events, "_enqueue", _record)
    return recorded

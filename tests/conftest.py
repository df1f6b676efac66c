import uuid
from typing import AsyncGenerator, Optional

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from libs.db.base import Base
from services.booking_service import models as _booking_models  # noqa: F401
from services.booking_service.stripe_client import PaymentIntent, Refund, StripeError


@pytest_asyncio.fixture
async def test_engine(tmp_path):
    """
    A fresh SQLite database per test.

    Tests get their own file so that two sessions can see each other's commits.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'booking.db'}", future=True
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker:
    """Sessions configured like ``libs.db.config.AsyncSessionLocal``."""
    return async_sessionmaker(
        bind=test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    session = session_factory()
    try:
        yield session
    finally:
        await session.close()


# ---------------------------------------------------------------------------
# Stripe
# ---------------------------------------------------------------------------


class FakeStripeClient:
    """
    In-memory stand-in for ``StripeClient``.

    Intents are created in ``requires_payment_method``; tests move them on
    with ``succeed`` or ``set_status``.
    """

    def __init__(self):
        self.intents: dict[str, PaymentIntent] = {}
        self.refunds: list[dict] = []
        self.created: list[dict] = []
        self.fail_with: Optional[StripeError] = None

    def _maybe_fail(self):
        if self.fail_with is not None:
            raise self.fail_with

    async def create_payment_intent(
        self,
        amount: int,
        currency: str,
        metadata: dict[str, str],
        receipt_email: str = None,
        description: str = None,
        idempotency_key: str = None,
    ) -> PaymentIntent:
        self._maybe_fail()
        intent_id = f"pi_{uuid.uuid4().hex[:16]}"
        intent = PaymentIntent(
            id=intent_id,
            amount=amount,
            currency=currency,
            status="requires_payment_method",
            client_secret=f"{intent_id}_secret",
            metadata=dict(metadata),
        )
        self.intents[intent_id] = intent
        self.created.append(
            {"amount": amount, "idempotency_key": idempotency_key, "metadata": metadata}
        )
        return intent

    async def retrieve_payment_intent(self, intent_id: str) -> PaymentIntent:
        self._maybe_fail()
        if intent_id not in self.intents:
            raise StripeError("No such payment_intent", status_code=404)
        return self.intents[intent_id]

    async def cancel_payment_intent(self, intent_id: str) -> PaymentIntent:
        return self.set_status(intent_id, "canceled")

    async def create_refund(
        self,
        payment_intent_id: str,
        amount: int,
        metadata: dict[str, str] = None,
        idempotency_key: str = None,
    ) -> Refund:
        self._maybe_fail()
        self.refunds.append(
            {"payment_intent": payment_intent_id, "amount": amount, "metadata": metadata}
        )
        return Refund(id=f"re_{uuid.uuid4().hex[:16]}", amount=amount, status="succeeded")

    def set_status(self, intent_id: str, status: str) -> PaymentIntent:
        self.intents[intent_id].status = status
        return self.intents[intent_id]

    def succeed(self, intent_id: str) -> PaymentIntent:
        return self.set_status(intent_id, "succeeded")

    def add_intent(self, **fields) -> PaymentIntent:
        intent = PaymentIntent(**fields)
        self.intents[intent.id] = intent
        return intent


@pytest.fixture
def fake_stripe() -> FakeStripeClient:
    return FakeStripeClient()

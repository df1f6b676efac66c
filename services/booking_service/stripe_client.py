"""
Stripe API client for payment intents and refunds.

Provides async methods for:
- Creating payment intents
- Retrieving payment intents
- Cancelling payment intents
- Creating refunds
- Verifying webhook signatures
"""

import hashlib
import hmac
import time
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx
from libs.common.config import get_settings
from libs.common.logging import get_logger

logger = get_logger(__name__)

# Stripe's default tolerance for webhook timestamps
WEBHOOK_TOLERANCE_SECONDS = 300

OPEN_INTENT_STATUSES = (
    "requires_payment_method",
    "requires_confirmation",
    "requires_action",
)


@dataclass
class PaymentIntent:
    """The parts of a Stripe PaymentIntent the booking flow reads."""

    id: str
    amount: int  # in cents
    currency: str
    status: str
    client_secret: Optional[str] = None
    metadata: dict[str, str] = field(default_factory=dict)

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_INTENT_STATUSES

    @property
    def succeeded(self) -> bool:
        return self.status == "succeeded"

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "PaymentIntent":
        return cls(
            id=data["id"],
            amount=int(data.get("amount") or 0),
            currency=(data.get("currency") or "").lower(),
            status=data.get("status") or "",
            client_secret=data.get("client_secret"),
            metadata=dict(data.get("metadata") or {}),
        )


@dataclass
class Refund:
    id: str
    amount: int  # in cents
    status: str


class StripeError(Exception):
    """Base exception for Stripe API errors."""

    def __init__(
        self, message: str, status_code: int = None, response_data: dict = None
    ):
        self.message = message
        self.status_code = status_code
        self.response_data = response_data or {}
        super().__init__(message)


def _encode_form(params: dict[str, Any], prefix: str = "") -> dict[str, str]:
    """Flatten nested params into Stripe's bracketed form keys."""
    encoded: dict[str, str] = {}
    for key, value in params.items():
        name = f"{prefix}[{key}]" if prefix else key
        if value is None:
            continue
        if isinstance(value, dict):
            encoded.update(_encode_form(value, name))
        elif isinstance(value, bool):
            encoded[name] = "true" if value else "false"
        else:
            encoded[name] = str(value)
    return encoded


class StripeClient:
    """Async client for the Stripe PaymentIntents and Refunds APIs."""

    def __init__(
        self,
        secret_key: str = None,
        api_base: str = None,
        transport: httpx.AsyncBaseTransport = None,
    ):
        settings = get_settings()
        self.secret_key = secret_key or settings.STRIPE_SECRET_KEY
        if not self.secret_key:
            raise ValueError("STRIPE_SECRET_KEY is required")
        self.api_base = (api_base or settings.STRIPE_API_BASE).rstrip("/")
        self._transport = transport
        self._headers = {"Authorization": f"Bearer {self.secret_key}"}

    async def _request(
        self,
        method: str,
        endpoint: str,
        data: dict = None,
        idempotency_key: str = None,
    ) -> dict:
        """Make an async request to the Stripe API."""
        url = f"{self.api_base}{endpoint}"
        headers = dict(self._headers)
        if idempotency_key:
            headers["Idempotency-Key"] = idempotency_key

        try:
            async with httpx.AsyncClient(
                timeout=30.0, transport=self._transport
            ) as client:
                response = await client.request(
                    method=method,
                    url=url,
                    headers=headers,
                    data=_encode_form(data) if data else None,
                )
        except httpx.HTTPError as e:
            logger.error("Stripe request failed: %s: %s", type(e).__name__, e)
            raise StripeError(message=f"Could not reach Stripe: {e}") from e

        try:
            payload = response.json()
        except ValueError:
            payload = {}
        if not response.is_success:
            error = payload.get("error") or {}
            logger.error("Stripe API error: %d - %s", response.status_code, error)
            raise StripeError(
                message=error.get("message", "Unknown Stripe error"),
                status_code=response.status_code,
                response_data=payload,
            )
        return payload

    # =========================================================================
    # Payment Intents
    # =========================================================================

    async def create_payment_intent(
        self,
        amount: int,
        currency: str,
        metadata: dict[str, str],
        receipt_email: str = None,
        description: str = None,
        idempotency_key: str = None,
    ) -> PaymentIntent:
        """
        Create a payment intent.

        Args:
            amount: Amount in cents
            currency: ISO currency code, lowercase
            metadata: Identifiers used to verify the payment later
        """
        data = await self._request(
            "POST",
            "/payment_intents",
            data={
                "amount": amount,
                "currency": currency,
                "metadata": metadata,
                "receipt_email": receipt_email,
                "description": description,
                "automatic_payment_methods": {"enabled": True},
            },
            idempotency_key=idempotency_key,
        )
        return PaymentIntent.from_api(data)

    async def retrieve_payment_intent(self, intent_id: str) -> PaymentIntent:
        data = await self._request("GET", f"/payment_intents/{intent_id}")
        return PaymentIntent.from_api(data)

    async def cancel_payment_intent(self, intent_id: str) -> PaymentIntent:
        data = await self._request("POST", f"/payment_intents/{intent_id}/cancel")
        return PaymentIntent.from_api(data)

    # =========================================================================
    # Refunds
    # =========================================================================

    async def create_refund(
        self,
        payment_intent_id: str,
        amount: int,
        metadata: dict[str, str] = None,
        idempotency_key: str = None,
    ) -> Refund:
        data = await self._request(
            "POST",
            "/refunds",
            data={
                "payment_intent": payment_intent_id,
                "amount": amount,
                "metadata": metadata,
            },
            idempotency_key=idempotency_key,
        )
        return Refund(
            id=data["id"],
            amount=int(data.get("amount") or 0),
            status=data.get("status") or "",
        )


def verify_webhook_signature(
    payload: bytes,
    signature_header: Optional[str],
    secret: str,
    tolerance: int = WEBHOOK_TOLERANCE_SECONDS,
    now: Optional[float] = None,
) -> bool:
    """Check a ``Stripe-Signature`` header against the raw request body."""
    if not signature_header or not secret:
        return False

    timestamp = None
    signatures = []
    for part in signature_header.split(","):
        key, _, value = part.strip().partition("=")
        if key == "t":
            timestamp = value
        elif key == "v1":
            signatures.append(value)
    if not timestamp or not signatures:
        return False

    try:
        signed_at = int(timestamp)
    except ValueError:
        return False
    if abs((now or time.time()) - signed_at) > tolerance:
        return False

    signed_payload = f"{timestamp}.".encode() + payload
    expected = hmac.new(secret.encode(), signed_payload, hashlib.sha256).hexdigest()
    return any(hmac.compare_digest(expected, sig) for sig in signatures)


def get_stripe_client() -> StripeClient:
    """FastAPI dependency; overridden in tests."""
    return StripeClient()

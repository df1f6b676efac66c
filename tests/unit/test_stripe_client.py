"""Unit tests for the Stripe HTTP client and webhook signature checks."""

import hashlib
import hmac
import json
import time
from urllib.parse import parse_qs

import httpx
import pytest
from services.booking_service.stripe_client import (
    StripeClient,
    StripeError,
    _encode_form,
    verify_webhook_signature,
)

SECRET = "whsec_test"


def _sign(payload: bytes, timestamp: int, secret: str = SECRET) -> str:
    signed = f"{timestamp}.".encode() + payload
    digest = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


# ---------------------------------------------------------------------------
# verify_webhook_signature
# ---------------------------------------------------------------------------


@pytest.mark.unit
def test_valid_signature():
    payload = b'{"type": "payment_intent.succeeded"}'
    now = int(time.time())

    assert verify_webhook_signature(payload, _sign(payload, now), SECRET, now=now)


@pytest.mark.unit
def test_signature_with_multiple_v1_values():
    payload = b"{}"
    now = int(time.time())
    header = _sign(payload, now) + ",v1=deadbeef"

    assert verify_webhook_signature(payload, header, SECRET, now=now)


@pytest.mark.unit
@pytest.mark.parametrize(
    "header",
    [
        None,
        "",
        "v1=abc",
        "t=notanumber,v1=abc",
    ],
)
def test_malformed_headers_are_rejected(header):
    assert not verify_webhook_signature(b"{}", header, SECRET)


@pytest.mark.unit
def test_tampered_payload_is_rejected():
    now = int(time.time())
    header = _sign(b'{"amount": 100}', now)

    assert not verify_webhook_signature(b'{"amount": 1}', header, SECRET, now=now)


@pytest.mark.unit
def test_wrong_secret_is_rejected():
    now = int(time.time())
    header = _sign(b"{}", now, secret="whsec_other")

    assert not verify_webhook_signature(b"{}", header, SECRET, now=now)


@pytest.mark.unit
def test_stale_timestamp_is_rejected():
    signed_at = int(time.time()) - 3600
    header = _sign(b"{}", signed_at)

    assert not verify_webhook_signature(b"{}", header, SECRET)


# ---------------------------------------------------------------------------
# StripeClient
# ---------------------------------------------------------------------------


@pytest.mark.unit
def test_encode_form_flattens_nested_params():
    encoded = _encode_form(
        {
            "amount": 10763,
            "metadata": {"enrollment_id": "abc"},
            "automatic_payment_methods": {"enabled": True},
            "receipt_email": None,
        }
    )

    assert encoded == {
        "amount": "10763",
        "metadata[enrollment_id]": "abc",
        "automatic_payment_methods[enabled]": "true",
    }


@pytest.mark.unit
def test_client_requires_a_key(monkeypatch):
    from libs.common.config import get_settings

    monkeypatch.setattr(get_settings(), "STRIPE_SECRET_KEY", "")
    with pytest.raises(ValueError):
        StripeClient()


@pytest.mark.asyncio
@pytest.mark.unit
async def test_create_payment_intent_posts_form_with_idempotency_key():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["auth"] = request.headers["Authorization"]
        seen["idempotency"] = request.headers.get("Idempotency-Key")
        seen["form"] = parse_qs(request.content.decode())
        return httpx.Response(
            200,
            json={
                "id": "pi_1",
                "amount": 10763,
                "currency": "usd",
                "status": "requires_payment_method",
                "client_secret": "pi_1_secret",
                "metadata": {"enrollment_id": "abc"},
            },
        )

    client = StripeClient(
        secret_key="sk_test_1",
        api_base="https://stripe.test/v1",
        transport=httpx.MockTransport(handler),
    )
    intent = await client.create_payment_intent(
        amount=10763,
        currency="usd",
        metadata={"enrollment_id": "abc"},
        idempotency_key="enrollment-abc-10763",
    )

    assert intent.id == "pi_1"
    assert intent.is_open
    assert seen["path"] == "/v1/payment_intents"
    assert seen["auth"] == "Bearer sk_test_1"
    assert seen["idempotency"] == "enrollment-abc-10763"
    assert seen["form"]["metadata[enrollment_id]"] == ["abc"]


@pytest.mark.asyncio
@pytest.mark.unit
async def test_api_errors_raise_stripe_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            402, content=json.dumps({"error": {"message": "Your card was declined."}})
        )

    client = StripeClient(
        secret_key="sk_test_1",
        api_base="https://stripe.test/v1",
        transport=httpx.MockTransport(handler),
    )

    with pytest.raises(StripeError) as exc_info:
        await client.retrieve_payment_intent("pi_1")

    assert exc_info.value.status_code == 402
    assert exc_info.value.message == "Your card was declined."


@pytest.mark.asyncio
@pytest.mark.unit
async def test_network_errors_raise_stripe_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = StripeClient(
        secret_key="sk_test_1",
        api_base="https://stripe.test/v1",
        transport=httpx.MockTransport(handler),
    )

    with pytest.raises(StripeError):
        await client.create_refund("pi_1", 500)

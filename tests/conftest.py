import hashlib
import hmac
import json
import time

import pytest
from django.conf import settings
from django.core.cache import cache
from rest_framework.test import APIClient

from modules.orders.models import Order, PendingDocument
from tests.fakes import FakeFulfillmentClient, FakePaymentGateway


@pytest.fixture(autouse=True)
def _use_db(db):
    """Automatically use the test database for all tests."""


@pytest.fixture(autouse=True)
def _clear_cache():
    """Throttle counters and the sweep lock live in the cache."""
    cache.clear()
    yield
    cache.clear()


@pytest.fixture()
def api_client():
    """DRF APIClient for testing API endpoints."""
    return APIClient()


@pytest.fixture()
def api_client_with_correlation(api_client):
    """APIClient pre-configured with a known correlation ID header."""
    cid = "test-correlation-id-fixture"
    api_client.defaults["HTTP_X_REQUEST_ID"] = cid
    return api_client, cid


# ---------------------------------------------------------------------------
# Collaborator fakes
# ---------------------------------------------------------------------------


@pytest.fixture()
def fake_fulfillment(monkeypatch):
    """Replaces the provider client used by every service factory."""
    client = FakeFulfillmentClient()
    monkeypatch.setattr("modules.orders.factories.get_fulfillment_client", lambda: client)
    return client


@pytest.fixture()
def fake_gateway(monkeypatch):
    """Replaces the payment gateway used by checkout (not by the webhook)."""
    gateway = FakePaymentGateway()
    monkeypatch.setattr("modules.orders.factories.get_payment_gateway", lambda: gateway)
    return gateway


# ---------------------------------------------------------------------------
# Data builders
# ---------------------------------------------------------------------------

ORDER_DEFAULTS = {
    "customer_email": "alice@example.com",
    "sender_name": "Alice Sender",
    "sender_street": "1 Main St",
    "sender_city": "Springfield",
    "sender_state": "IL",
    "sender_zip": "62701",
    "recipient_name": "Bob Recipient",
    "recipient_street": "2 Oak Ave",
    "recipient_city": "Portland",
    "recipient_state": "OR",
    "recipient_zip": "97201-1234",
    "amount_cents": 1000,
}


@pytest.fixture()
def make_order():
    counter = {"n": 0}

    def _make(**overrides) -> Order:
        counter["n"] += 1
        data = dict(ORDER_DEFAULTS)
        data["payment_session_id"] = f"cs_test_{counter['n']}"
        data.update(overrides)
        return Order.objects.create(**data)

    return _make


@pytest.fixture()
def make_document():
    def _make(pdf_id: str = "pdf_1_abcd1234", page_count: int = 2) -> PendingDocument:
        return PendingDocument.objects.create(
            pdf_id=pdf_id, content_base64="JVBERi0xLjQK", page_count=page_count
        )

    return _make


def checkout_metadata(**overrides) -> dict:
    metadata = {
        "sender_name": "Alice Sender",
        "sender_street": "1 Main St",
        "sender_street2": "",
        "sender_city": "Springfield",
        "sender_state": "IL",
        "sender_zip": "62701",
        "customer_email": "alice@example.com",
        "backup_email": "",
        "recipient_name": "Bob Recipient",
        "recipient_street": "2 Oak Ave",
        "recipient_street2": "Suite 5",
        "recipient_city": "Portland",
        "recipient_state": "OR",
        "recipient_zip": "97201-1234",
        "letter_type": "text",
        "return_receipt": "0",
        "pdf_id": "pdf_1_abcd1234",
        "page_count": "2",
    }
    metadata.update(overrides)
    return metadata


def checkout_event(
    session_id: str = "cs_test_abc",
    amount_total=1000,
    metadata: dict | None = None,
    event_type: str = "checkout.session.completed",
) -> dict:
    return {
        "id": f"evt_{session_id}",
        "type": event_type,
        "data": {
            "object": {
                "id": session_id,
                "object": "checkout.session",
                "amount_total": amount_total,
                "metadata": metadata if metadata is not None else checkout_metadata(),
            }
        },
    }


def sign_payload(payload: str, secret: str | None = None, timestamp: int | None = None) -> str:
    """Build a ``Stripe-Signature`` header the way the processor does."""
    secret = secret or settings.STRIPE_WEBHOOK_SECRET
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.{payload}".encode()
    digest = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


@pytest.fixture()
def post_webhook(api_client):
    def _post(event: dict, signature: str | None = None):
        payload = json.dumps(event)
        return api_client.post(
            "/webhook",
            data=payload,
            content_type="application/json",
            HTTP_STRIPE_SIGNATURE=signature if signature is not None else sign_payload(payload),
        )

    return _post

"""Unit tests for the Stripe adapter (no network)."""

import json
import time
from unittest.mock import MagicMock, patch

import pytest
import stripe

from modules.payments.exceptions import InvalidWebhookSignature, PaymentGatewayError
from modules.payments.gateway import StripePaymentGateway
from tests.conftest import checkout_event, sign_payload

pytestmark = pytest.mark.unit

SECRET = "whsec_unit_secret"


@pytest.fixture()
def gateway():
    return StripePaymentGateway(
        secret_key="sk_test_unit",
        webhook_secret=SECRET,
        base_url="https://mail.example.com/",
        price_cents=1000,
        price_return_receipt_cents=1300,
    )


class TestPricing:
    def test_expected_price(self, gateway):
        assert gateway.expected_price_cents(False) == 1000
        assert gateway.expected_price_cents(True) == 1300

    def test_charged_amount(self, gateway):
        assert gateway.charged_amount({"amount_total": 1300}) == 1300
        assert gateway.charged_amount({"amount_total": None}) is None
        assert gateway.charged_amount({}) is None


class TestVerifyEvent:
    def test_valid_signature_returns_event_dict(self, gateway):
        payload = json.dumps(checkout_event())

        event = gateway.verify_event(payload.encode(), sign_payload(payload, SECRET))

        assert event["type"] == "checkout.session.completed"
        assert event["data"]["object"]["id"] == "cs_test_abc"

    def test_wrong_secret_is_rejected(self, gateway):
        payload = json.dumps(checkout_event())

        with pytest.raises(InvalidWebhookSignature):
            gateway.verify_event(payload.encode(), sign_payload(payload, "whsec_other"))

    def test_tampered_body_is_rejected(self, gateway):
        payload = json.dumps(checkout_event())
        header = sign_payload(payload, SECRET)
        tampered = payload.replace("1000", "1")

        with pytest.raises(InvalidWebhookSignature):
            gateway.verify_event(tampered.encode(), header)

    def test_stale_timestamp_is_rejected(self, gateway):
        payload = json.dumps(checkout_event())
        header = sign_payload(payload, SECRET, timestamp=int(time.time()) - 3600)

        with pytest.raises(InvalidWebhookSignature):
            gateway.verify_event(payload.encode(), header)

    def test_missing_header_is_rejected(self, gateway):
        with pytest.raises(InvalidWebhookSignature):
            gateway.verify_event(b"{}", None)


class TestCheckoutSession:
    def test_creates_fixed_price_session(self, gateway):
        session = MagicMock(id="cs_test_123", url="https://checkout.stripe.com/c/pay/cs_test_123")
        sessions = gateway._stripe.v1.checkout.sessions
        with patch.object(sessions, "create", return_value=session) as create:
            result = gateway.create_checkout_session(
                metadata={"pdf_id": "pdf_1_ab"},
                return_receipt=True,
                customer_email="alice@example.com",
            )

        assert result.session_id == "cs_test_123"
        assert result.url.endswith("cs_test_123")
        params = create.call_args.kwargs["params"]
        assert params["mode"] == "payment"
        line_item = params["line_items"][0]
        assert line_item["price_data"]["unit_amount"] == 1300
        assert line_item["price_data"]["product_data"]["name"] == (
            "USPS Certified Mail + Return Receipt"
        )
        assert params["metadata"] == {"pdf_id": "pdf_1_ab"}
        assert params["customer_email"] == "alice@example.com"
        assert params["cancel_url"] == "https://mail.example.com/cancel"

    def test_processor_error_is_wrapped(self, gateway):
        with patch.object(
            gateway._stripe.v1.checkout.sessions,
            "create",
            side_effect=stripe.APIConnectionError("network down"),
        ):
            with pytest.raises(PaymentGatewayError):
                gateway.create_checkout_session(metadata={}, return_receipt=False)

    def test_gateway_leaves_global_http_client_alone(self):
        before = stripe.default_http_client

        StripePaymentGateway(
            secret_key="sk_test_other", webhook_secret=SECRET, base_url="", timeout=3
        )

        assert stripe.default_http_client is before

"""Stripe Checkout adapter.

Covers the three things order processing needs from the processor:
- hosted checkout sessions for a fixed price,
- webhook signature verification,
- the authoritative amount actually charged.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Dict, Mapping, Optional

import stripe
import structlog
from django.conf import settings

from modules.payments.exceptions import InvalidWebhookSignature, PaymentGatewayError

logger = structlog.get_logger(__name__)

CHECKOUT_COMPLETED = "checkout.session.completed"
SIGNATURE_TOLERANCE_SECONDS = 300


@dataclass(frozen=True)
class CheckoutSession:
    session_id: str
    url: str


class StripePaymentGateway:
    """Thin wrapper around the ``stripe`` SDK, configured from settings."""

    def __init__(
        self,
        secret_key: str,
        webhook_secret: str,
        base_url: str,
        price_cents: int = 1000,
        price_return_receipt_cents: int = 1300,
        timeout: float = 20,
    ) -> None:
        self._webhook_secret = webhook_secret
        self._base_url = base_url.rstrip("/")
        self._price_cents = price_cents
        self._price_return_receipt_cents = price_return_receipt_cents
        self._stripe = stripe.StripeClient(
            secret_key, http_client=stripe.RequestsClient(timeout=timeout)
        )

    @classmethod
    def from_settings(cls) -> StripePaymentGateway:
        return cls(
            secret_key=settings.STRIPE_SECRET_KEY,
            webhook_secret=settings.STRIPE_WEBHOOK_SECRET,
            base_url=settings.BASE_URL,
            price_cents=settings.PRICE_CERTIFIED_CENTS,
            price_return_receipt_cents=settings.PRICE_CERTIFIED_RR_CENTS,
            timeout=settings.PAYMENT_TIMEOUT_SECONDS,
        )

    # ------------------------------------------------------------------
    # Pricing
    # ------------------------------------------------------------------

    def expected_price_cents(self, return_receipt: bool) -> int:
        return self._price_return_receipt_cents if return_receipt else self._price_cents

    @staticmethod
    def product_label(return_receipt: bool) -> str:
        if return_receipt:
            return "USPS Certified Mail + Return Receipt"
        return "USPS Certified Mail"

    # ------------------------------------------------------------------
    # Checkout
    # ------------------------------------------------------------------

    def create_checkout_session(
        self,
        metadata: Mapping[str, str],
        return_receipt: bool,
        customer_email: str = "",
        collect_billing_address: bool = True,
    ) -> CheckoutSession:
        """Open a hosted payment page for one certified letter.

        Raises:
            PaymentGatewayError: the processor refused or could not be reached.
        """
        params: Dict[str, Any] = {
            "mode": "payment",
            "payment_method_types": ["card"],
            "line_items": [
                {
                    "price_data": {
                        "currency": "usd",
                        "product_data": {"name": self.product_label(return_receipt)},
                        "unit_amount": self.expected_price_cents(return_receipt),
                    },
                    "quantity": 1,
                }
            ],
            "metadata": dict(metadata),
            "success_url": f"{self._base_url}/success?session_id={{CHECKOUT_SESSION_ID}}",
            "cancel_url": f"{self._base_url}/cancel",
            "billing_address_collection": "required" if collect_billing_address else "auto",
        }
        if customer_email:
            params["customer_email"] = customer_email

        try:
            session = self._stripe.v1.checkout.sessions.create(params=params)
        except stripe.StripeError as exc:
            logger.error(
                "payments.checkout_session_failed",
                error=getattr(exc, "user_message", None) or str(exc),
            )
            raise PaymentGatewayError("Unable to create checkout session") from exc

        session_id = getattr(session, "id", None)
        url = getattr(session, "url", None)
        if not session_id or not url:
            raise PaymentGatewayError("Processor did not return a session URL")

        logger.info(
            "payments.checkout_session_created",
            session_id=session_id,
            return_receipt=return_receipt,
        )
        return CheckoutSession(session_id=session_id, url=url)

    # ------------------------------------------------------------------
    # Webhooks
    # ------------------------------------------------------------------

    def verify_event(self, payload: bytes, signature_header: Optional[str]) -> Dict[str, Any]:
        """Authenticate a webhook body and return the event as a plain dict.

        Raises:
            InvalidWebhookSignature: missing/invalid signature or unparseable body.
        """
        if not signature_header or not self._webhook_secret:
            raise InvalidWebhookSignature("Missing webhook signature")

        try:
            body = payload.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise InvalidWebhookSignature("Webhook body is not UTF-8") from exc

        try:
            stripe.WebhookSignature.verify_header(
                body,
                signature_header,
                self._webhook_secret,
                tolerance=SIGNATURE_TOLERANCE_SECONDS,
            )
        except stripe.SignatureVerificationError as exc:
            logger.warning("payments.webhook_signature_invalid")
            raise InvalidWebhookSignature("Invalid webhook signature") from exc

        try:
            event = json.loads(body)
        except ValueError as exc:
            raise InvalidWebhookSignature("Webhook body is not valid JSON") from exc
        if not isinstance(event, dict):
            raise InvalidWebhookSignature("Webhook body is not an event object")
        return event

    @staticmethod
    def charged_amount(session: Mapping[str, Any]) -> Optional[int]:
        """Amount the processor actually collected, in cents."""
        amount = session.get("amount_total")
        if amount is None:
            return None
        try:
            return int(amount)
        except (TypeError, ValueError):
            return None


@lru_cache(maxsize=1)
def get_payment_gateway() -> StripePaymentGateway:
    return StripePaymentGateway.from_settings()

"""Payment gateway exceptions."""

from __future__ import annotations


class PaymentGatewayError(Exception):
    """The payment processor could not complete a request."""


class InvalidWebhookSignature(PaymentGatewayError):
    """Webhook payload failed signature verification or could not be parsed."""

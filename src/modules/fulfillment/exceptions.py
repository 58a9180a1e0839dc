"""Fulfillment provider exceptions.

Raised by ``CertifiedMailClient``.  Callers treat every subclass of
``FulfillmentError`` as "the job was not accepted": there is no partial
success and no ambiguous outcome.
"""

from __future__ import annotations


class FulfillmentError(Exception):
    """Base class for every failure talking to the mail provider."""


class FulfillmentAuthenticationError(FulfillmentError):
    """The provider refused our credentials or the token request failed."""


class FulfillmentRequestError(FulfillmentError):
    """Transport failure: timeout, connection error, non-2xx or unreadable body."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class FulfillmentRejected(FulfillmentError):
    """Well-formed response whose body reports a non-success status."""

    def __init__(self, message: str, provider_code: object = None) -> None:
        super().__init__(message)
        self.provider_code = provider_code

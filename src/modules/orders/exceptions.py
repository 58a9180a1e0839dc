"""Order domain exceptions.

Raised by the Service Layer when business rules are violated.
The API layer (Views) catches these and translates them into
appropriate HTTP responses.
"""

from __future__ import annotations

from typing import Dict, List, Optional


class OrderNotFound(Exception):
    """No order matches the given token, session id or id."""


class InvalidCheckout(Exception):
    """Checkout input was rejected; nothing was persisted."""

    def __init__(self, message: str, errors: Optional[Dict[str, List[str]]] = None) -> None:
        super().__init__(message)
        self.errors = errors or {}


class PhoneNumberLocked(Exception):
    """A phone number was already saved for this order."""


class OrderNeverFulfilled(Exception):
    """The order has no provider queue id, so no proof can exist."""


class ProofNotAvailable(Exception):
    """The provider has no document of the requested kind yet."""

    def __init__(self, kind: str) -> None:
        super().__init__(f"{kind} document not yet available")
        self.kind = kind


class UnknownProofKind(Exception):
    """Requested proof kind is not acceptance, delivery or signature."""

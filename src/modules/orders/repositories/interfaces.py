"""Order repository interfaces.

Every write is a short, single statement so that the provider call made
between two writes never happens inside a transaction.  Writes that mean
"this order was processed" are idempotent.

The Service Layer depends exclusively on these contracts (DIP).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from modules.fulfillment.dtos import ProviderStatus
    from modules.orders.models import Order, PendingDocument


class IOrderRepository(IRepository["Order"]):
    """Repository contract for the Order aggregate."""

    @abstractmethod
    def create_if_absent(self, data: Dict[str, Any]) -> Tuple[Order, bool]:
        """Insert unless an order for ``payment_session_id`` exists.

        Returns ``(order, created)``.  The unique constraint decides; a
        lost race returns the winner with ``created=False``.
        """

    @abstractmethod
    def get_by_token(self, token: str) -> Optional[Order]:
        """Exact-match lookup by public token."""

    @abstractmethod
    def get_by_session_id(self, session_id: str) -> Optional[Order]:
        """Lookup by payment session id."""

    @abstractmethod
    def mark_submitted(
        self,
        order: Order,
        tracking_number: str,
        queue_id: str,
        detail: str = "",
        increment_retry: bool = False,
    ) -> None:
        """Record an accepted submission (status ``sent``, delivery ``queued``)."""

    @abstractmethod
    def mark_failed(
        self, order: Order, detail: str, increment_retry: bool = False
    ) -> None:
        """Record a failed submission attempt."""

    @abstractmethod
    def update_delivery_status(self, order: Order, status: str, detail: str) -> None:
        """Persist a new canonical delivery status and refresh the timestamp."""

    @abstractmethod
    def touch_delivery_status(self, order: Order) -> None:
        """Refresh ``delivery_status_updated_at`` only."""

    @abstractmethod
    def update_proofs(self, order: Order, status: ProviderStatus) -> None:
        """Persist proof flags, dates and signature name (flags never regress)."""

    @abstractmethod
    def mark_proof_available(self, order: Order, kind: str) -> None:
        """Set one availability flag after a successful download."""

    @abstractmethod
    def set_phone_number(self, order: Order, phone_number: str) -> bool:
        """Save the phone number unless one exists; ``False`` when locked."""

    @abstractmethod
    def retryable(
        self,
        max_attempts: int,
        limit: int,
        stalled_before: Optional[datetime] = None,
    ) -> List[Order]:
        """Orders eligible for re-submission, oldest first.

        Failed orders under the ceiling always qualify.  With
        ``stalled_before``, ``pending`` orders created before it that never
        reached the provider qualify too.  A staged document must exist.
        """


class IPendingDocumentRepository(ABC):
    """Repository contract for staged letter documents."""

    @abstractmethod
    def stage(self, pdf_id: str, content_base64: str, page_count: int) -> PendingDocument:
        """Persist a document ahead of payment."""

    @abstractmethod
    def get(self, pdf_id: Optional[str]) -> Optional[PendingDocument]:
        """Retrieve a staged document, ``None`` if missing or consumed."""

    @abstractmethod
    def delete(self, pdf_id: Optional[str]) -> None:
        """Remove a consumed document (no-op when already gone)."""

    @abstractmethod
    def purge_older_than(self, cutoff: datetime) -> int:
        """Delete documents created before ``cutoff``; returns the count."""

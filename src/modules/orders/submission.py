"""Hand an order to the mail provider and record the outcome.

Shared by webhook intake and the retry sweeper.  The provider call is
made between two short writes and never inside a transaction.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

import structlog

from modules.fulfillment.dtos import FulfillmentJob
from modules.fulfillment.exceptions import FulfillmentError
from modules.orders.constants import RETRY_SUCCESS_DETAIL

if TYPE_CHECKING:
    from modules.fulfillment.client import CertifiedMailClient
    from modules.notifications.emails import EmailNotifier
    from modules.orders.models import Order, PendingDocument
    from modules.orders.repositories.interfaces import (
        IOrderRepository,
        IPendingDocumentRepository,
    )

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class SubmissionOutcome:
    succeeded: bool
    error: Optional[str] = None


class OrderSubmitter:
    """Submits one order and applies the success/failure bookkeeping."""

    def __init__(
        self,
        order_repository: IOrderRepository,
        document_repository: IPendingDocumentRepository,
        fulfillment_client: CertifiedMailClient,
        notifier: EmailNotifier,
    ) -> None:
        self._order_repo = order_repository
        self._documents = document_repository
        self._client = fulfillment_client
        self._notifier = notifier

    def submit(
        self, order: Order, document: PendingDocument, is_retry: bool = False
    ) -> SubmissionOutcome:
        """Queue the letter.

        On success the staged document is deleted and the customer and
        owner are notified.  On failure the order is marked ``failed``;
        notifying about the failure is left to the caller.  A retry
        attempt always counts towards ``retry_count``.
        """
        log = logger.bind(order_id=order.pk, is_retry=is_retry)
        job = FulfillmentJob.from_order(order, document)

        try:
            result = self._client.submit_job(job)
        except FulfillmentError as exc:
            error = str(exc) or exc.__class__.__name__
            self._order_repo.mark_failed(order, error, increment_retry=is_retry)
            log.warning(
                "order.submission_failed", error=error, retry_count=order.retry_count
            )
            return SubmissionOutcome(succeeded=False, error=error)

        self._order_repo.mark_submitted(
            order,
            tracking_number=result.tracking_number,
            queue_id=result.queue_id,
            detail=RETRY_SUCCESS_DETAIL if is_retry else "",
            increment_retry=is_retry,
        )
        self._documents.delete(document.pdf_id)
        log.info(
            "order.submitted",
            queue_id=result.queue_id,
            tracking_number=result.tracking_number,
        )

        self._notifier.order_submitted(order)
        return SubmissionOutcome(succeeded=True)

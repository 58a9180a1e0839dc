"""Periodic maintenance: failed-order retries and staged-document purge.

Both jobs run from Celery beat (see ``modules.orders.tasks``).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import TYPE_CHECKING

import structlog
from django.core.cache import cache
from django.utils import timezone

from modules.orders.constants import OrderStatus

if TYPE_CHECKING:
    from modules.notifications.emails import EmailNotifier
    from modules.orders.repositories.interfaces import (
        IOrderRepository,
        IPendingDocumentRepository,
    )
    from modules.orders.submission import OrderSubmitter

logger = structlog.get_logger(__name__)

SWEEP_LOCK_KEY = "orders:retry-sweep:lock"


@dataclass
class SweepResult:
    selected: int = 0
    succeeded: int = 0
    failed: int = 0
    exhausted: int = 0
    skipped: bool = False


class RetrySweeper:
    """Re-submits failed orders until they reach the retry ceiling.

    Orders left ``pending`` by an intake that never recorded an outcome
    are picked up as well once they are older than the grace period.

    Orders are processed sequentially, oldest first.  When an attempt
    brings ``retry_count`` to the ceiling the operator receives exactly
    one "retries exhausted" alert; such orders are never selected again.
    """

    def __init__(
        self,
        order_repository: IOrderRepository,
        document_repository: IPendingDocumentRepository,
        submitter: OrderSubmitter,
        notifier: EmailNotifier,
        max_attempts: int = 3,
        batch_size: int = 5,
        lock_timeout: int = 600,
        stall_grace_seconds: int = 600,
    ) -> None:
        self._order_repo = order_repository
        self._documents = document_repository
        self._submitter = submitter
        self._notifier = notifier
        self._max_attempts = max_attempts
        self._batch_size = batch_size
        self._lock_timeout = lock_timeout
        self._stall_grace = timedelta(seconds=stall_grace_seconds)

    def sweep(self) -> SweepResult:
        if not cache.add(SWEEP_LOCK_KEY, "1", timeout=self._lock_timeout):
            logger.info("orders.retry.sweep_skipped", reason="already_running")
            return SweepResult(skipped=True)
        try:
            return self._sweep()
        finally:
            cache.delete(SWEEP_LOCK_KEY)

    def _sweep(self) -> SweepResult:
        result = SweepResult()
        orders = self._order_repo.retryable(
            self._max_attempts,
            self._batch_size,
            stalled_before=timezone.now() - self._stall_grace,
        )
        result.selected = len(orders)
        if not orders:
            return result

        logger.info("orders.retry.sweep_started", count=len(orders))
        for order in orders:
            document = self._documents.get(order.pdf_id)
            if document is None:
                logger.info("orders.retry.document_gone", order_id=order.pk)
                continue
            if order.status == OrderStatus.PENDING:
                logger.warning("orders.retry.stalled_intake", order_id=order.pk)

            outcome = self._submitter.submit(order, document, is_retry=True)
            if outcome.succeeded:
                result.succeeded += 1
                logger.info(
                    "orders.retry.succeeded", order_id=order.pk, retry_count=order.retry_count
                )
                continue

            result.failed += 1
            if order.retry_count >= self._max_attempts:
                result.exhausted += 1
                logger.error(
                    "orders.retry.exhausted",
                    order_id=order.pk,
                    retry_count=order.retry_count,
                    error=outcome.error,
                )
                self._notifier.retries_exhausted(
                    order,
                    f"Exhausted {self._max_attempts} retries. "
                    f"Last error: {outcome.error}",
                )

        logger.info(
            "orders.retry.sweep_finished",
            succeeded=result.succeeded,
            failed=result.failed,
            exhausted=result.exhausted,
        )
        return result


def purge_staged_documents(
    document_repository: IPendingDocumentRepository, max_age_seconds: int
) -> int:
    """Delete staged documents older than ``max_age_seconds``."""
    cutoff = timezone.now() - timedelta(seconds=max_age_seconds)
    deleted = document_repository.purge_older_than(cutoff)
    if deleted:
        logger.info("orders.staged_documents_purged", count=deleted)
    return deleted

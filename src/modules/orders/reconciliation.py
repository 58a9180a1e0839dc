"""On-demand delivery-status reconciliation.

An order page visit refreshes the order from the provider unless one of
these holds:
- the order was never accepted (no queue id);
- the letter reached a terminal state *and* every proof is available;
- the last refresh is younger than ``STATUS_CACHE_SECONDS``.

Provider failures are logged and swallowed; callers always get the
last-known state.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Callable

import structlog
from django.conf import settings
from django.utils import timezone

from modules.fulfillment.exceptions import FulfillmentError
from modules.orders.constants import map_provider_status

if TYPE_CHECKING:
    from modules.fulfillment.client import CertifiedMailClient
    from modules.orders.models import Order
    from modules.orders.repositories.interfaces import IOrderRepository

logger = structlog.get_logger(__name__)


class StatusReconciler:
    def __init__(
        self,
        order_repository: IOrderRepository,
        fulfillment_client: CertifiedMailClient,
        cache_seconds: int | None = None,
        clock: Callable[[], datetime] = timezone.now,
    ) -> None:
        self._order_repo = order_repository
        self._client = fulfillment_client
        self._cache_window = timedelta(
            seconds=settings.STATUS_CACHE_SECONDS if cache_seconds is None else cache_seconds
        )
        self._clock = clock

    def needs_refresh(self, order: Order) -> bool:
        if not order.scm_queue_id:
            return False
        if order.is_terminal and order.all_proofs_available:
            return False
        last = order.delivery_status_updated_at
        if last is not None and self._clock() - last < self._cache_window:
            return False
        return True

    def refresh(self, order: Order) -> Order:
        """Refresh ``order`` in place when stale and return it."""
        if not self.needs_refresh(order):
            return order

        log = logger.bind(order_id=order.pk, queue_id=order.scm_queue_id)
        try:
            status = self._client.get_status(order.scm_queue_id)
        except FulfillmentError as exc:
            log.warning("orders.reconcile.failed", error=str(exc))
            return order

        mapped = map_provider_status(status.keyword)
        if mapped and mapped != order.delivery_status:
            previous = order.delivery_status
            self._order_repo.update_delivery_status(order, mapped, status.detail)
            log.info("orders.reconcile.status_changed", old=previous, new=mapped)
        else:
            self._order_repo.touch_delivery_status(order)
            if mapped is None:
                log.debug("orders.reconcile.unmapped_status", provider_status=status.keyword)

        self._order_repo.update_proofs(order, status)
        return order

"""Django ORM implementation of the order repositories.

Writes are single ``UPDATE`` statements keyed by primary key; the caller's
in-memory instance is patched afterwards so services can keep using it.
Order creation relies on the unique ``payment_session_id`` constraint and
never on a prior existence check.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple

import structlog
from django.db import IntegrityError, transaction
from django.db.models import Exists, F, OuterRef, Q
from django.utils import timezone

from modules.orders.constants import (
    MISSING_DOCUMENT_DETAIL,
    DeliveryStatus,
    OrderStatus,
)
from modules.orders.models import Order, PendingDocument
from modules.orders.repositories.interfaces import (
    IOrderRepository,
    IPendingDocumentRepository,
)

if TYPE_CHECKING:
    from modules.fulfillment.dtos import ProviderStatus

logger = structlog.get_logger(__name__)


class OrderDjangoRepository(IOrderRepository):
    """Concrete Order repository backed by Django ORM."""

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create_if_absent(self, data: Dict[str, Any]) -> Tuple[Order, bool]:
        session_id = data["payment_session_id"]
        try:
            with transaction.atomic():
                order = Order.objects.create(**data)
        except IntegrityError:
            existing = self.get_by_session_id(session_id)
            if existing is None:
                raise
            logger.info(
                "order.duplicate_session", order_id=existing.pk, session_id=session_id
            )
            return existing, False

        logger.info("order.created", order_id=order.pk, status=order.status)
        return order, True

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def get_by_id(self, id: int) -> Optional[Order]:
        try:
            return Order.objects.filter(pk=int(id)).first()
        except (TypeError, ValueError):
            return None

    def get_by_token(self, token: str) -> Optional[Order]:
        if not token:
            return None
        return Order.objects.filter(order_token=token).first()

    def get_by_session_id(self, session_id: str) -> Optional[Order]:
        if not session_id:
            return None
        return Order.objects.filter(payment_session_id=session_id).first()

    def retryable(
        self,
        max_attempts: int,
        limit: int,
        stalled_before: Optional[datetime] = None,
    ) -> List[Order]:
        staged = PendingDocument.objects.filter(pdf_id=OuterRef("pdf_id"))
        eligible = Q(status=OrderStatus.FAILED)
        if stalled_before is not None:
            # intake inserted the order but never recorded an outcome
            eligible |= Q(
                Q(scm_queue_id__isnull=True) | Q(scm_queue_id=""),
                status=OrderStatus.PENDING,
                created_at__lt=stalled_before,
            )
        qs = (
            Order.objects.filter(eligible, retry_count__lt=max_attempts)
            .exclude(delivery_status_detail=MISSING_DOCUMENT_DETAIL)
            .filter(Exists(staged))
            .order_by("created_at", "id")
        )
        return list(qs[:limit])

    # ------------------------------------------------------------------
    # Fulfillment bookkeeping
    # ------------------------------------------------------------------

    def mark_submitted(
        self,
        order: Order,
        tracking_number: str,
        queue_id: str,
        detail: str = "",
        increment_retry: bool = False,
    ) -> None:
        now = timezone.now()
        values: Dict[str, Any] = {
            "tracking_number": tracking_number,
            "scm_queue_id": queue_id,
            "status": OrderStatus.SENT,
            "delivery_status": DeliveryStatus.QUEUED,
            "delivery_status_detail": detail,
            "delivery_status_updated_at": now,
        }
        self._apply(order, values, now, increment_retry)

    def mark_failed(self, order: Order, detail: str, increment_retry: bool = False) -> None:
        now = timezone.now()
        values: Dict[str, Any] = {
            "status": OrderStatus.FAILED,
            "delivery_status": DeliveryStatus.FAILED,
            "delivery_status_detail": detail,
            "delivery_status_updated_at": now,
        }
        self._apply(order, values, now, increment_retry)

    # ------------------------------------------------------------------
    # Delivery status
    # ------------------------------------------------------------------

    def update_delivery_status(self, order: Order, status: str, detail: str) -> None:
        now = timezone.now()
        self._apply(
            order,
            {
                "delivery_status": status,
                "delivery_status_detail": detail,
                "delivery_status_updated_at": now,
            },
            now,
        )

    def touch_delivery_status(self, order: Order) -> None:
        now = timezone.now()
        self._apply(order, {"delivery_status_updated_at": now}, now)

    def update_proofs(self, order: Order, status: ProviderStatus) -> None:
        values: Dict[str, Any] = {}
        if status.acceptance_available:
            values["acceptance_doc_available"] = True
        if status.delivery_available:
            values["delivery_doc_available"] = True
        if status.signature_available:
            values["signature_doc_available"] = True
        if status.accepted_date is not None:
            values["accepted_date"] = self._aware(status.accepted_date)
        if status.delivery_date is not None:
            values["delivery_date"] = self._aware(status.delivery_date)
        if status.signature_name:
            values["signature_name"] = status.signature_name[:200]
        if values:
            self._apply(order, values, timezone.now())

    def mark_proof_available(self, order: Order, kind: str) -> None:
        self._apply(order, {f"{kind}_doc_available": True}, timezone.now())

    # ------------------------------------------------------------------
    # Contact
    # ------------------------------------------------------------------

    def set_phone_number(self, order: Order, phone_number: str) -> bool:
        now = timezone.now()
        updated = Order.objects.filter(pk=order.pk, phone_number="").update(
            phone_number=phone_number, updated_at=now
        )
        if updated:
            order.phone_number = phone_number
            order.updated_at = now
        return bool(updated)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _aware(value: datetime) -> datetime:
        if timezone.is_naive(value):
            return timezone.make_aware(value, timezone.get_current_timezone())
        return value

    @staticmethod
    def _apply(
        order: Order,
        values: Dict[str, Any],
        now: datetime,
        increment_retry: bool = False,
    ) -> None:
        """Single-statement update, then mirror the values on ``order``."""
        update = dict(values, updated_at=now)
        if increment_retry:
            update["retry_count"] = F("retry_count") + 1
        Order.objects.filter(pk=order.pk).update(**update)

        for field, value in values.items():
            setattr(order, field, value)
        order.updated_at = now
        if increment_retry:
            order.retry_count = (
                Order.objects.filter(pk=order.pk)
                .values_list("retry_count", flat=True)
                .first()
                or order.retry_count + 1
            )


class PendingDocumentDjangoRepository(IPendingDocumentRepository):
    """Staged documents backed by Django ORM."""

    def stage(self, pdf_id: str, content_base64: str, page_count: int) -> PendingDocument:
        document = PendingDocument.objects.create(
            pdf_id=pdf_id, content_base64=content_base64, page_count=max(page_count, 1)
        )
        logger.info("pending_document.staged", pdf_id=pdf_id, page_count=document.page_count)
        return document

    def get(self, pdf_id: Optional[str]) -> Optional[PendingDocument]:
        if not pdf_id:
            return None
        return PendingDocument.objects.filter(pdf_id=pdf_id).first()

    def delete(self, pdf_id: Optional[str]) -> None:
        if not pdf_id:
            return
        deleted, _ = PendingDocument.objects.filter(pdf_id=pdf_id).delete()
        if deleted:
            logger.info("pending_document.deleted", pdf_id=pdf_id)

    def purge_older_than(self, cutoff: datetime) -> int:
        deleted, _ = PendingDocument.objects.filter(created_at__lt=cutoff).delete()
        return deleted

"""Order intake from payment-completed webhook events.

Per event: ``new -> inserted -> (submitted | submission_failed) -> notified``.

Business rules enforced:
- Exactly one order per payment session; the unique constraint decides
  and a lost race is a silent no-op.
- An underpaid session is persisted as ``payment_mismatch`` and never
  reaches the mail provider.
- A missing staged document is a permanent failure, never retried.
- A paid session that cannot become an order is acknowledged and
  reported to the operator.
- Outcomes are persisted before anyone is notified.
"""

from __future__ import annotations

import enum
from typing import TYPE_CHECKING, Any, Dict, Mapping

import structlog
from pydantic import ValidationError

from modules.orders.constants import (
    MISSING_DOCUMENT_DETAIL,
    DeliveryStatus,
    OrderStatus,
)
from modules.orders.dtos import CheckoutMetadataDTO
from modules.payments.gateway import CHECKOUT_COMPLETED

if TYPE_CHECKING:
    from modules.notifications.emails import EmailNotifier
    from modules.orders.repositories.interfaces import (
        IOrderRepository,
        IPendingDocumentRepository,
    )
    from modules.orders.submission import OrderSubmitter
    from modules.payments.gateway import StripePaymentGateway

logger = structlog.get_logger(__name__)

PAYMENT_REVIEW_DETAIL = "Payment under review"


class IntakeOutcome(str, enum.Enum):
    IGNORED = "ignored"
    DUPLICATE = "duplicate"
    INVALID_EVENT = "invalid_event"
    PAYMENT_MISMATCH = "payment_mismatch"
    MISSING_DOCUMENT = "missing_document"
    SUBMITTED = "submitted"
    SUBMISSION_FAILED = "submission_failed"


class OrderIntakeService:
    """Turns a verified payment event into a mailed letter."""

    def __init__(
        self,
        order_repository: IOrderRepository,
        document_repository: IPendingDocumentRepository,
        submitter: OrderSubmitter,
        payment_gateway: StripePaymentGateway,
        notifier: EmailNotifier,
    ) -> None:
        self._order_repo = order_repository
        self._documents = document_repository
        self._submitter = submitter
        self._gateway = payment_gateway
        self._notifier = notifier

    def handle_event(self, event: Mapping[str, Any]) -> IntakeOutcome:
        """Process one verified webhook event; never raises for bad content."""
        event_type = event.get("type")
        if event_type != CHECKOUT_COMPLETED:
            logger.debug("order.intake.ignored", event_type=event_type)
            return IntakeOutcome.IGNORED

        session = (event.get("data") or {}).get("object") or {}
        session_id = session.get("id")
        log = logger.bind(session_id=session_id, event_id=event.get("id"))
        if not session_id:
            log.error("order.intake.missing_session_id")
            return self._reject(session, "Event carries no payment session id")

        if self._order_repo.get_by_session_id(session_id) is not None:
            log.info("order.intake.duplicate")
            return IntakeOutcome.DUPLICATE

        try:
            metadata = CheckoutMetadataDTO.model_validate(session.get("metadata") or {})
        except ValidationError as exc:
            errors = exc.errors(include_url=False)
            log.error("order.intake.invalid_metadata", errors=errors)
            summary = "; ".join(
                f"{'.'.join(str(p) for p in e['loc']) or 'metadata'}: {e['msg']}"
                for e in errors
            )
            return self._reject(session, f"Invalid order metadata ({summary})")

        expected = self._gateway.expected_price_cents(metadata.return_receipt)
        charged = self._gateway.charged_amount(session)
        if charged is not None and charged < expected:
            return self._record_underpayment(session_id, metadata, expected, charged)
        if charged is not None and charged > expected:
            log.warning("order.intake.overpayment", expected=expected, charged=charged)

        amount = charged if charged is not None else expected
        order, created = self._order_repo.create_if_absent(
            self._order_data(session_id, metadata, amount)
        )
        if not created:
            log.info("order.intake.duplicate", order_id=order.pk)
            return IntakeOutcome.DUPLICATE

        log = log.bind(order_id=order.pk)
        log.info("order.intake.inserted", amount_cents=amount)

        document = self._documents.get(metadata.pdf_id)
        if document is None:
            self._order_repo.mark_failed(order, MISSING_DOCUMENT_DETAIL)
            log.error("order.intake.missing_document", pdf_id=metadata.pdf_id)
            self._notifier.fulfillment_failed(
                order, f"Staged document not found: {metadata.pdf_id}"
            )
            return IntakeOutcome.MISSING_DOCUMENT

        outcome = self._submitter.submit(order, document)
        if not outcome.succeeded:
            self._notifier.fulfillment_failed(order, outcome.error or "unknown error")
            return IntakeOutcome.SUBMISSION_FAILED
        return IntakeOutcome.SUBMITTED

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _reject(self, session: Mapping[str, Any], error: str) -> IntakeOutcome:
        """Acknowledge an unusable paid session and alert the operator."""
        details = session.get("customer_details") or {}
        self._notifier.invalid_payment_event(
            session.get("id"),
            self._gateway.charged_amount(session),
            error,
            customer_email=session.get("customer_email") or details.get("email") or "",
        )
        return IntakeOutcome.INVALID_EVENT

    def _record_underpayment(
        self,
        session_id: str,
        metadata: CheckoutMetadataDTO,
        expected: int,
        charged: int,
    ) -> IntakeOutcome:
        data = self._order_data(session_id, metadata, charged)
        data.update(
            status=OrderStatus.PAYMENT_MISMATCH,
            delivery_status_detail=PAYMENT_REVIEW_DETAIL,
        )
        order, created = self._order_repo.create_if_absent(data)
        if not created:
            return IntakeOutcome.DUPLICATE

        logger.error(
            "order.intake.payment_mismatch",
            order_id=order.pk,
            session_id=session_id,
            expected=expected,
            charged=charged,
        )
        self._notifier.payment_mismatch(order, expected, charged)
        return IntakeOutcome.PAYMENT_MISMATCH

    @staticmethod
    def _order_data(
        session_id: str, metadata: CheckoutMetadataDTO, amount_cents: int
    ) -> Dict[str, Any]:
        data = metadata.order_fields()
        data.update(
            payment_session_id=session_id,
            amount_cents=amount_cents,
            status=OrderStatus.PENDING,
            delivery_status=DeliveryStatus.PROCESSING,
        )
        return data

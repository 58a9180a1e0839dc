"""Order service layer (Use Cases).

Orchestrates checkout staging and the customer-facing order queries.

Business rules enforced:
- Letter content is staged as a PendingDocument before the customer is
  sent to the hosted payment page; nothing else is persisted at checkout.
- Orders are only ever addressed by their public token.
- The contact phone number can be saved once.
- Proof documents are fetched from the provider on demand and never
  cached locally.
"""

from __future__ import annotations

import base64
import secrets
import time
from typing import TYPE_CHECKING, Any, Dict

import structlog

from modules.fulfillment.exceptions import FulfillmentError
from modules.letters.rendering import count_pdf_pages, render_letter_pdf
from modules.orders.constants import LetterType, ProofKind
from modules.orders.dtos import CheckoutMetadataDTO
from modules.orders.exceptions import (
    InvalidCheckout,
    OrderNeverFulfilled,
    OrderNotFound,
    PhoneNumberLocked,
    ProofNotAvailable,
    UnknownProofKind,
)
from modules.payments.exceptions import PaymentGatewayError

if TYPE_CHECKING:
    from modules.fulfillment.client import CertifiedMailClient
    from modules.fulfillment.dtos import ProofDocument
    from modules.orders.models import Order
    from modules.orders.reconciliation import StatusReconciler
    from modules.orders.repositories.interfaces import (
        IOrderRepository,
        IPendingDocumentRepository,
    )
    from modules.payments.gateway import CheckoutSession, StripePaymentGateway

logger = structlog.get_logger(__name__)


def generate_pdf_id() -> str:
    """``pdf_<epoch millis>_<8 hex chars>``."""
    return f"pdf_{int(time.time() * 1000)}_{secrets.token_hex(4)}"


class CheckoutService:
    """Stages the letter and opens a payment session.

    Receives its collaborators via constructor injection (DIP).
    """

    def __init__(
        self,
        document_repository: IPendingDocumentRepository,
        payment_gateway: StripePaymentGateway,
    ) -> None:
        self._documents = document_repository
        self._gateway = payment_gateway

    def start_checkout(self, data: Dict[str, Any]) -> CheckoutSession:
        """Stage the letter and return the hosted payment page.

        ``data`` is the validated output of ``CheckoutSerializer``.

        Raises:
            InvalidCheckout: the uploaded file is not a usable PDF.
            PaymentGatewayError: the payment session could not be created.
        """
        letter_type = LetterType(data["letter_mode"])
        log = logger.bind(letter_type=letter_type.value)

        if letter_type == LetterType.TEXT:
            content, page_count = render_letter_pdf(data["letter_text"])
        else:
            content = self._read_upload(data["letter_pdf"])
            page_count = count_pdf_pages(content)

        pdf_id = generate_pdf_id()
        self._documents.stage(
            pdf_id, base64.b64encode(content).decode("ascii"), page_count
        )

        metadata = CheckoutMetadataDTO(
            sender_name=data["sender_name"],
            sender_street=data["sender_street"],
            sender_street2=data.get("sender_street2", ""),
            sender_city=data["sender_city"],
            sender_state=data["sender_state"],
            sender_zip=data["sender_zip"],
            customer_email=data["customer_email"],
            backup_email=data.get("backup_email", ""),
            recipient_name=data["recipient_name"],
            recipient_street=data["recipient_street"],
            recipient_street2=data.get("recipient_street2", ""),
            recipient_city=data["recipient_city"],
            recipient_state=data["recipient_state"],
            recipient_zip=data["recipient_zip"],
            letter_type=letter_type,
            return_receipt=data.get("return_receipt", False),
            pdf_id=pdf_id,
            page_count=page_count,
        )

        try:
            session = self._gateway.create_checkout_session(
                metadata=metadata.to_metadata(),
                return_receipt=metadata.return_receipt,
                customer_email=metadata.customer_email,
                collect_billing_address=not data.get("use_sender_as_billing", False),
            )
        except PaymentGatewayError:
            self._documents.delete(pdf_id)
            raise

        log.info(
            "order.checkout_started",
            pdf_id=pdf_id,
            page_count=page_count,
            session_id=session.session_id,
        )
        return session

    @staticmethod
    def _read_upload(upload: Any) -> bytes:
        chunks = upload.chunks() if hasattr(upload, "chunks") else [upload.read()]
        content = b"".join(chunks)
        if not content.lstrip().startswith(b"%PDF"):
            raise InvalidCheckout(
                "Uploaded file is not a PDF.",
                errors={"letter_pdf": ["Uploaded file is not a PDF."]},
            )
        return content


class OrderService:
    """Customer-facing order queries and updates."""

    def __init__(
        self,
        order_repository: IOrderRepository,
        reconciler: StatusReconciler,
        fulfillment_client: CertifiedMailClient,
    ) -> None:
        self._order_repo = order_repository
        self._reconciler = reconciler
        self._client = fulfillment_client

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_order(self, token: str) -> Order:
        """Look up an order by token.

        Raises:
            OrderNotFound: no order carries this token.
        """
        order = self._order_repo.get_by_token(token)
        if order is None:
            raise OrderNotFound("Order not found.")
        return order

    def get_order_status(self, token: str) -> Order:
        """Order with its delivery status refreshed when stale."""
        order = self.get_order(token)
        return self._reconciler.refresh(order)

    def get_proof(self, token: str, kind: str) -> ProofDocument:
        """Download one proof document from the provider.

        Raises:
            OrderNotFound: unknown token.
            UnknownProofKind: ``kind`` is not a proof kind.
            OrderNeverFulfilled: the order was never accepted by the provider.
            ProofNotAvailable: the provider has no such document (or failed).
        """
        order = self.get_order(token)
        if kind not in ProofKind.values:
            raise UnknownProofKind(kind)
        if not order.scm_queue_id:
            raise OrderNeverFulfilled("Order was never fulfilled.")

        log = logger.bind(order_id=order.pk, kind=kind)
        try:
            document = self._client.get_proof_document(order.scm_queue_id, kind)
        except FulfillmentError as exc:
            log.warning("orders.proof_download_failed", error=str(exc))
            raise ProofNotAvailable(kind) from exc
        if document is None:
            raise ProofNotAvailable(kind)

        if not order.proof_available(kind):
            self._order_repo.mark_proof_available(order, kind)
        log.info("orders.proof_downloaded", size=len(document.content))
        return document

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def save_phone_number(self, token: str, phone_number: str) -> Order:
        """Attach a contact phone number (first write wins).

        Raises:
            OrderNotFound: unknown token.
            PhoneNumberLocked: a number was already saved.
        """
        order = self.get_order(token)
        if order.phone_number or not self._order_repo.set_phone_number(
            order, phone_number.strip()
        ):
            raise PhoneNumberLocked("Phone number already saved.")
        logger.info("orders.phone_saved", order_id=order.pk)
        return order


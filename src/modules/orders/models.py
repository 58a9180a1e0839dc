"""Order and PendingDocument models.

Business rules implemented:
- Exactly one Order per payment session, enforced by the unique
  ``payment_session_id`` constraint (never by a pre-check alone).
- ``order_token`` is the only identifier exposed to customers.
- ``amount_cents`` is the amount the gateway actually charged.
- Addresses are stored structured so fulfillment can be retried without
  re-parsing a concatenated string.
- Orders are never deleted.
- PendingDocument rows are staged before payment, consumed on successful
  fulfillment and purged after a fixed age.
"""

from __future__ import annotations

import secrets

from django.db import models

from modules.core.models import BaseModel
from modules.orders.constants import (
    ORDER_TOKEN_BYTES,
    TERMINAL_DELIVERY_STATES,
    DeliveryStatus,
    LetterType,
    OrderStatus,
    ProofKind,
)


def generate_order_token() -> str:
    """Random, URL-safe and unguessable public identifier."""
    return secrets.token_urlsafe(ORDER_TOKEN_BYTES)


def format_address(street: str, street2: str, city: str, state: str, zip_code: str) -> str:
    """Single-line postal address used in emails and the order page."""
    line1 = f"{street} {street2}".strip() if street2 else street
    return f"{line1}, {city}, {state} {zip_code}"


class Order(BaseModel):
    """A paid request to mail one certified letter.

    ``status`` tracks our side of the lifecycle (did the provider accept the
    job?) while ``delivery_status`` mirrors what the provider reports about
    the physical letter.  They move independently.
    """

    order_token: models.CharField = models.CharField(
        max_length=64, unique=True, default=generate_order_token, editable=False
    )
    payment_session_id: models.CharField = models.CharField(max_length=255, unique=True)

    # Parties
    customer_email: models.EmailField = models.EmailField(max_length=254)
    backup_email: models.EmailField = models.EmailField(
        max_length=254, blank=True, default=""
    )
    sender_name: models.CharField = models.CharField(max_length=200)
    sender_street: models.CharField = models.CharField(max_length=200)
    sender_street2: models.CharField = models.CharField(
        max_length=200, blank=True, default=""
    )
    sender_city: models.CharField = models.CharField(max_length=100)
    sender_state: models.CharField = models.CharField(max_length=2)
    sender_zip: models.CharField = models.CharField(max_length=10)
    recipient_name: models.CharField = models.CharField(max_length=200)
    recipient_street: models.CharField = models.CharField(max_length=200)
    recipient_street2: models.CharField = models.CharField(
        max_length=200, blank=True, default=""
    )
    recipient_city: models.CharField = models.CharField(max_length=100)
    recipient_state: models.CharField = models.CharField(max_length=2)
    recipient_zip: models.CharField = models.CharField(max_length=10)

    # Content
    letter_type: models.CharField = models.CharField(
        max_length=10, choices=LetterType.choices, default=LetterType.TEXT
    )
    pdf_id: models.CharField = models.CharField(max_length=64, null=True, blank=True)
    page_count: models.PositiveIntegerField = models.PositiveIntegerField(default=1)

    # Commercial
    amount_cents: models.PositiveIntegerField = models.PositiveIntegerField()
    return_receipt: models.BooleanField = models.BooleanField(default=False)

    # Fulfillment linkage
    tracking_number: models.CharField = models.CharField(
        max_length=64, null=True, blank=True
    )
    scm_queue_id: models.CharField = models.CharField(
        max_length=64, null=True, blank=True
    )
    status: models.CharField = models.CharField(
        max_length=20, choices=OrderStatus.choices, default=OrderStatus.PENDING
    )
    retry_count: models.PositiveIntegerField = models.PositiveIntegerField(default=0)

    # Delivery status
    delivery_status: models.CharField = models.CharField(
        max_length=20,
        choices=DeliveryStatus.choices,
        default=DeliveryStatus.PROCESSING,
    )
    delivery_status_detail: models.TextField = models.TextField(blank=True, default="")
    delivery_status_updated_at: models.DateTimeField = models.DateTimeField(
        null=True, blank=True
    )

    # Proof metadata
    acceptance_doc_available: models.BooleanField = models.BooleanField(default=False)
    delivery_doc_available: models.BooleanField = models.BooleanField(default=False)
    signature_doc_available: models.BooleanField = models.BooleanField(default=False)
    accepted_date: models.DateTimeField = models.DateTimeField(null=True, blank=True)
    delivery_date: models.DateTimeField = models.DateTimeField(null=True, blank=True)
    signature_name: models.CharField = models.CharField(
        max_length=200, blank=True, default=""
    )

    # Contact enrichment
    phone_number: models.CharField = models.CharField(
        max_length=30, blank=True, default=""
    )

    class Meta:
        db_table = "orders"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status", "retry_count"], name="orders_retry_idx"),
            models.Index(fields=["-created_at"], name="orders_created_idx"),
        ]

    # ------------------------------------------------------------------
    # Derived fields
    # ------------------------------------------------------------------

    @property
    def sender_address(self) -> str:
        return format_address(
            self.sender_street,
            self.sender_street2,
            self.sender_city,
            self.sender_state,
            self.sender_zip,
        )

    @property
    def recipient_address(self) -> str:
        return format_address(
            self.recipient_street,
            self.recipient_street2,
            self.recipient_city,
            self.recipient_state,
            self.recipient_zip,
        )

    @property
    def is_terminal(self) -> bool:
        """``True`` once the provider reports a final physical outcome."""
        return self.delivery_status in TERMINAL_DELIVERY_STATES

    @property
    def all_proofs_available(self) -> bool:
        return (
            self.acceptance_doc_available
            and self.delivery_doc_available
            and self.signature_doc_available
        )

    def proof_available(self, kind: str) -> bool:
        return bool(getattr(self, f"{ProofKind(kind).value}_doc_available"))

    @property
    def customer_recipients(self) -> list[str]:
        recipients = [self.customer_email]
        if self.backup_email and self.backup_email.lower() != self.customer_email.lower():
            recipients.append(self.backup_email)
        return recipients

    @property
    def reference(self) -> str:
        """Stable external reference handed to the mail provider."""
        return f"order-{self.pk}"

    # ------------------------------------------------------------------
    # Display
    # ------------------------------------------------------------------

    def __str__(self) -> str:
        return f"Order #{self.pk} ({self.status}/{self.delivery_status})"


class PendingDocument(BaseModel):
    """Letter content staged at checkout, before payment is confirmed.

    ``content_base64`` holds the PDF already encoded the way the mail
    provider expects it.  A row outlives a failed fulfillment attempt so
    the retry sweeper can re-submit it.
    """

    pdf_id: models.CharField = models.CharField(max_length=64, unique=True)
    content_base64: models.TextField = models.TextField()
    page_count: models.PositiveIntegerField = models.PositiveIntegerField(default=1)

    class Meta:
        db_table = "pending_documents"
        ordering = ["created_at"]
        indexes = [
            models.Index(fields=["created_at"], name="pending_docs_created_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.pdf_id} ({self.page_count} pages)"

"""Fulfillment DTOs.

Framework-agnostic contracts between the order services and the mail
provider client, using Pydantic v2.  Inputs and parsed provider payloads
are immutable (``frozen=True``).

- ``FulfillmentJob``: everything needed to queue one certified letter.
- ``SubmissionResult``: queue id (+ PIC when the provider returns one).
- ``ProviderStatus``: parsed status payload, including proof blobs.
- ``ProofDocument``: downloadable evidence document.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

if TYPE_CHECKING:
    from modules.orders.models import Order, PendingDocument

_PROVIDER_DATE_FORMATS = (
    "%m/%d/%Y %I:%M:%S %p",
    "%m/%d/%Y %H:%M:%S",
    "%m/%d/%Y",
)


def split_zip(zip_code: str) -> tuple[str, str]:
    """Split ``12345``, ``12345-6789`` or ``123456789`` into ZIP and ZIP+4."""
    digits = re.sub(r"\D", "", zip_code or "")
    return digits[:5], digits[5:9]


class FulfillmentJob(BaseModel):
    """Immutable description of one print-and-mail job."""

    model_config = ConfigDict(frozen=True)

    sender_name: str
    sender_street: str
    sender_street2: str = ""
    sender_city: str
    sender_state: str
    sender_zip: str
    sender_email: str = ""
    recipient_name: str
    recipient_street: str
    recipient_street2: str = ""
    recipient_city: str
    recipient_state: str
    recipient_zip: str
    document_base64: str = Field(repr=False)
    page_count: int = 1
    return_receipt: bool = False
    reference: str

    @field_validator("page_count")
    @classmethod
    def page_count_at_least_one(cls, v: int) -> int:
        return max(v, 1)

    @classmethod
    def from_order(cls, order: Order, document: PendingDocument) -> FulfillmentJob:
        """Rebuild the job from persisted structured fields."""
        return cls(
            sender_name=order.sender_name,
            sender_street=order.sender_street,
            sender_street2=order.sender_street2,
            sender_city=order.sender_city,
            sender_state=order.sender_state,
            sender_zip=order.sender_zip,
            sender_email=order.customer_email,
            recipient_name=order.recipient_name,
            recipient_street=order.recipient_street,
            recipient_street2=order.recipient_street2,
            recipient_city=order.recipient_city,
            recipient_state=order.recipient_state,
            recipient_zip=order.recipient_zip,
            document_base64=document.content_base64,
            page_count=document.page_count or order.page_count or 1,
            return_receipt=order.return_receipt,
            reference=order.reference,
        )


class SubmissionResult(BaseModel):
    """Provider acknowledgement of an accepted job."""

    model_config = ConfigDict(frozen=True)

    queue_id: str
    pic: Optional[str] = None

    @property
    def tracking_number(self) -> str:
        """USPS PIC when known, otherwise a queue-based placeholder."""
        return self.pic or f"Q{self.queue_id}"


class ProviderStatus(BaseModel):
    """Parsed response of the provider's document-status endpoint."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    status: Optional[str] = Field(default=None, alias="Status")
    status_message: Optional[str] = Field(default=None, alias="StatusMessage")
    acceptance_document: Optional[str] = Field(
        default=None,
        alias="AcceptanceDocument",
        validation_alias=AliasChoices("AcceptanceDocument", "ProofOfMailing"),
        repr=False,
    )
    delivery_document: Optional[str] = Field(
        default=None,
        alias="DeliveryDocument",
        validation_alias=AliasChoices("DeliveryDocument", "ProofOfDelivery"),
        repr=False,
    )
    signature_document: Optional[str] = Field(
        default=None,
        alias="SignatureDocument",
        validation_alias=AliasChoices("SignatureDocument", "SignatureImage"),
        repr=False,
    )
    accepted_date: Optional[datetime] = Field(default=None, alias="AcceptedDate")
    delivery_date: Optional[datetime] = Field(default=None, alias="DeliveryDate")
    signature_name: Optional[str] = Field(default=None, alias="SignatureName")

    @field_validator("accepted_date", "delivery_date", mode="before")
    @classmethod
    def lenient_date(cls, v: Any) -> Optional[datetime]:
        """Accept ISO-8601 or US-style provider dates; anything else is unknown."""
        if v in (None, ""):
            return None
        if isinstance(v, datetime):
            return v
        text = str(v).strip()
        try:
            return datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            pass
        for fmt in _PROVIDER_DATE_FORMATS:
            try:
                return datetime.strptime(text, fmt)
            except ValueError:
                continue
        return None

    @property
    def keyword(self) -> Optional[str]:
        """Status keyword used for mapping (falls back to the message)."""
        return self.status or self.status_message

    @property
    def detail(self) -> str:
        return self.status_message or self.status or ""

    def document_for(self, kind: str) -> Optional[str]:
        return getattr(self, f"{kind}_document", None) or None

    @property
    def acceptance_available(self) -> bool:
        return bool(self.acceptance_document)

    @property
    def delivery_available(self) -> bool:
        return bool(self.delivery_document)

    @property
    def signature_available(self) -> bool:
        return bool(self.signature_document)


@dataclass(frozen=True)
class ProofDocument:
    """Proof PDF ready to be streamed to the customer."""

    content: bytes
    filename: str
    content_type: str = "application/pdf"

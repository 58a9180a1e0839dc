"""Order DTOs for the Service Layer.

Framework-agnostic data transfer objects using Pydantic v2.
These are the contracts between the API layer (DRF Serializers),
the payment webhook and the Service layer.  DTOs are immutable
(``frozen=True``).

- ``CheckoutMetadataDTO``: the string-only metadata bag that travels
  through the payment session from checkout to intake.
- ``TimelineStepDTO``: one step of the order page progress timeline.
- ``OrderStatusDTO``: public order page payload.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, field_validator

from modules.orders.constants import (
    OFF_TIMELINE_STATES,
    TIMELINE_STEPS,
    LetterType,
    OrderStatus,
)

if TYPE_CHECKING:
    from modules.orders.models import Order


# ---------------------------------------------------------------------------
# Input DTOs
# ---------------------------------------------------------------------------


class CheckoutMetadataDTO(BaseModel):
    """Immutable metadata bag attached to the payment session.

    Payment processors only carry string values, so booleans travel as
    ``"1"``/``"0"`` and counts as decimal strings.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    sender_name: str
    sender_street: str
    sender_street2: str = ""
    sender_city: str
    sender_state: str
    sender_zip: str
    customer_email: str
    backup_email: str = ""
    recipient_name: str
    recipient_street: str
    recipient_street2: str = ""
    recipient_city: str
    recipient_state: str
    recipient_zip: str
    letter_type: LetterType = LetterType.TEXT
    return_receipt: bool = False
    pdf_id: str
    page_count: int = 1

    @field_validator("sender_state", "recipient_state")
    @classmethod
    def upper_state(cls, v: str) -> str:
        return v.strip().upper()

    @field_validator("return_receipt", mode="before")
    @classmethod
    def parse_flag(cls, v: Any) -> bool:
        if isinstance(v, bool):
            return v
        return str(v).strip().lower() in {"1", "true", "yes", "on"}

    @field_validator("page_count", mode="before")
    @classmethod
    def parse_page_count(cls, v: Any) -> int:
        try:
            return max(int(v), 1)
        except (TypeError, ValueError):
            return 1

    def to_metadata(self) -> Dict[str, str]:
        """Serialize back into the processor's string-only bag."""
        data = self.model_dump()
        data["letter_type"] = str(self.letter_type.value)
        data["return_receipt"] = "1" if self.return_receipt else "0"
        data["page_count"] = str(self.page_count)
        return {key: str(value) for key, value in data.items()}

    def order_fields(self) -> Dict[str, Any]:
        """Column values for a new Order."""
        return {
            "customer_email": self.customer_email,
            "backup_email": self.backup_email,
            "sender_name": self.sender_name,
            "sender_street": self.sender_street,
            "sender_street2": self.sender_street2,
            "sender_city": self.sender_city,
            "sender_state": self.sender_state,
            "sender_zip": self.sender_zip,
            "recipient_name": self.recipient_name,
            "recipient_street": self.recipient_street,
            "recipient_street2": self.recipient_street2,
            "recipient_city": self.recipient_city,
            "recipient_state": self.recipient_state,
            "recipient_zip": self.recipient_zip,
            "letter_type": self.letter_type,
            "return_receipt": self.return_receipt,
            "pdf_id": self.pdf_id,
            "page_count": self.page_count,
        }


# ---------------------------------------------------------------------------
# Output DTOs
# ---------------------------------------------------------------------------


class TimelineStepDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    key: str
    label: str
    complete: bool
    current: bool


def current_step_index(delivery_status: str) -> int:
    """Position on the timeline; ``-1`` for failed/returned letters."""
    if delivery_status in OFF_TIMELINE_STATES:
        return -1
    for index, (key, _label) in enumerate(TIMELINE_STEPS):
        if key == delivery_status:
            return index
    return 0


class ProofsDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    acceptance: bool
    delivery: bool
    signature: bool
    accepted_date: Optional[datetime] = None
    delivery_date: Optional[datetime] = None
    signature_name: str = ""


class OrderStatusDTO(BaseModel):
    """Immutable DTO for the public order page."""

    model_config = ConfigDict(frozen=True)

    order_token: str
    status: str
    created_at: datetime
    sender_name: str
    sender_address: str
    recipient_name: str
    recipient_address: str
    letter_type: str
    page_count: int
    return_receipt: bool
    amount_cents: int
    tracking_number: Optional[str]
    delivery_status: str
    delivery_status_label: str
    delivery_status_detail: str
    delivery_status_updated_at: Optional[datetime]
    current_step_index: int
    timeline: List[TimelineStepDTO]
    proofs: ProofsDTO
    phone_number_saved: bool
    needs_attention: bool

    @classmethod
    def from_entity(cls, order: Order) -> OrderStatusDTO:
        index = current_step_index(order.delivery_status)
        timeline = [
            TimelineStepDTO(
                key=key,
                label=label,
                complete=index >= 0 and position < index,
                current=position == index,
            )
            for position, (key, label) in enumerate(TIMELINE_STEPS)
        ]
        return cls(
            order_token=order.order_token,
            status=order.status,
            created_at=order.created_at,
            sender_name=order.sender_name,
            sender_address=order.sender_address,
            recipient_name=order.recipient_name,
            recipient_address=order.recipient_address,
            letter_type=order.letter_type,
            page_count=order.page_count,
            return_receipt=order.return_receipt,
            amount_cents=order.amount_cents,
            tracking_number=order.tracking_number,
            delivery_status=order.delivery_status,
            delivery_status_label=order.get_delivery_status_display(),
            delivery_status_detail=_public_detail(order),
            delivery_status_updated_at=order.delivery_status_updated_at,
            current_step_index=index,
            timeline=timeline,
            proofs=ProofsDTO(
                acceptance=order.acceptance_doc_available,
                delivery=order.delivery_doc_available,
                signature=order.signature_doc_available,
                accepted_date=order.accepted_date,
                delivery_date=order.delivery_date,
                signature_name=order.signature_name,
            ),
            phone_number_saved=bool(order.phone_number),
            needs_attention=order.status
            in {OrderStatus.FAILED, OrderStatus.PAYMENT_MISMATCH},
        )


def _public_detail(order: Order) -> str:
    """Provider error text stays internal; customers get a generic line."""
    if order.status == OrderStatus.FAILED:
        return "We are working on mailing your letter."
    if order.status == OrderStatus.PAYMENT_MISMATCH:
        return "Your payment is under review."
    return order.delivery_status_detail

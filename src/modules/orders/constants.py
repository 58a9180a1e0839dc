"""Order domain constants.

Defines the order-level status, the canonical delivery-status vocabulary
shown to customers, and the fixed lookup table that translates the mail
provider's free-form status keywords into that vocabulary.
"""

from __future__ import annotations

from typing import Optional

from django.db import models


class OrderStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    SENT = "sent", "Sent"
    FAILED = "failed", "Failed"
    PAYMENT_MISMATCH = "payment_mismatch", "Payment mismatch"


class DeliveryStatus(models.TextChoices):
    PROCESSING = "processing", "Processing"
    QUEUED = "queued", "Queued"
    PRINTED = "printed", "Printed"
    IN_TRANSIT = "in_transit", "In Transit"
    DELIVERED = "delivered", "Delivered"
    RETURNED = "returned", "Returned"
    FAILED = "failed", "Failed"


class LetterType(models.TextChoices):
    TEXT = "text", "Typed letter"
    PDF = "pdf", "Uploaded PDF"


class ProofKind(models.TextChoices):
    ACCEPTANCE = "acceptance", "Proof of acceptance"
    DELIVERY = "delivery", "Proof of delivery"
    SIGNATURE = "signature", "Recipient signature"


TERMINAL_DELIVERY_STATES: set[str] = {DeliveryStatus.DELIVERED, DeliveryStatus.RETURNED}

# Provider keyword -> canonical delivery status.  Anything else means "no change".
PROVIDER_STATUS_MAP: dict[str, str] = {
    "Queued": DeliveryStatus.QUEUED,
    "Printed": DeliveryStatus.PRINTED,
    "In Transit": DeliveryStatus.IN_TRANSIT,
    "InTransit": DeliveryStatus.IN_TRANSIT,
    "Delivered": DeliveryStatus.DELIVERED,
    "Returned": DeliveryStatus.RETURNED,
    "Return to Sender": DeliveryStatus.RETURNED,
    "ReturnToSender": DeliveryStatus.RETURNED,
    "Failed": DeliveryStatus.FAILED,
}


def map_provider_status(provider_status: Optional[str]) -> Optional[str]:
    """Translate a provider keyword, returning ``None`` for unknown values."""
    if not provider_status:
        return None
    return PROVIDER_STATUS_MAP.get(provider_status.strip())


TIMELINE_STEPS: list[tuple[str, str]] = [
    (DeliveryStatus.PROCESSING, "Processing"),
    (DeliveryStatus.QUEUED, "Queued"),
    (DeliveryStatus.PRINTED, "Printed"),
    (DeliveryStatus.IN_TRANSIT, "In Transit"),
    (DeliveryStatus.DELIVERED, "Delivered"),
]

# Delivery states that are off the happy-path timeline
OFF_TIMELINE_STATES: set[str] = {DeliveryStatus.FAILED, DeliveryStatus.RETURNED}

# Failure detail recorded when the staged document vanished before intake.
# Orders carrying it are never picked up by the retry sweeper.
MISSING_DOCUMENT_DETAIL = "Staged document not found during processing"

RETRY_SUCCESS_DETAIL = "Fulfilled on retry"

ORDER_TOKEN_BYTES = 24
PHONE_NUMBER_MAX_LENGTH = 30

"""Order DRF serializers for API input.

The serializer operates at the Interface layer (API Views).
Business logic lives in the Service Layer, which receives
Pydantic DTOs from ``dtos.py``.
"""

from __future__ import annotations

from django.conf import settings
from rest_framework import serializers

from modules.orders.constants import PHONE_NUMBER_MAX_LENGTH, LetterType

STATE_REGEX = r"^[A-Za-z]{2}$"
ZIP_REGEX = r"^\d{5}(-?\d{4})?$"
PHONE_REGEX = r"^[\d\s\-()+]+$"

PDF_CONTENT_TYPE = "application/pdf"


def _state_field() -> serializers.RegexField:
    return serializers.RegexField(
        STATE_REGEX,
        error_messages={"invalid": "State must be a 2-letter code."},
    )


def _zip_field() -> serializers.RegexField:
    return serializers.RegexField(
        ZIP_REGEX,
        error_messages={"invalid": "Invalid ZIP code."},
    )


class CheckoutSerializer(serializers.Serializer):
    """Validates the checkout form (multipart or JSON)."""

    sender_name = serializers.CharField(max_length=200)
    sender_street = serializers.CharField(max_length=200)
    sender_street2 = serializers.CharField(
        max_length=200, required=False, allow_blank=True, default=""
    )
    sender_city = serializers.CharField(max_length=100)
    sender_state = _state_field()
    sender_zip = _zip_field()

    customer_email = serializers.EmailField(max_length=254)
    backup_email = serializers.EmailField(
        max_length=254, required=False, allow_blank=True, default=""
    )

    recipient_name = serializers.CharField(max_length=200)
    recipient_street = serializers.CharField(max_length=200)
    recipient_street2 = serializers.CharField(
        max_length=200, required=False, allow_blank=True, default=""
    )
    recipient_city = serializers.CharField(max_length=100)
    recipient_state = _state_field()
    recipient_zip = _zip_field()

    letter_mode = serializers.ChoiceField(
        choices=LetterType.choices, required=False, default=LetterType.TEXT
    )
    letter_text = serializers.CharField(
        required=False, allow_blank=True, default="", trim_whitespace=False
    )
    letter_pdf = serializers.FileField(required=False, allow_empty_file=False)
    return_receipt = serializers.BooleanField(required=False, default=False)
    use_sender_as_billing = serializers.BooleanField(required=False, default=False)

    def validate_sender_state(self, value: str) -> str:
        return value.upper()

    def validate_recipient_state(self, value: str) -> str:
        return value.upper()

    def validate_letter_text(self, value: str) -> str:
        limit = settings.MAX_LETTER_CHARACTERS
        if len(value) > limit:
            raise serializers.ValidationError(
                f"Letter text is too long. Please keep it under {limit:,} characters."
            )
        return value

    def validate_letter_pdf(self, value):
        if value is None:
            return value
        if value.size > settings.MAX_UPLOAD_BYTES:
            limit_mb = settings.MAX_UPLOAD_BYTES // (1024 * 1024)
            raise serializers.ValidationError(f"PDF must be {limit_mb} MB or smaller.")
        content_type = getattr(value, "content_type", "") or ""
        if content_type.split(";")[0].strip().lower() != PDF_CONTENT_TYPE:
            raise serializers.ValidationError("Only PDF files are accepted.")
        return value

    def validate(self, attrs: dict) -> dict:
        backup = attrs.get("backup_email", "")
        if backup and backup.lower() == attrs["customer_email"].lower():
            raise serializers.ValidationError(
                {"backup_email": "Backup email must be different from your primary email."}
            )

        if attrs["letter_mode"] == LetterType.TEXT:
            if not attrs.get("letter_text", "").strip():
                raise serializers.ValidationError(
                    {"letter_text": "Please enter your letter text."}
                )
        elif not attrs.get("letter_pdf"):
            raise serializers.ValidationError({"letter_pdf": "Please upload a PDF file."})
        return attrs


class PhoneNumberSerializer(serializers.Serializer):
    """Validates the optional contact phone number."""

    phone_number = serializers.RegexField(
        PHONE_REGEX,
        max_length=PHONE_NUMBER_MAX_LENGTH,
        error_messages={"invalid": "Phone number contains invalid characters."},
    )

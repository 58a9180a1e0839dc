"""Order API views.

Exposes checkout, the payment webhook and the public order page via HTTP
using DRF ``APIView``s.  Domain exceptions are caught and translated into
appropriate HTTP status codes; provider error text never reaches the
response.
"""

from __future__ import annotations

from urllib.parse import quote

import structlog
from django.http import HttpResponse
from rest_framework import status
from rest_framework.permissions import AllowAny
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.views import APIView

from modules.orders import factories
from modules.orders.dtos import OrderStatusDTO
from modules.orders.exceptions import (
    InvalidCheckout,
    OrderNeverFulfilled,
    OrderNotFound,
    PhoneNumberLocked,
    ProofNotAvailable,
    UnknownProofKind,
)
from modules.orders.serializers import CheckoutSerializer, PhoneNumberSerializer
from modules.payments.exceptions import InvalidWebhookSignature, PaymentGatewayError
from modules.payments.gateway import get_payment_gateway

logger = structlog.get_logger(__name__)

PHONE_FLAGS = {"saved", "invalid", "locked"}

PROOF_NOT_AVAILABLE_MESSAGES = {
    "acceptance": "Proof of acceptance is not yet available.",
    "delivery": "Proof of delivery is not yet available.",
    "signature": "Recipient signature is not yet available.",
}

ORDER_NOT_FOUND = {"detail": "Order not found."}


def _see_other(location: str, data: dict | None = None) -> Response:
    return Response(data, status=status.HTTP_303_SEE_OTHER, headers={"Location": location})


def _order_path(token: str) -> str:
    return f"/order/{quote(token, safe='')}"


# ----------------------------------------------------------------------
# Checkout
# ----------------------------------------------------------------------


class CheckoutView(APIView):
    """POST /checkout

    Validates the letter form, stages the document and redirects (303)
    to the hosted payment page.
    """

    permission_classes = [AllowAny]
    throttle_scope = "checkout"

    def post(self, request: Request) -> Response:
        serializer = CheckoutSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(
                {"detail": "Invalid checkout request.", "errors": serializer.errors},
                status=status.HTTP_400_BAD_REQUEST,
            )

        try:
            session = factories.build_checkout_service().start_checkout(
                serializer.validated_data
            )
        except InvalidCheckout as exc:
            return Response(
                {"detail": str(exc), "errors": exc.errors},
                status=status.HTTP_400_BAD_REQUEST,
            )
        except PaymentGatewayError:
            return Response(
                {"detail": "Unable to start payment. Please try again."},
                status=status.HTTP_502_BAD_GATEWAY,
            )

        return _see_other(session.url, {"checkout_url": session.url})


# ----------------------------------------------------------------------
# Payment webhook
# ----------------------------------------------------------------------


class PaymentWebhookView(APIView):
    """POST /webhook

    Only a bad signature is rejected (400).  Every other event is
    acknowledged with 200 so the processor stops redelivering it.
    """

    authentication_classes: list = []
    permission_classes = [AllowAny]
    throttle_classes: list = []

    def post(self, request: Request) -> Response:
        try:
            event = get_payment_gateway().verify_event(
                request.body, request.headers.get("Stripe-Signature")
            )
        except InvalidWebhookSignature as exc:
            return Response(
                {"detail": f"Webhook Error: {exc}"}, status=status.HTTP_400_BAD_REQUEST
            )

        outcome = factories.build_intake_service().handle_event(event)
        logger.info("order.intake.acknowledged", outcome=outcome.value)
        return Response({"received": True})


# ----------------------------------------------------------------------
# Public order page
# ----------------------------------------------------------------------


class OrderStatusView(APIView):
    """GET /order/<token>"""

    permission_classes = [AllowAny]
    throttle_scope = "order_status"

    def get(self, request: Request, token: str) -> Response:
        try:
            order = factories.build_order_service().get_order_status(token)
        except OrderNotFound:
            return Response(ORDER_NOT_FOUND, status=status.HTTP_404_NOT_FOUND)

        data = OrderStatusDTO.from_entity(order).model_dump(mode="json")
        phone_flag = request.query_params.get("phone")
        data["phone_update"] = phone_flag if phone_flag in PHONE_FLAGS else None
        return Response(data)


class OrderPhoneView(APIView):
    """POST /order/<token>/phone

    Always answers with a 303 back to the order page carrying
    ``?phone=saved|invalid|locked`` (404 for unknown orders).
    """

    permission_classes = [AllowAny]
    throttle_scope = "phone_update"

    def post(self, request: Request, token: str) -> Response:
        service = factories.build_order_service()
        try:
            service.get_order(token)
        except OrderNotFound:
            return Response(ORDER_NOT_FOUND, status=status.HTTP_404_NOT_FOUND)

        location = _order_path(token)
        serializer = PhoneNumberSerializer(data=request.data)
        if not serializer.is_valid():
            return _see_other(f"{location}?phone=invalid")

        try:
            service.save_phone_number(token, serializer.validated_data["phone_number"])
        except OrderNotFound:
            return Response(ORDER_NOT_FOUND, status=status.HTTP_404_NOT_FOUND)
        except PhoneNumberLocked:
            return _see_other(f"{location}?phone=locked")
        return _see_other(f"{location}?phone=saved")


class ProofDownloadView(APIView):
    """GET /order/<token>/proof/<kind>"""

    permission_classes = [AllowAny]
    throttle_scope = "proof_download"

    def get(self, request: Request, token: str, kind: str) -> HttpResponse | Response:
        try:
            document = factories.build_order_service().get_proof(token, kind)
        except OrderNotFound:
            return Response(ORDER_NOT_FOUND, status=status.HTTP_404_NOT_FOUND)
        except UnknownProofKind:
            return Response(
                {"detail": "Unknown document type."}, status=status.HTTP_404_NOT_FOUND
            )
        except OrderNeverFulfilled:
            return Response(
                {"detail": "This order was never sent, so no documents exist."},
                status=status.HTTP_404_NOT_FOUND,
            )
        except ProofNotAvailable as exc:
            return Response(
                {"detail": PROOF_NOT_AVAILABLE_MESSAGES[exc.kind]},
                status=status.HTTP_404_NOT_FOUND,
            )

        response = HttpResponse(document.content, content_type=document.content_type)
        response["Content-Disposition"] = f'attachment; filename="{document.filename}"'
        return response

"""Composition root for the order use-cases.

Views and Celery tasks build their services here so collaborators are
wired in one place (and patched in one place by tests).
"""

from __future__ import annotations

from django.conf import settings

from modules.fulfillment.client import get_fulfillment_client
from modules.notifications.emails import get_notifier
from modules.orders.intake import OrderIntakeService
from modules.orders.reconciliation import StatusReconciler
from modules.orders.repositories.django_repository import (
    OrderDjangoRepository,
    PendingDocumentDjangoRepository,
)
from modules.orders.retries import RetrySweeper
from modules.orders.services import CheckoutService, OrderService
from modules.orders.submission import OrderSubmitter
from modules.payments.gateway import get_payment_gateway


def build_submitter() -> OrderSubmitter:
    return OrderSubmitter(
        order_repository=OrderDjangoRepository(),
        document_repository=PendingDocumentDjangoRepository(),
        fulfillment_client=get_fulfillment_client(),
        notifier=get_notifier(),
    )


def build_checkout_service() -> CheckoutService:
    return CheckoutService(
        document_repository=PendingDocumentDjangoRepository(),
        payment_gateway=get_payment_gateway(),
    )


def build_intake_service() -> OrderIntakeService:
    return OrderIntakeService(
        order_repository=OrderDjangoRepository(),
        document_repository=PendingDocumentDjangoRepository(),
        submitter=build_submitter(),
        payment_gateway=get_payment_gateway(),
        notifier=get_notifier(),
    )


def build_order_service() -> OrderService:
    repository = OrderDjangoRepository()
    client = get_fulfillment_client()
    return OrderService(
        order_repository=repository,
        reconciler=StatusReconciler(repository, client),
        fulfillment_client=client,
    )


def build_retry_sweeper() -> RetrySweeper:
    return RetrySweeper(
        order_repository=OrderDjangoRepository(),
        document_repository=PendingDocumentDjangoRepository(),
        submitter=build_submitter(),
        notifier=get_notifier(),
        max_attempts=settings.RETRY_MAX_ATTEMPTS,
        batch_size=settings.RETRY_BATCH_SIZE,
        lock_timeout=settings.RETRY_INTERVAL_SECONDS,
        stall_grace_seconds=settings.RETRY_INTERVAL_SECONDS,
    )

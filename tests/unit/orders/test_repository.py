"""Unit tests for the Django order repositories.

Covers:
- Insert-if-absent keyed by payment session (idempotent).
- Lookups by token / session id / id.
- Submission success and failure bookkeeping (retry counter).
- Delivery status updates and proof flags that never regress.
- Phone number settable once.
- Retryable selection (ceiling, missing-document marker, staged doc).
- Staged document stage / get / delete / purge.
"""

from __future__ import annotations

from datetime import timedelta

import pytest
from django.utils import timezone

from modules.fulfillment.dtos import ProviderStatus
from modules.orders.constants import (
    MISSING_DOCUMENT_DETAIL,
    DeliveryStatus,
    OrderStatus,
)
from modules.orders.models import Order, PendingDocument
from modules.orders.repositories.django_repository import (
    OrderDjangoRepository,
    PendingDocumentDjangoRepository,
)
from modules.orders.repositories.interfaces import IOrderRepository
from tests.conftest import ORDER_DEFAULTS

pytestmark = pytest.mark.unit


@pytest.fixture()
def repo():
    return OrderDjangoRepository()


@pytest.fixture()
def documents():
    return PendingDocumentDjangoRepository()


def _order_data(session_id="cs_test_repo", **overrides):
    data = dict(ORDER_DEFAULTS, payment_session_id=session_id)
    data.update(overrides)
    return data


class TestCreateIfAbsent:
    def test_implements_interface(self, repo):
        assert isinstance(repo, IOrderRepository)

    def test_creates_order(self, repo):
        order, created = repo.create_if_absent(_order_data())

        assert created is True
        assert order.pk is not None
        assert order.status == OrderStatus.PENDING
        assert order.delivery_status == DeliveryStatus.PROCESSING
        assert len(order.order_token) >= 32

    def test_second_insert_is_a_no_op(self, repo):
        first, _ = repo.create_if_absent(_order_data())
        second, created = repo.create_if_absent(_order_data(customer_email="other@example.com"))

        assert created is False
        assert second.pk == first.pk
        assert Order.objects.count() == 1
        assert Order.objects.get().customer_email == "alice@example.com"

    def test_tokens_are_unique_per_order(self, repo):
        a, _ = repo.create_if_absent(_order_data("cs_a"))
        b, _ = repo.create_if_absent(_order_data("cs_b"))

        assert a.order_token != b.order_token


class TestLookups:
    def test_get_by_token_is_exact_match(self, repo, make_order):
        order = make_order()

        assert repo.get_by_token(order.order_token).pk == order.pk
        assert repo.get_by_token(order.order_token.upper() + "x") is None
        assert repo.get_by_token("") is None

    def test_get_by_session_id(self, repo, make_order):
        order = make_order(payment_session_id="cs_lookup")

        assert repo.get_by_session_id("cs_lookup").pk == order.pk
        assert repo.get_by_session_id("cs_missing") is None

    def test_get_by_id_tolerates_garbage(self, repo, make_order):
        order = make_order()

        assert repo.get_by_id(order.pk).pk == order.pk
        assert repo.get_by_id("abc") is None


class TestFulfillmentBookkeeping:
    def test_mark_submitted(self, repo, make_order):
        order = make_order()

        repo.mark_submitted(order, tracking_number="9407", queue_id="55")

        order.refresh_from_db()
        assert order.status == OrderStatus.SENT
        assert order.delivery_status == DeliveryStatus.QUEUED
        assert order.tracking_number == "9407"
        assert order.scm_queue_id == "55"
        assert order.delivery_status_updated_at is not None
        assert order.retry_count == 0

    def test_mark_failed_increments_retry_on_request(self, repo, make_order):
        order = make_order(status=OrderStatus.FAILED, retry_count=1)

        repo.mark_failed(order, "timeout", increment_retry=True)

        assert order.retry_count == 2
        order.refresh_from_db()
        assert order.retry_count == 2
        assert order.status == OrderStatus.FAILED
        assert order.delivery_status == DeliveryStatus.FAILED
        assert order.delivery_status_detail == "timeout"

    def test_local_instance_mirrors_update(self, repo, make_order):
        order = make_order()

        repo.mark_failed(order, "boom")

        assert order.status == OrderStatus.FAILED
        assert order.delivery_status_detail == "boom"


class TestDeliveryStatus:
    def test_update_delivery_status(self, repo, make_order):
        order = make_order(status=OrderStatus.SENT, delivery_status=DeliveryStatus.QUEUED)

        repo.update_delivery_status(order, DeliveryStatus.IN_TRANSIT, "Departed")

        order.refresh_from_db()
        assert order.delivery_status == DeliveryStatus.IN_TRANSIT
        assert order.delivery_status_detail == "Departed"

    def test_touch_only_moves_timestamp(self, repo, make_order):
        order = make_order(delivery_status=DeliveryStatus.PRINTED, delivery_status_detail="x")

        repo.touch_delivery_status(order)

        order.refresh_from_db()
        assert order.delivery_status == DeliveryStatus.PRINTED
        assert order.delivery_status_detail == "x"
        assert order.delivery_status_updated_at is not None

    def test_proof_flags_never_regress(self, repo, make_order):
        order = make_order(acceptance_doc_available=True)

        repo.update_proofs(
            order,
            ProviderStatus(delivery_document="YQ==", signature_name="B. Recipient"),
        )

        order.refresh_from_db()
        assert order.acceptance_doc_available is True
        assert order.delivery_doc_available is True
        assert order.signature_doc_available is False
        assert order.signature_name == "B. Recipient"

    def test_naive_provider_dates_become_aware(self, repo, make_order):
        order = make_order()

        repo.update_proofs(order, ProviderStatus.model_validate({"AcceptedDate": "03/04/2025"}))

        order.refresh_from_db()
        assert timezone.is_aware(order.accepted_date)


class TestPhoneNumber:
    def test_settable_once(self, repo, make_order):
        order = make_order()

        assert repo.set_phone_number(order, "555-0100") is True
        assert repo.set_phone_number(order, "555-0199") is False

        order.refresh_from_db()
        assert order.phone_number == "555-0100"


class TestRetryable:
    def test_selection_rules(self, repo, make_order, make_document):
        make_document("pdf_ok")
        make_document("pdf_missing_marker")
        make_document("pdf_ceiling")
        make_document("pdf_sent")
        eligible = make_order(status=OrderStatus.FAILED, pdf_id="pdf_ok", retry_count=2)
        make_order(
            status=OrderStatus.FAILED,
            pdf_id="pdf_missing_marker",
            delivery_status_detail=MISSING_DOCUMENT_DETAIL,
        )
        make_order(status=OrderStatus.FAILED, pdf_id="pdf_ceiling", retry_count=3)
        make_order(status=OrderStatus.SENT, pdf_id="pdf_sent")
        make_order(status=OrderStatus.FAILED, pdf_id="pdf_gone")

        assert [o.pk for o in repo.retryable(max_attempts=3, limit=5)] == [eligible.pk]

    def test_stalled_pending_orders(self, repo, make_order, make_document):
        for pdf_id in ("pdf_stalled", "pdf_recent", "pdf_queued"):
            make_document(pdf_id)
        stalled = make_order(status=OrderStatus.PENDING, pdf_id="pdf_stalled")
        make_order(status=OrderStatus.PENDING, pdf_id="pdf_recent")
        queued = make_order(
            status=OrderStatus.PENDING, pdf_id="pdf_queued", scm_queue_id="77"
        )
        hour_ago = timezone.now() - timedelta(hours=1)
        Order.objects.filter(pk__in=[stalled.pk, queued.pk]).update(created_at=hour_ago)
        cutoff = timezone.now() - timedelta(minutes=10)

        assert repo.retryable(max_attempts=3, limit=5) == []
        selected = repo.retryable(max_attempts=3, limit=5, stalled_before=cutoff)
        assert [o.pk for o in selected] == [stalled.pk]

    def test_oldest_first_and_limited(self, repo, make_order, make_document):
        orders = []
        for i in range(4):
            make_document(f"pdf_{i}")
            orders.append(make_order(status=OrderStatus.FAILED, pdf_id=f"pdf_{i}"))
        Order.objects.filter(pk=orders[3].pk).update(
            created_at=timezone.now() - timedelta(days=1)
        )

        selected = repo.retryable(max_attempts=3, limit=2)

        assert [o.pk for o in selected] == [orders[3].pk, orders[0].pk]


class TestPendingDocuments:
    def test_stage_get_delete(self, documents):
        documents.stage("pdf_x", "JVBERi0=", 0)

        staged = documents.get("pdf_x")
        assert staged.page_count == 1
        documents.delete("pdf_x")
        assert documents.get("pdf_x") is None
        documents.delete("pdf_x")

    def test_get_none_id(self, documents):
        assert documents.get(None) is None

    def test_purge_older_than(self, documents):
        documents.stage("pdf_old", "a", 1)
        documents.stage("pdf_new", "b", 1)
        PendingDocument.objects.filter(pdf_id="pdf_old").update(
            created_at=timezone.now() - timedelta(hours=3)
        )

        deleted = documents.purge_older_than(timezone.now() - timedelta(hours=2))

        assert deleted == 1
        assert list(PendingDocument.objects.values_list("pdf_id", flat=True)) == ["pdf_new"]

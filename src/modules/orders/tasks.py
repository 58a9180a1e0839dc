"""Celery tasks for the orders module.

Scheduled by ``CELERY_BEAT_SCHEDULE`` in settings; each entry has its own
interval and both stop with the beat process.
"""

import structlog
from celery import shared_task
from django.conf import settings

from modules.orders import factories
from modules.orders.repositories.django_repository import PendingDocumentDjangoRepository
from modules.orders.retries import purge_staged_documents as purge

logger = structlog.get_logger(__name__)


@shared_task(name="orders.retry_failed_orders")
def retry_failed_orders():
    """Re-submit failed orders that are still below the retry ceiling."""
    result = factories.build_retry_sweeper().sweep()
    return {
        "selected": result.selected,
        "succeeded": result.succeeded,
        "failed": result.failed,
        "exhausted": result.exhausted,
        "skipped": result.skipped,
    }


@shared_task(name="orders.purge_staged_documents")
def purge_staged_documents():
    """Delete staged documents older than the configured maximum age."""
    deleted = purge(
        PendingDocumentDjangoRepository(), settings.STAGED_DOCUMENT_MAX_AGE_SECONDS
    )
    return {"deleted": deleted}

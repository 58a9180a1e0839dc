import logging
import re
import time
import uuid
from typing import Callable

import structlog
from django.http import HttpRequest, HttpResponse

logger = structlog.get_logger()

_REQUEST_ID_RE = re.compile(r"^[A-Za-z0-9._\-]{1,128}$")
# Order tokens are bearer secrets; keep them out of request logs
_ORDER_TOKEN_RE = re.compile(r"^/order/[^/?]+")


def redact_path(path: str) -> str:
    return _ORDER_TOKEN_RE.sub("/order/<token>", path)


class OrderTokenFilter(logging.Filter):
    """Redacts order paths passed as log arguments (e.g. ``django.request``)."""

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.args, tuple):
            record.args = tuple(
                redact_path(arg) if isinstance(arg, str) else arg for arg in record.args
            )
        return True


class CorrelationIdMiddleware:
    """Middleware that extracts or generates a correlation ID for each request.

    Reads X-Request-ID header from the incoming request. If absent or not
    a plain identifier, generates a new UUID4. The ID is bound to the
    structlog context for every log line of the request and returned via
    the X-Request-ID response header.
    """

    def __init__(self, get_response: Callable[[HttpRequest], HttpResponse]) -> None:
        self.get_response = get_response

    def __call__(self, request: HttpRequest) -> HttpResponse:
        incoming = request.META.get("HTTP_X_REQUEST_ID", "")
        cid = incoming if _REQUEST_ID_RE.match(incoming) else str(uuid.uuid4())

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(correlation_id=cid)

        path = redact_path(request.path)
        started = time.monotonic()
        logger.info("request_started", method=request.method, path=path)

        response = self.get_response(request)

        logger.info(
            "request_finished",
            method=request.method,
            path=path,
            status_code=response.status_code,
            duration_ms=round((time.monotonic() - started) * 1000, 2),
        )

        response["X-Request-ID"] = cid
        return response

"""SimpleCertifiedMail REST client.

Every call is a JSON POST carrying a bearer token obtained through the
password grant on ``/token``.  Tokens are cached in ``AccessTokenCache``
and refreshed an hour before the provider's 24 h lifetime runs out.

All requests carry ``SCM_TIMEOUT_SECONDS``; a timeout is a failure like
any other and surfaces as ``FulfillmentRequestError``.
"""

from __future__ import annotations

import base64
import binascii
import threading
import time
from functools import lru_cache
from typing import Any, Callable, Dict, Optional

import requests
import structlog
from django.conf import settings
from pydantic import ValidationError

from modules.fulfillment.dtos import (
    FulfillmentJob,
    ProofDocument,
    ProviderStatus,
    SubmissionResult,
    split_zip,
)
from modules.fulfillment.exceptions import (
    FulfillmentAuthenticationError,
    FulfillmentRejected,
    FulfillmentRequestError,
)

logger = structlog.get_logger(__name__)

TOKEN_PATH = "token"
QUEUE_PRINT_ITEM_PATH = "api/scm/queueprintitem"
DOCUMENT_STATUS_PATH = "api/scm/getdocumentstatusbydocid"

SUCCESS_STATUS_CODE = 1


class AccessTokenCache:
    """Thread-safe holder for a single bearer token and its expiry."""

    def __init__(
        self, ttl_seconds: int, clock: Callable[[], float] = time.monotonic
    ) -> None:
        self._ttl = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._token: Optional[str] = None
        self._expires_at = 0.0

    @property
    def lock(self) -> threading.Lock:
        return self._lock

    def get(self) -> Optional[str]:
        """Return the cached token, or ``None`` when absent or expired."""
        if self._token and self._clock() < self._expires_at:
            return self._token
        return None

    def store(self, token: str) -> None:
        self._token = token
        self._expires_at = self._clock() + self._ttl

    def clear(self) -> None:
        self._token = None
        self._expires_at = 0.0


class CertifiedMailClient:
    """Talks to the mail provider on behalf of order intake and the order page."""

    def __init__(
        self,
        base_url: str,
        username: str,
        password: str,
        partner_key: str,
        client_code: str,
        group_name: str = "default",
        live_mode: bool = False,
        timeout: float = 30,
        token_ttl_seconds: int = 23 * 60 * 60,
        session: Optional[requests.Session] = None,
        token_cache: Optional[AccessTokenCache] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._username = username
        self._password = password
        self._partner_key = partner_key
        self._client_code = client_code
        self.group_name = group_name
        self.live_mode = live_mode
        self._timeout = timeout
        self._session = session or requests.Session()
        self._tokens = token_cache or AccessTokenCache(token_ttl_seconds)

    @classmethod
    def from_settings(cls) -> CertifiedMailClient:
        return cls(
            base_url=settings.SCM_BASE_URL,
            username=settings.SCM_USERNAME,
            password=settings.SCM_PASSWORD,
            partner_key=settings.SCM_PARTNER_KEY,
            client_code=settings.SCM_CLIENT_CODE,
            group_name=settings.SCM_GROUP_NAME,
            live_mode=settings.SCM_LIVE_MODE,
            timeout=settings.SCM_TIMEOUT_SECONDS,
            token_ttl_seconds=settings.SCM_TOKEN_TTL_SECONDS,
        )

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    def authenticate(self) -> str:
        """Return a valid bearer token, requesting a new one when needed.

        Raises:
            FulfillmentAuthenticationError: the token request failed.
        """
        token = self._tokens.get()
        if token:
            return token

        with self._tokens.lock:
            # Another thread may have refreshed while we waited.
            token = self._tokens.get()
            if token:
                return token

            logger.info("fulfillment.token_requested")
            try:
                response = self._session.post(
                    self._url(TOKEN_PATH),
                    data={
                        "grant_type": "password",
                        "username": self._username,
                        "password": self._password,
                        "PartnerKey": self._partner_key,
                        "ClientCode": self._client_code,
                    },
                    headers={"Content-Type": "application/x-www-form-urlencoded"},
                    timeout=self._timeout,
                )
            except requests.RequestException as exc:
                logger.error("fulfillment.token_failed", error=str(exc))
                raise FulfillmentAuthenticationError(
                    f"Token request failed: {exc}"
                ) from exc

            if not response.ok:
                logger.error("fulfillment.token_failed", status_code=response.status_code)
                raise FulfillmentAuthenticationError(
                    f"Token request failed ({response.status_code})"
                )

            try:
                token = response.json()["access_token"]
            except (ValueError, KeyError, TypeError) as exc:
                raise FulfillmentAuthenticationError(
                    "Token response did not contain an access token"
                ) from exc
            if not token:
                raise FulfillmentAuthenticationError("Provider returned an empty token")

            self._tokens.store(token)
            logger.info("fulfillment.token_cached")
            return token

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def submit_job(self, job: FulfillmentJob) -> SubmissionResult:
        """Queue one certified letter for printing and mailing.

        Raises:
            FulfillmentAuthenticationError: no token could be obtained.
            FulfillmentRequestError: transport failure or non-2xx answer.
            FulfillmentRejected: the provider answered with a non-success code.
        """
        log = logger.bind(reference=job.reference)
        log.info("fulfillment.submit_started", page_count=job.page_count)

        data = self._post(QUEUE_PRINT_ITEM_PATH, self._job_payload(job))
        status_code = data.get("StatusCode")
        if status_code != SUCCESS_STATUS_CODE:
            message = data.get("StatusMessage") or "unknown error"
            log.warning(
                "fulfillment.submit_rejected",
                provider_code=status_code,
                provider_message=message,
            )
            raise FulfillmentRejected(
                f"Provider error {status_code}: {message}", provider_code=status_code
            )

        queue_id = data.get("QueueID")
        if queue_id in (None, ""):
            raise FulfillmentRejected("Provider accepted the job without a queue id")

        result = SubmissionResult(
            queue_id=str(queue_id),
            pic=data.get("PIC") or data.get("TrackingNumber") or None,
        )
        log.info(
            "fulfillment.submit_succeeded",
            queue_id=result.queue_id,
            tracking_number=result.tracking_number,
        )
        return result

    def get_status(self, queue_id: str) -> ProviderStatus:
        """Fetch the provider's current view of a queued job."""
        data = self._post(
            DOCUMENT_STATUS_PATH, {"ID": str(queue_id), "GroupName": self.group_name}
        )
        try:
            status = ProviderStatus.model_validate(data)
        except ValidationError as exc:
            raise FulfillmentRequestError(f"Unreadable status payload: {exc}") from exc
        logger.debug("fulfillment.status_fetched", queue_id=queue_id, status=status.keyword)
        return status

    def get_proof_document(self, queue_id: str, kind: str) -> Optional[ProofDocument]:
        """Download one proof PDF, or ``None`` when the provider has none yet."""
        blob = self.get_status(queue_id).document_for(kind)
        if not blob:
            return None
        try:
            content = base64.b64decode(blob, validate=False)
        except (binascii.Error, ValueError) as exc:
            raise FulfillmentRequestError(f"Corrupt {kind} document") from exc
        if not content:
            return None
        return ProofDocument(content=content, filename=f"{queue_id}-{kind}.pdf")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _url(self, path: str) -> str:
        return f"{self._base_url}/{path}"

    def _job_payload(self, job: FulfillmentJob) -> Dict[str, Any]:
        from_zip, from_zip4 = split_zip(job.sender_zip)
        to_zip, to_zip4 = split_zip(job.recipient_zip)
        return {
            "GroupName": self.group_name,
            "Mode": 1 if self.live_mode else 0,
            "TemplateName": job.reference,
            "FromName": job.sender_name,
            "FromAddress1": job.sender_street,
            "FromAddress2": job.sender_street2,
            "FromCity": job.sender_city,
            "FromState": job.sender_state,
            "FromZip": from_zip,
            "FromZip4": from_zip4,
            "FromEmail": job.sender_email,
            "ToName": job.recipient_name,
            "ToAddress1": job.recipient_street,
            "ToAddress2": job.recipient_street2,
            "ToCity": job.recipient_city,
            "ToState": job.recipient_state,
            "ToZip": to_zip,
            "ToZip4": to_zip4,
            "ToReference": job.reference,
            "RequestCertified": True,
            "TrackERR": job.return_receipt,
            "DateAdvance": 0,
            "Document": job.document_base64,
            "PageCount": job.page_count,
            "PODRecipientList": job.sender_email,
        }

    def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        token = self.authenticate()
        try:
            response = self._session.post(
                self._url(path),
                json=payload,
                headers={"Authorization": f"Bearer {token}"},
                timeout=self._timeout,
            )
        except requests.Timeout as exc:
            logger.warning("fulfillment.request_timeout", path=path)
            raise FulfillmentRequestError(f"{path} timed out") from exc
        except requests.RequestException as exc:
            logger.warning("fulfillment.request_failed", path=path, error=str(exc))
            raise FulfillmentRequestError(f"{path} failed: {exc}") from exc

        if response.status_code == 401:
            self._tokens.clear()
        if not response.ok:
            logger.warning(
                "fulfillment.request_failed", path=path, status_code=response.status_code
            )
            raise FulfillmentRequestError(
                f"{path} failed ({response.status_code})",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise FulfillmentRequestError(f"{path} returned invalid JSON") from exc
        if not isinstance(data, dict):
            raise FulfillmentRequestError(f"{path} returned an unexpected payload")
        return data


@lru_cache(maxsize=1)
def get_fulfillment_client() -> CertifiedMailClient:
    """Process-wide client so the token cache is shared."""
    return CertifiedMailClient.from_settings()

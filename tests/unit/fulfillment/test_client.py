"""Unit tests for the SimpleCertifiedMail client (HTTP session mocked)."""

import base64
from unittest.mock import MagicMock

import pytest
import requests

from modules.fulfillment.client import AccessTokenCache, CertifiedMailClient
from modules.fulfillment.dtos import FulfillmentJob
from modules.fulfillment.exceptions import (
    FulfillmentAuthenticationError,
    FulfillmentRejected,
    FulfillmentRequestError,
)

pytestmark = pytest.mark.unit

BASE_URL = "https://scm.example.test/RESTv4.0"


def _response(status_code=200, payload=None, json_error=False):
    response = MagicMock()
    response.status_code = status_code
    response.ok = 200 <= status_code < 300
    if json_error:
        response.json.side_effect = ValueError("not json")
    else:
        response.json.return_value = payload if payload is not None else {}
    return response


def _token_response(token="tok-1"):
    return _response(200, {"access_token": token, "token_type": "bearer"})


def _job(**overrides):
    data = {
        "sender_name": "Alice Sender",
        "sender_street": "1 Main St",
        "sender_city": "Springfield",
        "sender_state": "IL",
        "sender_zip": "62701-1234",
        "sender_email": "alice@example.com",
        "recipient_name": "Bob Recipient",
        "recipient_street": "2 Oak Ave",
        "recipient_street2": "Suite 5",
        "recipient_city": "Portland",
        "recipient_state": "OR",
        "recipient_zip": "97201",
        "document_base64": "JVBERi0xLjQK",
        "page_count": 3,
        "return_receipt": True,
        "reference": "order-42",
    }
    data.update(overrides)
    return FulfillmentJob(**data)


@pytest.fixture()
def session():
    return MagicMock(spec=requests.Session)


@pytest.fixture()
def client(session):
    return CertifiedMailClient(
        base_url=BASE_URL,
        username="user",
        password="pass",
        partner_key="partner",
        client_code="client",
        group_name="certified",
        live_mode=False,
        timeout=7,
        session=session,
    )


class TestAccessTokenCache:
    def test_empty_cache_returns_none(self):
        assert AccessTokenCache(ttl_seconds=60).get() is None

    def test_serves_token_until_expiry(self):
        now = [1000.0]
        cache = AccessTokenCache(ttl_seconds=60, clock=lambda: now[0])
        cache.store("abc")

        now[0] = 1059.0
        assert cache.get() == "abc"

        now[0] = 1060.0
        assert cache.get() is None

    def test_clear_drops_token(self):
        cache = AccessTokenCache(ttl_seconds=60)
        cache.store("abc")
        cache.clear()
        assert cache.get() is None


class TestAuthenticate:
    def test_requests_password_grant(self, client, session):
        session.post.return_value = _token_response()

        assert client.authenticate() == "tok-1"

        args, kwargs = session.post.call_args
        assert args[0] == f"{BASE_URL}/token"
        assert kwargs["data"] == {
            "grant_type": "password",
            "username": "user",
            "password": "pass",
            "PartnerKey": "partner",
            "ClientCode": "client",
        }
        assert kwargs["timeout"] == 7

    def test_token_is_cached(self, client, session):
        session.post.return_value = _token_response()

        client.authenticate()
        client.authenticate()

        assert session.post.call_count == 1

    def test_expired_token_is_refreshed(self, session):
        now = [0.0]
        cache = AccessTokenCache(ttl_seconds=100, clock=lambda: now[0])
        client = CertifiedMailClient(
            BASE_URL, "u", "p", "k", "c", session=session, token_cache=cache
        )
        session.post.side_effect = [_token_response("first"), _token_response("second")]

        assert client.authenticate() == "first"
        now[0] = 101.0
        assert client.authenticate() == "second"

    def test_rejected_credentials_raise(self, client, session):
        session.post.return_value = _response(400, {"error": "invalid_grant"})

        with pytest.raises(FulfillmentAuthenticationError):
            client.authenticate()

    def test_network_error_raises_authentication_error(self, client, session):
        session.post.side_effect = requests.ConnectionError("refused")

        with pytest.raises(FulfillmentAuthenticationError):
            client.authenticate()

    def test_missing_access_token_raises(self, client, session):
        session.post.return_value = _response(200, {"token_type": "bearer"})

        with pytest.raises(FulfillmentAuthenticationError):
            client.authenticate()


class TestSubmitJob:
    def test_success_returns_queue_id_and_pic(self, client, session):
        session.post.side_effect = [
            _token_response(),
            _response(200, {"StatusCode": 1, "QueueID": 777, "PIC": "9407000000000001"}),
        ]

        result = client.submit_job(_job())

        assert result.queue_id == "777"
        assert result.pic == "9407000000000001"
        assert result.tracking_number == "9407000000000001"

    def test_missing_pic_uses_queue_placeholder(self, client, session):
        session.post.side_effect = [
            _token_response(),
            _response(200, {"StatusCode": 1, "QueueID": 778}),
        ]

        assert client.submit_job(_job()).tracking_number == "Q778"

    def test_payload_fields(self, client, session):
        session.post.side_effect = [
            _token_response(),
            _response(200, {"StatusCode": 1, "QueueID": 1}),
        ]

        client.submit_job(_job())

        args, kwargs = session.post.call_args
        assert args[0] == f"{BASE_URL}/api/scm/queueprintitem"
        assert kwargs["headers"]["Authorization"] == "Bearer tok-1"
        assert kwargs["timeout"] == 7
        body = kwargs["json"]
        assert body["GroupName"] == "certified"
        assert body["Mode"] == 0
        assert body["TemplateName"] == "order-42"
        assert body["ToReference"] == "order-42"
        assert body["FromZip"] == "62701"
        assert body["FromZip4"] == "1234"
        assert body["ToZip"] == "97201"
        assert body["ToZip4"] == ""
        assert body["ToAddress2"] == "Suite 5"
        assert body["RequestCertified"] is True
        assert body["TrackERR"] is True
        assert body["DateAdvance"] == 0
        assert body["PageCount"] == 3
        assert body["PODRecipientList"] == "alice@example.com"

    def test_live_mode_sets_mode_one(self, session):
        client = CertifiedMailClient(BASE_URL, "u", "p", "k", "c", live_mode=True, session=session)
        session.post.side_effect = [
            _token_response(),
            _response(200, {"StatusCode": 1, "QueueID": 1}),
        ]

        client.submit_job(_job())

        assert session.post.call_args.kwargs["json"]["Mode"] == 1

    def test_non_success_status_code_raises_rejected(self, client, session):
        session.post.side_effect = [
            _token_response(),
            _response(200, {"StatusCode": 2, "StatusMessage": "Invalid address"}),
        ]

        with pytest.raises(FulfillmentRejected) as exc_info:
            client.submit_job(_job())

        assert exc_info.value.provider_code == 2
        assert "Invalid address" in str(exc_info.value)

    def test_http_error_raises_request_error(self, client, session):
        session.post.side_effect = [_token_response(), _response(500)]

        with pytest.raises(FulfillmentRequestError) as exc_info:
            client.submit_job(_job())

        assert exc_info.value.status_code == 500

    def test_timeout_raises_request_error(self, client, session):
        session.post.side_effect = [_token_response(), requests.Timeout("slow")]

        with pytest.raises(FulfillmentRequestError):
            client.submit_job(_job())

    def test_invalid_json_raises_request_error(self, client, session):
        session.post.side_effect = [_token_response(), _response(200, json_error=True)]

        with pytest.raises(FulfillmentRequestError):
            client.submit_job(_job())

    def test_unauthorized_clears_cached_token(self, client, session):
        session.post.side_effect = [
            _token_response("stale"),
            _response(401),
            _token_response("fresh"),
            _response(200, {"StatusCode": 1, "QueueID": 9}),
        ]

        with pytest.raises(FulfillmentRequestError):
            client.submit_job(_job())
        client.submit_job(_job())

        assert session.post.call_args.kwargs["headers"]["Authorization"] == "Bearer fresh"


class TestStatusAndProofs:
    def test_get_status_posts_id_and_group(self, client, session):
        session.post.side_effect = [
            _token_response(),
            _response(200, {"Status": "In Transit", "StatusMessage": "Departed facility"}),
        ]

        status = client.get_status("321")

        assert status.keyword == "In Transit"
        assert status.detail == "Departed facility"
        args, kwargs = session.post.call_args
        assert args[0] == f"{BASE_URL}/api/scm/getdocumentstatusbydocid"
        assert kwargs["json"] == {"ID": "321", "GroupName": "certified"}

    def test_get_proof_document_decodes_blob(self, client, session):
        pdf = b"%PDF-1.4 delivery proof"
        session.post.side_effect = [
            _token_response(),
            _response(200, {"Status": "Delivered", "DeliveryDocument": base64.b64encode(pdf).decode()}),
        ]

        document = client.get_proof_document("321", "delivery")

        assert document.content == pdf
        assert document.filename == "321-delivery.pdf"
        assert document.content_type == "application/pdf"

    def test_get_proof_document_missing_returns_none(self, client, session):
        session.post.side_effect = [_token_response(), _response(200, {"Status": "Queued"})]

        assert client.get_proof_document("321", "signature") is None

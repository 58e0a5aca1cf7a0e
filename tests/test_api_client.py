"""Tests for TurboUploadAPI with mocked HTTP."""

import hashlib
import io
import json
from decimal import Decimal
from unittest.mock import MagicMock, patch

import httpx
import pytest

from permadeploy.api.client import TurboUploadAPI
from permadeploy.auth.signer import create_signer
from permadeploy.funding import OnDemandFunding


@pytest.fixture
def mock_httpx_client():
    """Patch httpx.Client so requests return controlled responses."""
    with patch("permadeploy.api.client.httpx.Client") as MockClient:
        yield MockClient


@pytest.fixture
def no_sleep():
    with patch("permadeploy.api.client.time.sleep") as sleep:
        yield sleep


def _response(status_code: int = 200, json_data=None, headers=None) -> MagicMock:
    r = MagicMock()
    r.status_code = status_code
    r.reason_phrase = "Too Many Requests" if status_code == 429 else "OK"
    r.headers = headers or {}
    r.json.return_value = json_data if json_data is not None else {}
    return r


def _client_instance(mock_httpx_client) -> MagicMock:
    instance = MagicMock()
    mock_httpx_client.return_value.__enter__.return_value = instance
    mock_httpx_client.return_value.__exit__.return_value = False
    return instance


def _api() -> TurboUploadAPI:
    signer = create_signer("ethereum", "0xdeadbeef")
    return TurboUploadAPI(signer, "https://upload.test/", "https://payment.test")


def test_upload_file_posts_stream_with_signed_headers(mock_httpx_client) -> None:
    """upload_file() POSTs the body to /v1/tx/{token} with tags and signature headers."""
    instance = _client_instance(mock_httpx_client)
    bodies = []

    def post(url, **kwargs):
        bodies.append(b"".join(kwargs["content"]))
        return _response(200, {"id": "tx-1"})

    instance.post.side_effect = post
    body = b"<h1>hi</h1>"
    tags = [{"name": "Content-Type", "value": "text/html"}]

    result = _api().upload_file(
        stream_factory=lambda: io.BytesIO(body), size_factory=lambda: len(body), tags=tags,
    )

    assert result == {"id": "tx-1"}
    assert bodies == [body]
    url = instance.post.call_args[0][0]
    assert url == "https://upload.test/v1/tx/ethereum"
    headers = instance.post.call_args[1]["headers"]
    assert headers["Content-Length"] == str(len(body))
    assert json.loads(headers["x-tags"]) == tags
    assert headers["x-signature"].startswith("sha256=")
    assert {"x-key-id", "x-nonce"} <= set(headers)
    assert instance.post.call_args[1]["params"] is None


def test_upload_file_sends_funding_params(mock_httpx_client) -> None:
    """An on-demand funding mode is sent as query parameters."""
    instance = _client_instance(mock_httpx_client)
    instance.post.return_value = _response(200, {"id": "tx-1"})
    funding = OnDemandFunding(token_type="ario", max_token_amount=Decimal("2.5"))

    _api().upload_file(
        stream_factory=lambda: io.BytesIO(b"x"), size_factory=lambda: 1, tags=[], funding_mode=funding,
    )

    assert instance.post.call_args[1]["params"] == {
        "onDemand": "ario", "maxTokenAmount": "2.5", "topUpBufferMultiplier": "1.1",
    }


def test_upload_file_size_mismatch_raises(mock_httpx_client) -> None:
    """A stream that does not match size_factory is rejected before any request."""
    instance = _client_instance(mock_httpx_client)
    with pytest.raises(ValueError, match="expected 10"):
        _api().upload_file(stream_factory=lambda: io.BytesIO(b"abc"), size_factory=lambda: 10, tags=[])
    instance.post.assert_not_called()


def test_upload_file_retries_on_429(mock_httpx_client, no_sleep) -> None:
    """429 is retried after Retry-After seconds, then the success is returned."""
    instance = _client_instance(mock_httpx_client)
    instance.post.side_effect = [
        _response(429, headers={"Retry-After": "3"}),
        _response(200, {"id": "tx-2"}),
    ]
    result = _api().upload_file(stream_factory=lambda: io.BytesIO(b"x"), size_factory=lambda: 1, tags=[])
    assert result == {"id": "tx-2"}
    assert instance.post.call_count == 2
    no_sleep.assert_called_once_with(3)


def test_upload_file_retries_on_503_with_backoff(mock_httpx_client, no_sleep) -> None:
    """5xx retries use exponential backoff."""
    instance = _client_instance(mock_httpx_client)
    instance.post.side_effect = [_response(503), _response(502), _response(200, {"id": "tx-3"})]
    _api().upload_file(stream_factory=lambda: io.BytesIO(b"x"), size_factory=lambda: 1, tags=[])
    assert [c[0][0] for c in no_sleep.call_args_list] == [2, 4]


def test_upload_file_retries_on_timeout_then_raises(mock_httpx_client, no_sleep) -> None:
    """Timeouts are retried; the last one propagates."""
    instance = _client_instance(mock_httpx_client)
    instance.post.side_effect = httpx.ReadTimeout("slow")
    with pytest.raises(httpx.TimeoutException):
        _api().upload_file(stream_factory=lambda: io.BytesIO(b"x"), size_factory=lambda: 1, tags=[])
    assert instance.post.call_count == 5
    assert [c[0][0] for c in no_sleep.call_args_list] == [10, 20, 30, 40]


def test_upload_file_http_error_propagates(mock_httpx_client) -> None:
    """Non-retryable HTTP errors propagate from raise_for_status."""
    instance = _client_instance(mock_httpx_client)
    response = _response(400)
    response.raise_for_status.side_effect = httpx.HTTPStatusError("bad", request=MagicMock(), response=MagicMock())
    instance.post.return_value = response
    with pytest.raises(httpx.HTTPStatusError):
        _api().upload_file(stream_factory=lambda: io.BytesIO(b"x"), size_factory=lambda: 1, tags=[])
    assert instance.post.call_count == 1


def test_upload_file_signature_covers_body_digest(mock_httpx_client) -> None:
    """The signature is computed over the SHA-256 of the streamed body."""
    instance = _client_instance(mock_httpx_client)
    instance.post.return_value = _response(200, {"id": "tx"})
    api = _api()
    with patch.object(type(api._signer), "sign_headers", autospec=True, return_value={}) as sign:
        api.upload_file(stream_factory=lambda: io.BytesIO(b"payload"), size_factory=lambda: 7, tags=[])
    assert sign.call_args[0][1] == hashlib.sha256(b"payload").hexdigest()


def test_get_upload_costs(mock_httpx_client) -> None:
    """get_upload_costs() GETs /v1/price/bytes/{n} per byte count."""
    instance = _client_instance(mock_httpx_client)
    instance.get.side_effect = [_response(200, {"winc": "100"}), _response(200, {"winc": "200"})]
    quotes = _api().get_upload_costs([10, 20])
    assert [q["winc"] for q in quotes] == ["100", "200"]
    assert instance.get.call_args_list[0][0][0] == "https://payment.test/v1/price/bytes/10"


def test_get_balance_signed(mock_httpx_client) -> None:
    """get_balance() GETs /v1/balance with signature headers."""
    instance = _client_instance(mock_httpx_client)
    instance.get.return_value = _response(200, {"winc": "999"})
    assert _api().get_balance() == {"winc": "999"}
    assert instance.get.call_args[0][0] == "https://payment.test/v1/balance"
    assert "x-signature" in instance.get.call_args[1]["headers"]

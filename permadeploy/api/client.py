"""HTTP client for the upload and payment services."""

import hashlib
import json
import logging
import time
from typing import Any, BinaryIO, Callable, Dict, Iterator, List, Optional, Protocol, Sequence, Tuple

import httpx

from permadeploy.auth.signer import Signer

log = logging.getLogger(__name__)

Tag = Dict[str, str]


class UploadClient(Protocol):
    """
    What the uploader needs from an upload backend. stream_factory returns a fresh
    binary stream each time it is called; the client closes it. The result must carry
    the new transaction ID under "id".
    """

    def upload_file(
        self,
        *,
        stream_factory: Callable[[], BinaryIO],
        size_factory: Callable[[], int],
        tags: Sequence[Tag],
        funding_mode: Optional[Any] = None,
        timeout: Optional[float] = None,
    ) -> Dict[str, Any]:
        ...


class TurboUploadAPI:
    """
    Client for the upload service (signed data uploads) and the payment service
    (price quotes, credit balance). Requests are authenticated with signer headers.
    """

    def __init__(
        self,
        signer: Signer,
        upload_url: str,
        payment_url: str,
        timeout: float = 600.0,
    ) -> None:
        self._signer = signer
        self._upload_url = upload_url.rstrip("/")
        self._payment_url = payment_url.rstrip("/")
        self._timeout = timeout
        log.debug("Upload client upload_url=%s payment_url=%s token=%s", self._upload_url, self._payment_url, signer.token)

    @property
    def token(self) -> str:
        return self._signer.token

    def upload_file(
        self,
        *,
        stream_factory: Callable[[], BinaryIO],
        size_factory: Callable[[], int],
        tags: Sequence[Tag],
        funding_mode: Optional[Any] = None,
        timeout: Optional[float] = None,
    ) -> Dict[str, Any]:
        """
        POST /v1/tx/{token} with the payload. The stream is read twice (digest for the
        signature, then the body), never held in memory. Retries on 429/502/503 and on
        timeout. Returns {id, ...}.
        """
        size = size_factory()
        with stream_factory() as stream:
            digest, streamed = _stream_digest(stream)
        if streamed != size:
            raise ValueError(f"Upload stream yielded {streamed} bytes, expected {size}")
        params = funding_mode.as_params() if funding_mode is not None else None
        request_timeout = timeout if timeout is not None else self._timeout
        log.debug("upload_file size=%d digest=%s", size, digest)
        max_attempts = 5  # 429 needs more retries (wait for rate-limit window to reset)
        for attempt in range(max_attempts):
            headers = {
                "Content-Type": "application/octet-stream",
                "Content-Length": str(size),
                "Accept": "application/json",
                "x-tags": json.dumps(list(tags)),
                **self._signer.sign_headers(digest),
            }
            try:
                with stream_factory() as stream, httpx.Client(timeout=request_timeout) as client:
                    r = client.post(
                        f"{self._upload_url}/v1/tx/{self._signer.token}",
                        content=_iter_chunks(stream),
                        params=params,
                        headers=headers,
                    )
                    if r.status_code in (429, 502, 503) and attempt < max_attempts - 1:
                        delay = _retry_delay(r, attempt)
                        log.warning(
                            "Upload %s: %s %s, retry in %ds (attempt %d/%d)",
                            digest[:12], r.status_code, r.reason_phrase, delay, attempt + 1, max_attempts,
                        )
                        time.sleep(delay)
                        continue
                    r.raise_for_status()
                    return r.json()
            except httpx.TimeoutException:
                if attempt < max_attempts - 1:
                    delay = 10 * (attempt + 1)  # 10s, 20s, 30s
                    log.warning(
                        "Upload %s: timeout, retry in %ds (attempt %d/%d)",
                        digest[:12], delay, attempt + 1, max_attempts,
                    )
                    time.sleep(delay)
                    continue
                raise

    def get_upload_costs(self, byte_counts: Sequence[int]) -> List[Dict[str, Any]]:
        """GET /v1/price/bytes/{n} for each count. Each quote has "winc" (string)."""
        quotes: List[Dict[str, Any]] = []
        with httpx.Client(timeout=30.0) as client:
            for n in byte_counts:
                r = client.get(
                    f"{self._payment_url}/v1/price/bytes/{n}",
                    headers={"Accept": "application/json"},
                )
                r.raise_for_status()
                quotes.append(r.json())
        log.debug("get_upload_costs %s -> %s", list(byte_counts), [q.get("winc") for q in quotes])
        return quotes

    def get_balance(self) -> Dict[str, Any]:
        """GET /v1/balance for the signer. Returns {"winc": ...}."""
        headers = {"Accept": "application/json", **self._signer.sign_headers("")}
        with httpx.Client(timeout=30.0) as client:
            r = client.get(f"{self._payment_url}/v1/balance", headers=headers)
            r.raise_for_status()
            return r.json()


_CHUNK_SIZE = 1024 * 1024


def _stream_digest(stream: BinaryIO) -> Tuple[str, int]:
    """SHA-256 hex digest and byte count of a stream."""
    h = hashlib.sha256()
    total = 0
    for chunk in _iter_chunks(stream):
        h.update(chunk)
        total += len(chunk)
    return h.hexdigest(), total


def _iter_chunks(stream: BinaryIO) -> Iterator[bytes]:
    for chunk in iter(lambda: stream.read(_CHUNK_SIZE), b""):
        yield chunk


def _retry_delay(response: httpx.Response, attempt: int) -> int:
    """Seconds to wait before retrying: Retry-After (capped) for 429, exponential for 5xx."""
    if response.status_code == 429:
        retry_after = response.headers.get("Retry-After")
        if retry_after and retry_after.isdigit():
            return min(65, int(retry_after))
        return 65
    return 2 * (2 ** attempt)

"""HTTP client for the ArNS name registry: look up a name, point an undername at a transaction."""

import hashlib
import json
import logging
from typing import Any, Dict, Optional, Sequence
from urllib.parse import quote

import httpx

from permadeploy.auth.signer import Signer

log = logging.getLogger(__name__)


class RecordNotFoundError(LookupError):
    """The ArNS name is not registered."""


class NameRegistryAPI:
    """
    Client for the registry gateway: read ArNS records and update ANT records.
    Writes are signed with the deploy signer.
    """

    def __init__(self, signer: Signer, registry_url: str, ario_process: str) -> None:
        self._signer = signer
        self._registry_url = registry_url.rstrip("/")
        self._ario_process = ario_process
        log.debug("Registry client registry_url=%s ario_process=%s", self._registry_url, ario_process)

    def get_record(self, name: str) -> Dict[str, Any]:
        """GET /v1/arns/records/{name}. Returns {processId, type, ...}; RecordNotFoundError on 404."""
        log.debug("get_record name=%s", name)
        with httpx.Client(timeout=30.0) as client:
            r = client.get(
                f"{self._registry_url}/v1/arns/records/{quote(name, safe='')}",
                params={"process": self._ario_process},
                headers={"Accept": "application/json"},
            )
            if r.status_code == 404:
                raise RecordNotFoundError(f"ArNS name [{name}] does not exist")
            r.raise_for_status()
            data = r.json()
        if not data.get("processId"):
            raise RecordNotFoundError(f"ArNS name [{name}] has no ANT process")
        return data

    def set_record(
        self,
        process_id: str,
        undername: str,
        transaction_id: str,
        ttl_seconds: int,
        tags: Optional[Sequence[Dict[str, str]]] = None,
    ) -> Dict[str, Any]:
        """POST /v1/ant/{process_id}/records: point undername ("@" = root) at transaction_id."""
        payload = {
            "undername": undername,
            "transactionId": transaction_id,
            "ttlSeconds": ttl_seconds,
            "tags": list(tags or []),
        }
        body = json.dumps(payload, separators=(",", ":")).encode("utf-8")
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            **self._signer.sign_headers(hashlib.sha256(body).hexdigest()),
        }
        log.debug("set_record process_id=%s undername=%s tx=%s ttl=%d", process_id, undername, transaction_id, ttl_seconds)
        with httpx.Client(timeout=60.0) as client:
            r = client.post(
                f"{self._registry_url}/v1/ant/{quote(process_id, safe='')}/records",
                content=body,
                headers=headers,
            )
            r.raise_for_status()
            return r.json()

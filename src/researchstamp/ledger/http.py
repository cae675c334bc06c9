"""
REST client for a remote ledger node.

The node exposes the research registry over HTTP:

    POST /records            submit {address, data_hash, description, signature}
    GET  /records/{address}  the record held for an identity (404 or
                             RESEARCH_NOT_FOUND if none)
    GET  /records/count      {"count": n}
    POST /faucet             fund an identity on development networks

Calls go through requests in a worker thread so they suspend the event
loop instead of blocking it. Connection failures, timeouts, 5xx answers
and unparseable bodies raise TransportError; 4xx answers are business
outcomes (rejections, not-found).
"""

import asyncio
import logging
from typing import Any, Dict, Optional

import requests

from researchstamp.core.errors import ErrorKind, TransportError
from researchstamp.core.record import ResearchRecord
from researchstamp.ledger.base import (
    ABORT_ALREADY_EXISTS,
    ABORT_NOT_FOUND,
    LedgerClient,
    LedgerReceipt,
)
from researchstamp.ledger.local import FAUCET_AMOUNT

logger = logging.getLogger(__name__)


def _record_from_payload(address: str, data: Dict[str, Any]) -> ResearchRecord:
    return ResearchRecord(
        id=str(data.get("id") or address),
        researcher_address=data.get("researcher_address", address),
        data_hash=data["data_hash"],
        submission_time=int(data["submission_time"]),
        description=data["description"],
        is_verified=bool(data.get("is_verified", False)),
        verification_time=(
            int(data["verification_time"]) if data.get("verification_time") is not None else None
        ),
    )


class HttpLedgerClient(LedgerClient):
    """
    LedgerClient talking to a ledger node over HTTP.

    Attributes:
        base_url: Node URL without trailing slash.
        network: Network name reported to callers.
        timeout: Per-request timeout in seconds.

    Example:
        >>> client = HttpLedgerClient("https://ledger.example.org", timeout=10)
        >>> await client.get_total_count()
        42
    """

    def __init__(
        self,
        base_url: str,
        network: str = "testnet",
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        if not base_url:
            raise ValueError("base_url is required")
        self.base_url = base_url.rstrip("/")
        self.network = network
        self.timeout = timeout
        self._session = session or requests.Session()

    def _request(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        url = f"{self.base_url}{path}"
        try:
            response = self._session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise TransportError(f"ledger request {method} {path} failed: {e}") from e
        if response.status_code >= 500:
            raise TransportError(f"ledger answered {response.status_code} to {method} {path}")
        return response

    async def _call(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        return await asyncio.to_thread(self._request, method, path, **kwargs)

    @staticmethod
    def _json(response: requests.Response) -> Dict[str, Any]:
        try:
            body = response.json()
        except ValueError as e:
            raise TransportError(f"ledger returned a non-JSON body ({response.status_code})") from e
        if not isinstance(body, dict):
            raise TransportError("ledger returned an unexpected body shape")
        return body

    async def submit(
        self,
        address: str,
        data_hash: str,
        description: str,
        signature: Optional[str] = None,
    ) -> LedgerReceipt:
        payload = {
            "address": address,
            "data_hash": data_hash,
            "description": description,
            "signature": signature,
        }
        response = await self._call("POST", "/records", json=payload)

        if response.status_code == 409:
            try:
                body = self._json(response) if response.content else {}
            except TransportError:
                body = {}
            return LedgerReceipt(
                False,
                error_kind=ErrorKind.DUPLICATE,
                message=body.get("error") or ABORT_ALREADY_EXISTS,
            )

        body = self._json(response)
        if response.ok and body.get("success", True):
            timestamp = body.get("timestamp")
            try:
                timestamp = int(timestamp) if timestamp is not None else None
            except (TypeError, ValueError) as e:
                raise TransportError(f"ledger returned a malformed timestamp: {timestamp!r}") from e
            return LedgerReceipt(
                True,
                timestamp=timestamp,
                message=body.get("vm_status", ""),
                transaction_id=body.get("transaction_id") or body.get("hash"),
            )

        message = body.get("error") or body.get("vm_status") or f"HTTP {response.status_code}"
        logger.debug("Ledger node rejected submission for %s: %s", address, message)
        return LedgerReceipt(
            False,
            message=message,
            transaction_id=body.get("transaction_id") or body.get("hash"),
        )

    async def get_record(self, address: str) -> Optional[ResearchRecord]:
        response = await self._call("GET", f"/records/{address}")
        if response.status_code == 404:
            return None
        body = self._json(response)
        if body.get("error") == ABORT_NOT_FOUND:
            return None
        try:
            return _record_from_payload(address, body)
        except (KeyError, TypeError, ValueError) as e:
            raise TransportError(f"ledger returned a malformed record for {address}: {e}") from e

    async def get_total_count(self) -> int:
        response = await self._call("GET", "/records/count")
        if response.status_code == 404:
            return 0
        body = self._json(response)
        try:
            return int(body.get("count", 0))
        except (TypeError, ValueError) as e:
            raise TransportError(f"ledger returned a malformed count: {e}") from e

    async def fund_identity(self, address: str) -> bool:
        response = await self._call(
            "POST", "/faucet", json={"address": address, "amount": FAUCET_AMOUNT}
        )
        if not response.ok:
            logger.warning("Faucet refused %s: HTTP %d", address, response.status_code)
            return False
        return True

    async def close(self) -> None:
        await asyncio.to_thread(self._session.close)

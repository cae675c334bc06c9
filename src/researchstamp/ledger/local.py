"""
Local development ledger and wallet.

LocalLedger behaves like the on-chain registry the submission core
targets: one record per identity, ledger-assigned timestamps, a faucet on
development networks and a verification authority. It keeps its state in
memory and, when given a key-value store, persists it between runs so the
CLI can be used without a remote node.

StaticWallet stands in for a browser or hardware wallet holding one fixed
identity.
"""

import asyncio
import json
import logging
import time
from typing import Any, Callable, Dict, Optional

from researchstamp.core.errors import ErrorKind, TransportError, ValidationError
from researchstamp.core.fingerprint import (
    combined_fingerprint,
    hash_dict,
    is_valid_address,
    is_valid_hash,
)
from researchstamp.core.record import ResearchRecord
from researchstamp.ledger.base import (
    ABORT_ALREADY_EXISTS,
    ABORT_INSUFFICIENT_FUNDS,
    ABORT_INVALID_HASH,
    LedgerClient,
    LedgerReceipt,
    WalletProvider,
)
from researchstamp.storage.store import KeyValueStore

logger = logging.getLogger(__name__)

LEDGER_KEY = "ledger"
FAUCET_AMOUNT = 100_000_000
SUBMISSION_FEE = 1_000
DEV_NETWORKS = ("testnet", "devnet", "local")


class LocalLedger(LedgerClient):
    """
    In-process ledger enforcing at most one record per identity.

    Attributes:
        network: Network name; the faucet only works on development networks.
        require_funds: When True, each submission costs SUBMISSION_FEE and an
            unfunded identity is rejected with "insufficient funds".
        offline: When True every call raises TransportError.
    """

    def __init__(
        self,
        network: str = "testnet",
        store: Optional[KeyValueStore] = None,
        clock: Callable[[], float] = time.time,
        latency: float = 0.0,
        require_funds: bool = False,
    ) -> None:
        self.network = network
        self.require_funds = require_funds
        self.offline = False
        self._store = store
        self._clock = clock
        self._latency = latency
        self._records: Dict[str, ResearchRecord] = {}
        self._balances: Dict[str, int] = {}
        self.submission_attempts = 0
        if store is not None:
            self._load()

    async def _roundtrip(self) -> None:
        await asyncio.sleep(self._latency)
        if self.offline:
            raise TransportError("ledger node is offline")

    def _load(self) -> None:
        try:
            blob = self._store.load(LEDGER_KEY)
        except TransportError as e:
            logger.warning("Local ledger state unavailable, starting empty: %s", e)
            return
        if blob is None:
            return
        try:
            payload = json.loads(blob)
            for item in payload.get("records", []):
                record = ResearchRecord.from_dict(item)
                self._records[record.researcher_address.lower()] = record
            self._balances = {k: int(v) for k, v in payload.get("balances", {}).items()}
        except (json.JSONDecodeError, AttributeError, KeyError, TypeError, ValueError) as e:
            logger.warning("Discarding unreadable local ledger state: %s", e)
            self._records.clear()
            self._balances.clear()

    def _save(self) -> None:
        if self._store is None:
            return
        payload = {
            "version": 1,
            "records": [r.to_dict() for r in self._records.values()],
            "balances": self._balances,
        }
        self._store.save(LEDGER_KEY, json.dumps(payload, sort_keys=True))

    async def submit(
        self,
        address: str,
        data_hash: str,
        description: str,
        signature: Optional[str] = None,
    ) -> LedgerReceipt:
        await self._roundtrip()
        self.submission_attempts += 1
        key = address.lower()

        if not is_valid_hash(data_hash):
            return LedgerReceipt(False, error_kind=ErrorKind.VALIDATION, message=f"Move abort: {ABORT_INVALID_HASH}")
        if key in self._records:
            return LedgerReceipt(False, error_kind=ErrorKind.DUPLICATE, message=f"Move abort: {ABORT_ALREADY_EXISTS}")

        timestamp = int(self._clock())
        try:
            record = ResearchRecord(
                id=address,
                researcher_address=address,
                data_hash=data_hash,
                submission_time=timestamp,
                description=description,
            )
        except ValueError as e:
            return LedgerReceipt(False, error_kind=ErrorKind.VALIDATION, message=str(e))

        if self.require_funds:
            balance = self._balances.get(key, 0)
            if balance < SUBMISSION_FEE:
                return LedgerReceipt(False, error_kind=ErrorKind.VALIDATION, message=ABORT_INSUFFICIENT_FUNDS)
            self._balances[key] = balance - SUBMISSION_FEE

        self._records[key] = record
        self._save()
        transaction_id = combined_fingerprint(address, data_hash, str(timestamp), signature or "")
        logger.debug("Local ledger committed %s at %d", address, timestamp)
        return LedgerReceipt(True, timestamp=timestamp, message="Executed successfully", transaction_id=transaction_id)

    async def get_record(self, address: str) -> Optional[ResearchRecord]:
        await self._roundtrip()
        return self._records.get(address.lower())

    async def get_total_count(self) -> int:
        await self._roundtrip()
        return len(self._records)

    async def fund_identity(self, address: str) -> bool:
        await self._roundtrip()
        if self.network not in DEV_NETWORKS:
            logger.warning("Funding is only available on development networks, not %s", self.network)
            return False
        key = address.lower()
        self._balances[key] = self._balances.get(key, 0) + FAUCET_AMOUNT
        self._save()
        return True

    def balance(self, address: str) -> int:
        return self._balances.get(address.lower(), 0)

    def verify(self, address: str, verified_at: Optional[int] = None) -> ResearchRecord:
        """
        Mark the record for address as verified.

        This is the verification authority; nothing in the submission core
        flips is_verified by itself.

        Raises:
            LookupError: If the ledger has no record for address.
        """
        key = address.lower()
        record = self._records.get(key)
        if record is None:
            raise LookupError(f"no research record for {address}")
        when = int(self._clock()) if verified_at is None else int(verified_at)
        verified = ResearchRecord(
            id=record.id,
            researcher_address=record.researcher_address,
            data_hash=record.data_hash,
            submission_time=record.submission_time,
            description=record.description,
            is_verified=True,
            verification_time=max(when, record.submission_time),
        )
        self._records[key] = verified
        self._save()
        return verified


class StaticWallet(WalletProvider):
    """Wallet holding one fixed identity, or none when disconnected."""

    def __init__(self, identity: Optional[str] = None) -> None:
        if identity is not None and not is_valid_address(identity):
            raise ValueError("identity must be 0x followed by 64 hex characters")
        self._identity = identity

    def connect(self, identity: str) -> None:
        if not is_valid_address(identity):
            raise ValueError("identity must be 0x followed by 64 hex characters")
        self._identity = identity

    def disconnect(self) -> None:
        self._identity = None

    def get_active_identity(self) -> Optional[str]:
        return self._identity

    def authorize_submission(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        if self._identity is None:
            raise ValidationError("no active identity")
        signed = dict(payload)
        signed["signer"] = self._identity
        signed["signature"] = combined_fingerprint(self._identity, hash_dict(payload))
        return signed

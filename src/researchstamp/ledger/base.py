"""
Interfaces of the external collaborators the submission core talks to.

The ledger is the system of record: it enforces one record per identity
and assigns confirmation timestamps. The wallet holds the active identity
and signs submissions. Neither is implemented by the core itself; see
researchstamp.ledger.local and researchstamp.ledger.http for concrete
clients.
"""

import abc
from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional

from researchstamp.core.errors import ErrorKind
from researchstamp.core.record import ResearchRecord

# Abort codes reported by the ledger in rejection messages.
ABORT_ALREADY_EXISTS = "RESEARCH_ALREADY_EXISTS"
ABORT_INVALID_HASH = "INVALID_DATA_HASH"
ABORT_NOT_FOUND = "RESEARCH_NOT_FOUND"
ABORT_INSUFFICIENT_FUNDS = "insufficient funds"


@dataclass(frozen=True)
class LedgerReceipt:
    """
    Raw answer of the ledger to one submission.

    Attributes:
        success: Whether the ledger committed the submission.
        timestamp: Ledger confirmation time in seconds since epoch, set on
            success only.
        error_kind: Classification the ledger client could already make,
            if any.
        message: Ledger status text (abort code, VM status, ...).
        transaction_id: Ledger transaction identifier, if any.
    """

    success: bool
    timestamp: Optional[int] = None
    error_kind: Optional[ErrorKind] = None
    message: str = ""
    transaction_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result = asdict(self)
        result["error_kind"] = self.error_kind.value if self.error_kind else None
        return result


class LedgerClient(abc.ABC):
    """
    Ledger collaborator.

    All calls may suspend. Transport failures raise TransportError;
    business-rule rejections come back as an unsuccessful LedgerReceipt.
    """

    network: str = "testnet"

    @abc.abstractmethod
    async def submit(
        self,
        address: str,
        data_hash: str,
        description: str,
        signature: Optional[str] = None,
    ) -> LedgerReceipt:
        """Submit a fingerprint for an identity, with the wallet signature if any."""

    @abc.abstractmethod
    async def get_record(self, address: str) -> Optional[ResearchRecord]:
        """Return the record held for address, or None if there is none."""

    @abc.abstractmethod
    async def get_total_count(self) -> int:
        """Return the number of records the ledger holds."""

    @abc.abstractmethod
    async def fund_identity(self, address: str) -> bool:
        """Fund an identity with test tokens; development networks only."""

    async def close(self) -> None:
        """Release client resources."""


class WalletProvider(abc.ABC):
    """Wallet collaborator holding the active identity."""

    @abc.abstractmethod
    def get_active_identity(self) -> Optional[str]:
        """Return the connected address, or None when no wallet is connected."""

    @abc.abstractmethod
    def authorize_submission(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Return the payload signed by the active identity."""

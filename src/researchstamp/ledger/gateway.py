"""
Gateway between the submission pipeline and the ledger collaborator.

LedgerGateway turns a submission intent into exactly one ledger call and
normalizes whatever comes back - a receipt, a rejection, or a transport
exception - into a SubmissionResult. It never retries: retrying is a new
user action, because a replayed submission against the ledger would be
ambiguous.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from researchstamp.core.errors import (
    ErrorKind,
    TransportError,
    ValidationError,
    DEFAULT_MESSAGE,
)
from researchstamp.core.fingerprint import require_valid_address, require_valid_hash
from researchstamp.core.record import ResearchRecord
from researchstamp.ledger.base import (
    ABORT_ALREADY_EXISTS,
    ABORT_INSUFFICIENT_FUNDS,
    ABORT_INVALID_HASH,
    LedgerClient,
    LedgerReceipt,
    WalletProvider,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SubmissionResult:
    """
    Normalized outcome of one submission attempt.

    Attributes:
        success: True if the ledger confirmed the submission.
        confirmed_timestamp: Ledger-assigned submission time on success.
        error_kind: Failure classification, None on success.
        message: User-presentable detail.
        transaction_id: Ledger transaction id, if reported.
    """

    success: bool
    confirmed_timestamp: Optional[int] = None
    error_kind: Optional[ErrorKind] = None
    message: str = ""
    transaction_id: Optional[str] = None


# Ledger status fragments and the kind they map to, checked in order.
_REJECTION_KINDS = (
    (ABORT_ALREADY_EXISTS, ErrorKind.DUPLICATE,
     "You have already submitted research data. Each researcher can only submit once."),
    (ABORT_INVALID_HASH, ErrorKind.VALIDATION, "The provided data hash is invalid."),
    (ABORT_INSUFFICIENT_FUNDS, ErrorKind.VALIDATION,
     "Insufficient funds to complete the transaction. Please fund your account."),
)


def classify_rejection(message: str) -> tuple:
    """Map a ledger status text to (ErrorKind, user message)."""
    lowered = (message or "").lower()
    for fragment, kind, text in _REJECTION_KINDS:
        if fragment.lower() in lowered:
            return kind, text
    return ErrorKind.UNKNOWN, DEFAULT_MESSAGE


class LedgerGateway:
    """
    Adapter from pipeline intents to ledger calls.

    Attributes:
        client: The LedgerClient collaborator.

    Example:
        >>> gateway = LedgerGateway(LocalLedger())
        >>> result = await gateway.submit(address, data_hash, description, wallet)
        >>> result.success
        True
    """

    def __init__(self, client: LedgerClient) -> None:
        self._client = client

    @property
    def client(self) -> LedgerClient:
        return self._client

    async def submit(
        self,
        address: str,
        data_hash: str,
        description: str,
        wallet: Optional[WalletProvider] = None,
    ) -> SubmissionResult:
        """
        Make one submission attempt.

        Malformed input is reported as a VALIDATION result without contacting
        the ledger. When a wallet is given the intent is authorized (signed)
        before being sent.

        Returns:
            SubmissionResult; this method does not raise for ledger
            rejections, transport failures or unexpected client errors.
        """
        try:
            require_valid_address(address)
            require_valid_hash(data_hash)
        except ValidationError as e:
            return SubmissionResult(False, error_kind=ErrorKind.VALIDATION, message=e.message)

        payload: Dict[str, Any] = {
            "address": address,
            "data_hash": data_hash,
            "description": description,
        }
        try:
            if wallet is not None:
                payload = wallet.authorize_submission(payload)
            receipt = await self._client.submit(
                address, data_hash, description, signature=payload.get("signature")
            )
        except ValidationError as e:
            return SubmissionResult(False, error_kind=ErrorKind.VALIDATION, message=e.message)
        except TransportError as e:
            logger.warning("Ledger unreachable while submitting for %s: %s", address, e)
            return SubmissionResult(False, error_kind=ErrorKind.TRANSPORT, message=e.message)
        except Exception:
            logger.exception("Unexpected failure while submitting for %s", address)
            return SubmissionResult(False, error_kind=ErrorKind.UNKNOWN, message=DEFAULT_MESSAGE)

        return self._normalize(address, receipt)

    def _normalize(self, address: str, receipt: LedgerReceipt) -> SubmissionResult:
        if receipt.success:
            if receipt.timestamp is None:
                logger.error("Ledger confirmed %s without a timestamp", address)
                return SubmissionResult(False, error_kind=ErrorKind.UNKNOWN, message=DEFAULT_MESSAGE)
            logger.info("Ledger confirmed submission for %s at %d", address, receipt.timestamp)
            return SubmissionResult(
                True,
                confirmed_timestamp=receipt.timestamp,
                transaction_id=receipt.transaction_id,
            )

        kind, text = classify_rejection(receipt.message)
        if kind is ErrorKind.UNKNOWN and receipt.error_kind not in (None, ErrorKind.UNKNOWN):
            kind = receipt.error_kind
            text = receipt.message or DEFAULT_MESSAGE
        logger.info("Ledger rejected submission for %s (%s): %s", address, kind.value, receipt.message)
        return SubmissionResult(
            False,
            error_kind=kind,
            message=text,
            transaction_id=receipt.transaction_id,
        )

    async def fetch_record(self, address: str) -> Optional[ResearchRecord]:
        """
        Read the ledger's record for an address.

        Returns:
            The record, or None when the ledger has none.

        Raises:
            ValidationError: If address is malformed.
            TransportError: If the ledger cannot be reached.
        """
        require_valid_address(address)
        return await self._client.get_record(address)

    async def fetch_total_count(self) -> int:
        """
        Read the ledger's record count; 0 when the ledger reports none.

        Raises:
            TransportError: If the ledger cannot be reached.
        """
        count = await self._client.get_total_count()
        return count or 0

    async def fund_identity(self, address: str) -> bool:
        """Request test funds for an address (development networks only)."""
        require_valid_address(address)
        return await self._client.fund_identity(address)

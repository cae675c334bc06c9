"""
researchstamp ledger module.

Provides the ledger and wallet collaborator interfaces, the gateway the
submission pipeline talks through, and concrete ledger clients.
"""

from researchstamp.ledger.base import LedgerClient, LedgerReceipt, WalletProvider
from researchstamp.ledger.gateway import LedgerGateway, SubmissionResult, classify_rejection
from researchstamp.ledger.local import LocalLedger, StaticWallet
from researchstamp.ledger.http import HttpLedgerClient

__all__ = [
    "LedgerClient",
    "LedgerReceipt",
    "WalletProvider",
    "LedgerGateway",
    "SubmissionResult",
    "classify_rejection",
    "LocalLedger",
    "StaticWallet",
    "HttpLedgerClient",
]

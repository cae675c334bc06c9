"""
Per-user session context.

A Session wires the collaborators of one user session together: the
durable store, the registry cache, the ledger client and its gateway, the
wallet, the submission pipeline and the read-side helpers. Nothing here is
module-global; every piece of state belongs to a Session and is released
by close().

Example:
    >>> async with Session(Settings(store=":memory:", identity=addr)) as session:
    ...     await session.pipeline.dispatch(EnterHash(data_hash))
    ...     await session.pipeline.dispatch(UpdateDescription("Plankton counts 2023"))
    ...     outcome = await session.pipeline.dispatch(Submit())
"""

import logging
from typing import Any, List, Optional

from researchstamp.config import Settings
from researchstamp.core.errors import IntegrityError, TransportError
from researchstamp.export.formats import RegistryExporter
from researchstamp.ledger.base import LedgerClient, WalletProvider
from researchstamp.ledger.gateway import LedgerGateway
from researchstamp.ledger.http import HttpLedgerClient
from researchstamp.ledger.local import LocalLedger, StaticWallet
from researchstamp.pipeline.submission import SubmissionPipeline
from researchstamp.query.engine import QueryEngine
from researchstamp.registry.cache import RegistryCache
from researchstamp.storage.store import KeyValueStore, open_store

logger = logging.getLogger(__name__)


class Session:
    """
    Context object for one user session.

    Collaborators passed in are used as given and are not closed by the
    session; the ones it creates itself from settings are.

    Attributes:
        settings: Settings in effect.
        store: Durable key-value store.
        cache: RegistryCache of confirmed records.
        ledger: LedgerClient collaborator.
        gateway: LedgerGateway in front of the ledger.
        wallet: WalletProvider supplying the identity.
        pipeline: SubmissionPipeline owning the draft.
        query: QueryEngine over the cache.
        exporter: RegistryExporter over the cache.
        integrity_errors: IntegrityErrors reported while loading.
        save_errors: TransportErrors reported while persisting.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        store: Optional[KeyValueStore] = None,
        ledger: Optional[LedgerClient] = None,
        wallet: Optional[WalletProvider] = None,
        show_pending: bool = False,
    ) -> None:
        self.settings = settings or Settings()
        self.integrity_errors: List[IntegrityError] = []
        self.save_errors: List[TransportError] = []
        self._closed = False

        self._owns_store = store is None
        self.store = store if store is not None else open_store(self.settings.store)

        self.cache = RegistryCache(
            self.store,
            on_integrity_error=self.integrity_errors.append,
            on_save_error=self.save_errors.append,
        )

        self._owns_ledger = ledger is None
        if ledger is None:
            if self.settings.ledger_url:
                ledger = HttpLedgerClient(
                    self.settings.ledger_url,
                    network=self.settings.network,
                    timeout=self.settings.http_timeout,
                )
            else:
                ledger = LocalLedger(network=self.settings.network, store=self.store)
        self.ledger = ledger
        self.gateway = LedgerGateway(ledger)

        self.wallet = wallet if wallet is not None else StaticWallet(self.settings.identity)

        self.pipeline = SubmissionPipeline(
            self.gateway,
            self.cache,
            self.wallet,
            max_file_bytes=self.settings.max_file_bytes,
            description_min=self.settings.description_min,
            description_max=self.settings.description_max,
            show_pending=show_pending,
        )
        self.query = QueryEngine(self.cache)
        self.exporter = RegistryExporter(self.cache)
        logger.debug("Session opened on store %s", self.settings.store)

    @property
    def closed(self) -> bool:
        return self._closed

    async def sync_identity(self) -> bool:
        """
        Pull the active identity's ledger record into the cache.

        Returns:
            True if the ledger had a record for the identity.

        Raises:
            TransportError: If the ledger cannot be reached.
        """
        address = self.wallet.get_active_identity()
        if address is None:
            return False
        record = await self.gateway.fetch_record(address)
        if record is None:
            return False
        self.cache.upsert(record)
        return True

    async def close(self) -> None:
        """Release owned collaborators. Calling close twice is harmless."""
        if self._closed:
            return
        self._closed = True
        if self._owns_ledger:
            await self.ledger.close()
        if self._owns_store:
            self.store.close()
        logger.debug("Session closed")

    async def __aenter__(self) -> "Session":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

"""
Local registry of confirmed research records.

RegistryCache owns the in-memory record set and is the only writer of its
Statistics. Every mutation updates the record map and the aggregate
counters under one lock, so a reader never observes a record change
without the matching statistics change. After each mutation the full
state is written to the durable store; a failed write is reported but the
in-memory mutation stands.

Records awaiting ledger confirmation may be shown through a separate
pending projection. Pending entries never enter the record map and never
count towards Statistics.
"""

import json
import logging
import threading
import time
from dataclasses import dataclass, asdict
from typing import Any, Callable, Dict, Iterator, List, Optional

from researchstamp.core.errors import IntegrityError, TransportError
from researchstamp.core.record import ResearchRecord, Statistics
from researchstamp.storage.store import KeyValueStore

logger = logging.getLogger(__name__)

STORAGE_KEY = "registry"
BLOB_VERSION = 1


@dataclass(frozen=True)
class PendingSubmission:
    """A submission sent to the ledger but not yet confirmed."""

    researcher_address: str
    data_hash: str
    description: str
    created_at: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _address_key(address: str) -> str:
    return address.lower()


def _recency_key(record: ResearchRecord):
    return (-record.submission_time, record.id)


class RegistryCache:
    """
    Authoritative local view of confirmed records, keyed by id.

    At most one record per researcher address is held: upserting a record
    for an address that another id already holds replaces that record.

    Attributes:
        store: The durable store, or None for a memory-only cache.
        last_save_error: The TransportError from the most recent failed
            save, cleared by the next successful one.

    Example:
        >>> cache = RegistryCache(MemoryStore())
        >>> cache.upsert(record)
        >>> cache.statistics.total_submissions
        1
        >>> cache.search("0xABC")
        [...]
    """

    def __init__(
        self,
        store: Optional[KeyValueStore] = None,
        key: str = STORAGE_KEY,
        on_integrity_error: Optional[Callable[[IntegrityError], None]] = None,
        on_save_error: Optional[Callable[[TransportError], None]] = None,
    ) -> None:
        """
        Create the cache and load any persisted state.

        Loading never raises: a missing blob yields an empty registry, and
        an unreadable or corrupt one yields an empty registry plus a log
        entry and a call to on_integrity_error.

        Args:
            store: Durable key-value medium; None keeps state in memory only.
            key: Storage key for the registry blob.
            on_integrity_error: Sink for IntegrityError raised during load.
            on_save_error: Sink for TransportError raised while saving.
        """
        self._store = store
        self._key = key
        self._on_integrity_error = on_integrity_error
        self._on_save_error = on_save_error
        self._lock = threading.RLock()

        self._records: Dict[str, ResearchRecord] = {}
        self._by_address: Dict[str, str] = {}
        self._pending: Dict[str, PendingSubmission] = {}
        self._reset_counters()
        self.last_save_error: Optional[TransportError] = None

        if store is not None:
            self._load()

    def _reset_counters(self) -> None:
        self._total = 0
        self._verified = 0
        self._duration_sum = 0
        self._duration_count = 0

    @property
    def store(self) -> Optional[KeyValueStore]:
        return self._store

    # =========================================================================
    # Incremental statistics
    # =========================================================================

    def _apply(self, record: ResearchRecord) -> None:
        self._total += 1
        if record.is_verified:
            self._verified += 1
        duration = record.verification_duration
        if duration is not None:
            self._duration_sum += duration
            self._duration_count += 1

    def _unapply(self, record: ResearchRecord) -> None:
        self._total -= 1
        if record.is_verified:
            self._verified -= 1
        duration = record.verification_duration
        if duration is not None:
            self._duration_sum -= duration
            self._duration_count -= 1

    def _insert(self, record: ResearchRecord) -> None:
        self._records[record.id] = record
        self._by_address[_address_key(record.researcher_address)] = record.id
        self._apply(record)

    def _delete(self, record_id: str) -> ResearchRecord:
        record = self._records.pop(record_id)
        address = _address_key(record.researcher_address)
        if self._by_address.get(address) == record_id:
            del self._by_address[address]
        self._unapply(record)
        return record

    @property
    def statistics(self) -> Statistics:
        """Statistics maintained incrementally alongside the record set."""
        with self._lock:
            average = (
                self._duration_sum / self._duration_count if self._duration_count else 0.0
            )
            return Statistics(
                total_submissions=self._total,
                verified_submissions=self._verified,
                active_researchers=len(self._by_address),
                average_verification_time=average,
            )

    def recompute_statistics(self) -> Statistics:
        """
        Derive Statistics from the current record set from scratch.

        This is the reference the incremental path must always agree with.
        """
        with self._lock:
            records = list(self._records.values())
        durations = [
            r.verification_duration for r in records if r.verification_duration is not None
        ]
        return Statistics(
            total_submissions=len(records),
            verified_submissions=sum(1 for r in records if r.is_verified),
            active_researchers=len({_address_key(r.researcher_address) for r in records}),
            average_verification_time=(sum(durations) / len(durations)) if durations else 0.0,
        )

    def reconcile(self) -> bool:
        """
        Compare incremental and recomputed statistics and fix any drift.

        Returns:
            True if drift was found and corrected.
        """
        with self._lock:
            incremental = self.statistics
            truth = self.recompute_statistics()
            if incremental == truth:
                return False
            logger.warning(
                "Registry statistics drifted (incremental=%s, recomputed=%s); correcting",
                incremental.to_dict(),
                truth.to_dict(),
            )
            self._reset_counters()
            for record in self._records.values():
                self._apply(record)
            return True

    # =========================================================================
    # Mutations
    # =========================================================================

    def upsert(self, record: ResearchRecord) -> bool:
        """
        Insert a confirmed record, or replace the one with the same id.

        Statistics move by the delta between old and new record, so a
        verification flag flip changes verified_submissions by exactly one
        and leaves total_submissions alone. Calling upsert again with an
        identical record changes nothing and does not write to the store.

        A record held under a different id for the same researcher address
        is dropped: the newer confirmation replaces it.

        Args:
            record: A ledger-confirmed ResearchRecord.

        Returns:
            True if the registry changed.
        """
        if not isinstance(record, ResearchRecord):
            raise TypeError(f"Expected ResearchRecord, got {type(record).__name__}")

        with self._lock:
            existing = self._records.get(record.id)
            if existing == record:
                return False

            address = _address_key(record.researcher_address)
            holder = self._by_address.get(address)
            if holder is not None and holder != record.id:
                logger.info(
                    "Replacing record %s with %s for researcher %s",
                    holder,
                    record.id,
                    record.researcher_address,
                )
                self._delete(holder)
            if existing is not None:
                self._delete(record.id)
            self._insert(record)
            self._pending.pop(address, None)
            self._persist()
        return True

    def remove(self, record_id: str) -> Optional[ResearchRecord]:
        """
        Remove a record by id.

        Counters decrease symmetrically to upsert. Removing an unknown id is
        a no-op.

        Returns:
            The removed record, or None if there was none.
        """
        with self._lock:
            if record_id not in self._records:
                return None
            record = self._delete(record_id)
            self._persist()
        return record

    def clear(self) -> None:
        """Remove every confirmed and pending record."""
        with self._lock:
            self._records.clear()
            self._by_address.clear()
            self._pending.clear()
            self._reset_counters()
            self._persist()

    # =========================================================================
    # Pending projection
    # =========================================================================

    def add_pending(self, address: str, data_hash: str, description: str) -> PendingSubmission:
        """Show a submission as pending until the ledger answers."""
        entry = PendingSubmission(
            researcher_address=address,
            data_hash=data_hash,
            description=description,
            created_at=int(time.time()),
        )
        with self._lock:
            self._pending[_address_key(address)] = entry
        return entry

    def discard_pending(self, address: str) -> Optional[PendingSubmission]:
        """Drop the pending entry for an address; it is never merged."""
        with self._lock:
            return self._pending.pop(_address_key(address), None)

    def pending(self) -> List[PendingSubmission]:
        """Pending entries, newest first."""
        with self._lock:
            entries = list(self._pending.values())
        return sorted(entries, key=lambda p: -p.created_at)

    # =========================================================================
    # Reads
    # =========================================================================

    def find(self, record_id: str) -> Optional[ResearchRecord]:
        """Exact lookup by id."""
        with self._lock:
            return self._records.get(record_id)

    def find_by_address(self, address: str) -> Optional[ResearchRecord]:
        """The confirmed record for a researcher address, ignoring hex case."""
        with self._lock:
            record_id = self._by_address.get(_address_key(address))
            return None if record_id is None else self._records[record_id]

    def search(self, term: str) -> List[ResearchRecord]:
        """
        Case-insensitive substring search over address and data hash.

        The term is matched literally: no wildcards, no regular expressions.
        An empty term matches nothing.

        Returns:
            Matching records, most recent first; empty when none match.
        """
        if not isinstance(term, str):
            raise TypeError(f"Expected str, got {type(term).__name__}")
        if not term:
            return []
        needle = term.casefold()
        with self._lock:
            matches = [
                r
                for r in self._records.values()
                if needle in r.researcher_address.casefold() or needle in r.data_hash.casefold()
            ]
        return sorted(matches, key=_recency_key)

    def recent(self, limit: Optional[int] = 10) -> List[ResearchRecord]:
        """Records ordered most recent first by submission_time."""
        with self._lock:
            ordered = sorted(self._records.values(), key=_recency_key)
        return ordered if limit is None else ordered[:limit]

    def records(self) -> List[ResearchRecord]:
        """Snapshot of all records in no particular order."""
        with self._lock:
            return list(self._records.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def __contains__(self, record_id: object) -> bool:
        with self._lock:
            return record_id in self._records

    def __iter__(self) -> Iterator[ResearchRecord]:
        return iter(self.records())

    # =========================================================================
    # Persistence
    # =========================================================================

    def to_blob(self) -> str:
        """Serialize records and statistics to the persisted JSON form."""
        with self._lock:
            payload = {
                "version": BLOB_VERSION,
                "records": [r.to_dict() for r in sorted(self._records.values(), key=_recency_key)],
                "statistics": self.statistics.to_dict(),
            }
        return json.dumps(payload, sort_keys=True, separators=(",", ":"))

    def _persist(self) -> None:
        if self._store is None:
            return
        try:
            self._store.save(self._key, self.to_blob())
        except TransportError as e:
            self.last_save_error = e
            logger.warning("Failed to persist registry under %r: %s", self._key, e)
            if self._on_save_error is not None:
                self._on_save_error(e)
        else:
            self.last_save_error = None

    def flush(self) -> None:
        """
        Write the current state to the store.

        Raises:
            TransportError: If the store rejects the write.
        """
        if self._store is None:
            return
        with self._lock:
            self._store.save(self._key, self.to_blob())
            self.last_save_error = None

    def _parse_blob(self, blob: str) -> List[ResearchRecord]:
        try:
            payload = json.loads(blob)
        except (json.JSONDecodeError, TypeError) as e:
            raise IntegrityError(f"registry blob is not valid JSON: {e}") from e
        if not isinstance(payload, dict) or not isinstance(payload.get("records"), list):
            raise IntegrityError("registry blob has no record list")
        version = payload.get("version")
        if version != BLOB_VERSION:
            raise IntegrityError(f"unsupported registry blob version: {version!r}")
        try:
            return [ResearchRecord.from_dict(item) for item in payload["records"]]
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise IntegrityError(f"registry blob holds an invalid record: {e}") from e

    def _load(self) -> None:
        try:
            blob = self._store.load(self._key)
        except TransportError as e:
            logger.warning("Registry store unavailable, starting empty: %s", e)
            return
        if blob is None:
            logger.debug("No persisted registry under %r; starting empty", self._key)
            return

        try:
            records = self._parse_blob(blob)
        except IntegrityError as e:
            logger.warning("Discarding corrupt registry blob %r: %s", self._key, e)
            if self._on_integrity_error is not None:
                self._on_integrity_error(e)
            return

        with self._lock:
            # Oldest first so the latest confirmation per address wins.
            for record in sorted(records, key=lambda r: (r.submission_time, r.id)):
                holder = self._by_address.get(_address_key(record.researcher_address))
                if holder is not None:
                    self._delete(holder)
                if record.id in self._records:
                    self._delete(record.id)
                self._insert(record)

            stored = json.loads(blob).get("statistics")
            if isinstance(stored, dict) and stored != self.statistics.to_dict():
                logger.warning(
                    "Persisted statistics %s disagree with records; using recomputed %s",
                    stored,
                    self.statistics.to_dict(),
                )
        logger.debug("Loaded %d records from %r", len(self._records), self._key)

"""
Query engine for researchstamp.

This module provides the QueryEngine class for the read side of the
registry: dashboard aggregates, recent submissions, researcher profiles,
search and per-day activity. All queries are read-only and work on
snapshots of the RegistryCache, independent of any pipeline state.
"""

import time
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from researchstamp.core.record import ResearchRecord, Statistics
from researchstamp.registry.cache import RegistryCache

SECONDS_PER_DAY = 86400


class QueryEngine:
    """
    Read-only query interface over the registry.

    Attributes:
        cache: The RegistryCache instance.

    Example:
        >>> engine = QueryEngine(cache)
        >>> engine.dashboard()["statistics"]["total_submissions"]
        3
        >>> engine.search("0xab")
        [...]
    """

    def __init__(self, cache: RegistryCache) -> None:
        """
        Initialize the query engine.

        Args:
            cache: RegistryCache holding the confirmed records.
        """
        self._cache = cache

    @property
    def cache(self) -> RegistryCache:
        """Return the registry cache."""
        return self._cache

    def statistics(self) -> Statistics:
        return self._cache.statistics

    def verification_rate(self) -> float:
        """
        Percentage of confirmed records that are verified.

        Returns:
            A value between 0.0 and 100.0; 0.0 for an empty registry.
        """
        stats = self._cache.statistics
        if stats.total_submissions == 0:
            return 0.0
        return stats.verified_submissions * 100.0 / stats.total_submissions

    def recent_submissions(self, limit: int = 10) -> List[ResearchRecord]:
        """Most recent confirmed records first."""
        if limit < 0:
            raise ValueError("limit must not be negative")
        return self._cache.recent(limit)

    def search(self, term: str) -> List[ResearchRecord]:
        """Case-insensitive literal substring search over address and hash."""
        return self._cache.search(term)

    def profile(self, address: str) -> Optional[Dict[str, Any]]:
        """
        Summarize one researcher.

        Args:
            address: Researcher address, in either hex case.

        Returns:
            Dictionary with the record and its verification details, or None
            if the researcher has no confirmed record.
        """
        record = self._cache.find_by_address(address)
        if record is None:
            return None
        return {
            "address": record.researcher_address,
            "record": record.to_dict(),
            "is_verified": record.is_verified,
            "verification_duration": record.verification_duration,
            "pending": any(
                p.researcher_address.lower() == address.lower() for p in self._cache.pending()
            ),
        }

    def daily_submissions(
        self,
        days: int = 7,
        now: Optional[float] = None,
    ) -> List[Dict[str, Any]]:
        """
        Count confirmed submissions per UTC day.

        Args:
            days: Number of days to cover, ending with today.
            now: Reference time in seconds since epoch (defaults to now).

        Returns:
            One {"date": "YYYY-MM-DD", "submissions": n, "verified": m}
            entry per day, oldest first, including days with no activity.
        """
        if days < 1:
            raise ValueError("days must be at least 1")
        reference = time.time() if now is None else now
        today = datetime.fromtimestamp(reference, tz=timezone.utc).date()
        first = today - timedelta(days=days - 1)

        buckets: Dict[str, Dict[str, Any]] = {}
        for offset in range(days):
            day = (first + timedelta(days=offset)).isoformat()
            buckets[day] = {"date": day, "submissions": 0, "verified": 0}

        for record in self._cache.records():
            day = datetime.fromtimestamp(record.submission_time, tz=timezone.utc).date()
            entry = buckets.get(day.isoformat())
            if entry is None:
                continue
            entry["submissions"] += 1
            if record.is_verified:
                entry["verified"] += 1

        return list(buckets.values())

    def dashboard(self, recent_limit: int = 5) -> Dict[str, Any]:
        """
        Aggregate everything a dashboard shows.

        Returns:
            Dictionary with statistics, verification_rate, recent and
            pending entries.
        """
        return {
            "statistics": self._cache.statistics.to_dict(),
            "verification_rate": self.verification_rate(),
            "recent": [r.to_dict() for r in self.recent_submissions(recent_limit)],
            "pending": [p.to_dict() for p in self._cache.pending()],
        }

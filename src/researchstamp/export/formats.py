"""
Export system for researchstamp registry data.

This module provides the RegistryExporter class for serializing the
confirmed record set to portable formats.

Supported formats:
    - JSON: The whole registry as a single document
    - JSONL: A header line followed by one record per line
    - CSV: One row per record, for spreadsheets

Exports are read-only and deterministic apart from the export timestamp:
records are ordered by submission time, then id.
"""

import csv
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Union

from researchstamp import __version__
from researchstamp.core.record import ResearchRecord
from researchstamp.registry.cache import RegistryCache

CSV_FIELDS = [
    "id",
    "researcher_address",
    "data_hash",
    "submission_time",
    "description",
    "is_verified",
    "verification_time",
]


class RegistryExporter:
    """
    Export the registry to portable formats.

    Attributes:
        cache: The RegistryCache instance.

    Example:
        >>> exporter = RegistryExporter(cache)
        >>> json_str = exporter.to_json()
        >>> exporter.to_csv("records.csv")
        12
    """

    def __init__(self, cache: RegistryCache) -> None:
        """
        Initialize the exporter.

        Args:
            cache: RegistryCache to read records from.
        """
        self._cache = cache

    @property
    def cache(self) -> RegistryCache:
        """Return the registry cache."""
        return self._cache

    def _now_iso(self) -> str:
        """Return current UTC time in ISO 8601 format."""
        return datetime.now(timezone.utc).isoformat()

    def _ordered_records(self) -> List[ResearchRecord]:
        return sorted(self._cache.records(), key=lambda r: (r.submission_time, r.id))

    def to_dict(self) -> Dict[str, Any]:
        """
        Build the full export document.

        Returns:
            Dictionary with version info, statistics and records.
        """
        return {
            "researchstamp_version": __version__,
            "export_timestamp": self._now_iso(),
            "statistics": self._cache.statistics.to_dict(),
            "records": [r.to_dict() for r in self._ordered_records()],
        }

    def to_json(self, indent: int = 2) -> str:
        """Export the registry as one JSON document."""
        return json.dumps(self.to_dict(), indent=indent, sort_keys=True)

    def to_jsonl(self, output_path: Union[str, Path]) -> int:
        """
        Export the registry as JSONL.

        The first line is a header with version and statistics; each
        following line holds one record.

        Args:
            output_path: Path to write the JSONL file.

        Returns:
            Number of lines written, header included.
        """
        output_path = Path(output_path)
        lines_written = 0

        with open(output_path, "w", encoding="utf-8") as f:
            header = {
                "type": "header",
                "researchstamp_version": __version__,
                "export_timestamp": self._now_iso(),
                "statistics": self._cache.statistics.to_dict(),
            }
            f.write(json.dumps(header, sort_keys=True) + "\n")
            lines_written += 1

            for record in self._ordered_records():
                line = {"type": "record", "data": record.to_dict()}
                f.write(json.dumps(line, sort_keys=True) + "\n")
                lines_written += 1

        return lines_written

    def to_csv(self, output_path: Union[str, Path]) -> int:
        """
        Export the registry as CSV with a header row.

        Returns:
            Number of record rows written.
        """
        records = self._ordered_records()
        with open(Path(output_path), "w", encoding="utf-8", newline="") as f:
            writer = csv.DictWriter(f, fieldnames=CSV_FIELDS)
            writer.writeheader()
            for record in records:
                row = record.to_dict()
                row["is_verified"] = "true" if record.is_verified else "false"
                if row["verification_time"] is None:
                    row["verification_time"] = ""
                writer.writerow(row)
        return len(records)

"""
CLI command implementations for researchstamp.

This module provides the implementation for all CLI commands. Each command
function takes the parsed args namespace (with resolved settings attached
as args.settings) and returns an exit code.
"""

import asyncio
import json
import platform
import sys
from pathlib import Path
from typing import Any, List

from researchstamp import __version__
from researchstamp.core.fingerprint import (
    combined_fingerprint,
    content_hash,
    hash_file,
    verify_file_integrity,
)
from researchstamp.core.record import ResearchRecord
from researchstamp.format import (
    format_duration,
    format_file_size,
    format_percentage,
    format_timestamp,
    short_address,
    short_hash,
)
from researchstamp.pipeline.submission import (
    EnterHash,
    SelectFile,
    Submit,
    SubmissionState,
    UpdateDescription,
)
from researchstamp.session import Session
from researchstamp.storage.store import open_store


def _store_exists(args) -> bool:
    location = args.settings.store
    return location == ":memory:" or Path(location).exists()


def _require_store(args) -> None:
    if not _store_exists(args):
        raise FileNotFoundError(f"Store not found: {args.settings.store}")


def _open_session(args) -> Session:
    """Get a session for the resolved settings."""
    return Session(args.settings)


def _output(data: Any, args, message: str = "") -> None:
    """Output data in appropriate format based on args."""
    if args.json:
        if isinstance(data, str):
            print(data)
        else:
            print(json.dumps(data, indent=2, sort_keys=True))
    elif not args.quiet:
        if message:
            print(message)
        elif isinstance(data, str):
            print(data)
        else:
            print(json.dumps(data, indent=2, sort_keys=True))


def _output_table(headers: list, rows: list, args, data: list = None) -> None:
    """Output data as a formatted table, or data as JSON with --json."""
    if args.json:
        if data is None:
            data = [dict(zip(headers, row)) for row in rows]
        print(json.dumps(data, indent=2, sort_keys=True))
        return

    if args.quiet:
        return

    if not rows:
        print("No data to display.")
        return

    # Calculate column widths
    widths = [len(h) for h in headers]
    for row in rows:
        for i, cell in enumerate(row):
            widths[i] = max(widths[i], len(str(cell)))

    header_line = "  ".join(h.ljust(widths[i]) for i, h in enumerate(headers))
    print(header_line)
    print("-" * len(header_line))

    for row in rows:
        print("  ".join(str(cell).ljust(widths[i]) for i, cell in enumerate(row)))


def _record_rows(records: List[ResearchRecord]) -> list:
    return [
        [
            short_address(r.researcher_address),
            short_hash(r.data_hash),
            format_timestamp(r.submission_time),
            "yes" if r.is_verified else "no",
        ]
        for r in records
    ]


RECORD_HEADERS = ["Researcher", "Data Hash", "Submitted", "Verified"]


def _print_record(record: ResearchRecord) -> None:
    print(f"Researcher: {record.researcher_address}")
    print(f"Data Hash: {record.data_hash}")
    print(f"Submitted: {format_timestamp(record.submission_time)}")
    print(f"Verified: {'yes' if record.is_verified else 'no'}")
    if record.verification_duration is not None:
        print(f"Verification Time: {format_duration(record.verification_duration)}")
    print(f"Description: {record.description}")


def cmd_init(args) -> int:
    """Initialize a new registry store."""
    if args.settings.store != ":memory:" and Path(args.settings.store).exists():
        if not args.quiet:
            print(f"Store already exists at {args.settings.store}")
        return 0

    store = open_store(args.settings.store)
    store.close()
    _output(
        {"path": args.settings.store, "status": "initialized"},
        args,
        f"Initialized registry store at {args.settings.store}",
    )
    return 0


def cmd_status(args) -> int:
    """Show registry statistics."""
    _require_store(args)

    async def run() -> int:
        async with _open_session(args) as session:
            stats = session.cache.statistics
            rate = session.query.verification_rate()
            result = {
                "store": args.settings.store,
                "network": args.settings.network,
                "statistics": stats.to_dict(),
                "verification_rate": rate,
                "integrity_errors": [e.message for e in session.integrity_errors],
            }
            if args.json:
                print(json.dumps(result, indent=2, sort_keys=True))
            elif not args.quiet:
                print(f"Store: {args.settings.store}")
                print(f"Network: {args.settings.network}")
                print()
                print("Statistics:")
                print(f"  Submissions: {stats.total_submissions}")
                print(f"  Verified: {stats.verified_submissions} ({format_percentage(rate)})")
                print(f"  Researchers: {stats.active_researchers}")
                print(
                    f"  Average Verification Time: {format_duration(stats.average_verification_time)}"
                )
                for message in result["integrity_errors"]:
                    print(f"Warning: {message}")
            return 0

    return asyncio.run(run())


def cmd_hash(args) -> int:
    """Compute the fingerprint of a file."""
    path = Path(args.file)
    max_bytes = args.settings.max_file_bytes
    result = {"file": str(path), "size": path.stat().st_size}

    if args.metadata:
        hashes = content_hash(path, max_bytes=max_bytes)
        result["data_hash"] = hashes.content_hash
        result["metadata_hash"] = hashes.metadata_hash
        result["combined_hash"] = hashes.combined_hash
    else:
        result["data_hash"] = hash_file(path, max_bytes=max_bytes)

    if args.json:
        print(json.dumps(result, indent=2, sort_keys=True))
    elif args.quiet:
        print(result["data_hash"])
    else:
        print(f"File: {path} ({format_file_size(result['size'])})")
        print(f"Data Hash: {result['data_hash']}")
        if args.metadata:
            print(f"Metadata Hash: {result['metadata_hash']}")
            print(f"Combined Hash: {result['combined_hash']}")
    return 0


def cmd_fingerprint(args) -> int:
    """Combine inputs into one order-independent fingerprint."""
    fingerprint = combined_fingerprint(*args.inputs)
    _output({"inputs": sorted(args.inputs), "fingerprint": fingerprint}, args, fingerprint)
    return 0


def cmd_submit(args) -> int:
    """Submit a data fingerprint to the ledger."""

    async def run() -> int:
        async with _open_session(args) as session:
            pipeline = session.pipeline
            await pipeline.dispatch(UpdateDescription(args.description))
            if args.file:
                outcome = await pipeline.dispatch(SelectFile(args.file))
            else:
                outcome = await pipeline.dispatch(EnterHash(args.data_hash))
            if outcome.ok:
                outcome = await pipeline.dispatch(Submit())

            if outcome.state is SubmissionState.COMMITTED:
                record = outcome.record
                if args.json:
                    print(json.dumps(record.to_dict(), indent=2, sort_keys=True))
                elif not args.quiet:
                    print("Research data submitted.")
                    _print_record(record)
                return 0

            if args.json:
                print(json.dumps(
                    {
                        "state": outcome.state.value,
                        "error_kind": outcome.error_kind.value if outcome.error_kind else None,
                        "errors": list(outcome.errors),
                        "message": outcome.message,
                    },
                    indent=2,
                    sort_keys=True,
                ))
            else:
                print(f"Error: {outcome.message}", file=sys.stderr)
            return 1

    return asyncio.run(run())


def cmd_search(args) -> int:
    """Search records by address or data hash."""
    _require_store(args)

    async def run() -> int:
        async with _open_session(args) as session:
            records = session.query.search(args.term)
            _output_table(
                RECORD_HEADERS,
                _record_rows(records),
                args,
                data=[r.to_dict() for r in records],
            )
            return 0

    return asyncio.run(run())


def cmd_show(args) -> int:
    """Show the record of a researcher."""
    if not args.remote:
        _require_store(args)

    async def run() -> int:
        async with _open_session(args) as session:
            if args.remote:
                record = await session.gateway.fetch_record(args.address)
                if record is not None:
                    session.cache.upsert(record)
            profile = session.query.profile(args.address)
            if profile is None:
                _output(
                    {"address": args.address, "found": False},
                    args,
                    f"No research record for {args.address}",
                )
                return 2  # Not found exit code

            if args.json:
                print(json.dumps(profile, indent=2, sort_keys=True))
            elif not args.quiet:
                _print_record(ResearchRecord.from_dict(profile["record"]))
            return 0

    return asyncio.run(run())


def cmd_recent(args) -> int:
    """List the most recent submissions."""
    _require_store(args)

    async def run() -> int:
        async with _open_session(args) as session:
            records = session.query.recent_submissions(args.limit)
            _output_table(
                RECORD_HEADERS,
                _record_rows(records),
                args,
                data=[r.to_dict() for r in records],
            )
            return 0

    return asyncio.run(run())


def cmd_activity(args) -> int:
    """Show submissions per day."""
    _require_store(args)

    async def run() -> int:
        async with _open_session(args) as session:
            days = session.query.daily_submissions(args.days)
            _output_table(
                ["Date", "Submissions", "Verified"],
                [[d["date"], d["submissions"], d["verified"]] for d in days],
                args,
                data=days,
            )
            return 0

    return asyncio.run(run())


def cmd_verify_file(args) -> int:
    """Check a file against a researcher's registered fingerprint."""
    _require_store(args)

    async def run() -> int:
        async with _open_session(args) as session:
            record = session.cache.find_by_address(args.address)
            if record is None:
                _output(
                    {"address": args.address, "found": False},
                    args,
                    f"No research record for {args.address}",
                )
                return 2

            match = verify_file_integrity(
                args.file, record.data_hash, max_bytes=args.settings.max_file_bytes
            )
            result = {
                "file": args.file,
                "address": record.researcher_address,
                "data_hash": record.data_hash,
                "match": match,
            }
            if match:
                _output(result, args, f"File matches the fingerprint registered by {args.address}")
                return 0
            _output(result, args, f"File does NOT match the fingerprint registered by {args.address}")
            return 2

    return asyncio.run(run())


def cmd_export(args) -> int:
    """Export the registry."""
    _require_store(args)

    async def run() -> int:
        async with _open_session(args) as session:
            exporter = session.exporter

            if args.format == "json":
                output = exporter.to_json()
                if args.output:
                    with open(args.output, "w", encoding="utf-8") as f:
                        f.write(output)
                    if not args.quiet:
                        print(f"Exported to {args.output}")
                else:
                    print(output)

            elif args.format == "jsonl":
                if not args.output:
                    raise ValueError("JSONL format requires --output path")
                lines = exporter.to_jsonl(args.output)
                if not args.quiet:
                    print(f"Exported {lines} lines to {args.output}")

            elif args.format == "csv":
                if not args.output:
                    raise ValueError("CSV format requires --output path")
                rows = exporter.to_csv(args.output)
                if not args.quiet:
                    print(f"Exported {rows} records to {args.output}")

            return 0

    return asyncio.run(run())


def cmd_fund(args) -> int:
    """Fund an identity with test tokens."""

    async def run() -> int:
        async with _open_session(args) as session:
            funded = await session.gateway.fund_identity(args.address)
            result = {"address": args.address, "network": args.settings.network, "funded": funded}
            if funded:
                _output(result, args, f"Funded {args.address} on {args.settings.network}")
                return 0
            _output(result, args, f"Funding is not available on {args.settings.network}")
            return 1

    return asyncio.run(run())


def cmd_version(args) -> int:
    """Show version information."""
    result = {
        "version": __version__,
        "name": "researchstamp",
        "python": platform.python_version(),
    }

    if args.json:
        print(json.dumps(result, indent=2, sort_keys=True))
    else:
        if not args.quiet:
            print(f"researchstamp {__version__}")

    return 0

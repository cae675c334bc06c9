"""
Tests for the researchstamp submission pipeline.

Tests cover:
- File hashing transitions, progress and failures
- Manual hash entry
- Submit preconditions and validation without mutation
- Commit, duplicate and transport outcomes
- Recovery from FAILED
- Cancellation of in-flight hashing
- At most one in-flight submission
- Pending projection
"""

import asyncio
import shutil
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from researchstamp.core.errors import DEFAULT_MESSAGE, ErrorKind
from researchstamp.core.fingerprint import hash_file
from researchstamp.ledger.gateway import LedgerGateway
from researchstamp.ledger.local import LocalLedger, StaticWallet
from researchstamp.pipeline.submission import (
    MSG_DESCRIPTION_SHORT,
    MSG_HASH_INVALID,
    MSG_HASH_REQUIRED,
    MSG_IN_PROGRESS,
    MSG_NO_IDENTITY,
    MSG_STILL_HASHING,
    MSG_UNACKNOWLEDGED,
    AcknowledgeError,
    ClearFile,
    EnterHash,
    Reset,
    RetryHash,
    SelectFile,
    Submit,
    SubmissionPipeline,
    SubmissionState,
    UpdateDescription,
)
from researchstamp.registry.cache import RegistryCache
from researchstamp.storage.store import MemoryStore
from tests.fixtures.sample_data import (
    ADDRESS_A,
    BASE_TIME,
    SAMPLE_BYTES,
    SAMPLE_DESCRIPTION,
    SAMPLE_HASH,
    FakeClock,
    make_hash,
)


class BrokenOnceLedger(LocalLedger):
    """LocalLedger whose first submit fails with an unexpected error."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.broken = True

    async def submit(self, address, data_hash, description, signature=None):
        if self.broken:
            self.broken = False
            raise RuntimeError("client bug")
        return await super().submit(address, data_hash, description, signature)


class PipelineTestCase(unittest.IsolatedAsyncioTestCase):
    """Shared setup: local ledger, memory-backed cache, connected wallet."""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.path = Path(self.temp_dir) / "dataset.csv"
        self.path.write_bytes(SAMPLE_BYTES * 100)
        self.clock = FakeClock()
        self.ledger = LocalLedger(clock=self.clock)
        self.gateway = LedgerGateway(self.ledger)
        self.cache = RegistryCache(MemoryStore())
        self.wallet = StaticWallet(ADDRESS_A)
        self.pipeline = self.make_pipeline()

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def make_pipeline(self, **kwargs):
        return SubmissionPipeline(self.gateway, self.cache, self.wallet, chunk_size=256, **kwargs)

    async def ready_draft(self, description=SAMPLE_DESCRIPTION, data_hash=SAMPLE_HASH):
        await self.pipeline.dispatch(UpdateDescription(description))
        outcome = await self.pipeline.dispatch(EnterHash(data_hash))
        self.assertIs(outcome.state, SubmissionState.READY)
        return outcome


class TestHashing(PipelineTestCase):
    """File selection and hashing."""

    async def test_select_file_reaches_ready(self):
        outcome = await self.pipeline.dispatch(SelectFile(self.path))
        self.assertTrue(outcome.ok)
        self.assertIs(self.pipeline.state, SubmissionState.READY)
        self.assertEqual(self.pipeline.draft.data_hash, hash_file(self.path))
        upload = self.pipeline.upload
        self.assertEqual(upload.progress, 100)
        self.assertFalse(upload.uploading)
        self.assertEqual(upload.hash, self.pipeline.draft.data_hash)

    async def test_oversized_file(self):
        """A 150 MB file is rejected before hashing with progress left at 0."""
        big = Path(self.temp_dir) / "big.bin"
        with open(big, "wb") as f:
            f.truncate(150 * 1024 * 1024)
        outcome = await self.pipeline.dispatch(SelectFile(big))
        self.assertIs(outcome.state, SubmissionState.FAILED)
        self.assertIs(outcome.error_kind, ErrorKind.VALIDATION)
        upload = self.pipeline.upload
        self.assertIsNotNone(upload.error)
        self.assertIn("exceeds", upload.error)
        self.assertEqual(upload.progress, 0)
        self.assertFalse(upload.uploading)
        self.assertIsNone(upload.hash)
        self.assertEqual(self.pipeline.draft.selected_file, big)

    async def test_custom_size_ceiling(self):
        pipeline = self.make_pipeline(max_file_bytes=10)
        outcome = await pipeline.dispatch(SelectFile(self.path))
        self.assertIs(outcome.state, SubmissionState.FAILED)

    async def test_read_failure_then_retry(self):
        """The file reference survives a failure so it can be retried."""
        missing = Path(self.temp_dir) / "later.csv"
        outcome = await self.pipeline.dispatch(SelectFile(missing))
        self.assertIs(outcome.state, SubmissionState.FAILED)
        self.assertIs(outcome.error_kind, ErrorKind.TRANSPORT)
        self.assertEqual(self.pipeline.upload.file, missing)

        missing.write_bytes(b"now it exists")
        outcome = await self.pipeline.dispatch(RetryHash())
        self.assertIs(outcome.state, SubmissionState.READY)
        self.assertEqual(self.pipeline.draft.data_hash, hash_file(missing))

    async def test_retry_without_file(self):
        outcome = await self.pipeline.dispatch(RetryHash())
        self.assertIs(outcome.error_kind, ErrorKind.VALIDATION)

    async def test_clear_file(self):
        await self.pipeline.dispatch(SelectFile(self.path))
        outcome = await self.pipeline.dispatch(ClearFile())
        self.assertIs(outcome.state, SubmissionState.EMPTY)
        self.assertEqual(self.pipeline.draft.data_hash, "")
        self.assertIsNone(self.pipeline.draft.selected_file)
        self.assertEqual(self.pipeline.upload.progress, 0)

    async def test_cancelled_hash_does_not_populate_draft(self):
        gate = asyncio.Event()

        async def slow_hash(path, max_bytes, chunk_size, progress):
            await gate.wait()
            return SAMPLE_HASH

        with mock.patch("researchstamp.pipeline.submission.hash_file_async", slow_hash):
            task = asyncio.create_task(self.pipeline.dispatch(SelectFile(self.path)))
            await asyncio.sleep(0)
            self.assertIs(self.pipeline.state, SubmissionState.HASHING)
            self.assertTrue(self.pipeline.upload.uploading)

            await self.pipeline.dispatch(ClearFile())
            gate.set()
            outcome = await task

        self.assertTrue(outcome.cancelled)
        self.assertIs(self.pipeline.state, SubmissionState.EMPTY)
        self.assertEqual(self.pipeline.draft.data_hash, "")
        self.assertIsNone(self.pipeline.upload.hash)

    async def test_replaced_file_wins(self):
        gate = asyncio.Event()
        other = Path(self.temp_dir) / "other.csv"
        other.write_bytes(b"other content")

        async def slow_then_real(path, max_bytes, chunk_size, progress):
            if path == self.path:
                await gate.wait()
                return SAMPLE_HASH
            return hash_file(path)

        with mock.patch("researchstamp.pipeline.submission.hash_file_async", slow_then_real):
            first = asyncio.create_task(self.pipeline.dispatch(SelectFile(self.path)))
            await asyncio.sleep(0)
            second = await self.pipeline.dispatch(SelectFile(other))
            gate.set()
            stale = await first

        self.assertIs(second.state, SubmissionState.READY)
        self.assertTrue(stale.cancelled)
        self.assertEqual(self.pipeline.draft.data_hash, hash_file(other))

    async def test_submit_while_hashing_refused(self):
        gate = asyncio.Event()

        async def slow_hash(path, max_bytes, chunk_size, progress):
            await gate.wait()
            return SAMPLE_HASH

        with mock.patch("researchstamp.pipeline.submission.hash_file_async", slow_hash):
            task = asyncio.create_task(self.pipeline.dispatch(SelectFile(self.path)))
            await asyncio.sleep(0)
            outcome = await self.pipeline.dispatch(Submit())
            gate.set()
            await task

        self.assertEqual(outcome.errors, (MSG_STILL_HASHING,))
        self.assertEqual(self.ledger.submission_attempts, 0)


class TestManualEntry(PipelineTestCase):
    """Typed hashes."""

    async def test_valid_hash_goes_straight_to_ready(self):
        outcome = await self.pipeline.dispatch(EnterHash(SAMPLE_HASH))
        self.assertIs(outcome.state, SubmissionState.READY)
        self.assertEqual(self.pipeline.draft.data_hash, SAMPLE_HASH)

    async def test_invalid_hash_rejected_without_change(self):
        outcome = await self.pipeline.dispatch(EnterHash(SAMPLE_HASH[:-1]))
        self.assertEqual(outcome.errors, (MSG_HASH_INVALID,))
        self.assertIs(self.pipeline.state, SubmissionState.EMPTY)
        self.assertEqual(self.pipeline.draft.data_hash, "")

    async def test_empty_hash(self):
        outcome = await self.pipeline.dispatch(EnterHash("  "))
        self.assertEqual(outcome.errors, (MSG_HASH_REQUIRED,))

    async def test_typed_hash_replaces_file(self):
        await self.pipeline.dispatch(SelectFile(self.path))
        await self.pipeline.dispatch(EnterHash(SAMPLE_HASH))
        self.assertIsNone(self.pipeline.draft.selected_file)
        self.assertEqual(self.pipeline.draft.data_hash, SAMPLE_HASH)


class TestValidation(PipelineTestCase):
    """Submit preconditions."""

    async def test_short_description(self):
        """A 5-character description keeps the draft in READY."""
        await self.ready_draft(description="Short")
        outcome = await self.pipeline.dispatch(Submit())
        self.assertIs(outcome.error_kind, ErrorKind.VALIDATION)
        self.assertIn(MSG_DESCRIPTION_SHORT, outcome.errors)
        self.assertIs(outcome.state, SubmissionState.READY)
        self.assertIs(self.pipeline.state, SubmissionState.READY)
        self.assertEqual(self.ledger.submission_attempts, 0)

    async def test_long_description(self):
        await self.ready_draft(description="x" * 501)
        self.assertEqual(self.pipeline.validate(), ["description too long"])

    async def test_missing_description(self):
        await self.pipeline.dispatch(EnterHash(SAMPLE_HASH))
        self.assertEqual(self.pipeline.validate(), ["description is required"])

    async def test_missing_identity(self):
        self.wallet.disconnect()
        await self.ready_draft()
        outcome = await self.pipeline.dispatch(Submit())
        self.assertEqual(outcome.errors, (MSG_NO_IDENTITY,))
        self.assertIs(self.pipeline.state, SubmissionState.READY)

    async def test_errors_are_listed_together(self):
        self.wallet.disconnect()
        self.assertEqual(
            self.pipeline.validate(),
            ["description is required", MSG_HASH_REQUIRED, MSG_NO_IDENTITY],
        )

    async def test_validate_does_not_mutate(self):
        await self.ready_draft(description="Short")
        before = (self.pipeline.state, self.pipeline.draft.description, self.pipeline.draft.data_hash)
        self.pipeline.validate()
        self.pipeline.validate()
        after = (self.pipeline.state, self.pipeline.draft.description, self.pipeline.draft.data_hash)
        self.assertEqual(before, after)

    async def test_description_is_trimmed(self):
        await self.ready_draft(description="   padded but long enough   ")
        outcome = await self.pipeline.dispatch(Submit())
        self.assertEqual(outcome.record.description, "padded but long enough")

    def test_invalid_bounds(self):
        with self.assertRaises(ValueError):
            self.make_pipeline(description_min=5)
        with self.assertRaises(ValueError):
            self.make_pipeline(description_min=100, description_max=50)

    async def test_unknown_command(self):
        with self.assertRaises(TypeError):
            await self.pipeline.dispatch("submit")


class TestSubmission(PipelineTestCase):
    """Ledger round trips."""

    async def test_commit(self):
        await self.pipeline.dispatch(UpdateDescription(SAMPLE_DESCRIPTION))
        await self.pipeline.dispatch(SelectFile(self.path))
        self.clock.advance(42)
        outcome = await self.pipeline.dispatch(Submit())

        self.assertIs(outcome.state, SubmissionState.COMMITTED)
        record = outcome.record
        self.assertEqual(record.id, ADDRESS_A)
        self.assertEqual(record.submission_time, BASE_TIME + 42)
        self.assertEqual(record.data_hash, hash_file(self.path))
        self.assertFalse(record.is_verified)

        self.assertEqual(self.cache.find(ADDRESS_A), record)
        self.assertEqual(self.cache.statistics.total_submissions, 1)
        self.assertIs(self.pipeline.state, SubmissionState.EMPTY)
        self.assertEqual(self.pipeline.draft.description, "")
        self.assertIsNone(self.pipeline.draft.selected_file)

    async def test_duplicate_submission(self):
        """A second submission for the address is a distinct error and adds nothing."""
        await self.ready_draft()
        await self.pipeline.dispatch(Submit())

        await self.ready_draft(description="A second dataset description", data_hash=make_hash("2"))
        outcome = await self.pipeline.dispatch(Submit())
        self.assertIs(outcome.state, SubmissionState.FAILED)
        self.assertIs(outcome.error_kind, ErrorKind.DUPLICATE)
        self.assertIn("already submitted", outcome.message)

        self.assertEqual(len(self.cache), 1)
        self.assertEqual(self.cache.find(ADDRESS_A).data_hash, SAMPLE_HASH)
        self.assertEqual(self.pipeline.draft.data_hash, make_hash("2"))
        self.assertEqual(self.pipeline.draft.description, "A second dataset description")

    async def test_duplicate_refreshes_from_ledger(self):
        """A ledger record unknown locally is pulled in, never doubled."""
        await self.ledger.submit(ADDRESS_A, make_hash("elsewhere"), SAMPLE_DESCRIPTION)
        await self.ready_draft()
        outcome = await self.pipeline.dispatch(Submit())
        self.assertIs(outcome.error_kind, ErrorKind.DUPLICATE)
        self.assertEqual(len(self.cache), 1)
        self.assertEqual(self.cache.find(ADDRESS_A).data_hash, make_hash("elsewhere"))

    async def test_transport_failure_keeps_draft(self):
        await self.ready_draft()
        self.ledger.offline = True
        outcome = await self.pipeline.dispatch(Submit())
        self.assertIs(outcome.state, SubmissionState.FAILED)
        self.assertIs(outcome.error_kind, ErrorKind.TRANSPORT)
        self.assertEqual(self.pipeline.draft.data_hash, SAMPLE_HASH)
        self.assertEqual(len(self.cache), 0)

        refused = await self.pipeline.dispatch(Submit())
        self.assertEqual(refused.errors, (MSG_UNACKNOWLEDGED,))

        ack = await self.pipeline.dispatch(AcknowledgeError())
        self.assertIs(ack.state, SubmissionState.READY)
        self.ledger.offline = False
        outcome = await self.pipeline.dispatch(Submit())
        self.assertIs(outcome.state, SubmissionState.COMMITTED)

    async def test_unexpected_client_error_recovers(self):
        """An unclassified client failure ends in FAILED, never stuck in SUBMITTING."""
        self.ledger = BrokenOnceLedger(clock=self.clock)
        self.gateway = LedgerGateway(self.ledger)
        self.pipeline = self.make_pipeline(show_pending=True)
        await self.ready_draft()

        outcome = await self.pipeline.dispatch(Submit())
        self.assertIs(outcome.state, SubmissionState.FAILED)
        self.assertIs(outcome.error_kind, ErrorKind.UNKNOWN)
        self.assertEqual(outcome.message, DEFAULT_MESSAGE)
        self.assertEqual(self.cache.pending(), [])
        self.assertEqual(self.pipeline.draft.data_hash, SAMPLE_HASH)

        ack = await self.pipeline.dispatch(AcknowledgeError())
        self.assertIs(ack.state, SubmissionState.READY)
        outcome = await self.pipeline.dispatch(Submit())
        self.assertIs(outcome.state, SubmissionState.COMMITTED)

    async def test_acknowledge_without_hash_returns_to_empty(self):
        await self.pipeline.dispatch(SelectFile(Path(self.temp_dir) / "missing"))
        outcome = await self.pipeline.dispatch(AcknowledgeError())
        self.assertIs(outcome.state, SubmissionState.EMPTY)
        self.assertIsNone(self.pipeline.upload.error)

    async def test_one_submission_in_flight(self):
        self.ledger = LocalLedger(clock=self.clock, latency=0.05)
        self.gateway = LedgerGateway(self.ledger)
        self.pipeline = self.make_pipeline()
        await self.ready_draft()

        first = asyncio.create_task(self.pipeline.dispatch(Submit()))
        await asyncio.sleep(0)
        self.assertIs(self.pipeline.state, SubmissionState.SUBMITTING)

        second = await self.pipeline.dispatch(Submit())
        self.assertEqual(second.errors, (MSG_IN_PROGRESS,))
        reset = await self.pipeline.dispatch(Reset())
        self.assertEqual(reset.errors, (MSG_IN_PROGRESS,))
        edit = await self.pipeline.dispatch(UpdateDescription("changed while sending"))
        self.assertEqual(edit.errors, (MSG_IN_PROGRESS,))

        outcome = await first
        self.assertIs(outcome.state, SubmissionState.COMMITTED)
        self.assertEqual(self.ledger.submission_attempts, 1)
        self.assertEqual(outcome.record.description, SAMPLE_DESCRIPTION)

    async def test_pending_projection(self):
        self.ledger = LocalLedger(clock=self.clock, latency=0.05)
        self.gateway = LedgerGateway(self.ledger)
        self.pipeline = self.make_pipeline(show_pending=True)
        await self.ready_draft()

        task = asyncio.create_task(self.pipeline.dispatch(Submit()))
        await asyncio.sleep(0)
        self.assertEqual(len(self.cache.pending()), 1)
        self.assertEqual(self.cache.statistics.total_submissions, 0)
        await task
        self.assertEqual(self.cache.pending(), [])
        self.assertEqual(self.cache.statistics.total_submissions, 1)

    async def test_pending_discarded_on_failure(self):
        self.pipeline = self.make_pipeline(show_pending=True)
        await self.ready_draft()
        self.ledger.offline = True
        await self.pipeline.dispatch(Submit())
        self.assertEqual(self.cache.pending(), [])
        self.assertEqual(self.cache.statistics.total_submissions, 0)

    async def test_reset(self):
        await self.ready_draft()
        outcome = await self.pipeline.dispatch(Reset())
        self.assertIs(outcome.state, SubmissionState.EMPTY)
        self.assertEqual(self.pipeline.draft.description, "")
        self.assertEqual(self.pipeline.draft.data_hash, "")


if __name__ == "__main__":
    unittest.main()

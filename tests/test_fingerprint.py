"""
Tests for researchstamp fingerprinting functions.

Tests cover:
- Digests of bytes, text and dictionaries
- Order-independent combined fingerprints
- Hash and address validation
- Chunked file hashing with size ceiling and progress
- Content/metadata hashes and file integrity checks
"""

import asyncio
import re
import shutil
import tempfile
import unittest
from pathlib import Path

from researchstamp.core.errors import FileReadError, FileTooLargeError, ValidationError
from researchstamp.core.fingerprint import (
    hash_bytes,
    hash_text,
    hash_dict,
    hash_file,
    hash_file_async,
    combined_fingerprint,
    generate_salt,
    time_based_hash,
    content_hash,
    research_fingerprint,
    verify_file_integrity,
    is_valid_hash,
    is_valid_address,
    require_valid_hash,
)
from tests.fixtures.sample_data import (
    SAMPLE_BYTES,
    SAMPLE_TEXT,
    SAMPLE_HASH,
    ADDRESS_A,
    RecordingProgress,
)

HASH_RE = re.compile(r"^0x[0-9a-fA-F]{64}$")


class TestHashBytes(unittest.TestCase):
    """Tests for hash_bytes function."""

    def test_format(self):
        """Digest should be 0x plus 64 lowercase hex characters."""
        result = hash_bytes(b"test")
        self.assertRegex(result, HASH_RE)
        self.assertEqual(result, result.lower())

    def test_known_value(self):
        """Digest should be SHA-256."""
        self.assertEqual(
            hash_bytes(b"hello"),
            "0x2cf24dba5fb0a30e26e83b2ac5b9e29e1b161e5c1fa7425e73043362938b9824",
        )

    def test_deterministic(self):
        """Same input should always produce same output."""
        for data in (b"a", SAMPLE_BYTES, b"\x00" * 1000, bytes(range(256))):
            self.assertEqual(hash_bytes(data), hash_bytes(data))
            self.assertRegex(hash_bytes(data), HASH_RE)

    def test_different_input_different_output(self):
        """Different inputs should produce different fingerprints."""
        self.assertNotEqual(hash_bytes(b"test1"), hash_bytes(b"test2"))

    def test_accepts_bytearray_and_memoryview(self):
        """bytearray and memoryview hash like bytes."""
        self.assertEqual(hash_bytes(bytearray(b"abc")), hash_bytes(b"abc"))
        self.assertEqual(hash_bytes(memoryview(b"abc")), hash_bytes(b"abc"))

    def test_rejects_str(self):
        """Strings must go through hash_text."""
        with self.assertRaises(TypeError):
            hash_bytes("abc")


class TestHashText(unittest.TestCase):
    """Tests for hash_text function."""

    def test_matches_utf8_bytes(self):
        """hash_text(s) equals hash_bytes of its UTF-8 encoding."""
        self.assertEqual(hash_text(SAMPLE_TEXT), hash_bytes(SAMPLE_TEXT.encode("utf-8")))
        self.assertEqual(hash_text("日本語"), hash_bytes("日本語".encode("utf-8")))

    def test_rejects_bytes(self):
        with self.assertRaises(TypeError):
            hash_text(b"abc")


class TestHashDict(unittest.TestCase):
    """Tests for hash_dict function."""

    def test_key_order_independent(self):
        """Key insertion order should not change the digest."""
        self.assertEqual(hash_dict({"a": 1, "b": 2}), hash_dict({"b": 2, "a": 1}))

    def test_value_change_changes_digest(self):
        self.assertNotEqual(hash_dict({"a": 1}), hash_dict({"a": 2}))

    def test_rejects_non_dict(self):
        with self.assertRaises(TypeError):
            hash_dict([("a", 1)])


class TestCombinedFingerprint(unittest.TestCase):
    """Tests for combined_fingerprint function."""

    def test_order_independent_pair(self):
        """combined_fingerprint(a, b) == combined_fingerprint(b, a)."""
        pairs = [("a", "b"), (SAMPLE_HASH, ADDRESS_A), ("", "x"), ("same", "same")]
        for a, b in pairs:
            self.assertEqual(combined_fingerprint(a, b), combined_fingerprint(b, a))

    def test_order_independent_many(self):
        """Any permutation gives the same result."""
        inputs = ["file", "description", "researcher", "1700000000"]
        expected = combined_fingerprint(*inputs)
        self.assertEqual(combined_fingerprint(*reversed(inputs)), expected)
        self.assertEqual(combined_fingerprint(*sorted(inputs)), expected)

    def test_separator_prevents_boundary_collision(self):
        """("ab", "c") and ("a", "bc") must not collide."""
        self.assertNotEqual(combined_fingerprint("ab", "c"), combined_fingerprint("a", "bc"))

    def test_sorted_join_definition(self):
        """The digest is the hash of the sorted inputs joined with |."""
        self.assertEqual(combined_fingerprint("b", "a"), hash_text("a|b"))

    def test_requires_input(self):
        with self.assertRaises(ValueError):
            combined_fingerprint()

    def test_rejects_non_string(self):
        with self.assertRaises(TypeError):
            combined_fingerprint("a", 1)


class TestSaltAndTimeHash(unittest.TestCase):
    """Tests for generate_salt and time_based_hash."""

    def test_salt_length_and_randomness(self):
        salt = generate_salt(16)
        self.assertEqual(len(salt), 32)
        self.assertTrue(all(c in "0123456789abcdef" for c in salt))
        self.assertNotEqual(generate_salt(), generate_salt())

    def test_salt_rejects_zero_length(self):
        with self.assertRaises(ValueError):
            generate_salt(0)

    def test_time_based_hash_deterministic(self):
        self.assertEqual(time_based_hash("x", 100), time_based_hash("x", 100))
        self.assertNotEqual(time_based_hash("x", 100), time_based_hash("x", 101))
        self.assertEqual(time_based_hash("x", 100), hash_text("x|100"))


class TestValidation(unittest.TestCase):
    """Tests for is_valid_hash and friends."""

    def test_accepts_both_cases(self):
        self.assertTrue(is_valid_hash(SAMPLE_HASH))
        self.assertTrue(is_valid_hash(SAMPLE_HASH.upper().replace("0X", "0x")))

    def test_rejects_empty(self):
        self.assertFalse(is_valid_hash(""))

    def test_rejects_missing_prefix(self):
        self.assertFalse(is_valid_hash(SAMPLE_HASH[2:]))
        self.assertFalse(is_valid_hash("00" + SAMPLE_HASH[2:]))

    def test_rejects_wrong_length(self):
        self.assertFalse(is_valid_hash("0x" + "a" * 63))
        self.assertFalse(is_valid_hash("0x" + "a" * 65))

    def test_rejects_non_hex(self):
        self.assertFalse(is_valid_hash("0x" + "g" + "a" * 63))
        self.assertFalse(is_valid_hash("0x" + "a" * 63 + " "))

    def test_rejects_non_string(self):
        self.assertFalse(is_valid_hash(None))
        self.assertFalse(is_valid_hash(12345))

    def test_rejects_trailing_newline(self):
        self.assertFalse(is_valid_hash(SAMPLE_HASH + "\n"))

    def test_address_validation(self):
        self.assertTrue(is_valid_address(ADDRESS_A))
        self.assertFalse(is_valid_address("0x1"))

    def test_require_valid_hash_fails_fast(self):
        """Invalid hashes raise a descriptive ValidationError, never coerced."""
        with self.assertRaises(ValidationError) as cm:
            require_valid_hash("0x123")
        self.assertIn("invalid data hash format", str(cm.exception))
        self.assertEqual(require_valid_hash(SAMPLE_HASH), SAMPLE_HASH)


class TestHashFile(unittest.TestCase):
    """Tests for file hashing."""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.path = Path(self.temp_dir) / "data.bin"
        self.path.write_bytes(SAMPLE_BYTES * 1000)

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_matches_hash_bytes(self):
        self.assertEqual(hash_file(self.path), hash_bytes(SAMPLE_BYTES * 1000))

    def test_chunk_size_does_not_matter(self):
        self.assertEqual(hash_file(self.path, chunk_size=7), hash_file(self.path, chunk_size=1 << 20))

    def test_progress_monotonic_and_complete(self):
        """Progress values never decrease and end at 100."""
        progress = RecordingProgress()
        hash_file(self.path, chunk_size=1000, progress=progress)
        self.assertTrue(progress.values)
        self.assertEqual(progress.values, sorted(progress.values))
        self.assertEqual(progress.values[-1], 100)
        self.assertTrue(all(0 <= v <= 100 for v in progress.values))

    def test_empty_file(self):
        empty = Path(self.temp_dir) / "empty.bin"
        empty.write_bytes(b"")
        progress = RecordingProgress()
        self.assertEqual(hash_file(empty, progress=progress), hash_bytes(b""))
        self.assertEqual(progress.values, [100])

    def test_oversized_rejected_before_reading(self):
        """A file over the ceiling is rejected without any progress."""
        big = Path(self.temp_dir) / "big.bin"
        with open(big, "wb") as f:
            f.truncate(150 * 1024 * 1024)
        progress = RecordingProgress()
        with self.assertRaises(FileTooLargeError) as cm:
            hash_file(big, progress=progress)
        self.assertEqual(progress.values, [])
        self.assertEqual(cm.exception.size, 150 * 1024 * 1024)
        self.assertIsInstance(cm.exception, ValidationError)

    def test_custom_ceiling(self):
        with self.assertRaises(FileTooLargeError):
            hash_file(self.path, max_bytes=10)

    def test_missing_file(self):
        with self.assertRaises(FileReadError):
            hash_file(Path(self.temp_dir) / "missing.bin")

    def test_invalid_chunk_size(self):
        with self.assertRaises(ValueError):
            hash_file(self.path, chunk_size=0)

    def test_async_variant(self):
        result = asyncio.run(hash_file_async(self.path))
        self.assertEqual(result, hash_file(self.path))


class TestContentHashAndIntegrity(unittest.TestCase):
    """Tests for content_hash, research_fingerprint and verify_file_integrity."""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.path = Path(self.temp_dir) / "results.csv"
        self.path.write_text("id,value\n1,2\n", encoding="utf-8")

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_content_hash_parts(self):
        hashes = content_hash(self.path, {"project": "soil"})
        self.assertEqual(hashes.content_hash, hash_file(self.path))
        self.assertEqual(
            hashes.combined_hash,
            combined_fingerprint(hashes.content_hash, hashes.metadata_hash),
        )
        self.assertNotEqual(hashes.metadata_hash, content_hash(self.path).metadata_hash)

    def test_research_fingerprint_deterministic(self):
        first = research_fingerprint(SAMPLE_HASH, "description", ADDRESS_A, 1700000000)
        second = research_fingerprint(SAMPLE_HASH, "description", ADDRESS_A, 1700000000)
        self.assertEqual(first, second)
        self.assertRegex(first.fingerprint, HASH_RE)
        self.assertEqual(first.timestamp_hash, hash_text("1700000000"))

    def test_research_fingerprint_rejects_bad_hash(self):
        with self.assertRaises(ValidationError):
            research_fingerprint("nothex", "description", ADDRESS_A, 1)

    def test_verify_file_integrity(self):
        expected = hash_file(self.path)
        self.assertTrue(verify_file_integrity(self.path, expected))
        self.assertTrue(verify_file_integrity(self.path, "0x" + expected[2:].upper()))
        self.path.write_text("id,value\n1,3\n", encoding="utf-8")
        self.assertFalse(verify_file_integrity(self.path, expected))

    def test_verify_with_metadata(self):
        combined = content_hash(self.path).combined_hash
        self.assertTrue(verify_file_integrity(self.path, combined, include_metadata=True))
        self.assertFalse(verify_file_integrity(self.path, combined))

    def test_verify_rejects_malformed_expected(self):
        with self.assertRaises(ValidationError):
            verify_file_integrity(self.path, "abc")


if __name__ == "__main__":
    unittest.main()

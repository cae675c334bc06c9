"""
Tests for researchstamp display helpers.

Tests cover:
- Address and hash truncation
- Timestamps and relative times
- File sizes, durations, percentages and counts
"""

import unittest

from researchstamp.format import (
    format_duration,
    format_file_size,
    format_number,
    format_percentage,
    format_relative,
    format_timestamp,
    short_address,
    short_hash,
)
from tests.fixtures.sample_data import ADDRESS_A, BASE_TIME, SAMPLE_HASH


class TestFormat(unittest.TestCase):
    """Tests for display helpers."""

    def test_short_address(self):
        self.assertEqual(short_address(ADDRESS_A), f"{ADDRESS_A[:8]}...{ADDRESS_A[-4:]}")
        self.assertEqual(short_address("0x1234"), "0x1234")
        self.assertEqual(short_address(""), "")

    def test_short_hash(self):
        self.assertEqual(short_hash(SAMPLE_HASH), f"{SAMPLE_HASH[:12]}...{SAMPLE_HASH[-12:]}")

    def test_timestamp(self):
        self.assertEqual(format_timestamp(BASE_TIME), "2023-11-14 22:13:20 UTC")
        self.assertEqual(format_timestamp(BASE_TIME, include_time=False), "2023-11-14")

    def test_relative(self):
        self.assertEqual(format_relative(BASE_TIME, now=BASE_TIME), "just now")
        self.assertEqual(format_relative(BASE_TIME, now=BASE_TIME + 7200), "2 hours ago")
        self.assertEqual(format_relative(BASE_TIME, now=BASE_TIME + 86400), "1 day ago")

    def test_file_size(self):
        self.assertEqual(format_file_size(0), "0 Bytes")
        self.assertEqual(format_file_size(512), "512 Bytes")
        self.assertEqual(format_file_size(1536), "1.5 KB")
        self.assertEqual(format_file_size(100 * 1024 * 1024), "100.0 MB")

    def test_duration(self):
        self.assertEqual(format_duration(0), "N/A")
        self.assertEqual(format_duration(45), "45 seconds")
        self.assertEqual(format_duration(90), "1.5 minutes")
        self.assertEqual(format_duration(5400), "1.5 hours")

    def test_numbers(self):
        self.assertEqual(format_percentage(33.333), "33.3%")
        self.assertEqual(format_number(999), "999")
        self.assertEqual(format_number(1500), "1.5K")
        self.assertEqual(format_number(2_000_000), "2.0M")


if __name__ == "__main__":
    unittest.main()

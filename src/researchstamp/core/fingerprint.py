"""
Fingerprinting engine for researchstamp.

This module turns file bytes and submission metadata into deterministic,
content-addressable digests. Everything here is pure and deterministic -
the same input always produces the same output - except generate_salt(),
which exists precisely to introduce randomness when a caller asks for it.

The module implements:
- Digests of bytes, text and dictionaries
- Order-independent combined fingerprints over several string inputs
- Chunked file hashing with a size ceiling and progress reporting
- Hash and identity format validation

All digests are SHA-256, represented as "0x" followed by 64 lowercase
hexadecimal characters. Validation accepts either case.
"""

import asyncio
import hashlib
import json
import re
import secrets
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Union

from researchstamp.core.errors import FileReadError, FileTooLargeError, ValidationError

HASH_PREFIX = "0x"
HASH_PATTERN = re.compile(r"^0x[0-9a-fA-F]{64}$")
# Identities share the digest shape: 0x + 32 bytes of hex.
ADDRESS_PATTERN = HASH_PATTERN

DEFAULT_MAX_FILE_BYTES = 100 * 1024 * 1024
DEFAULT_CHUNK_SIZE = 1024 * 1024
FINGERPRINT_SEPARATOR = "|"

ProgressCallback = Callable[[int], None]
PathLike = Union[str, Path]


def _digest(data: bytes) -> str:
    return HASH_PREFIX + hashlib.sha256(data).hexdigest()


def hash_bytes(data: bytes) -> str:
    """
    Compute the SHA-256 fingerprint of raw bytes.

    This is the fundamental operation; every other fingerprint in this
    module is built on it.

    Args:
        data: Raw bytes (bytes, bytearray or memoryview).

    Returns:
        "0x" followed by 64 lowercase hexadecimal characters.

    Raises:
        TypeError: If data is not bytes-like.

    Example:
        >>> hash_bytes(b"hello")
        '0x2cf24dba5fb0a30e26e83b2ac5b9e29e1b161e5c1fa7425e73043362938b9824'
    """
    if not isinstance(data, (bytes, bytearray, memoryview)):
        raise TypeError(f"Expected bytes, got {type(data).__name__}")
    return _digest(bytes(data))


def hash_text(text: str) -> str:
    """
    Compute the SHA-256 fingerprint of a string.

    The text is encoded as UTF-8 first, so hash_text(s) equals
    hash_bytes(s.encode("utf-8")).

    Raises:
        TypeError: If text is not a string.
    """
    if not isinstance(text, str):
        raise TypeError(f"Expected str, got {type(text).__name__}")
    return _digest(text.encode("utf-8"))


def hash_dict(data: Dict[str, Any]) -> str:
    """
    Compute the SHA-256 fingerprint of a dictionary.

    The dictionary is serialized to JSON with sorted keys and compact
    separators, so key insertion order does not affect the result.

    Raises:
        TypeError: If data is not a dictionary or holds values that are not
            JSON-serializable.
    """
    if not isinstance(data, dict):
        raise TypeError(f"Expected dict, got {type(data).__name__}")
    json_str = json.dumps(data, sort_keys=True, separators=(",", ":"))
    return _digest(json_str.encode("utf-8"))


def combined_fingerprint(*inputs: str) -> str:
    """
    Compute an order-independent fingerprint over several strings.

    Inputs are sorted lexicographically and joined with "|" before hashing,
    so combined_fingerprint(a, b) == combined_fingerprint(b, a). The
    separator keeps ("ab", "c") and ("a", "bc") apart.

    Args:
        *inputs: One or more strings, typically other fingerprints.

    Returns:
        "0x" followed by 64 lowercase hexadecimal characters.

    Raises:
        ValueError: If no inputs are given.
        TypeError: If any input is not a string.
    """
    if not inputs:
        raise ValueError("combined_fingerprint requires at least one input")
    for value in inputs:
        if not isinstance(value, str):
            raise TypeError(f"Expected str inputs, got {type(value).__name__}")
    return hash_text(FINGERPRINT_SEPARATOR.join(sorted(inputs)))


def generate_salt(length: int = 32) -> str:
    """
    Generate a random salt of length bytes, hex encoded.

    This is the only non-deterministic function in the module. Nothing
    else salts its input implicitly.

    Raises:
        ValueError: If length is less than 1.
    """
    if length < 1:
        raise ValueError("salt length must be at least 1")
    return secrets.token_hex(length)


def time_based_hash(data: str, timestamp: int) -> str:
    """Fingerprint data bound to a timestamp: hash of "data|timestamp"."""
    return hash_text(f"{data}{FINGERPRINT_SEPARATOR}{int(timestamp)}")


def is_valid_hash(value: Any) -> bool:
    """
    Return True iff value is "0x" followed by exactly 64 hex characters.

    Either letter case is accepted. Anything that is not a string is
    rejected rather than coerced.
    """
    return isinstance(value, str) and HASH_PATTERN.fullmatch(value) is not None


def is_valid_address(value: Any) -> bool:
    """Return True iff value has the canonical identity format."""
    return isinstance(value, str) and ADDRESS_PATTERN.fullmatch(value) is not None


def require_valid_hash(value: Any, field_name: str = "data hash") -> str:
    """
    Gate a hash before it is persisted or submitted.

    Returns:
        The value unchanged.

    Raises:
        ValidationError: If the value is not a well-formed hash.
    """
    if not is_valid_hash(value):
        raise ValidationError(f"invalid {field_name} format: expected 0x followed by 64 hex characters")
    return value


def require_valid_address(value: Any) -> str:
    """Like require_valid_hash, for researcher identities."""
    if not is_valid_address(value):
        raise ValidationError("invalid address format: expected 0x followed by 64 hex characters")
    return value


def hash_file(
    path: PathLike,
    max_bytes: int = DEFAULT_MAX_FILE_BYTES,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    progress: Optional[ProgressCallback] = None,
) -> str:
    """
    Compute the SHA-256 fingerprint of a file's contents.

    The size ceiling is checked with stat() before any byte is read, so an
    oversized file is rejected without partial work. The file is then read
    in chunks; progress, if given, receives integer percentages that never
    decrease and finish at 100.

    Args:
        path: File to hash.
        max_bytes: Size ceiling in bytes.
        chunk_size: Read size per iteration.
        progress: Optional callback receiving 0-100.

    Returns:
        "0x" followed by 64 lowercase hexadecimal characters.

    Raises:
        FileTooLargeError: If the file is larger than max_bytes.
        FileReadError: If the file cannot be read.
    """
    if chunk_size < 1:
        raise ValueError("chunk_size must be at least 1")
    file_path = Path(path)
    try:
        size = file_path.stat().st_size
    except OSError as e:
        raise FileReadError(f"failed to read file {file_path.name}: {e.strerror or e}") from e

    if size > max_bytes:
        raise FileTooLargeError(size, max_bytes)

    hasher = hashlib.sha256()
    last_reported = 0
    done = 0
    try:
        with open(file_path, "rb") as f:
            while True:
                chunk = f.read(chunk_size)
                if not chunk:
                    break
                hasher.update(chunk)
                done += len(chunk)
                if progress is not None and size:
                    # Capped at 99 until the digest is final.
                    percent = min(99, done * 100 // size)
                    if percent > last_reported:
                        last_reported = percent
                        progress(percent)
    except OSError as e:
        raise FileReadError(f"failed to read file {file_path.name}: {e.strerror or e}") from e

    if progress is not None:
        progress(100)
    return HASH_PREFIX + hasher.hexdigest()


async def hash_file_async(
    path: PathLike,
    max_bytes: int = DEFAULT_MAX_FILE_BYTES,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    progress: Optional[ProgressCallback] = None,
) -> str:
    """Run hash_file in a worker thread so the event loop stays responsive."""
    return await asyncio.to_thread(hash_file, path, max_bytes, chunk_size, progress)


@dataclass(frozen=True)
class ContentHashes:
    """Content, metadata and combined fingerprints of one file."""

    content_hash: str
    metadata_hash: str
    combined_hash: str


def file_metadata(path: PathLike) -> Dict[str, Any]:
    """Describe a file by name, size, suffix and modification time."""
    file_path = Path(path)
    try:
        stat = file_path.stat()
    except OSError as e:
        raise FileReadError(f"failed to read file {file_path.name}: {e.strerror or e}") from e
    return {
        "name": file_path.name,
        "size": stat.st_size,
        "extension": file_path.suffix.lstrip(".").lower(),
        "last_modified": int(stat.st_mtime),
    }


def content_hash(
    path: PathLike,
    metadata: Optional[Dict[str, Any]] = None,
    max_bytes: int = DEFAULT_MAX_FILE_BYTES,
) -> ContentHashes:
    """
    Fingerprint a file together with its metadata.

    Caller-supplied metadata is merged over the file's own (name, size,
    extension, last_modified) before hashing.
    """
    contents = hash_file(path, max_bytes=max_bytes)
    merged = file_metadata(path)
    if metadata:
        merged.update(metadata)
    meta = hash_dict(merged)
    return ContentHashes(
        content_hash=contents,
        metadata_hash=meta,
        combined_hash=combined_fingerprint(contents, meta),
    )


@dataclass(frozen=True)
class ResearchFingerprint:
    """Per-part hashes of a submission and the fingerprint combining them."""

    file_hash: str
    metadata_hash: str
    researcher_hash: str
    timestamp_hash: str
    fingerprint: str


def research_fingerprint(
    file_hash: str,
    description: str,
    researcher: str,
    timestamp: int,
) -> ResearchFingerprint:
    """
    Bind a file hash to its description, researcher and time.

    Each part is hashed on its own and the four hashes are combined with
    combined_fingerprint(), so the result does not depend on argument
    order inside the combination.

    Raises:
        ValidationError: If file_hash is not a well-formed hash.
    """
    require_valid_hash(file_hash, "file hash")
    metadata_hash = hash_text(description)
    researcher_hash = hash_text(researcher)
    timestamp_hash = hash_text(str(int(timestamp)))
    return ResearchFingerprint(
        file_hash=file_hash,
        metadata_hash=metadata_hash,
        researcher_hash=researcher_hash,
        timestamp_hash=timestamp_hash,
        fingerprint=combined_fingerprint(file_hash, metadata_hash, researcher_hash, timestamp_hash),
    )


def verify_file_integrity(
    path: PathLike,
    expected_hash: str,
    include_metadata: bool = False,
    max_bytes: int = DEFAULT_MAX_FILE_BYTES,
) -> bool:
    """
    Check a file against a previously recorded fingerprint.

    The comparison ignores hex letter case. With include_metadata the
    combined content+metadata hash is compared instead of the content hash.

    Raises:
        ValidationError: If expected_hash is malformed.
        FileTooLargeError, FileReadError: As for hash_file.
    """
    require_valid_hash(expected_hash, "expected hash")
    if include_metadata:
        actual = content_hash(path, max_bytes=max_bytes).combined_hash
    else:
        actual = hash_file(path, max_bytes=max_bytes)
    return actual.lower() == expected_hash.lower()

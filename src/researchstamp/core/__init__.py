"""
researchstamp core module.

Contains the record types, the fingerprinting engine and the error taxonomy.
"""

from researchstamp.core.errors import (
    ErrorKind,
    ResearchStampError,
    ValidationError,
    FileTooLargeError,
    DuplicateSubmissionError,
    TransportError,
    FileReadError,
    IntegrityError,
    classify,
    format_message,
    user_message,
)

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
    require_valid_address,
)

from researchstamp.core.record import (
    ResearchRecord,
    Statistics,
    SubmissionDraft,
    FileUploadState,
)

__all__ = [
    # Errors
    "ErrorKind",
    "ResearchStampError",
    "ValidationError",
    "FileTooLargeError",
    "DuplicateSubmissionError",
    "TransportError",
    "FileReadError",
    "IntegrityError",
    "classify",
    "format_message",
    "user_message",
    # Fingerprinting
    "hash_bytes",
    "hash_text",
    "hash_dict",
    "hash_file",
    "hash_file_async",
    "combined_fingerprint",
    "generate_salt",
    "time_based_hash",
    "content_hash",
    "research_fingerprint",
    "verify_file_integrity",
    "is_valid_hash",
    "is_valid_address",
    "require_valid_hash",
    "require_valid_address",
    # Records
    "ResearchRecord",
    "Statistics",
    "SubmissionDraft",
    "FileUploadState",
]

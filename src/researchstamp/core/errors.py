"""
Error taxonomy for researchstamp.

Every failure surfaced by the library maps to exactly one ErrorKind. Each
kind has a single user-facing message template; anything that cannot be
classified falls back to a safe default message so internal detail never
leaks to the user.

Kinds:
    - VALIDATION: local, recoverable input problems. Never contacts the ledger.
    - DUPLICATE: the ledger already holds a record for the identity.
    - TRANSPORT: the ledger, the storage medium or a file could not be reached.
    - INTEGRITY: persisted data failed to parse on load.
"""

import enum
from typing import Iterable, List, Optional


class ErrorKind(str, enum.Enum):
    """Classification shared by exceptions and structured results."""

    VALIDATION = "validation"
    DUPLICATE = "duplicate"
    TRANSPORT = "transport"
    INTEGRITY = "integrity"
    UNKNOWN = "unknown"


DEFAULT_MESSAGE = "An unexpected error occurred. Please try again."

MESSAGE_TEMPLATES = {
    ErrorKind.VALIDATION: "Please correct the following: {detail}",
    ErrorKind.DUPLICATE: (
        "You have already submitted research data. "
        "Each researcher can only submit once. ({detail})"
    ),
    ErrorKind.TRANSPORT: "The service is unreachable right now: {detail}. Please retry.",
    ErrorKind.INTEGRITY: "Saved registry data was unreadable and has been reset: {detail}",
    ErrorKind.UNKNOWN: DEFAULT_MESSAGE,
}


class ResearchStampError(Exception):
    """Base class for all classified researchstamp errors."""

    kind = ErrorKind.UNKNOWN

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(ResearchStampError):
    """
    Local input validation failed.

    Attributes:
        errors: The individual validation messages, in the order found.
    """

    kind = ErrorKind.VALIDATION

    def __init__(self, message: str, errors: Optional[Iterable[str]] = None) -> None:
        super().__init__(message)
        self.errors: List[str] = list(errors) if errors is not None else [message]


class FileTooLargeError(ValidationError):
    """Input exceeds the configured size ceiling; raised before hashing starts."""

    def __init__(self, size: int, limit: int) -> None:
        message = f"file size {size} bytes exceeds the {limit} byte limit"
        super().__init__(message)
        self.size = size
        self.limit = limit


class DuplicateSubmissionError(ResearchStampError):
    """The ledger already holds a confirmed record for this identity."""

    kind = ErrorKind.DUPLICATE

    def __init__(self, address: str, message: Optional[str] = None) -> None:
        super().__init__(message or f"already submitted: {address}")
        self.address = address


class TransportError(ResearchStampError):
    """The ledger or the storage medium could not be reached."""

    kind = ErrorKind.TRANSPORT


class FileReadError(TransportError):
    """A file could not be read for hashing."""


class IntegrityError(ResearchStampError):
    """A persisted blob failed to parse or did not match the expected shape."""

    kind = ErrorKind.INTEGRITY


def classify(error: BaseException) -> ErrorKind:
    """Return the ErrorKind for any exception."""
    if isinstance(error, ResearchStampError):
        return error.kind
    return ErrorKind.UNKNOWN


def format_message(kind: ErrorKind, detail: str) -> str:
    """Render the template for kind with detail filled in."""
    if kind is ErrorKind.UNKNOWN:
        return DEFAULT_MESSAGE
    return MESSAGE_TEMPLATES[kind].format(detail=detail)


def user_message(error: BaseException) -> str:
    """
    Render the user-facing message for an exception.

    Classified errors use their kind's template; anything else gets the
    default message, never the exception text.
    """
    kind = classify(error)
    if kind is ErrorKind.UNKNOWN:
        return DEFAULT_MESSAGE
    detail = error.message
    if isinstance(error, ValidationError) and len(error.errors) > 1:
        detail = "; ".join(error.errors)
    return format_message(kind, detail)

"""
Core data record types for researchstamp.

ResearchRecord and Statistics are immutable dataclasses:
- Immutable (frozen=True) so a confirmed record cannot drift after entry
- Serializable via to_dict() and from_dict() methods
- Validated in __post_init__

SubmissionDraft and FileUploadState are mutable session state owned by the
submission pipeline. They are never persisted.
"""

from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Any, Dict, Optional

from researchstamp.core.fingerprint import is_valid_address, is_valid_hash

DESCRIPTION_MIN = 10
DESCRIPTION_MAX = 500


@dataclass(frozen=True)
class ResearchRecord:
    """
    One confirmed submission, as acknowledged by the ledger.

    Attributes:
        id: Stable identifier (the researcher address for ledger records).
        researcher_address: Identity, "0x" followed by 64 hex characters.
        data_hash: Content fingerprint, "0x" followed by 64 hex characters.
        submission_time: Seconds since epoch, assigned by the ledger.
        description: Free text, 10 to 500 characters.
        is_verified: Set only by the verification authority.
        verification_time: Seconds since epoch when verification happened,
            or None when unknown or unverified.
    """

    id: str
    researcher_address: str
    data_hash: str
    submission_time: int
    description: str
    is_verified: bool = False
    verification_time: Optional[int] = None

    def __post_init__(self) -> None:
        """Validate field formats."""
        if not self.id or not isinstance(self.id, str):
            raise ValueError("id must be a non-empty string")
        if not isinstance(self.researcher_address, str) or not is_valid_address(
            self.researcher_address
        ):
            raise ValueError("researcher_address must be 0x followed by 64 hex characters")
        if not isinstance(self.data_hash, str) or not is_valid_hash(self.data_hash):
            raise ValueError("data_hash must be 0x followed by 64 hex characters")
        if (
            not isinstance(self.submission_time, int)
            or isinstance(self.submission_time, bool)
            or self.submission_time < 0
        ):
            raise ValueError("submission_time must be a non-negative integer")
        if not isinstance(self.description, str):
            raise ValueError("description must be a string")
        if not DESCRIPTION_MIN <= len(self.description) <= DESCRIPTION_MAX:
            raise ValueError(
                f"description must be {DESCRIPTION_MIN} to {DESCRIPTION_MAX} characters"
            )
        if not isinstance(self.is_verified, bool):
            raise ValueError("is_verified must be a boolean")
        if self.verification_time is not None and (
            not isinstance(self.verification_time, int)
            or self.verification_time < self.submission_time
        ):
            raise ValueError(
                "verification_time must be an integer no earlier than submission_time"
            )

    @property
    def verification_duration(self) -> Optional[int]:
        """Seconds between submission and verification, if both are known."""
        if not self.is_verified or self.verification_time is None:
            return None
        return self.verification_time - self.submission_time

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert the record to a plain dictionary.

        Returns:
            A dictionary representation of all fields.
        """
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ResearchRecord":
        """
        Create a ResearchRecord from a dictionary.

        Args:
            data: Dictionary containing record fields.

        Returns:
            A new ResearchRecord instance.

        Raises:
            KeyError: If required fields are missing.
            ValueError: If field validation fails.
        """
        return cls(
            id=data["id"],
            researcher_address=data["researcher_address"],
            data_hash=data["data_hash"],
            submission_time=data["submission_time"],
            description=data["description"],
            is_verified=data.get("is_verified", False),
            verification_time=data.get("verification_time"),
        )


@dataclass(frozen=True)
class Statistics:
    """
    Aggregate view over the registry's confirmed records.

    Attributes:
        total_submissions: Number of confirmed records.
        verified_submissions: Number of those flagged as verified.
        active_researchers: Number of distinct researcher addresses.
        average_verification_time: Mean seconds from submission to
            verification over verified records with a known verification
            time; 0.0 when there are none.
    """

    total_submissions: int = 0
    verified_submissions: int = 0
    active_researchers: int = 0
    average_verification_time: float = 0.0

    def __post_init__(self) -> None:
        """Validate counters."""
        for name in ("total_submissions", "verified_submissions", "active_researchers"):
            value = getattr(self, name)
            if not isinstance(value, int) or value < 0:
                raise ValueError(f"{name} must be a non-negative integer")
        if self.verified_submissions > self.total_submissions:
            raise ValueError("verified_submissions cannot exceed total_submissions")
        if self.average_verification_time < 0:
            raise ValueError("average_verification_time must be non-negative")

    def to_dict(self) -> Dict[str, Any]:
        """Convert the statistics to a plain dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Statistics":
        """Create Statistics from a dictionary."""
        return cls(
            total_submissions=data.get("total_submissions", 0),
            verified_submissions=data.get("verified_submissions", 0),
            active_researchers=data.get("active_researchers", 0),
            average_verification_time=float(data.get("average_verification_time", 0.0)),
        )


@dataclass
class FileUploadState:
    """
    Progress of hashing one selected file.

    progress runs from 0 to 100 and never decreases while uploading is set.
    """

    file: Optional[Path] = None
    uploading: bool = False
    progress: int = 0
    hash: Optional[str] = None
    error: Optional[str] = None

    def advance(self, percent: int) -> None:
        """Raise progress to percent, ignoring values that would move it back."""
        percent = max(0, min(100, int(percent)))
        if percent > self.progress:
            self.progress = percent

    def clear(self) -> None:
        """Forget the file and everything derived from it."""
        self.file = None
        self.uploading = False
        self.progress = 0
        self.hash = None
        self.error = None


@dataclass
class SubmissionDraft:
    """The single in-progress submission of a user session."""

    description: str = ""
    data_hash: str = ""
    selected_file: Optional[Path] = None
    upload: FileUploadState = field(default_factory=FileUploadState)

    def clear(self) -> None:
        """Return the draft to its freshly created state."""
        self.description = ""
        self.data_hash = ""
        self.selected_file = None
        self.upload.clear()

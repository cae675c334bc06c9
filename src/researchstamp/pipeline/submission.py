"""
Submission pipeline for researchstamp.

SubmissionPipeline owns the session's SubmissionDraft and FileUploadState
and is the only place that decides which state transitions are legal:

    EMPTY -> HASHING -> READY -> SUBMITTING -> COMMITTED
    READY | SUBMITTING | HASHING -> FAILED -> READY or EMPTY

Callers drive it with command objects passed to dispatch(). Every command
returns a PipelineOutcome; local validation problems and ledger rejections
come back as outcomes rather than exceptions, so the caller can always
show the error and continue from a well-defined state.

A record only reaches the registry after the ledger has confirmed it.
"""

import enum
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple, Union

from researchstamp.core.errors import (
    DuplicateSubmissionError,
    ErrorKind,
    ResearchStampError,
    format_message,
    user_message,
)
from researchstamp.core.fingerprint import (
    DEFAULT_CHUNK_SIZE,
    DEFAULT_MAX_FILE_BYTES,
    hash_file_async,
    is_valid_address,
    is_valid_hash,
)
from researchstamp.core.record import (
    DESCRIPTION_MAX,
    DESCRIPTION_MIN,
    FileUploadState,
    ResearchRecord,
    SubmissionDraft,
)
from researchstamp.ledger.base import WalletProvider
from researchstamp.ledger.gateway import LedgerGateway
from researchstamp.registry.cache import RegistryCache

logger = logging.getLogger(__name__)

# Validation messages, also used by tests and presentation layers.
MSG_DESCRIPTION_REQUIRED = "description is required"
MSG_DESCRIPTION_SHORT = "description too short"
MSG_DESCRIPTION_LONG = "description too long"
MSG_HASH_REQUIRED = "data hash is required"
MSG_HASH_INVALID = "invalid data hash format"
MSG_NO_IDENTITY = "no active identity"
MSG_IDENTITY_INVALID = "invalid identity format"
MSG_IN_PROGRESS = "submission already in progress"
MSG_STILL_HASHING = "file is still being hashed"
MSG_UNACKNOWLEDGED = "previous error must be acknowledged first"
MSG_NO_FILE = "no file selected"


class SubmissionState(str, enum.Enum):
    EMPTY = "empty"
    HASHING = "hashing"
    READY = "ready"
    SUBMITTING = "submitting"
    COMMITTED = "committed"
    FAILED = "failed"


# =============================================================================
# Commands
# =============================================================================


@dataclass(frozen=True)
class SelectFile:
    """A file was chosen or dropped; hash it."""

    path: Union[str, Path]


@dataclass(frozen=True)
class RetryHash:
    """Hash the still-selected file again after a hashing failure."""


@dataclass(frozen=True)
class EnterHash:
    """A hash was typed in by hand."""

    value: str


@dataclass(frozen=True)
class UpdateDescription:
    text: str


@dataclass(frozen=True)
class ClearFile:
    """Drop the selected file, cancelling any hashing in progress."""


@dataclass(frozen=True)
class Submit:
    pass


@dataclass(frozen=True)
class AcknowledgeError:
    pass


@dataclass(frozen=True)
class Reset:
    pass


Command = Union[
    SelectFile, RetryHash, EnterHash, UpdateDescription, ClearFile, Submit, AcknowledgeError, Reset
]


@dataclass(frozen=True)
class PipelineOutcome:
    """
    Result of dispatching one command.

    Attributes:
        state: Pipeline state after the command. A successful submission
            reports COMMITTED even though the pipeline itself is back at
            EMPTY with a fresh draft.
        errors: Validation or failure messages, empty on success.
        error_kind: Classification of the failure, if any.
        message: User-facing message for the failure, if any.
        record: The confirmed record after a successful submission.
        cancelled: True when a hash finished after its file was cleared or
            replaced and was therefore discarded.
    """

    state: SubmissionState
    errors: Tuple[str, ...] = ()
    error_kind: Optional[ErrorKind] = None
    message: str = ""
    record: Optional[ResearchRecord] = None
    cancelled: bool = False

    @property
    def ok(self) -> bool:
        return self.error_kind is None and not self.errors


@dataclass
class _LastError:
    kind: ErrorKind
    message: str
    errors: List[str] = field(default_factory=list)


class SubmissionPipeline:
    """
    State machine driving one draft from file selection to confirmation.

    Only one submission can be in flight: a Submit received while SUBMITTING
    is refused. A submission already sent cannot be cancelled; Reset and
    ClearFile are refused while SUBMITTING.

    Attributes:
        state: Current SubmissionState.
        draft: The session's SubmissionDraft.
        last_error: Kind and message of the most recent failure, if any.

    Example:
        >>> pipeline = SubmissionPipeline(gateway, cache, wallet)
        >>> await pipeline.dispatch(SelectFile("data.csv"))
        >>> await pipeline.dispatch(UpdateDescription("Soil samples, 2024 season"))
        >>> outcome = await pipeline.dispatch(Submit())
        >>> outcome.state
        <SubmissionState.COMMITTED: 'committed'>
    """

    def __init__(
        self,
        gateway: LedgerGateway,
        cache: RegistryCache,
        wallet: WalletProvider,
        max_file_bytes: int = DEFAULT_MAX_FILE_BYTES,
        description_min: int = DESCRIPTION_MIN,
        description_max: int = DESCRIPTION_MAX,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        show_pending: bool = False,
    ) -> None:
        """
        Args:
            gateway: Adapter to the ledger collaborator.
            cache: Registry receiving confirmed records.
            wallet: Wallet collaborator supplying the identity.
            max_file_bytes: Size ceiling for hashed files.
            description_min: Minimum description length, at least DESCRIPTION_MIN.
            description_max: Maximum description length, at most DESCRIPTION_MAX.
            chunk_size: Read size used while hashing.
            show_pending: Put a pending entry in the cache's pending
                projection while a submission is in flight.

        Raises:
            ValueError: If the description bounds fall outside what a
                ResearchRecord accepts.
        """
        if not DESCRIPTION_MIN <= description_min <= description_max <= DESCRIPTION_MAX:
            raise ValueError(
                f"description bounds must satisfy {DESCRIPTION_MIN} <= min <= max <= {DESCRIPTION_MAX}"
            )
        self._gateway = gateway
        self._cache = cache
        self._wallet = wallet
        self._max_file_bytes = max_file_bytes
        self._description_min = description_min
        self._description_max = description_max
        self._chunk_size = chunk_size
        self._show_pending = show_pending

        self._state = SubmissionState.EMPTY
        self._draft = SubmissionDraft()
        # Bumped whenever the selected file is cleared or replaced; a hash
        # computed under an older generation is discarded.
        self._generation = 0
        self.last_error: Optional[_LastError] = None
        self.last_record: Optional[ResearchRecord] = None

    @property
    def state(self) -> SubmissionState:
        return self._state

    @property
    def draft(self) -> SubmissionDraft:
        return self._draft

    @property
    def upload(self) -> FileUploadState:
        return self._draft.upload

    # =========================================================================
    # Validation
    # =========================================================================

    def validate(self) -> List[str]:
        """
        Check the Submit preconditions without changing anything.

        Returns:
            Validation messages in a fixed order; empty when the draft may
            be submitted.
        """
        errors: List[str] = []
        description = self._draft.description.strip()
        if not description:
            errors.append(MSG_DESCRIPTION_REQUIRED)
        elif len(description) < self._description_min:
            errors.append(MSG_DESCRIPTION_SHORT)
        elif len(description) > self._description_max:
            errors.append(MSG_DESCRIPTION_LONG)

        if not self._draft.data_hash:
            errors.append(MSG_HASH_REQUIRED)
        elif not is_valid_hash(self._draft.data_hash):
            errors.append(MSG_HASH_INVALID)

        identity = self._wallet.get_active_identity()
        if identity is None:
            errors.append(MSG_NO_IDENTITY)
        elif not is_valid_address(identity):
            errors.append(MSG_IDENTITY_INVALID)
        return errors

    # =========================================================================
    # Dispatch
    # =========================================================================

    async def dispatch(self, command: Command) -> PipelineOutcome:
        """
        Apply one command.

        Raises:
            TypeError: If command is not one of the pipeline's commands.
        """
        if isinstance(command, SelectFile):
            return await self._select_file(Path(command.path))
        if isinstance(command, RetryHash):
            return await self._retry_hash()
        if isinstance(command, EnterHash):
            return self._enter_hash(command.value)
        if isinstance(command, UpdateDescription):
            return self._update_description(command.text)
        if isinstance(command, ClearFile):
            return self._clear_file()
        if isinstance(command, Submit):
            return await self._submit()
        if isinstance(command, AcknowledgeError):
            return self._acknowledge()
        if isinstance(command, Reset):
            return self._reset()
        raise TypeError(f"Unknown pipeline command: {type(command).__name__}")

    def _outcome(self, **kwargs) -> PipelineOutcome:
        return PipelineOutcome(state=self._state, **kwargs)

    def _refused(self, message: str) -> PipelineOutcome:
        return self._outcome(
            errors=(message,),
            error_kind=ErrorKind.VALIDATION,
            message=format_message(ErrorKind.VALIDATION, message),
        )

    # -- file hashing ---------------------------------------------------------

    async def _select_file(self, path: Path) -> PipelineOutcome:
        if self._state is SubmissionState.SUBMITTING:
            return self._refused(MSG_IN_PROGRESS)
        self._generation += 1
        upload = self._draft.upload
        upload.clear()
        upload.file = path
        self._draft.selected_file = path
        self._draft.data_hash = ""
        return await self._run_hash()

    async def _retry_hash(self) -> PipelineOutcome:
        if self._state is SubmissionState.SUBMITTING:
            return self._refused(MSG_IN_PROGRESS)
        path = self._draft.selected_file
        if path is None:
            return self._refused(MSG_NO_FILE)
        self._generation += 1
        upload = self._draft.upload
        upload.clear()
        upload.file = path
        return await self._run_hash()

    async def _run_hash(self) -> PipelineOutcome:
        generation = self._generation
        upload = self._draft.upload
        path = upload.file
        upload.uploading = True
        self._state = SubmissionState.HASHING
        self.last_error = None

        def report(percent: int) -> None:
            # Runs in the hashing thread; ignore reports for a replaced file.
            if self._generation == generation:
                upload.advance(percent)

        try:
            digest = await hash_file_async(
                path,
                max_bytes=self._max_file_bytes,
                chunk_size=self._chunk_size,
                progress=report,
            )
        except ResearchStampError as e:
            if self._generation != generation:
                logger.debug("Discarding hashing failure for replaced file %s", path)
                return self._outcome(cancelled=True)
            upload.uploading = False
            upload.progress = 0
            upload.error = e.message
            self._state = SubmissionState.FAILED
            self.last_error = _LastError(e.kind, user_message(e), [e.message])
            logger.info("Hashing %s failed: %s", path, e.message)
            return self._outcome(
                errors=(e.message,), error_kind=e.kind, message=self.last_error.message
            )

        if self._generation != generation:
            logger.debug("Discarding hash of cleared or replaced file %s", path)
            return self._outcome(cancelled=True)

        upload.uploading = False
        upload.advance(100)
        upload.hash = digest
        self._draft.data_hash = digest
        self._state = SubmissionState.READY
        return self._outcome()

    def _clear_file(self) -> PipelineOutcome:
        if self._state is SubmissionState.SUBMITTING:
            return self._refused(MSG_IN_PROGRESS)
        self._generation += 1
        upload = self._draft.upload
        if upload.hash is not None and self._draft.data_hash == upload.hash:
            self._draft.data_hash = ""
        upload.clear()
        self._draft.selected_file = None
        self.last_error = None
        self._state = (
            SubmissionState.READY if is_valid_hash(self._draft.data_hash) else SubmissionState.EMPTY
        )
        return self._outcome()

    # -- draft edits ----------------------------------------------------------

    def _enter_hash(self, value: str) -> PipelineOutcome:
        if self._state is SubmissionState.SUBMITTING:
            return self._refused(MSG_IN_PROGRESS)
        value = (value or "").strip()
        if not value:
            return self._refused(MSG_HASH_REQUIRED)
        if not is_valid_hash(value):
            return self._refused(MSG_HASH_INVALID)
        # A typed hash replaces anything derived from a file.
        self._generation += 1
        self._draft.upload.clear()
        self._draft.selected_file = None
        self._draft.data_hash = value
        self.last_error = None
        self._state = SubmissionState.READY
        return self._outcome()

    def _update_description(self, text: str) -> PipelineOutcome:
        if self._state is SubmissionState.SUBMITTING:
            return self._refused(MSG_IN_PROGRESS)
        self._draft.description = text or ""
        return self._outcome()

    # -- submission -----------------------------------------------------------

    async def _submit(self) -> PipelineOutcome:
        if self._state is SubmissionState.SUBMITTING:
            return self._refused(MSG_IN_PROGRESS)
        if self._state is SubmissionState.HASHING:
            return self._refused(MSG_STILL_HASHING)
        if self._state is SubmissionState.FAILED:
            return self._refused(MSG_UNACKNOWLEDGED)

        errors = self.validate()
        if errors:
            return self._outcome(
                errors=tuple(errors),
                error_kind=ErrorKind.VALIDATION,
                message=format_message(ErrorKind.VALIDATION, "; ".join(errors)),
            )

        address = self._wallet.get_active_identity()
        data_hash = self._draft.data_hash
        description = self._draft.description.strip()

        self._state = SubmissionState.SUBMITTING
        if self._show_pending:
            self._cache.add_pending(address, data_hash, description)
        try:
            result = await self._gateway.submit(address, data_hash, description, self._wallet)
        finally:
            if self._show_pending:
                self._cache.discard_pending(address)

        if not result.success:
            return await self._fail(address, result.error_kind or ErrorKind.UNKNOWN, result.message)

        record = ResearchRecord(
            id=address,
            researcher_address=address,
            data_hash=data_hash,
            submission_time=result.confirmed_timestamp,
            description=description,
        )
        self._cache.upsert(record)
        self.last_record = record
        self.last_error = None
        self._generation += 1
        self._draft.clear()
        self._state = SubmissionState.EMPTY
        logger.info("Committed submission for %s", address)
        return PipelineOutcome(state=SubmissionState.COMMITTED, record=record)

    async def _fail(self, address: str, kind: ErrorKind, detail: str) -> PipelineOutcome:
        if kind is ErrorKind.DUPLICATE:
            await self._refresh_from_ledger(address)
            message = user_message(DuplicateSubmissionError(address))
        else:
            message = format_message(kind, detail)
        self.last_error = _LastError(kind, message, [detail] if detail else [])
        self._state = SubmissionState.FAILED
        return self._outcome(
            errors=(detail,) if detail else (),
            error_kind=kind,
            message=message,
        )

    async def _refresh_from_ledger(self, address: str) -> None:
        """Replace the local view of address with the ledger's record."""
        try:
            record = await self._gateway.fetch_record(address)
        except ResearchStampError as e:
            logger.warning("Could not refresh %s from the ledger: %s", address, e.message)
            return
        if record is not None:
            self._cache.upsert(record)

    # -- recovery -------------------------------------------------------------

    def _acknowledge(self) -> PipelineOutcome:
        if self._state is not SubmissionState.FAILED:
            return self._outcome()
        self._draft.upload.error = None
        self.last_error = None
        self._state = (
            SubmissionState.READY if is_valid_hash(self._draft.data_hash) else SubmissionState.EMPTY
        )
        return self._outcome()

    def _reset(self) -> PipelineOutcome:
        if self._state is SubmissionState.SUBMITTING:
            return self._refused(MSG_IN_PROGRESS)
        self._generation += 1
        self._draft.clear()
        self.last_error = None
        self._state = SubmissionState.EMPTY
        return self._outcome()


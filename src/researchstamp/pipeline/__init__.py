"""
researchstamp pipeline module.

Provides the submission state machine and the commands that drive it.
"""

from researchstamp.pipeline.submission import (
    SubmissionPipeline,
    SubmissionState,
    PipelineOutcome,
    SelectFile,
    RetryHash,
    EnterHash,
    UpdateDescription,
    ClearFile,
    Submit,
    AcknowledgeError,
    Reset,
)

__all__ = [
    "SubmissionPipeline",
    "SubmissionState",
    "PipelineOutcome",
    "SelectFile",
    "RetryHash",
    "EnterHash",
    "UpdateDescription",
    "ClearFile",
    "Submit",
    "AcknowledgeError",
    "Reset",
]

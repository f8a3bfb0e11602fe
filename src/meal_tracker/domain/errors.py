"""Typed failures raised by the draft lifecycle."""

from enum import StrEnum
from uuid import UUID


class AnalysisErrorCode(StrEnum):
    """Error codes recorded on drafts whose analysis failed."""

    MISSING_INPUT = "MISSING_INPUT"
    MISSING_IMAGE = "MISSING_IMAGE"
    STORAGE_UNAVAILABLE = "STORAGE_UNAVAILABLE"
    ANALYSIS_FAILED = "ANALYSIS_FAILED"


_DEFAULT_MESSAGES = {
    AnalysisErrorCode.MISSING_INPUT: "Meal is missing details for analysis.",
    AnalysisErrorCode.MISSING_IMAGE: "Meal image could not be found.",
    AnalysisErrorCode.STORAGE_UNAVAILABLE: (
        "Storage is temporarily unavailable. Try again soon."
    ),
    AnalysisErrorCode.ANALYSIS_FAILED: "We couldn't analyze this meal.",
}

RETRYABLE_CODES = frozenset(
    {AnalysisErrorCode.STORAGE_UNAVAILABLE, AnalysisErrorCode.ANALYSIS_FAILED}
)


class AnalysisFailure(Exception):
    """Analysis of a draft could not produce an estimate."""

    def __init__(self, code: AnalysisErrorCode, message: str | None = None) -> None:
        self.code = code
        self.message = message or _DEFAULT_MESSAGES[code]
        super().__init__(f"{code}: {self.message}")


class BlobNotFoundError(Exception):
    """The referenced stored object does not exist."""


class BlobUnavailableError(Exception):
    """The blob store could not be reached or returned an error."""


class DraftLifecycleError(Exception):
    """Base class for draft promotion and retry failures."""

    code = "DRAFT_ERROR"

    def __init__(self, draft_id: UUID, message: str) -> None:
        self.draft_id = draft_id
        super().__init__(message)


class DraftNotFoundError(DraftLifecycleError):
    """The draft does not exist (never created, or already promoted)."""

    code = "DRAFT_NOT_FOUND"

    def __init__(self, draft_id: UUID) -> None:
        super().__init__(draft_id, f"Draft {draft_id} not found")


class DraftNotReadyError(DraftLifecycleError):
    """The draft is not in a promotable state."""

    code = "DRAFT_NOT_READY"

    def __init__(self, draft_id: UUID, status: str) -> None:
        self.status = status
        super().__init__(draft_id, f"Draft {draft_id} is {status}, not ready")

"""Domain models for meal drafts."""

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import StrEnum
from uuid import UUID

from meal_tracker.domain.analysis import MealAnalysis
from meal_tracker.domain.errors import RETRYABLE_CODES, AnalysisErrorCode


class DraftStatus(StrEnum):
    """Analysis state of a draft."""

    PENDING = "pending"
    PROCESSING = "processing"
    READY = "ready"
    ERROR = "error"


@dataclass(frozen=True)
class MealSlot:
    """Reference to a meal-time bucket such as Breakfast."""

    id: str
    name: str

    def normalized(self) -> "MealSlot":
        """Return the slot with blank fields replaced by fallbacks."""
        slot_id = self.id.strip() or "unspecified"
        name = self.name.strip() or self.id.strip() or "Meal"
        return MealSlot(id=slot_id, name=name)


@dataclass(frozen=True)
class MealImage:
    """Stored image metadata."""

    storage_path: str
    download_url: str | None = None
    size: int | None = None
    content_type: str | None = None
    uploaded_at: datetime | None = None


@dataclass(frozen=True)
class DraftError:
    """Typed analysis failure attached to a draft."""

    code: AnalysisErrorCode
    message: str

    @property
    def retryable(self) -> bool:
        """Whether retrying without new input can succeed."""
        return self.code in RETRYABLE_CODES


@dataclass(frozen=True)
class MealDraft:
    """In-flight meal record going through analysis."""

    id: UUID
    owner_id: UUID
    name: str
    slot: MealSlot
    image: MealImage | None
    source_file_name: str | None
    status: DraftStatus
    created_at: datetime
    updated_at: datetime
    auto_promote_delay_minutes: int
    analysis: MealAnalysis | None = None
    error: DraftError | None = None
    analysis_started_at: datetime | None = None
    analysis_completed_at: datetime | None = None

    @property
    def auto_promote_at(self) -> datetime | None:
        """Deadline after which a ready draft is promoted automatically."""
        if self.status is not DraftStatus.READY or self.analysis_completed_at is None:
            return None
        return self.analysis_completed_at + timedelta(
            minutes=self.auto_promote_delay_minutes
        )

"""Domain models for finalized meal logs."""

from dataclasses import dataclass
from datetime import date, datetime
from uuid import UUID

from meal_tracker.domain.analysis import MealAnalysis
from meal_tracker.domain.drafts import MealImage, MealSlot


@dataclass(frozen=True)
class MealLog:
    """Immutable entry in a user's meal log."""

    id: UUID
    owner_id: UUID
    name: str
    slot: MealSlot
    image: MealImage | None
    source_file_name: str | None
    analysis: MealAnalysis | None
    is_estimated: bool
    source_draft_id: UUID | None
    created_at: datetime
    updated_at: datetime
    promoted_at: datetime | None = None


@dataclass(frozen=True)
class DailyMealLogs:
    """Meals logged on one local calendar day, newest first, with totals."""

    day: date
    timezone: str
    logs: list[MealLog]
    calories: float
    protein: float
    carbs: float
    fat: float

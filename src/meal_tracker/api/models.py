"""Request models and response serializers for the HTTP API."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from meal_tracker.domain.analysis import MealAnalysis
from meal_tracker.domain.drafts import MealDraft, MealImage, MealSlot
from meal_tracker.domain.logs import DailyMealLogs, MealLog
from meal_tracker.domain.meal_slots import MealSlotConfig


class SlotPayload(BaseModel):
    """Meal slot reference."""

    id: str = ""
    name: str = ""

    def to_domain(self) -> MealSlot:
        return MealSlot(id=self.id, name=self.name)


class ImagePayload(BaseModel):
    """Metadata of an image already uploaded to storage."""

    model_config = ConfigDict(populate_by_name=True)

    storage_path: str = Field(alias="storagePath", min_length=1)
    download_url: str | None = Field(default=None, alias="downloadURL")
    size: int | None = Field(default=None, ge=0)
    content_type: str | None = Field(default=None, alias="contentType")
    uploaded_at: datetime | None = Field(default=None, alias="uploadedAt")

    def to_domain(self, fallback_url: str | None = None) -> MealImage:
        return MealImage(
            storage_path=self.storage_path,
            download_url=self.download_url or fallback_url,
            size=self.size,
            content_type=self.content_type,
            uploaded_at=self.uploaded_at,
        )


class CreateDraftRequest(BaseModel):
    """Body for creating a meal draft."""

    model_config = ConfigDict(populate_by_name=True)

    name: str = ""
    slot: SlotPayload = Field(default_factory=SlotPayload)
    image: ImagePayload | None = None
    source_file_name: str | None = Field(default=None, alias="sourceFileName")
    auto_promote_delay_minutes: int | None = Field(
        default=None, alias="autoPromoteDelayMinutes", gt=0
    )


class MealSlotEntry(BaseModel):
    """One slot in a saved slot list; a blank id is derived from the name."""

    id: str | None = None
    name: str = ""


class SaveMealSlotsRequest(BaseModel):
    """Body for replacing the caller's meal slots, in display order."""

    slots: list[MealSlotEntry]


class CreateLogRequest(BaseModel):
    """Body for logging a meal without a draft."""

    model_config = ConfigDict(populate_by_name=True)

    name: str = ""
    slot: SlotPayload = Field(default_factory=SlotPayload)
    image: ImagePayload | None = None
    source_file_name: str | None = Field(default=None, alias="sourceFileName")


class DraftChangeEvent(BaseModel):
    """Database change-feed delivery for a ``meal_drafts`` row."""

    type: str
    table: str
    record: dict[str, object] | None = None
    old_record: dict[str, object] | None = None


def serialize_draft(draft: MealDraft) -> dict[str, object]:
    return {
        "id": str(draft.id),
        "name": draft.name,
        "slot": {"id": draft.slot.id, "name": draft.slot.name},
        "image": _serialize_image(draft.image),
        "sourceFileName": draft.source_file_name,
        "status": str(draft.status),
        "analysis": _serialize_analysis(draft.analysis),
        "error": {
            "code": str(draft.error.code),
            "message": draft.error.message,
            "retryable": draft.error.retryable,
        }
        if draft.error
        else None,
        "createdAt": _isoformat(draft.created_at),
        "updatedAt": _isoformat(draft.updated_at),
        "analysisStartedAt": _isoformat(draft.analysis_started_at),
        "analysisCompletedAt": _isoformat(draft.analysis_completed_at),
        "autoPromoteDelayMinutes": draft.auto_promote_delay_minutes,
        "autoPromoteAt": _isoformat(draft.auto_promote_at),
    }


def serialize_log(log: MealLog) -> dict[str, object]:
    return {
        "id": str(log.id),
        "name": log.name,
        "slot": {"id": log.slot.id, "name": log.slot.name},
        "image": _serialize_image(log.image),
        "sourceFileName": log.source_file_name,
        "analysis": _serialize_analysis(log.analysis),
        "isEstimated": log.is_estimated,
        "sourceDraftId": str(log.source_draft_id) if log.source_draft_id else None,
        "createdAt": _isoformat(log.created_at),
        "updatedAt": _isoformat(log.updated_at),
        "promotedAt": _isoformat(log.promoted_at),
    }


def serialize_meal_slot(slot: MealSlotConfig) -> dict[str, object]:
    return {"id": slot.id, "name": slot.name, "position": slot.position}


def serialize_daily_logs(daily: DailyMealLogs) -> dict[str, object]:
    return {
        "day": daily.day.isoformat(),
        "timezone": daily.timezone,
        "logs": [serialize_log(log) for log in daily.logs],
        "totals": {
            "calories": daily.calories,
            "protein": daily.protein,
            "carbs": daily.carbs,
            "fat": daily.fat,
        },
    }

def _serialize_image(image: MealImage | None) -> dict[str, object] | None:
    if image is None:
        return None
    return {
        "storagePath": image.storage_path,
        "downloadURL": image.download_url,
        "size": image.size,
        "contentType": image.content_type,
        "uploadedAt": _isoformat(image.uploaded_at),
    }


def _serialize_analysis(analysis: MealAnalysis | None) -> dict[str, object] | None:
    return analysis.model_dump() if analysis is not None else None


def _isoformat(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None

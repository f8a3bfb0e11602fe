"""Row conversion shared by the Supabase repositories."""

from datetime import datetime
from uuid import UUID

from meal_tracker.domain.analysis import MealAnalysis
from meal_tracker.domain.drafts import (
    DraftError,
    DraftStatus,
    MealDraft,
    MealImage,
    MealSlot,
)
from meal_tracker.domain.errors import AnalysisErrorCode
from meal_tracker.domain.logs import MealLog


def draft_to_row(draft: MealDraft) -> dict[str, object]:
    """Serialize a draft for insertion."""
    return {
        "id": str(draft.id),
        "owner_id": str(draft.owner_id),
        "name": draft.name,
        "slot": slot_to_json(draft.slot),
        "image": image_to_json(draft.image),
        "source_file_name": draft.source_file_name,
        "status": str(draft.status),
        "analysis": analysis_to_json(draft.analysis),
        "error": _error_to_json(draft.error),
        "created_at": draft.created_at.isoformat(),
        "updated_at": draft.updated_at.isoformat(),
        "analysis_started_at": _isoformat(draft.analysis_started_at),
        "analysis_completed_at": _isoformat(draft.analysis_completed_at),
        "auto_promote_delay_minutes": draft.auto_promote_delay_minutes,
        "auto_promote_at": _isoformat(draft.auto_promote_at),
    }


def draft_from_row(row: dict[str, object]) -> MealDraft:
    """Parse a ``meal_drafts`` row."""
    return MealDraft(
        id=UUID(str(row["id"])),
        owner_id=UUID(str(row["owner_id"])),
        name=str(row.get("name") or ""),
        slot=slot_from_json(row.get("slot")),
        image=image_from_json(row.get("image")),
        source_file_name=_optional_str(row.get("source_file_name")),
        status=DraftStatus(str(row.get("status") or DraftStatus.PENDING)),
        created_at=_parse_datetime(row["created_at"]),
        updated_at=_parse_datetime(row["updated_at"]),
        auto_promote_delay_minutes=int(row.get("auto_promote_delay_minutes") or 5),
        analysis=analysis_from_json(row.get("analysis")),
        error=_error_from_json(row.get("error")),
        analysis_started_at=_parse_optional_datetime(row.get("analysis_started_at")),
        analysis_completed_at=_parse_optional_datetime(
            row.get("analysis_completed_at")
        ),
    )


def log_to_row(log: MealLog) -> dict[str, object]:
    """Serialize a meal log for insertion."""
    return {
        "id": str(log.id),
        "owner_id": str(log.owner_id),
        "name": log.name,
        "slot": slot_to_json(log.slot),
        "image": image_to_json(log.image),
        "source_file_name": log.source_file_name,
        "analysis": analysis_to_json(log.analysis),
        "is_estimated": log.is_estimated,
        "source_draft_id": str(log.source_draft_id) if log.source_draft_id else None,
        "created_at": log.created_at.isoformat(),
        "updated_at": log.updated_at.isoformat(),
        "promoted_at": _isoformat(log.promoted_at),
    }


def log_from_row(row: dict[str, object]) -> MealLog:
    """Parse a ``meal_logs`` row."""
    source_draft_id = row.get("source_draft_id")
    return MealLog(
        id=UUID(str(row["id"])),
        owner_id=UUID(str(row["owner_id"])),
        name=str(row.get("name") or ""),
        slot=slot_from_json(row.get("slot")),
        image=image_from_json(row.get("image")),
        source_file_name=_optional_str(row.get("source_file_name")),
        analysis=analysis_from_json(row.get("analysis")),
        is_estimated=bool(row.get("is_estimated", False)),
        source_draft_id=UUID(str(source_draft_id)) if source_draft_id else None,
        created_at=_parse_datetime(row["created_at"]),
        updated_at=_parse_datetime(row["updated_at"]),
        promoted_at=_parse_optional_datetime(row.get("promoted_at")),
    )


def slot_to_json(slot: MealSlot) -> dict[str, object]:
    return {"id": slot.id, "name": slot.name}


def slot_from_json(value: object) -> MealSlot:
    data = value if isinstance(value, dict) else {}
    return MealSlot(id=str(data.get("id") or ""), name=str(data.get("name") or ""))


def image_to_json(image: MealImage | None) -> dict[str, object] | None:
    if image is None:
        return None
    return {
        "storage_path": image.storage_path,
        "download_url": image.download_url,
        "size": image.size,
        "content_type": image.content_type,
        "uploaded_at": _isoformat(image.uploaded_at),
    }


def image_from_json(value: object) -> MealImage | None:
    if not isinstance(value, dict) or not value.get("storage_path"):
        return None
    size = value.get("size")
    return MealImage(
        storage_path=str(value["storage_path"]),
        download_url=_optional_str(value.get("download_url")),
        size=int(size) if isinstance(size, int | float) else None,
        content_type=_optional_str(value.get("content_type")),
        uploaded_at=_parse_optional_datetime(value.get("uploaded_at")),
    )


def analysis_to_json(analysis: MealAnalysis | None) -> dict[str, object] | None:
    return analysis.model_dump() if analysis is not None else None


def analysis_from_json(value: object) -> MealAnalysis | None:
    if not isinstance(value, dict):
        return None
    return MealAnalysis.model_validate(value)


def _error_to_json(error: DraftError | None) -> dict[str, object] | None:
    if error is None:
        return None
    return {"code": str(error.code), "message": error.message}


def _error_from_json(value: object) -> DraftError | None:
    if not isinstance(value, dict) or not value.get("code"):
        return None
    return DraftError(
        code=AnalysisErrorCode(str(value["code"])),
        message=str(value.get("message") or ""),
    )


def _isoformat(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse_datetime(value: object) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


def _parse_optional_datetime(value: object) -> datetime | None:
    if value is None or value == "":
        return None
    return _parse_datetime(value)


def _optional_str(value: object) -> str | None:
    return str(value) if value is not None else None

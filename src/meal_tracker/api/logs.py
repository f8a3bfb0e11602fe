"""Meal log endpoints."""

from __future__ import annotations

from datetime import date
from typing import TYPE_CHECKING
from uuid import UUID
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import JSONResponse

from meal_tracker.api.auth import require_user
from meal_tracker.api.models import (
    CreateLogRequest,
    serialize_daily_logs,
    serialize_log,
)

if TYPE_CHECKING:
    from meal_tracker.containers import AppContainer

router = APIRouter(prefix="/meal-logs", tags=["meal-logs"])


@router.get("")
async def list_logs(
    request: Request,
    owner_id: UUID = Depends(require_user),
    limit: int = Query(default=50, ge=1, le=200),
    day: date | None = None,
    tz: str = "UTC",
) -> JSONResponse:
    """Return the caller's most recent meal logs.

    With ``day``, return every meal logged on that calendar day in ``tz``
    along with the day's nutrition totals instead.
    """
    container: AppContainer = request.app.state.container
    if day is None:
        logs = container.meal_log_service.list_logs(owner_id, limit=limit)
        return JSONResponse({"logs": [serialize_log(log) for log in logs]})
    if not _is_valid_timezone(tz):
        return JSONResponse(
            {"error": "Unknown timezone"}, status_code=status.HTTP_400_BAD_REQUEST
        )
    daily = container.meal_log_service.list_logs_for_day(owner_id, day, tz)
    return JSONResponse(serialize_daily_logs(daily))


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_log(
    payload: CreateLogRequest,
    request: Request,
    owner_id: UUID = Depends(require_user),
) -> dict[str, object]:
    """Log a meal directly, skipping the draft stage."""
    container: AppContainer = request.app.state.container
    log = container.meal_log_service.log_meal(
        owner_id=owner_id,
        name=payload.name,
        slot=payload.slot.to_domain(),
        image=payload.image.to_domain() if payload.image else None,
        source_file_name=payload.source_file_name,
    )
    return {"ok": True, "logId": str(log.id), "log": serialize_log(log)}


@router.get("/{log_id}")
async def get_log(
    log_id: str, request: Request, owner_id: UUID = Depends(require_user)
) -> JSONResponse:
    """Return a single meal log."""
    container: AppContainer = request.app.state.container
    try:
        parsed_id = UUID(log_id)
    except ValueError:
        parsed_id = None
    log = container.meal_log_service.get_log(owner_id, parsed_id) if parsed_id else None
    if log is None:
        return JSONResponse(
            {"error": "Meal log not found"}, status_code=status.HTTP_404_NOT_FOUND
        )
    return JSONResponse({"log": serialize_log(log)})


def _is_valid_timezone(value: str) -> bool:
    try:
        ZoneInfo(value)
    except (ZoneInfoNotFoundError, ValueError):
        return False
    return True

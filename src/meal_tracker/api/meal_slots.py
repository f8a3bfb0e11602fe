"""Meal slot settings endpoints."""

from __future__ import annotations

from typing import TYPE_CHECKING
from uuid import UUID

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse

from meal_tracker.api.auth import require_user
from meal_tracker.api.models import SaveMealSlotsRequest, serialize_meal_slot
from meal_tracker.domain.meal_slots import InvalidMealSlotError

if TYPE_CHECKING:
    from meal_tracker.containers import AppContainer

router = APIRouter(prefix="/meal-slots", tags=["meal-slots"])


@router.get("")
async def get_meal_slots(
    request: Request, owner_id: UUID = Depends(require_user)
) -> dict[str, object]:
    """Return the caller's meal slots in display order."""
    container: AppContainer = request.app.state.container
    snapshot = container.meal_slot_service.get_slots(owner_id)
    return {
        "slots": [serialize_meal_slot(slot) for slot in snapshot.slots],
        "isDefault": snapshot.is_default,
    }


@router.put("")
async def save_meal_slots(
    payload: SaveMealSlotsRequest,
    request: Request,
    owner_id: UUID = Depends(require_user),
) -> JSONResponse:
    """Replace the caller's meal slots."""
    container: AppContainer = request.app.state.container
    try:
        slots = container.meal_slot_service.save_slots(
            owner_id, [(entry.id, entry.name) for entry in payload.slots]
        )
    except InvalidMealSlotError as exc:
        return JSONResponse(
            {"error": exc.message, "slotIndex": exc.slot_index},
            status_code=status.HTTP_400_BAD_REQUEST,
        )
    return JSONResponse(
        {"slots": [serialize_meal_slot(slot) for slot in slots], "isDefault": False}
    )

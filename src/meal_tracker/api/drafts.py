"""Meal draft endpoints."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, Request, status
from fastapi.responses import JSONResponse

from meal_tracker.api.auth import require_user
from meal_tracker.api.models import CreateDraftRequest, serialize_draft
from meal_tracker.domain.drafts import DraftStatus
from meal_tracker.domain.errors import DraftNotFoundError, DraftNotReadyError

if TYPE_CHECKING:
    from meal_tracker.containers import AppContainer

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/meal-drafts", tags=["meal-drafts"])


@router.get("")
async def list_drafts(
    request: Request, owner_id: UUID = Depends(require_user)
) -> dict[str, object]:
    """Return the caller's drafts, newest first."""
    container: AppContainer = request.app.state.container
    drafts = container.draft_service.list_drafts(owner_id)
    return {"drafts": [serialize_draft(draft) for draft in drafts]}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_draft(
    payload: CreateDraftRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    owner_id: UUID = Depends(require_user),
) -> dict[str, object]:
    """Create a pending draft and queue its analysis."""
    container: AppContainer = request.app.state.container
    image = (
        payload.image.to_domain(
            fallback_url=container.blob_store.public_url(payload.image.storage_path)
        )
        if payload.image
        else None
    )
    draft = container.draft_service.create_draft(
        owner_id=owner_id,
        name=payload.name,
        slot=payload.slot.to_domain(),
        image=image,
        source_file_name=payload.source_file_name,
        auto_promote_delay_minutes=payload.auto_promote_delay_minutes,
    )
    background_tasks.add_task(container.draft_service.process_draft, owner_id, draft.id)
    return {"draft": serialize_draft(draft)}


@router.get("/{draft_id}")
async def get_draft(
    draft_id: str, request: Request, owner_id: UUID = Depends(require_user)
) -> JSONResponse:
    """Return a single draft."""
    container: AppContainer = request.app.state.container
    parsed_id = _parse_uuid(draft_id)
    draft = (
        container.draft_service.get_draft(owner_id, parsed_id) if parsed_id else None
    )
    if draft is None:
        return _error_response(status.HTTP_404_NOT_FOUND, "Draft not found")
    return JSONResponse({"draft": serialize_draft(draft)})


@router.post("/{draft_id}/promote")
async def promote_draft(
    draft_id: str, request: Request, owner_id: UUID = Depends(require_user)
) -> JSONResponse:
    """Promote a ready draft into the permanent meal log."""
    container: AppContainer = request.app.state.container
    is_estimated = await _parse_promote_payload(request)
    if is_estimated is None:
        return _error_response(status.HTTP_400_BAD_REQUEST, "Invalid request body")
    parsed_id = _parse_uuid(draft_id)
    if parsed_id is None:
        return _error_response(status.HTTP_404_NOT_FOUND, "Draft not found")

    logger.info(
        "Promoting meal draft",
        extra={
            "owner_id": str(owner_id),
            "draft_id": draft_id,
            "is_estimated": is_estimated,
        },
    )
    try:
        log_id = await container.draft_service.promote_draft(
            owner_id, parsed_id, is_estimated=is_estimated
        )
    except DraftNotFoundError:
        logger.warning("Draft not found", extra={"draft_id": draft_id})
        return _error_response(status.HTTP_404_NOT_FOUND, "Draft not found")
    except DraftNotReadyError as exc:
        logger.warning(
            "Draft not ready", extra={"draft_id": draft_id, "status": exc.status}
        )
        return _error_response(
            status.HTTP_400_BAD_REQUEST, "Draft is not ready for promotion"
        )
    except Exception as exc:
        logger.exception("Failed to promote meal draft", extra={"draft_id": draft_id})
        return _error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            _format_error(container, exc, "Failed to promote meal draft"),
        )
    return JSONResponse({"ok": True, "logId": str(log_id)})


@router.post("/{draft_id}/retry")
async def retry_draft(
    draft_id: str,
    request: Request,
    background_tasks: BackgroundTasks,
    owner_id: UUID = Depends(require_user),
) -> JSONResponse:
    """Send an errored draft back through analysis."""
    container: AppContainer = request.app.state.container
    parsed_id = _parse_uuid(draft_id)
    if parsed_id is None:
        return _error_response(status.HTTP_404_NOT_FOUND, "Draft not found")
    try:
        draft = container.draft_service.retry_draft(owner_id, parsed_id)
    except DraftNotFoundError:
        return _error_response(status.HTTP_404_NOT_FOUND, "Draft not found")
    if draft.status is DraftStatus.PENDING:
        background_tasks.add_task(
            container.draft_service.process_draft, owner_id, parsed_id
        )
    return JSONResponse({"ok": True, "draft": serialize_draft(draft)})


async def _parse_promote_payload(request: Request) -> bool | None:
    """Return ``isEstimated`` from the body (default true), or None if invalid."""
    body = await request.body()
    if not body.strip():
        return True
    try:
        data = json.loads(body)
    except ValueError:
        return None
    if not isinstance(data, dict):
        return None
    return _parse_bool(data.get("isEstimated"), fallback=True)


def _parse_bool(value: object, fallback: bool) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        if value.lower() == "true":
            return True
        if value.lower() == "false":
            return False
    return fallback


def _parse_uuid(value: str) -> UUID | None:
    try:
        return UUID(value)
    except ValueError:
        return None


def _error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)


def _format_error(container: AppContainer, exc: Exception, fallback: str) -> str:
    """Return a user-facing error message with local debug info."""
    if container.settings.environment == "local":
        detail = f"{type(exc).__name__}: {exc}".strip()
        if detail:
            return f"{fallback} (debug: {detail})"
    return fallback

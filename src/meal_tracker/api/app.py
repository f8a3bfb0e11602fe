"""FastAPI application factory."""

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from uuid import UUID

from fastapi import BackgroundTasks, Depends, FastAPI, Request

from meal_tracker.api.auth import require_webhook_secret
from meal_tracker.api.drafts import router as drafts_router
from meal_tracker.api.logs import router as logs_router
from meal_tracker.api.meal_slots import router as meal_slots_router
from meal_tracker.api.models import DraftChangeEvent
from meal_tracker.app_logging import configure_logging
from meal_tracker.containers import AppContainer
from meal_tracker.domain.drafts import DraftStatus

_DRAFT_EVENTS = {"INSERT", "UPDATE"}


def create_app(container: AppContainer) -> FastAPI:
    """Create a FastAPI app configured with dependencies."""
    configure_logging(container.settings.log_level)
    logger = logging.getLogger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        state_container: AppContainer = app.state.container
        sweeper = asyncio.create_task(
            state_container.scheduler.run(
                state_container.settings.auto_promote_sweep_interval_seconds
            )
        )
        yield
        sweeper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sweeper
        await state_container.close_resources()

    app = FastAPI(lifespan=lifespan)
    app.state.container = container

    app.include_router(drafts_router)
    app.include_router(logs_router)
    app.include_router(meal_slots_router)

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Simple health check endpoint."""
        return {"status": "ok"}

    @app.post("/webhooks/meal-drafts", dependencies=[Depends(require_webhook_secret)])
    async def meal_draft_webhook(
        event: DraftChangeEvent, request: Request, background_tasks: BackgroundTasks
    ) -> dict[str, str]:
        """Queue analysis for change-feed deliveries of pending draft rows.

        Deliveries are at-least-once; duplicates are absorbed by the
        conditional pending to processing write. Analysis runs after the
        response so the sender is acknowledged without waiting on the engine.
        """
        state_container: AppContainer = request.app.state.container
        record = event.record or {}
        if event.table != "meal_drafts" or event.type.upper() not in _DRAFT_EVENTS:
            return {"status": "ignored"}
        if record.get("status") != DraftStatus.PENDING:
            return {"status": "ignored"}
        ids = _parse_record_ids(record)
        if ids is None:
            logger.warning("Draft event without valid ids", extra={"record": record})
            return {"status": "ignored"}
        owner_id, draft_id = ids
        background_tasks.add_task(
            state_container.draft_service.process_draft, owner_id, draft_id
        )
        return {"status": "queued"}

    return app


def _parse_record_ids(record: dict[str, object]) -> tuple[UUID, UUID] | None:
    """Extract (owner_id, draft_id) from a change-feed record."""
    try:
        return UUID(str(record["owner_id"])), UUID(str(record["id"]))
    except (KeyError, ValueError):
        return None

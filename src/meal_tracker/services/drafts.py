"""Draft lifecycle: analysis state machine, retry and promotion."""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Protocol
from uuid import UUID, uuid4

from meal_tracker.adapters.supabase_blob_store import BlobStore
from meal_tracker.domain.analysis import MealAnalysis
from meal_tracker.domain.drafts import (
    DraftError,
    DraftStatus,
    MealDraft,
    MealImage,
    MealSlot,
)
from meal_tracker.domain.errors import (
    AnalysisErrorCode,
    AnalysisFailure,
    BlobNotFoundError,
    BlobUnavailableError,
    DraftNotFoundError,
    DraftNotReadyError,
)
from meal_tracker.domain.logs import MealLog
from meal_tracker.services.analysis import AnalysisService

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

UNTITLED_MEAL = "Untitled meal"


def utcnow() -> datetime:
    """Return the current UTC time."""
    return datetime.now(tz=UTC)


class DraftRepository(Protocol):
    """Persistence interface for meal drafts.

    Transition methods are conditional writes: they apply only when the
    stored status still matches the expected one and return the updated
    draft, or ``None`` when the draft is gone or has moved on.
    """

    def create_draft(self, draft: MealDraft) -> None:
        """Insert a new draft."""

    def get_draft(self, owner_id: UUID, draft_id: UUID) -> MealDraft | None:
        """Return a draft by id, if present."""

    def list_drafts(self, owner_id: UUID) -> list[MealDraft]:
        """Return an owner's drafts, newest first."""

    def claim_for_analysis(
        self, owner_id: UUID, draft_id: UUID, started_at: datetime
    ) -> MealDraft | None:
        """Move a pending draft to processing."""

    def mark_ready(
        self,
        owner_id: UUID,
        draft_id: UUID,
        analysis: MealAnalysis,
        completed_at: datetime,
    ) -> MealDraft | None:
        """Move a processing draft to ready with its analysis."""

    def mark_failed(
        self, owner_id: UUID, draft_id: UUID, error: DraftError, failed_at: datetime
    ) -> MealDraft | None:
        """Move a processing draft to error."""

    def reset_for_retry(
        self, owner_id: UUID, draft_id: UUID, reset_at: datetime
    ) -> MealDraft | None:
        """Move an errored draft back to pending with analysis state cleared."""

    def commit_promotion(
        self,
        owner_id: UUID,
        draft_id: UUID,
        expected_status: DraftStatus,
        log: MealLog,
    ) -> bool:
        """Atomically insert the log and delete the draft.

        Returns false, writing nothing, when the draft no longer exists or
        is not in the expected status.
        """

    def list_due_drafts(self, now: datetime, limit: int) -> list[MealDraft]:
        """Return ready drafts of any owner whose auto-promotion is due."""

    def list_stale_processing(
        self, started_before: datetime, limit: int
    ) -> list[MealDraft]:
        """Return processing drafts of any owner claimed before the cutoff."""


class PromotionTimers(Protocol):
    """Schedules and cancels auto-promotion of ready drafts."""

    def schedule(self, draft: MealDraft) -> None:
        """Arm the auto-promotion timer for a ready draft."""

    def cancel(self, draft_id: UUID) -> None:
        """Disarm any timer for the draft."""


@dataclass
class DraftLifecycleService:
    """Drives drafts from pending to a permanent log entry."""

    repository: DraftRepository
    blob_store: BlobStore
    analysis_service: AnalysisService
    default_auto_promote_delay_minutes: int = 5
    timers: PromotionTimers | None = None
    clock: Clock = utcnow
    download_retry_attempts: int = 1
    download_retry_delay_seconds: float = 0.3
    stale_analysis_minutes: int = 10

    def create_draft(  # noqa: PLR0913
        self,
        owner_id: UUID,
        name: str,
        slot: MealSlot,
        image: MealImage | None = None,
        source_file_name: str | None = None,
        auto_promote_delay_minutes: int | None = None,
    ) -> MealDraft:
        """Persist a new pending draft."""
        delay = (
            auto_promote_delay_minutes
            if auto_promote_delay_minutes is not None
            else self.default_auto_promote_delay_minutes
        )
        if delay <= 0:
            raise ValueError("auto_promote_delay_minutes must be positive")
        now = self.clock()
        draft = MealDraft(
            id=uuid4(),
            owner_id=owner_id,
            name=name.strip(),
            slot=MealSlot(id=slot.id.strip(), name=slot.name.strip()),
            image=image,
            source_file_name=source_file_name,
            status=DraftStatus.PENDING,
            created_at=now,
            updated_at=now,
            auto_promote_delay_minutes=delay,
        )
        self.repository.create_draft(draft)
        logger.info(
            "Meal draft created",
            extra={"owner_id": str(owner_id), "draft_id": str(draft.id)},
        )
        return draft

    def get_draft(self, owner_id: UUID, draft_id: UUID) -> MealDraft | None:
        """Return a draft by id."""
        return self.repository.get_draft(owner_id, draft_id)

    def list_drafts(self, owner_id: UUID) -> list[MealDraft]:
        """Return an owner's drafts."""
        return self.repository.list_drafts(owner_id)

    async def process_draft(self, owner_id: UUID, draft_id: UUID) -> MealDraft | None:
        """Run analysis for a pending draft.

        Safe to call for every delivery of a creation event: only the call
        that wins the pending to processing write analyzes the draft, the
        others return ``None``. Analysis failures are recorded on the draft
        and never raised. A failed result write falls back to recording
        ``ANALYSIS_FAILED``; if that also fails the draft stays in processing
        until ``fail_stale_drafts`` picks it up.
        """
        context = {"owner_id": str(owner_id), "draft_id": str(draft_id)}
        draft = self.repository.claim_for_analysis(owner_id, draft_id, self.clock())
        if draft is None:
            logger.info("Draft not pending; skipping analysis", extra=context)
            return None
        logger.info("Running analysis for meal draft", extra=context)

        try:
            analysis = await self._analyze(draft)
        except AnalysisFailure as exc:
            logger.warning(
                "Meal draft analysis failed",
                extra={**context, "code": str(exc.code)},
            )
            error = DraftError(code=exc.code, message=exc.message)
        except Exception:
            logger.exception("Unexpected error analyzing meal draft", extra=context)
            error = _analysis_failed_error()
        else:
            try:
                updated = self.repository.mark_ready(
                    owner_id, draft_id, analysis, self.clock()
                )
            except Exception:
                logger.exception("Failed to store meal draft analysis", extra=context)
                error = _analysis_failed_error()
            else:
                if updated is None:
                    logger.warning("Draft changed during analysis", extra=context)
                    return None
                logger.info("Meal draft ready", extra=context)
                if self.timers is not None:
                    self.timers.schedule(updated)
                return updated

        return self._record_failure(owner_id, draft_id, error, context)

    def _record_failure(
        self,
        owner_id: UUID,
        draft_id: UUID,
        error: DraftError,
        context: dict[str, str],
    ) -> MealDraft | None:
        try:
            updated = self.repository.mark_failed(
                owner_id, draft_id, error, self.clock()
            )
        except Exception:
            logger.exception("Failed to record meal draft error", extra=context)
            return None
        if updated is None:
            logger.warning("Draft changed during analysis", extra=context)
        return updated

    def fail_stale_drafts(self, limit: int = 100) -> list[UUID]:
        """Move drafts stuck in processing past the analysis timeout to error.

        Covers a crash during analysis and a lost result write. The drafts end
        with a retryable ``ANALYSIS_FAILED`` error.
        """
        now = self.clock()
        started_before = now - timedelta(minutes=self.stale_analysis_minutes)
        recovered: list[UUID] = []
        for draft in self.repository.list_stale_processing(started_before, limit):
            updated = self.repository.mark_failed(
                draft.owner_id, draft.id, _analysis_failed_error(), now
            )
            if updated is not None:
                recovered.append(draft.id)
        if recovered:
            logger.warning("Failed %s stalled meal drafts", len(recovered))
        return recovered

    def retry_draft(self, owner_id: UUID, draft_id: UUID) -> MealDraft:
        """Reset an errored draft to pending so it is analyzed again.

        Raises ``DraftNotFoundError`` for a missing or promoted draft. A draft
        that is not in error is returned unchanged.
        """
        draft = self.repository.get_draft(owner_id, draft_id)
        if draft is None:
            raise DraftNotFoundError(draft_id)
        if draft.status is not DraftStatus.ERROR:
            logger.info(
                "Retry ignored for draft not in error",
                extra={"draft_id": str(draft_id), "status": str(draft.status)},
            )
            return draft
        reset = self.repository.reset_for_retry(owner_id, draft_id, self.clock())
        if reset is None:
            current = self.repository.get_draft(owner_id, draft_id)
            if current is None:
                raise DraftNotFoundError(draft_id)
            return current
        if self.timers is not None:
            self.timers.cancel(draft_id)
        logger.info("Meal draft reset for retry", extra={"draft_id": str(draft_id)})
        return reset

    async def promote_draft(
        self, owner_id: UUID, draft_id: UUID, *, is_estimated: bool
    ) -> UUID:
        """Turn a ready draft into a permanent log entry and delete the draft."""
        draft = self.repository.get_draft(owner_id, draft_id)
        if draft is None:
            raise DraftNotFoundError(draft_id)
        if draft.status is not DraftStatus.READY:
            raise DraftNotReadyError(draft_id, draft.status)

        log = build_log_from_draft(
            draft, log_id=uuid4(), is_estimated=is_estimated, promoted_at=self.clock()
        )
        committed = self.repository.commit_promotion(
            owner_id, draft_id, DraftStatus.READY, log
        )
        if not committed:
            current = self.repository.get_draft(owner_id, draft_id)
            if current is None:
                raise DraftNotFoundError(draft_id)
            raise DraftNotReadyError(draft_id, current.status)

        if self.timers is not None:
            self.timers.cancel(draft_id)
        logger.info(
            "Meal draft promoted",
            extra={
                "owner_id": str(owner_id),
                "draft_id": str(draft_id),
                "log_id": str(log.id),
                "is_estimated": is_estimated,
            },
        )
        return log.id

    async def auto_promote(self, owner_id: UUID, draft_id: UUID) -> UUID | None:
        """Promote a draft whose review window elapsed, as an estimate.

        Returns ``None`` when there is nothing to do: the draft was already
        promoted, is not ready, or its deadline moved after a retry.
        """
        context = {"owner_id": str(owner_id), "draft_id": str(draft_id)}
        draft = self.repository.get_draft(owner_id, draft_id)
        if draft is None:
            logger.info("Auto-promotion skipped; draft gone", extra=context)
            return None
        deadline = draft.auto_promote_at
        if deadline is None or deadline > self.clock():
            logger.info("Auto-promotion skipped; draft not due", extra=context)
            return None
        try:
            return await self.promote_draft(owner_id, draft_id, is_estimated=True)
        except (DraftNotFoundError, DraftNotReadyError) as exc:
            logger.info(
                "Auto-promotion skipped; already handled",
                extra={**context, "reason": exc.code},
            )
            return None

    async def _analyze(self, draft: MealDraft) -> MealAnalysis:
        image_bytes: bytes | None = None
        if draft.image is not None and draft.image.storage_path:
            image_bytes = await self._download_image(draft.image.storage_path)
        label = draft.name.strip() or None
        if image_bytes is None and label is None:
            raise AnalysisFailure(AnalysisErrorCode.MISSING_INPUT)
        return await self.analysis_service.analyze(image_bytes=image_bytes, label=label)

    async def _download_image(self, storage_path: str) -> bytes:
        attempt = 0
        while True:
            try:
                content = await self.blob_store.download(storage_path)
            except BlobNotFoundError as exc:
                raise AnalysisFailure(AnalysisErrorCode.MISSING_IMAGE) from exc
            except BlobUnavailableError as exc:
                attempt += 1
                logger.warning(
                    "Image download failed (attempt %s/%s): %s",
                    attempt,
                    self.download_retry_attempts + 1,
                    exc,
                )
                if attempt > self.download_retry_attempts:
                    raise AnalysisFailure(
                        AnalysisErrorCode.STORAGE_UNAVAILABLE
                    ) from exc
                await asyncio.sleep(self.download_retry_delay_seconds)
                continue
            if not content:
                raise AnalysisFailure(AnalysisErrorCode.MISSING_IMAGE)
            return content


def _analysis_failed_error() -> DraftError:
    failure = AnalysisFailure(AnalysisErrorCode.ANALYSIS_FAILED)
    return DraftError(code=failure.code, message=failure.message)

def build_log_from_draft(
    draft: MealDraft, *, log_id: UUID, is_estimated: bool, promoted_at: datetime
) -> MealLog:
    """Copy a draft into a log entry, keeping the time the meal was created."""
    return MealLog(
        id=log_id,
        owner_id=draft.owner_id,
        name=draft.name.strip() or UNTITLED_MEAL,
        slot=draft.slot.normalized(),
        image=draft.image,
        source_file_name=draft.source_file_name,
        analysis=draft.analysis,
        is_estimated=is_estimated,
        source_draft_id=draft.id,
        created_at=draft.created_at or promoted_at,
        updated_at=promoted_at,
        promoted_at=promoted_at,
    )

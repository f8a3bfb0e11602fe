"""Auto-promotion of ready drafts whose review window elapsed."""

import asyncio
import contextlib
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol
from uuid import UUID

from meal_tracker.domain.drafts import MealDraft
from meal_tracker.services.drafts import Clock, DraftRepository, PromotionTimers, utcnow

logger = logging.getLogger(__name__)


class DraftPromoter(Protocol):
    """Performs the idempotent auto-promotion of one draft."""

    async def auto_promote(self, owner_id: UUID, draft_id: UUID) -> UUID | None:
        """Promote the draft if it is still ready and due."""

    def fail_stale_drafts(self, limit: int = 100) -> list[UUID]:
        """Fail drafts whose analysis stalled in processing."""


@dataclass
class AutoPromotionScheduler(PromotionTimers):
    """In-process timers per draft plus a periodic sweep of the draft store.

    Timers give prompt promotion while the process is up; the sweep covers
    drafts whose timer was lost to a restart. Both paths may fire for the same
    draft and rely on ``auto_promote`` being idempotent.
    """

    repository: DraftRepository
    promoter: DraftPromoter | None = None
    clock: Clock = utcnow
    sweep_batch_size: int = 100
    _tasks: dict[UUID, asyncio.Task[None]] = field(default_factory=dict, init=False)

    def schedule(self, draft: MealDraft) -> None:
        """Arm a timer that fires at the draft's auto-promotion deadline."""
        deadline = draft.auto_promote_at
        if deadline is None:
            return
        self.cancel(draft.id)
        task = asyncio.get_running_loop().create_task(
            self._fire_at(draft.owner_id, draft.id, deadline)
        )
        self._tasks[draft.id] = task
        task.add_done_callback(lambda done: self._forget(draft.id, done))
        logger.info(
            "Auto-promotion scheduled",
            extra={"draft_id": str(draft.id), "deadline": deadline.isoformat()},
        )

    def cancel(self, draft_id: UUID) -> None:
        """Cancel the pending timer for a draft, if any."""
        task = self._tasks.pop(draft_id, None)
        if task is None or task.done():
            return
        # A firing timer promotes the draft, which cancels its own timer.
        if task is _current_task():
            return
        task.cancel()

    def pending(self) -> set[UUID]:
        """Return ids of drafts with an armed timer."""
        return {draft_id for draft_id, task in self._tasks.items() if not task.done()}

    async def sweep(self) -> list[UUID]:
        """Promote every due draft in the store and return the new log ids."""
        promoter = self._require_promoter()
        promoted: list[UUID] = []
        for draft in self.repository.list_due_drafts(
            self.clock(), self.sweep_batch_size
        ):
            try:
                log_id = await promoter.auto_promote(draft.owner_id, draft.id)
            except Exception:
                logger.exception(
                    "Auto-promotion failed during sweep",
                    extra={"draft_id": str(draft.id)},
                )
                continue
            if log_id is not None:
                promoted.append(log_id)
        if promoted:
            logger.info("Auto-promotion sweep promoted %s drafts", len(promoted))
        return promoted

    def recover_stale(self) -> list[UUID]:
        """Move drafts stuck in processing to a retryable error."""
        return self._require_promoter().fail_stale_drafts(self.sweep_batch_size)

    async def run(self, interval_seconds: float) -> None:
        """Sweep and recover stalled drafts at a fixed interval until cancelled."""
        while True:
            try:
                await self.sweep()
                self.recover_stale()
            except Exception:
                logger.exception("Auto-promotion sweep failed")
            await asyncio.sleep(interval_seconds)

    async def close(self) -> None:
        """Cancel all pending timers."""
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def _fire_at(self, owner_id: UUID, draft_id: UUID, deadline: datetime) -> None:
        remaining = (deadline - self.clock()).total_seconds()
        while remaining > 0:
            await asyncio.sleep(remaining)
            remaining = (deadline - self.clock()).total_seconds()
        try:
            await self._require_promoter().auto_promote(owner_id, draft_id)
        except Exception:
            logger.exception(
                "Scheduled auto-promotion failed", extra={"draft_id": str(draft_id)}
            )

    def _forget(self, draft_id: UUID, task: asyncio.Task[None]) -> None:
        if self._tasks.get(draft_id) is task:
            del self._tasks[draft_id]

    def _require_promoter(self) -> DraftPromoter:
        if self.promoter is None:
            raise RuntimeError("Auto-promotion scheduler has no promoter")
        return self.promoter


def _current_task() -> asyncio.Task | None:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None

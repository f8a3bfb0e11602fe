"""Supabase repository for meal drafts."""

from dataclasses import dataclass
from datetime import datetime, timedelta
from uuid import UUID

from supabase import Client

from meal_tracker.adapters.supabase_rows import (
    analysis_to_json,
    draft_from_row,
    draft_to_row,
    log_to_row,
)
from meal_tracker.domain.analysis import MealAnalysis
from meal_tracker.domain.drafts import DraftError, DraftStatus, MealDraft
from meal_tracker.domain.logs import MealLog
from meal_tracker.services.drafts import DraftRepository

_TABLE = "meal_drafts"


@dataclass
class SupabaseDraftRepository(DraftRepository):
    """Supabase implementation for meal drafts.

    Status transitions are ``UPDATE ... WHERE status = <expected>`` so
    concurrent writers resolve to a single winner. Promotion runs the
    ``promote_meal_draft`` Postgres function, which locks the draft row,
    inserts the log and deletes the draft in one transaction.
    """

    client: Client

    def create_draft(self, draft: MealDraft) -> None:
        """Insert a draft row."""
        response = self.client.table(_TABLE).insert(draft_to_row(draft)).execute()
        if not response.data:
            raise RuntimeError("Failed to create meal draft")

    def get_draft(self, owner_id: UUID, draft_id: UUID) -> MealDraft | None:
        """Return a draft by id."""
        response = (
            self.client.table(_TABLE)
            .select("*")
            .eq("id", str(draft_id))
            .eq("owner_id", str(owner_id))
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return draft_from_row(response.data[0])

    def list_drafts(self, owner_id: UUID) -> list[MealDraft]:
        """Return an owner's drafts, newest first."""
        response = (
            self.client.table(_TABLE)
            .select("*")
            .eq("owner_id", str(owner_id))
            .order("created_at", desc=True)
            .execute()
        )
        return [draft_from_row(row) for row in response.data or []]

    def claim_for_analysis(
        self, owner_id: UUID, draft_id: UUID, started_at: datetime
    ) -> MealDraft | None:
        """Move a pending draft to processing."""
        return self._transition(
            owner_id,
            draft_id,
            DraftStatus.PENDING,
            {
                "status": str(DraftStatus.PROCESSING),
                "analysis_started_at": started_at.isoformat(),
                "updated_at": started_at.isoformat(),
            },
        )

    def mark_ready(
        self,
        owner_id: UUID,
        draft_id: UUID,
        analysis: MealAnalysis,
        completed_at: datetime,
    ) -> MealDraft | None:
        """Store the analysis and move the draft to ready."""
        current = self.get_draft(owner_id, draft_id)
        if current is None:
            return None
        auto_promote_at = completed_at + timedelta(
            minutes=current.auto_promote_delay_minutes
        )
        return self._transition(
            owner_id,
            draft_id,
            DraftStatus.PROCESSING,
            {
                "status": str(DraftStatus.READY),
                "analysis": analysis_to_json(analysis),
                "error": None,
                "analysis_completed_at": completed_at.isoformat(),
                "auto_promote_at": auto_promote_at.isoformat(),
                "updated_at": completed_at.isoformat(),
            },
        )

    def mark_failed(
        self, owner_id: UUID, draft_id: UUID, error: DraftError, failed_at: datetime
    ) -> MealDraft | None:
        """Store the error and move the draft to error."""
        return self._transition(
            owner_id,
            draft_id,
            DraftStatus.PROCESSING,
            {
                "status": str(DraftStatus.ERROR),
                "analysis": None,
                "error": {"code": str(error.code), "message": error.message},
                "analysis_completed_at": None,
                "auto_promote_at": None,
                "updated_at": failed_at.isoformat(),
            },
        )

    def reset_for_retry(
        self, owner_id: UUID, draft_id: UUID, reset_at: datetime
    ) -> MealDraft | None:
        """Clear analysis state and move the draft back to pending."""
        return self._transition(
            owner_id,
            draft_id,
            DraftStatus.ERROR,
            {
                "status": str(DraftStatus.PENDING),
                "analysis": None,
                "error": None,
                "analysis_started_at": None,
                "analysis_completed_at": None,
                "auto_promote_at": None,
                "updated_at": reset_at.isoformat(),
            },
        )

    def commit_promotion(
        self,
        owner_id: UUID,
        draft_id: UUID,
        expected_status: DraftStatus,
        log: MealLog,
    ) -> bool:
        """Insert the log and delete the draft in one database transaction."""
        response = self.client.rpc(
            "promote_meal_draft",
            {
                "p_owner_id": str(owner_id),
                "p_draft_id": str(draft_id),
                "p_expected_status": str(expected_status),
                "p_log": log_to_row(log),
            },
        ).execute()
        return bool(response.data)

    def list_due_drafts(self, now: datetime, limit: int) -> list[MealDraft]:
        """Return ready drafts whose auto-promotion deadline has passed."""
        response = (
            self.client.table(_TABLE)
            .select("*")
            .eq("status", str(DraftStatus.READY))
            .lte("auto_promote_at", now.isoformat())
            .order("auto_promote_at", desc=False)
            .limit(limit)
            .execute()
        )
        return [draft_from_row(row) for row in response.data or []]

    def list_stale_processing(
        self, started_before: datetime, limit: int
    ) -> list[MealDraft]:
        """Return processing drafts whose analysis started before the cutoff."""
        response = (
            self.client.table(_TABLE)
            .select("*")
            .eq("status", str(DraftStatus.PROCESSING))
            .lt("analysis_started_at", started_before.isoformat())
            .order("analysis_started_at", desc=False)
            .limit(limit)
            .execute()
        )
        return [draft_from_row(row) for row in response.data or []]

    def _transition(
        self,
        owner_id: UUID,
        draft_id: UUID,
        expected: DraftStatus,
        changes: dict[str, object],
    ) -> MealDraft | None:
        response = (
            self.client.table(_TABLE)
            .update(changes)
            .eq("id", str(draft_id))
            .eq("owner_id", str(owner_id))
            .eq("status", str(expected))
            .execute()
        )
        if not response.data:
            return None
        return draft_from_row(response.data[0])

"""Supabase repository for meal logs."""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from supabase import Client

from meal_tracker.adapters.supabase_rows import log_from_row, log_to_row
from meal_tracker.domain.logs import MealLog
from meal_tracker.services.meals import MealLogRepository


@dataclass
class SupabaseMealLogRepository(MealLogRepository):
    """Supabase implementation for meal logs."""

    client: Client

    def create_log(self, log: MealLog) -> None:
        """Insert a meal log row."""
        response = self.client.table("meal_logs").insert(log_to_row(log)).execute()
        if not response.data:
            raise RuntimeError("Failed to create meal log")

    def get_log(self, owner_id: UUID, log_id: UUID) -> MealLog | None:
        """Return a meal log by id."""
        response = (
            self.client.table("meal_logs")
            .select("*")
            .eq("id", str(log_id))
            .eq("owner_id", str(owner_id))
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return log_from_row(response.data[0])

    def list_logs(self, owner_id: UUID, limit: int) -> list[MealLog]:
        """Return recent meal logs, newest first."""
        response = (
            self.client.table("meal_logs")
            .select("*")
            .eq("owner_id", str(owner_id))
            .order("created_at", desc=True)
            .limit(limit)
            .execute()
        )
        return [log_from_row(row) for row in response.data or []]

    def list_logs_between(
        self, owner_id: UUID, start: datetime, end: datetime
    ) -> list[MealLog]:
        """Return meal logs created within ``[start, end)``, newest first."""
        response = (
            self.client.table("meal_logs")
            .select("*")
            .eq("owner_id", str(owner_id))
            .gte("created_at", start.isoformat())
            .lt("created_at", end.isoformat())
            .order("created_at", desc=True)
            .execute()
        )
        return [log_from_row(row) for row in response.data or []]

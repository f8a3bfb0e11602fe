"""Supabase repository for meal slot settings."""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from supabase import Client

from meal_tracker.services.meal_slots import MealSlotRepository

_TABLE = "meal_slot_settings"


@dataclass
class SupabaseMealSlotRepository(MealSlotRepository):
    """Supabase implementation storing one slot list per user."""

    client: Client

    def get_slots(self, owner_id: UUID) -> list[dict[str, object]] | None:
        """Return the stored slot entries, if a row exists."""
        response = (
            self.client.table(_TABLE)
            .select("slots")
            .eq("owner_id", str(owner_id))
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        slots = response.data[0].get("slots")
        return slots if isinstance(slots, list) else []

    def save_slots(
        self, owner_id: UUID, slots: list[dict[str, object]], updated_at: datetime
    ) -> None:
        """Upsert the slot list for a user."""
        response = (
            self.client.table(_TABLE)
            .upsert(
                {
                    "owner_id": str(owner_id),
                    "slots": slots,
                    "updated_at": updated_at.isoformat(),
                },
                on_conflict="owner_id",
            )
            .execute()
        )
        if not response.data:
            raise RuntimeError("Failed to save meal slots")

"""Meal slot settings service."""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol
from uuid import UUID

from meal_tracker.domain.meal_slots import (
    DEFAULT_MEAL_SLOTS,
    MealSlotConfig,
    coerce_slots,
    fallback_slot_id,
    normalize_slot_name,
    validate_slot_names,
)
from meal_tracker.services.drafts import Clock, utcnow

logger = logging.getLogger(__name__)


class MealSlotRepository(Protocol):
    """Persistence interface for per-user meal slot settings."""

    def get_slots(self, owner_id: UUID) -> list[dict[str, object]] | None:
        """Return the stored slot entries, or ``None`` when never saved."""

    def save_slots(
        self, owner_id: UUID, slots: list[dict[str, object]], updated_at: datetime
    ) -> None:
        """Replace the stored slot entries."""


@dataclass(frozen=True)
class MealSlotsSnapshot:
    slots: list[MealSlotConfig]
    is_default: bool


@dataclass
class MealSlotService:
    """Reads and saves the ordered list of meal slots for a user."""

    repository: MealSlotRepository
    clock: Clock = utcnow

    def get_slots(self, owner_id: UUID) -> MealSlotsSnapshot:
        """Return the user's slots, falling back to the defaults when unset."""
        stored = self.repository.get_slots(owner_id)
        if stored is None:
            return MealSlotsSnapshot(slots=list(DEFAULT_MEAL_SLOTS), is_default=True)
        return MealSlotsSnapshot(slots=coerce_slots(stored), is_default=False)

    def save_slots(
        self, owner_id: UUID, slots: list[tuple[str | None, str]]
    ) -> list[MealSlotConfig]:
        """Validate and store ``(id, name)`` pairs in the given order.

        Names are trimmed, blank ids get a slug of the name and positions
        follow list order.
        """
        names = [normalize_slot_name(name) for _, name in slots]
        validate_slot_names(names)
        saved = [
            MealSlotConfig(
                id=(slot_id or "").strip() or fallback_slot_id(name, index),
                name=name,
                position=index,
            )
            for index, ((slot_id, _), name) in enumerate(zip(slots, names, strict=True))
        ]
        self.repository.save_slots(
            owner_id,
            [
                {"id": slot.id, "name": slot.name, "position": slot.position}
                for slot in saved
            ],
            self.clock(),
        )
        logger.info(
            "Meal slots saved",
            extra={"owner_id": str(owner_id), "count": len(saved)},
        )
        return saved

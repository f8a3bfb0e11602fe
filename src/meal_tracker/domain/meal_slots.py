"""Per-user meal slot configuration."""

import math
import re
from dataclasses import dataclass

MAX_MEAL_SLOT_NAME_LENGTH = 40
MEAL_SLOT_NAME_PATTERN = re.compile(r"^[A-Za-z0-9 .,'&()/-]+$")

BLANK_NAME_MESSAGE = "Enter a meal slot name"
DUPLICATE_NAME_MESSAGE = "Meal slot names must be unique"
NAME_RULES_MESSAGE = (
    f"Meal slot names must be 1-{MAX_MEAL_SLOT_NAME_LENGTH} characters using "
    "letters, numbers, spaces, or . , ' & ( ) - /."
)


@dataclass(frozen=True)
class MealSlotConfig:
    """A named slot a user files meals under, in display order."""

    id: str
    name: str
    position: int


DEFAULT_MEAL_SLOTS: tuple[MealSlotConfig, ...] = (
    MealSlotConfig(id="breakfast", name="Breakfast", position=0),
    MealSlotConfig(id="lunch", name="Lunch", position=1),
    MealSlotConfig(id="dinner", name="Dinner", position=2),
    MealSlotConfig(id="drinks", name="Drinks", position=3),
)


class InvalidMealSlotError(ValueError):
    """Raised when a slot list cannot be saved."""

    def __init__(self, message: str, slot_index: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.slot_index = slot_index


def normalize_slot_name(name: str) -> str:
    return name.strip()


def fallback_slot_id(name: str, index: int) -> str:
    """Derive a stable id from a slot name, or from its index when nothing is left."""
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    return f"slot-{slug}" if slug else f"slot-{index}"


def coerce_slots(raw: object) -> list[MealSlotConfig]:
    """Read stored slots, dropping malformed entries and re-indexing positions.

    Entries without a usable name are skipped. A missing id falls back to the
    slug of the name and a missing position to the entry's index; the result
    is sorted by position and renumbered from zero.
    """
    if not isinstance(raw, list):
        return []
    slots: list[MealSlotConfig] = []
    for index, entry in enumerate(raw):
        if not isinstance(entry, dict):
            continue
        raw_name = entry.get("name")
        name = normalize_slot_name(raw_name) if isinstance(raw_name, str) else ""
        if not name:
            continue
        raw_id = entry.get("id")
        slot_id = raw_id.strip() if isinstance(raw_id, str) else ""
        position = entry.get("position")
        if (
            isinstance(position, bool)
            or not isinstance(position, int | float)
            or not math.isfinite(position)
        ):
            position = index
        slots.append(
            MealSlotConfig(
                id=slot_id or fallback_slot_id(name, index),
                name=name,
                position=position,
            )
        )
    slots.sort(key=lambda slot: slot.position)
    return [
        MealSlotConfig(id=slot.id, name=slot.name, position=index)
        for index, slot in enumerate(slots)
    ]


def validate_slot_names(names: list[str]) -> None:
    """Raise ``InvalidMealSlotError`` for the first name that cannot be saved."""
    counts: dict[str, int] = {}
    for name in names:
        if name:
            counts[name.lower()] = counts.get(name.lower(), 0) + 1
    for index, name in enumerate(names):
        if not name:
            raise InvalidMealSlotError(BLANK_NAME_MESSAGE, index)
        if counts[name.lower()] > 1:
            raise InvalidMealSlotError(DUPLICATE_NAME_MESSAGE, index)
        if len(name) > MAX_MEAL_SLOT_NAME_LENGTH:
            raise InvalidMealSlotError(NAME_RULES_MESSAGE, index)
        if not MEAL_SLOT_NAME_PATTERN.fullmatch(name):
            raise InvalidMealSlotError(NAME_RULES_MESSAGE, index)

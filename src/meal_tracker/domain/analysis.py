"""Nutrition estimate models and coercion of raw engine output."""

import math

from pydantic import BaseModel, Field

DEFAULT_ITEM_NAME = "Item"
DEFAULT_ITEM_QUANTITY = 1.0
DEFAULT_ITEM_UNIT = "serving"


class MacroBreakdown(BaseModel):
    """Macronutrients in grams."""

    protein: float = Field(default=0.0, ge=0.0)
    carbs: float = Field(default=0.0, ge=0.0)
    fat: float = Field(default=0.0, ge=0.0)


class MealAnalysisItem(BaseModel):
    """Single recognized food item."""

    name: str
    quantity: float = Field(gt=0.0)
    unit: str


class MealAnalysis(BaseModel):
    """Nutrition estimate for a whole meal."""

    calories: float = Field(default=0.0, ge=0.0)
    macros: MacroBreakdown = Field(default_factory=MacroBreakdown)
    items: list[MealAnalysisItem] = Field(default_factory=list)


def coerce_analysis(raw: object) -> MealAnalysis:
    """Build a valid estimate from an untrusted engine payload.

    Malformed numbers become 0 and malformed items fall back to a single
    serving of "Item", so a broken response degrades to a zero estimate
    instead of raising.
    """
    payload = raw if isinstance(raw, dict) else {}
    macros = payload.get("macros")
    macros = macros if isinstance(macros, dict) else {}
    raw_items = payload.get("items")
    items = raw_items if isinstance(raw_items, list) else []
    return MealAnalysis(
        calories=_non_negative(payload.get("calories")),
        macros=MacroBreakdown(
            protein=_non_negative(macros.get("protein")),
            carbs=_non_negative(macros.get("carbs")),
            fat=_non_negative(macros.get("fat")),
        ),
        items=[_coerce_item(item) for item in items],
    )


def _coerce_item(raw: object) -> MealAnalysisItem:
    if not isinstance(raw, dict):
        return MealAnalysisItem(
            name=DEFAULT_ITEM_NAME,
            quantity=DEFAULT_ITEM_QUANTITY,
            unit=DEFAULT_ITEM_UNIT,
        )
    name = raw.get("name")
    unit = raw.get("unit")
    quantity = _to_float(raw.get("quantity"))
    return MealAnalysisItem(
        name=name.strip() if isinstance(name, str) and name.strip() else DEFAULT_ITEM_NAME,
        quantity=quantity if quantity is not None and quantity > 0 else DEFAULT_ITEM_QUANTITY,
        unit=unit.strip() if isinstance(unit, str) and unit.strip() else DEFAULT_ITEM_UNIT,
    )


def _non_negative(value: object) -> float:
    number = _to_float(value)
    if number is None or number < 0:
        return 0.0
    return number


def _to_float(value: object) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value)
        except ValueError:
            return None
    else:
        return None
    if not math.isfinite(number):
        return None
    return number

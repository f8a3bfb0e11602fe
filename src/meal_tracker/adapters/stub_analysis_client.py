"""Deterministic analysis engine for local development and tests."""

import asyncio
import copy
from dataclasses import dataclass

from meal_tracker.services.analysis import AnalysisClient

SAMPLE_RESPONSES: list[dict[str, object]] = [
    {
        "calories": 520,
        "macros": {"protein": 32, "carbs": 48, "fat": 22},
        "items": [
            {"name": "Grilled chicken", "quantity": 1, "unit": "plate"},
            {"name": "Roasted vegetables", "quantity": 1, "unit": "cup"},
            {"name": "Brown rice", "quantity": 1, "unit": "cup"},
        ],
    },
    {
        "calories": 360,
        "macros": {"protein": 18, "carbs": 42, "fat": 12},
        "items": [
            {"name": "Greek yogurt", "quantity": 1, "unit": "bowl"},
            {"name": "Granola", "quantity": 0.5, "unit": "cup"},
            {"name": "Mixed berries", "quantity": 0.75, "unit": "cup"},
        ],
    },
    {
        "calories": 610,
        "macros": {"protein": 26, "carbs": 55, "fat": 28},
        "items": [
            {"name": "Salmon fillet", "quantity": 1, "unit": "piece"},
            {"name": "Mashed potatoes", "quantity": 1, "unit": "cup"},
            {"name": "Side salad", "quantity": 1, "unit": "bowl"},
        ],
    },
]


@dataclass
class StubAnalysisClient(AnalysisClient):
    """Returns one of a few canned meals, chosen from the input."""

    latency_seconds: float = 0.0

    async def analyze(
        self, *, image_bytes: bytes | None, label: str | None
    ) -> dict[str, object]:
        """Return a canned estimate after the configured latency."""
        if self.latency_seconds > 0:
            await asyncio.sleep(self.latency_seconds)
        seed = _compute_seed(image_bytes, label)
        return copy.deepcopy(SAMPLE_RESPONSES[seed % len(SAMPLE_RESPONSES)])


def _compute_seed(image_bytes: bytes | None, label: str | None) -> int:
    if image_bytes:
        return image_bytes[0]
    normalized = (label or "").strip().lower()
    return sum(ord(char) for char in normalized) % 256

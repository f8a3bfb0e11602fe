"""Nutrition analysis service wrapping an analysis engine."""

import base64
import logging
from dataclasses import dataclass
from typing import Protocol

from meal_tracker.domain.analysis import MealAnalysis, coerce_analysis
from meal_tracker.domain.errors import AnalysisErrorCode, AnalysisFailure

logger = logging.getLogger(__name__)

ANALYSIS_SCHEMA: dict[str, object] = {
    "type": "object",
    "properties": {
        "calories": {"type": "number"},
        "macros": {
            "type": "object",
            "properties": {
                "protein": {"type": "number"},
                "carbs": {"type": "number"},
                "fat": {"type": "number"},
            },
            "required": ["protein", "carbs", "fat"],
            "additionalProperties": False,
        },
        "items": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "name": {"type": "string"},
                    "quantity": {"type": "number"},
                    "unit": {"type": "string"},
                },
                "required": ["name", "quantity", "unit"],
                "additionalProperties": False,
            },
        },
    },
    "required": ["calories", "macros", "items"],
    "additionalProperties": False,
}


class AnalysisClient(Protocol):
    """Interface for engines that estimate nutrition for a meal."""

    async def analyze(
        self, *, image_bytes: bytes | None, label: str | None
    ) -> dict[str, object]:
        """Return a raw nutrition estimate for an image and/or label."""


@dataclass
class AnalysisService:
    """Service that calls the engine and normalizes its output."""

    client: AnalysisClient

    async def analyze(
        self, *, image_bytes: bytes | None = None, label: str | None = None
    ) -> MealAnalysis:
        """Estimate nutrition, converting engine errors into typed failures."""
        normalized_label = label.strip() if label else ""
        if not image_bytes and not normalized_label:
            raise AnalysisFailure(AnalysisErrorCode.MISSING_INPUT)
        try:
            raw = await self.client.analyze(
                image_bytes=image_bytes or None,
                label=normalized_label or None,
            )
        except Exception as exc:
            logger.exception(
                "Analysis engine failed",
                extra={"has_image": bool(image_bytes), "label": normalized_label},
            )
            raise AnalysisFailure(AnalysisErrorCode.ANALYSIS_FAILED) from exc
        return coerce_analysis(raw)


def to_data_url(image_bytes: bytes) -> str:
    """Convert bytes to a base64 data URL for image input."""
    mime_type = _detect_mime_type(image_bytes)
    encoded = base64.b64encode(image_bytes).decode("utf-8")
    return f"data:{mime_type};base64,{encoded}"


def _detect_mime_type(image_bytes: bytes) -> str:
    """Infer a basic image MIME type from file signatures."""
    if image_bytes.startswith(b"\xff\xd8\xff"):
        return "image/jpeg"
    if image_bytes.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    if image_bytes[:4] == b"RIFF" and image_bytes[8:12] == b"WEBP":
        return "image/webp"
    return "image/jpeg"

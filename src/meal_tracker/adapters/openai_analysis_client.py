"""OpenAI Responses API client for meal analysis."""

import json
import logging
from dataclasses import dataclass

from openai import AsyncOpenAI

from meal_tracker.services.analysis import (
    ANALYSIS_SCHEMA,
    AnalysisClient,
    to_data_url,
)

logger = logging.getLogger(__name__)

_PROMPT = (
    "Estimate the nutrition of this meal. "
    "Return total calories, grams of protein, carbs and fat, "
    "and each recognized food item with a quantity and unit."
)


@dataclass
class OpenAIAnalysisClient(AnalysisClient):
    """Analysis engine backed by OpenAI Responses API."""

    client: AsyncOpenAI
    model: str
    reasoning_effort: str | None = None
    store: bool = False

    @classmethod
    def create(
        cls,
        api_key: str,
        model: str,
        reasoning_effort: str | None = None,
        store: bool = False,
    ) -> "OpenAIAnalysisClient":
        """Create an OpenAI analysis client."""
        return cls(
            client=AsyncOpenAI(api_key=api_key),
            model=model,
            reasoning_effort=reasoning_effort,
            store=store,
        )

    async def analyze(
        self, *, image_bytes: bytes | None, label: str | None
    ) -> dict[str, object]:
        """Call OpenAI Responses API with structured outputs."""
        content: list[dict[str, object]] = [{"type": "input_text", "text": _PROMPT}]
        if label:
            content.append({"type": "input_text", "text": f"Meal name: {label}"})
        if image_bytes:
            content.append(
                {"type": "input_image", "image_url": to_data_url(image_bytes)}
            )
        request_payload: dict[str, object] = {
            "model": self.model,
            "input": [{"role": "user", "content": content}],
            "text": {
                "format": {
                    "type": "json_schema",
                    "name": "meal_analysis",
                    "strict": True,
                    "schema": ANALYSIS_SCHEMA,
                }
            },
            "store": self.store,
        }
        if self.reasoning_effort:
            request_payload["reasoning"] = {"effort": self.reasoning_effort}

        response = await self.client.responses.create(**request_payload)
        output_text = response.output_text
        if not output_text:
            # Degrades to a zero estimate after coercion.
            logger.warning(
                "OpenAI returned an empty response", extra={"model": self.model}
            )
            return {}
        return json.loads(output_text)

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        await self.client.close()

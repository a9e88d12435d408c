"""
Entity extraction service.

Asks the language model for structured facts about a transcript. The
parser is lenient about missing fields (they default to an empty list or
"neutral") but strict about gross shape: output that is not a JSON object,
or a present field of the wrong type, raises ExtractionError.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from meeting_brain.context import Context
    from meeting_brain.services.manager import ServicesManager

from meeting_brain.errors import ExtractionError
from meeting_brain.server.sql_models import Sentiment
from meeting_brain.services.extraction_manager.prompts import (
    EXTRACTION_PROMPT_TEMPLATE,
    EXTRACTION_SYSTEM_PROMPT,
    EXTRACTION_TEMPERATURE,
    INSIGHTS_PROMPT_TEMPLATE,
    INSIGHTS_SYSTEM_PROMPT,
    INSIGHTS_TEMPERATURE,
    SUMMARY_MAX_TOKENS,
    SUMMARY_PROMPT_TEMPLATE,
    SUMMARY_SYSTEM_PROMPT,
    SUMMARY_TEMPERATURE,
)
from meeting_brain.services.manager import BaseExtractionServiceManager

LIST_FIELDS = ("topics", "action_items", "decisions")
VALID_SENTIMENTS = {sentiment.value for sentiment in Sentiment}


# -------------------------------------------------------------- #
# Parsing Helpers
# -------------------------------------------------------------- #


def parse_json_object(content: str, step: str) -> dict[str, Any]:
    """
    Parse model output into a JSON object.

    Args:
        content: Raw model output
        step: Pipeline step name for the raised error

    Returns:
        Parsed dictionary

    Raises:
        ExtractionError: Output is not valid JSON or not an object
    """
    try:
        parsed = json.loads(content)
    except (json.JSONDecodeError, TypeError) as e:
        raise ExtractionError(f"Model output is not valid JSON: {e}", step=step) from e

    if not isinstance(parsed, dict):
        raise ExtractionError(
            f"Model output must be a JSON object, got {type(parsed).__name__}", step=step
        )
    return parsed


def stringify_item(item: Any) -> str | None:
    """
    Flatten one list entry of model output to text.

    Objects such as {"task": ..., "owner": ...} become their non-empty values
    joined with " - ". Numbers and booleans become their text form. Nested
    lists return None.
    """
    if isinstance(item, str):
        return item
    if isinstance(item, dict):
        parts = [str(value).strip() for value in item.values() if value is not None]
        return " - ".join(part for part in parts if part)
    if isinstance(item, (int, float, bool)):
        return str(item)
    return None


def coerce_string_list(parsed: dict[str, Any], key: str, step: str) -> list[str]:
    """Read an optional list-of-text field. Missing or null gives []."""
    value = parsed.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise ExtractionError(f"Field '{key}' must be a list", step=step)

    items = []
    for item in value:
        text = stringify_item(item)
        if text is None:
            raise ExtractionError(f"Field '{key}' must contain only text entries", step=step)
        text = text.strip()
        if text:
            items.append(text)
    return items


# -------------------------------------------------------------- #
# Extraction Manager
# -------------------------------------------------------------- #


class ExtractionManager(BaseExtractionServiceManager):
    """Derives topics, action items, decisions, sentiment, summary and insights."""

    def __init__(self, context: Context):
        super().__init__(context)

    async def on_start(self, services: ServicesManager) -> None:
        await super().on_start(services)
        await self.services.logging_service.info("Extraction Manager started")

    # -------------------------------------------------------------- #
    # Extraction Methods
    # -------------------------------------------------------------- #

    async def extract(self, transcript_text: str) -> dict[str, Any]:
        """
        Extract structured entities from a transcript.

        Args:
            transcript_text: Raw transcript, must be non-empty

        Returns:
            {"topics": [...], "action_items": [...], "decisions": [...], "sentiment": str}

        Raises:
            ExtractionError: Empty input, failed call or unparseable output
            UpstreamTimeoutError: Model call timed out
        """
        self._require_text(transcript_text, "extract")

        result = await self.services.ollama_request_manager.query(
            prompt=EXTRACTION_PROMPT_TEMPLATE.format(transcript=transcript_text),
            system_prompt=EXTRACTION_SYSTEM_PROMPT,
            temperature=EXTRACTION_TEMPERATURE,
            format="json",
            step="extract",
        )
        parsed = parse_json_object(result.content, step="extract")

        extracted: dict[str, Any] = {
            key: coerce_string_list(parsed, key, step="extract") for key in LIST_FIELDS
        }

        sentiment = parsed.get("sentiment")
        if isinstance(sentiment, str) and sentiment.strip().lower() in VALID_SENTIMENTS:
            extracted["sentiment"] = sentiment.strip().lower()
        else:
            if sentiment is not None:
                await self.services.logging_service.warning(
                    f"Unrecognized sentiment {sentiment!r} from model, using 'neutral'"
                )
            extracted["sentiment"] = Sentiment.NEUTRAL.value

        await self.services.logging_service.debug(
            f"Extracted {len(extracted['topics'])} topics, "
            f"{len(extracted['action_items'])} action items, "
            f"{len(extracted['decisions'])} decisions, sentiment={extracted['sentiment']}"
        )
        return extracted

    async def summarize(self, transcript_text: str) -> str:
        """
        Summarize a transcript in 2-3 sentences.

        Raises:
            ExtractionError: Empty input, failed call or empty output
            UpstreamTimeoutError: Model call timed out
        """
        self._require_text(transcript_text, "summarize")

        result = await self.services.ollama_request_manager.query(
            prompt=SUMMARY_PROMPT_TEMPLATE.format(transcript=transcript_text),
            system_prompt=SUMMARY_SYSTEM_PROMPT,
            temperature=SUMMARY_TEMPERATURE,
            num_predict=SUMMARY_MAX_TOKENS,
            step="summarize",
        )

        summary = (result.content or "").strip()
        if not summary:
            raise ExtractionError("Model returned an empty summary", step="summarize")
        return summary

    async def derive_insights(self, transcript_text: str) -> list[str]:
        """
        Derive 3-5 strategic insights from a transcript.

        Raises:
            ExtractionError: Empty input, failed call or unparseable output
            UpstreamTimeoutError: Model call timed out
        """
        self._require_text(transcript_text, "derive_insights")

        result = await self.services.ollama_request_manager.query(
            prompt=INSIGHTS_PROMPT_TEMPLATE.format(transcript=transcript_text),
            system_prompt=INSIGHTS_SYSTEM_PROMPT,
            temperature=INSIGHTS_TEMPERATURE,
            format="json",
            step="derive_insights",
        )
        parsed = parse_json_object(result.content, step="derive_insights")
        return coerce_string_list(parsed, "insights", step="derive_insights")

    # -------------------------------------------------------------- #
    # Helpers
    # -------------------------------------------------------------- #

    @staticmethod
    def _require_text(transcript_text: str, step: str) -> None:
        if not transcript_text or not transcript_text.strip():
            raise ExtractionError("Transcript text must be non-empty", step=step)

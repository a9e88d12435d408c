"""
Input schemas for the ingestion and search operations.

Pydantic validation errors never leave this module: they are converted to
ValidationError with one {field, message} entry per violated field.
"""

import re
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from meeting_brain.errors import ValidationError
from meeting_brain.server.db_models import MeetingMetadataMapping
from meeting_brain.utils import DEFAULT_PARTICIPANT_ROLE

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

# -------------------------------------------------------------- #
# Ingestion Schemas
# -------------------------------------------------------------- #


class ParticipantInput(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1)
    email: str
    role: str = DEFAULT_PARTICIPANT_ROLE

    @field_validator("email")
    def validate_email(cls, v: str) -> str:
        if not EMAIL_PATTERN.match(v):
            raise ValueError("Invalid email address")
        return v

    @field_validator("role", mode="before")
    def default_role(cls, v: Any) -> Any:
        if v is None or (isinstance(v, str) and not v.strip()):
            return DEFAULT_PARTICIPANT_ROLE
        return v


class IngestRequest(BaseModel):
    """One transcript submission."""

    model_config = ConfigDict(str_strip_whitespace=True)

    transcript_id: str = Field(min_length=1)
    title: str = Field(min_length=1)
    occurred_at: datetime
    duration_minutes: float = Field(gt=0)
    participants: list[ParticipantInput] = Field(min_length=1)
    transcript: str = Field(min_length=1)
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("occurred_at", mode="before")
    def parse_occurred_at(cls, v: Any) -> datetime:
        # Only ISO-8601 strings, never epoch numbers
        if isinstance(v, datetime):
            parsed = v
        elif isinstance(v, str) and v.strip():
            value = v.strip()
            if value.endswith(("Z", "z")):
                value = value[:-1] + "+00:00"
            try:
                parsed = datetime.fromisoformat(value)
            except ValueError as e:
                raise ValueError("Must be an ISO-8601 datetime") from e
        else:
            raise ValueError("Must be an ISO-8601 datetime")

        if parsed.tzinfo is None:
            return parsed.replace(tzinfo=timezone.utc)
        return parsed.astimezone(timezone.utc)

    @field_validator("metadata", mode="before")
    def validate_metadata(cls, v: Any) -> dict[str, Any]:
        if v is None:
            return {}
        return MeetingMetadataMapping.model_validate(v).root


class SearchRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    query: str = Field(min_length=1)
    limit: int = Field(default=5, ge=1, le=100)


# -------------------------------------------------------------- #
# Validation Helpers
# -------------------------------------------------------------- #


def _to_details(error: PydanticValidationError) -> list[dict[str, str]]:
    details = []
    for item in error.errors():
        field = ".".join(str(part) for part in item["loc"]) or "body"
        details.append({"field": field, "message": item["msg"]})
    return details


def validate_ingest_request(payload: Any) -> IngestRequest:
    """
    Validate a raw ingestion payload.

    Args:
        payload: Decoded JSON body (dict) or an IngestRequest

    Returns:
        Validated IngestRequest

    Raises:
        ValidationError: Listing every violated field
    """
    if isinstance(payload, IngestRequest):
        return payload
    if not isinstance(payload, dict):
        raise ValidationError([{"field": "body", "message": "Request body must be a JSON object"}])

    try:
        return IngestRequest.model_validate(payload)
    except PydanticValidationError as e:
        raise ValidationError(_to_details(e)) from e


def validate_search_request(query: Any, limit: Any = 5) -> SearchRequest:
    """
    Validate a search query and result limit.

    Raises:
        ValidationError: Empty query or out-of-range limit
    """
    try:
        return SearchRequest.model_validate({"query": query, "limit": limit})
    except PydanticValidationError as e:
        raise ValidationError(_to_details(e)) from e

from typing import Any

from pydantic import RootModel, field_validator

from meeting_brain.server.sql_models import (
    ActionItemModel,
    DecisionModel,
    ParticipantModel,
    TopicModel,
    TranscriptModel,
    TranscriptParticipantModel,
    TranscriptTopicModel,
)

# -------------------------------------------------------------- #
# SQL DB Models
# -------------------------------------------------------------- #

# Parents before children
SQL_DATABASE_MODELS = [
    TranscriptModel,
    ParticipantModel,
    TopicModel,
    TranscriptParticipantModel,
    TranscriptTopicModel,
    ActionItemModel,
    DecisionModel,
]


# -------------------------------------------------------------- #
# Pydantic Validation Models for JSON Fields
# -------------------------------------------------------------- #


class MeetingMetadataMapping(RootModel[dict[str, Any]]):
    """
    Represents the structure: {key: value}
    where key is a non-empty string and value is any JSON-serializable value
    """

    root: dict[str, Any]

    @field_validator("root")
    def validate_format(cls, v: dict[str, Any]) -> dict[str, Any]:
        if not isinstance(v, dict):
            raise ValueError("Must be a dictionary")
        for key in v:
            if not isinstance(key, str) or len(key) == 0:
                raise ValueError("Metadata keys must be non-empty strings")
        return v


class KeyInsightsList(RootModel[list[str]]):
    """
    Represents the structure: ["insight1", "insight2", ...]
    an ordered list of non-empty strings
    """

    root: list[str]

    @field_validator("root")
    def validate_format(cls, v: list[str]) -> list[str]:
        for insight in v:
            if not insight.strip():
                raise ValueError("Insights cannot be empty strings")
        return v

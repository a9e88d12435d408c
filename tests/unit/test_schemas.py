"""
Unit tests for ingestion and search input validation.

Tests cover:
- Required fields and their constraints
- occurred_at parsing and UTC normalization
- Participant role defaulting
- Conversion of pydantic errors to ValidationError details
"""

from datetime import timezone

import pytest

from meeting_brain.errors import ValidationError
from meeting_brain.schemas import validate_ingest_request, validate_search_request


def _fields(error: ValidationError) -> set[str]:
    return {detail["field"] for detail in error.details}


# -------------------------------------------------------------- #
# Ingestion Validation Tests
# -------------------------------------------------------------- #


@pytest.mark.unit
class TestValidateIngestRequest:
    def test_valid_payload(self, ingest_payload):
        request = validate_ingest_request(ingest_payload)

        assert request.transcript_id == "mtg-2025-001"
        assert request.duration_minutes == 45
        assert len(request.participants) == 2
        assert request.metadata == {"source": "zoom", "recorded": True}

    def test_occurred_at_is_utc(self, ingest_payload):
        ingest_payload["occurred_at"] = "2025-03-10T17:00:00+02:00"
        request = validate_ingest_request(ingest_payload)

        assert request.occurred_at.tzinfo == timezone.utc
        assert request.occurred_at.hour == 15

    def test_naive_occurred_at_is_treated_as_utc(self, ingest_payload):
        ingest_payload["occurred_at"] = "2025-03-10T15:00:00"
        request = validate_ingest_request(ingest_payload)

        assert request.occurred_at.tzinfo == timezone.utc
        assert request.occurred_at.hour == 15

    @pytest.mark.parametrize("value", ["yesterday", "", 1741618800, None])
    def test_occurred_at_rejects_non_iso(self, ingest_payload, value):
        ingest_payload["occurred_at"] = value

        with pytest.raises(ValidationError) as exc_info:
            validate_ingest_request(ingest_payload)
        assert "occurred_at" in _fields(exc_info.value)

    def test_missing_role_defaults_to_participant(self, ingest_payload):
        ingest_payload["participants"][1]["role"] = "   "
        request = validate_ingest_request(ingest_payload)

        assert request.participants[0].role == "host"
        assert request.participants[1].role == "participant"

    def test_metadata_defaults_to_empty(self, ingest_payload):
        ingest_payload["metadata"] = None
        assert validate_ingest_request(ingest_payload).metadata == {}

        del ingest_payload["metadata"]
        assert validate_ingest_request(ingest_payload).metadata == {}

    def test_reports_every_violated_field(self, ingest_payload):
        ingest_payload["title"] = "  "
        ingest_payload["duration_minutes"] = 0
        ingest_payload["participants"] = []
        del ingest_payload["transcript"]

        with pytest.raises(ValidationError) as exc_info:
            validate_ingest_request(ingest_payload)

        error = exc_info.value
        assert {"title", "duration_minutes", "participants", "transcript"} <= _fields(error)
        assert error.step == "validate"
        assert error.to_dict()["error"] == "Validation error"
        assert all(set(detail) == {"field", "message"} for detail in error.details)

    def test_invalid_participant_email(self, ingest_payload):
        ingest_payload["participants"][0]["email"] = "not-an-email"

        with pytest.raises(ValidationError) as exc_info:
            validate_ingest_request(ingest_payload)
        assert "participants.0.email" in _fields(exc_info.value)

    def test_negative_duration(self, ingest_payload):
        ingest_payload["duration_minutes"] = -5

        with pytest.raises(ValidationError):
            validate_ingest_request(ingest_payload)

    @pytest.mark.parametrize("payload", [None, [], "transcript", 42])
    def test_non_object_body(self, payload):
        with pytest.raises(ValidationError) as exc_info:
            validate_ingest_request(payload)
        assert _fields(exc_info.value) == {"body"}


# -------------------------------------------------------------- #
# Search Validation Tests
# -------------------------------------------------------------- #


@pytest.mark.unit
class TestValidateSearchRequest:
    def test_defaults(self):
        request = validate_search_request("budget")

        assert request.query == "budget"
        assert request.limit == 5

    def test_limit_from_query_string(self):
        assert validate_search_request("budget", "10").limit == 10

    @pytest.mark.parametrize("query", ["", "   ", None])
    def test_empty_query(self, query):
        with pytest.raises(ValidationError) as exc_info:
            validate_search_request(query)
        assert "query" in _fields(exc_info.value)

    @pytest.mark.parametrize("limit", [0, -1, 101, "many"])
    def test_invalid_limit(self, limit):
        with pytest.raises(ValidationError) as exc_info:
            validate_search_request("budget", limit)
        assert "limit" in _fields(exc_info.value)

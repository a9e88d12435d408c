"""
Error taxonomy for the ingestion and search pipeline.

Every error raised on purpose by the pipeline derives from PipelineError.
Callers branch on the concrete type:

- ValidationError: malformed caller input, never retried
- ExtractionError / UpstreamTimeoutError: language-model call failed, retryable
- DimensionMismatchError: embedding model drift, fatal
- ConsistencyGapError: one store has a record the other lacks, logged only
- DuplicateTranscriptError: two first-time ingestions of one id raced
- TranscriptNotFoundError: lookup by business id missed
- ServiceUnavailableError: the pipeline is shutting down
"""

from typing import Any


class PipelineError(Exception):
    """Base class for all pipeline errors."""

    retryable: bool = False

    def __init__(self, message: str, step: str | None = None):
        super().__init__(message)
        self.message = message
        self.step = step

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"error": type(self).__name__, "message": self.message}
        if self.step:
            payload["step"] = self.step
        return payload


class ValidationError(PipelineError):
    """Caller input failed validation. Carries one entry per violated field."""

    def __init__(self, details: list[dict[str, str]], message: str = "Validation error"):
        super().__init__(message, step="validate")
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.message, "details": self.details}


class ExtractionError(PipelineError):
    """Language-model call failed or its output could not be parsed."""

    retryable = True


class UpstreamTimeoutError(PipelineError):
    """An external call exceeded its timeout."""

    retryable = True


class DimensionMismatchError(PipelineError):
    """A vector's length does not match the index dimensionality."""

    def __init__(self, expected: int, actual: int, step: str | None = None):
        super().__init__(
            f"Embedding dimension mismatch: index expects {expected}, got {actual}", step=step
        )
        self.expected = expected
        self.actual = actual


class ConsistencyGapError(PipelineError):
    """A record exists in one store but not in the other."""

    def __init__(self, transcript_id: str, present_in: str, missing_from: str):
        super().__init__(
            f"Transcript '{transcript_id}' exists in {present_in} but not in {missing_from}",
            step="hydrate",
        )
        self.transcript_id = transcript_id
        self.present_in = present_in
        self.missing_from = missing_from


class DuplicateTranscriptError(PipelineError):
    """A transcript with this business id already exists."""

    def __init__(self, transcript_id: str, step: str | None = "persist"):
        super().__init__(f"Transcript '{transcript_id}' already exists", step=step)
        self.transcript_id = transcript_id


class ServiceUnavailableError(PipelineError):
    """The pipeline is stopping and accepts no new work."""

    retryable = True


class TranscriptNotFoundError(PipelineError):
    """No transcript with this business id exists."""

    def __init__(self, transcript_id: str):
        super().__init__(f"Transcript '{transcript_id}' not found")
        self.transcript_id = transcript_id

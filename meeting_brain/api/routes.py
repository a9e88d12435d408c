"""
FastAPI route handlers.

Routes are thin: they decode the request, call one pipeline operation and
return its result. Pipeline errors are mapped to HTTP responses here.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from meeting_brain.errors import (
    DuplicateTranscriptError,
    PipelineError,
    ServiceUnavailableError,
    TranscriptNotFoundError,
    UpstreamTimeoutError,
    ValidationError,
)
from meeting_brain.services.manager import ServicesManager

logger = logging.getLogger(__name__)

router = APIRouter()


def _services(request: Request) -> ServicesManager:
    return request.app.state.context.require_services()


# -------------------------------------------------------------- #
# Pipeline Routes
# -------------------------------------------------------------- #


@router.post("/api/ingest", status_code=status.HTTP_201_CREATED)
async def ingest_transcript(request: Request) -> dict[str, Any]:
    """Ingest one transcript and return what was extracted."""
    try:
        payload = await request.json()
    except ValueError as e:
        raise ValidationError(
            [{"field": "body", "message": "Request body must be valid JSON"}]
        ) from e

    return await _services(request).ingestion_manager.ingest(payload)


@router.get("/api/search")
async def search_transcripts(request: Request, q: str = "", limit: str = "5") -> dict[str, Any]:
    """Semantic search over ingested transcripts."""
    results = await _services(request).search_manager.search(q, limit)
    return {"results": results}


# -------------------------------------------------------------- #
# Transcript Routes
# -------------------------------------------------------------- #


@router.get("/api/transcripts")
async def list_transcripts(
    request: Request,
    participant: str | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
) -> dict[str, Any]:
    """List transcripts, optionally filtered by participant and date window."""
    transcripts = await _services(request).transcript_sql_manager.list_transcripts(
        participant=participant, start_date=start_date, end_date=end_date
    )
    return {"transcripts": transcripts}


@router.get("/api/transcripts/{transcript_id}")
async def get_transcript(request: Request, transcript_id: str) -> dict[str, Any]:
    return await _services(request).transcript_sql_manager.get_transcript_detail(transcript_id)


@router.delete("/api/transcripts/{transcript_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_transcript(request: Request, transcript_id: str) -> None:
    await _services(request).ingestion_manager.delete_transcript(transcript_id)


# -------------------------------------------------------------- #
# Analytics Routes
# -------------------------------------------------------------- #


@router.get("/api/analytics/topics")
async def topic_analytics(request: Request) -> dict[str, Any]:
    return {"topics": await _services(request).transcript_sql_manager.topic_counts()}


@router.get("/api/analytics/participants")
async def participant_analytics(request: Request) -> dict[str, Any]:
    return {"participants": await _services(request).transcript_sql_manager.participant_counts()}


@router.get("/api/analytics/sentiment-trend")
async def sentiment_trend(request: Request) -> dict[str, Any]:
    return {"trend": await _services(request).transcript_sql_manager.sentiment_trend()}


# -------------------------------------------------------------- #
# Maintenance Routes
# -------------------------------------------------------------- #


@router.post("/api/maintenance/resume")
async def resume_pending(request: Request) -> dict[str, Any]:
    """Finalize every transcript still missing its vector record."""
    return await _services(request).ingestion_manager.resume_pending()


@router.get("/health")
async def health_check(request: Request) -> JSONResponse:
    """Per-store health check."""
    context = request.app.state.context
    servers = await context.server_manager.health_check_all()
    servers["llm"] = await context.services_manager.ollama_request_manager.health_check()

    healthy = all(servers.values())
    return JSONResponse(
        status_code=status.HTTP_200_OK if healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "healthy" if healthy else "degraded",
            "servers": servers,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
    )


# -------------------------------------------------------------- #
# Error Handlers
# -------------------------------------------------------------- #


def register_error_handlers(app: FastAPI) -> None:
    """Map pipeline errors to HTTP responses."""

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        details = [
            {
                "field": ".".join(str(part) for part in err["loc"][1:]) or "body",
                "message": err["msg"],
            }
            for err in exc.errors()
        ]
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=ValidationError(details).to_dict(),
        )

    @app.exception_handler(TranscriptNotFoundError)
    async def not_found_handler(request: Request, exc: TranscriptNotFoundError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={"error": "Transcript not found", "message": exc.message},
        )

    @app.exception_handler(DuplicateTranscriptError)
    async def duplicate_handler(request: Request, exc: DuplicateTranscriptError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content={"error": "Duplicate transcript", "message": exc.message},
        )

    @app.exception_handler(UpstreamTimeoutError)
    async def timeout_handler(request: Request, exc: UpstreamTimeoutError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_504_GATEWAY_TIMEOUT,
            content={"error": "Upstream timeout", "message": exc.message, "step": exc.step},
        )

    @app.exception_handler(ServiceUnavailableError)
    async def unavailable_handler(request: Request, exc: ServiceUnavailableError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"error": "Service unavailable", "message": exc.message},
        )

    @app.exception_handler(PipelineError)
    async def pipeline_error_handler(request: Request, exc: PipelineError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_502_BAD_GATEWAY,
            content={"error": "Upstream error", "message": exc.message, "step": exc.step},
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Internal server error", "message": "An unexpected error occurred"},
        )

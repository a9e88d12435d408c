"""
Ingestion orchestrator.

Turns one transcript submission into a persisted, searchable record:

1. validate the submission (no external call on malformed input)
2. extract, summarize and derive insights concurrently
3. write the transcript and every linked row in one relational transaction
4. finalize: embed the text and upsert the vector record, then flip the
   embedding_indexed marker

Finalization is idempotent and retried on its own, so a transcript whose
marker is still false can always be repaired with resume_pending().
Re-submitting an existing transcript_id replays the relational upserts
without calling the language model again.
"""

from __future__ import annotations

import asyncio
import os
from typing import TYPE_CHECKING, Any

from dotenv import load_dotenv

if TYPE_CHECKING:
    from meeting_brain.context import Context
    from meeting_brain.schemas import IngestRequest

from meeting_brain.errors import (
    PipelineError,
    ServiceUnavailableError,
    TranscriptNotFoundError,
)
from meeting_brain.schemas import validate_ingest_request
from meeting_brain.services.manager import Manager
from meeting_brain.utils import isoformat_or_none

load_dotenv(dotenv_path=".env.local")

# -------------------------------------------------------------- #
# Ingestion Manager
# -------------------------------------------------------------- #


class IngestionManager(Manager):
    """Sequences extraction, relational persistence and vector indexing for one transcript."""

    def __init__(
        self,
        context: Context,
        finalize_max_attempts: int | None = None,
        finalize_backoff: float = 1.0,
    ):
        """
        Args:
            context: Application context
            finalize_max_attempts: Attempts per finalization
                (defaults to env: FINALIZE_MAX_ATTEMPTS)
            finalize_backoff: Exponential backoff multiplier in seconds between attempts
        """
        super().__init__(context)
        self._finalize_max_attempts = finalize_max_attempts or int(
            os.getenv("FINALIZE_MAX_ATTEMPTS", "3")
        )
        self._finalize_backoff = finalize_backoff

    async def on_start(self, services):
        await super().on_start(services)
        await self.services.logging_service.info(
            f"IngestionManager initialized (finalize attempts: {self._finalize_max_attempts})"
        )

    # -------------------------------------------------------------- #
    # Ingestion
    # -------------------------------------------------------------- #

    async def ingest(self, payload: dict[str, Any] | IngestRequest) -> dict[str, Any]:
        """
        Ingest one transcript submission.

        Args:
            payload: Raw submission or an already validated IngestRequest

        Returns:
            {"id": transcript_id, "status": "processed", "extracted": {...}}

        Raises:
            ValidationError: Malformed submission, nothing was called or written
            ExtractionError / UpstreamTimeoutError: A model call failed, nothing was written
            DuplicateTranscriptError: A concurrent first ingestion of the same id won
            DimensionMismatchError: Embedding length differs from the index
            ServiceUnavailableError: The pipeline is shutting down
        """
        request = validate_ingest_request(payload)
        transcript_id = request.transcript_id

        if self.context.is_shutting_down():
            raise ServiceUnavailableError("Service is shutting down", step="ingest")

        await self.services.logging_service.info(f"Ingesting transcript {transcript_id}")

        existing = await self.services.transcript_sql_manager.get_transcript_row(transcript_id)
        if existing is not None:
            return await self._replay(request, existing)

        extracted = await self._run_extraction(request)
        db_id = await self.services.transcript_sql_manager.persist_ingestion(request, extracted)
        await self.finalize_embedding(transcript_id)

        await self.services.logging_service.info(
            f"Transcript {transcript_id} processed (db id {db_id})"
        )
        return {"id": transcript_id, "status": "processed", "extracted": extracted}

    async def _run_extraction(self, request: IngestRequest) -> dict[str, Any]:
        """Run the three model calls concurrently. Any failure cancels the others."""
        extraction = self.services.extraction_manager
        tasks = {
            "extract": asyncio.create_task(extraction.extract(request.transcript)),
            "summarize": asyncio.create_task(extraction.summarize(request.transcript)),
            "derive_insights": asyncio.create_task(extraction.derive_insights(request.transcript)),
        }

        try:
            entities, summary, insights = await asyncio.gather(*tasks.values())
        except Exception as e:
            for task in tasks.values():
                task.cancel()
            await asyncio.gather(*tasks.values(), return_exceptions=True)

            step = next(
                (
                    name
                    for name, task in tasks.items()
                    if not task.cancelled() and task.exception() is e
                ),
                None,
            )
            if isinstance(e, PipelineError) and e.step is None:
                e.step = step
            await self.services.logging_service.error(
                f"Ingestion of {request.transcript_id} aborted at step '{step}': {e}"
            )
            raise

        return {
            "topics": entities["topics"],
            "action_items": entities["action_items"],
            "decisions": entities["decisions"],
            "sentiment": entities["sentiment"],
            "summary": summary,
            "key_insights": insights,
        }

    async def _replay(self, request: IngestRequest, row: dict[str, Any]) -> dict[str, Any]:
        """Re-apply participant upserts for an existing transcript and finish indexing."""
        transcript_id = request.transcript_id
        await self.services.logging_service.info(
            f"Transcript {transcript_id} already ingested (db id {row['id']}), replaying"
        )

        sql_manager = self.services.transcript_sql_manager
        await sql_manager.reapply_participants(row["id"], request.participants)
        if not row["embedding_indexed"]:
            await self.finalize_embedding(transcript_id)

        extracted = await sql_manager.load_extraction(row)
        return {"id": transcript_id, "status": "processed", "extracted": extracted}

    # -------------------------------------------------------------- #
    # Finalization
    # -------------------------------------------------------------- #

    async def finalize_embedding(self, transcript_id: str) -> None:
        """
        Embed a persisted transcript, upsert its vector record and mark it indexed.

        Safe to repeat. Retryable failures are retried with exponential backoff;
        a non-retryable pipeline error stops at once.

        Raises:
            TranscriptNotFoundError: No such transcript
            PipelineError: The last attempt's error once attempts are exhausted
        """
        sql_manager = self.services.transcript_sql_manager
        row = await sql_manager.get_transcript_row(transcript_id)
        if row is None:
            raise TranscriptNotFoundError(transcript_id)

        last_error: Exception | None = None
        for attempt in range(self._finalize_max_attempts):
            try:
                vector = await self.services.embedding_manager.embed(row["transcript_text"])
                await self.services.vector_index_manager.upsert(
                    transcript_id,
                    vector,
                    row["transcript_text"],
                    {
                        "title": row["title"],
                        "occurred_at": isoformat_or_none(row["occurred_at"]),
                        "db_id": row["id"],
                    },
                )
                await sql_manager.mark_embedding_indexed(transcript_id)
                await self.services.logging_service.info(
                    f"Finalized embedding for {transcript_id} (attempt {attempt + 1})"
                )
                return

            except PipelineError as e:
                if not e.retryable:
                    await self.services.logging_service.error(
                        f"Finalize of {transcript_id} failed permanently: {e}"
                    )
                    raise
                last_error = e

            except Exception as e:
                last_error = e

            await self.services.logging_service.warning(
                f"Finalize of {transcript_id} failed "
                f"(attempt {attempt + 1}/{self._finalize_max_attempts}): {last_error}"
            )
            if attempt < self._finalize_max_attempts - 1:
                await asyncio.sleep(self._finalize_backoff * (2**attempt))

        await self.services.logging_service.error(
            f"Finalize of {transcript_id} gave up after {self._finalize_max_attempts} attempts"
        )
        raise last_error

    async def resume_pending(self) -> dict[str, list[str]]:
        """
        Finalize every transcript whose embedding_indexed marker is still false.

        Returns:
            {"finalized": [...], "failed": [...]}
        """
        pending = await self.services.transcript_sql_manager.list_pending_transcript_ids()
        await self.services.logging_service.info(f"Resuming {len(pending)} pending finalizations")

        finalized, failed = [], []
        for transcript_id in pending:
            try:
                await self.finalize_embedding(transcript_id)
                finalized.append(transcript_id)
            except Exception as e:
                await self.services.logging_service.error(
                    f"Could not finalize {transcript_id}: {e}"
                )
                failed.append(transcript_id)

        return {"finalized": finalized, "failed": failed}

    # -------------------------------------------------------------- #
    # Deletion
    # -------------------------------------------------------------- #

    async def delete_transcript(self, transcript_id: str) -> None:
        """
        Delete a transcript from the relational store, then its vector record.

        Raises:
            TranscriptNotFoundError: No relational row existed
        """
        deleted = await self.services.transcript_sql_manager.delete_transcript(transcript_id)
        await self.services.vector_index_manager.delete(transcript_id)
        if not deleted:
            raise TranscriptNotFoundError(transcript_id)

"""
Unit tests for the ingestion orchestrator.

Runs the full service stack over in-memory SQLite and ChromaDB with a
scripted language model.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import func, select

from meeting_brain.errors import (
    DimensionMismatchError,
    ExtractionError,
    ServiceUnavailableError,
    TranscriptNotFoundError,
    UpstreamTimeoutError,
    ValidationError,
)
from meeting_brain.server.sql_models import ActionItemModel, TranscriptModel

# -------------------------------------------------------------- #
# Helpers
# -------------------------------------------------------------- #


async def _transcript_count(services) -> int:
    rows = await services.transcript_sql_manager.sql.execute(
        select(func.count(TranscriptModel.id).label("n"))
    )
    return rows[0]["n"]


# -------------------------------------------------------------- #
# Ingest Tests
# -------------------------------------------------------------- #


@pytest.mark.unit
class TestIngest:
    async def test_ingest_processes_transcript(
        self, test_services_manager, ingest_payload, llm_script
    ):
        result = await test_services_manager.ingestion_manager.ingest(ingest_payload)

        assert result["status"] == "processed"
        assert result["id"] == "mtg-2025-001"
        assert result["extracted"] == {
            **llm_script["extraction"],
            "summary": llm_script["summary"],
            "key_insights": llm_script["insights"],
        }

        row = await test_services_manager.transcript_sql_manager.get_transcript_row(
            "mtg-2025-001"
        )
        assert row["embedding_indexed"] is True
        assert await test_services_manager.vector_index_manager.exists("mtg-2025-001")

    async def test_runs_three_model_calls(
        self, test_services_manager, ingest_payload, mock_ollama_client
    ):
        await test_services_manager.ingestion_manager.ingest(ingest_payload)

        assert mock_ollama_client.chat.call_count == 3
        assert mock_ollama_client.embed.call_count == 1

    async def test_vector_metadata(self, test_services_manager, ingest_payload):
        await test_services_manager.ingestion_manager.ingest(ingest_payload)
        row = await test_services_manager.transcript_sql_manager.get_transcript_row(
            "mtg-2025-001"
        )

        neighbors = await test_services_manager.vector_index_manager.query(
            await test_services_manager.embedding_manager.embed(ingest_payload["transcript"]),
            limit=1,
        )
        assert neighbors[0].transcript_id == "mtg-2025-001"
        assert neighbors[0].metadata == {
            "title": "Budget and hiring sync",
            "occurred_at": "2025-03-10T15:00:00+00:00",
            "db_id": row["id"],
        }

    async def test_invalid_payload_calls_nothing(
        self, test_services_manager, ingest_payload, mock_ollama_client
    ):
        del ingest_payload["title"]

        with pytest.raises(ValidationError):
            await test_services_manager.ingestion_manager.ingest(ingest_payload)

        mock_ollama_client.chat.assert_not_called()
        assert await _transcript_count(test_services_manager) == 0

    async def test_rejected_while_shutting_down(self, test_services_manager, ingest_payload):
        test_services_manager.context.mark_shutdown_started()

        with pytest.raises(ServiceUnavailableError):
            await test_services_manager.ingestion_manager.ingest(ingest_payload)


# -------------------------------------------------------------- #
# Extraction Failure Tests
# -------------------------------------------------------------- #


@pytest.mark.unit
class TestExtractionFailures:
    async def test_malformed_model_output_writes_nothing(
        self, test_services_manager, ingest_payload, mock_ollama_client
    ):
        original = mock_ollama_client.chat.side_effect

        async def _chat(model, messages, **kwargs):
            system_prompt = messages[0]["content"]
            if "summarizing" in system_prompt or "strategic insights" in system_prompt:
                return await original(model, messages, **kwargs)
            return {"model": model, "message": {"content": "not json at all"}, "done": True}

        mock_ollama_client.chat.side_effect = _chat

        with pytest.raises(ExtractionError) as exc_info:
            await test_services_manager.ingestion_manager.ingest(ingest_payload)

        assert exc_info.value.step == "extract"
        assert await _transcript_count(test_services_manager) == 0
        assert await test_services_manager.vector_index_manager.count() == 0

    async def test_model_timeout_writes_nothing(
        self, test_services_manager, ingest_payload, mock_ollama_client
    ):
        mock_ollama_client.chat.side_effect = asyncio.TimeoutError()

        with pytest.raises(UpstreamTimeoutError):
            await test_services_manager.ingestion_manager.ingest(ingest_payload)

        assert await _transcript_count(test_services_manager) == 0


# -------------------------------------------------------------- #
# Replay Tests
# -------------------------------------------------------------- #


@pytest.mark.unit
class TestReplay:
    async def test_replay_makes_no_model_calls(
        self, test_services_manager, ingest_payload, mock_ollama_client
    ):
        first = await test_services_manager.ingestion_manager.ingest(ingest_payload)
        mock_ollama_client.chat.reset_mock()

        second = await test_services_manager.ingestion_manager.ingest(ingest_payload)

        mock_ollama_client.chat.assert_not_called()
        assert second == first

    async def test_replay_does_not_duplicate_rows(self, test_services_manager, ingest_payload):
        await test_services_manager.ingestion_manager.ingest(ingest_payload)
        await test_services_manager.ingestion_manager.ingest(ingest_payload)

        sql = test_services_manager.transcript_sql_manager.sql
        rows = await sql.execute(select(func.count(ActionItemModel.id).label("n")))
        assert rows[0]["n"] == 2
        assert await _transcript_count(test_services_manager) == 1
        assert await test_services_manager.vector_index_manager.count() == 1

    async def test_replay_adds_new_participants(self, test_services_manager, ingest_payload):
        await test_services_manager.ingestion_manager.ingest(ingest_payload)
        ingest_payload["participants"].append({"name": "Carol King", "email": "carol@example.com"})

        await test_services_manager.ingestion_manager.ingest(ingest_payload)

        detail = await test_services_manager.transcript_sql_manager.get_transcript_detail(
            "mtg-2025-001"
        )
        assert [p["email"] for p in detail["participants"]] == [
            "alice@example.com",
            "bob@example.com",
            "carol@example.com",
        ]

    async def test_replay_finishes_unindexed_transcript(
        self, test_services_manager, ingest_payload, mock_ollama_client
    ):
        mock_ollama_client.embed.side_effect = ConnectionError("embedder down")

        with pytest.raises(ExtractionError):
            await test_services_manager.ingestion_manager.ingest(ingest_payload)
        assert await _transcript_count(test_services_manager) == 1
        assert await test_services_manager.vector_index_manager.count() == 0

        mock_ollama_client.embed.side_effect = lambda model, input: {"embeddings": [[0.1] * 32]}
        await test_services_manager.ingestion_manager.ingest(ingest_payload)

        row = await test_services_manager.transcript_sql_manager.get_transcript_row(
            "mtg-2025-001"
        )
        assert row["embedding_indexed"] is True
        assert await test_services_manager.vector_index_manager.exists("mtg-2025-001")


# -------------------------------------------------------------- #
# Finalization Tests
# -------------------------------------------------------------- #


@pytest.mark.unit
class TestFinalize:
    async def test_finalize_missing_transcript(self, test_services_manager):
        with pytest.raises(TranscriptNotFoundError):
            await test_services_manager.ingestion_manager.finalize_embedding("missing")

    async def test_finalize_retries_transient_failure(
        self, test_services_manager, ingest_payload, monkeypatch
    ):
        vector_index = test_services_manager.vector_index_manager
        real_upsert = vector_index.upsert
        calls = {"n": 0}

        async def _flaky_upsert(*args, **kwargs):
            calls["n"] += 1
            if calls["n"] == 1:
                raise UpstreamTimeoutError("vector store slow", step="index")
            return await real_upsert(*args, **kwargs)

        monkeypatch.setattr(vector_index, "upsert", _flaky_upsert)

        await test_services_manager.ingestion_manager.ingest(ingest_payload)

        assert calls["n"] == 2
        assert await vector_index.exists("mtg-2025-001")

    async def test_dimension_mismatch_is_not_retried(
        self, test_services_manager, ingest_payload, monkeypatch
    ):
        vector_index = test_services_manager.vector_index_manager
        monkeypatch.setattr(vector_index, "_dimensions", 8)
        embed = AsyncMock(wraps=test_services_manager.embedding_manager.embed)
        monkeypatch.setattr(test_services_manager.embedding_manager, "embed", embed)

        with pytest.raises(DimensionMismatchError):
            await test_services_manager.ingestion_manager.ingest(ingest_payload)

        assert embed.call_count == 1
        pending = await test_services_manager.transcript_sql_manager.list_pending_transcript_ids()
        assert pending == ["mtg-2025-001"]

    async def test_finalize_is_idempotent(self, test_services_manager, ingest_payload):
        await test_services_manager.ingestion_manager.ingest(ingest_payload)

        await test_services_manager.ingestion_manager.finalize_embedding("mtg-2025-001")

        assert await test_services_manager.vector_index_manager.count() == 1

    async def test_resume_pending(self, test_services_manager, ingest_payload, mock_ollama_client):
        original = mock_ollama_client.embed.side_effect
        mock_ollama_client.embed.side_effect = ConnectionError("embedder down")

        for transcript_id in ("mtg-2025-001", "mtg-2025-002"):
            with pytest.raises(ExtractionError):
                await test_services_manager.ingestion_manager.ingest(
                    {**ingest_payload, "transcript_id": transcript_id}
                )

        mock_ollama_client.embed.side_effect = original
        result = await test_services_manager.ingestion_manager.resume_pending()

        assert result == {"finalized": ["mtg-2025-001", "mtg-2025-002"], "failed": []}
        assert await test_services_manager.vector_index_manager.count() == 2
        pending = await test_services_manager.transcript_sql_manager.list_pending_transcript_ids()
        assert pending == []

    async def test_resume_pending_reports_failures(
        self, test_services_manager, ingest_payload, mock_ollama_client
    ):
        mock_ollama_client.embed.side_effect = ConnectionError("embedder down")
        with pytest.raises(ExtractionError):
            await test_services_manager.ingestion_manager.ingest(ingest_payload)

        result = await test_services_manager.ingestion_manager.resume_pending()

        assert result == {"finalized": [], "failed": ["mtg-2025-001"]}


# -------------------------------------------------------------- #
# Delete Tests
# -------------------------------------------------------------- #


@pytest.mark.unit
class TestDelete:
    async def test_delete_removes_both_records(self, test_services_manager, ingest_payload):
        await test_services_manager.ingestion_manager.ingest(ingest_payload)

        await test_services_manager.ingestion_manager.delete_transcript("mtg-2025-001")

        assert await _transcript_count(test_services_manager) == 0
        assert not await test_services_manager.vector_index_manager.exists("mtg-2025-001")

    async def test_delete_missing(self, test_services_manager):
        with pytest.raises(TranscriptNotFoundError):
            await test_services_manager.ingestion_manager.delete_transcript("missing")

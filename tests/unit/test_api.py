"""
Unit tests for the FastAPI routes and error mapping.

The app is served in-process through httpx's ASGI transport on top of an
already started context, so the lifespan hook never connects real stores.
"""

import asyncio
from unittest.mock import AsyncMock

import httpx
import pytest

from meeting_brain.api.app import create_app
from meeting_brain.errors import DuplicateTranscriptError

# -------------------------------------------------------------- #
# Fixtures
# -------------------------------------------------------------- #


@pytest.fixture
async def client(test_context, test_services_manager):  # noqa: ARG001
    app = create_app(context=test_context)
    transport = httpx.ASGITransport(app=app, raise_app_exceptions=False)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
async def ingested(client, ingest_payload):
    response = await client.post("/api/ingest", json=ingest_payload)
    assert response.status_code == 201
    return response.json()


# -------------------------------------------------------------- #
# Ingest Route Tests
# -------------------------------------------------------------- #


@pytest.mark.unit
class TestIngestRoute:
    async def test_ingest(self, ingested):
        assert ingested["id"] == "mtg-2025-001"
        assert ingested["status"] == "processed"
        assert ingested["extracted"]["topics"] == ["Budget", "Hiring", "Roadmap"]
        assert ingested["extracted"]["sentiment"] == "positive"

    async def test_validation_error(self, client, ingest_payload):
        ingest_payload["duration_minutes"] = 0
        del ingest_payload["title"]

        response = await client.post("/api/ingest", json=ingest_payload)

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "Validation error"
        assert {d["field"] for d in body["details"]} == {"title", "duration_minutes"}

    async def test_invalid_json(self, client):
        response = await client.post(
            "/api/ingest", content=b"{not json", headers={"content-type": "application/json"}
        )

        assert response.status_code == 400
        assert response.json()["details"][0]["field"] == "body"

    async def test_extraction_failure(self, client, ingest_payload, mock_ollama_client):
        mock_ollama_client.chat.side_effect = ConnectionError("model offline")

        response = await client.post("/api/ingest", json=ingest_payload)

        assert response.status_code == 502
        body = response.json()
        assert body["error"] == "Upstream error"
        assert body["step"] in {"extract", "summarize", "derive_insights"}

    async def test_timeout(self, client, ingest_payload, mock_ollama_client):
        mock_ollama_client.chat.side_effect = asyncio.TimeoutError()

        response = await client.post("/api/ingest", json=ingest_payload)

        assert response.status_code == 504

    async def test_duplicate(self, client, ingest_payload, test_services_manager, monkeypatch):
        monkeypatch.setattr(
            test_services_manager.ingestion_manager,
            "ingest",
            AsyncMock(side_effect=DuplicateTranscriptError("mtg-2025-001")),
        )

        response = await client.post("/api/ingest", json=ingest_payload)

        assert response.status_code == 409

    async def test_shutting_down(self, client, ingest_payload, test_services_manager):
        test_services_manager.context.mark_shutdown_started()

        response = await client.post("/api/ingest", json=ingest_payload)

        assert response.status_code == 503
        assert response.json()["error"] == "Service unavailable"


# -------------------------------------------------------------- #
# Search Route Tests
# -------------------------------------------------------------- #


@pytest.mark.unit
class TestSearchRoute:
    async def test_search(self, client, ingested):
        response = await client.get("/api/search", params={"q": "budget", "limit": "3"})

        assert response.status_code == 200
        results = response.json()["results"]
        assert results[0]["transcript_id"] == ingested["id"]
        assert 0 < results[0]["similarity_score"] <= 1

    async def test_search_empty_index(self, client):
        response = await client.get("/api/search", params={"q": "budget"})

        assert response.status_code == 200
        assert response.json() == {"results": []}

    @pytest.mark.parametrize("params", [{}, {"q": ""}, {"q": "budget", "limit": "0"}])
    async def test_search_invalid(self, client, params):
        response = await client.get("/api/search", params=params)

        assert response.status_code == 400
        assert response.json()["error"] == "Validation error"


# -------------------------------------------------------------- #
# Transcript Route Tests
# -------------------------------------------------------------- #


@pytest.mark.unit
class TestTranscriptRoutes:
    async def test_list(self, client, ingested):  # noqa: ARG002
        response = await client.get("/api/transcripts")

        assert response.status_code == 200
        (transcript,) = response.json()["transcripts"]
        assert transcript["transcript_id"] == "mtg-2025-001"
        assert transcript["embedding_indexed"] is True

    async def test_list_filters(self, client, ingested):  # noqa: ARG002
        response = await client.get(
            "/api/transcripts",
            params={"participant": "bob", "start_date": "2025-03-01T00:00:00Z"},
        )
        assert len(response.json()["transcripts"]) == 1

        response = await client.get("/api/transcripts", params={"participant": "nobody"})
        assert response.json()["transcripts"] == []

    async def test_list_bad_date(self, client):
        response = await client.get("/api/transcripts", params={"start_date": "last week"})

        assert response.status_code == 400
        assert response.json()["details"][0]["field"] == "start_date"

    async def test_detail(self, client, ingested):  # noqa: ARG002
        response = await client.get("/api/transcripts/mtg-2025-001")

        assert response.status_code == 200
        detail = response.json()
        assert detail["action_items"] == ["Alice to draft the budget", "Bob to post the job ad"]
        assert detail["decisions"] == ["Freeze spending until Q3"]

    async def test_detail_missing(self, client):
        response = await client.get("/api/transcripts/missing")

        assert response.status_code == 404
        assert response.json()["error"] == "Transcript not found"

    async def test_delete(self, client, ingested):  # noqa: ARG002
        response = await client.delete("/api/transcripts/mtg-2025-001")
        assert response.status_code == 204

        response = await client.get("/api/transcripts/mtg-2025-001")
        assert response.status_code == 404

    async def test_delete_missing(self, client):
        response = await client.delete("/api/transcripts/missing")
        assert response.status_code == 404


# -------------------------------------------------------------- #
# Analytics and Maintenance Route Tests
# -------------------------------------------------------------- #


@pytest.mark.unit
class TestAnalyticsRoutes:
    async def test_topics(self, client, ingested):  # noqa: ARG002
        response = await client.get("/api/analytics/topics")

        topics = response.json()["topics"]
        assert {t["topic"] for t in topics} == {"Budget", "Hiring", "Roadmap"}
        assert all(t["count"] == 1 for t in topics)

    async def test_participants(self, client, ingested):  # noqa: ARG002
        response = await client.get("/api/analytics/participants")

        participants = response.json()["participants"]
        assert {p["email"] for p in participants} == {"alice@example.com", "bob@example.com"}

    async def test_sentiment_trend(self, client, ingested):  # noqa: ARG002
        response = await client.get("/api/analytics/sentiment-trend")

        assert response.json() == {
            "trend": [{"date": "2025-03-10", "avg_sentiment": 1.0, "meeting_count": 1}]
        }

    async def test_resume(self, client, ingested):  # noqa: ARG002
        response = await client.post("/api/maintenance/resume")

        assert response.status_code == 200
        assert response.json() == {"finalized": [], "failed": []}


@pytest.mark.unit
class TestHealthRoute:
    async def test_healthy(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["servers"] == {"sql": True, "vector_db": True, "llm": True}

    async def test_degraded(self, client, mock_ollama_client):
        mock_ollama_client.list.side_effect = ConnectionError("refused")

        response = await client.get("/health")

        assert response.status_code == 503
        assert response.json()["servers"]["llm"] is False


@pytest.mark.unit
async def test_unhandled_error_is_generic(client, test_services_manager, monkeypatch):
    monkeypatch.setattr(
        test_services_manager.transcript_sql_manager,
        "topic_counts",
        AsyncMock(side_effect=KeyError("secret detail")),
    )

    response = await client.get("/api/analytics/topics")

    assert response.status_code == 500
    assert response.json() == {
        "error": "Internal server error",
        "message": "An unexpected error occurred",
    }

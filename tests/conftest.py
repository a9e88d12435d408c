"""
Pytest configuration and shared fixtures.

This file is automatically loaded by pytest and provides
fixtures and configuration that can be used across all tests.
"""

import hashlib
import json
import math
import re
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

# ============================================================================
# Constants
# ============================================================================

EMBEDDING_DIMENSIONS = 32


# ============================================================================
# Fake Language Model
# ============================================================================


def fake_embedding(text: str) -> list[float]:
    """
    Deterministic bag-of-words embedding.

    Texts sharing words land close together, so similarity ordering in tests
    follows word overlap.
    """
    vector = [0.0] * EMBEDDING_DIMENSIONS
    for word in re.findall(r"[a-z]+", text.lower()):
        bucket = int(hashlib.md5(word.encode("utf-8")).hexdigest(), 16) % EMBEDDING_DIMENSIONS
        vector[bucket] += 1.0
    norm = math.sqrt(sum(value * value for value in vector)) or 1.0
    return [value / norm for value in vector]


@pytest.fixture
def embedder():
    """The deterministic embedding function behind the mocked embed endpoint."""
    return fake_embedding


@pytest.fixture
def llm_script() -> dict:
    """
    What the mocked chat model answers. Tests mutate this dict to change the output.
    """
    return {
        "extraction": {
            "topics": ["Budget", "Hiring", "Roadmap"],
            "action_items": ["Alice to draft the budget", "Bob to post the job ad"],
            "decisions": ["Freeze spending until Q3"],
            "sentiment": "positive",
        },
        "summary": "The team reviewed the budget and hiring plan. Spending is frozen until Q3.",
        "insights": ["Hiring depends on the budget", "Roadmap risk is low", "Team is aligned"],
    }


@pytest.fixture
def mock_ollama_client(llm_script):
    """Patch the Ollama async client with a scripted chat model and a fake embedder."""

    async def _chat(model, messages, **kwargs):
        system_prompt = messages[0]["content"]
        if "summarizing" in system_prompt:
            content = llm_script["summary"]
        elif "strategic insights" in system_prompt:
            content = json.dumps({"insights": llm_script["insights"]})
        else:
            content = json.dumps(llm_script["extraction"])
        return {
            "model": model,
            "message": {"role": "assistant", "content": content},
            "done": True,
            "eval_count": 12,
        }

    async def _embed(model, input, **kwargs):
        return {"model": model, "embeddings": [fake_embedding(input)]}

    with patch("meeting_brain.services.ollama_request_manager.manager.ollama.AsyncClient") as mock:
        client = AsyncMock()
        client.chat.side_effect = _chat
        client.embed.side_effect = _embed
        client.list.return_value = {"models": [{"name": "test-model"}]}
        mock.return_value = client
        yield client


@pytest.fixture
def mock_services():
    """Create a mock services manager with logging service."""
    services = MagicMock()
    services.logging_service = AsyncMock()
    return services


@pytest.fixture
def mock_context():
    """Create a mock context whose server manager reports itself initialized."""
    context = MagicMock()
    context.server_manager.is_initialized = True
    context.is_shutting_down.return_value = False
    return context


# ============================================================================
# Sample Data
# ============================================================================


@pytest.fixture
def sample_transcript() -> str:
    """Provide a sample transcript for testing."""
    return (
        "Alice: Welcome everyone. Today we review the budget and the hiring plan.\n"
        "Bob: The budget is tight, so I suggest we freeze spending until Q3.\n"
        "Alice: Agreed. I will draft the budget and Bob will post the job ad."
    )


@pytest.fixture
def ingest_payload(sample_transcript) -> dict:
    """A valid ingestion payload with two participants."""
    return {
        "transcript_id": "mtg-2025-001",
        "title": "Budget and hiring sync",
        "occurred_at": "2025-03-10T15:00:00Z",
        "duration_minutes": 45,
        "participants": [
            {"name": "Alice Smith", "email": "alice@example.com", "role": "host"},
            {"name": "Bob Jones", "email": "bob@example.com"},
        ],
        "transcript": sample_transcript,
        "metadata": {"source": "zoom", "recorded": True},
    }


# ============================================================================
# Testing Environment Fixtures (in-memory stores)
# ============================================================================


@pytest.fixture
async def test_context():
    """
    Create a test context instance.

    Yields:
        Context: Test context instance
    """
    from meeting_brain.context import Context

    yield Context()


@pytest.fixture
async def test_server_manager(test_context):
    """
    Create and connect a test server manager with in-memory stores.

    This fixture provides a ServerManager instance with:
    - In-memory SQLite database (stands in for PostgreSQL)
    - In-memory ChromaDB

    Yields:
        ServerManager: Connected test server manager instance
    """
    from meeting_brain.constructor import ServerManagerType
    from meeting_brain.server.constructor import construct_server_manager

    server = construct_server_manager(ServerManagerType.TESTING, test_context)
    test_context.set_server_manager(server)
    await server.connect_all()

    yield server

    await server.disconnect_all()


@pytest.fixture
async def test_sql_client(test_server_manager):
    """In-memory SQL client from the test server manager."""
    yield test_server_manager.sql_client


@pytest.fixture
async def test_vector_db_client(test_server_manager):
    """In-memory ChromaDB client from the test server manager."""
    yield test_server_manager.vector_db_client


@pytest.fixture
async def test_services_manager(test_context, test_server_manager, mock_ollama_client, tmp_path):
    """
    Fully initialized services manager over the in-memory stores.

    The language model is the scripted mock; retries and backoffs are shortened.

    Yields:
        ServicesManager: Started services manager
    """
    from meeting_brain.services.embedding_manager.manager import EmbeddingManager
    from meeting_brain.services.extraction_manager.manager import ExtractionManager
    from meeting_brain.services.ingestion_manager.manager import IngestionManager
    from meeting_brain.services.logger import AsyncLoggingService
    from meeting_brain.services.manager import ServicesManager
    from meeting_brain.services.ollama_request_manager.manager import OllamaRequestManager
    from meeting_brain.services.search_manager.manager import SearchManager
    from meeting_brain.services.transcript_sql_manager.manager import (
        TranscriptSQLManagerService,
    )
    from meeting_brain.services.vector_index_manager.manager import VectorIndexManager

    services = ServicesManager(
        context=test_context,
        logging_service=AsyncLoggingService(
            context=test_context,
            log_dir=str(tmp_path / "logs"),
            log_file="test.log",
            console_output=False,
        ),
        ollama_request_manager=OllamaRequestManager(
            context=test_context,
            host="http://localhost:11434",
            default_model="test-model",
            embedding_model="test-embed",
            timeout_ms=5000,
            max_retries=2,
            retry_backoff=0,
        ),
        extraction_manager=ExtractionManager(context=test_context),
        embedding_manager=EmbeddingManager(context=test_context),
        transcript_sql_manager=TranscriptSQLManagerService(context=test_context),
        vector_index_manager=VectorIndexManager(context=test_context),
        ingestion_manager=IngestionManager(
            context=test_context, finalize_max_attempts=3, finalize_backoff=0
        ),
        search_manager=SearchManager(context=test_context),
    )
    test_context.set_services_manager(services)
    await services.initialize_all()

    yield services

    await services.logging_service.on_close()

from __future__ import annotations

import asyncio
import functools
import os
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from dotenv import load_dotenv

if TYPE_CHECKING:
    from meeting_brain.context import Context

from meeting_brain.errors import DimensionMismatchError, UpstreamTimeoutError
from meeting_brain.server.vector_db_collections import TRANSCRIPT_EMBEDDINGS_COLLECTION
from meeting_brain.services.manager import Manager

load_dotenv(dotenv_path=".env.local")


# -------------------------------------------------------------- #
# Data Models
# -------------------------------------------------------------- #


@dataclass
class VectorNeighbor:
    """One nearest-neighbour hit, in index return order."""

    transcript_id: str
    distance: float
    document: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


# -------------------------------------------------------------- #
# Vector Index Manager
# -------------------------------------------------------------- #


class VectorIndexManager(Manager):
    """
    Access layer for the transcript embedding collection.

    Records are keyed by transcript_id, so writing the same transcript twice
    replaces the record. Every vector crossing this boundary is checked
    against the index dimensionality.
    """

    def __init__(
        self,
        context: Context,
        collection_name: str = TRANSCRIPT_EMBEDDINGS_COLLECTION,
        dimensions: int | None = None,
        timeout_ms: int | None = None,
    ):
        super().__init__(context)
        self.collection_name = collection_name

        configured = os.getenv("EMBEDDING_DIMENSIONS")
        self._dimensions: int | None = dimensions or (int(configured) if configured else None)
        self._timeout_ms = timeout_ms or int(os.getenv("VECTOR_DB_TIMEOUT_MS", "30000"))

    async def on_start(self, services):
        await super().on_start(services)
        if self._dimensions is None:
            self._dimensions = await self._infer_dimensions()
        await self.services.logging_service.info(
            f"VectorIndexManager initialized (collection: {self.collection_name}, "
            f"dimensions: {self._dimensions or 'unset'})"
        )

    @property
    def dimensions(self) -> int | None:
        return self._dimensions

    # -------------------------------------------------------------- #
    # Index Operations
    # -------------------------------------------------------------- #

    async def upsert(
        self, transcript_id: str, embedding: list[float], document: str, metadata: dict[str, Any]
    ) -> None:
        """
        Write or replace the embedding record for a transcript.

        Args:
            transcript_id: Business key of the record
            embedding: Vector of the index dimensionality
            document: Transcript text stored alongside the vector
            metadata: Flat map of str/int/float values (title, occurred_at, db_id)

        Raises:
            DimensionMismatchError: Vector length differs from the index
            UpstreamTimeoutError: The vector store did not answer in time
        """
        self._check_dimensions(len(embedding), step="index")

        collection = self._collection()
        await self._run(
            functools.partial(
                collection.upsert,
                ids=[transcript_id],
                embeddings=[embedding],
                documents=[document],
                metadatas=[metadata],
            ),
            step="index",
        )
        if self._dimensions is None:
            self._dimensions = len(embedding)

        await self.services.logging_service.debug(f"Upserted embedding for {transcript_id}")

    async def query(self, embedding: list[float], limit: int) -> list[VectorNeighbor]:
        """
        Nearest neighbours by L2 distance, closest first.

        Returns:
            At most `limit` neighbours; an empty list when the index is empty

        Raises:
            DimensionMismatchError: Query vector length differs from the index
            UpstreamTimeoutError: The vector store did not answer in time
        """
        collection = self._collection()
        count = await self._run(collection.count, step="query")
        if count == 0:
            return []

        self._check_dimensions(len(embedding), step="query")

        result = await self._run(
            functools.partial(
                collection.query,
                query_embeddings=[embedding],
                n_results=min(limit, count),
                include=["distances", "documents", "metadatas"],
            ),
            step="query",
        )

        ids = (result.get("ids") or [[]])[0]
        distances = (result.get("distances") or [[]])[0]
        documents = (result.get("documents") or [[None] * len(ids)])[0]
        metadatas = (result.get("metadatas") or [[None] * len(ids)])[0]

        return [
            VectorNeighbor(
                transcript_id=transcript_id,
                distance=float(distance),
                document=document,
                metadata=dict(metadata or {}),
            )
            for transcript_id, distance, document, metadata in zip(
                ids, distances, documents, metadatas
            )
        ]

    async def delete(self, transcript_id: str) -> None:
        collection = self._collection()
        await self._run(functools.partial(collection.delete, ids=[transcript_id]), step="delete")
        await self.services.logging_service.debug(f"Deleted embedding for {transcript_id}")

    async def exists(self, transcript_id: str) -> bool:
        collection = self._collection()
        result = await self._run(
            functools.partial(collection.get, ids=[transcript_id], include=["metadatas"]),
            step="get",
        )
        return bool(result.get("ids"))

    async def count(self) -> int:
        return await self._run(self._collection().count, step="count")

    # -------------------------------------------------------------- #
    # Helpers
    # -------------------------------------------------------------- #

    def _collection(self):
        return self.server.vector_db_client.get_or_create_collection(self.collection_name)

    def _check_dimensions(self, actual: int, step: str) -> None:
        if self._dimensions is not None and actual != self._dimensions:
            raise DimensionMismatchError(self._dimensions, actual, step=step)

    async def _infer_dimensions(self) -> int | None:
        """Learn the dimensionality from any record already stored."""
        collection = self._collection()
        result = await self._run(functools.partial(collection.peek, limit=1), step="startup")
        embeddings = result.get("embeddings")
        if embeddings is None or len(embeddings) == 0:
            return None
        return len(embeddings[0])

    async def _run(self, call, step: str):
        """Run a blocking Chroma call on the default executor with a timeout."""
        loop = asyncio.get_running_loop()
        try:
            return await asyncio.wait_for(
                loop.run_in_executor(None, call), timeout=self._timeout_ms / 1000
            )
        except asyncio.TimeoutError as e:
            await self.services.logging_service.error(
                f"Vector store {step} timed out after {self._timeout_ms}ms"
            )
            raise UpstreamTimeoutError(
                f"Vector store {step} timed out after {self._timeout_ms}ms", step=step
            ) from e

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from meeting_brain.context import Context

from meeting_brain.errors import ConsistencyGapError
from meeting_brain.schemas import validate_search_request
from meeting_brain.services.manager import Manager
from meeting_brain.utils import distance_to_similarity

# -------------------------------------------------------------- #
# Search Manager
# -------------------------------------------------------------- #


class SearchManager(Manager):
    """
    Semantic search over ingested transcripts.

    Nearest neighbours come from the vector index, full records from the
    relational store in one batched lookup. Neighbours with no relational
    row are logged as consistency gaps and left out of the results.
    """

    def __init__(self, context: Context):
        super().__init__(context)

    async def on_start(self, services):
        await super().on_start(services)
        await self.services.logging_service.info("SearchManager initialized")

    async def search(self, query: str, limit: int = 5) -> list[dict[str, Any]]:
        """
        Search transcripts by meaning.

        Args:
            query: Free-text query, must be non-empty
            limit: Maximum number of results (default 5)

        Returns:
            Transcripts with participants, topics and similarity_score, best match first

        Raises:
            ValidationError: Empty query or invalid limit
            ExtractionError / UpstreamTimeoutError: Query embedding failed
            DimensionMismatchError: Query vector length differs from the index
        """
        request = validate_search_request(query, limit)

        vector = await self.services.embedding_manager.embed(request.query)
        neighbors = await self.services.vector_index_manager.query(vector, request.limit)
        if not neighbors:
            await self.services.logging_service.debug(f"Search '{request.query}': index empty")
            return []

        hydrated = await self.services.transcript_sql_manager.hydrate(
            [neighbor.transcript_id for neighbor in neighbors]
        )

        results = []
        for neighbor in neighbors:
            record = hydrated.get(neighbor.transcript_id)
            if record is None:
                gap = ConsistencyGapError(
                    neighbor.transcript_id,
                    present_in="vector index",
                    missing_from="relational store",
                )
                await self.services.logging_service.warning(f"Dropping search hit: {gap.message}")
                continue

            results.append(
                {
                    "id": record["id"],
                    "transcript_id": record["transcript_id"],
                    "title": record["title"],
                    "occurred_at": record["occurred_at"],
                    "duration_minutes": record["duration_minutes"],
                    "sentiment": record["sentiment"],
                    "summary": record["summary"],
                    "transcript_text": record["transcript_text"],
                    "participants": record["participants"],
                    "topics": record["topics"],
                    "similarity_score": distance_to_similarity(neighbor.distance),
                }
            )

        # Stable: equal scores keep index order
        results.sort(key=lambda result: result["similarity_score"], reverse=True)

        await self.services.logging_service.info(
            f"Search '{request.query}' returned {len(results)} of {len(neighbors)} neighbours"
        )
        return results

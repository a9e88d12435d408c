from __future__ import annotations

import math
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from meeting_brain.context import Context
    from meeting_brain.services.manager import ServicesManager

from meeting_brain.errors import ExtractionError
from meeting_brain.services.manager import BaseEmbeddingServiceManager

# -------------------------------------------------------------- #
# Embedding Manager
# -------------------------------------------------------------- #


class EmbeddingManager(BaseEmbeddingServiceManager):
    """
    Embedding generator backed by the Ollama embedding endpoint.

    The same model is used for stored documents and for queries. The vector
    index rejects any vector whose length differs from what it already holds.
    """

    def __init__(self, context: Context, model: str | None = None):
        super().__init__(context)
        self._model = model

    async def on_start(self, services: ServicesManager) -> None:
        await super().on_start(services)
        await self.services.logging_service.info("Embedding Manager started")

    async def embed(self, text: str) -> list[float]:
        """
        Embed one text into a fixed-length vector.

        Args:
            text: Non-empty text

        Returns:
            Embedding vector

        Raises:
            ExtractionError: Empty input, failed call or non-finite values
            UpstreamTimeoutError: Embedding call timed out
        """
        if not text or not text.strip():
            raise ExtractionError("Cannot embed empty text", step="embed")

        vector = await self.services.ollama_request_manager.embed(
            text, model=self._model, step="embed"
        )

        if not all(math.isfinite(value) for value in vector):
            raise ExtractionError("Embedding contains non-finite values", step="embed")
        return vector

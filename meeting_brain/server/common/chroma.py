# ChromaDB vector index handler

import asyncio
import logging
from typing import Any

import chromadb
from chromadb.config import Settings

from meeting_brain.server.services import VectorDBDatabase
from meeting_brain.server.vector_db_collections import (
    DEFAULT_COLLECTION_METADATA,
    DEFAULT_VECTORDB_COLLECTIONS,
)

logger = logging.getLogger(__name__)


class ChromaDBClient(VectorDBDatabase):
    """
    ChromaDB handler for the transcript embedding index.

    Collections are created in L2 space with no embedding function attached:
    vectors are always computed by the pipeline, never by Chroma. Collection
    handles are cached per name for the lifetime of the connection.
    """

    def __init__(self, name: str = "chromadb", host: str = "localhost", port: int = 8000):
        super().__init__(name, client=None)
        self.host = host
        self.port = port

    def _build_client(self) -> Any:
        """Create the underlying Chroma client. Runs on a worker thread."""
        return chromadb.HttpClient(
            host=self.host,
            port=self.port,
            settings=Settings(anonymized_telemetry=False),
        )

    # -------------------------------------------------------------- #
    # Connection Management
    # -------------------------------------------------------------- #

    async def connect(self) -> None:
        # HttpClient contacts the server while it is constructed
        try:
            self.client = await asyncio.to_thread(self._build_client)
        except Exception as e:
            logger.error(f"[{self.name}] Could not reach ChromaDB at {self.host}:{self.port}: {e}")
            raise

        self._connected = True
        logger.info(f"[{self.name}] Connected to ChromaDB")

    async def disconnect(self) -> None:
        self._collections = {}
        self.client = None
        self._connected = False
        logger.info(f"[{self.name}] Disconnected from ChromaDB")

    async def health_check(self) -> bool:
        if not self.client:
            return False
        try:
            await asyncio.to_thread(self.client.heartbeat)
            return True
        except Exception as e:
            logger.error(f"[{self.name}] Heartbeat failed: {e}")
            return False

    # -------------------------------------------------------------- #
    # Collections
    # -------------------------------------------------------------- #

    async def create_default_collections(self) -> None:
        """Make sure every collection the pipeline writes to exists."""
        for collection_name in DEFAULT_VECTORDB_COLLECTIONS:
            await asyncio.to_thread(self.get_or_create_collection, collection_name)
            logger.info(f"[{self.name}] Collection ready: {collection_name}")

    async def collection_exists(self, name: str) -> bool:
        self._require_client()
        collections = await asyncio.to_thread(self.client.list_collections)
        # Older clients return Collection objects, newer ones return names
        return name in {getattr(collection, "name", collection) for collection in collections}

    def get_or_create_collection(self, name: str):
        """
        Cached collection handle, created in L2 space on first use.

        Args:
            name: Collection name

        Returns:
            Chroma Collection
        """
        self._require_client()
        if name not in self._collections:
            self._collections[name] = self.client.get_or_create_collection(
                name=name, metadata=DEFAULT_COLLECTION_METADATA, embedding_function=None
            )
        return self._collections[name]

    def _require_client(self) -> None:
        if not self.client:
            raise RuntimeError(f"[{self.name}] Not connected to ChromaDB")

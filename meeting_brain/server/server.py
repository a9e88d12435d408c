"""
Store connections for the pipeline.

The ServerManager owns the two stores every pipeline operation touches: the
relational store (transcripts and their linked entities) and the vector
index (one embedding per transcript). It connects them in order, prepares
their schema/collections, and tears them down in reverse.
"""

import logging
from typing import TYPE_CHECKING

from meeting_brain.server.services import BaseServerHandler, SQLDatabase, VectorDBDatabase

if TYPE_CHECKING:
    from meeting_brain.context import Context

logger = logging.getLogger(__name__)

# -------------------------------------------------------------- #
# Server Manager
# -------------------------------------------------------------- #


class ServerManager:
    """Connects, health-checks and disconnects the relational store and the vector index."""

    def __init__(
        self,
        context: "Context",
        sql_client: SQLDatabase,
        vector_db_client: VectorDBDatabase,
    ):
        self.context = context
        self._initialized = False
        self._sql_client = sql_client
        self._vector_db_client = vector_db_client

        # Connect order; disconnect runs in reverse
        self._servers: dict[str, BaseServerHandler] = {
            "sql": sql_client,
            "vector_db": vector_db_client,
        }

    # ------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------ #

    async def connect_all(self) -> None:
        """
        Connect every store and run its startup actions (tables, default collections).

        If one store fails, the stores already connected are disconnected again
        before the error propagates, so a half-started manager is never left behind.
        """
        connected: list[BaseServerHandler] = []
        logger.info(f"[ServerManager] Connecting stores: {', '.join(self._servers)}")

        try:
            for key, server in self._servers.items():
                await server.connect()
                connected.append(server)
                await server.on_startup()
                logger.info(f"[ServerManager] '{key}' ready ({server.name})")
        except Exception as e:
            logger.error(
                f"[ServerManager] Startup failed, rolling back {len(connected)} store(s): {e}"
            )
            for server in reversed(connected):
                await self._disconnect(server)
            raise

        self._initialized = True
        logger.info("[ServerManager] All stores connected")

    async def disconnect_all(self) -> None:
        """Disconnect every store in reverse connect order. Safe to call twice."""
        for server in reversed(list(self._servers.values())):
            await self._disconnect(server)

        self._initialized = False
        logger.info("[ServerManager] All stores disconnected")

    async def _disconnect(self, server: BaseServerHandler) -> None:
        try:
            await server.on_close()
            await server.disconnect()
        except Exception as e:
            logger.error(f"[ServerManager] Error disconnecting '{server.name}': {e}")

    # ------------------------------------------------------ #
    # Health
    # ------------------------------------------------------ #

    async def health_check_all(self) -> dict[str, bool]:
        """
        Check health of every store.

        Returns:
            {"sql": bool, "vector_db": bool}
        """
        return {key: await server.health_check() for key, server in self._servers.items()}

    def list_servers(self) -> list[str]:
        return list(self._servers)

    # ------------------------------------------------------ #
    # Properties
    # ------------------------------------------------------ #

    @property
    def sql_client(self) -> SQLDatabase:
        """Relational store holding transcripts, participants, topics and child rows."""
        return self._sql_client

    @property
    def vector_db_client(self) -> VectorDBDatabase:
        """Vector index holding one embedding record per transcript."""
        return self._vector_db_client

    @property
    def is_initialized(self) -> bool:
        return self._initialized

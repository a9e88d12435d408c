import contextlib
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from typing import Any

from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

# -------------------------------------------------------------- #
# Base Server Handler
# -------------------------------------------------------------- #


class BaseServerHandler(ABC):
    """Abstract base class for all server handlers."""

    def __init__(self, name: str):
        self.name = name
        self._connected = False

    # -------------------------------------------------------------- #
    # Handler Methods
    # -------------------------------------------------------------- #

    async def on_startup(self) -> None:
        """Actions to perform on server startup."""
        pass

    async def on_close(self) -> None:
        """Actions to perform on server close."""
        pass

    # -------------------------------------------------------------- #
    # Abstract Methods
    # -------------------------------------------------------------- #

    @abstractmethod
    async def connect(self) -> None:
        """Establish connection to the server."""
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        """Close connection to the server."""
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """Check if the server is healthy and responding."""
        pass

    @property
    def is_connected(self) -> bool:
        """Check if currently connected to the server."""
        return self._connected


# -------------------------------------------------------------- #
# Base Service Structures
# -------------------------------------------------------------- #


# SQL Transaction Scope


class SQLTransaction:
    """A unit of work bound to one connection. Commits or rolls back as a whole."""

    def __init__(self, connection: AsyncConnection):
        self._connection = connection

    async def execute(self, stmt) -> list[dict[str, Any]]:
        """
        Execute a SQLAlchemy statement inside the transaction.

        Args:
            stmt: SQLAlchemy statement object (select, insert, update, delete)

        Returns:
            List of result rows as dictionaries (empty list when nothing is returned)
        """
        result = await self._connection.execute(stmt)
        if not result.returns_rows:
            return []
        return [dict(row) for row in result.mappings().all()]


# Base SQL Database Handler


class SQLDatabase(BaseServerHandler):
    """SQL Database server handler backed by a SQLAlchemy async engine."""

    def __init__(self, name: str, connection_string: str):
        super().__init__(name)
        self.connection_string = connection_string
        self.engine: AsyncEngine | None = None

    # -------------------------------------------------------------- #
    # Handler Methods
    # -------------------------------------------------------------- #

    async def on_startup(self) -> None:
        await self.create_tables()

    # ------------------------------------------------------ #
    # Utils
    # ------------------------------------------------------ #

    @abstractmethod
    async def create_tables(self) -> None:
        """Create database tables from models."""
        pass

    @abstractmethod
    def insert(self, model):
        """
        Build a dialect-specific INSERT for a model.

        The returned statement supports on_conflict_do_update / on_conflict_do_nothing.

        Args:
            model: Declarative model class

        Returns:
            Dialect insert statement
        """
        pass

    def _serialize(self) -> contextlib.AbstractAsyncContextManager:
        """Guard wrapped around every transaction. No-op unless a backend needs it."""
        return contextlib.nullcontext()

    @contextlib.asynccontextmanager
    async def transaction(self) -> AsyncIterator[SQLTransaction]:
        """
        Open a transaction scope.

        Commits when the block exits normally and rolls back on any exception.

        Yields:
            SQLTransaction with the same execute() contract as the handler
        """
        if self.engine is None:
            raise RuntimeError(f"[{self.name}] Not connected")

        async with self._serialize():
            async with self.engine.begin() as connection:
                yield SQLTransaction(connection)

    async def execute(self, stmt) -> list[dict[str, Any]]:
        """
        Execute a SQLAlchemy statement in its own transaction and return results.

        Args:
            stmt: SQLAlchemy statement object (select, insert, update, delete)

        Returns:
            List of result rows as dictionaries (empty list for non-SELECT queries)
        """
        async with self.transaction() as tx:
            return await tx.execute(stmt)


# VectorDB Database Handler


class VectorDBDatabase(BaseServerHandler):
    """VectorDB Database server handler."""

    def __init__(self, name: str, client: Any):
        super().__init__(name)
        self.client = client
        self._collections: dict[str, Any] = {}

    # -------------------------------------------------------------- #
    # Handler Methods
    # -------------------------------------------------------------- #

    async def on_startup(self) -> None:
        """Actions to perform on server startup - create default collections."""
        await self.create_default_collections()

    # ------------------------------------------------------ #
    # Utils
    # ------------------------------------------------------ #

    @abstractmethod
    async def create_default_collections(self) -> None:
        """Create default collections that must exist on startup."""
        pass

    @abstractmethod
    async def collection_exists(self, name: str) -> bool:
        """
        Check if a collection exists.

        Args:
            name: Collection name

        Returns:
            True if collection exists, False otherwise
        """
        pass

    @abstractmethod
    def get_or_create_collection(self, name: str):
        """
        Get or create a collection (synchronous client call).

        Args:
            name: Collection name

        Returns:
            Collection instance
        """
        pass

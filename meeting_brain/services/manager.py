from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from meeting_brain.context import Context


# -------------------------------------------------------------- #
# Services Manager Class
# -------------------------------------------------------------- #


class ServicesManager:
    """Manager for handling multiple service instances."""

    def __init__(
        self,
        context: Context,
        logging_service: BaseAsyncLoggingService,
        ollama_request_manager: Any | None = None,
        extraction_manager: BaseExtractionServiceManager | None = None,
        embedding_manager: BaseEmbeddingServiceManager | None = None,
        transcript_sql_manager: Any | None = None,
        vector_index_manager: Any | None = None,
        ingestion_manager: Any | None = None,
        search_manager: Any | None = None,
    ):
        self.context = context
        self.server = context.server_manager

        self.logging_service = logging_service

        # Language model adapters
        self.ollama_request_manager = ollama_request_manager
        self.extraction_manager = extraction_manager
        self.embedding_manager = embedding_manager

        # Store access layers
        self.transcript_sql_manager = transcript_sql_manager
        self.vector_index_manager = vector_index_manager

        # Orchestrators
        self.ingestion_manager = ingestion_manager
        self.search_manager = search_manager

    def _ordered_managers(self) -> list[Manager]:
        """Service managers in dependency order, leaves first."""
        managers = [
            self.ollama_request_manager,
            self.extraction_manager,
            self.embedding_manager,
            self.transcript_sql_manager,
            self.vector_index_manager,
            self.ingestion_manager,
            self.search_manager,
        ]
        return [manager for manager in managers if manager is not None]

    async def initialize_all(self) -> None:
        """Initialize all service managers."""

        # Logging
        await self.logging_service.on_start(self)

        for manager in self._ordered_managers():
            await manager.on_start(self)

    async def shutdown_all(self, timeout: float = 30.0) -> None:
        """
        Gracefully shutdown all service managers.

        Orchestrators stop first, then the adapters and store access layers, then
        the servers are disconnected. Logging is flushed last, even on errors.

        Args:
            timeout: Maximum time in seconds to wait for each phase (default: 30s)
        """
        await self.logging_service.info("=" * 60)
        await self.logging_service.info("Starting graceful shutdown of all services...")

        if self.context:
            self.context.mark_shutdown_started()
            await self.logging_service.info("✓ Shutdown flag set - no new operations will start")

        try:
            # Phase 1: Orchestrators
            await self.logging_service.info("Phase 1: Stopping orchestrators...")
            for manager in (self.search_manager, self.ingestion_manager):
                if manager:
                    await asyncio.wait_for(manager.on_close(), timeout=timeout)
            await self.logging_service.info("✓ Orchestrators stopped")

            # Phase 2: Adapters and store access layers
            await self.logging_service.info("Phase 2: Closing adapters and store access...")
            adapters = [
                self.vector_index_manager,
                self.transcript_sql_manager,
                self.embedding_manager,
                self.extraction_manager,
                self.ollama_request_manager,
            ]
            for manager in adapters:
                if manager:
                    await asyncio.wait_for(manager.on_close(), timeout=timeout)
            await self.logging_service.info("✓ Adapters closed")

            # Phase 3: Disconnect from all servers (SQL, Vector DB)
            await self.logging_service.info("Phase 3: Disconnecting from all servers...")
            if self.context and self.context.server_manager:
                await self.context.server_manager.disconnect_all()
                await self.logging_service.info("✓ All servers disconnected")

            await self.logging_service.info("✓ Graceful shutdown completed successfully")
            await self.logging_service.info("=" * 60)

        except asyncio.TimeoutError:
            await self.logging_service.error(
                f"⚠️  Shutdown timeout exceeded ({timeout}s) - forcing shutdown"
            )
        except Exception as e:
            await self.logging_service.error(f"⚠️  Error during shutdown: {e}")
            await asyncio.sleep(0.1)

        # Phase 4: Always flush and close logging
        try:
            await asyncio.wait_for(self.logging_service.on_close(), timeout=5.0)
        except asyncio.TimeoutError:
            pass


# -------------------------------------------------------------- #
# Base Service Manager Class
# -------------------------------------------------------------- #


class Manager(ABC):
    """Base class for all manager services."""

    def __init__(self, context: Context):
        self.context = context
        self.server = context.server_manager
        self.services = None

        # check if server has been initialized
        if self.server is not None and not self.server.is_initialized:
            raise RuntimeError(
                "ServerManager must be initialized before creating Manager instances."
            )

    # -------------------------------------------------------------- #
    # Manager Methods
    # -------------------------------------------------------------- #

    async def on_start(self, services: ServicesManager) -> None:
        """Actions to perform on manager start."""
        self.services = services

    async def on_close(self) -> None:
        """Actions to perform on manager close."""
        pass


# -------------------------------------------------------------- #
# Specialized Manager Classes
# -------------------------------------------------------------- #


class BaseAsyncLoggingService(Manager):
    """Specialized manager for asynchronous logging services."""

    def __init__(self, context):
        super().__init__(context)

    @abstractmethod
    async def log(self, message: str, level: str = "INFO") -> None:
        """Log a message asynchronously."""
        pass

    @abstractmethod
    async def debug(self, message: str) -> None:
        """Log a debug message asynchronously."""
        pass

    @abstractmethod
    async def info(self, message: str) -> None:
        """Log an info message asynchronously."""
        pass

    @abstractmethod
    async def warning(self, message: str) -> None:
        """Log a warning message asynchronously."""
        pass

    @abstractmethod
    async def error(self, message: str) -> None:
        """Log an error message asynchronously."""
        pass

    @abstractmethod
    async def critical(self, message: str) -> None:
        """Log a critical message asynchronously."""
        pass


class BaseExtractionServiceManager(Manager):
    """Specialized manager deriving structured facts from transcript text."""

    def __init__(self, context):
        super().__init__(context)

    @abstractmethod
    async def extract(self, transcript_text: str) -> dict[str, Any]:
        """Extract topics, action items, decisions and sentiment."""
        pass

    @abstractmethod
    async def summarize(self, transcript_text: str) -> str:
        """Produce a 2-3 sentence synopsis."""
        pass

    @abstractmethod
    async def derive_insights(self, transcript_text: str) -> list[str]:
        """Produce 3-5 strategic observations."""
        pass


class BaseEmbeddingServiceManager(Manager):
    """Specialized manager turning text into fixed-length vectors."""

    def __init__(self, context):
        super().__init__(context)

    @abstractmethod
    async def embed(self, text: str) -> list[float]:
        """Embed one text into a vector."""
        pass

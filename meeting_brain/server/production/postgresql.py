"""
PostgreSQL handler for the relational store.

Queries go through a SQLAlchemy async engine on the asyncpg driver. Upserts
use PostgreSQL's INSERT ... ON CONFLICT, exposed through `insert()`.
"""

import logging

from sqlalchemy import URL, text
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.ext.asyncio import create_async_engine

from meeting_brain.server.db_models import SQL_DATABASE_MODELS
from meeting_brain.server.services import SQLDatabase
from meeting_brain.server.sql_models import Base

logger = logging.getLogger(__name__)

POOL_SIZE = 10
COMMAND_TIMEOUT_SECONDS = 60


class PostgreSQLServer(SQLDatabase):
    """Pooled PostgreSQL connection for transcripts and their linked entities."""

    def __init__(
        self,
        name: str = "postgresql",
        host: str = "localhost",
        port: int = 5432,
        user: str = "postgres",
        password: str = "",
        database: str = "postgres",
        connection_string: str | None = None,
    ):
        """
        Args:
            name: Handler name used in log lines
            host, port, user, password, database: Connection parts
            connection_string: Full SQLAlchemy URL; overrides the parts
        """
        if connection_string is None:
            # URL.create escapes special characters in the password
            connection_string = URL.create(
                "postgresql+asyncpg",
                username=user,
                password=password or None,
                host=host,
                port=port,
                database=database,
            ).render_as_string(hide_password=False)

        super().__init__(name, connection_string)

    # -------------------------------------------------------------- #
    # Connection Management
    # -------------------------------------------------------------- #

    async def connect(self) -> None:
        self.engine = create_async_engine(
            self.connection_string,
            pool_size=POOL_SIZE,
            max_overflow=0,
            pool_pre_ping=True,
            connect_args={"command_timeout": COMMAND_TIMEOUT_SECONDS},
        )
        try:
            async with self.engine.connect() as connection:
                await connection.execute(text("SELECT 1"))
        except Exception as e:
            logger.error(f"[{self.name}] Failed to connect: {e}")
            await self.engine.dispose()
            self.engine = None
            raise

        self._connected = True
        logger.info(f"[{self.name}] Connected (pool size {POOL_SIZE})")

    async def disconnect(self) -> None:
        if self.engine:
            await self.engine.dispose()
            self.engine = None
        self._connected = False
        logger.info(f"[{self.name}] Disconnected")

    async def health_check(self) -> bool:
        if not self.engine:
            return False
        try:
            async with self.engine.connect() as connection:
                return await connection.scalar(text("SELECT 1")) == 1
        except Exception as e:
            logger.error(f"[{self.name}] Health check error: {e}")
            return False

    # -------------------------------------------------------------- #
    # Schema and Query Building
    # -------------------------------------------------------------- #

    async def create_tables(self) -> None:
        """Create any missing pipeline table. Existing tables are left untouched."""
        tables = [model.__table__ for model in SQL_DATABASE_MODELS]
        async with self.engine.begin() as connection:
            await connection.run_sync(Base.metadata.create_all, tables=tables, checkfirst=True)
        logger.info(f"[{self.name}] Tables ready: {', '.join(table.name for table in tables)}")

    def insert(self, model):
        return postgresql_insert(model)

"""
Constructor for the production ServerManager: PostgreSQL and a ChromaDB server.

Connection settings come from the environment (optionally seeded from .env.local).
"""

import os
from typing import TYPE_CHECKING

from dotenv import load_dotenv

if TYPE_CHECKING:
    from meeting_brain.context import Context

from meeting_brain.server.common.chroma import ChromaDBClient
from meeting_brain.server.production.postgresql import PostgreSQLServer
from meeting_brain.server.server import ServerManager

load_dotenv(dotenv_path=".env.local")

REQUIRED_POSTGRES_VARIABLES = ("POSTGRES_HOST", "POSTGRES_USER", "POSTGRES_DB")


def load_sql_client() -> PostgreSQLServer:
    """
    PostgreSQL handler from DATABASE_URL, or from the POSTGRES_* variables.

    Raises:
        ValueError: Neither DATABASE_URL nor the required POSTGRES_* variables are set
    """
    database_url = os.getenv("DATABASE_URL")
    if database_url:
        # The async engine needs the asyncpg driver in the URL
        for prefix in ("postgresql://", "postgres://"):
            if database_url.startswith(prefix):
                database_url = "postgresql+asyncpg://" + database_url[len(prefix) :]
        return PostgreSQLServer(connection_string=database_url)

    missing = [name for name in REQUIRED_POSTGRES_VARIABLES if not os.getenv(name)]
    if missing:
        raise ValueError(f"Set DATABASE_URL or the missing variables: {', '.join(missing)}")

    return PostgreSQLServer(
        host=os.environ["POSTGRES_HOST"],
        port=int(os.getenv("POSTGRES_PORT", "5432")),
        user=os.environ["POSTGRES_USER"],
        password=os.getenv("POSTGRES_PASSWORD", ""),
        database=os.environ["POSTGRES_DB"],
    )


def load_vectordb_client() -> ChromaDBClient:
    return ChromaDBClient(
        name="chromadb",
        host=os.getenv("CHROMADB_HOST", "localhost"),
        port=int(os.getenv("CHROMADB_PORT", "8000")),
    )


def construct_server_manager(context: "Context") -> ServerManager:
    return ServerManager(
        context=context,
        sql_client=load_sql_client(),
        vector_db_client=load_vectordb_client(),
    )

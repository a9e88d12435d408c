"""Meeting transcript ingestion and semantic search pipeline."""

__version__ = "0.1.0"

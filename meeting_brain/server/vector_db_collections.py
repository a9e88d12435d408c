import os

from dotenv import load_dotenv

load_dotenv(dotenv_path=".env.local")

# Collection holding one embedding record per transcript, keyed by transcript_id
TRANSCRIPT_EMBEDDINGS_COLLECTION = os.getenv("CHROMADB_COLLECTION", "transcript_embeddings")

# Static collections that are pre-initialized
DEFAULT_VECTORDB_COLLECTIONS = [TRANSCRIPT_EMBEDDINGS_COLLECTION]

# L2 space keeps returned distances non-negative
DEFAULT_COLLECTION_METADATA = {"hnsw:space": "l2"}

"""
Configuration for the vision/product linking service.
Environment variables with defaults; accessor functions re-read the environment where it must stay dynamic.
"""

import os
from pathlib import Path

# Database path configuration
DB_PATH = os.getenv("DB_PATH", "./data/visionlink.db")

# Vector system configuration
VECTOR_PROVIDER = os.getenv("VECTOR_PROVIDER", "memory")  # memory|faiss
EMBED_PROVIDER = os.getenv("EMBED_PROVIDER", "hash")  # hash|sentence_transformers
EMBED_MODEL_NAME = os.getenv("EMBED_MODEL_NAME", "all-mpnet-base-v2")
EMBED_DIM = int(os.getenv("EMBED_DIM", "384"))
# Where the faiss provider keeps one index file set per sub-index
FAISS_INDEX_DIR = os.getenv("FAISS_INDEX_DIR", "./data/faiss")

# Index lag handling for vision -> product linking
INDEX_RETRY_ATTEMPTS = int(os.getenv("INDEX_RETRY_ATTEMPTS", "5"))
INDEX_RETRY_BACKOFF_SEC = float(os.getenv("INDEX_RETRY_BACKOFF_SEC", "2"))

VALID_VECTOR_PROVIDERS = ["memory", "faiss"]
VALID_EMBED_PROVIDERS = ["hash", "sentence_transformers"]


def get_db_path():
    """Get the database path, honouring DB_PATH overrides made after import."""
    return os.getenv("DB_PATH", DB_PATH)


def debug_enabled():
    """Check if debug mode is enabled."""
    return os.getenv("DEBUG", "true").lower() == "true"


def ensure_db_directory(db_path: str = None):
    """Ensure the database directory exists."""
    Path(db_path or get_db_path()).parent.mkdir(parents=True, exist_ok=True)


def get_faiss_index_dir():
    return os.getenv("FAISS_INDEX_DIR", FAISS_INDEX_DIR)


def get_retry_delays():
    """Delays slept between empty index searches: 2s, 4s, 6s, 8s by default."""
    attempts = int(os.getenv("INDEX_RETRY_ATTEMPTS", str(INDEX_RETRY_ATTEMPTS)))
    backoff = float(os.getenv("INDEX_RETRY_BACKOFF_SEC", str(INDEX_RETRY_BACKOFF_SEC)))
    return [attempt * backoff for attempt in range(1, max(attempts, 1))]


def get_vector_store(dimension: int = None, name: str = None):
    """Get configured vector store implementation for one sub-index.

    With the faiss provider a named store persists under FAISS_INDEX_DIR.
    """
    provider = os.getenv("VECTOR_PROVIDER", VECTOR_PROVIDER)
    if dimension is None:
        dimension = int(os.getenv("EMBED_DIM", str(EMBED_DIM)))

    if provider == "faiss":
        from src.vector.faiss_store import FaissVectorStore
        index_path = os.path.join(get_faiss_index_dir(), name) if name else None
        return FaissVectorStore(dimension=dimension, index_path=index_path)
    else:
        # Default to memory store for unknown providers
        from src.vector.index import SimpleInMemoryVectorStore
        return SimpleInMemoryVectorStore()


def get_embedding_provider():
    """Get configured embedding provider implementation."""
    provider = os.getenv("EMBED_PROVIDER", EMBED_PROVIDER)

    if provider == "sentence_transformers":
        from src.vector.embeddings import SentenceTransformerEmbedding
        return SentenceTransformerEmbedding(os.getenv("EMBED_MODEL_NAME", EMBED_MODEL_NAME))
    else:
        from src.vector.embeddings import DeterministicHashEmbedding
        return DeterministicHashEmbedding(dimension=int(os.getenv("EMBED_DIM", str(EMBED_DIM))))


def get_embedding_index():
    """Build an embedding index with one vector store per sub-index."""
    from src.vector.embedding_index import EmbeddingIndex, SUBINDEXES
    provider = get_embedding_provider()
    if os.getenv("VECTOR_PROVIDER", VECTOR_PROVIDER) == "faiss":
        # FAISS needs the provider's real dimension (768 for all-mpnet-base-v2)
        dimension = provider.get_dimension()
        return EmbeddingIndex(provider, stores={name: get_vector_store(dimension, name) for name in SUBINDEXES})
    return EmbeddingIndex(provider, store_factory=get_vector_store)


def get_document_store():
    """Build the SQLite-backed document store at the configured path."""
    from src.core.dao import DocumentStore
    return DocumentStore(get_db_path())


def validate_config():
    """Validate configuration and return any issues."""
    issues = []

    provider = os.getenv("VECTOR_PROVIDER", VECTOR_PROVIDER)
    if provider not in VALID_VECTOR_PROVIDERS:
        issues.append(f"Invalid VECTOR_PROVIDER: {provider}")

    embed_provider = os.getenv("EMBED_PROVIDER", EMBED_PROVIDER)
    if embed_provider not in VALID_EMBED_PROVIDERS:
        issues.append(f"Invalid EMBED_PROVIDER: {embed_provider}")

    if int(os.getenv("EMBED_DIM", str(EMBED_DIM))) < 1:
        issues.append("EMBED_DIM must be >= 1")

    if int(os.getenv("INDEX_RETRY_ATTEMPTS", str(INDEX_RETRY_ATTEMPTS))) < 1:
        issues.append("INDEX_RETRY_ATTEMPTS must be >= 1")

    if float(os.getenv("INDEX_RETRY_BACKOFF_SEC", str(INDEX_RETRY_BACKOFF_SEC))) < 0:
        issues.append("INDEX_RETRY_BACKOFF_SEC must be >= 0")

    return issues

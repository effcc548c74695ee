"""
Embedding index with named sub-indexes ("visions", "products").
Wraps an embedding provider and one vector store per sub-index behind a single seam.
"""

from typing import Callable, Dict, List, Optional
import numpy as np

from .embeddings import IEmbeddingProvider
from .index import IVectorStore
from .types import VectorRecord, QueryResult
from ..core.errors import IndexUnavailableError
from util.logging import logger

SUBINDEXES = ("visions", "products")


class EmbeddingIndex:
    """
    Text -> embedding, embedding -> nearest neighbours, scoped to a sub-index.

    Provider and store failures surface as IndexUnavailableError so callers
    can fail open with a single except clause.
    """

    def __init__(self, embedding_provider: IEmbeddingProvider,
                 store_factory: Callable[[], IVectorStore] = None,
                 stores: Optional[Dict[str, IVectorStore]] = None):
        self.embedding_provider = embedding_provider
        if stores is None:
            if store_factory is None:
                from .index import SimpleInMemoryVectorStore
                store_factory = SimpleInMemoryVectorStore
            stores = {name: store_factory() for name in SUBINDEXES}
        self.stores = stores

    def _store(self, subindex: str) -> IVectorStore:
        if subindex not in self.stores:
            raise ValueError(f"Unknown sub-index: {subindex}")
        return self.stores[subindex]

    def embed(self, text: str) -> np.ndarray:
        """Generate the embedding for a piece of text."""
        try:
            return np.asarray(self.embedding_provider.embed_text(text), dtype=np.float32)
        except Exception as e:
            raise IndexUnavailableError(f"Embedding failed: {e}") from e

    def query(self, subindex: str, vector: np.ndarray, k: int) -> List[QueryResult]:
        """Nearest neighbours of a vector in one sub-index, best match first."""
        store = self._store(subindex)
        try:
            return store.search(vector, top_k=k)
        except Exception as e:
            raise IndexUnavailableError(f"Search in '{subindex}' failed: {e}") from e

    def search_text(self, subindex: str, text: str, k: int) -> List[QueryResult]:
        """Embed text and query one sub-index."""
        return self.query(subindex, self.embed(text), k)

    def upsert(self, subindex: str, record_id: str, vector: np.ndarray, text: str, metadata: Dict[str, object] = None) -> str:
        """Store or replace the vector for a document; returns the vector id."""
        store = self._store(subindex)
        record_metadata = {"description": text[:100] + ("..." if len(text) > 100 else "")}
        if metadata:
            record_metadata.update(metadata)

        try:
            store.add(VectorRecord(id=record_id, vector=np.asarray(vector, dtype=np.float32), metadata=record_metadata))
        except Exception as e:
            raise IndexUnavailableError(f"Upsert into '{subindex}' failed: {e}") from e

        logger.log_vector_operation("upserted", record_id, {
            "subindex": subindex,
            "provider": store.__class__.__name__,
            "dimension": len(vector)
        })
        return record_id

    def delete(self, subindex: str, record_id: str) -> None:
        """Remove a document's vector from a sub-index."""
        store = self._store(subindex)
        try:
            store.delete(record_id)
        except Exception as e:
            raise IndexUnavailableError(f"Delete from '{subindex}' failed: {e}") from e

        logger.log_vector_operation("deleted", record_id, {"subindex": subindex})

    def count(self, subindex: str) -> int:
        return self._store(subindex).count()

    def clear(self, subindex: str) -> None:
        store = self._store(subindex)
        try:
            store.clear()
        except Exception as e:
            raise IndexUnavailableError(f"Clear of '{subindex}' failed: {e}") from e

"""
FAISS-backed vector store.
IndexFlatL2 wrapped in IndexIDMap so records can be replaced and removed by id.
With an ``index_path`` the index and its id maps are written to disk after
every change and reloaded on start.
"""

import os
import pickle
from typing import Dict, List
import faiss
import numpy as np

from .types import VectorRecord, QueryResult
from .index import IVectorStore, normalize
from util.logging import logger


class FaissVectorStore(IVectorStore):
    """FAISS-backed implementation of IVectorStore."""

    def __init__(self, dimension: int = 384, index_path: str = None):
        """
        Initialize FAISS vector store.

        Args:
            dimension: Dimension of the vectors (default: 384 for hash embeddings)
            index_path: Optional file prefix; ``<prefix>.index`` holds the FAISS
                index and ``<prefix>.ids.pkl`` the document id maps
        """
        self.dimension = dimension
        self.index_path = index_path

        # Flat L2 index returns squared Euclidean distances
        self.index = faiss.IndexIDMap(faiss.IndexFlatL2(dimension))

        # FAISS ids are int64; keep a mapping to document ids
        self.id_to_vector_index: Dict[str, int] = {}
        self.vector_id_map: Dict[int, str] = {}
        self.id_to_metadata: Dict[str, Dict[str, object]] = {}
        self.next_vector_index = 0

        if index_path:
            self._load_index()

    @property
    def index_file(self) -> str:
        return f"{self.index_path}.index"

    @property
    def ids_file(self) -> str:
        return f"{self.index_path}.ids.pkl"

    def _load_index(self):
        """Load a previously saved index and id maps, if both exist."""
        if not (os.path.exists(self.index_file) and os.path.exists(self.ids_file)):
            return

        try:
            index = faiss.read_index(self.index_file)
            with open(self.ids_file, 'rb') as f:
                saved = pickle.load(f)
        except Exception as e:
            logger.warning(f"Failed to load FAISS index from {self.index_file}, starting empty: {e}")
            return

        if index.d != self.dimension:
            logger.warning(f"Ignoring FAISS index {self.index_file}: dimension {index.d} != {self.dimension}")
            return

        self.index = index
        self.id_to_vector_index = saved["id_to_vector_index"]
        self.id_to_metadata = saved["id_to_metadata"]
        self.next_vector_index = saved["next_vector_index"]
        self.vector_id_map = {v: k for k, v in self.id_to_vector_index.items()}
        logger.log_vector_operation("loaded", self.index_path, {"count": self.count()})

    def _save_index(self):
        """Write the index and id maps to disk."""
        if not self.index_path:
            return

        os.makedirs(os.path.dirname(os.path.abspath(self.index_file)), exist_ok=True)
        faiss.write_index(self.index, self.index_file)
        with open(self.ids_file, 'wb') as f:
            pickle.dump({
                "id_to_vector_index": self.id_to_vector_index,
                "id_to_metadata": self.id_to_metadata,
                "next_vector_index": self.next_vector_index,
            }, f)

    def _prepare(self, record: VectorRecord):
        if record.vector is None or len(record.vector) == 0:
            return None

        # Check dimension match and normalize vector for distance comparisons
        if len(record.vector) != self.dimension:
            raise ValueError(f"Vector dimension {len(record.vector)} does not match expected dimension {self.dimension}")

        normalized = normalize(record.vector)
        if not normalized.any():  # Zero vectors cannot be compared
            return None
        return normalized.astype(np.float32)

    def add(self, record: VectorRecord) -> None:
        """Add or replace a single vector record."""
        vector_array = self._prepare(record)
        if vector_array is None:
            return

        self._remove(record.id)

        vector_index = self.next_vector_index
        self.index.add_with_ids(vector_array.reshape(1, -1), np.array([vector_index], dtype=np.int64))

        self.id_to_vector_index[record.id] = vector_index
        self.vector_id_map[vector_index] = record.id
        self.id_to_metadata[record.id] = record.metadata
        self.next_vector_index += 1
        self._save_index()

    def batch_add(self, records: List[VectorRecord]) -> None:
        """Add multiple vector records to the FAISS store."""
        for record in records:
            self.add(record)

    def search(self, query_vector: np.ndarray, top_k: int = 5) -> List[QueryResult]:
        """Search for nearest vectors and return results ordered by distance."""
        if not self.index.ntotal or top_k <= 0:
            return []

        normalized_query = normalize(query_vector)
        if not normalized_query.any():
            return []

        query_array = normalized_query.astype(np.float32).reshape(1, -1)
        distances, indices = self.index.search(query_array, min(top_k, self.index.ntotal))

        query_results = []
        for distance, vector_index in zip(distances[0], indices[0]):
            record_id = self.vector_id_map.get(int(vector_index))
            if record_id is None:
                continue
            query_results.append(QueryResult(
                id=record_id,
                distance=float(distance),
                metadata=self.id_to_metadata.get(record_id, {})
            ))

        return query_results

    def _remove(self, record_id: str) -> bool:
        vector_index = self.id_to_vector_index.pop(record_id, None)
        if vector_index is None:
            return False

        self.index.remove_ids(np.array([vector_index], dtype=np.int64))
        self.vector_id_map.pop(vector_index, None)
        self.id_to_metadata.pop(record_id, None)
        return True

    def delete(self, record_id: str) -> None:
        """Delete a vector record by ID."""
        if self._remove(record_id):
            self._save_index()

    def clear(self) -> None:
        """Clear all records from the FAISS store."""
        self.index = faiss.IndexIDMap(faiss.IndexFlatL2(self.dimension))
        self.id_to_vector_index.clear()
        self.vector_id_map.clear()
        self.id_to_metadata.clear()
        self.next_vector_index = 0
        self._save_index()

    def count(self) -> int:
        return int(self.index.ntotal)

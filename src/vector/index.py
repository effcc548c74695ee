"""
Vector store interface and the in-memory implementation.
Distances are squared Euclidean over unit-normalised vectors, best match first.
"""

from abc import ABC, abstractmethod
from typing import List
import numpy as np

from .types import VectorRecord, QueryResult


def normalize(vector) -> np.ndarray:
    """Return the vector scaled to unit length (zero vectors are returned unchanged)."""
    array = np.asarray(vector, dtype=np.float32)
    norm = np.linalg.norm(array)
    if norm == 0:
        return array
    return array / norm


class IVectorStore(ABC):
    """Abstract interface for vector storage operations."""

    @abstractmethod
    def add(self, record: VectorRecord) -> None:
        """Add or replace a single vector record."""
        pass

    @abstractmethod
    def batch_add(self, records: List[VectorRecord]) -> None:
        """Add multiple vector records to the store."""
        pass

    @abstractmethod
    def search(self, query_vector: np.ndarray, top_k: int = 5) -> List[QueryResult]:
        """Search for nearest vectors and return results ordered by distance."""
        pass

    @abstractmethod
    def delete(self, record_id: str) -> None:
        """Delete a vector record by ID."""
        pass

    @abstractmethod
    def clear(self) -> None:
        """Clear all records from the store."""
        pass

    @abstractmethod
    def count(self) -> int:
        """Number of records currently searchable."""
        pass


class SimpleInMemoryVectorStore(IVectorStore):
    """Simple in-memory implementation of IVectorStore using exhaustive squared-L2 search."""

    def __init__(self):
        self._vectors = {}  # record_id -> VectorRecord
        self._index = {}    # record_id -> normalized_vector

    def add(self, record: VectorRecord) -> None:
        """Add or replace a single vector record."""
        if record.vector is None or len(record.vector) == 0:
            return

        normalized = normalize(record.vector)
        if not normalized.any():
            # Zero vectors cannot be compared
            return

        self._vectors[record.id] = record
        self._index[record.id] = normalized

    def batch_add(self, records: List[VectorRecord]) -> None:
        """Add multiple vector records to the store."""
        for record in records:
            self.add(record)

    def search(self, query_vector: np.ndarray, top_k: int = 5) -> List[QueryResult]:
        """Search for nearest vectors and return results ordered by distance."""
        if not self._index or top_k <= 0:
            return []

        normalized_query = normalize(query_vector)
        if not normalized_query.any():
            return []

        distances = {}
        for record_id, stored_vector in self._index.items():
            diff = normalized_query - stored_vector
            distances[record_id] = float(np.dot(diff, diff))

        # Sort by distance (ascending); record id keeps equal distances deterministic
        sorted_results = sorted(distances.items(), key=lambda x: (x[1], x[0]))

        return [
            QueryResult(
                id=record_id,
                distance=distance,
                metadata=self._vectors[record_id].metadata
            )
            for record_id, distance in sorted_results[:top_k]
        ]

    def delete(self, record_id: str) -> None:
        """Delete a vector record by ID."""
        self._vectors.pop(record_id, None)
        self._index.pop(record_id, None)

    def clear(self) -> None:
        """Clear all records from the store."""
        self._vectors.clear()
        self._index.clear()

    def count(self) -> int:
        return len(self._index)

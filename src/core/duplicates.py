"""
Duplicate detection run before a vision is created.
"""

from typing import Optional
import numpy as np

from .dao import DocumentStore
from .errors import IndexUnavailableError
from .schema import Vision, DuplicateMatch
from .scoring import score, is_duplicate
from ..vector.embedding_index import EmbeddingIndex
from util.logging import logger

DUPLICATE_CANDIDATES = 5


class DuplicateGuard:
    """Finds an existing vision by the same owner that a new vision would repeat."""

    def __init__(self, store: DocumentStore, index: EmbeddingIndex):
        self.store = store
        self.index = index

    def find_semantic_duplicate(self, description: str, user_id: str,
                                vector: Optional[np.ndarray] = None) -> Optional[DuplicateMatch]:
        """
        Check the nearest existing vision (any owner) against the new description.

        Only the best of the candidates is considered. It counts as a duplicate
        when its similarity is above the duplicate threshold and the document
        still exists and belongs to ``user_id``. Index failures are logged and
        treated as "no duplicate".
        """
        try:
            if vector is None:
                vector = self.index.embed(description)
            results = self.index.query("visions", vector, DUPLICATE_CANDIDATES)
        except IndexUnavailableError as e:
            logger.warning(f"Duplicate detection skipped, index unavailable: {e}")
            return None

        if not results:
            return None

        best = results[0]
        similarity = score(best.distance)
        if not is_duplicate(similarity):
            return None

        doc = self.store.get("visions", best.id)
        if not doc or doc.get("user_id") != user_id:
            return None

        logger.log_duplicate(best.id, "semantic", similarity)
        return DuplicateMatch(vision=Vision.from_document(doc), similarity_score=similarity, reason="semantic")

    def find_exact_duplicate(self, description: str, user_id: str) -> Optional[DuplicateMatch]:
        """Same owner, identical trimmed description. Does not touch the vector index."""
        doc = self.store.find_one("visions", user_id=user_id, description=description.strip())
        if not doc:
            return None

        logger.log_duplicate(doc["id"], "exact")
        return DuplicateMatch(vision=Vision.from_document(doc), similarity_score=1.0, reason="exact")

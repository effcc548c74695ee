"""
Similarity scoring and link ranking policy.
"""

from typing import Dict, List, Optional, Tuple

# Vision vs vision: above this the new vision is treated as a duplicate
DUPLICATE_THRESHOLD = 0.6
# Vision vs product, either direction: at or above this a link may form
LINK_THRESHOLD = 0.5
# Products kept per vision
MAX_LINKED_PRODUCTS = 3


def score(distance: float) -> float:
    """Convert squared Euclidean distance between unit vectors to cosine similarity.

    For unit vectors ||a - b||^2 = 2 * (1 - cos), so cos = 1 - d / 2.
    """
    return 1.0 - float(distance) / 2.0


def is_linkable(similarity: float) -> bool:
    return similarity >= LINK_THRESHOLD


def is_duplicate(similarity: float) -> bool:
    return similarity > DUPLICATE_THRESHOLD


def rank_links(current: Dict[str, float], candidate: Optional[Tuple[str, float]] = None,
               limit: int = MAX_LINKED_PRODUCTS) -> List[Tuple[str, float]]:
    """
    Order a vision's links by score and keep the best ``limit``.

    Equal scores go to incumbents over the candidate, then to the smaller
    product id, so the outcome never depends on map iteration order.
    """
    entries = [(product_id, float(s), 0) for product_id, s in current.items()]
    if candidate is not None:
        candidate_id, candidate_score = candidate
        entries = [e for e in entries if e[0] != candidate_id]
        entries.append((candidate_id, float(candidate_score), 1))

    entries.sort(key=lambda e: (-e[1], e[2], e[0]))
    return [(product_id, s) for product_id, s, _ in entries[:limit]]

"""
Link maintenance between visions and products.

A vision keeps at most three linked products; a product may be linked from
any number of visions. Both sides of a link are separate documents, so every
reciprocal update is its own write and is best effort.
"""

import time
from typing import Callable, Dict, List, Optional, Sequence

import numpy as np

from .config import get_retry_delays
from .dao import DocumentStore
from .errors import IndexUnavailableError
from .schema import Vision, Product, LinkedProductInfo, LinkedVisionInfo
from .scoring import score, is_linkable, rank_links, MAX_LINKED_PRODUCTS
from ..vector.embedding_index import EmbeddingIndex
from ..vector.types import QueryResult
from util.logging import logger

PRODUCT_CANDIDATES_FOR_VISION = 5
VISION_CANDIDATES_FOR_PRODUCT = 10
BACKFILL_CANDIDATES = 10


class LinkMaintainer:
    """Forms, evicts and backfills vision -> product links."""

    def __init__(self, store: DocumentStore, index: EmbeddingIndex,
                 sleep: Callable[[float], None] = time.sleep,
                 retry_delays: Optional[Sequence[float]] = None):
        self.store = store
        self.index = index
        self.sleep = sleep
        self.retry_delays = list(get_retry_delays() if retry_delays is None else retry_delays)

    def _search_products_with_retry(self, vector: np.ndarray) -> List[QueryResult]:
        """Query the product sub-index, retrying while it returns nothing."""
        results = self.index.query("products", vector, PRODUCT_CANDIDATES_FOR_VISION)
        for attempt, delay in enumerate(self.retry_delays, start=2):
            if results:
                break
            logger.debug(f"No product candidates yet, retrying in {delay}s (attempt {attempt})")
            self.sleep(delay)
            results = self.index.query("products", vector, PRODUCT_CANDIDATES_FOR_VISION)
        return results

    def _link_product_side(self, vision_id: str, product_id: str, similarity: float) -> bool:
        """Record the reciprocal link and a zero click counter on the product."""
        try:
            updated = self.store.update_fields(
                "products", product_id,
                {f"linked_vision.{vision_id}": similarity},
                defaults={f"clicks.{vision_id}": 0}
            )
        except Exception as e:
            logger.error(f"Failed to record link on product {product_id} for vision {vision_id}: {e}")
            return False

        if not updated:
            logger.log_link_operation("reciprocal", vision_id, product_id, similarity, status="failed")
            return False
        logger.log_link_operation("linked", vision_id, product_id, similarity)
        return True

    def link_new_vision(self, vision: Vision, vector: Optional[np.ndarray] = None) -> List[LinkedProductInfo]:
        """
        Link a freshly created vision to up to three existing products.

        Candidates are taken best first from the product sub-index. Index
        failures leave the vision unlinked rather than failing creation.
        """
        try:
            if vector is None:
                vector = self.index.embed(vision.description)
            results = self._search_products_with_retry(vector)
        except IndexUnavailableError as e:
            logger.warning(f"Linking skipped for vision {vision.id}, index unavailable: {e}")
            return []

        linked: Dict[str, float] = {}
        infos: List[LinkedProductInfo] = []
        for result in results:
            if len(linked) >= MAX_LINKED_PRODUCTS:
                break
            similarity = score(result.distance)
            if not is_linkable(similarity) or result.id in linked:
                continue
            try:
                doc = self.store.get("products", result.id)
            except Exception as e:
                logger.error(f"Failed to read candidate product {result.id}: {e}")
                continue
            if not doc:
                continue
            linked[result.id] = similarity
            infos.append(LinkedProductInfo(id=result.id, description=doc["description"], similarity_score=similarity))

        if not linked:
            return []

        clicks = dict(vision.clicks)
        for product_id in linked:
            clicks.setdefault(product_id, 0)

        try:
            written = self.store.update_fields("visions", vision.id, {"linked_products": linked, "clicks": clicks})
        except Exception as e:
            logger.error(f"Failed to write links for vision {vision.id}: {e}")
            return []
        if not written:
            logger.warning(f"Vision {vision.id} vanished before its links were written")
            return []
        vision.linked_products = linked
        vision.clicks = clicks

        for product_id, similarity in linked.items():
            self._link_product_side(vision.id, product_id, similarity)
        return infos

    def link_new_product(self, product: Product, vector: Optional[np.ndarray] = None) -> List[LinkedVisionInfo]:
        """
        Offer a freshly created product to the visions it is similar to.

        A vision accepts the product when it would rank among that vision's
        best three links. Accepting may evict the vision's weakest product.
        Returns the accepting visions, most similar first.
        """
        try:
            if vector is None:
                vector = self.index.embed(product.description)
            results = self.index.query("visions", vector, VISION_CANDIDATES_FOR_PRODUCT)
        except IndexUnavailableError as e:
            logger.warning(f"Linking skipped for product {product.id}, index unavailable: {e}")
            return []

        candidates = []
        for result in results:
            similarity = score(result.distance)
            if not is_linkable(similarity):
                continue
            try:
                doc = self.store.get("visions", result.id)
            except Exception as e:
                logger.error(f"Failed to read candidate vision {result.id}: {e}")
                continue
            if not doc:
                continue
            trial = dict(rank_links(doc.get("linked_products") or {}, (product.id, similarity)))
            if product.id in trial:
                candidates.append((result.id, doc["description"], similarity))
            else:
                logger.log_link_operation("rejected", result.id, product.id, similarity, status="skipped")

        accepted: List[LinkedVisionInfo] = []
        for vision_id, description, similarity in candidates:
            try:
                admitted = self._admit_product(vision_id, product.id, similarity)
            except Exception as e:
                logger.error(f"Failed to link product {product.id} into vision {vision_id}: {e}")
                continue
            if admitted:
                accepted.append(LinkedVisionInfo(id=vision_id, description=description, similarity_score=similarity))

        if accepted:
            try:
                written = self.store.update_fields(
                    "products", product.id,
                    {f"linked_vision.{info.id}": info.similarity_score for info in accepted},
                    defaults={f"clicks.{info.id}": 0 for info in accepted}
                )
            except Exception as e:
                logger.error(f"Failed to record links on product {product.id}: {e}")
                written = False
            if not written:
                return accepted
            for info in accepted:
                product.linked_vision[info.id] = info.similarity_score
                product.clicks.setdefault(info.id, 0)

        return accepted

    def _admit_product(self, vision_id: str, product_id: str, similarity: float) -> bool:
        """Re-rank a vision's links with the product included, evicting the overflow."""
        doc = self.store.get("visions", vision_id)
        if not doc:
            return False

        current = doc.get("linked_products") or {}
        final = dict(rank_links(current, (product_id, similarity)))
        if product_id not in final:
            logger.log_link_operation("rejected", vision_id, product_id, similarity, status="skipped")
            return False

        evicted = [pid for pid in current if pid not in final]
        clicks = {pid: count for pid, count in (doc.get("clicks") or {}).items() if pid not in evicted}
        for pid in final:
            clicks.setdefault(pid, 0)

        if not self.store.update_fields("visions", vision_id, {"linked_products": final, "clicks": clicks}):
            return False

        # Only after the vision stopped listing them
        for evicted_id in evicted:
            try:
                self.store.unset_field("products", evicted_id, f"linked_vision.{vision_id}")
            except Exception as e:
                logger.error(f"Failed to unlink evicted product {evicted_id} from vision {vision_id}: {e}")

        if evicted:
            logger.log_eviction(vision_id, evicted, product_id)
        logger.log_link_operation("linked", vision_id, product_id, similarity)
        return True

    def unlink_vision(self, vision: Vision) -> None:
        """Remove a vision's reciprocal entries from its linked products."""
        for product_id in vision.linked_products:
            try:
                self.store.unset_field("products", product_id, f"linked_vision.{vision.id}")
                logger.log_link_operation("unlinked", vision.id, product_id)
            except Exception as e:
                logger.error(f"Failed to unlink product {product_id} from vision {vision.id}: {e}")

    def unlink_product(self, product: Product) -> List[str]:
        """Remove a product from every vision that links it. Returns the affected vision ids."""
        affected = []
        for vision_id in product.linked_vision:
            try:
                removed = self.store.unset_field("visions", vision_id, f"linked_products.{product.id}")
            except Exception as e:
                logger.error(f"Failed to unlink product {product.id} from vision {vision_id}: {e}")
                continue
            if removed:
                affected.append(vision_id)
                logger.log_link_operation("unlinked", vision_id, product.id)
        return affected

    def backfill_vision(self, vision_id: str, excluded_product_id: Optional[str] = None) -> List[str]:
        """
        Top a vision back up to three links from the product sub-index.

        ``excluded_product_id`` is the product being deleted, which may still
        be present in the index. Returns the ids of the products added.
        """
        doc = self.store.get("visions", vision_id)
        if not doc:
            return []

        current = dict(doc.get("linked_products") or {})
        if len(current) >= MAX_LINKED_PRODUCTS:
            return []

        try:
            results = self.index.search_text("products", doc["description"], BACKFILL_CANDIDATES)
        except IndexUnavailableError as e:
            logger.warning(f"Backfill skipped for vision {vision_id}, index unavailable: {e}")
            return []

        added: Dict[str, float] = {}
        for result in results:
            if len(current) + len(added) >= MAX_LINKED_PRODUCTS:
                break
            similarity = score(result.distance)
            if not is_linkable(similarity):
                continue
            if result.id == excluded_product_id or result.id in current or result.id in added:
                continue
            if not self.store.get("products", result.id):
                continue
            added[result.id] = similarity

        if added:
            merged = dict(current)
            merged.update(added)
            final = dict(rank_links(merged))
            clicks = dict(doc.get("clicks") or {})
            for pid in final:
                clicks.setdefault(pid, 0)
            if not self.store.update_fields("visions", vision_id, {"linked_products": final, "clicks": clicks}):
                return []
            for product_id, similarity in added.items():
                self._link_product_side(vision_id, product_id, similarity)

        logger.log_backfill(vision_id, list(added), len(current) + len(added))
        return list(added)

    def recover_after_product_delete(self, product_id: str, affected_vision_ids: Sequence[str]) -> None:
        """Backfill each vision that lost a link to a deleted product."""
        for vision_id in affected_vision_ids:
            try:
                self.backfill_vision(vision_id, excluded_product_id=product_id)
            except Exception as e:
                logger.error(f"Backfill failed for vision {vision_id}: {e}")

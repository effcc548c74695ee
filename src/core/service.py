"""
Vision/product service: creation with duplicate guarding and linking,
owner-checked deletes with backfill, clicks, support and listings.

This is the surface the HTTP layer calls into. Every operation persists the
primary document first; linking is best effort and never fails the request.
"""

import time
from typing import Callable, Dict, List, Optional, Tuple

from .dao import DocumentStore
from .duplicates import DuplicateGuard
from .errors import IndexUnavailableError, InvalidRequestError, NotFoundError
from .linking import LinkMaintainer
from .schema import (
    Vision, Product, CreateVisionResult, CreateProductResult,
    ClickResult, SupportResult, Page
)
from .scoring import score
from .validation import (
    CreateVisionRequest, CreateProductRequest, UpdateListingRequest, parse_request
)
from ..vector.embedding_index import EmbeddingIndex, SUBINDEXES
from util.logging import logger

DEFAULT_USER_NAME = "Unknown User"
DEFAULT_USER_EMAIL = "unknown@example.com"
DEFAULT_FILE_PATH = "/no-file"
DEFAULT_PAGE_SIZE = 20


class MatchService:
    """Entry point for vision and product operations."""

    def __init__(self, store: DocumentStore, index: EmbeddingIndex,
                 sleep: Callable[[float], None] = time.sleep, retry_delays=None):
        self.store = store
        self.index = index
        self.guard = DuplicateGuard(store, index)
        self.links = LinkMaintainer(store, index, sleep=sleep, retry_delays=retry_delays)

    def _embed_or_none(self, text: str, doc_kind: str):
        try:
            return self.index.embed(text)
        except IndexUnavailableError as e:
            logger.warning(f"Embedding unavailable for new {doc_kind}: {e}")
            return None

    def _index_document(self, subindex: str, doc_id: str, vector, text: str) -> None:
        """Store the embedding and remember its id on the document."""
        if vector is None:
            return
        try:
            vector_id = self.index.upsert(subindex, doc_id, vector, text)
        except IndexUnavailableError as e:
            logger.warning(f"Could not index {subindex} document {doc_id}: {e}")
            return
        self.store.update_fields(subindex, doc_id, {"vector_id": vector_id})

    def _owned(self, collection: str, doc_id: str, user_id: str) -> dict:
        doc = self.store.get(collection, doc_id)
        if not doc or doc.get("user_id") != user_id:
            raise NotFoundError(collection, doc_id)
        return doc

    # Creation

    def create_vision(self, description: str, user_id: str, user_name: str = None,
                      user_email: str = None, file_path: str = None, price: int = None) -> CreateVisionResult:
        """
        Create a vision, or return the caller's existing vision it repeats.

        The semantic guard runs first when an embedding is available; the exact
        description match runs regardless of index health. A new vision is
        linked to up to three products before returning.
        """
        request = parse_request(
            CreateVisionRequest, "create_vision",
            description=description, user_id=user_id, user_name=user_name,
            user_email=user_email, file_path=file_path, price=price
        )

        vector = self._embed_or_none(request.description, "vision")
        duplicate = None
        if vector is not None:
            duplicate = self.guard.find_semantic_duplicate(request.description, request.user_id, vector)
        if duplicate is None:
            duplicate = self.guard.find_exact_duplicate(request.description, request.user_id)

        if duplicate is not None:
            return CreateVisionResult(
                vision=duplicate.vision,
                message="A similar vision already exists",
                is_duplicate=True,
                similarity_score=duplicate.similarity_score,
                duplicate_reason=duplicate.reason,
                linked_products=[]
            )

        vision_id = self.store.insert("visions", {
            "user_id": request.user_id,
            "user_name": request.user_name or DEFAULT_USER_NAME,
            "user_email": request.user_email or DEFAULT_USER_EMAIL,
            "description": request.description,
            "file_path": request.file_path or DEFAULT_FILE_PATH,
            "price": request.price,
            "on_sale": False,
            "vector_id": None,
            "linked_products": {},
            "clicks": {},
            "supported_by": [],
            "support_count": 0,
        })
        self._index_document("visions", vision_id, vector, request.description)

        vision = Vision.from_document(self.store.get("visions", vision_id))
        linked = self.links.link_new_vision(vision, vector)

        return CreateVisionResult(
            vision=vision,
            message="Vision created successfully",
            linked_products=linked
        )

    def create_product(self, description: str, url: str, user_id: str, user_name: str = None,
                       user_email: str = None, file_path: str = None, price: int = None) -> CreateProductResult:
        """Create a product and offer it to every sufficiently similar vision."""
        request = parse_request(
            CreateProductRequest, "create_product",
            description=description, url=url, user_id=user_id, user_name=user_name,
            user_email=user_email, file_path=file_path, price=price
        )

        product_id = self.store.insert("products", {
            "user_id": request.user_id,
            "user_name": request.user_name or DEFAULT_USER_NAME,
            "user_email": request.user_email or DEFAULT_USER_EMAIL,
            "description": request.description,
            "url": request.url,
            "file_path": request.file_path or DEFAULT_FILE_PATH,
            "price": request.price,
            "on_sale": False,
            "vector_id": None,
            "linked_vision": {},
            "clicks": {},
        })
        vector = self._embed_or_none(request.description, "product")
        self._index_document("products", product_id, vector, request.description)

        product = Product.from_document(self.store.get("products", product_id))
        accepted = self.links.link_new_product(product, vector)

        return CreateProductResult(
            product=product,
            message="Product created successfully",
            linked_vision=accepted[0] if accepted else None,
            accepted_visions=accepted
        )

    # Deletion

    def delete_vision(self, vision_id: str, user_id: str) -> bool:
        """Delete the caller's vision and drop it from its products' link maps."""
        vision = Vision.from_document(self._owned("visions", vision_id, user_id))

        self.links.unlink_vision(vision)
        try:
            self.index.delete("visions", vision_id)
        except IndexUnavailableError as e:
            logger.warning(f"Could not remove vision {vision_id} from index: {e}")

        return self.store.delete("visions", vision_id)

    def delete_product(self, product_id: str, user_id: str) -> bool:
        """
        Delete the caller's product.

        Visions that linked it lose the link and are backfilled from the
        remaining products before the document itself is removed.
        """
        product = Product.from_document(self._owned("products", product_id, user_id))

        affected = self.links.unlink_product(product)
        try:
            self.index.delete("products", product_id)
        except IndexUnavailableError as e:
            logger.warning(f"Could not remove product {product_id} from index: {e}")
        self.links.recover_after_product_delete(product_id, affected)

        return self.store.delete("products", product_id)

    # Clicks and support

    def record_click(self, vision_id: str, product_id: str) -> ClickResult:
        """Count a click-through on both sides of a link."""
        if not self.store.get("visions", vision_id):
            raise NotFoundError("visions", vision_id)
        if not self.store.get("products", product_id):
            raise NotFoundError("products", product_id)

        vision_clicks = self.store.increment_field("visions", vision_id, f"clicks.{product_id}")
        if vision_clicks is None:
            raise NotFoundError("visions", vision_id)
        product_clicks = self.store.increment_field("products", product_id, f"clicks.{vision_id}")
        if product_clicks is None:
            raise NotFoundError("products", product_id)

        logger.log_link_operation("clicked", vision_id, product_id)
        return ClickResult(vision_click_count=vision_clicks, product_click_count=product_clicks)

    def toggle_support(self, vision_id: str, user_id: str) -> SupportResult:
        doc = self.store.get("visions", vision_id)
        if not doc:
            raise NotFoundError("visions", vision_id)
        if not user_id:
            raise InvalidRequestError("user_id cannot be empty")

        supporters = list(doc.get("supported_by") or [])
        if user_id in supporters:
            supporters.remove(user_id)
            action = "removed"
        else:
            supporters.append(user_id)
            action = "added"

        self.store.update_fields("visions", vision_id, {
            "supported_by": supporters,
            "support_count": len(supporters)
        })
        return SupportResult(action=action, support_count=len(supporters), is_supported=action == "added")

    def is_supporting(self, vision_id: str, user_id: str) -> bool:
        doc = self.store.get("visions", vision_id)
        if not doc:
            raise NotFoundError("visions", vision_id)
        return user_id in (doc.get("supported_by") or [])

    # Owner updates

    def _update_listing(self, collection: str, doc_id: str, user_id: str,
                        on_sale: Optional[bool], price: Optional[int]) -> dict:
        request = parse_request(UpdateListingRequest, f"update_{collection[:-1]}", on_sale=on_sale, price=price)
        self._owned(collection, doc_id, user_id)

        partial = {}
        if request.on_sale is not None:
            partial["on_sale"] = request.on_sale
        if request.price is not None:
            partial["price"] = request.price
        if partial:
            self.store.update_fields(collection, doc_id, partial)
            logger.log_document_operation("updated", collection, doc_id, details={"fields": sorted(partial)})
        return self.store.get(collection, doc_id)

    def update_vision(self, vision_id: str, user_id: str, on_sale: bool = None, price: int = None) -> Vision:
        return Vision.from_document(self._update_listing("visions", vision_id, user_id, on_sale, price))

    def update_product(self, product_id: str, user_id: str, on_sale: bool = None, price: int = None) -> Product:
        return Product.from_document(self._update_listing("products", product_id, user_id, on_sale, price))

    # Reads

    def get_vision(self, vision_id: str) -> Vision:
        doc = self.store.get("visions", vision_id)
        if not doc:
            raise NotFoundError("visions", vision_id)
        return Vision.from_document(doc)

    def get_product(self, product_id: str) -> Product:
        doc = self.store.get("products", product_id)
        if not doc:
            raise NotFoundError("products", product_id)
        return Product.from_document(doc)

    def _page(self, collection: str, model, skip: int, limit: int, criteria: Dict[str, str]) -> Page:
        if skip < 0 or limit < 1:
            raise InvalidRequestError("skip must be >= 0 and limit must be >= 1")
        total = self.store.count_where(collection, **criteria)
        docs = self.store.find(collection, skip=skip, limit=limit, **criteria)
        return Page(items=[model.from_document(doc) for doc in docs], total=total, skip=skip, limit=limit)

    def list_visions(self, user_id: str = None, skip: int = 0, limit: int = DEFAULT_PAGE_SIZE) -> Page:
        """Visions newest first, optionally limited to one owner."""
        criteria = {"user_id": user_id} if user_id else {}
        return self._page("visions", Vision, skip, limit, criteria)

    def list_products(self, user_id: str, skip: int = 0, limit: int = DEFAULT_PAGE_SIZE) -> Page:
        """The caller's own products, newest first."""
        if not user_id:
            raise InvalidRequestError("user_id cannot be empty")
        return self._page("products", Product, skip, limit, {"user_id": user_id})

    def search_visions(self, query: str, limit: int = 10) -> List[Tuple[Vision, float]]:
        """Semantic search over all visions. Returns (vision, similarity) pairs, best first."""
        if not query or not query.strip():
            raise InvalidRequestError("query cannot be empty")

        try:
            results = self.index.search_text("visions", query.strip(), limit)
        except IndexUnavailableError as e:
            logger.warning(f"Vision search unavailable: {e}")
            return []

        hits = []
        for result in results:
            doc = self.store.get("visions", result.id)
            if doc:
                hits.append((Vision.from_document(doc), score(result.distance)))
        return hits

    # Maintenance

    def rebuild_index(self, collections=SUBINDEXES) -> Dict[str, int]:
        """Clear the given sub-indexes and re-embed every stored document in them."""
        counts = {}
        for collection in collections:
            self.index.clear(collection)
            indexed = 0
            for doc in self.store.find(collection):
                try:
                    vector = self.index.embed(doc["description"])
                    self.index.upsert(collection, doc["id"], vector, doc["description"])
                except IndexUnavailableError as e:
                    logger.error(f"Failed to re-index {collection} document {doc['id']}: {e}")
                    continue
                if doc.get("vector_id") != doc["id"]:
                    self.store.update_fields(collection, doc["id"], {"vector_id": doc["id"]})
                indexed += 1
            counts[collection] = indexed
            logger.log_vector_operation("rebuilt", collection, {"count": indexed})
        return counts

    def ensure_index(self) -> Dict[str, int]:
        """Rebuild any sub-index that is empty while its collection holds documents."""
        missing = [c for c in SUBINDEXES if self.index.count(c) == 0 and self.store.count_where(c) > 0]
        if not missing:
            return {}
        logger.warning(f"Embedding index empty for {missing}, rebuilding from the document store")
        return self.rebuild_index(missing)


def create_service(sleep: Callable[[float], None] = time.sleep) -> MatchService:
    """Build a service from environment configuration, re-embedding if the index was lost."""
    from .config import get_document_store, get_embedding_index
    service = MatchService(get_document_store(), get_embedding_index(), sleep=sleep)
    service.ensure_index()
    return service

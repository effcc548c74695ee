"""
Tests for linking a new product into visions' top three, including eviction.
"""

import pytest
import numpy as np
from unittest.mock import MagicMock
from src.core.dao import DocumentStore
from src.core.errors import IndexUnavailableError
from src.core.linking import LinkMaintainer
from src.core.schema import Product
from src.vector import QueryResult


@pytest.fixture
def store(tmp_path):
    return DocumentStore(str(tmp_path / "eviction.db"))


@pytest.fixture
def index():
    index = MagicMock()
    index.embed.return_value = np.ones(3)
    return index


def add_product(store, description, linked_vision=None):
    return store.insert("products", {
        "user_id": "bob", "description": description, "url": "https://example.com",
        "linked_vision": dict(linked_vision or {}), "clicks": {vid: 0 for vid in (linked_vision or {})}
    })


def add_vision(store, description, linked_products=None, clicks=None):
    return store.insert("visions", {
        "user_id": "alice", "description": description,
        "linked_products": dict(linked_products or {}), "clicks": dict(clicks or {})
    })


@pytest.fixture
def full_vision(store):
    """Vision A with P1:0.9, P2:0.8, P3:0.7, each side linked."""
    vision_id = add_vision(store, "vision A")
    links = {}
    for name, similarity in (("P1", 0.9), ("P2", 0.8), ("P3", 0.7)):
        links[add_product(store, name, {vision_id: similarity})] = similarity
    store.update_fields("visions", vision_id, {
        "linked_products": links,
        "clicks": {pid: n for pid, n in zip(links, (5, 0, 2))}
    })
    p1, p2, p3 = list(links)
    return vision_id, p1, p2, p3


def test_higher_scoring_product_evicts_weakest(store, index, full_vision):
    vision_id, p1, p2, p3 = full_vision
    p4 = add_product(store, "P4")
    index.query.return_value = [QueryResult(id=vision_id, distance=0.5)]  # score 0.75

    accepted = LinkMaintainer(store, index).link_new_product(Product.from_document(store.get("products", p4)))

    assert [info.id for info in accepted] == [vision_id]
    assert accepted[0].similarity_score == 0.75

    vision = store.get("visions", vision_id)
    assert vision["linked_products"] == {p1: 0.9, p2: 0.8, p4: 0.75}
    assert vision["clicks"] == {p1: 5, p2: 0, p4: 0}

    assert vision_id not in store.get("products", p3)["linked_vision"]
    assert store.get("products", p3)["description"] == "P3"
    assert store.get("products", p4)["linked_vision"] == {vision_id: 0.75}
    assert store.get("products", p4)["clicks"] == {vision_id: 0}
    assert store.get("products", p1)["linked_vision"] == {vision_id: 0.9}


def test_lower_scoring_product_is_rejected(store, index, full_vision):
    vision_id, p1, p2, p3 = full_vision
    p4 = add_product(store, "P4")
    index.query.return_value = [QueryResult(id=vision_id, distance=0.8)]  # score 0.6

    accepted = LinkMaintainer(store, index).link_new_product(Product.from_document(store.get("products", p4)))

    assert accepted == []
    assert store.get("visions", vision_id)["linked_products"] == {p1: 0.9, p2: 0.8, p3: 0.7}
    assert store.get("products", p3)["linked_vision"] == {vision_id: 0.7}
    assert store.get("products", p4)["linked_vision"] == {}


def test_product_links_to_many_visions_without_cap(store, index):
    vision_ids = [add_vision(store, f"vision {i}") for i in range(5)]
    product_id = add_product(store, "popular product")
    index.query.return_value = [QueryResult(id=vid, distance=0.2) for vid in vision_ids]

    product = Product.from_document(store.get("products", product_id))
    accepted = LinkMaintainer(store, index).link_new_product(product)

    assert [info.id for info in accepted] == vision_ids
    assert set(store.get("products", product_id)["linked_vision"]) == set(vision_ids)
    for vid in vision_ids:
        assert store.get("visions", vid)["linked_products"] == {product_id: pytest.approx(0.9)}


def test_below_threshold_and_missing_visions_are_skipped(store, index):
    kept = add_vision(store, "kept")
    weak = add_vision(store, "weak")
    product_id = add_product(store, "product")
    index.query.return_value = [
        QueryResult(id="deleted-vision", distance=0.0),
        QueryResult(id=kept, distance=0.9),
        QueryResult(id=weak, distance=1.1),
    ]

    accepted = LinkMaintainer(store, index).link_new_product(
        Product.from_document(store.get("products", product_id)))

    assert [info.id for info in accepted] == [kept]
    assert store.get("visions", weak)["linked_products"] == {}


def test_index_failure_skips_linking(store, index):
    product_id = add_product(store, "product")
    index.query.side_effect = IndexUnavailableError("down")

    accepted = LinkMaintainer(store, index).link_new_product(
        Product.from_document(store.get("products", product_id)))

    assert accepted == []


def test_vision_cap_holds_across_many_products(store, index):
    vision_id = add_vision(store, "vision")
    maintainer = LinkMaintainer(store, index)

    for i in range(6):
        product_id = add_product(store, f"product {i}")
        index.query.return_value = [QueryResult(id=vision_id, distance=0.05 * (5 - i))]
        maintainer.link_new_product(Product.from_document(store.get("products", product_id)))

    vision = store.get("visions", vision_id)
    assert len(vision["linked_products"]) == 3
    for product_id, similarity in vision["linked_products"].items():
        assert store.get("products", product_id)["linked_vision"][vision_id] == similarity



def test_failed_vision_write_keeps_evicted_link_intact(store, index, full_vision):
    vision_id, p1, p2, p3 = full_vision
    p4 = add_product(store, "P4")
    index.query.return_value = [QueryResult(id=vision_id, distance=0.5)]
    real_update = store.update_fields

    def failing_vision_update(collection, doc_id, partial, defaults=None):
        if collection == "visions":
            raise RuntimeError("write failed")
        return real_update(collection, doc_id, partial, defaults=defaults)

    store.update_fields = failing_vision_update
    accepted = LinkMaintainer(store, index).link_new_product(Product.from_document(store.get("products", p4)))

    assert accepted == []
    assert store.get("visions", vision_id)["linked_products"] == {p1: 0.9, p2: 0.8, p3: 0.7}
    assert store.get("products", p3)["linked_vision"] == {vision_id: 0.7}


def test_failed_product_write_leaves_returned_product_unlinked(store, index):
    vision_id = add_vision(store, "vision")
    product_id = add_product(store, "product")
    index.query.return_value = [QueryResult(id=vision_id, distance=0.2)]
    real_update = store.update_fields

    def failing_product_update(collection, doc_id, partial, defaults=None):
        if collection == "products":
            raise RuntimeError("write failed")
        return real_update(collection, doc_id, partial, defaults=defaults)

    store.update_fields = failing_product_update
    product = Product.from_document(store.get("products", product_id))
    accepted = LinkMaintainer(store, index).link_new_product(product)

    assert [info.id for info in accepted] == [vision_id]
    assert product.linked_vision == {}
    assert product.clicks == {}
    assert store.get("products", product_id)["linked_vision"] == {}


if __name__ == "__main__":
    pytest.main([__file__])

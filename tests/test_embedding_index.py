"""
Tests for the sub-indexed embedding index.
"""

import pytest
import numpy as np
from unittest.mock import MagicMock
from src.core.errors import IndexUnavailableError
from src.vector import EmbeddingIndex, DeterministicHashEmbedding, SimpleInMemoryVectorStore


@pytest.fixture
def index():
    return EmbeddingIndex(DeterministicHashEmbedding(), store_factory=SimpleInMemoryVectorStore)


def test_upsert_and_search_text(index):
    text = "fitness tracking mobile application"
    index.upsert("products", "p1", index.embed(text), text)

    results = index.search_text("products", text, 5)
    assert results[0].id == "p1"
    assert results[0].distance == pytest.approx(0.0, abs=1e-5)
    assert results[0].metadata["description"] == text


def test_subindexes_are_isolated(index):
    text = "handmade ceramic coffee mugs"
    index.upsert("products", "p1", index.embed(text), text)

    assert index.search_text("visions", text, 5) == []
    assert index.count("products") == 1
    assert index.count("visions") == 0


def test_delete_and_clear(index):
    for doc_id in ("a", "b"):
        index.upsert("visions", doc_id, index.embed(doc_id), doc_id)

    index.delete("visions", "a")
    assert index.count("visions") == 1
    index.clear("visions")
    assert index.count("visions") == 0


def test_unknown_subindex(index):
    with pytest.raises(ValueError):
        index.query("users", np.ones(384), 5)


def test_provider_failure_is_wrapped():
    provider = MagicMock()
    provider.embed_text.side_effect = RuntimeError("model offline")
    index = EmbeddingIndex(provider)

    with pytest.raises(IndexUnavailableError):
        index.embed("anything")


def test_store_failure_is_wrapped():
    broken = MagicMock()
    broken.search.side_effect = RuntimeError("index corrupted")
    index = EmbeddingIndex(DeterministicHashEmbedding(), stores={"visions": broken, "products": broken})

    with pytest.raises(IndexUnavailableError):
        index.search_text("visions", "query", 5)


def test_long_descriptions_are_truncated_in_metadata(index):
    text = "word " * 50
    index.upsert("visions", "v1", index.embed(text), text)

    result = index.search_text("visions", text, 1)[0]
    assert result.metadata["description"].endswith("...")
    assert len(result.metadata["description"]) == 103


if __name__ == "__main__":
    pytest.main([__file__])

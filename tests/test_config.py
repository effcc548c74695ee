"""
Tests for environment configuration.
"""

import pytest
from src.core import config
from src.vector import (
    EmbeddingIndex, SimpleInMemoryVectorStore, FaissVectorStore, DeterministicHashEmbedding
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("DB_PATH", "VECTOR_PROVIDER", "EMBED_PROVIDER", "EMBED_DIM",
                 "INDEX_RETRY_ATTEMPTS", "INDEX_RETRY_BACKOFF_SEC", "FAISS_INDEX_DIR"):
        monkeypatch.delenv(name, raising=False)


def test_default_retry_delays():
    assert config.get_retry_delays() == [2, 4, 6, 8]


def test_retry_delays_from_env(monkeypatch):
    monkeypatch.setenv("INDEX_RETRY_ATTEMPTS", "3")
    monkeypatch.setenv("INDEX_RETRY_BACKOFF_SEC", "0.5")
    assert config.get_retry_delays() == [0.5, 1.0]

    monkeypatch.setenv("INDEX_RETRY_ATTEMPTS", "1")
    assert config.get_retry_delays() == []


def test_db_path_override(monkeypatch, tmp_path):
    monkeypatch.setenv("DB_PATH", str(tmp_path / "custom.db"))
    assert config.get_db_path() == str(tmp_path / "custom.db")

    store = config.get_document_store()
    assert store.db_path == str(tmp_path / "custom.db")
    assert (tmp_path / "custom.db").exists()


def test_default_providers():
    index = config.get_embedding_index()

    assert isinstance(index, EmbeddingIndex)
    assert isinstance(index.embedding_provider, DeterministicHashEmbedding)
    assert isinstance(index.stores["visions"], SimpleInMemoryVectorStore)
    assert index.stores["visions"] is not index.stores["products"]


def test_faiss_provider_uses_embedding_dimension(monkeypatch, tmp_path):
    monkeypatch.setenv("VECTOR_PROVIDER", "faiss")
    monkeypatch.setenv("FAISS_INDEX_DIR", str(tmp_path))
    monkeypatch.setenv("EMBED_DIM", "64")

    index = config.get_embedding_index()

    assert isinstance(index.stores["products"], FaissVectorStore)
    assert index.stores["products"].dimension == 64
    assert index.stores["products"].index_path == str(tmp_path / "products")
    assert index.stores["visions"].index_path == str(tmp_path / "visions")


def test_unknown_vector_provider_falls_back_to_memory(monkeypatch):
    monkeypatch.setenv("VECTOR_PROVIDER", "qdrant")
    assert isinstance(config.get_vector_store(), SimpleInMemoryVectorStore)


def test_validate_config(monkeypatch):
    assert config.validate_config() == []

    monkeypatch.setenv("VECTOR_PROVIDER", "qdrant")
    monkeypatch.setenv("EMBED_DIM", "0")
    monkeypatch.setenv("INDEX_RETRY_BACKOFF_SEC", "-1")
    issues = config.validate_config()

    assert "Invalid VECTOR_PROVIDER: qdrant" in issues
    assert "EMBED_DIM must be >= 1" in issues
    assert "INDEX_RETRY_BACKOFF_SEC must be >= 0" in issues


if __name__ == "__main__":
    pytest.main([__file__])

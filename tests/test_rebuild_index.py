"""
Tests for the index rebuild script.
"""

import pytest
from unittest.mock import MagicMock
from scripts.rebuild_index import main
from src.core.dao import DocumentStore
from src.core.errors import IndexUnavailableError
from src.core.service import MatchService
from src.vector import EmbeddingIndex, DeterministicHashEmbedding


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("VECTOR_PROVIDER", "EMBED_PROVIDER", "EMBED_DIM"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def service(tmp_path):
    store = DocumentStore(str(tmp_path / "rebuild.db"))
    index = EmbeddingIndex(DeterministicHashEmbedding())
    service = MatchService(store, index, sleep=lambda _: None, retry_delays=[])
    service.create_vision("a mobile app for tracking fitness goals", "alice")
    service.create_vision("handmade ceramic coffee mugs", "alice")
    service.create_product("fitness tracking mobile application", "https://example.com", "bob")
    return service


def test_rebuild_restores_lost_index(service, capsys):
    service.index.clear("visions")
    service.index.clear("products")

    assert main(service) == 0

    assert service.index.count("visions") == 2
    assert service.index.count("products") == 1
    output = capsys.readouterr().out
    assert "Re-embedded 2/2 visions" in output
    assert "Re-embedded 1/1 products" in output


def test_rebuild_reports_embedding_failures(service, capsys):
    real_embed = service.index.embed
    calls = {"n": 0}

    def flaky_embed(text):
        calls["n"] += 1
        if calls["n"] == 1:
            raise IndexUnavailableError("model offline")
        return real_embed(text)

    service.index.embed = flaky_embed
    assert main(service) == 0

    output = capsys.readouterr().out
    assert "Re-embedded 1/2 visions" in output
    assert "WARNING: 1 visions could not be embedded" in output


def test_rebuild_refuses_invalid_config(monkeypatch, capsys):
    monkeypatch.setenv("VECTOR_PROVIDER", "qdrant")
    service = MagicMock()

    assert main(service) == 1
    service.rebuild_index.assert_not_called()
    assert "Invalid VECTOR_PROVIDER" in capsys.readouterr().out


if __name__ == "__main__":
    pytest.main([__file__])

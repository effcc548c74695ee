"""
Tests for embedding providers.
"""

import pytest
import numpy as np
from unittest.mock import MagicMock, patch
from src.vector.embeddings import IEmbeddingProvider, DeterministicHashEmbedding, SentenceTransformerEmbedding


def cosine(a, b):
    return float(np.dot(np.asarray(a), np.asarray(b)))


def test_embedding_interface():
    """Test that the hash provider implements the interface."""
    embedder = DeterministicHashEmbedding(dimension=384)

    assert isinstance(embedder, IEmbeddingProvider)
    assert embedder.get_dimension() == 384


def test_deterministic_embedding():
    """Test that the same input always produces the same output."""
    embedder = DeterministicHashEmbedding(dimension=384)

    vector1 = embedder.embed_text("Hello, world!")
    vector2 = embedder.embed_text("Hello, world!")

    assert vector1 == vector2
    assert len(vector1) == 384


def test_embeddings_are_unit_length():
    embedder = DeterministicHashEmbedding()
    vector = embedder.embed_text("handmade ceramic coffee mugs")

    assert np.linalg.norm(vector) == pytest.approx(1.0, abs=1e-6)


def test_case_and_punctuation_are_ignored():
    embedder = DeterministicHashEmbedding()

    assert embedder.embed_text("Fitness, Tracking!") == embedder.embed_text("fitness tracking")


def test_empty_text_gives_zero_vector():
    embedder = DeterministicHashEmbedding(dimension=16)
    assert embedder.embed_text("") == [0.0] * 16


def test_shared_words_raise_similarity():
    embedder = DeterministicHashEmbedding()
    vision = embedder.embed_text("a mobile app for tracking fitness goals")
    related = embedder.embed_text("fitness tracking mobile application")
    unrelated = embedder.embed_text("handmade ceramic coffee mugs")

    assert cosine(vision, related) >= 0.5
    assert cosine(vision, unrelated) < 0.1


def test_sentence_transformer_loads_model_lazily():
    fake_model = MagicMock()
    fake_model.encode.return_value = np.array([0.6, 0.8], dtype=np.float32)
    fake_model.get_sentence_embedding_dimension.return_value = 2

    embedder = SentenceTransformerEmbedding(model_name="test-model")
    assert embedder._model is None

    with patch("sentence_transformers.SentenceTransformer", return_value=fake_model) as factory:
        vector = embedder.embed_text("hello")
        assert embedder.get_dimension() == 2

    factory.assert_called_once_with("test-model")
    fake_model.encode.assert_called_once_with("hello", convert_to_tensor=False, normalize_embeddings=True)
    assert vector == pytest.approx([0.6, 0.8])


if __name__ == "__main__":
    pytest.main([__file__])

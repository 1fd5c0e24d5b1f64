"""Tests for cosine similarity and SemanticRetrievalService."""
import numpy as np
import pytest

from daynote.exceptions import ValidationError
from daynote.services.embedding_service import EmbeddingService
from daynote.services.search_service import (
    SemanticRetrievalService,
    SimilarNote,
    cosine_similarity,
)

RELATED = "<p>Notes about the meeting I had today</p>"
UNRELATED = "<p>Bought groceries and cooked pasta</p>"
QUERY = "what did I write about the meeting"


class TestCosineSimilarity:
    """Tests for the similarity function."""

    def test_identical_vectors(self):
        assert cosine_similarity([1.0, 2.0, 3.0], [1.0, 2.0, 3.0]) == pytest.approx(1.0)

    def test_opposite_vectors(self):
        assert cosine_similarity([1.0, 0.0], [-1.0, 0.0]) == pytest.approx(-1.0)

    def test_orthogonal_vectors(self):
        assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)

    def test_zero_magnitude_is_zero(self):
        assert cosine_similarity([0.0, 0.0], [1.0, 1.0]) == 0.0

    def test_dimension_mismatch_is_zero(self):
        assert cosine_similarity([1.0, 0.0], [1.0, 0.0, 0.0]) == 0.0

    def test_bounds_hold_for_random_vectors(self):
        rng = np.random.default_rng(42)
        for _ in range(200):
            a = rng.normal(size=16) * rng.uniform(0.001, 1000)
            b = rng.normal(size=16)
            assert -1.0 <= cosine_similarity(a, b) <= 1.0
            assert cosine_similarity(a, a) == pytest.approx(1.0)


class TestFindSimilar:
    """Tests for ranked retrieval."""

    @pytest.fixture
    def corpus(self, note_store, embedding_index):
        related = note_store.upsert("2025-01-01", RELATED)
        unrelated = note_store.upsert("2025-01-02", UNRELATED)
        embedding_index.update_for_note(related.id, related.text)
        embedding_index.update_for_note(unrelated.id, unrelated.text)
        return related, unrelated

    def test_related_note_found_unrelated_excluded(self, retrieval, corpus):
        related, unrelated = corpus
        hits = retrieval.find_similar(QUERY, limit=5)
        days = [hit.note.day for hit in hits]
        assert days[0] == related.day
        assert hits[0].similarity > 0.3
        assert unrelated.day not in days

    def test_results_above_threshold_sorted_and_limited(self, note_store, embedding_index, retrieval):
        texts = [
            "meeting meeting meeting",
            "meeting agenda",
            "meeting agenda budget review",
            "meeting agenda budget review hiring plan",
            "gardening",
        ]
        for i, text in enumerate(texts):
            note = note_store.upsert(f"2025-02-0{i + 1}", text)
            embedding_index.update_for_note(note.id, note.text)

        hits = retrieval.find_similar("meeting agenda", limit=3)
        assert len(hits) <= 3
        assert all(hit.similarity > 0.3 for hit in hits)
        sims = [hit.similarity for hit in hits]
        assert sims == sorted(sims, reverse=True)
        assert hits[0].note.text == "meeting agenda"

    def test_threshold_is_strict(self, note_store, embedding_repository, fake_embedder):
        """A score equal to the threshold is excluded."""
        service = EmbeddingService(fake_embedder)
        note = note_store.upsert("2025-01-01", "x")
        query_vec = fake_embedder.embed("exact")
        embedding_repository.save(note.id, "x", query_vec.tolist())

        at_threshold = SemanticRetrievalService(
            embedding_repository, service, relevance_threshold=1.0
        )
        assert at_threshold.find_similar("exact", limit=5) == []

        below = SemanticRetrievalService(
            embedding_repository, service, relevance_threshold=0.99
        )
        assert len(below.find_similar("exact", limit=5)) == 1

    def test_blank_query_makes_no_provider_call(self, retrieval, corpus, fake_embedder):
        calls = fake_embedder.embed_count
        assert retrieval.find_similar("   ", limit=5) == []
        assert fake_embedder.embed_count == calls

    def test_unconfigured_provider_returns_empty(self, embedding_repository):
        service = SemanticRetrievalService(embedding_repository, EmbeddingService(None))
        assert service.is_available is False
        assert service.find_similar(QUERY, limit=5) == []

    def test_invalid_limit(self, retrieval):
        with pytest.raises(ValidationError):
            retrieval.find_similar(QUERY, limit=0)

    def test_empty_corpus(self, retrieval):
        assert retrieval.find_similar(QUERY, limit=5) == []

    def test_relevance_percent(self, note_store):
        note = note_store.upsert("2025-01-01", "x")
        assert SimilarNote(note=note, similarity=0.876).relevance_percent == 88

"""Semantic retrieval over the stored note embeddings."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Union

import numpy as np

from daynote.config import config
from daynote.exceptions import ValidationError
from daynote.models.schema import Note
from daynote.observability import timed_operation
from daynote.services.embedding_service import EmbeddingService
from daynote.storage.embedding_repository import EmbeddingRepository

logger = logging.getLogger(__name__)

VectorLike = Union[np.ndarray, Sequence[float]]


@dataclass
class SimilarNote:
    """A retrieval hit: a note and its cosine similarity to the query."""

    note: Note
    similarity: float

    @property
    def relevance_percent(self) -> int:
        return int(round(self.similarity * 100))


def cosine_similarity(a: VectorLike, b: VectorLike) -> float:
    """Cosine similarity of two vectors, ``dot(a, b) / (|a| * |b|)``.

    Returns 0.0 when the dimensions differ or either vector has zero
    magnitude. The result is clipped to [-1, 1] to absorb rounding.
    """
    va = np.asarray(a, dtype=np.float64).ravel()
    vb = np.asarray(b, dtype=np.float64).ravel()
    if va.shape != vb.shape or va.size == 0:
        return 0.0
    norm_a = np.linalg.norm(va)
    norm_b = np.linalg.norm(vb)
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return float(np.clip(np.dot(va, vb) / (norm_a * norm_b), -1.0, 1.0))


class SemanticRetrievalService:
    """Finds the notes most similar in meaning to a query.

    A linear scan over every stored vector, which is fine at journal scale
    (thousands of notes).

    Args:
        repository: Source of stored vectors and their notes.
        embedding_service: Embeds the query; may be unconfigured.
        relevance_threshold: Hits must score strictly above this.
            Defaults to ``config.relevance_threshold``.
    """

    def __init__(
        self,
        repository: EmbeddingRepository,
        embedding_service: EmbeddingService,
        relevance_threshold: Optional[float] = None,
    ) -> None:
        self.repository = repository
        self.embedding_service = embedding_service
        self.relevance_threshold = (
            config.relevance_threshold
            if relevance_threshold is None
            else relevance_threshold
        )

    @property
    def is_available(self) -> bool:
        return self.embedding_service.is_configured

    def find_similar(self, query: str, limit: int = 5) -> List[SimilarNote]:
        """Rank stored notes by similarity to ``query``.

        Returns an empty list, without calling the provider, for a blank
        query or when no provider is configured.

        Args:
            query: Free-text query.
            limit: Maximum number of results.

        Returns:
            At most ``limit`` hits with similarity above the threshold,
            best first. Equal scores keep their storage order.

        Raises:
            ValidationError: If ``limit`` is not positive.
            EmbeddingProviderError: If embedding the query fails.
            StorageReadError: If the stored vectors cannot be read.
        """
        if limit < 1:
            raise ValidationError("limit must be >= 1", field="limit", value=limit)
        if not query or not query.strip():
            return []
        if not self.is_available:
            logger.debug("Semantic search requested but no provider is configured")
            return []

        with timed_operation("find_similar", limit=limit) as op:
            query_vector = self.embedding_service.embed(query.strip())
            candidates = self.repository.list_with_notes()

            scored = [
                SimilarNote(note=note, similarity=cosine_similarity(query_vector, vector))
                for note, vector in candidates
            ]
            # sorted() is stable, so ties keep their storage order
            scored = sorted(scored, key=lambda hit: hit.similarity, reverse=True)
            results = [
                hit for hit in scored if hit.similarity > self.relevance_threshold
            ][:limit]

            op["candidates"] = len(candidates)
            op["result_count"] = len(results)
            return results

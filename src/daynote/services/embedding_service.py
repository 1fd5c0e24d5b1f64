"""Embedding service for semantic search.

Wraps an embedding provider with the journal's availability and input
rules, and normalises whatever the provider returns into a float32 numpy
vector.

Usage:
    service = EmbeddingService(provider=provider)
    if service.is_configured:
        vector = service.embed("some text")
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

import numpy as np

from daynote.exceptions import EmbeddingProviderError, ErrorCode

if TYPE_CHECKING:
    from daynote.services.provider_types import EmbeddingProvider

logger = logging.getLogger(__name__)


class EmbeddingService:
    """Turns text into vectors through the configured provider.

    Args:
        provider: An EmbeddingProvider implementation, or None when no
            credential is configured. Without a provider every ``embed``
            call fails fast with ``EMBEDDING_UNAVAILABLE``.
    """

    def __init__(self, provider: Optional[EmbeddingProvider] = None) -> None:
        self._provider = provider

    @property
    def is_configured(self) -> bool:
        """Whether a provider is available. Does not contact the provider."""
        return self._provider is not None

    @property
    def model_name(self) -> Optional[str]:
        return self._provider.model_name if self._provider is not None else None

    def embed(self, text: str) -> np.ndarray:
        """Embed a single text into a dense vector.

        Args:
            text: Input text. Blank input is rejected.

        Returns:
            1-D float32 numpy array.

        Raises:
            EmbeddingProviderError: If the service is unconfigured, the input
                is blank, or the provider call fails.
        """
        if self._provider is None:
            raise EmbeddingProviderError(
                "Embedding provider is not configured",
                code=ErrorCode.EMBEDDING_UNAVAILABLE,
                operation="embed",
            )
        if not text or not text.strip():
            raise EmbeddingProviderError(
                "Cannot embed empty text",
                code=ErrorCode.EMBEDDING_EMPTY_INPUT,
                operation="embed",
            )
        try:
            vector = self._provider.embed(text)
        except EmbeddingProviderError:
            raise
        except Exception as e:
            raise EmbeddingProviderError(
                f"Embedding inference failed: {e}",
                operation="embed",
                original_error=e,
            ) from e

        array = np.asarray(vector, dtype=np.float32)
        if array.ndim != 1 or array.size == 0:
            raise EmbeddingProviderError(
                f"Provider returned a vector of shape {array.shape}",
                operation="embed",
            )
        return array

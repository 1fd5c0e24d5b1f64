"""Type protocols for the embedding and chat-completion providers.

Defines the structural contracts that both the OpenAI-backed providers
and test fakes satisfy. Uses Protocol (PEP 544) for structural
subtyping, so implementations don't need to inherit from these.
"""
from __future__ import annotations

from typing import TYPE_CHECKING, Dict, List, Protocol, Sequence, runtime_checkable

if TYPE_CHECKING:
    import numpy as np


@runtime_checkable
class EmbeddingProvider(Protocol):
    """Contract for turning text into a dense vector."""

    @property
    def model_name(self) -> str:
        """Identifier of the model producing the vectors."""
        ...

    def embed(self, text: str) -> np.ndarray | Sequence[float]:
        """Embed a single text.

        Args:
            text: Non-empty input text.

        Returns:
            1-D vector. Dimension is fixed per model.
        """
        ...


@runtime_checkable
class ChatProvider(Protocol):
    """Contract for a chat-completion backend."""

    @property
    def model_name(self) -> str:
        ...

    def complete(self, messages: List[Dict[str, str]]) -> str:
        """Return the assistant reply for an ordered list of role/content turns.

        The first message is the system prompt.
        """
        ...

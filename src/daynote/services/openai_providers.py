"""OpenAI-backed providers for embeddings and chat completion.

Both providers talk to the OpenAI HTTP API through the official client and
convert its errors into the journal's own exception types, so nothing above
this module needs to know about ``openai``.

Models (defaults, configurable):
- Embedding: text-embedding-3-small (1536-dim)
- Chat: gpt-3.5-turbo, max 500 tokens, temperature 0.7
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

import numpy as np
import openai
from openai import OpenAI

from daynote.exceptions import (
    ChatProviderError,
    ConfigurationError,
    EmbeddingProviderError,
    ErrorCode,
)

logger = logging.getLogger(__name__)


def _build_client(
    api_key: Optional[str], base_url: Optional[str], timeout: float
) -> OpenAI:
    if not api_key:
        raise ConfigurationError(
            "OpenAI API key required. Set DAYNOTE_OPENAI_API_KEY or OPENAI_API_KEY",
            config_key="openai_api_key",
            code=ErrorCode.CONFIG_MISSING,
        )
    return OpenAI(api_key=api_key, base_url=base_url, timeout=timeout)


class OpenAIEmbeddingProvider:
    """Embedding provider using OpenAI's embeddings endpoint."""

    def __init__(
        self,
        api_key: Optional[str],
        model: str = "text-embedding-3-small",
        base_url: Optional[str] = None,
        timeout: float = 30.0,
    ):
        self._model = model
        self._client = _build_client(api_key, base_url, timeout)

    @property
    def model_name(self) -> str:
        return self._model

    def embed(self, text: str) -> np.ndarray:
        """Embed a single text, returning a float32 vector."""
        # OpenAI recommends single-line input
        text = text.replace("\n", " ")
        try:
            response = self._client.embeddings.create(model=self._model, input=[text])
        except openai.OpenAIError as e:
            raise EmbeddingProviderError(
                f"Embedding request failed: {type(e).__name__}",
                operation="embed",
                original_error=e,
            ) from e
        if not response.data:
            raise EmbeddingProviderError(
                "Embedding response contained no vectors", operation="embed"
            )
        return np.asarray(response.data[0].embedding, dtype=np.float32)


class OpenAIChatProvider:
    """Chat-completion provider using OpenAI's chat API."""

    def __init__(
        self,
        api_key: Optional[str],
        model: str = "gpt-3.5-turbo",
        max_tokens: int = 500,
        temperature: float = 0.7,
        base_url: Optional[str] = None,
        timeout: float = 30.0,
    ):
        self._model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self._client = _build_client(api_key, base_url, timeout)

        # GPT-5+ and reasoning models use a different API surface:
        # - max_completion_tokens instead of max_tokens
        # - temperature must be omitted (only default=1 supported)
        self._new_api = self._model.startswith(("gpt-5", "o3", "o4"))

    @property
    def model_name(self) -> str:
        return self._model

    def _completion_kwargs(self) -> dict:
        """Return model-appropriate kwargs for token limit and temperature."""
        if self._new_api:
            return {"max_completion_tokens": self.max_tokens}
        return {"max_tokens": self.max_tokens, "temperature": self.temperature}

    def complete(self, messages: List[Dict[str, str]]) -> str:
        """Send the turns and return the assistant's reply text."""
        try:
            response = self._client.chat.completions.create(
                model=self._model,
                messages=messages,
                **self._completion_kwargs(),
            )
        except openai.OpenAIError as e:
            raise ChatProviderError(
                f"Chat request failed: {type(e).__name__}", original_error=e
            ) from e

        content = response.choices[0].message.content if response.choices else None
        if not content or not content.strip():
            raise ChatProviderError(
                "Chat provider returned an empty reply",
                code=ErrorCode.CHAT_EMPTY_RESPONSE,
            )
        return content.strip()

"""Wiring of the journal core into one application object."""

import logging
import threading
from typing import Optional

from daynote.config import DaynoteConfig, config as default_config
from daynote.services.chat_service import ChatContextBuilder, ChatService
from daynote.services.edit_coordinator import ContentSavedCallback, EditCoordinator
from daynote.services.embedding_index import EmbeddingIndex
from daynote.services.embedding_service import EmbeddingService
from daynote.services.provider_types import ChatProvider, EmbeddingProvider
from daynote.services.search_service import SemanticRetrievalService
from daynote.storage.embedding_repository import EmbeddingRepository
from daynote.storage.note_store import NoteStore

logger = logging.getLogger(__name__)

# Distinguishes "build from config" from an explicit None (feature disabled)
_FROM_CONFIG = object()


class JournalApp:
    """Builds and owns every journal component.

    Providers are created from the configuration when a credential is
    present. Tests and embedders can pass their own providers instead, or
    pass ``None`` to disable a feature explicitly.

    Args:
        app_config: Settings to build from. Defaults to the global config.
        database_url: Overrides the database location from the config.
        embedding_provider: Provider override (None disables embeddings).
        chat_provider: Provider override (None disables chat).
    """

    def __init__(
        self,
        app_config: Optional[DaynoteConfig] = None,
        database_url: Optional[str] = None,
        embedding_provider=_FROM_CONFIG,
        chat_provider=_FROM_CONFIG,
        on_content_saved: Optional[ContentSavedCallback] = None,
    ):
        self.config = app_config or default_config

        if embedding_provider is _FROM_CONFIG:
            embedding_provider = self._create_embedding_provider()
        if chat_provider is _FROM_CONFIG:
            chat_provider = self._create_chat_provider()

        self.note_store = NoteStore(database_url=database_url or self.config.get_db_url())
        self.embedding_repository = EmbeddingRepository(self.note_store)
        self.embedding_service = EmbeddingService(embedding_provider)
        self.embedding_index = EmbeddingIndex(
            self.note_store,
            self.embedding_repository,
            self.embedding_service,
            backfill_delay_seconds=self.config.backfill_delay_seconds,
        )
        self.retrieval = SemanticRetrievalService(
            self.embedding_repository,
            self.embedding_service,
            relevance_threshold=self.config.relevance_threshold,
        )
        self.context_builder = ChatContextBuilder(
            self.retrieval,
            context_limit=self.config.chat_context_limit,
            snippet_length=self.config.snippet_length,
        )
        self.chat_service = ChatService(self.context_builder, chat_provider)
        self.coordinator = EditCoordinator(
            self.note_store,
            self.embedding_index,
            debounce_seconds=self.config.debounce_seconds,
            empty_document=self.config.empty_document,
            on_content_saved=on_content_saved,
        )
        self._backfill_thread: Optional[threading.Thread] = None

    def _create_embedding_provider(self) -> Optional[EmbeddingProvider]:
        if not self.config.is_configured():
            logger.info("No OpenAI API key configured; semantic search disabled")
            return None
        from daynote.services.openai_providers import OpenAIEmbeddingProvider

        logger.info(f"Embedding provider: {self.config.embedding_model}")
        return OpenAIEmbeddingProvider(
            api_key=self.config.openai_api_key,
            model=self.config.embedding_model,
            base_url=self.config.openai_base_url,
            timeout=self.config.provider_timeout,
        )

    def _create_chat_provider(self) -> Optional[ChatProvider]:
        if not self.config.is_configured():
            logger.info("No OpenAI API key configured; chat disabled")
            return None
        from daynote.services.openai_providers import OpenAIChatProvider

        logger.info(f"Chat provider: {self.config.chat_model}")
        return OpenAIChatProvider(
            api_key=self.config.openai_api_key,
            model=self.config.chat_model,
            max_tokens=self.config.chat_max_tokens,
            temperature=self.config.chat_temperature,
            base_url=self.config.openai_base_url,
            timeout=self.config.provider_timeout,
        )

    @property
    def is_configured(self) -> bool:
        """Whether semantic search and chat are enabled."""
        return self.embedding_service.is_configured and self.chat_service.is_configured

    def startup(self, backfill: Optional[bool] = None) -> None:
        """Initialise storage and optionally start the embedding backfill.

        Raises:
            StorageInitError: If the database cannot be prepared.
        """
        self.note_store.initialize()
        if backfill is None:
            backfill = self.config.backfill_on_startup
        if backfill and self.embedding_index.is_available:
            self._backfill_thread = self.embedding_index.start_backfill_in_background()
        logger.info("Journal started")

    def shutdown(self, timeout: float = 5.0) -> None:
        """Flush pending edits, wait for background work and close storage."""
        try:
            self.coordinator.close()
        except Exception as e:
            logger.error(f"Failed to flush pending edits on shutdown: {e}")
        if not self.coordinator.wait_for_background(timeout):
            logger.warning("Embedding updates still running at shutdown")
        if self._backfill_thread is not None:
            self._backfill_thread.join(timeout)
        self.note_store.shutdown()
        logger.info("Journal shut down")

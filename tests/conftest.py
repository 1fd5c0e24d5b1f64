"""Common test fixtures for the day journal."""

import pytest

from daynote.config import config
from daynote.services.chat_service import ChatContextBuilder, ChatService
from daynote.services.edit_coordinator import EditCoordinator
from daynote.services.embedding_index import EmbeddingIndex
from daynote.services.embedding_service import EmbeddingService
from daynote.services.search_service import SemanticRetrievalService
from daynote.storage.embedding_repository import EmbeddingRepository
from daynote.storage.note_store import NoteStore
from tests.fakes import FakeChatProvider, FakeEmbeddingProvider

# Short enough to keep the suite fast, long enough to coalesce rapid calls
TEST_DEBOUNCE = 0.05


@pytest.fixture
def test_config(tmp_path, monkeypatch):
    """Configure with test paths and no credential (auto-restored)."""
    monkeypatch.setattr(config, "base_dir", tmp_path)
    monkeypatch.setattr(config, "database_path", tmp_path / "db" / "journal.db")
    monkeypatch.setattr(config, "openai_api_key", None)
    monkeypatch.setattr(config, "backfill_delay_seconds", 0.0)
    monkeypatch.setattr(config, "backfill_on_startup", False)
    yield config


@pytest.fixture
def db_url(tmp_path):
    return f"sqlite:///{tmp_path / 'journal.db'}"


@pytest.fixture
def note_store(db_url):
    """An initialised NoteStore on a fresh database file."""
    store = NoteStore(database_url=db_url)
    store.initialize()
    yield store
    store.shutdown()


@pytest.fixture
def embedding_repository(note_store):
    return EmbeddingRepository(note_store)


@pytest.fixture
def fake_embedder():
    return FakeEmbeddingProvider()


@pytest.fixture
def fake_chat():
    return FakeChatProvider()


@pytest.fixture
def embedding_service(fake_embedder):
    return EmbeddingService(fake_embedder)


@pytest.fixture
def embedding_index(note_store, embedding_repository, embedding_service):
    return EmbeddingIndex(
        note_store,
        embedding_repository,
        embedding_service,
        backfill_delay_seconds=0.0,
    )


@pytest.fixture
def retrieval(embedding_repository, embedding_service):
    return SemanticRetrievalService(
        embedding_repository, embedding_service, relevance_threshold=0.3
    )


@pytest.fixture
def chat_service(retrieval, fake_chat):
    builder = ChatContextBuilder(retrieval, context_limit=3, snippet_length=200)
    return ChatService(builder, fake_chat)


@pytest.fixture
def coordinator(note_store, embedding_index):
    """An EditCoordinator with a short debounce and embedding updates."""
    coord = EditCoordinator(
        note_store,
        embedding_index,
        debounce_seconds=TEST_DEBOUNCE,
        empty_document="<p></p>",
    )
    yield coord
    try:
        coord.close()
    finally:
        coord.wait_for_background(timeout=5)

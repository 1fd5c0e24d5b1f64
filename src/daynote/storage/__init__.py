"""Storage layer for the daynote journal."""

from daynote.storage.embedding_repository import EmbeddingRepository
from daynote.storage.note_store import NoteStore

__all__ = ["NoteStore", "EmbeddingRepository"]

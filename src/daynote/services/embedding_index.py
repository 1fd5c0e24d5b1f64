"""Per-note embedding maintenance and the missing-embedding backfill."""

from __future__ import annotations

import logging
import threading
import time
from typing import Optional

from daynote.config import config
from daynote.exceptions import EmbeddingProviderError, StorageError
from daynote.models.schema import BackfillResult
from daynote.observability import traced
from daynote.services.embedding_service import EmbeddingService
from daynote.storage.embedding_repository import EmbeddingRepository
from daynote.storage.note_store import NoteStore
from daynote.utils import clean_note_text

logger = logging.getLogger(__name__)


class EmbeddingIndex:
    """Keeps each note's stored vector in step with its text.

    An embedding is only ever written for the text it was derived from:
    updating a note deletes the old vector before the new one is requested,
    so a failed provider call leaves the note unembedded rather than stale.

    Args:
        note_store: The initialised note store.
        repository: Vector persistence sharing the store's database.
        embedding_service: Provider wrapper; may be unconfigured.
        backfill_delay_seconds: Pause between provider calls during a
            backfill. Defaults to ``config.backfill_delay_seconds``.
    """

    def __init__(
        self,
        note_store: NoteStore,
        repository: EmbeddingRepository,
        embedding_service: EmbeddingService,
        backfill_delay_seconds: Optional[float] = None,
    ) -> None:
        self.note_store = note_store
        self.repository = repository
        self.embedding_service = embedding_service
        self.backfill_delay_seconds = (
            config.backfill_delay_seconds
            if backfill_delay_seconds is None
            else backfill_delay_seconds
        )
        self._backfill_lock = threading.Lock()
        # Held from reading a note's text until its vector is stored
        self._update_lock = threading.RLock()

    @property
    def is_available(self) -> bool:
        return self.embedding_service.is_configured

    @traced("embedding_update")
    def update_for_note(self, note_id: int, text: str) -> bool:
        """Recompute the embedding for one note.

        Args:
            note_id: Surrogate id of the note.
            text: The note's raw payload as just saved.

        Returns:
            True if a fresh embedding was stored, False if the note's
            cleaned text is empty (any old embedding is removed) or the note
            disappeared before the vector could be stored.

        Raises:
            EmbeddingProviderError: If the provider is unconfigured or fails.
                The note is left without an embedding.
            StorageError: If the vector cannot be written.
        """
        cleaned = clean_note_text(text)
        with self._update_lock:
            self.repository.delete(note_id)
            if not cleaned:
                logger.debug(f"Note {note_id} has no text to embed; embedding removed")
                return False

            vector = self.embedding_service.embed(cleaned)
            stored = self.repository.save(note_id, cleaned, vector)
            if stored is None:
                return False
            logger.debug(f"Embedded note {note_id} ({stored.dimension} dims)")
            return True

    def refresh_note(self, note_id: int) -> bool:
        """Re-read a note by id and embed its current text.

        The read and the store happen under the same lock as every other
        update, so a refresh that starts after a save always sees that
        save's text and finishes after any older update.

        Returns:
            False if the note no longer exists, else as ``update_for_note``.
        """
        with self._update_lock:
            note = self.note_store.get_by_id(note_id)
            if note is None:
                logger.debug(f"Note {note_id} deleted before embedding update")
                return False
            return self.update_for_note(note.id, note.text)

    @traced("embedding_backfill")
    def generate_missing_embeddings(self) -> BackfillResult:
        """Embed every note with non-empty cleaned text and no embedding.

        Notes are processed one at a time with a short pause between
        provider calls. Each note is re-read just before it is embedded, so
        an edit saved while the job runs is never overwritten with the text
        listed at the start. A failure for one note is counted and the job
        moves on. Runs are serialised; a second concurrent call waits.

        Returns:
            Counts of processed, succeeded and failed notes. All zero when
            the provider is not configured.
        """
        if not self.is_available:
            logger.info("Embedding provider not configured; skipping backfill")
            return BackfillResult()

        with self._backfill_lock:
            embedded_ids = self.repository.note_ids_with_embeddings()
            candidates = [
                note
                for note in self.note_store.list_all()
                if note.id not in embedded_ids and clean_note_text(note.text)
            ]
            if not candidates:
                logger.debug("No notes are missing embeddings")
                return BackfillResult()

            logger.info(f"Backfilling embeddings for {len(candidates)} notes")
            succeeded = 0
            failed = 0
            for i, note in enumerate(candidates):
                if i > 0 and self.backfill_delay_seconds > 0:
                    time.sleep(self.backfill_delay_seconds)
                try:
                    if self.refresh_note(note.id):
                        succeeded += 1
                    else:
                        failed += 1
                except (EmbeddingProviderError, StorageError) as e:
                    failed += 1
                    logger.warning(f"Failed to embed note {note.id} ({note.day}): {e}")

            result = BackfillResult(
                processed=len(candidates), succeeded=succeeded, failed=failed
            )
            logger.info(
                f"Backfill complete: {result.succeeded} embedded, "
                f"{result.failed} failed"
            )
            return result

    def _run_backfill(self) -> None:
        try:
            self.generate_missing_embeddings()
        except Exception as e:
            logger.warning(f"Background embedding backfill failed: {e}")

    def start_backfill_in_background(self) -> threading.Thread:
        """Launch the backfill in a daemon thread.

        Returns the thread so callers can join() in tests if needed.
        """
        thread = threading.Thread(
            target=self._run_backfill,
            daemon=True,
            name="embedding-backfill",
        )
        thread.start()
        logger.info("Embedding backfill started in background")
        return thread

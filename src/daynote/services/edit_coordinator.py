"""Autosave coordination for the note being edited.

The editor reports every content change; this module decides when that
content becomes durable. Changes are debounced, and navigating away from a
day forces a synchronous flush first, so an edit is never lost to a date
switch.

Usage:
    coordinator = EditCoordinator(note_store, embedding_index)
    text = coordinator.open("2024-03-15")
    coordinator.content_changed("<p>Hello</p>")   # saved after the debounce
    coordinator.open("2024-03-16")                 # flushes 03-15 first
    coordinator.close()
"""

from __future__ import annotations

import logging
import threading
from datetime import date
from enum import Enum
from typing import Callable, List, Optional, Union

from daynote.config import config
from daynote.exceptions import StorageError, StorageReadError, ValidationError
from daynote.models.schema import Note, validate_day
from daynote.services.embedding_index import EmbeddingIndex
from daynote.storage.note_store import NoteStore

logger = logging.getLogger(__name__)

ContentSavedCallback = Callable[[Note], None]


class SaveState(str, Enum):
    """Where an edit session stands relative to durable storage."""

    IDLE = "idle"  # latest content is persisted (or deliberately skipped)
    DIRTY = "dirty"  # unsaved content, a save is pending
    SAVING = "saving"  # a write is in flight


class EditSession:
    """Debounce/flush state machine for one open day.

    Writes for a session are serialised by a write lock, and the text
    written is always the newest recorded one, so the last edit wins even
    when a timer fire and a forced save race each other.

    Args:
        day: ISO day key of the note being edited.
        note_store: Where content is persisted.
        initial_text: The persisted text the editor was loaded with.
        debounce_seconds: Quiet period after the last change before saving.
        empty_document: Payload of an untouched editor; never persisted.
        on_saved: Called with the stored Note after every successful write.
    """

    def __init__(
        self,
        day: str,
        note_store: NoteStore,
        initial_text: str,
        debounce_seconds: float,
        empty_document: str,
        on_saved: Optional[ContentSavedCallback] = None,
    ) -> None:
        self.day = day
        self._store = note_store
        self._debounce_seconds = debounce_seconds
        self._empty_document = empty_document
        self._on_saved = on_saved

        self._state_lock = threading.Lock()
        self._write_lock = threading.Lock()
        self._timer: Optional[threading.Timer] = None
        self._state = SaveState.IDLE
        self._closed = False

        self._latest_text = initial_text
        self._last_persisted_text = initial_text

    @property
    def state(self) -> SaveState:
        with self._state_lock:
            return self._state

    @property
    def last_persisted_text(self) -> str:
        with self._state_lock:
            return self._last_persisted_text

    @property
    def latest_text(self) -> str:
        with self._state_lock:
            return self._latest_text

    @property
    def is_closed(self) -> bool:
        return self._closed

    def _arm_timer(self) -> None:
        """Start a fresh debounce timer. Caller holds ``_state_lock``."""
        if self._timer is not None:
            self._timer.cancel()
        self._timer = threading.Timer(self._debounce_seconds, self._on_timer)
        self._timer.daemon = True  # Don't block process exit
        self._timer.start()

    def _cancel_timer(self) -> None:
        """Cancel any pending timer. Caller holds ``_state_lock``."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _needs_save(self, text: str) -> bool:
        return text != self._last_persisted_text and text != self._empty_document

    def content_changed(self, text: str) -> None:
        """Record new editor content and restart the debounce window."""
        with self._state_lock:
            if self._closed:
                logger.warning(f"Ignoring edit for closed session {self.day}")
                return
            self._latest_text = text
            if self._state != SaveState.SAVING:
                self._state = SaveState.DIRTY
            self._arm_timer()

    def _on_timer(self) -> None:
        with self._state_lock:
            # Cancelled or replaced by a newer timer
            if self._timer is not threading.current_thread():
                return
            self._timer = None
        try:
            self._flush(propagate=False)
        except Exception as e:
            # Timer threads have no caller to report to
            logger.error(f"Autosave for {self.day} failed unexpectedly: {e}")

    def force_save(self) -> bool:
        """Persist the latest content now, whatever the current state.

        Cancels the pending debounce timer. Waits for an in-flight write
        before writing, so the newest text lands last.

        Returns:
            True if a write happened, False if nothing needed saving.

        Raises:
            StorageWriteError: If the write fails. The session stays DIRTY.
        """
        with self._state_lock:
            self._cancel_timer()
        return self._flush(propagate=True)

    def _flush(self, propagate: bool) -> bool:
        with self._write_lock:
            with self._state_lock:
                text = self._latest_text
                if not self._needs_save(text):
                    if self._state != SaveState.SAVING and self._timer is None:
                        self._state = SaveState.IDLE
                    return False
                self._state = SaveState.SAVING

            try:
                note = self._store.upsert(self.day, text)
            except StorageError as e:
                with self._state_lock:
                    self._state = SaveState.DIRTY
                if propagate:
                    raise
                logger.warning(f"Autosave for {self.day} failed, will retry: {e}")
                return False

            with self._state_lock:
                self._last_persisted_text = text
                if self._needs_save(self._latest_text):
                    # Newer content arrived while the write was in flight
                    self._state = SaveState.DIRTY
                    if self._timer is None and not self._closed:
                        self._arm_timer()
                else:
                    self._state = SaveState.IDLE

        if self._on_saved is not None:
            try:
                self._on_saved(note)
            except Exception as e:
                logger.warning(f"on_content_saved callback failed for {self.day}: {e}")
        return True

    def close(self) -> None:
        """Flush and tear the session down.

        Raises:
            StorageWriteError: If the final flush fails. The session is left
                open and dirty so the caller can retry.
        """
        self.force_save()
        with self._state_lock:
            self._cancel_timer()
            self._closed = True


class EditCoordinator:
    """Owns the EditSession of the currently focused day.

    Every successful save fires ``on_content_saved`` and, when an embedding
    index is available, a detached embedding update on a daemon thread.
    Embedding failures are logged and never reach the save path.

    Args:
        note_store: The initialised note store.
        embedding_index: Optional index refreshed after each save.
        debounce_seconds: Defaults to ``config.debounce_seconds``.
        empty_document: Defaults to ``config.empty_document``.
        on_content_saved: Optional observer of successful saves.
    """

    def __init__(
        self,
        note_store: NoteStore,
        embedding_index: Optional[EmbeddingIndex] = None,
        debounce_seconds: Optional[float] = None,
        empty_document: Optional[str] = None,
        on_content_saved: Optional[ContentSavedCallback] = None,
    ) -> None:
        self.note_store = note_store
        self.embedding_index = embedding_index
        self.debounce_seconds = (
            config.debounce_seconds if debounce_seconds is None else debounce_seconds
        )
        self.empty_document = (
            config.empty_document if empty_document is None else empty_document
        )
        self.on_content_saved = on_content_saved

        self._lock = threading.RLock()
        self._session: Optional[EditSession] = None

        self._background_lock = threading.Lock()
        self._background: List[threading.Thread] = []

    @property
    def session(self) -> Optional[EditSession]:
        return self._session

    @property
    def active_day(self) -> Optional[str]:
        session = self._session
        return session.day if session is not None else None

    @property
    def state(self) -> Optional[SaveState]:
        session = self._session
        return session.state if session is not None else None

    def open(self, day: Union[str, date]) -> str:
        """Switch editing to ``day`` and return its persisted text.

        The current session is force-saved and closed first. If that flush
        fails the error propagates and the current session stays active, so
        the unsaved edit is not lost. A failed read of the new day opens it
        as empty.

        Raises:
            ValidationError: If ``day`` is not a valid day key.
            StorageWriteError: If flushing the current session fails.
        """
        day = validate_day(day)
        with self._lock:
            if self._session is not None:
                self._session.close()
                self._session = None

            try:
                note = self.note_store.get(day)
            except StorageReadError as e:
                logger.warning(f"Could not load note for {day}, opening empty: {e}")
                note = None
            text = note.text if note is not None else ""

            self._session = EditSession(
                day=day,
                note_store=self.note_store,
                initial_text=text,
                debounce_seconds=self.debounce_seconds,
                empty_document=self.empty_document,
                on_saved=self._handle_saved,
            )
            logger.debug(f"Opened edit session for {day}")
            return text

    def content_changed(self, text: str) -> None:
        """Forward an editor change to the active session.

        Raises:
            ValidationError: If no day is open.
        """
        session = self._session
        if session is None:
            raise ValidationError("No day is open for editing", field="day")
        session.content_changed(text)

    def force_save(self) -> bool:
        """Synchronously flush the active session. False if none is open."""
        with self._lock:
            if self._session is None:
                return False
            return self._session.force_save()

    def close(self) -> None:
        """Flush and close the active session, if any."""
        with self._lock:
            if self._session is not None:
                self._session.close()
                self._session = None

    def _handle_saved(self, note: Note) -> None:
        if self.on_content_saved is not None:
            try:
                self.on_content_saved(note)
            except Exception as e:
                logger.warning(f"on_content_saved callback failed for {note.day}: {e}")
        self._spawn_embedding_update(note)

    def _spawn_embedding_update(self, note: Note) -> None:
        if self.embedding_index is None or not self.embedding_index.is_available:
            return
        thread = threading.Thread(
            target=self._update_embedding,
            args=(note.id,),
            daemon=True,
            name=f"embed-{note.day}",
        )
        with self._background_lock:
            self._background = [t for t in self._background if t.is_alive()]
            self._background.append(thread)
        thread.start()

    def _update_embedding(self, note_id: int) -> None:
        """Refresh one note's embedding. Runs on a detached thread."""
        try:
            self.embedding_index.refresh_note(note_id)
        except Exception as e:
            logger.warning(f"Failed to update embedding for note {note_id}: {e}")

    def wait_for_background(self, timeout: Optional[float] = None) -> bool:
        """Join outstanding embedding updates.

        Returns:
            True if every background update finished within ``timeout``.
        """
        with self._background_lock:
            threads = list(self._background)
        for thread in threads:
            thread.join(timeout)
        with self._background_lock:
            self._background = [t for t in self._background if t.is_alive()]
            return not self._background

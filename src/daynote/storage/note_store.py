"""Durable day-keyed note storage."""

import logging
import threading
import weakref
from datetime import date
from typing import List, Optional, Union

from sqlalchemy import func, select, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from daynote.config import config
from daynote.exceptions import (
    ErrorCode,
    StorageInitError,
    StorageReadError,
    StorageWriteError,
)
from daynote.models.db_models import DBNote, get_session_factory, init_db
from daynote.models.schema import (
    Note,
    ensure_timezone_aware,
    utc_now,
    validate_day,
)
from daynote.observability import traced

logger = logging.getLogger(__name__)


def note_from_db(db_note: DBNote) -> Note:
    """Convert a notes row into the Note model."""
    return Note(
        id=db_note.id,
        day=db_note.day,
        text=db_note.text or "",
        created_at=ensure_timezone_aware(db_note.created_at),
        updated_at=ensure_timezone_aware(db_note.updated_at),
    )


class NoteStore:
    """Repository for the one-note-per-day table.

    The store is the single source of truth for note content. It owns the
    schema lifecycle: ``initialize()`` must complete before any other call.
    There are no retries here; failures surface immediately as
    ``StorageReadError`` / ``StorageWriteError`` and the caller decides how
    to recover.
    """

    def __init__(
        self,
        database_url: Optional[str] = None,
        engine: Optional[Engine] = None,
    ):
        """Create an (uninitialised) store.

        Args:
            database_url: SQLAlchemy URL of the SQLite database. Defaults to
                ``config.get_db_url()`` when neither argument is given.
            engine: Pre-configured engine to use instead of creating one.
        """
        self._database_url = database_url
        self.engine: Optional[Engine] = engine
        self.session_factory = None

        self._init_lock = threading.Lock()
        self._initialized = False

        # Per-day write locks (WeakValueDictionary so unused locks are
        # garbage collected)
        self._day_locks: weakref.WeakValueDictionary[str, threading.RLock] = (
            weakref.WeakValueDictionary()
        )
        self._day_locks_lock = threading.Lock()

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    def initialize(self) -> None:
        """Create the schema if absent. Idempotent and thread-safe.

        Raises:
            StorageInitError: If the database cannot be opened or the
                schema cannot be created. The application cannot run
                without durable storage.
        """
        if self._initialized:
            return
        with self._init_lock:
            if self._initialized:
                return
            try:
                db_url = self._database_url or config.get_db_url()
                self.engine = init_db(engine=self.engine, db_url=db_url)
                self.session_factory = get_session_factory(self.engine)
                with self.engine.connect() as conn:
                    conn.execute(text("SELECT 1"))
            except Exception as e:
                raise StorageInitError(
                    f"Failed to initialize note storage: {e}",
                    operation="initialize",
                    original_error=e,
                ) from e
            self._initialized = True
            logger.info(f"NoteStore initialized: {self.engine.url}")

    def shutdown(self) -> None:
        """Release the engine's connections."""
        with self._init_lock:
            if self.engine is not None:
                self.engine.dispose()
            self._initialized = False
        logger.info("NoteStore shut down")

    def require_initialized(self) -> None:
        """Raise StorageInitError unless initialize() has completed."""
        if not self._initialized:
            raise StorageInitError(
                "NoteStore used before initialize() completed",
                code=ErrorCode.STORAGE_NOT_INITIALIZED,
            )

    def _get_day_lock(self, day: str) -> threading.RLock:
        """Get or create the write lock for a specific day."""
        with self._day_locks_lock:
            lock = self._day_locks.get(day)
            if lock is None:
                lock = threading.RLock()
                self._day_locks[day] = lock
            return lock

    @traced("note_get")
    def get(self, day: Union[str, date]) -> Optional[Note]:
        """Get the note for a day.

        Returns:
            The Note, or None if the day has never been written.

        Raises:
            ValidationError: If ``day`` is not a valid day key.
            StorageReadError: On storage I/O failure.
        """
        day = validate_day(day)
        self.require_initialized()
        try:
            with self.session_factory() as session:
                db_note = session.scalar(select(DBNote).where(DBNote.day == day))
                return note_from_db(db_note) if db_note else None
        except SQLAlchemyError as e:
            raise StorageReadError(
                f"Failed to read note for {day}",
                operation="get",
                day=day,
                original_error=e,
            ) from e

    def get_by_id(self, note_id: int) -> Optional[Note]:
        """Get a note by its surrogate id."""
        self.require_initialized()
        try:
            with self.session_factory() as session:
                db_note = session.get(DBNote, note_id)
                return note_from_db(db_note) if db_note else None
        except SQLAlchemyError as e:
            raise StorageReadError(
                f"Failed to read note {note_id}",
                operation="get_by_id",
                original_error=e,
            ) from e

    @traced("note_upsert")
    def upsert(self, day: Union[str, date], text: str) -> Note:
        """Insert the day's note, or overwrite its text.

        This is the only mutation path for note content. ``updated_at`` is
        refreshed on every call and never moves backwards; ``id`` and
        ``created_at`` are kept once the row exists.

        Raises:
            ValidationError: If ``day`` is not a valid day key.
            StorageWriteError: If the write fails.
        """
        day = validate_day(day)
        self.require_initialized()
        text = text if text is not None else ""

        with self._get_day_lock(day):
            try:
                with self.session_factory() as session:
                    now = utc_now()
                    db_note = session.scalar(select(DBNote).where(DBNote.day == day))
                    if db_note is None:
                        db_note = DBNote(
                            day=day, text=text, created_at=now, updated_at=now
                        )
                        session.add(db_note)
                    else:
                        db_note.text = text
                        db_note.updated_at = max(
                            now, ensure_timezone_aware(db_note.updated_at)
                        )
                    session.commit()
                    note = note_from_db(db_note)
            except SQLAlchemyError as e:
                raise StorageWriteError(
                    f"Failed to save note for {day}",
                    operation="upsert",
                    day=day,
                    original_error=e,
                ) from e

        logger.debug(f"Saved note {note.id} for {day} ({len(text)} chars)")
        return note

    def list_edited_dates(self) -> List[str]:
        """All days whose text is present and non-blank, in calendar order."""
        self.require_initialized()
        try:
            with self.session_factory() as session:
                rows = session.scalars(
                    select(DBNote.day)
                    .where(DBNote.text.is_not(None))
                    .where(func.trim(DBNote.text) != "")
                    .order_by(DBNote.day)
                ).all()
                return list(rows)
        except SQLAlchemyError as e:
            raise StorageReadError(
                "Failed to list edited dates",
                operation="list_edited_dates",
                original_error=e,
            ) from e

    def list_all(self) -> List[Note]:
        """Every note, newest ``created_at`` first."""
        self.require_initialized()
        try:
            with self.session_factory() as session:
                db_notes = session.scalars(
                    select(DBNote).order_by(
                        DBNote.created_at.desc(), DBNote.id.desc()
                    )
                ).all()
                return [note_from_db(n) for n in db_notes]
        except SQLAlchemyError as e:
            raise StorageReadError(
                "Failed to list notes",
                operation="list_all",
                original_error=e,
            ) from e

    def count_notes(self) -> int:
        self.require_initialized()
        try:
            with self.session_factory() as session:
                return session.scalar(select(func.count(DBNote.id))) or 0
        except SQLAlchemyError as e:
            raise StorageReadError(
                "Failed to count notes",
                operation="count_notes",
                original_error=e,
            ) from e

    @traced("note_delete")
    def delete(self, day: Union[str, date]) -> bool:
        """Remove the day's note and, through the cascade, its embedding.

        Returns:
            True if a note was deleted, False if the day had none.
        """
        day = validate_day(day)
        self.require_initialized()
        with self._get_day_lock(day):
            try:
                with self.session_factory() as session:
                    db_note = session.scalar(select(DBNote).where(DBNote.day == day))
                    if db_note is None:
                        return False
                    session.delete(db_note)
                    session.commit()
            except SQLAlchemyError as e:
                raise StorageWriteError(
                    f"Failed to delete note for {day}",
                    operation="delete",
                    day=day,
                    code=ErrorCode.STORAGE_DELETE_FAILED,
                    original_error=e,
                ) from e
        logger.info(f"Deleted note for {day}")
        return True

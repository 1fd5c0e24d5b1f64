"""Persistence for the vectors derived from note text."""

import json
import logging
from typing import List, Optional, Sequence, Set, Tuple

import numpy as np
from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError

from daynote.exceptions import ErrorCode, StorageReadError, StorageWriteError
from daynote.models.db_models import DBNote, DBNoteEmbedding
from daynote.models.schema import Embedding, Note, ensure_timezone_aware, utc_now
from daynote.storage.note_store import NoteStore, note_from_db

logger = logging.getLogger(__name__)


def _encode_vector(vector: Sequence[float]) -> str:
    return json.dumps([float(v) for v in vector])


def _decode_vector(raw: str) -> np.ndarray:
    return np.asarray(json.loads(raw), dtype=np.float32)


class EmbeddingRepository:
    """Reads and writes the at-most-one embedding row of each note.

    Shares the engine of the ``NoteStore`` it is built on, so the cascade
    from a deleted note reaches its embedding in the same database.
    """

    def __init__(self, note_store: NoteStore):
        self.note_store = note_store

    def _session(self):
        self.note_store.require_initialized()
        return self.note_store.session_factory()

    @staticmethod
    def _to_model(db_emb: DBNoteEmbedding) -> Embedding:
        return Embedding(
            id=db_emb.id,
            note_id=db_emb.note_id,
            source_text=db_emb.embedding_text,
            vector=json.loads(db_emb.embedding_vector),
            created_at=ensure_timezone_aware(db_emb.created_at),
        )

    def save(
        self, note_id: int, source_text: str, vector: Sequence[float]
    ) -> Optional[Embedding]:
        """Replace the note's embedding with a new one.

        Existing rows for the note are removed in the same transaction, so a
        note never ends up with two embeddings. If the note was deleted in
        the meantime nothing is written and None is returned.

        Raises:
            StorageWriteError: If the write fails.
        """
        try:
            with self._session() as session:
                session.execute(
                    delete(DBNoteEmbedding).where(DBNoteEmbedding.note_id == note_id)
                )
                if session.get(DBNote, note_id) is None:
                    session.commit()
                    logger.debug(f"Note {note_id} vanished before its embedding landed")
                    return None
                db_emb = DBNoteEmbedding(
                    note_id=note_id,
                    embedding_text=source_text,
                    embedding_vector=_encode_vector(vector),
                    created_at=utc_now(),
                )
                session.add(db_emb)
                session.commit()
                return self._to_model(db_emb)
        except SQLAlchemyError as e:
            raise StorageWriteError(
                f"Failed to save embedding for note {note_id}",
                operation="save_embedding",
                original_error=e,
            ) from e

    def get(self, note_id: int) -> Optional[Embedding]:
        try:
            with self._session() as session:
                db_emb = session.scalar(
                    select(DBNoteEmbedding)
                    .where(DBNoteEmbedding.note_id == note_id)
                    .order_by(DBNoteEmbedding.id.desc())
                    .limit(1)
                )
                return self._to_model(db_emb) if db_emb else None
        except SQLAlchemyError as e:
            raise StorageReadError(
                f"Failed to read embedding for note {note_id}",
                operation="get_embedding",
                original_error=e,
            ) from e

    def delete(self, note_id: int) -> bool:
        """Remove the note's embedding. Returns True if a row was removed."""
        try:
            with self._session() as session:
                result = session.execute(
                    delete(DBNoteEmbedding).where(DBNoteEmbedding.note_id == note_id)
                )
                session.commit()
                return (result.rowcount or 0) > 0
        except SQLAlchemyError as e:
            raise StorageWriteError(
                f"Failed to delete embedding for note {note_id}",
                operation="delete_embedding",
                code=ErrorCode.STORAGE_DELETE_FAILED,
                original_error=e,
            ) from e

    def list_all(self) -> List[Embedding]:
        try:
            with self._session() as session:
                rows = session.scalars(
                    select(DBNoteEmbedding).order_by(DBNoteEmbedding.note_id)
                ).all()
                return [self._to_model(r) for r in rows]
        except SQLAlchemyError as e:
            raise StorageReadError(
                "Failed to list embeddings",
                operation="list_embeddings",
                original_error=e,
            ) from e

    def list_with_notes(self) -> List[Tuple[Note, np.ndarray]]:
        """Every embedded note paired with its vector.

        Notes without an embedding are not part of the result.
        """
        try:
            with self._session() as session:
                rows = session.execute(
                    select(DBNote, DBNoteEmbedding.embedding_vector)
                    .join(DBNoteEmbedding, DBNoteEmbedding.note_id == DBNote.id)
                    .order_by(DBNote.created_at.desc(), DBNote.id.desc())
                ).all()
                return [
                    (note_from_db(db_note), _decode_vector(raw))
                    for db_note, raw in rows
                ]
        except SQLAlchemyError as e:
            raise StorageReadError(
                "Failed to load embedded notes",
                operation="list_with_notes",
                original_error=e,
            ) from e
        except (TypeError, ValueError) as e:
            raise StorageReadError(
                "Stored embedding vector is corrupt",
                operation="list_with_notes",
                original_error=e,
            ) from e

    def note_ids_with_embeddings(self) -> Set[int]:
        try:
            with self._session() as session:
                return set(
                    session.scalars(select(DBNoteEmbedding.note_id).distinct()).all()
                )
        except SQLAlchemyError as e:
            raise StorageReadError(
                "Failed to list embedded note ids",
                operation="note_ids_with_embeddings",
                original_error=e,
            ) from e

    def count(self) -> int:
        try:
            with self._session() as session:
                return session.scalar(select(func.count(DBNoteEmbedding.id))) or 0
        except SQLAlchemyError as e:
            raise StorageReadError(
                "Failed to count embeddings",
                operation="count_embeddings",
                original_error=e,
            ) from e

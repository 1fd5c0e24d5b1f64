"""SQLAlchemy database models for the daynote journal."""
import datetime
from typing import Optional

from sqlalchemy import (Column, DateTime, ForeignKey, Index, Integer, String,
                        Text, create_engine, event)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, relationship, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

# Create base class for SQLAlchemy models
Base = declarative_base()


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class DBNote(Base):
    """Database model for a day's note."""
    __tablename__ = "notes"
    id = Column(Integer, primary_key=True, autoincrement=True)
    day = Column(String(10), unique=True, nullable=False)
    text = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    # Relationships
    embeddings = relationship(
        "DBNoteEmbedding",
        back_populates="note",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        """Return string representation of note."""
        return f"<Note(id={self.id}, day='{self.day}')>"


class DBNoteEmbedding(Base):
    """Database model for the vector derived from a note's cleaned text."""
    __tablename__ = "note_embeddings"
    id = Column(Integer, primary_key=True, autoincrement=True)
    note_id = Column(
        Integer, ForeignKey("notes.id", ondelete="CASCADE"), nullable=False
    )
    embedding_text = Column(Text, nullable=False)
    # JSON array of floats
    embedding_vector = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    note = relationship("DBNote", back_populates="embeddings")

    __table_args__ = (
        Index("idx_note_embeddings_note_id", "note_id"),
    )

    def __repr__(self) -> str:
        """Return string representation of embedding."""
        return f"<NoteEmbedding(id={self.id}, note_id={self.note_id})>"


def _is_memory_url(url: str) -> bool:
    return url in ("sqlite://", "sqlite:///:memory:") or ":memory:" in url


def create_db_engine(db_url: str) -> Engine:
    """Create an engine with hardened SQLite configuration.

    - WAL (Write-Ahead Logging) mode for atomic writes
    - NORMAL synchronous mode (good balance of safety vs speed)
    - foreign_keys=ON so deleting a note cascades to its embedding
    - QueuePool with pre-ping for file databases; a single shared
      connection (StaticPool) for in-memory databases
    """
    if _is_memory_url(db_url):
        engine = create_engine(
            db_url,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    else:
        # SQLite is single-writer, so a small pool is ideal
        engine = create_engine(
            db_url,
            poolclass=QueuePool,
            pool_size=5,
            max_overflow=10,
            pool_timeout=30,
            pool_pre_ping=True,
            connect_args={"check_same_thread": False, "timeout": 30},
        )

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        if not _is_memory_url(db_url):
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA synchronous=NORMAL")
        # SQLite ignores ON DELETE CASCADE unless enabled per connection
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    return engine


def init_db(engine: Optional[Engine] = None, db_url: Optional[str] = None) -> Engine:
    """Create the schema if absent and return the engine.

    Safe to run repeatedly: ``create_all`` only creates missing tables and
    indexes.
    """
    if engine is None:
        if db_url is None:
            raise ValueError("init_db needs an engine or a database URL")
        engine = create_db_engine(db_url)
    Base.metadata.create_all(engine)
    return engine


def get_session_factory(engine: Engine):
    """Get a session factory for the database."""
    return sessionmaker(bind=engine, expire_on_commit=False)

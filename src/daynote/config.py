"""Configuration module for the daynote journal."""

import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

from daynote import __version__

# Load environment variables from the project root .env file.
# Anchored to __file__ so it works regardless of the process CWD.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
load_dotenv(_PROJECT_ROOT / ".env")

# User-level config: lives alongside the default database
_USER_ENV = Path.home() / ".daynote" / ".env"
load_dotenv(_USER_ENV)


logger = logging.getLogger(__name__)

_TRUE_VALUES = ("true", "1", "yes")


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in _TRUE_VALUES


def _api_key_from_env() -> Optional[str]:
    """Read the provider credential, preferring the daynote-specific variable."""
    key = os.getenv("DAYNOTE_OPENAI_API_KEY") or os.getenv("OPENAI_API_KEY")
    if not key:
        return None
    return key.strip() or None


class DaynoteConfig(BaseModel):
    """Configuration for the journal core."""

    # Base directory for relative paths
    base_dir: Path = Field(
        default_factory=lambda: Path(os.getenv("DAYNOTE_BASE_DIR", "."))
    )
    # Database configuration
    database_path: Path = Field(
        default_factory=lambda: Path(
            os.getenv("DAYNOTE_DATABASE_PATH", "data/db/daynote.db")
        )
    )
    # Provider credential. A single value gates both embeddings and chat.
    openai_api_key: Optional[str] = Field(default_factory=_api_key_from_env)
    openai_base_url: Optional[str] = Field(
        default_factory=lambda: os.getenv("DAYNOTE_OPENAI_BASE_URL") or None
    )
    embedding_model: str = Field(
        default_factory=lambda: os.getenv(
            "DAYNOTE_EMBEDDING_MODEL", "text-embedding-3-small"
        )
    )
    chat_model: str = Field(
        default_factory=lambda: os.getenv("DAYNOTE_CHAT_MODEL", "gpt-3.5-turbo")
    )
    chat_max_tokens: int = Field(
        default_factory=lambda: int(os.getenv("DAYNOTE_CHAT_MAX_TOKENS", "500"))
    )
    chat_temperature: float = Field(
        default_factory=lambda: float(os.getenv("DAYNOTE_CHAT_TEMPERATURE", "0.7"))
    )
    # Seconds; passed to the HTTP client of both providers
    provider_timeout: float = Field(
        default_factory=lambda: float(os.getenv("DAYNOTE_PROVIDER_TIMEOUT", "30"))
    )
    # Autosave: delay after the last edit before a save is attempted
    debounce_seconds: float = Field(
        default_factory=lambda: float(os.getenv("DAYNOTE_DEBOUNCE_SECONDS", "0.25"))
    )
    # Editor payload for a document the user never wrote in; never persisted
    empty_document: str = Field(
        default_factory=lambda: os.getenv("DAYNOTE_EMPTY_DOCUMENT", "<p></p>")
    )
    # Retrieval
    relevance_threshold: float = Field(
        default_factory=lambda: float(
            os.getenv("DAYNOTE_RELEVANCE_THRESHOLD", "0.3")
        )
    )
    chat_context_limit: int = Field(
        default_factory=lambda: int(os.getenv("DAYNOTE_CHAT_CONTEXT_LIMIT", "3"))
    )
    snippet_length: int = Field(
        default_factory=lambda: int(os.getenv("DAYNOTE_SNIPPET_LENGTH", "200"))
    )
    # Backfill pacing between provider calls (rate-limit courtesy)
    backfill_delay_seconds: float = Field(
        default_factory=lambda: float(os.getenv("DAYNOTE_BACKFILL_DELAY", "0.1"))
    )
    backfill_on_startup: bool = Field(
        default_factory=lambda: _env_flag("DAYNOTE_BACKFILL_ON_STARTUP", "true")
    )
    # Server configuration
    server_name: str = Field(
        default_factory=lambda: os.getenv("DAYNOTE_SERVER_NAME", "daynote")
    )
    server_version: str = Field(default=__version__)

    @model_validator(mode="after")
    def _validate_ranges(self) -> "DaynoteConfig":
        """Reject values the coordinator and retrieval cannot work with."""
        if self.debounce_seconds < 0:
            raise ValueError("debounce_seconds must be >= 0")
        if self.backfill_delay_seconds < 0:
            raise ValueError("backfill_delay_seconds must be >= 0")
        if not -1.0 <= self.relevance_threshold <= 1.0:
            raise ValueError("relevance_threshold must be within [-1, 1]")
        if self.chat_context_limit < 1:
            raise ValueError("chat_context_limit must be >= 1")
        if self.snippet_length < 1:
            raise ValueError("snippet_length must be >= 1")
        if self.chat_max_tokens < 1:
            raise ValueError("chat_max_tokens must be >= 1")
        return self

    def is_configured(self) -> bool:
        """Whether the provider credential is present.

        Answers without contacting any provider so callers can disable
        semantic search and chat up front.
        """
        return bool(self.openai_api_key)

    def get_absolute_path(self, path: Path) -> Path:
        """Convert a relative path to an absolute path based on base_dir."""
        if path.is_absolute():
            return path
        return self.base_dir / path

    def get_db_url(self) -> str:
        """Get the database URL for SQLite."""
        db_path = self.get_absolute_path(self.database_path)
        db_path.parent.mkdir(parents=True, exist_ok=True)
        return f"sqlite:///{db_path}"


# Create a global config instance
config = DaynoteConfig()

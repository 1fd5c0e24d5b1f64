"""Data models for the daynote journal."""

import datetime
import re
from dataclasses import asdict, dataclass
from datetime import timezone
from enum import Enum
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, Field, field_validator

from daynote.exceptions import ErrorCode, ValidationError

# Day keys are ISO calendar dates: YYYY-MM-DD
DAY_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def validate_day(value: Union[str, datetime.date]) -> str:
    """Normalise and validate a day key.

    Accepts a ``datetime.date`` (converted to its ISO form) or a string that
    is already a real calendar date in ``YYYY-MM-DD`` form.

    Args:
        value: The day to validate

    Returns:
        The ISO day string

    Raises:
        ValidationError: If the value is not a valid calendar day
    """
    if isinstance(value, datetime.datetime):
        value = value.date()
    if isinstance(value, datetime.date):
        return value.isoformat()
    if not isinstance(value, str) or not DAY_PATTERN.match(value):
        raise ValidationError(
            "Day must be an ISO date in YYYY-MM-DD form",
            field="day",
            value=value,
            code=ErrorCode.INVALID_DAY,
        )
    try:
        datetime.date.fromisoformat(value)
    except ValueError:
        raise ValidationError(
            f"'{value}' is not a valid calendar date",
            field="day",
            value=value,
            code=ErrorCode.INVALID_DAY,
        )
    return value


def utc_now() -> datetime.datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.datetime.now(timezone.utc)


def ensure_timezone_aware(dt_value: Optional[datetime.datetime]) -> datetime.datetime:
    """Ensure a datetime is timezone-aware, treating naive datetimes as UTC.

    SQLite hands DateTime columns back without tzinfo; everything written
    by the store is UTC.
    """
    if dt_value is None:
        return utc_now()
    if dt_value.tzinfo is None:
        return dt_value.replace(tzinfo=timezone.utc)
    return dt_value


class Note(BaseModel):
    """The journal entry for one calendar day."""

    id: int = Field(..., description="Surrogate key, stable for the note's lifetime")
    day: str = Field(..., description="ISO day key (YYYY-MM-DD)")
    text: str = Field(default="", description="Opaque rich-text payload")
    created_at: datetime.datetime = Field(
        default_factory=utc_now, description="When the note was first written (UTC)"
    )
    updated_at: datetime.datetime = Field(
        default_factory=utc_now, description="Last successful write (UTC)"
    )

    model_config = {"frozen": True}

    @field_validator("day")
    @classmethod
    def _check_day(cls, v: str) -> str:
        return validate_day(v)

    @field_validator("created_at", "updated_at")
    @classmethod
    def _aware(cls, v: datetime.datetime) -> datetime.datetime:
        return ensure_timezone_aware(v)

    @property
    def has_content(self) -> bool:
        return bool(self.text and self.text.strip())


class Embedding(BaseModel):
    """A stored vector for one note, with the text it was derived from."""

    id: int
    note_id: int
    source_text: str = Field(..., description="Cleaned text the vector came from")
    vector: List[float]
    created_at: datetime.datetime = Field(default_factory=utc_now)

    model_config = {"frozen": True}

    @field_validator("created_at")
    @classmethod
    def _aware(cls, v: datetime.datetime) -> datetime.datetime:
        return ensure_timezone_aware(v)

    @property
    def dimension(self) -> int:
        return len(self.vector)


@dataclass(frozen=True)
class BackfillResult:
    """Outcome of a missing-embedding backfill run."""

    processed: int = 0
    succeeded: int = 0
    failed: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


class ChatRole(str, Enum):
    """Roles of the messages exchanged with the chat provider."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class ChatMessage(BaseModel):
    """One turn of a chat exchange."""

    role: ChatRole
    content: str
    timestamp: datetime.datetime = Field(default_factory=utc_now)
    # Assistant turns standing in for a failed exchange
    is_error: bool = False

    model_config = {"frozen": True}

    def to_provider_dict(self) -> Dict[str, str]:
        """The role/content pair the completion provider consumes."""
        return {"role": self.role.value, "content": self.content}

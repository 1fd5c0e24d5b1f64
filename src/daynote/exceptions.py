"""Custom exceptions for the daynote journal.

Every error carries a numeric ``ErrorCode`` and a ``details`` dict so the
MCP layer and the logs can report it without parsing message strings.
"""
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(Enum):
    """Error codes for machine-readable error identification."""

    # Note errors (1xxx)
    INVALID_DAY = 1002

    # Storage errors (4xxx)
    STORAGE_INIT_FAILED = 4000
    STORAGE_READ_FAILED = 4001
    STORAGE_WRITE_FAILED = 4002
    STORAGE_DELETE_FAILED = 4003
    STORAGE_NOT_INITIALIZED = 4004

    # Embedding errors (5xxx)
    EMBEDDING_UNAVAILABLE = 5001
    EMBEDDING_EMPTY_INPUT = 5002
    EMBEDDING_PROVIDER_FAILED = 5003

    # Chat errors (55xx)
    CHAT_PROVIDER_FAILED = 5502
    CHAT_EMPTY_RESPONSE = 5503

    # Configuration errors (6xxx)
    CONFIG_INVALID = 6001
    CONFIG_MISSING = 6002

    # Validation errors (7xxx)
    VALIDATION_FAILED = 7001


class DaynoteError(Exception):
    """Base exception for all journal errors.

    Attributes:
        message: Human-readable error message
        code: Machine-readable error code
        details: Additional context about the error
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.VALIDATION_FAILED,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to a dictionary for serialization."""
        return {
            "error": self.__class__.__name__,
            "code": self.code.value,
            "code_name": self.code.name,
            "message": self.message,
            "details": self.details,
        }

    def __str__(self) -> str:
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"[{self.code.name}] {self.message} ({detail_str})"
        return f"[{self.code.name}] {self.message}"


class StorageError(DaynoteError):
    """Raised for storage/persistence errors."""

    default_code = ErrorCode.STORAGE_READ_FAILED

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        day: Optional[str] = None,
        code: Optional[ErrorCode] = None,
        original_error: Optional[Exception] = None,
    ):
        details: Dict[str, Any] = {}
        if operation:
            details["operation"] = operation
        if day:
            details["day"] = day
        if original_error:
            details["original_error"] = str(original_error)[:200]

        super().__init__(message, code=code or self.default_code, details=details)
        self.operation = operation
        self.day = day
        self.original_error = original_error


class StorageInitError(StorageError):
    """The durable store could not be prepared. Fatal at startup."""

    default_code = ErrorCode.STORAGE_INIT_FAILED


class StorageReadError(StorageError):
    """A read failed. Callers treat it as "no note found"."""

    default_code = ErrorCode.STORAGE_READ_FAILED


class StorageWriteError(StorageError):
    """A write failed. The edit stays pending for the next save attempt."""

    default_code = ErrorCode.STORAGE_WRITE_FAILED


class EmbeddingProviderError(DaynoteError):
    """Raised when a text cannot be turned into a vector.

    Covers missing credentials, empty input and network/auth failures.
    Never fatal: the note save path is unaffected.
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.EMBEDDING_PROVIDER_FAILED,
        operation: Optional[str] = None,
        note_id: Optional[int] = None,
        original_error: Optional[Exception] = None,
    ):
        details: Dict[str, Any] = {}
        if operation:
            details["operation"] = operation
        if note_id is not None:
            details["note_id"] = note_id
        if original_error:
            details["original_error"] = str(original_error)[:200]

        super().__init__(message, code=code, details=details)
        self.operation = operation
        self.note_id = note_id
        self.original_error = original_error


class ChatProviderError(DaynoteError):
    """Raised when the chat-completion provider fails. Retryable."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.CHAT_PROVIDER_FAILED,
        original_error: Optional[Exception] = None,
    ):
        details: Dict[str, Any] = {}
        if original_error:
            details["original_error"] = str(original_error)[:200]

        super().__init__(message, code=code, details=details)
        self.original_error = original_error


class ConfigurationError(DaynoteError):
    """Raised for configuration-related errors."""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        code: ErrorCode = ErrorCode.CONFIG_INVALID,
    ):
        details = {}
        if config_key:
            details["config_key"] = config_key

        super().__init__(message, code=code, details=details)
        self.config_key = config_key


class ValidationError(DaynoteError):
    """Raised for general validation errors."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        code: ErrorCode = ErrorCode.VALIDATION_FAILED,
    ):
        details = {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)[:100]

        super().__init__(message, code=code, details=details)
        self.field = field
        self.value = value

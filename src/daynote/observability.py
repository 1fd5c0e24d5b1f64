"""Observability utilities for the daynote journal.

Provides persistent disk logging with rotation, timing metrics and
operation tracing with short correlation ids.
"""
import functools
import inspect
import logging
import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from threading import Lock
from typing import Any, Callable, Dict, Optional, TypeVar, Union

logger = logging.getLogger(__name__)

# Root of the package logger hierarchy; every module logs below it
ROOT_LOGGER_NAME = "daynote"

DEFAULT_LOG_DIR = Path.home() / ".daynote" / "logs"

# Logging format with ISO 8601 timestamps
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S%z"

F = TypeVar("F", bound=Callable[..., Any])


def configure_logging(
    log_dir: Optional[Union[str, Path]] = None,
    level: int = logging.INFO,
    max_bytes: int = 5 * 1024 * 1024,  # 5 MB per file
    backup_count: int = 3,
    console: bool = True,
) -> Path:
    """Configure persistent file logging with rotation.

    Attaches a rotating file handler (and optionally a console handler) to
    the ``daynote`` logger hierarchy. Calling it again replaces the file
    handler instead of stacking a second one.

    Args:
        log_dir: Directory for log files. Defaults to ~/.daynote/logs/
        level: Logging level (default: INFO)
        max_bytes: Maximum size per log file before rotation
        backup_count: Number of rotated files to keep
        console: Also log to stderr (default: True)

    Returns:
        Path to the log directory
    """
    log_path = Path(log_dir) if log_dir else DEFAULT_LOG_DIR
    log_path.mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    root_logger.setLevel(level)

    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    for handler in list(root_logger.handlers):
        if isinstance(handler, RotatingFileHandler):
            root_logger.removeHandler(handler)
            handler.close()

    log_file = log_path / "daynote.log"
    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )
    file_handler.setLevel(level)
    file_handler.setFormatter(formatter)
    root_logger.addHandler(file_handler)

    if console and not any(
        isinstance(h, logging.StreamHandler) and not isinstance(h, RotatingFileHandler)
        for h in root_logger.handlers
    ):
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

    root_logger.info(
        f"Logging configured: {log_file} (max {max_bytes} bytes, {backup_count} backups)"
    )
    return log_path


@dataclass
class OperationStats:
    """Running totals for one named operation."""

    count: int = 0
    success_count: int = 0
    error_count: int = 0
    total_ms: float = 0.0
    fastest_ms: Optional[float] = None
    slowest_ms: float = 0.0
    last_error: Optional[str] = None
    last_error_at: Optional[datetime] = None

    def add(self, duration_ms: float, success: bool, error: Optional[str]) -> None:
        self.count += 1
        self.total_ms += duration_ms
        if self.fastest_ms is None or duration_ms < self.fastest_ms:
            self.fastest_ms = duration_ms
        self.slowest_ms = max(self.slowest_ms, duration_ms)
        if success:
            self.success_count += 1
            return
        self.error_count += 1
        self.last_error = error
        self.last_error_at = datetime.now(timezone.utc)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "count": self.count,
            "success_count": self.success_count,
            "error_count": self.error_count,
            "success_rate": self.success_count / self.count if self.count else 0,
            "avg_duration_ms": round(self.total_ms / self.count, 2) if self.count else 0,
            "min_duration_ms": round(self.fastest_ms or 0.0, 2),
            "max_duration_ms": round(self.slowest_ms, 2),
            "last_error": self.last_error,
            "last_error_time": (
                self.last_error_at.isoformat() if self.last_error_at else None
            ),
        }


class MetricsCollector:
    """Thread-safe, in-memory metrics for journal operations.

    Keeps timing, success/failure counts and the most recent error per
    operation name (note_upsert, find_similar, chat_turn, ...). Nothing is
    written to disk; the numbers live as long as the process.
    """

    def __init__(self) -> None:
        self._stats: Dict[str, OperationStats] = {}
        self._lock = Lock()
        self._started = datetime.now(timezone.utc)

    def record_operation(
        self,
        operation: str,
        duration_ms: float,
        success: bool,
        error: Optional[str] = None,
    ) -> None:
        """Record one finished operation."""
        with self._lock:
            stats = self._stats.setdefault(operation, OperationStats())
            stats.add(duration_ms, success, error)

    def get_metrics(self) -> Dict[str, Dict[str, Any]]:
        """Per-operation snapshot, keyed by operation name."""
        with self._lock:
            return {name: stats.as_dict() for name, stats in self._stats.items()}

    def get_summary(self) -> Dict[str, Any]:
        """Totals across every operation since start (or the last reset)."""
        with self._lock:
            operations = sum(s.count for s in self._stats.values())
            succeeded = sum(s.success_count for s in self._stats.values())
            errors = sum(s.error_count for s in self._stats.values())
            uptime = datetime.now(timezone.utc) - self._started

            return {
                "uptime_seconds": uptime.total_seconds(),
                "total_operations": operations,
                "total_success": succeeded,
                "total_errors": errors,
                "overall_success_rate": succeeded / operations if operations else 1.0,
                "operations_tracked": sorted(self._stats),
            }

    def reset(self) -> None:
        """Forget everything recorded so far."""
        with self._lock:
            self._stats.clear()
            self._started = datetime.now(timezone.utc)


# Global metrics collector instance
metrics = MetricsCollector()


@contextmanager
def timed_operation(operation: str, **context):
    """Context manager for timing and logging operations.

    Args:
        operation: Name of the operation being performed
        **context: Additional context to include in log messages

    Yields:
        A dictionary where you can store result info (e.g., result_count)

    Example:
        with timed_operation('find_similar', limit=5) as op:
            results = do_search()
            op['result_count'] = len(results)
    """
    correlation_id = str(uuid.uuid4())[:8]
    start_time = time.perf_counter()
    result_info: Dict[str, Any] = {"correlation_id": correlation_id}

    context_str = ", ".join(f"{k}={v}" for k, v in context.items())
    logger.debug(f"[{correlation_id}] START {operation} ({context_str})")

    error_msg = None
    success = True

    try:
        yield result_info
    except Exception as e:
        success = False
        error_msg = str(e)
        raise
    finally:
        duration_ms = (time.perf_counter() - start_time) * 1000
        metrics.record_operation(operation, duration_ms, success, error_msg)

        result_str = ", ".join(
            f"{k}={v}" for k, v in result_info.items() if k != "correlation_id"
        )
        status = "OK" if success else f"ERROR: {error_msg}"
        logger.debug(
            f"[{correlation_id}] END {operation} "
            f"({duration_ms:.2f}ms) [{status}] {result_str}"
        )


# Arguments copied into the log context of traced calls
_TRACED_ARGUMENTS = ("day", "note_id")


def traced(operation_name: Optional[str] = None) -> Callable[[F], F]:
    """Time a function through ``timed_operation``.

    A ``day`` or ``note_id`` argument, positional or keyword, is copied into
    the log context so a slow write can be traced back to its note.

    Example:
        @traced('note_upsert')
        def upsert(self, day: str, text: str) -> Note:
            ...
    """

    def decorator(func: F) -> F:
        op_name = operation_name or func.__name__
        signature = inspect.signature(func)
        traced_params = [p for p in _TRACED_ARGUMENTS if p in signature.parameters]

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            context = {}
            if traced_params:
                bound = signature.bind_partial(*args, **kwargs).arguments
                context = {p: bound[p] for p in traced_params if p in bound}

            with timed_operation(op_name, **context) as op:
                result = func(*args, **kwargs)
                if isinstance(result, (list, tuple, set, dict)):
                    op["result_count"] = len(result)
                elif result is not None:
                    op["has_result"] = True
                return result

        return wrapper  # type: ignore

    return decorator

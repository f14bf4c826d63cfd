"""
Logging setup and an in-process buffer of recent log records.

The buffer backs the admin log view; records are also emitted through the
normal logging handlers.
"""

from __future__ import annotations

import logging
import threading
import traceback
import uuid
from collections import deque
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ngage.config import Settings

# Attributes present on every LogRecord; anything else came in via `extra=`.
_STANDARD_ATTRS = set(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__.keys()
) | {"message", "asctime"}


@dataclass
class LogEntry:
    id: str
    timestamp: datetime
    level: str
    logger: str
    message: str
    error: Optional[str] = None
    stack_trace: Optional[str] = None
    context: Dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> dict:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        return data


class RecentLogHandler(logging.Handler):
    """Keeps the most recent records in a bounded ring buffer."""

    def __init__(self, capacity: int = 1000, level: int = logging.NOTSET):
        super().__init__(level=level)
        self._entries: deque[LogEntry] = deque(maxlen=capacity)
        self._entries_lock = threading.Lock()

    def emit(self, record: logging.LogRecord) -> None:
        try:
            error = None
            stack_trace = None
            if record.exc_info and record.exc_info[1] is not None:
                error = repr(record.exc_info[1])
                stack_trace = "".join(traceback.format_exception(*record.exc_info))
            context = {
                k: v for k, v in record.__dict__.items() if k not in _STANDARD_ATTRS
            }
            entry = LogEntry(
                id=uuid.uuid4().hex,
                timestamp=datetime.fromtimestamp(record.created, tz=timezone.utc),
                level=record.levelname,
                logger=record.name,
                message=record.getMessage(),
                error=error,
                stack_trace=stack_trace,
                context=context,
            )
        except Exception:
            self.handleError(record)
            return
        with self._entries_lock:
            self._entries.append(entry)

    def recent(self, limit: int = 100, min_level: str | int = logging.NOTSET) -> List[LogEntry]:
        if isinstance(min_level, str):
            min_level = logging.getLevelName(min_level.upper())
        with self._entries_lock:
            entries = [
                e
                for e in self._entries
                if logging.getLevelName(e.level) >= min_level
            ]
        return entries[-limit:][::-1] if limit else entries[::-1]

    def clear(self) -> None:
        with self._entries_lock:
            self._entries.clear()


_recent_handler: RecentLogHandler | None = None


def get_recent_log_handler() -> RecentLogHandler:
    global _recent_handler
    if _recent_handler is None:
        _recent_handler = RecentLogHandler()
    return _recent_handler


def configure_logging(settings: Settings) -> RecentLogHandler:
    """Configures root logging and attaches the recent-log buffer once."""
    global _recent_handler
    logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))
    root = logging.getLogger()
    if _recent_handler is None or _recent_handler not in root.handlers:
        if _recent_handler is None:
            _recent_handler = RecentLogHandler(capacity=settings.recent_log_capacity)
        root.addHandler(_recent_handler)
    return _recent_handler

"""
In-memory log buffer for acquisition logs.

Keeps the last N log lines in memory with configurable size.
Provides thread-safe append and retrieval operations.
"""
from __future__ import annotations

import logging
import os
import threading
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional


@dataclass
class LogEntry:
    timestamp: datetime
    level: str
    message: str

    def format(self) -> str:
        ts = self.timestamp.strftime("%H:%M:%S")
        return f"[{ts}] [{self.level}] {self.message}"


class LogBuffer:
    """Thread-safe circular buffer for log entries."""

    def __init__(self, max_lines: int = 200) -> None:
        self._max_lines = max_lines
        self._buffer: deque[LogEntry] = deque(maxlen=max_lines)
        self._lock = threading.Lock()

    @property
    def max_lines(self) -> int:
        return self._max_lines

    @max_lines.setter
    def max_lines(self, value: int) -> None:
        with self._lock:
            # Clamp value between 10 and 5000
            self._max_lines = max(10, min(5000, value))
            new_buffer: deque[LogEntry] = deque(maxlen=self._max_lines)
            new_buffer.extend(self._buffer)
            self._buffer = new_buffer

    def append(self, level: str, message: str) -> None:
        entry = LogEntry(timestamp=datetime.now(timezone.utc), level=level.upper(), message=message)
        with self._lock:
            self._buffer.append(entry)

    def info(self, message: str) -> None:
        self.append("INFO", message)

    def warning(self, message: str) -> None:
        self.append("WARN", message)

    def error(self, message: str) -> None:
        self.append("ERROR", message)

    def get_lines(self, count: Optional[int] = None) -> List[str]:
        """Get formatted log lines, most recent last."""
        with self._lock:
            entries = list(self._buffer)
        if count is not None:
            entries = entries[-count:] if count > 0 else []
        return [e.format() for e in entries]

    def clear(self) -> None:
        with self._lock:
            self._buffer.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._buffer)


_default_max_lines = int(os.environ.get("LOG_BUFFER_MAX_LINES", "200"))

# Global singleton fed by the backend.fetcher loggers
acquisition_logs = LogBuffer(max_lines=_default_max_lines)

_LEVEL_NAMES = {
    logging.DEBUG: "DEBUG",
    logging.INFO: "INFO",
    logging.WARNING: "WARN",
    logging.ERROR: "ERROR",
    logging.CRITICAL: "ERROR",
}


class LogBufferHandler(logging.Handler):
    """A logging handler that writes to a LogBuffer."""

    def __init__(self, buffer: LogBuffer, level: int = logging.INFO) -> None:
        super().__init__(level)
        self._buffer = buffer

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = _LEVEL_NAMES.get(record.levelno, "INFO")
            self._buffer.append(level, f"[{record.name}] {record.getMessage()}")
        except Exception:
            self.handleError(record)


def make_buffer_handler(level: int = logging.INFO) -> LogBufferHandler:
    """dictConfig factory for the handler bound to ``acquisition_logs``."""
    return LogBufferHandler(acquisition_logs, level=level)

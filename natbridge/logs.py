"""
Logging setup and in-memory log collection.

``setup_logging`` configures the root logger for the CLI and service.
``LogCollector`` is a handler that keeps the most recent records so the
API can show them without reading log files.
"""

import logging
import logging.handlers
import threading
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

MAX_LOG_ENTRIES = 1000


@dataclass
class LogEntry:
    """A captured log record."""
    timestamp: datetime
    level: str
    category: str
    message: str
    exception: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "level": self.level,
            "category": self.category,
            "message": self.message,
            "exception": self.exception,
        }


class LogCollector(logging.Handler):
    """
    Handler keeping the last ``capacity`` records in memory.

    Also counts frame, lighting and error records for the status page.
    """

    def __init__(self, capacity: int = MAX_LOG_ENTRIES, level: int = logging.NOTSET):
        super().__init__(level)
        self._entries: deque = deque(maxlen=capacity)
        self._entries_lock = threading.Lock()
        self.total_count = 0
        self.error_count = 0
        self.frame_count = 0
        self.lighting_count = 0

    def emit(self, record: logging.LogRecord) -> None:
        try:
            message = record.getMessage()
            exception = None
            if record.exc_info:
                exception = logging.Formatter().formatException(record.exc_info)
            entry = LogEntry(
                timestamp=datetime.fromtimestamp(record.created, tz=timezone.utc),
                level=record.levelname,
                category=record.name,
                message=message,
                exception=exception,
            )
        except Exception:
            self.handleError(record)
            return

        with self._entries_lock:
            self._entries.append(entry)
            self.total_count += 1
            if record.levelno >= logging.ERROR:
                self.error_count += 1
            if ".nat" in record.name or "frame" in message.lower():
                self.frame_count += 1
            if ".lighting" in record.name or "hue" in message.lower():
                self.lighting_count += 1

    def recent(
        self,
        limit: int = 100,
        min_level: Union[int, str] = logging.NOTSET,
        category: Optional[str] = None,
    ) -> List[LogEntry]:
        """Most recent entries (oldest first), optionally filtered."""
        if isinstance(min_level, str):
            min_level = logging.getLevelName(min_level.upper())
            if not isinstance(min_level, int):
                min_level = logging.NOTSET

        with self._entries_lock:
            entries = list(self._entries)

        if min_level:
            entries = [e for e in entries if logging.getLevelName(e.level) >= min_level]
        if category:
            entries = [e for e in entries if category.lower() in e.category.lower()]
        return entries[-limit:] if limit > 0 else []

    def clear(self) -> None:
        with self._entries_lock:
            self._entries.clear()
            self.total_count = 0
            self.error_count = 0
            self.frame_count = 0
            self.lighting_count = 0

    def statistics(self) -> Dict[str, Any]:
        with self._entries_lock:
            entries = list(self._entries)
            stats = {
                "total": self.total_count,
                "errors": self.error_count,
                "frames": self.frame_count,
                "lighting": self.lighting_count,
            }

        by_level: Dict[str, int] = {}
        for entry in entries:
            by_level[entry.level] = by_level.get(entry.level, 0) + 1
        stats["by_level"] = by_level
        stats["oldest"] = entries[0].timestamp.isoformat() if entries else None
        stats["newest"] = entries[-1].timestamp.isoformat() if entries else None
        return stats


# Global collector, attached to the root logger by setup_logging
_collector: Optional[LogCollector] = None


def get_collector() -> LogCollector:
    """Get the global log collector."""
    global _collector
    if _collector is None:
        _collector = LogCollector()
    return _collector


def setup_logging(
    level: Union[int, str] = logging.INFO,
    log_dir: Optional[Path] = None,
    retention_days: int = 30,
) -> LogCollector:
    """
    Set up logging configuration.

    Logs go to the console, to ``log_dir/natbridge.log`` (rotated daily,
    ``retention_days`` files kept) when a directory is given, and to the
    in-memory collector.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    handlers: List[logging.Handler] = [logging.StreamHandler()]

    if log_dir is not None:
        log_dir = Path(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        handlers.append(
            logging.handlers.TimedRotatingFileHandler(
                log_dir / "natbridge.log",
                when="midnight",
                backupCount=retention_days,
                encoding="utf-8",
            )
        )

    collector = get_collector()
    handlers.append(collector)

    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )

    # Quiet chatty libraries
    logging.getLogger("aiohttp").setLevel(logging.WARNING)
    logging.getLogger("zeroconf").setLevel(logging.WARNING)

    return collector

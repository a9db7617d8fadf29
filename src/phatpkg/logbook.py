"""
In-memory log book shared by the pipeline components.

Every component receives the same `LogBook` instance through its constructor.
Entries are kept in a bounded buffer so a front end can filter or export them,
and each entry is also forwarded to the structured telemetry logger.
"""

from collections import deque
from collections.abc import Callable
from datetime import datetime, timezone
import enum
from typing import Any

from attrs import define, field
from pyvider.telemetry import logger as telemetry_logger

DEFAULT_SOURCE = "PhatPKG"
MAX_ENTRIES = 1000


class LogLevel(enum.Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"

    @property
    def emoji(self) -> str:
        return _LEVEL_EMOJI[self]


_LEVEL_EMOJI = {
    LogLevel.DEBUG: "🔍",
    LogLevel.INFO: "ℹ️",
    LogLevel.WARNING: "⚠️",
    LogLevel.ERROR: "❌",
}


@define(frozen=True, slots=True)
class LogEntry:
    timestamp: datetime
    level: LogLevel
    source: str
    message: str

    @property
    def formatted_message(self) -> str:
        clock = self.timestamp.strftime("%H:%M:%S.") + f"{self.timestamp.microsecond // 1000:03d}"
        return f"{clock} {self.level.emoji} [{self.source}] {self.message}"


LogListener = Callable[[LogEntry], None]


@define
class LogBook:
    """Records leveled, timestamped, sourced entries."""

    max_entries: int = field(default=MAX_ENTRIES)
    sink: Any = field(default=telemetry_logger)
    _entries: deque[LogEntry] = field(init=False, factory=deque)
    _listeners: list[LogListener] = field(init=False, factory=list)

    def __attrs_post_init__(self) -> None:
        self._entries = deque(maxlen=self.max_entries)

    def add_listener(self, listener: LogListener) -> None:
        self._listeners.append(listener)

    def log(
        self, message: str, level: LogLevel = LogLevel.INFO, source: str = DEFAULT_SOURCE
    ) -> LogEntry:
        entry = LogEntry(
            timestamp=datetime.now(timezone.utc),
            level=level,
            source=source,
            message=message,
        )
        self._entries.append(entry)
        if self.sink is not None:
            getattr(self.sink, level.value.lower())(message, source=source)
        for listener in self._listeners:
            listener(entry)
        return entry

    def debug(self, message: str, source: str = DEFAULT_SOURCE) -> LogEntry:
        return self.log(message, LogLevel.DEBUG, source)

    def info(self, message: str, source: str = DEFAULT_SOURCE) -> LogEntry:
        return self.log(message, LogLevel.INFO, source)

    def warning(self, message: str, source: str = DEFAULT_SOURCE) -> LogEntry:
        return self.log(message, LogLevel.WARNING, source)

    def error(self, message: str, source: str = DEFAULT_SOURCE) -> LogEntry:
        return self.log(message, LogLevel.ERROR, source)

    def entries(self) -> list[LogEntry]:
        return list(self._entries)

    def entries_with_level(self, level: LogLevel) -> list[LogEntry]:
        return [entry for entry in self._entries if entry.level is level]

    def clear(self) -> None:
        self._entries.clear()

    def export(self) -> str:
        """Returns every buffered entry as a plain-text report."""
        entries = self.entries()
        generated = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S %Z")
        lines = [
            "PhatPKG Log Export",
            f"Generated: {generated}",
            f"Total Entries: {len(entries)}",
            "-" * 80,
            "",
        ]
        lines.extend(entry.formatted_message for entry in entries)
        return "\n".join(lines) + "\n"

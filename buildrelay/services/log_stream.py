"""User-facing log stream consumed by the UI."""

from typing import Callable, Optional

from buildrelay.jobs.models import LogEntry
from buildrelay.jobs.types import LogType

LogSink = Callable[[LogEntry], None]


class UserLogStream:
    """Append-only log; a message identical to the previous one is dropped."""

    def __init__(self, sink: Optional[LogSink] = None):
        self._entries: list[LogEntry] = []
        self._sink = sink
        self.current_status = "Awaiting instructions..."

    @property
    def entries(self) -> list[LogEntry]:
        return list(self._entries)

    def append(self, message: str, type: LogType = LogType.INFO) -> Optional[LogEntry]:
        self.current_status = message
        if self._entries and self._entries[-1].message == message:
            return None

        entry = LogEntry(message=message, type=type)
        self._entries.append(entry)
        if self._sink is not None:
            self._sink(entry)
        return entry

    def info(self, message: str) -> Optional[LogEntry]:
        return self.append(message, LogType.INFO)

    def success(self, message: str) -> Optional[LogEntry]:
        return self.append(message, LogType.SUCCESS)

    def error(self, message: str) -> Optional[LogEntry]:
        return self.append(message, LogType.ERROR)

    def clear(self) -> None:
        self._entries.clear()

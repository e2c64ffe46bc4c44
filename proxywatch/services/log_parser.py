"""
Server log line parser and duplicate-suppressing buffer.

Line format produced by the server:
  [2024-05-01 12:00:05] Created proxy for /media/.../clip.mp4

The timestamp is everything before the first "] " with the leading "["
removed, the message is the rest (later "] " sequences stay in the message).
Lines without the delimiter are kept: the whole line becomes the timestamp and
the message is empty.

Duplicates are detected against the full history of the buffer, compared on
the raw line. The server replays its recent history to every new connection,
so this is what keeps a reconnect from doubling the view. Memory grows with
the number of distinct lines until clear() is called.
"""
import logging
from typing import Iterator, Optional

from proxywatch.core.models import LogRecord

log = logging.getLogger(__name__)

DELIMITER = "] "


def parse_log_line(raw: str) -> LogRecord:
    """Split a raw server line into a LogRecord. Never raises."""
    timestamp, sep, message = raw.partition(DELIMITER)
    if timestamp.startswith("["):
        timestamp = timestamp[1:]
    return LogRecord(timestamp=timestamp, message=message if sep else "", raw=raw)


class LogBuffer:
    """Newest-first log history with global duplicate suppression."""

    def __init__(self):
        self._records: list[LogRecord] = []
        self._seen: set[str] = set()

    def admit(self, raw: str) -> Optional[LogRecord]:
        """Parse and prepend `raw`. Returns None when it is a duplicate."""
        if raw in self._seen:
            log.debug("dropping duplicate log line: %r", raw)
            return None
        rec = parse_log_line(raw)
        self._seen.add(raw)
        self._records.insert(0, rec)
        return rec

    def clear(self):
        self._records.clear()
        self._seen.clear()

    @property
    def records(self) -> tuple[LogRecord, ...]:
        return tuple(self._records)

    @property
    def latest(self) -> Optional[LogRecord]:
        return self._records[0] if self._records else None

    def __contains__(self, raw: object) -> bool:
        return raw in self._seen

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[LogRecord]:
        return iter(list(self._records))

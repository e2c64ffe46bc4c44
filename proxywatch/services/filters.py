import logging
from typing import Callable, Sequence

from proxywatch import config
from proxywatch.core.models import LogRecord

log = logging.getLogger(__name__)


class LogTrigger:
    def __init__(self, callback: Callable[[], None],
                 patterns: Sequence[str] = (config.PROXY_CREATED_MARKER,),
                 match_type: str = 'substring', enabled: bool = True):
        self.callback = callback
        self.enabled = enabled
        self.match_type = match_type.lower()
        self.patterns = [p for p in patterns if p and isinstance(p, str)]

    def matches(self, message: str) -> bool:
        if not self.enabled or not self.patterns:
            return False
        def match(p: str) -> bool:
            if self.match_type == 'exact':
                return message == p
            return p in message
        return any(match(p) for p in self.patterns)

    def observe(self, record: LogRecord) -> bool:
        """Invoke the callback once if the record's message matches."""
        if not self.matches(record.message):
            return False
        try:
            self.callback()
        except Exception:
            log.exception("log trigger callback failed for %r", record.raw)
        return True

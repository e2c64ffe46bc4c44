from dataclasses import dataclass
from enum import Enum


@dataclass(frozen=True)
class LogRecord:
    timestamp: str
    message: str
    raw: str = ""  # Original line, used as the dedup key


class ConnectionState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"


@dataclass
class ProxyFile:
    original: str
    proxy: str = ""  # Empty when no proxy exists yet

    @property
    def has_proxy(self) -> bool:
        return bool(self.proxy)

    def display_name(self, prefix: str = "") -> str:
        if prefix and self.original.startswith(prefix):
            return self.original[len(prefix):]
        return self.original

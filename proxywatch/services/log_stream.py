import logging
from typing import Callable, Optional

from PySide6 import QtCore
from PySide6 import QtWebSockets

from proxywatch import config
from proxywatch.core.models import ConnectionState
from proxywatch.services.filters import LogTrigger
from proxywatch.services.log_parser import LogBuffer

log = logging.getLogger(__name__)

CLOSE_CODE_NORMAL = 1000


def reconnect_delay_ms(attempt: int,
                       base_ms: int = config.RECONNECT_BASE_DELAY_MS,
                       max_ms: int = config.RECONNECT_MAX_DELAY_MS) -> int:
    """Exponential backoff: base * 2^attempt, capped at max_ms."""
    attempt = max(0, min(attempt, 30))
    return min(base_ms * (2 ** attempt), max_ms)


def _code_value(code) -> int:
    value = getattr(code, "value", code)
    try:
        return int(value)
    except (TypeError, ValueError):
        return -1


class LogStreamClient(QtCore.QObject):
    """
    Live server log tail over a WebSocket with automatic reconnect.

    Lifecycle:
    - connect_stream(): closes any previous socket, opens ws://host:port/ws/logs
    - connected: counter reset to 0, state OPEN
    - text frame: LogBuffer.admit(); admitted records are emitted on
      recordAdmitted and passed to the trigger
    - closure with code 1000 and no socket error: stays DISCONNECTED
    - any other closure, or an error while connecting: reconnect after
      min(1000ms * 2^counter, 30000ms), then counter += 1
    - stop(): cancels the reconnect timer and closes the socket

    All reactions run on the Qt event loop thread, so there is exactly one
    live socket per client and no locking.
    """
    stateChanged = QtCore.Signal(str)
    opened = QtCore.Signal(str)  # url
    closed = QtCore.Signal(str)  # "clean" or "unclean"
    errorOccurred = QtCore.Signal(str)
    recordAdmitted = QtCore.Signal(object)  # LogRecord
    reconnectScheduled = QtCore.Signal(int)  # delay in ms

    def __init__(self, host: str, port: int,
                 on_new_proxy: Optional[Callable[[], None]] = None,
                 trigger: Optional[LogTrigger] = None,
                 socket_factory: Optional[Callable[[], QtCore.QObject]] = None,
                 path: str = config.LOG_STREAM_PATH,
                 base_delay_ms: int = config.RECONNECT_BASE_DELAY_MS,
                 max_delay_ms: int = config.RECONNECT_MAX_DELAY_MS):
        """
        Pass either `on_new_proxy` (wrapped in a LogTrigger built from config)
        or a ready `trigger`, not both.
        """
        super().__init__()
        if trigger is not None and on_new_proxy is not None:
            raise ValueError("pass either on_new_proxy or trigger, not both")
        self.path = path
        self.set_endpoint(host, port)
        self.base_delay_ms = base_delay_ms
        self.max_delay_ms = max_delay_ms
        self.buffer = LogBuffer()
        if on_new_proxy is not None:
            trigger = LogTrigger(
                on_new_proxy,
                patterns=[config.PROXY_CREATED_MARKER],
                match_type=getattr(config, 'TRIGGER_MATCH', 'substring'),
                enabled=getattr(config, 'TRIGGER_ENABLED', True),
            )
        self.trigger = trigger
        self._socket_factory = socket_factory or QtWebSockets.QWebSocket
        self._socket: QtCore.QObject | None = None
        self._state = ConnectionState.DISCONNECTED
        self._reconnect_attempts = 0
        self._had_error = False
        self._stopped = True
        self._reconnectTimer = QtCore.QTimer(self)
        self._reconnectTimer.setSingleShot(True)
        self._reconnectTimer.timeout.connect(self._on_reconnect_timer)

    # ----- state
    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def reconnect_attempts(self) -> int:
        return self._reconnect_attempts

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnectTimer.isActive()

    def _set_state(self, state: ConnectionState):
        if state is self._state:
            return
        self._state = state
        self.stateChanged.emit(state.value)

    def set_endpoint(self, host: str, port: int):
        """Point later connects at another server. The buffer is kept."""
        self.host = host
        self.port = port
        self.url = f"ws://{host}:{port}{self.path}"

    # ----- lifecycle
    def start(self):
        self.connect_stream()

    def connect_stream(self):
        """Open a new session, closing the previous socket first."""
        self._stopped = False
        self._reconnectTimer.stop()
        if self._socket is not None:
            self._release_socket()

        sock = self._socket_factory()
        sock.connected.connect(self._on_connected)
        sock.disconnected.connect(self._on_disconnected)
        sock.textMessageReceived.connect(self._on_text)
        sock.errorOccurred.connect(self._on_error)
        self._socket = sock
        self._had_error = False
        self._set_state(ConnectionState.CONNECTING)
        log.info("connecting to %s", self.url)
        sock.open(QtCore.QUrl(self.url))

    def stop(self):
        self._stopped = True
        self._reconnectTimer.stop()
        if self._socket is not None:
            self._set_state(ConnectionState.CLOSING)
            self._release_socket()
            self.closed.emit("clean")
        self._set_state(ConnectionState.DISCONNECTED)

    teardown = stop

    def clear(self):
        self.buffer.clear()

    def _release_socket(self):
        sock, self._socket = self._socket, None
        if sock is None:
            return
        for signal, slot in (
            (sock.connected, self._on_connected),
            (sock.disconnected, self._on_disconnected),
            (sock.textMessageReceived, self._on_text),
            (sock.errorOccurred, self._on_error),
        ):
            try:
                signal.disconnect(slot)
            except (RuntimeError, TypeError):
                pass
        try:
            sock.close()
        except Exception as e:
            log.debug("closing previous socket failed: %s", e)
        if hasattr(sock, "deleteLater"):
            sock.deleteLater()

    # ----- socket reactions
    def _on_connected(self):
        self._reconnect_attempts = 0
        self._set_state(ConnectionState.OPEN)
        log.info("log stream connected: %s", self.url)
        self.opened.emit(self.url)

    def _on_text(self, raw: str):
        rec = self.buffer.admit(raw)
        if rec is None:
            return
        self.recordAdmitted.emit(rec)
        if self.trigger is not None:
            self.trigger.observe(rec)

    def _on_error(self, error=None):
        self._had_error = True
        msg = self._socket.errorString() if self._socket is not None else str(error)
        log.warning("log stream error: %s", msg)
        self.errorOccurred.emit(msg)
        if self._state is ConnectionState.CONNECTING:
            # Handshake failed; Qt does not always follow up with disconnected.
            self._handle_closure(clean=False)

    def _on_disconnected(self):
        if self._state is ConnectionState.DISCONNECTED:
            return
        code = CLOSE_CODE_NORMAL
        reason = ""
        if self._socket is not None:
            code = _code_value(self._socket.closeCode())
            reason = self._socket.closeReason()
        clean = self._state is ConnectionState.OPEN and code == CLOSE_CODE_NORMAL and not self._had_error
        if clean:
            log.info("log stream closed cleanly")
        else:
            log.warning("log stream disconnected unexpectedly (code: %s, reason: %s)", code, reason)
        self._handle_closure(clean=clean)

    def _handle_closure(self, clean: bool):
        if self._state is ConnectionState.DISCONNECTED:
            return
        self._release_socket()
        self._set_state(ConnectionState.DISCONNECTED)
        if clean or self._stopped:
            self.closed.emit("clean")
            return
        delay = reconnect_delay_ms(self._reconnect_attempts, self.base_delay_ms, self.max_delay_ms)
        self._reconnect_attempts += 1
        log.info("reconnecting in %d ms (attempt %d)", delay, self._reconnect_attempts)
        self._reconnectTimer.start(delay)
        self.closed.emit("unclean")
        self.reconnectScheduled.emit(delay)

    def _on_reconnect_timer(self):
        if self._stopped:
            return
        self.connect_stream()

"""
REST client for the proxy server's collaborator endpoints.

Endpoints:
- GET    /api/proxies        -> [{"original": ..., "proxy": ...}, ...]
- GET    /api/destinations   -> ["/media/...", ...]
- POST   /api/move           {"files": [...], "destination": ..., "newFolder": ...}
- DELETE /api/delete         {"original": ..., "proxy": ...}
- POST   /api/reprocess
- GET    /api/config
- POST   /api/config/update  full config object

Requests are asynchronous on the Qt event loop. Results are delivered through
signals; failures never raise and are reported on requestFailed.
"""
import json
import logging
from typing import Any, Callable, Optional

from PySide6 import QtCore
from PySide6 import QtNetwork

from proxywatch import config
from proxywatch.core.models import ProxyFile

log = logging.getLogger(__name__)


def build_url(base_url: str, path: str) -> str:
    return base_url.rstrip("/") + "/" + path.lstrip("/")


def encode_body(payload: Any) -> bytes:
    if payload is None:
        return b""
    return json.dumps(payload).encode("utf-8")


def parse_proxies(data: Any) -> list[ProxyFile]:
    # The server encodes an empty listing as null.
    if not data:
        return []
    out = []
    for item in data:
        if not isinstance(item, dict) or not item.get("original"):
            continue
        out.append(ProxyFile(original=item["original"], proxy=item.get("proxy") or ""))
    return out


class ProxyApi(QtCore.QObject):
    proxiesLoaded = QtCore.Signal(object)  # list[ProxyFile]
    destinationsLoaded = QtCore.Signal(list)
    configLoaded = QtCore.Signal(object)  # dict
    actionFinished = QtCore.Signal(str)  # action name
    requestFailed = QtCore.Signal(str, str)  # action name, message

    def __init__(self, base_url: str, manager: Optional[QtCore.QObject] = None):
        super().__init__()
        self.base_url = base_url
        self._nam = manager if manager is not None else QtNetwork.QNetworkAccessManager(self)
        self._pending = set()

    # ----- endpoints
    def list_proxies(self):
        self._send("proxies", "GET", "/api/proxies",
                   on_success=lambda data: self.proxiesLoaded.emit(parse_proxies(data)))

    def list_destinations(self):
        self._send("destinations", "GET", "/api/destinations",
                   on_success=lambda data: self.destinationsLoaded.emit(list(data or [])))

    def move_files(self, files: list[str], destination: str, new_folder: str = ""):
        payload = {"files": list(files), "destination": destination, "newFolder": new_folder}
        self._send("move", "POST", "/api/move", payload)

    def delete_video(self, original: str, proxy: str = ""):
        self._send("delete", "DELETE", "/api/delete", {"original": original, "proxy": proxy})

    def reprocess(self):
        self._send("reprocess", "POST", "/api/reprocess")

    def get_config(self):
        self._send("config", "GET", "/api/config",
                   on_success=lambda data: self.configLoaded.emit(dict(data or {})))

    def update_config(self, cfg: dict):
        self._send("config_update", "POST", "/api/config/update", cfg)

    # ----- transport
    def _send(self, action: str, method: str, path: str, payload: Any = None,
              on_success: Optional[Callable[[Any], None]] = None):
        req = QtNetwork.QNetworkRequest(QtCore.QUrl(build_url(self.base_url, path)))
        req.setTransferTimeout(getattr(config, 'API_TIMEOUT_MS', 10000))
        body = encode_body(payload)
        if payload is not None:
            req.setHeader(QtNetwork.QNetworkRequest.KnownHeaders.ContentTypeHeader, "application/json")

        log.debug("%s %s", method, path)
        if method == "GET":
            reply = self._nam.get(req)
        elif method == "POST":
            reply = self._nam.post(req, body)
        else:
            reply = self._nam.sendCustomRequest(req, method.encode("ascii"), body)
        self._pending.add(reply)
        reply.finished.connect(lambda: self._on_finished(action, reply, on_success))

    def _on_finished(self, action: str, reply, on_success):
        self._pending.discard(reply)
        try:
            if reply.error() != QtNetwork.QNetworkReply.NetworkError.NoError:
                msg = reply.errorString()
                log.warning("request %s failed: %s", action, msg)
                self.requestFailed.emit(action, msg)
                return
            raw = bytes(reply.readAll())
            if on_success is not None:
                try:
                    data = json.loads(raw.decode("utf-8")) if raw.strip() else None
                except ValueError as e:
                    log.warning("request %s returned invalid JSON: %s", action, e)
                    self.requestFailed.emit(action, f"invalid JSON: {e}")
                    return
                on_success(data)
            self.actionFinished.emit(action)
        finally:
            if hasattr(reply, "deleteLater"):
                reply.deleteLater()

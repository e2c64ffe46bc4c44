from __future__ import annotations

import os

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

import pytest
from PySide6 import QtCore
from PySide6 import QtNetwork
from PySide6 import QtWidgets


@pytest.fixture(scope="session", autouse=True)
def qapp():
    app = QtWidgets.QApplication.instance() or QtWidgets.QApplication([])
    yield app


class FakeSocket(QtCore.QObject):
    """Stands in for QWebSocket; tests drive its signals by hand."""
    connected = QtCore.Signal()
    disconnected = QtCore.Signal()
    textMessageReceived = QtCore.Signal(str)
    errorOccurred = QtCore.Signal(object)

    def __init__(self):
        super().__init__()
        self.url = None
        self.is_closed = False
        self.code = 1000
        self.reason = ""
        self.error_text = ""

    def open(self, url):
        self.url = url.toString()

    def close(self, *args):
        self.is_closed = True

    def abort(self):
        self.is_closed = True

    def closeCode(self):
        return self.code

    def closeReason(self):
        return self.reason

    def errorString(self):
        return self.error_text

    # ----- test helpers
    def accept(self):
        self.connected.emit()

    def send_text(self, text: str):
        self.textMessageReceived.emit(text)

    def drop(self, code: int = 1006, reason: str = ""):
        self.code = code
        self.reason = reason
        self.disconnected.emit()

    def fail(self, text: str = "Connection refused"):
        self.error_text = text
        self.errorOccurred.emit(text)


@pytest.fixture
def sockets():
    return []


@pytest.fixture
def socket_factory(sockets):
    def factory():
        s = FakeSocket()
        sockets.append(s)
        return s
    return factory


class FakeReply(QtCore.QObject):
    finished = QtCore.Signal()

    def __init__(self, method: str, url: str, body: bytes, content_type):
        super().__init__()
        self.method = method
        self.url = url
        self.body = body
        self.content_type = content_type
        self._error = QtNetwork.QNetworkReply.NetworkError.NoError
        self._error_text = ""
        self._data = b""

    def error(self):
        return self._error

    def errorString(self):
        return self._error_text

    def readAll(self):
        return self._data

    # ----- test helpers
    def respond(self, data: bytes = b""):
        self._data = data
        self.finished.emit()

    def respond_error(self, text: str = "Connection refused"):
        self._error = QtNetwork.QNetworkReply.NetworkError.ConnectionRefusedError
        self._error_text = text
        self.finished.emit()


class FakeManager(QtCore.QObject):
    """Records requests instead of sending them."""

    def __init__(self):
        super().__init__()
        self.replies: list[FakeReply] = []

    def _record(self, method, req, body=b""):
        ct = req.header(QtNetwork.QNetworkRequest.KnownHeaders.ContentTypeHeader)
        reply = FakeReply(method, req.url().toString(), bytes(body), ct)
        self.replies.append(reply)
        return reply

    def get(self, req):
        return self._record("GET", req)

    def post(self, req, body):
        return self._record("POST", req, body)

    def sendCustomRequest(self, req, verb, body):
        return self._record(bytes(verb).decode("ascii"), req, body)

    def last(self, path: str) -> FakeReply:
        for reply in reversed(self.replies):
            if reply.url.endswith(path):
                return reply
        raise AssertionError(f"no request for {path}")


@pytest.fixture
def manager():
    return FakeManager()

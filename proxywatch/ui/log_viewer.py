from PySide6 import QtCore
from PySide6 import QtGui
from PySide6 import QtWidgets

from proxywatch.core.models import LogRecord


class LogViewer(QtWidgets.QWidget):
    """Server log table, newest line on top."""

    def __init__(self, parent=None):
        super().__init__(parent)
        self.statusLabel = QtWidgets.QLabel("disconnected")
        self.clearButton = QtWidgets.QPushButton("Clear")
        self.table = QtWidgets.QTableWidget(0, 2)
        self.table.setHorizontalHeaderLabels(["Time", "Message"])
        self.table.horizontalHeader().setStretchLastSection(True)
        self.table.setSelectionBehavior(QtWidgets.QAbstractItemView.SelectionBehavior.SelectRows)
        self.table.setEditTriggers(QtWidgets.QAbstractItemView.EditTrigger.NoEditTriggers)
        self.table.setWordWrap(True)
        self.table.verticalHeader().setVisible(False)

        header = QtWidgets.QHBoxLayout()
        header.setContentsMargins(0, 0, 0, 0)
        header.addWidget(QtWidgets.QLabel("Server Logs"))
        header.addStretch(1)
        header.addWidget(self.statusLabel)
        header.addWidget(self.clearButton)

        v = QtWidgets.QVBoxLayout(self)
        v.setContentsMargins(0, 0, 0, 0)
        v.addLayout(header)
        v.addWidget(self.table, stretch=1)

        self._client = None
        self.clearButton.clicked.connect(self.clear)

    def bind(self, client):
        """Follow a LogStreamClient: show what it admits and its state."""
        if self._client is not None:
            self._client.recordAdmitted.disconnect(self.appendRecord)
            self._client.stateChanged.disconnect(self.setConnectionState)
        self._client = client
        self.table.setRowCount(0)
        for rec in reversed(client.buffer.records):
            self.appendRecord(rec)
        client.recordAdmitted.connect(self.appendRecord)
        client.stateChanged.connect(self.setConnectionState)
        self.setConnectionState(client.state.value)

    @QtCore.Slot(object)
    def appendRecord(self, rec: LogRecord):
        self.table.insertRow(0)
        self.table.setItem(0, 0, QtWidgets.QTableWidgetItem(rec.timestamp))
        self.table.setItem(0, 1, QtWidgets.QTableWidgetItem(rec.message))
        if not rec.message:
            # Unparsed line: the text landed in the timestamp column
            self.table.item(0, 0).setForeground(QtGui.QBrush(QtGui.QColor("#888888")))

    @QtCore.Slot(str)
    def setConnectionState(self, state: str):
        self.statusLabel.setText(state)

    def clear(self):
        self.table.setRowCount(0)
        if self._client is not None:
            self._client.clear()

    def messages(self) -> list[str]:
        return [self.table.item(r, 1).text() for r in range(self.table.rowCount())]

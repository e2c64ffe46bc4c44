import copy
import logging

from PySide6 import QtCore
from PySide6 import QtWidgets

from proxywatch import config
from proxywatch.core.models import ProxyFile
from proxywatch.services.api_client import ProxyApi
from proxywatch.services.filters import LogTrigger
from proxywatch.services.log_stream import LogStreamClient
from proxywatch.ui.log_viewer import LogViewer

log = logging.getLogger(__name__)


class TriggerSettingsDialog(QtWidgets.QDialog):
    """Dialog for the log line that triggers a proxy list refresh."""
    def __init__(self, parent=None, initial: LogTrigger | None = None):
        super().__init__(parent)
        self.setWindowTitle("Log Trigger Settings")
        self.setModal(True)
        self.resize(480, 160)

        self.enableCheck = QtWidgets.QCheckBox("Refresh proxy list on matching log line")
        self.matchCombo = QtWidgets.QComboBox()
        self.matchCombo.addItems(["substring", "exact"])
        self.patternsEdit = QtWidgets.QLineEdit()
        self.patternsEdit.setPlaceholderText("Text patterns separated by comma, e.g., Created proxy for")

        if initial:
            self.enableCheck.setChecked(initial.enabled)
            self.matchCombo.setCurrentText(initial.match_type)
            self.patternsEdit.setText(",".join(initial.patterns))
        else:
            self.enableCheck.setChecked(getattr(config, 'TRIGGER_ENABLED', True))
            self.matchCombo.setCurrentText(getattr(config, 'TRIGGER_MATCH', 'substring'))
            self.patternsEdit.setText(getattr(config, 'PROXY_CREATED_MARKER', ''))

        form = QtWidgets.QFormLayout()
        form.addRow(self.enableCheck)
        form.addRow("Match:", self.matchCombo)
        form.addRow("Patterns:", self.patternsEdit)

        btnBox = QtWidgets.QDialogButtonBox(
            QtWidgets.QDialogButtonBox.StandardButton.Ok |
            QtWidgets.QDialogButtonBox.StandardButton.Cancel
        )
        btnBox.accepted.connect(self.accept)
        btnBox.rejected.connect(self.reject)

        v = QtWidgets.QVBoxLayout(self)
        v.addLayout(form)
        v.addWidget(btnBox)

    def get_trigger(self, callback) -> LogTrigger:
        return LogTrigger(
            callback,
            patterns=[p.strip() for p in self.patternsEdit.text().split(',') if p.strip()],
            match_type=self.matchCombo.currentText(),
            enabled=self.enableCheck.isChecked(),
        )


class ConfigEditorDialog(QtWidgets.QDialog):
    """
    Editor for the server's JSON configuration.

    Edits destinationConfig type/path and the timezone, and removes SD card
    mappings or ignored extensions. Keys it does not know are passed back
    unchanged.
    """
    def __init__(self, parent=None, cfg: dict | None = None):
        super().__init__(parent)
        self.setWindowTitle("Server Configuration")
        self.setModal(True)
        self.resize(560, 480)
        self._cfg = copy.deepcopy(cfg or {})
        dest = self._cfg.get("destinationConfig") or {}

        self.typeEdit = QtWidgets.QLineEdit(str(dest.get("type", "")))
        self.typeEdit.setPlaceholderText("local or nfs")
        self.pathEdit = QtWidgets.QLineEdit(str(dest.get("path", "")))
        self.timezoneEdit = QtWidgets.QLineEdit(str(self._cfg.get("timezone", "")))
        self.timezoneEdit.setPlaceholderText("e.g., Europe/Prague")

        self.mappingsList = QtWidgets.QListWidget()
        for key, mapping in (self._cfg.get("sdCardMappings") or {}).items():
            mapping = mapping or {}
            text = (f"{mapping.get('name', key)}  |  Source: {', '.join(mapping.get('sourceDirs') or [])}"
                    f", Destination: {mapping.get('destination', '')}")
            item = QtWidgets.QListWidgetItem(text)
            item.setData(QtCore.Qt.ItemDataRole.UserRole, key)
            self.mappingsList.addItem(item)
        self.removeMappingButton = QtWidgets.QPushButton("Remove Mapping")

        self.extensionsList = QtWidgets.QListWidget()
        self.extensionsList.addItems([str(e) for e in self._cfg.get("ignoredExtensions") or []])
        self.removeExtensionButton = QtWidgets.QPushButton("Remove Extension")

        form = QtWidgets.QFormLayout()
        form.addRow("Destination type:", self.typeEdit)
        form.addRow("Destination path:", self.pathEdit)
        form.addRow("Timezone:", self.timezoneEdit)

        btnBox = QtWidgets.QDialogButtonBox(
            QtWidgets.QDialogButtonBox.StandardButton.Save |
            QtWidgets.QDialogButtonBox.StandardButton.Cancel
        )
        btnBox.accepted.connect(self.accept)
        btnBox.rejected.connect(self.reject)

        v = QtWidgets.QVBoxLayout(self)
        v.addLayout(form)
        v.addWidget(QtWidgets.QLabel("SD Card Mappings"))
        v.addWidget(self.mappingsList)
        v.addWidget(self.removeMappingButton)
        v.addWidget(QtWidgets.QLabel("Ignored Extensions"))
        v.addWidget(self.extensionsList)
        v.addWidget(self.removeExtensionButton)
        v.addWidget(btnBox)

        self.removeMappingButton.clicked.connect(self._remove_selected_mapping)
        self.removeExtensionButton.clicked.connect(self._remove_selected_extension)

    def _remove_selected_mapping(self):
        item = self.mappingsList.currentItem()
        if item:
            self.removeMapping(item.data(QtCore.Qt.ItemDataRole.UserRole))

    def _remove_selected_extension(self):
        item = self.extensionsList.currentItem()
        if item:
            self.removeExtension(item.text())

    def removeMapping(self, key: str):
        for row in range(self.mappingsList.count()):
            if self.mappingsList.item(row).data(QtCore.Qt.ItemDataRole.UserRole) == key:
                self.mappingsList.takeItem(row)
                return

    def removeExtension(self, ext: str):
        for item in self.extensionsList.findItems(ext, QtCore.Qt.MatchFlag.MatchExactly):
            self.extensionsList.takeItem(self.extensionsList.row(item))

    def get_config(self) -> dict:
        cfg = copy.deepcopy(self._cfg)
        dest = dict(cfg.get("destinationConfig") or {})
        dest["type"] = self.typeEdit.text().strip()
        dest["path"] = self.pathEdit.text().strip()
        cfg["destinationConfig"] = dest
        cfg["timezone"] = self.timezoneEdit.text().strip()
        kept = {self.mappingsList.item(r).data(QtCore.Qt.ItemDataRole.UserRole)
                for r in range(self.mappingsList.count())}
        cfg["sdCardMappings"] = {k: v for k, v in (cfg.get("sdCardMappings") or {}).items() if k in kept}
        cfg["ignoredExtensions"] = [self.extensionsList.item(r).text()
                                    for r in range(self.extensionsList.count())]
        return cfg


class MainWindow(QtWidgets.QMainWindow):
    def __init__(self, socket_factory=None, manager=None):
        super().__init__()
        self.setWindowTitle("Proxy Watch")
        self.resize(config.GUI_WIDTH, config.GUI_HEIGHT)
        font = QtWidgets.QApplication.font()
        font.setFamily(config.GUI_FONT[0])
        font.setPointSize(config.GUI_FONT[1])
        QtWidgets.QApplication.setFont(font)

        # Server controls
        self.hostEdit = QtWidgets.QLineEdit(config.SERVER_DEFAULT_HOST)
        self.hostEdit.setPlaceholderText("Server host")
        self.portEdit = QtWidgets.QLineEdit(str(config.SERVER_DEFAULT_PORT))
        self.portEdit.setFixedWidth(80)
        self.portEdit.setPlaceholderText("Port")
        self.connectButton = QtWidgets.QPushButton("Connect")
        self.disconnectButton = QtWidgets.QPushButton("Disconnect")
        self.disconnectButton.setEnabled(False)

        topBar = QtWidgets.QWidget()
        row0 = QtWidgets.QHBoxLayout(topBar)
        row0.setContentsMargins(0, 0, 0, 0)
        row0.addWidget(QtWidgets.QLabel("Host:"))
        row0.addWidget(self.hostEdit, stretch=1)
        row0.addSpacing(6)
        row0.addWidget(QtWidgets.QLabel("Port:"))
        row0.addWidget(self.portEdit)
        row0.addStretch(1)
        row0.addWidget(self.connectButton)
        row0.addWidget(self.disconnectButton)

        # Unmoved videos
        self.proxyTable = QtWidgets.QTableWidget(0, 2)
        self.proxyTable.setHorizontalHeaderLabels(["Original", "Proxy"])
        self.proxyTable.horizontalHeader().setStretchLastSection(True)
        self.proxyTable.setSelectionBehavior(QtWidgets.QAbstractItemView.SelectionBehavior.SelectRows)
        self.proxyTable.setSelectionMode(QtWidgets.QAbstractItemView.SelectionMode.ExtendedSelection)
        self.proxyTable.setEditTriggers(QtWidgets.QAbstractItemView.EditTrigger.NoEditTriggers)
        self.refreshButton = QtWidgets.QPushButton("Refresh")
        self.deleteButton = QtWidgets.QPushButton("Delete Selected")
        self.reprocessButton = QtWidgets.QPushButton("Reprocess Proxies")
        self.destinationCombo = QtWidgets.QComboBox()
        self.newFolderEdit = QtWidgets.QLineEdit()
        self.newFolderEdit.setPlaceholderText("Or create a new folder")
        self.moveButton = QtWidgets.QPushButton("Move Selected")

        actions = QtWidgets.QHBoxLayout()
        actions.setContentsMargins(0, 0, 0, 0)
        actions.addWidget(self.refreshButton)
        actions.addWidget(self.deleteButton)
        actions.addStretch(1)
        actions.addWidget(self.reprocessButton)
        moveRow = QtWidgets.QHBoxLayout()
        moveRow.setContentsMargins(0, 0, 0, 0)
        moveRow.addWidget(QtWidgets.QLabel("Destination:"))
        moveRow.addWidget(self.destinationCombo, stretch=1)
        moveRow.addWidget(self.newFolderEdit, stretch=1)
        moveRow.addWidget(self.moveButton)

        videoPanel = QtWidgets.QWidget()
        videoLayout = QtWidgets.QVBoxLayout(videoPanel)
        videoLayout.addWidget(QtWidgets.QLabel("Unmoved Videos"))
        videoLayout.addWidget(self.proxyTable, stretch=1)
        videoLayout.addLayout(actions)
        videoLayout.addLayout(moveRow)

        self.logViewer = LogViewer()
        logPanel = QtWidgets.QWidget()
        logLayout = QtWidgets.QVBoxLayout(logPanel)
        logLayout.addWidget(self.logViewer)

        split = QtWidgets.QSplitter()
        split.addWidget(videoPanel)
        split.addWidget(logPanel)
        split.setStretchFactor(0, 2)
        split.setStretchFactor(1, 1)

        container = QtWidgets.QWidget()
        v = QtWidgets.QVBoxLayout(container)
        v.setContentsMargins(8, 8, 8, 8)
        v.setSpacing(8)
        v.addWidget(topBar)
        v.addWidget(split, stretch=1)
        self.setCentralWidget(container)

        # Menu bar: Settings -> Log Trigger, Server Configuration
        settingsMenu = self.menuBar().addMenu("Settings")
        self.triggerAction = settingsMenu.addAction("Log Trigger…")
        self.triggerAction.triggered.connect(self._open_trigger_dialog)
        self.serverConfigAction = settingsMenu.addAction("Server Configuration…")
        self.serverConfigAction.triggered.connect(self.onEditServerConfig)

        self.statusBar().showMessage("Ready")

        # State
        self._proxies: list[ProxyFile] = []
        self._trigger = LogTrigger(
            self.onNewProxy,
            patterns=[getattr(config, 'PROXY_CREATED_MARKER', 'Created proxy for')],
            match_type=getattr(config, 'TRIGGER_MATCH', 'substring'),
            enabled=getattr(config, 'TRIGGER_ENABLED', True),
        )

        # One stream per window: its buffer outlives disconnects
        self.stream = LogStreamClient(config.SERVER_DEFAULT_HOST, config.SERVER_DEFAULT_PORT,
                                      trigger=self._trigger, socket_factory=socket_factory)
        self.stream.opened.connect(lambda url: self.statusBar().showMessage(f"Connected to {url}", 3000))
        self.stream.reconnectScheduled.connect(
            lambda ms: self.statusBar().showMessage(f"Log stream lost, reconnecting in {ms / 1000:.0f}s"))
        self.stream.errorOccurred.connect(lambda msg: self._onError("log stream", msg))
        self.logViewer.bind(self.stream)

        self.api = ProxyApi(f"http://{config.SERVER_DEFAULT_HOST}:{config.SERVER_DEFAULT_PORT}", manager=manager)
        self.api.proxiesLoaded.connect(self._onProxiesLoaded)
        self.api.destinationsLoaded.connect(self._onDestinationsLoaded)
        self.api.configLoaded.connect(self._onConfigLoaded)
        self.api.actionFinished.connect(self._onActionFinished)
        self.api.requestFailed.connect(lambda action, msg: self._onError(action, msg))

        # Wire up
        self.connectButton.clicked.connect(self.onConnect)
        self.disconnectButton.clicked.connect(self.onDisconnect)
        self.refreshButton.clicked.connect(self.onNewProxy)
        self.deleteButton.clicked.connect(self.onDeleteSelected)
        self.reprocessButton.clicked.connect(self.onReprocess)
        self.moveButton.clicked.connect(self.onMoveSelected)

    def _open_trigger_dialog(self):
        dlg = TriggerSettingsDialog(self, self._trigger)
        if dlg.exec() == QtWidgets.QDialog.DialogCode.Accepted:
            self._trigger = dlg.get_trigger(self.onNewProxy)
            self.stream.trigger = self._trigger
            self.statusBar().showMessage("Log trigger updated", 3000)

    def onConnect(self):
        host = self.hostEdit.text().strip() or config.SERVER_DEFAULT_HOST
        try:
            port = int(self.portEdit.text().strip())
        except ValueError:
            self.statusBar().showMessage(f"Invalid port: {self.portEdit.text()!r}", 5000)
            return

        self.onDisconnect()
        self.api.base_url = f"http://{host}:{port}"
        self.stream.set_endpoint(host, port)
        self.stream.connect_stream()
        self.api.list_proxies()
        self.api.list_destinations()
        self.connectButton.setEnabled(False)
        self.disconnectButton.setEnabled(True)

    def onDisconnect(self):
        self.stream.stop()
        self.connectButton.setEnabled(True)
        self.disconnectButton.setEnabled(False)

    def onNewProxy(self):
        self.api.list_proxies()

    def selectedProxies(self) -> list[ProxyFile]:
        rows = sorted({idx.row() for idx in self.proxyTable.selectionModel().selectedRows()})
        return [self._proxies[r] for r in rows if 0 <= r < len(self._proxies)]

    def onDeleteSelected(self):
        selected = self.selectedProxies()
        if not selected:
            return
        answer = QtWidgets.QMessageBox.question(
            self, "Delete", f"Delete {len(selected)} video(s) and their proxies?")
        if answer != QtWidgets.QMessageBox.StandardButton.Yes:
            return
        for pf in selected:
            self.api.delete_video(pf.original, pf.proxy)

    def onMoveSelected(self):
        selected = self.selectedProxies()
        destination = self.destinationCombo.currentText()
        new_folder = self.newFolderEdit.text().strip()
        if not selected or not (destination or new_folder):
            return
        self.api.move_files([pf.original for pf in selected], destination, new_folder)

    def onReprocess(self):
        answer = QtWidgets.QMessageBox.question(self, "Reprocess", "Reprocess all high-resolution files?")
        if answer == QtWidgets.QMessageBox.StandardButton.Yes:
            self.api.reprocess()

    def _onProxiesLoaded(self, proxies: list):
        self._proxies = list(proxies)
        prefix = getattr(config, 'ARCHIVE_DISPLAY_PREFIX', '')
        self.proxyTable.setRowCount(0)
        for row, pf in enumerate(self._proxies):
            self.proxyTable.insertRow(row)
            item = QtWidgets.QTableWidgetItem(pf.display_name(prefix))
            item.setData(QtCore.Qt.ItemDataRole.UserRole, pf.original)
            self.proxyTable.setItem(row, 0, item)
            self.proxyTable.setItem(row, 1, QtWidgets.QTableWidgetItem(pf.proxy or "No proxy available"))

    def _onDestinationsLoaded(self, destinations: list):
        current = self.destinationCombo.currentText()
        self.destinationCombo.blockSignals(True)
        self.destinationCombo.clear()
        self.destinationCombo.addItems([str(d) for d in destinations])
        if current:
            self.destinationCombo.setCurrentText(current)
        self.destinationCombo.blockSignals(False)

    def _onActionFinished(self, action: str):
        if action in ("move", "delete"):
            self.statusBar().showMessage(f"{action} finished", 3000)
            self.newFolderEdit.clear()
            self.onNewProxy()
            if action == "move":
                self.api.list_destinations()
        elif action == "reprocess":
            self.statusBar().showMessage("Reprocessing started", 3000)
        elif action == "config_update":
            self.statusBar().showMessage("Configuration saved", 3000)

    def onEditServerConfig(self):
        self.api.get_config()

    def _onConfigLoaded(self, cfg: dict):
        dlg = ConfigEditorDialog(self, cfg)
        if dlg.exec() == QtWidgets.QDialog.DialogCode.Accepted:
            self.api.update_config(dlg.get_config())

    def _onError(self, src: str, msg: str):
        log.warning("%s: %s", src, msg)
        self.statusBar().showMessage(f"ERROR ({src}): {msg}", 5000)

    def closeEvent(self, event):
        self.onDisconnect()
        super().closeEvent(event)

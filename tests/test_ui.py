from __future__ import annotations

import json

from PySide6 import QtWidgets

from proxywatch.services.log_stream import LogStreamClient
from proxywatch.ui.log_viewer import LogViewer
from proxywatch.ui.main_window import ConfigEditorDialog, MainWindow, TriggerSettingsDialog

SERVER_CONFIG = {
    "sdCardMappings": {
        "CAM_A": {"name": "Camera A", "sourceDirs": ["DCIM"], "destination": "/media/a"},
        "CAM_B": {"name": "Camera B", "sourceDirs": ["PRIVATE"], "destination": "/media/b"},
    },
    "ignoredExtensions": [".xml", ".thm"],
    "timezone": "Europe/Prague",
    "destinationConfig": {"type": "nfs", "path": "/media/nfs/video_archive"},
    "proxyPreset": "fast",
}


def test_log_viewer_shows_newest_first(socket_factory, sockets):
    client = LogStreamClient("localhost", 8080, socket_factory=socket_factory)
    viewer = LogViewer()
    viewer.bind(client)
    client.start()
    sockets[0].accept()
    assert viewer.statusLabel.text() == "open"

    sockets[0].send_text("[12:00:01] Started proxy job")
    sockets[0].send_text("[12:00:05] Created proxy for x.mp4")
    sockets[0].send_text("[12:00:05] Created proxy for x.mp4")

    assert viewer.messages() == ["Created proxy for x.mp4", "Started proxy job"]
    assert viewer.table.item(0, 0).text() == "12:00:05"


def test_log_viewer_clear_resets_buffer(socket_factory, sockets):
    client = LogStreamClient("localhost", 8080, socket_factory=socket_factory)
    viewer = LogViewer()
    viewer.bind(client)
    client.start()
    sockets[0].accept()
    sockets[0].send_text("[1] one")

    viewer.clear()
    assert viewer.table.rowCount() == 0
    assert len(client.buffer) == 0


def test_trigger_dialog_builds_trigger():
    dlg = TriggerSettingsDialog()
    dlg.patternsEdit.setText("Created proxy for, Finished processing")
    dlg.matchCombo.setCurrentText("substring")

    trig = dlg.get_trigger(lambda: None)
    assert trig.patterns == ["Created proxy for", "Finished processing"]
    assert trig.enabled


def test_main_window_refreshes_proxies_on_created_line(socket_factory, sockets, manager):
    w = MainWindow(socket_factory=socket_factory, manager=manager)
    w.hostEdit.setText("nas")
    w.portEdit.setText("9000")
    w.onConnect()

    assert sockets[0].url == "ws://nas:9000/ws/logs"
    assert not w.connectButton.isEnabled()
    manager.last("/api/proxies").respond(
        b'[{"original": "/media/nfs/video_archive/RecentImports/a.mp4", "proxy": ""}]')
    manager.last("/api/destinations").respond(b'["/media/nfs/video_archive/Trips"]')
    assert w.proxyTable.rowCount() == 1
    assert w.proxyTable.item(0, 0).text() == "a.mp4"
    assert w.proxyTable.item(0, 1).text() == "No proxy available"
    assert w.destinationCombo.currentText() == "/media/nfs/video_archive/Trips"

    requests_before = len(manager.replies)
    sockets[0].accept()
    sockets[0].send_text("[12:00:05] Created proxy for /media/b.mp4")
    sockets[0].send_text("[12:00:05] Created proxy for /media/b.mp4")
    assert len(manager.replies) == requests_before + 1
    assert manager.replies[-1].url.endswith("/api/proxies")

    w.onDisconnect()
    assert w.connectButton.isEnabled()
    assert sockets[0].is_closed


def test_main_window_move_selected(socket_factory, manager):
    w = MainWindow(socket_factory=socket_factory, manager=manager)
    w.onConnect()
    manager.last("/api/proxies").respond(b'[{"original": "/m/a.mp4", "proxy": "/m/Proxy/a.mp4"}]')
    manager.last("/api/destinations").respond(b'["/m/Trips"]')

    w.proxyTable.selectRow(0)
    w.onMoveSelected()

    move = manager.last("/api/move")
    assert move.method == "POST"
    assert b"/m/a.mp4" in move.body


def test_reconnect_from_window_keeps_log_history(socket_factory, sockets, manager):
    w = MainWindow(socket_factory=socket_factory, manager=manager)
    w.onConnect()
    sockets[0].accept()
    sockets[0].send_text("[1] one")

    w.onDisconnect()
    w.onConnect()
    sockets[1].accept()
    # Replayed history from the server stays deduplicated
    sockets[1].send_text("[1] one")
    sockets[1].send_text("[2] two")

    assert w.logViewer.messages() == ["two", "one"]
    assert len(w.stream.buffer) == 2
    assert len(sockets) == 2
    assert sockets[0].is_closed


def _edit_and_save(dlg):
    dlg.timezoneEdit.setText("UTC")
    dlg.pathEdit.setText("/mnt/archive")
    dlg.removeMapping("CAM_B")
    dlg.removeExtension(".xml")
    return QtWidgets.QDialog.DialogCode.Accepted


def test_config_editor_edits_known_fields_and_keeps_others():
    dlg = ConfigEditorDialog(None, SERVER_CONFIG)
    _edit_and_save(dlg)
    cfg = dlg.get_config()

    assert cfg["timezone"] == "UTC"
    assert cfg["destinationConfig"] == {"type": "nfs", "path": "/mnt/archive"}
    assert list(cfg["sdCardMappings"]) == ["CAM_A"]
    assert cfg["ignoredExtensions"] == [".thm"]
    assert cfg["proxyPreset"] == "fast"
    # The loaded config is not mutated
    assert SERVER_CONFIG["timezone"] == "Europe/Prague"


def test_server_config_round_trip(socket_factory, manager, monkeypatch):
    monkeypatch.setattr(ConfigEditorDialog, "exec", _edit_and_save)
    w = MainWindow(socket_factory=socket_factory, manager=manager)
    w.onConnect()

    w.onEditServerConfig()
    manager.last("/api/config").respond(json.dumps(SERVER_CONFIG).encode())

    update = manager.last("/api/config/update")
    assert update.method == "POST"
    saved = json.loads(update.body)
    assert saved["timezone"] == "UTC"
    assert list(saved["sdCardMappings"]) == ["CAM_A"]
    assert saved["ignoredExtensions"] == [".thm"]

    update.respond(b"")
    assert w.statusBar().currentMessage() == "Configuration saved"


def test_server_config_cancel_and_failure(socket_factory, manager, monkeypatch):
    monkeypatch.setattr(ConfigEditorDialog, "exec", lambda dlg: QtWidgets.QDialog.DialogCode.Rejected)
    w = MainWindow(socket_factory=socket_factory, manager=manager)
    w.onConnect()

    w.onEditServerConfig()
    manager.last("/api/config").respond(json.dumps(SERVER_CONFIG).encode())
    assert not any(r.url.endswith("/api/config/update") for r in manager.replies)

    w.api.update_config(SERVER_CONFIG)
    manager.last("/api/config/update").respond_error("Internal Server Error")
    assert w.statusBar().currentMessage() == "ERROR (config_update): Internal Server Error"

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from PySide6.QtCore import QEvent, QObject, Qt
from PySide6.QtGui import QAction, QCloseEvent, QFont, QKeyEvent
from PySide6.QtWidgets import (
    QFileDialog,
    QMainWindow,
    QMessageBox,
    QPlainTextEdit,
    QSplitter,
    QTabWidget,
)

from pygide.commands.engine import CommandEngine
from pygide.core.keybindings import KeySequenceMatcher
from pygide.services.language_id import language_id_for_path
from pygide.services.project_defaults import apply_project_defaults
from pygide.settings_manager import SettingsManager
from pygide.settings_store import SettingsStoreError
from pygide.ui.command_tabs import CommandTabManager
from pygide.ui.controllers.execution_controller import ExecutionController
from pygide.ui.key_events import event_to_chord_text


class MainWindow(QMainWindow):
    APP_NAME = "PyGide"

    def __init__(self, settings_manager: SettingsManager, parent=None):
        super().__init__(parent)
        self.settings_manager = settings_manager
        self.current_file_path: Optional[str] = None

        changed = apply_project_defaults(settings_manager, settings_manager.project_root)
        if changed:
            print(f"[PyGide] Project defaults set: {', '.join(changed)}")

        self.editor = QPlainTextEdit(self)
        self.editor.setFont(QFont("Monospace"))
        self.editor.installEventFilter(self)
        self.output_tabs = QTabWidget(self)

        self.execution_controller = ExecutionController(self)
        self.engine = CommandEngine(
            settings_manager,
            context_provider=self.execution_controller.variable_context,
            prompter=self.execution_controller,
            guard=self.execution_controller,
            parent=self,
        )
        self.command_tabs = CommandTabManager(self.output_tabs, self.engine, parent=self)
        self.key_matcher = KeySequenceMatcher(
            settings_manager.get("keybindings.sequences", "ide", default=None),
            timeout_ms=int(settings_manager.get("keybindings.chord_timeout_ms", "ide", default=1500)),
            parent=self,
        )

        self.engine.statusMessage.connect(lambda text: self.statusBar().showMessage(text, 3000))
        self.engine.errorReported.connect(lambda title, text: QMessageBox.warning(self, title, text))
        self.engine.postSaveFinished.connect(self.execution_controller.reload_saved_file)
        self.key_matcher.statusChanged.connect(lambda text: self.statusBar().showMessage(text, 1500))

        splitter = QSplitter(Qt.Vertical, self)
        splitter.addWidget(self.editor)
        splitter.addWidget(self.output_tabs)
        splitter.setStretchFactor(0, 3)
        splitter.setStretchFactor(1, 2)
        self.setCentralWidget(splitter)
        self._build_toolbar()
        self._refresh_title()
        self.resize(1100, 800)

    def project_name(self) -> str:
        return str(self.settings_manager.get("project_name", "project", default="") or "")

    def current_language(self) -> str:
        if not self.current_file_path:
            return ""
        return language_id_for_path(self.current_file_path, default="")

    def open_file(self, file_path: str) -> bool:
        try:
            text = Path(file_path).read_text(encoding="utf-8", errors="replace")
        except OSError as exc:
            QMessageBox.warning(self, "Open File", f"Could not open {file_path}:\n{exc}")
            return False
        self.editor.setPlainText(text)
        self.editor.document().setModified(False)
        self.current_file_path = os.path.abspath(file_path)
        self._refresh_title()
        return True

    def save_current_file(self) -> bool:
        path = self.current_file_path
        if not path:
            return False
        tmp_path = path + ".tmp"
        try:
            Path(tmp_path).write_text(self.editor.toPlainText(), encoding="utf-8")
            os.replace(tmp_path, path)
        except OSError as exc:
            QMessageBox.warning(self, "Save File", f"Could not save {path}:\n{exc}")
            return False
        self.editor.document().setModified(False)
        return True

    def reload_current_file(self) -> bool:
        """Re-read the open file from disk, keeping the cursor where it was."""
        path = self.current_file_path
        if not path:
            return False
        try:
            text = Path(path).read_text(encoding="utf-8", errors="replace")
        except OSError:
            return False
        if text == self.editor.toPlainText():
            return False
        position = self.editor.textCursor().position()
        self.editor.setPlainText(text)
        self.editor.document().setModified(False)
        cursor = self.editor.textCursor()
        cursor.setPosition(min(position, len(text)))
        self.editor.setTextCursor(cursor)
        return True

    def eventFilter(self, obj: QObject, event: QEvent) -> bool:
        if obj is self.editor and event.type() == QEvent.KeyPress and isinstance(event, QKeyEvent):
            chord = event_to_chord_text(event)
            if chord and self.execution_controller.handle_chord(chord):
                return True
        return super().eventFilter(obj, event)

    def closeEvent(self, event: QCloseEvent):
        killed = self.engine.kill_all()
        if killed:
            print(f"[PyGide] Killed {killed} running command(s) on exit")
        try:
            self.settings_manager.save_all(only_dirty=True)
        except SettingsStoreError as exc:
            print(f"[PyGide] {exc}")
        super().closeEvent(event)

    def _build_toolbar(self) -> None:
        toolbar = self.addToolBar("Commands")
        toolbar.setObjectName("CommandsToolbar")
        ctl = self.execution_controller
        for label, slot in (
            ("Open...", self._open_file_dialog),
            ("Save", ctl.save_active_file),
            ("Exec Cmd", ctl.exec_command_prompt),
            ("Build", ctl.build_project),
            ("Run", ctl.run_project),
            ("Commit", ctl.commit_project),
            ("Kill", ctl.kill_active),
        ):
            action = QAction(label, self)
            action.triggered.connect(lambda _checked=False, s=slot: s())
            toolbar.addAction(action)

    def _open_file_dialog(self) -> None:
        path, _selected_filter = QFileDialog.getOpenFileName(self, "Open File", self.settings_manager.project_root)
        if path:
            self.open_file(path)

    def _refresh_title(self) -> None:
        title = f"{self.APP_NAME} [{self.project_name()}]"
        if self.current_file_path:
            title += f" - {os.path.basename(self.current_file_path)}"
        self.setWindowTitle(title)

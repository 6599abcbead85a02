from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from PySide6.QtCore import QObject, Signal
from PySide6.QtGui import QFont, QTextCursor
from PySide6.QtWidgets import QPlainTextEdit, QTabWidget

from pygide.commands.engine import CommandEngine
from pygide.commands.output_buffers import OutputBuffer


@dataclass
class CommandTabSession:
    name: str
    view: QPlainTextEdit
    buffer: OutputBuffer
    running: bool = False
    failed: bool = False


class CommandTabManager(QObject):
    """One read-only output tab per command buffer.

    Closing a tab tells the engine the display is gone, which kills any run
    still writing to that buffer.
    """

    tabsChanged = Signal()

    def __init__(self, tab_widget: QTabWidget, engine: CommandEngine, parent=None):
        super().__init__(parent)
        self.tab_widget = tab_widget
        self.engine = engine
        self._sessions: dict[str, CommandTabSession] = {}

        self.tab_widget.setTabsClosable(True)
        self.tab_widget.setMovable(True)
        self.tab_widget.setDocumentMode(True)
        self.tab_widget.tabCloseRequested.connect(self._on_tab_close_requested)

        engine.bufferShown.connect(self.show_buffer)
        engine.commandStarted.connect(lambda name: self.set_running(name, True))
        engine.commandFinished.connect(self._on_command_finished)

    def session_for(self, name: str) -> Optional[CommandTabSession]:
        return self._sessions.get(name)

    def names(self) -> list[str]:
        return list(self._sessions)

    def active_name(self) -> Optional[str]:
        widget = self.tab_widget.currentWidget()
        for name, session in self._sessions.items():
            if session.view is widget:
                return name
        return None

    def show_buffer(self, name: str, select: bool = True) -> Optional[CommandTabSession]:
        buf = self.engine.buffer_for(name)
        if buf is None:
            return None
        session = self._sessions.get(name)
        if session is None:
            session = self._create_session(name, buf)
        if select:
            self.tab_widget.setCurrentWidget(session.view)
        return session

    def set_running(self, name: str, running: bool) -> None:
        session = self._sessions.get(name)
        if session is None:
            return
        session.running = bool(running)
        if running:
            session.failed = False
        self._sync_tab_title(session)

    def close_tab(self, name: str) -> bool:
        session = self._sessions.pop(name, None)
        if session is None:
            return False
        self.engine.display_closed(name)
        idx = self.tab_widget.indexOf(session.view)
        if idx >= 0:
            self.tab_widget.removeTab(idx)
        session.view.deleteLater()
        self.tabsChanged.emit()
        return True

    def close_all(self) -> None:
        for name in list(self._sessions):
            self.close_tab(name)

    def _create_session(self, name: str, buf: OutputBuffer) -> CommandTabSession:
        view = QPlainTextEdit()
        view.setReadOnly(True)
        view.setObjectName(f"{name}-output")
        view.setFont(QFont("Monospace"))
        view.setLineWrapMode(QPlainTextEdit.NoWrap)
        view.setPlainText(buf.text())

        session = CommandTabSession(name=name, view=view, buffer=buf)
        self._sessions[name] = session
        buf.textAppended.connect(lambda text, s=session: self._on_buffer_text(s, text))
        buf.cleared.connect(lambda s=session: self._on_buffer_cleared(s))
        self.tab_widget.addTab(view, name)
        self._sync_tab_title(session)
        self.tabsChanged.emit()
        return session

    def _is_open(self, session: CommandTabSession) -> bool:
        return self._sessions.get(session.name) is session

    def _on_buffer_text(self, session: CommandTabSession, text: str) -> None:
        if not self._is_open(session):
            return
        view = session.view
        view.moveCursor(QTextCursor.End)
        view.insertPlainText(text)
        view.moveCursor(QTextCursor.End)

    def _on_buffer_cleared(self, session: CommandTabSession) -> None:
        if self._is_open(session):
            session.view.clear()

    def _on_command_finished(self, name: str, exit_code: int) -> None:
        session = self._sessions.get(name)
        if session is None:
            return
        session.running = False
        session.failed = int(exit_code) != 0
        self._sync_tab_title(session)

    def _on_tab_close_requested(self, index: int) -> None:
        widget = self.tab_widget.widget(index)
        for name, session in list(self._sessions.items()):
            if session.view is widget:
                self.close_tab(name)
                return

    def _sync_tab_title(self, session: CommandTabSession) -> None:
        idx = self.tab_widget.indexOf(session.view)
        if idx < 0:
            return
        if session.running:
            title = f"● {session.name}"
        elif session.failed:
            title = f"✖ {session.name}"
        else:
            title = session.name
        self.tab_widget.setTabText(idx, title)

"""Controller wiring the command engine to dialogs, status bar and key chords."""

from __future__ import annotations

import os
from typing import Callable, Optional

from PySide6.QtGui import QTextCursor
from PySide6.QtWidgets import QFileDialog, QInputDialog, QLineEdit, QMessageBox, QPlainTextEdit

from pygide.commands.argvars import EditorState, TextPos, VariableContext
from pygide.commands.chain import SaveChoice
from pygide.core.keybindings import KeyFunction

_PROMPT_LABELS = {
    "PromptString1": "Value",
    "PromptString2": "Second value",
}


def _pos_for(edit: QPlainTextEdit, position: int) -> TextPos:
    block = edit.document().findBlock(position)
    return TextPos(line=block.blockNumber(), col=position - block.position())


def editor_state_from_text_edit(edit: QPlainTextEdit) -> EditorState:
    cursor = edit.textCursor()
    word_cursor = QTextCursor(cursor)
    word_cursor.select(QTextCursor.WordUnderCursor)
    selected = cursor.selectedText().replace("\u2029", "\n")
    start = end = None
    if cursor.hasSelection():
        start = _pos_for(edit, cursor.selectionStart())
        end = _pos_for(edit, cursor.selectionEnd())
    return EditorState(
        cursor=TextPos(line=cursor.blockNumber(), col=cursor.positionInBlock()),
        selection_start=start,
        selection_end=end,
        selected_text=selected,
        line_text=cursor.block().text(),
        word=word_cursor.selectedText(),
    )


class ExecutionController:
    """Host side of the engine: dialogs for prompts and unsaved files, toolbar actions."""

    def __init__(self, ide):
        self.ide = ide

    def __getattr__(self, name: str):
        return getattr(self.ide, name)

    # ---------- Engine hooks ----------

    def variable_context(self) -> VariableContext:
        editor = self.ide.editor
        file_path = self.ide.current_file_path or ""
        return VariableContext(
            file_path=file_path,
            project_root=self.ide.settings_manager.project_root,
            editor=editor_state_from_text_edit(editor) if file_path else None,
        )

    def prompt_string(self, command_name: str, var_name: str, default: str) -> Optional[str]:
        label = _PROMPT_LABELS.get(var_name, var_name)
        if "Commit" in command_name and var_name == "PromptString1":
            label = "Commit message"
        text, ok = QInputDialog.getText(self.ide, command_name, f"{label}:", QLineEdit.Normal, default)
        if not ok:
            return None
        return str(text)

    def prompt_file(self, command_name: str, start_dir: str) -> Optional[str]:
        path, _selected_filter = QFileDialog.getOpenFileName(self.ide, f"{command_name}: choose file", start_dir)
        return str(path) if path else None

    def unsaved_count(self) -> int:
        return 1 if self.ide.current_file_path and self.ide.editor.document().isModified() else 0

    def confirm_save_all(self, count: int, *, cancel_allowed: bool) -> SaveChoice:
        box = QMessageBox(self.ide)
        box.setIcon(QMessageBox.Warning)
        box.setWindowTitle("There are Unsaved Files")
        box.setText(f"In Project: {self.ide.project_name()} There are {count} opened files with unsaved changes.")
        box.setInformativeText("Do you want to save all files before running?")
        save_btn = box.addButton("Save All", QMessageBox.AcceptRole)
        dont_btn = box.addButton("Don't Save", QMessageBox.DestructiveRole)
        cancel_btn = box.addButton(QMessageBox.Cancel) if cancel_allowed else None
        box.setDefaultButton(save_btn)
        box.exec()
        clicked = box.clickedButton()
        if clicked is save_btn:
            return SaveChoice.SAVE_ALL
        if clicked is dont_btn:
            return SaveChoice.DONT_SAVE
        if cancel_btn is not None and clicked is cancel_btn:
            return SaveChoice.CANCEL
        return SaveChoice.CANCEL if cancel_allowed else SaveChoice.DONT_SAVE

    def save_all(self) -> bool:
        return bool(self.ide.save_current_file())

    # ---------- Actions ----------

    def key_function_handlers(self) -> dict[KeyFunction, Callable[[], None]]:
        return {
            KeyFunction.EXEC_COMMAND: self.exec_command_prompt,
            KeyFunction.BUILD: self.build_project,
            KeyFunction.RUN: self.run_project,
            KeyFunction.COMMIT: self.commit_project,
            KeyFunction.SAVE: self.save_active_file,
            KeyFunction.KILL_ACTIVE: self.kill_active,
        }

    def handle_key_function(self, function: KeyFunction) -> None:
        self.key_function_handlers()[function]()

    def handle_chord(self, chord_text: str) -> bool:
        consumed, function = self.ide.key_matcher.feed(chord_text)
        if function is not None:
            self.handle_key_function(function)
        return consumed

    def exec_command_prompt(self) -> None:
        engine = self.ide.engine
        lang = self.ide.current_language() or engine.project_lang()
        names = engine.filter_applicable(lang, engine.project_vcs())
        if not names:
            self.statusBar().showMessage("No commands apply to this file.", 2200)
            return
        last = engine.history.last()
        current = names.index(last) if last in names else 0
        name, ok = QInputDialog.getItem(self.ide, "Execute Command", "Command:", names, current, False)
        if not ok or not name:
            return
        self._execute(name)

    def _execute(self, name: str) -> None:
        engine = self.ide.engine
        run = engine.execute_named(
            name,
            select=self._focus_output(),
            clear=self._clear_output(),
            check_unsaved=True,
        )
        if run is not None:
            self.statusBar().showMessage(f"Running: {name}", 1600)

    def build_project(self) -> None:
        if self.ide.engine.build() is not None:
            self.statusBar().showMessage("Building...", 1600)

    def run_project(self) -> None:
        if self.ide.engine.run() is not None:
            self.statusBar().showMessage("Running...", 1600)

    def commit_project(self) -> None:
        self.ide.engine.commit(language=self.ide.current_language())

    def save_active_file(self) -> None:
        path = self.ide.current_file_path
        if not path:
            self.statusBar().showMessage("No file to save.", 1600)
            return
        if not self.ide.save_current_file():
            return
        self.statusBar().showMessage(f"Saved {os.path.basename(path)}", 1600)
        self.ide.engine.run_post_save_commands(path)

    def reload_saved_file(self, file_path: str) -> None:
        if not self.ide.current_file_path or os.path.abspath(file_path) != self.ide.current_file_path:
            return
        if self.ide.editor.document().isModified():
            return
        if self.ide.reload_current_file():
            self.statusBar().showMessage(f"Reloaded {os.path.basename(file_path)}", 1600)

    def kill_active(self) -> None:
        name = self.ide.command_tabs.active_name()
        if not name:
            self.statusBar().showMessage("No active command tab.", 1600)
            return
        if self.ide.engine.kill(name):
            self.statusBar().showMessage(f"Killed: {name}", 2200)
        else:
            self.statusBar().showMessage(f"{name} is not running.", 1600)

    def _focus_output(self) -> bool:
        return bool(self.ide.settings_manager.get("run.focus_output_on_run", "ide", default=True))

    def _clear_output(self) -> bool:
        return bool(self.ide.settings_manager.get("run.clear_output_before_run", "ide", default=True))

"""Argument variables for command templates.

Commands reference editor/project state through bracketed tokens such as
``{FilePath}`` or ``{CurLine}``. Values are resolved into a fresh map right
before each invocation; interactive tokens (``{Prompt...}``) stay ``None``
until the caller fills them for that one invocation.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional


ArgVarValues = dict[str, Optional[str]]


@dataclass(frozen=True, slots=True)
class ArgVar:
    name: str
    desc: str
    interactive: bool = False

    @property
    def token(self) -> str:
        return "{" + self.name + "}"


ARG_VARS: tuple[ArgVar, ...] = (
    ArgVar("FilePath", "Current file name with full path."),
    ArgVar("FileName", "Current file name only, without path."),
    ArgVar("FileExt", "Extension of current file name."),
    ArgVar("FileExtLC", "Extension of current file name, lowercase."),
    ArgVar("FileNameNoExt", "Current file name without path and extension."),
    ArgVar("FileDir", "Name only of current file's directory."),
    ArgVar("FileDirPath", "Full path to current file's directory."),
    ArgVar("FileDirProjRel", "Path to current file's directory relative to project root."),
    ArgVar("ProjectDir", "Current project directory name, without full path."),
    ArgVar("ProjectPath", "Full path to current project directory."),
    ArgVar("CurLine", "Cursor current line number (starts at 1)."),
    ArgVar("CurCol", "Cursor current column number (starts at 0)."),
    ArgVar("SelStartLine", "Selection starting line (same as CurLine if no selection)."),
    ArgVar("SelStartCol", "Selection starting column (same as CurCol if no selection)."),
    ArgVar("SelEndLine", "Selection ending line (same as CurLine if no selection)."),
    ArgVar("SelEndCol", "Selection ending column (same as CurCol if no selection)."),
    ArgVar("CurSel", "Currently selected text."),
    ArgVar("CurLineText", "Current line text under cursor."),
    ArgVar("CurWord", "Current word under cursor."),
    ArgVar("PromptFilePath", "Prompt user for a file, full path to that file.", True),
    ArgVar("PromptFileName", "Prompt user for a file, file name only.", True),
    ArgVar("PromptFileDir", "Prompt user for a file, directory name only.", True),
    ArgVar("PromptFileDirPath", "Prompt user for a file, full path to its directory.", True),
    ArgVar("PromptFileDirProjRel", "Prompt user for a file, its directory relative to the project root.", True),
    ArgVar("PromptString1", "Prompt user for a string.", True),
    ArgVar("PromptString2", "Prompt user for another string.", True),
)

ARG_VAR_NAMES: tuple[str, ...] = tuple(var.name for var in ARG_VARS)
INTERACTIVE_VAR_NAMES: frozenset[str] = frozenset(var.name for var in ARG_VARS if var.interactive)
PROMPT_FILE_VAR_NAMES: tuple[str, ...] = (
    "PromptFilePath",
    "PromptFileName",
    "PromptFileDir",
    "PromptFileDirPath",
    "PromptFileDirProjRel",
)
PROMPT_STRING_VAR_NAMES: tuple[str, ...] = ("PromptString1", "PromptString2")

_EDITOR_VAR_NAMES: tuple[str, ...] = (
    "CurLine",
    "CurCol",
    "SelStartLine",
    "SelStartCol",
    "SelEndLine",
    "SelEndCol",
    "CurSel",
    "CurLineText",
    "CurWord",
)


@dataclass(frozen=True, slots=True)
class TextPos:
    line: int  # 0-based
    col: int  # 0-based


@dataclass(frozen=True, slots=True)
class EditorState:
    """Cursor/selection snapshot of the active editor."""

    cursor: TextPos
    selection_start: Optional[TextPos] = None
    selection_end: Optional[TextPos] = None
    selected_text: str = ""
    line_text: str = ""
    word: str = ""

    def has_selection(self) -> bool:
        return (
            self.selection_start is not None
            and self.selection_end is not None
            and self.selection_start != self.selection_end
        )


@dataclass(frozen=True, slots=True)
class VariableContext:
    """Live editor/project state captured right before a command runs."""

    file_path: str = ""
    project_root: str = ""
    editor: Optional[EditorState] = None

    def arg_var_values(self) -> ArgVarValues:
        return resolve_arg_vars(self.file_path, self.project_root, self.editor)


def _clean(path: str) -> str:
    text = str(path or "").strip()
    if not text:
        return ""
    return os.path.normpath(text)


def _rel_dir(dir_path: str, project_root: str) -> str:
    if not dir_path or not project_root:
        return ""
    try:
        return os.path.relpath(dir_path, project_root)
    except ValueError:
        # Different drives on Windows.
        return ""


def empty_arg_var_values() -> ArgVarValues:
    values: ArgVarValues = {}
    for var in ARG_VARS:
        values[var.name] = None if var.interactive else ""
    return values


def resolve_arg_vars(
    file_path: str,
    project_root: str,
    editor: Optional[EditorState] = None,
) -> ArgVarValues:
    values = empty_arg_var_values()

    proj_path = _clean(project_root)
    values["ProjectPath"] = proj_path
    values["ProjectDir"] = os.path.basename(proj_path.rstrip(os.sep)) if proj_path else ""

    fpath = _clean(file_path)
    if fpath:
        dir_path, file_name = os.path.split(fpath)
        ext = os.path.splitext(file_name)[1]
        values["FilePath"] = fpath
        values["FileName"] = file_name
        values["FileExt"] = ext
        values["FileExtLC"] = ext.lower()
        values["FileNameNoExt"] = file_name[: len(file_name) - len(ext)] if ext else file_name
        values["FileDir"] = os.path.basename(dir_path)
        values["FileDirPath"] = dir_path
        values["FileDirProjRel"] = _rel_dir(dir_path, proj_path)

    if editor is not None:
        cursor = editor.cursor
        if editor.has_selection():
            start = editor.selection_start
            end = editor.selection_end
        else:
            start = end = cursor
        values["CurLine"] = str(cursor.line + 1)
        values["CurCol"] = str(cursor.col)
        values["SelStartLine"] = str(start.line + 1)
        values["SelStartCol"] = str(start.col)
        values["SelEndLine"] = str(end.line + 1)
        values["SelEndCol"] = str(end.col)
        values["CurSel"] = editor.selected_text if editor.has_selection() else ""
        values["CurLineText"] = editor.line_text
        values["CurWord"] = editor.word
    else:
        for name in _EDITOR_VAR_NAMES:
            values[name] = ""
    return values


def set_prompt_file_vars(values: ArgVarValues, prompt_path: str, project_root: str) -> None:
    fpath = _clean(prompt_path)
    dir_path, file_name = os.path.split(fpath)
    values["PromptFilePath"] = fpath
    values["PromptFileName"] = file_name
    values["PromptFileDir"] = os.path.basename(dir_path)
    values["PromptFileDirPath"] = dir_path
    values["PromptFileDirProjRel"] = _rel_dir(dir_path, _clean(project_root))


def referenced_arg_vars(template: str) -> list[str]:
    """Known variable names referenced by a template, in order of first use."""
    out: list[str] = []
    idx = 0
    size = len(template)
    while idx < size:
        start = template.find("{", idx)
        if start < 0:
            break
        if start > 0 and template[start - 1] == "\\":
            idx = start + 1
            continue
        end = template.find("}", start + 1)
        if end < 0:
            break
        name = template[start + 1 : end]
        if name in ARG_VAR_NAMES and name not in out:
            out.append(name)
        idx = end + 1
    return out


def _unescape(segment: str) -> str:
    return segment.replace("\\}", "}")


def bind_arg_vars(arg: str, values: ArgVarValues, *, sep: str = os.sep) -> str:
    """Replace ``{Name}`` tokens in ``arg`` with their values in one pass.

    ``\\{`` and ``\\}`` produce literal braces. Unknown names and unresolved
    interactive tokens are kept verbatim. An unterminated ``{`` ends scanning
    and the remainder is copied as-is.
    """
    text = str(arg or "")
    parts: list[str] = []
    idx = 0
    size = len(text)
    while idx < size:
        start = text.find("{", idx)
        if start < 0:
            parts.append(_unescape(text[idx:]))
            break
        if start > 0 and text[start - 1] == "\\":
            parts.append(_unescape(text[idx : start - 1]))
            parts.append("{")
            idx = start + 1
            continue
        end = text.find("}", start + 1)
        if end < 0:
            parts.append(_unescape(text[idx:start]))
            parts.append(text[start:])
            break
        parts.append(_unescape(text[idx:start]))
        name = text[start + 1 : end]
        value = values.get(name)
        if value is None:
            parts.append(text[start : end + 1])
        else:
            parts.append(value)
        idx = end + 1

    out = "".join(parts)
    if sep != "/":
        out = out.replace("}/{", "}" + sep + "{")
    return out

"""Language-id resolution for project files.

Ids are the lower-case names used by command ``langs`` filters and by the
``languages.<id>`` project settings, e.g. ``"go"``, ``"python"``, ``"tex"``.
"""

from __future__ import annotations

from pathlib import Path

_EXTENSION_LANGUAGE_IDS: dict[str, str] = {
    ".go": "go",
    ".py": "python",
    ".pyw": "python",
    ".pyi": "python",
    ".tex": "tex",
    ".bib": "bibtex",
    ".rs": "rust",
    ".c": "c",
    ".h": "c",
    ".cpp": "cpp",
    ".hpp": "cpp",
    ".cc": "cpp",
    ".hh": "cpp",
    ".java": "java",
    ".js": "javascript",
    ".mjs": "javascript",
    ".ts": "typescript",
    ".html": "html",
    ".htm": "html",
    ".css": "css",
    ".xml": "xml",
    ".json": "json",
    ".sh": "shell",
    ".bash": "shell",
    ".md": "markdown",
}

_FILENAME_LANGUAGE_IDS: dict[str, str] = {
    "makefile": "make",
    "gnumakefile": "make",
    "go.mod": "gomod",
}

# Languages that can drive project defaults when guessed from file counts.
PROGRAMMING_LANGUAGE_IDS: frozenset[str] = frozenset(
    {"go", "python", "tex", "rust", "c", "cpp", "java", "javascript", "typescript", "shell"}
)


def language_id_for_path(file_path: str | None, *, default: str = "plaintext") -> str:
    """Return a normalized language id for a file path."""
    path_text = str(file_path or "").strip()
    if not path_text:
        return str(default or "").strip().lower()

    name = Path(path_text).name.lower()
    if name in _FILENAME_LANGUAGE_IDS:
        return _FILENAME_LANGUAGE_IDS[name]

    suffix = Path(path_text).suffix.lower()
    if suffix in _EXTENSION_LANGUAGE_IDS:
        return _EXTENSION_LANGUAGE_IDS[suffix]

    return str(default or "").strip().lower()

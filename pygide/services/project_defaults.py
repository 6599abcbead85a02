"""First-open guesses for a project's main language, VCS and command chains."""

from __future__ import annotations

import os
from collections import Counter
from dataclasses import dataclass

from .language_id import PROGRAMMING_LANGUAGE_IDS, language_id_for_path

VERS_CTRL_MARKERS: dict[str, str] = {
    "git": ".git",
    "svn": ".svn",
}

_SKIPPED_DIRS = {".git", ".svn", ".hg", ".pygide", "__pycache__", "node_modules", ".venv", "venv"}


@dataclass(frozen=True, slots=True)
class LangDefaults:
    build_cmds: tuple[str, ...]
    run_cmds: tuple[str, ...]
    recognized: bool


def count_file_extensions(project_root: str, *, max_files: int = 20000) -> Counter[str]:
    counts: Counter[str] = Counter()
    seen = 0
    for _walk_root, dirnames, filenames in os.walk(project_root, topdown=True):
        dirnames[:] = sorted(d for d in dirnames if d not in _SKIPPED_DIRS and not d.startswith("."))
        for filename in filenames:
            seen += 1
            if seen > max_files:
                return counts
            suffix = os.path.splitext(filename)[1].lower()
            if suffix:
                counts[suffix] += 1
    return counts


def guess_main_lang(project_root: str) -> str:
    """Language of the most common supported file extension, or ``""``."""
    counts = count_file_extensions(project_root)
    # Most files first; ties resolved by extension name for stable results.
    for suffix, _count in sorted(counts.items(), key=lambda item: (-item[1], item[0])):
        lang = language_id_for_path(f"x{suffix}", default="")
        if lang in PROGRAMMING_LANGUAGE_IDS:
            return lang
    return ""


def guess_vers_ctrl(project_root: str) -> str:
    for vcs, marker in VERS_CTRL_MARKERS.items():
        if os.path.exists(os.path.join(project_root, marker)):
            return vcs
    return ""


def lang_defaults(main_lang: str) -> LangDefaults:
    lang = str(main_lang or "").strip().lower()
    if lang == "go":
        return LangDefaults(build_cmds=("Build Go Proj",), run_cmds=("Run Proj",), recognized=True)
    if lang == "tex":
        return LangDefaults(build_cmds=("LaTeX PDF",), run_cmds=("Open Target File",), recognized=True)
    return LangDefaults(build_cmds=("Make",), run_cmds=("Run Proj",), recognized=False)


def apply_project_defaults(settings_manager, project_root: str) -> list[str]:
    """Fill unset ``main_lang``/``vers_ctrl``/build and run chains; returns the keys set."""
    changed: list[str] = []
    main_lang = str(settings_manager.get("main_lang", "project", default="") or "")
    if not main_lang:
        main_lang = guess_main_lang(project_root)
        if main_lang:
            settings_manager.set("main_lang", main_lang, "project")
            changed.append("main_lang")
    if not settings_manager.get("vers_ctrl", "project", default=""):
        vcs = guess_vers_ctrl(project_root)
        if vcs:
            settings_manager.set("vers_ctrl", vcs, "project")
            changed.append("vers_ctrl")
    defaults = lang_defaults(main_lang)
    if not settings_manager.get("build_cmds", "project", default=[]):
        settings_manager.set("build_cmds", list(defaults.build_cmds), "project")
        changed.append("build_cmds")
    if not settings_manager.get("run_cmds", "project", default=[]):
        settings_manager.set("run_cmds", list(defaults.run_cmds), "project")
        changed.append("run_cmds")
    return changed

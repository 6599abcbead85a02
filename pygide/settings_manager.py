from __future__ import annotations

import os
from copy import deepcopy
from pathlib import Path
from typing import Any

from pygide.core.keybindings import normalize_keybindings
from pygide.settings_models import (
    SettingsPaths,
    SettingsScope,
    default_ide_settings,
    default_project_settings,
)
from pygide.settings_store import JsonSettingsStore, deep_merge_defaults

IDE_APP_DIR_ENV = "PYGIDE_IDE_APP_DIR"
IDE_SETTINGS_DIRNAME = ".pygide"

IDE_KEY_PREFIXES: tuple[str, ...] = (
    "run",
    "keybindings",
    "user",
    "history",
    "projects",
)

PROJECT_KEY_PREFIXES: tuple[str, ...] = (
    "project_name",
    "main_lang",
    "vers_ctrl",
    "build_cmds",
    "run_cmds",
    "languages",
    "changelog",
)


def default_ide_app_dir() -> str:
    override = os.environ.get(IDE_APP_DIR_ENV, "").strip()
    if override:
        return str(Path(override).expanduser())
    return str(Path.home() / IDE_SETTINGS_DIRNAME)


def _clamp_int(value: Any, default: int, low: int, high: int) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return max(low, min(high, number))


def _norm_name_list(raw: Any) -> list[str]:
    if isinstance(raw, str):
        raw = [raw]
    if not isinstance(raw, list):
        return []
    out: list[str] = []
    for item in raw:
        text = str(item or "").strip()
        if text and text not in out:
            out.append(text)
    return out


def _norm_command_configs(raw: Any) -> list[dict[str, Any]]:
    if not isinstance(raw, list):
        return []
    out: list[dict[str, Any]] = []
    seen: set[str] = set()
    for item in raw:
        if not isinstance(item, dict):
            continue
        name = str(item.get("name") or "").strip()
        if not name or name in seen:
            continue
        seen.add(name)
        cfg = dict(item)
        cfg["name"] = name
        out.append(cfg)
    return out


class SettingsManager:
    """Project and IDE settings, each backed by its own JSON file.

    Project scope lives in ``<project>/.pygide/project.json`` and holds the
    build/run chains, version control, language options and changelog. IDE
    scope holds user-level options and custom commands shared by all
    projects. Commands defined at project scope override IDE ones by name.
    """

    def __init__(
        self,
        project_root: str | Path,
        ide_app_dir: str | Path,
        *,
        project_filename: str = ".pygide/project.json",
        ide_filename: str = "ide-settings.json",
        project_persistent: bool = True,
    ) -> None:
        self.paths = SettingsPaths(
            project_root=Path(project_root),
            ide_app_dir=Path(ide_app_dir),
            project_filename=project_filename,
            ide_filename=ide_filename,
        )
        self.project_store = JsonSettingsStore(
            self.paths.project_file,
            default_project_settings(),
            persistent=project_persistent,
        )
        self.ide_store = JsonSettingsStore(self.paths.ide_file, default_ide_settings())

    @property
    def project_root(self) -> str:
        return str(self.paths.project_root)

    def store_for(self, scope: SettingsScope) -> JsonSettingsStore:
        if scope == "project":
            return self.project_store
        if scope == "ide":
            return self.ide_store
        raise ValueError(f"Unknown settings scope: {scope!r}")

    def load_all(self) -> None:
        self.project_store.load()
        self.ide_store.load()
        self._normalize_project_settings()
        self._normalize_ide_settings()

    def save_all(self, scopes: set[SettingsScope] | None = None, *, only_dirty: bool = False) -> set[SettingsScope]:
        saved: set[SettingsScope] = set()
        for scope in sorted(scopes if scopes is not None else {"project", "ide"}):
            store = self.store_for(scope)
            if store.last_error:
                # Never overwrite a malformed file with regenerated defaults.
                continue
            if only_dirty and not store.dirty:
                continue
            store.save()
            saved.add(scope)
        return saved

    def load_errors(self) -> dict[SettingsScope, str]:
        errors: dict[SettingsScope, str] = {}
        for scope in ("project", "ide"):
            message = self.store_for(scope).last_error
            if message:
                errors[scope] = message
        return errors

    def resolve_key_scope(self, key: str) -> SettingsScope | None:
        for prefix in PROJECT_KEY_PREFIXES:
            if key == prefix or key.startswith(prefix + "."):
                return "project"
        for prefix in IDE_KEY_PREFIXES:
            if key == prefix or key.startswith(prefix + "."):
                return "ide"
        return None

    def get(self, key: str, scope_preference: SettingsScope | None = None, *, default: Any = None) -> Any:
        if scope_preference is not None:
            return self.store_for(scope_preference).get(key, default)
        scope = self.resolve_key_scope(key)
        if scope is not None:
            return self.store_for(scope).get(key, default)
        project_val = self.project_store.get(key, None)
        if project_val is not None:
            return project_val
        return self.ide_store.get(key, default)

    def set(self, key: str, value: Any, scope: SettingsScope) -> None:
        self.store_for(scope).set(key, value)

    def add_change_record(self, record: dict[str, Any]) -> None:
        self.project_store.append_to_list("changelog", record)

    def _normalize_project_settings(self) -> bool:
        data = self.project_store.data
        before = deepcopy(data)

        for key in ("project_name", "main_lang", "vers_ctrl"):
            text = str(data.get(key) or "").strip()
            data[key] = text if key == "project_name" else text.lower()
        if not data["project_name"]:
            data["project_name"] = self.paths.project_root.name

        data["build_cmds"] = _norm_name_list(data.get("build_cmds"))
        data["run_cmds"] = _norm_name_list(data.get("run_cmds"))

        commands = data.get("commands")
        if not isinstance(commands, dict):
            commands = {}
        commands["custom"] = _norm_command_configs(commands.get("custom"))
        data["commands"] = commands

        languages = data.get("languages")
        if not isinstance(languages, dict):
            languages = {}
        normalized_langs: dict[str, Any] = {}
        for lang, opts in languages.items():
            lang_key = str(lang or "").strip().lower()
            if not lang_key:
                continue
            opts = opts if isinstance(opts, dict) else {}
            # "Python" and "python" collapse into one entry.
            earlier = normalized_langs.get(lang_key, {})
            cmds = _norm_name_list(earlier.get("post_save_cmds", []) + _norm_name_list(opts.get("post_save_cmds")))
            normalized_langs[lang_key] = {**earlier, **opts, "post_save_cmds": cmds}
        data["languages"] = normalized_langs

        changelog = data.get("changelog")
        data["changelog"] = [item for item in changelog if isinstance(item, dict)] if isinstance(changelog, list) else []

        changed = data != before
        if changed:
            self.project_store.dirty = True
        return changed

    def _normalize_ide_settings(self) -> bool:
        data = self.ide_store.data
        before = deepcopy(data)
        defaults = default_ide_settings()

        run = deep_merge_defaults(data.get("run") if isinstance(data.get("run"), dict) else {}, defaults["run"])
        run["clear_output_before_run"] = bool(run.get("clear_output_before_run", True))
        run["focus_output_on_run"] = bool(run.get("focus_output_on_run", True))
        run["kill_grace_ms"] = _clamp_int(run.get("kill_grace_ms"), 1500, 0, 60000)
        data["run"] = run

        keys = data.get("keybindings") if isinstance(data.get("keybindings"), dict) else {}
        keys = deep_merge_defaults(keys, defaults["keybindings"])
        keys["chord_timeout_ms"] = _clamp_int(keys.get("chord_timeout_ms"), 1500, 0, 10000)
        keys["sequences"] = normalize_keybindings(keys.get("sequences"))
        data["keybindings"] = keys

        commands = data.get("commands") if isinstance(data.get("commands"), dict) else {}
        commands["custom"] = _norm_command_configs(commands.get("custom"))
        data["commands"] = commands

        history = data.get("history") if isinstance(data.get("history"), dict) else {}
        history = deep_merge_defaults(history, defaults["history"])
        history["max_commands"] = _clamp_int(history.get("max_commands"), 30, 1, 500)
        history["commands"] = _norm_name_list(history.get("commands"))[-history["max_commands"]:]
        data["history"] = history

        user = data.get("user") if isinstance(data.get("user"), dict) else {}
        data["user"] = {
            "name": str(user.get("name") or "").strip(),
            "email": str(user.get("email") or "").strip(),
        }

        changed = data != before
        if changed:
            self.ide_store.dirty = True
        return changed

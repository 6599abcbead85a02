from __future__ import annotations

from copy import deepcopy
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal, TypedDict

from pygide.core.keybindings import default_keybindings

SettingsScope = Literal["project", "ide"]


class CommandStepConfig(TypedDict, total=False):
    program: str
    args: list[str]


class CommandConfig(TypedDict, total=False):
    name: str
    desc: str
    dir: str
    steps: list[CommandStepConfig]
    langs: list[str]
    wait: bool
    user_prompt: bool


class CommandsSettings(TypedDict, total=False):
    custom: list[CommandConfig]


class LanguageOptions(TypedDict, total=False):
    post_save_cmds: list[str]


class ChangeRecord(TypedDict, total=False):
    date: str  # ISO-8601, local time
    author: str
    email: str
    message: str


class RunSettings(TypedDict, total=False):
    clear_output_before_run: bool
    focus_output_on_run: bool
    kill_grace_ms: int


class KeySequenceSettings(TypedDict, total=False):
    chord_timeout_ms: int
    sequences: dict[str, list[str]]


class UserSettings(TypedDict, total=False):
    name: str
    email: str


class HistorySettings(TypedDict, total=False):
    max_commands: int
    commands: list[str]


class ProjectSettings(TypedDict, total=False):
    project_name: str
    main_lang: str
    vers_ctrl: str
    build_cmds: list[str]
    run_cmds: list[str]
    commands: CommandsSettings
    languages: dict[str, LanguageOptions]
    changelog: list[ChangeRecord]


class IdeSettings(TypedDict, total=False):
    run: RunSettings
    commands: CommandsSettings
    keybindings: KeySequenceSettings
    user: UserSettings
    history: HistorySettings
    projects: dict[str, Any]


@dataclass(slots=True, frozen=True)
class SettingsPaths:
    project_root: Path
    ide_app_dir: Path
    project_filename: str = ".pygide/project.json"
    ide_filename: str = "ide-settings.json"
    project_file: Path = field(init=False)
    ide_file: Path = field(init=False)

    def __post_init__(self) -> None:
        project_root = Path(self.project_root).expanduser().resolve()
        ide_app_dir = Path(self.ide_app_dir).expanduser().resolve()
        object.__setattr__(self, "project_root", project_root)
        object.__setattr__(self, "ide_app_dir", ide_app_dir)
        object.__setattr__(self, "project_file", project_root / self.project_filename)
        object.__setattr__(self, "ide_file", ide_app_dir / self.ide_filename)


def default_project_settings() -> ProjectSettings:
    defaults: ProjectSettings = {
        "project_name": "",
        "main_lang": "",
        "vers_ctrl": "",
        "build_cmds": [],
        "run_cmds": [],
        "commands": {"custom": []},
        "languages": {
            "go": {"post_save_cmds": []},
            "python": {"post_save_cmds": []},
        },
        "changelog": [],
    }
    return deepcopy(defaults)


def default_ide_settings() -> IdeSettings:
    defaults: IdeSettings = {
        "run": {
            "clear_output_before_run": True,
            "focus_output_on_run": True,
            "kill_grace_ms": 1500,
        },
        "commands": {"custom": []},
        "keybindings": {
            "chord_timeout_ms": 1500,
            "sequences": default_keybindings(),
        },
        "user": {"name": "", "email": ""},
        "history": {"max_commands": 30, "commands": []},
        "projects": {
            "open_last_project": False,
            "max_recent_projects": 10,
            "recent_projects": [],
        },
    }
    return deepcopy(defaults)

import os
import sys
import time
from pathlib import Path
from typing import Any, Callable

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

import pytest
from PySide6.QtCore import QCoreApplication, QEventLoop
from PySide6.QtWidgets import QApplication

from pygide.commands.argvars import resolve_arg_vars
from pygide.commands.chain import SaveChoice
from pygide.commands.engine import CommandEngine
from pygide.settings_manager import SettingsManager


@pytest.fixture(scope="session")
def qapp() -> QApplication:
    app = QApplication.instance()
    if app is None:
        app = QApplication([sys.argv[0]])
    return app


def pump(timeout_ms: int = 20) -> None:
    QCoreApplication.processEvents(QEventLoop.AllEvents, timeout_ms)


def wait_until_true(predicate: Callable[[], bool], timeout: float = 10.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        pump()
        if predicate():
            return True
        time.sleep(0.005)
    return bool(predicate())


@pytest.fixture
def wait_until(qapp) -> Callable[..., bool]:
    return wait_until_true


def py_step(code: str, *args: str) -> dict[str, Any]:
    """Config for one step that runs ``code`` with the current interpreter."""
    return {"program": sys.executable, "args": ["-c", code, *args]}


def py_command(name: str, code: str, *args: str, **extra: Any) -> dict[str, Any]:
    return {"name": name, "steps": [py_step(code, *args)], **extra}


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    root = tmp_path / "proj"
    root.mkdir()
    return root


@pytest.fixture
def settings_manager(tmp_path: Path, project_dir: Path) -> SettingsManager:
    manager = SettingsManager(project_root=project_dir, ide_app_dir=tmp_path / "ide")
    manager.load_all()
    return manager


@pytest.fixture
def values(project_dir: Path):
    return resolve_arg_vars("", str(project_dir))


class FakeGuard:
    def __init__(self, unsaved: int = 0, choice: SaveChoice = SaveChoice.SAVE_ALL) -> None:
        self.unsaved = unsaved
        self.choice = choice
        self.asked: list[tuple[int, bool]] = []
        self.saved = 0

    def unsaved_count(self) -> int:
        return self.unsaved

    def confirm_save_all(self, count: int, *, cancel_allowed: bool) -> SaveChoice:
        self.asked.append((count, cancel_allowed))
        return self.choice

    def save_all(self) -> bool:
        self.saved += 1
        self.unsaved = 0
        return True


class FakePrompter:
    def __init__(self, answers: list | None = None, file_path: str | None = None) -> None:
        self.answers = list(answers or [])
        self.file_path = file_path
        self.string_calls: list[tuple[str, str, str]] = []
        self.file_calls: list[tuple[str, str]] = []

    def prompt_string(self, command_name: str, var_name: str, default: str):
        self.string_calls.append((command_name, var_name, default))
        return self.answers.pop(0) if self.answers else None

    def prompt_file(self, command_name: str, start_dir: str):
        self.file_calls.append((command_name, start_dir))
        return self.file_path


@pytest.fixture
def make_engine(qapp, settings_manager: SettingsManager):
    """Engine over ``settings_manager`` with the given project-scope settings applied."""
    created: list[CommandEngine] = []

    def factory(commands: list | None = None, **kwargs: Any) -> CommandEngine:
        project = kwargs.pop("project", {})
        ide = kwargs.pop("ide", {})
        if commands is not None:
            settings_manager.set("commands.custom", commands, "project")
        for key, value in project.items():
            settings_manager.set(key, value, "project")
        for key, value in ide.items():
            settings_manager.set(key, value, "ide")
        engine = CommandEngine(settings_manager, **kwargs)
        created.append(engine)
        return engine

    yield factory
    for engine in created:
        engine.kill_all()
    wait_until_true(lambda: all(len(engine.registry) == 0 for engine in created), timeout=5.0)

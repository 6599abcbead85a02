import sys
from pathlib import Path

from PySide6.QtWidgets import QApplication

from pygide.settings_manager import SettingsManager, default_ide_app_dir
from pygide.ui.main_window import MainWindow


def _canonical_existing_dir(path_value: str | Path | None) -> str | None:
    text = str(path_value or "").strip()
    if not text:
        return None
    candidate = Path(text).expanduser()
    if not candidate.is_dir():
        return None
    try:
        return str(candidate.resolve())
    except OSError:
        return str(candidate)


def _split_startup_args(argv: list[str]) -> tuple[str, str | None]:
    """``[project_dir] [file]``; a lone file opens its directory as the project."""
    if not argv:
        return str(Path.cwd()), None
    first = Path(argv[0]).expanduser()
    if first.is_file():
        return str(first.resolve().parent), str(first.resolve())
    project = _canonical_existing_dir(argv[0]) or str(Path.cwd())
    file_path = None
    if len(argv) > 1 and Path(argv[1]).expanduser().is_file():
        file_path = str(Path(argv[1]).expanduser().resolve())
    return project, file_path


def _load_settings_manager(project_root: str) -> SettingsManager:
    manager = SettingsManager(project_root=project_root, ide_app_dir=default_ide_app_dir())
    manager.load_all()
    for scope, message in manager.load_errors().items():
        print(f"[PyGide] {scope} settings: {message}")
    return manager


if __name__ == "__main__":
    project_root, startup_file = _split_startup_args(sys.argv[1:])
    app = QApplication([sys.argv[0]])
    app.setStyle("Fusion")
    app.setApplicationName(MainWindow.APP_NAME)
    app.setApplicationDisplayName(f"{MainWindow.APP_NAME} [{Path(project_root).name}]")

    window = MainWindow(_load_settings_manager(project_root))
    if startup_file:
        window.open_file(startup_file)
    window.show()
    sys.exit(app.exec())

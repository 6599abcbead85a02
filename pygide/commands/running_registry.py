from __future__ import annotations

from typing import Optional, Protocol

from PySide6.QtCore import QObject, Signal


class RunHandle(Protocol):
    def kill(self) -> None: ...

    def is_running(self) -> bool: ...


class RunningCommandRegistry(QObject):
    """Active command runs keyed by the name of the tab that displays them."""

    registered = Signal(str)
    unregistered = Signal(str)

    def __init__(self, parent: QObject | None = None) -> None:
        super().__init__(parent)
        self._runs: dict[str, RunHandle] = {}

    def __contains__(self, name: object) -> bool:
        return name in self._runs

    def __len__(self) -> int:
        return len(self._runs)

    def names(self) -> list[str]:
        return list(self._runs)

    def handle_for(self, name: str) -> Optional[RunHandle]:
        return self._runs.get(name)

    def register(self, name: str, handle: RunHandle) -> None:
        prior = self._runs.get(name)
        if prior is handle:
            return
        if prior is not None:
            # One live run per tab: the newer run wins.
            self._runs.pop(name, None)
            self._kill_best_effort(prior)
            self.unregistered.emit(name)
        self._runs[name] = handle
        self.registered.emit(name)

    def unregister(self, name: str, handle: Optional[RunHandle] = None) -> bool:
        current = self._runs.get(name)
        if current is None:
            return False
        if handle is not None and current is not handle:
            return False
        self._runs.pop(name, None)
        self.unregistered.emit(name)
        return True

    def kill_by_name(self, name: str) -> bool:
        handle = self._runs.pop(name, None)
        if handle is None:
            return False
        self._kill_best_effort(handle)
        self.unregistered.emit(name)
        return True

    def kill_all(self) -> int:
        names = list(self._runs)
        for name in names:
            self.kill_by_name(name)
        return len(names)

    @staticmethod
    def _kill_best_effort(handle: RunHandle) -> None:
        try:
            handle.kill()
        except Exception:
            # A process that refuses to die is not an engine fault.
            pass

from __future__ import annotations

from enum import Enum
from typing import Callable, Iterable, Optional, Protocol

from PySide6.QtCore import QObject, Signal

from pygide.commands.catalog import CommandCatalog, CommandEngineError
from pygide.commands.command_runner import CommandRun, RunState


class SaveChoice(Enum):
    SAVE_ALL = "save_all"
    DONT_SAVE = "dont_save"
    CANCEL = "cancel"


class OpenFilesGuard(Protocol):
    """Host hook for the "unsaved files" check that precedes build/commit chains."""

    def unsaved_count(self) -> int: ...

    def confirm_save_all(self, count: int, *, cancel_allowed: bool) -> SaveChoice: ...

    def save_all(self) -> bool: ...


class ChainState(Enum):
    PENDING = "pending"
    RUNNING = "running"
    WAITING = "waiting"
    DONE = "done"
    ABORTED = "aborted"


# (command name, select tab, clear buffer) -> run, or None if the user backed out.
CommandLauncher = Callable[[str, bool, bool], Optional[CommandRun]]


class CommandChain(QObject):
    finished = Signal()
    aborted = Signal(str)

    def __init__(
        self,
        names: Iterable[str],
        launcher: CommandLauncher,
        *,
        select: bool = True,
        clear: bool = True,
        parent: QObject | None = None,
    ) -> None:
        super().__init__(parent)
        self.names: tuple[str, ...] = tuple(names)
        self.select = bool(select)
        self.clear = bool(clear)
        self.runs: list[CommandRun] = []
        self._launcher = launcher
        self._index = 0
        self._state = ChainState.PENDING
        self._waiting_on: Optional[CommandRun] = None

    @property
    def state(self) -> ChainState:
        return self._state

    def is_done(self) -> bool:
        return self._state in {ChainState.DONE, ChainState.ABORTED}

    def start(self) -> None:
        if self._state != ChainState.PENDING:
            return
        self._state = ChainState.RUNNING
        self._advance()

    def abort(self, reason: str = "Chain cancelled.") -> None:
        if self.is_done():
            return
        self._waiting_on = None
        self._state = ChainState.ABORTED
        self.aborted.emit(reason)

    def _advance(self) -> None:
        while self._index < len(self.names):
            name = self.names[self._index]
            self._index += 1
            run = self._launcher(name, self.select, self.clear)
            if self.is_done():
                return
            if run is None:
                self.abort(f"{name} was cancelled.")
                return
            self.runs.append(run)
            if not run.command.wait:
                continue
            if run.state == RunState.FAILED_TO_START:
                self.abort(f"{name} failed to start.")
                return
            if not run.is_done():
                self._state = ChainState.WAITING
                self._waiting_on = run
                run.finished.connect(lambda _code, r=run: self._on_waited_run_finished(r))
                return
        self._state = ChainState.DONE
        self.finished.emit()

    def _on_waited_run_finished(self, run: CommandRun) -> None:
        if run is not self._waiting_on or self.is_done():
            return
        self._waiting_on = None
        if run.state == RunState.FAILED_TO_START:
            self.abort(f"{run.command.name} failed to start.")
            return
        self._state = ChainState.RUNNING
        self._advance()


class ChainExecutor(QObject):
    chainStarted = Signal(list)
    chainFinished = Signal(list)
    chainAborted = Signal(list, str)

    def __init__(
        self,
        catalog_provider: Callable[[], CommandCatalog],
        launcher: CommandLauncher,
        *,
        guard: Optional[OpenFilesGuard] = None,
        parent: QObject | None = None,
    ) -> None:
        super().__init__(parent)
        self._catalog_provider = catalog_provider
        self._launcher = launcher
        self.guard = guard
        self._active: list[CommandChain] = []

    def active_chains(self) -> list[CommandChain]:
        return list(self._active)

    def save_all_check(self, *, cancel_allowed: bool = True) -> bool:
        """Run the unsaved-files precondition. False means the user cancelled."""
        guard = self.guard
        if guard is None:
            return True
        count = int(guard.unsaved_count() or 0)
        if count <= 0:
            return True
        choice = guard.confirm_save_all(count, cancel_allowed=cancel_allowed)
        if choice == SaveChoice.CANCEL and cancel_allowed:
            return False
        if choice == SaveChoice.SAVE_ALL:
            guard.save_all()
        return True

    def run_chain(
        self,
        names: Iterable[str],
        select: bool = True,
        clear: bool = True,
        *,
        check_unsaved: bool = True,
        launcher: Optional[CommandLauncher] = None,
    ) -> Optional[CommandChain]:
        cmd_names = [str(name).strip() for name in names if str(name or "").strip()]
        if not cmd_names:
            raise CommandEngineError("No commands to run.", kind="empty_chain")
        catalog = self._catalog_provider()
        unknown = [name for name in cmd_names if catalog.by_name(name) is None]
        if unknown:
            raise CommandEngineError(
                f"Unknown command(s): {', '.join(unknown)}",
                kind="unknown_command",
            )
        if check_unsaved and not self.save_all_check(cancel_allowed=True):
            return None

        chain = CommandChain(cmd_names, launcher or self._launcher, select=select, clear=clear, parent=self)
        self._active.append(chain)
        chain.finished.connect(lambda c=chain: self._on_chain_done(c, ""))
        chain.aborted.connect(lambda reason, c=chain: self._on_chain_done(c, reason))
        self.chainStarted.emit(list(cmd_names))
        chain.start()
        return chain

    def _on_chain_done(self, chain: CommandChain, reason: str) -> None:
        if chain in self._active:
            self._active.remove(chain)
        if chain.state == ChainState.ABORTED:
            self.chainAborted.emit(list(chain.names), reason)
        else:
            self.chainFinished.emit(list(chain.names))
        chain.deleteLater()

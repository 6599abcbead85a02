"""Host-facing façade over the catalog, buffers, registry, runner and chains.

Every public ``execute_*`` / project action catches :class:`CommandEngineError`
and reports it through ``errorReported``; nothing is raised into host slots.
"""

from __future__ import annotations

from datetime import datetime
from typing import Callable, Iterable, Mapping, Optional, Protocol

from PySide6.QtCore import QObject, Signal

from pygide.commands.argvars import (
    PROMPT_FILE_VAR_NAMES,
    PROMPT_STRING_VAR_NAMES,
    ArgVarValues,
    VariableContext,
    set_prompt_file_vars,
)
from pygide.commands.catalog import Command, CommandCatalog, CommandEngineError, load_command_catalog
from pygide.commands.chain import ChainExecutor, CommandChain, OpenFilesGuard
from pygide.commands.command_runner import CommandRun, CommandRunner
from pygide.commands.history import CommandHistory
from pygide.commands.output_buffers import OutputBuffer, OutputBufferStore
from pygide.commands.running_registry import RunningCommandRegistry
from pygide.services.language_id import language_id_for_path
from pygide.settings_manager import SettingsManager
from pygide.settings_store import SettingsStoreError


class CommandPrompter(Protocol):
    """Host dialogs for interactive variables. ``None`` means the user cancelled."""

    def prompt_string(self, command_name: str, var_name: str, default: str) -> Optional[str]: ...

    def prompt_file(self, command_name: str, start_dir: str) -> Optional[str]: ...


ContextProvider = Callable[[], VariableContext]


class CommandEngine(QObject):
    statusMessage = Signal(str)
    errorReported = Signal(str, str)
    bufferShown = Signal(str, bool)
    commandStarted = Signal(str)
    commandFinished = Signal(str, int)
    # File path whose post-save commands have all finished; the file may have been rewritten.
    postSaveFinished = Signal(str)

    def __init__(
        self,
        settings: SettingsManager,
        *,
        context_provider: Optional[ContextProvider] = None,
        prompter: Optional[CommandPrompter] = None,
        guard: Optional[OpenFilesGuard] = None,
        parent: QObject | None = None,
    ) -> None:
        super().__init__(parent)
        self.settings = settings
        self.context_provider = context_provider
        self.prompter = prompter
        self.buffers = OutputBufferStore(self)
        self.registry = RunningCommandRegistry(self)
        self.runner = CommandRunner(
            self.registry,
            kill_grace_ms=int(settings.get("run.kill_grace_ms", "ide", default=1500)),
            parent=self,
        )
        self.chains = ChainExecutor(lambda: self.catalog, self._launch_for_chain, guard=guard, parent=self)
        self.history = CommandHistory(
            settings.get("history.commands", "ide", default=[]) or [],
            max_items=int(settings.get("history.max_commands", "ide", default=30)),
        )
        self.catalog = CommandCatalog()
        self._pending: dict[str, list[CommandRun]] = {}
        self._last_prompt_answers: dict[tuple[str, str], str] = {}

        self.runner.runStarted.connect(self.commandStarted.emit)
        self.runner.runFinished.connect(self.commandFinished.emit)
        self.chains.chainAborted.connect(self._on_chain_aborted)
        self.reload_catalog()

    @property
    def guard(self) -> Optional[OpenFilesGuard]:
        return self.chains.guard

    @guard.setter
    def guard(self, value: Optional[OpenFilesGuard]) -> None:
        self.chains.guard = value

    # ---------- Catalog ----------

    def reload_catalog(self) -> bool:
        try:
            self.catalog = load_command_catalog(self.settings)
        except CommandEngineError as exc:
            self._report("Command Settings", exc)
            return False
        return True

    def project_lang(self) -> str:
        return str(self.settings.get("main_lang", "project", default="") or "")

    def project_vcs(self) -> str:
        return str(self.settings.get("vers_ctrl", "project", default="") or "")

    def filter_applicable(self, language: Optional[str] = None, vcs: Optional[str] = None) -> list[str]:
        lang = self.project_lang() if language is None else language
        vers = self.project_vcs() if vcs is None else vcs
        return self.catalog.filter_names(lang, vers)

    def buffer_for(self, name: str) -> Optional[OutputBuffer]:
        return self.buffers.get(name)

    # ---------- Host operations ----------

    def execute_named(
        self,
        name: str,
        select: bool = True,
        clear: bool = True,
        *,
        check_unsaved: bool = False,
    ) -> Optional[CommandRun]:
        if check_unsaved and not self.chains.save_all_check(cancel_allowed=True):
            self.statusMessage.emit("Cancelled: unsaved files.")
            return None
        try:
            run = self._launch(name, select, clear)
        except CommandEngineError as exc:
            self._report("Execute Command", exc)
            return None
        if run is not None:
            self._remember(name)
        return run

    def execute_named_for_file(
        self,
        file_path: str,
        name: str,
        select: bool = True,
        clear: bool = True,
    ) -> Optional[CommandRun]:
        context = VariableContext(file_path=str(file_path or ""), project_root=self.settings.project_root)
        try:
            return self._launch(name, select, clear, context=context)
        except CommandEngineError as exc:
            self._report("Execute Command", exc)
            return None

    def execute_chain(
        self,
        names: Iterable[str],
        select: bool = True,
        clear: bool = True,
        *,
        check_unsaved: bool = True,
    ) -> Optional[CommandChain]:
        try:
            chain = self.chains.run_chain(names, select, clear, check_unsaved=check_unsaved)
        except CommandEngineError as exc:
            self._report("Run Commands", exc)
            return None
        if chain is None:
            self.statusMessage.emit("Cancelled: unsaved files.")
        return chain

    def kill(self, name: str) -> bool:
        """Stop the run displayed as ``name`` and drop any queued runs for it."""
        killed = False
        for run in list(self._pending.get(name, [])):
            if not run.is_running():
                run.kill()
                killed = True
        return self.registry.kill_by_name(name) or killed

    def display_closed(self, name: str) -> None:
        if self.kill(name):
            self.statusMessage.emit(f"Killed: {name}")

    def kill_all(self) -> int:
        count = 0
        for name in set(self.registry.names()) | set(self._pending):
            if self.kill(name):
                count += 1
        return count

    # ---------- Project actions ----------

    def build(self) -> Optional[CommandChain]:
        names = self.settings.get("build_cmds", "project", default=[]) or []
        if not names:
            self._report(
                "No Build Commands",
                CommandEngineError(
                    "Build commands are not set for this project; add them to the project settings.",
                    kind="no_build_cmds",
                ),
            )
            return None
        return self.execute_chain(names, True, True, check_unsaved=True)

    def run(self) -> Optional[CommandChain]:
        names = self.settings.get("run_cmds", "project", default=[]) or []
        if not names:
            self._report(
                "No Run Commands",
                CommandEngineError(
                    "Run commands are not set for this project; add them to the project settings.",
                    kind="no_run_cmds",
                ),
            )
            return None
        return self.execute_chain(names, True, True, check_unsaved=False)

    def commit(self, message: Optional[str] = None, language: Optional[str] = None) -> Optional[CommandRun]:
        """Commit through the project's VCS command and record a changelog entry.

        ``language`` picks among language-specific commit commands; it defaults
        to the project's main language.
        """
        try:
            vcs = self.project_vcs()
            if not vcs:
                raise CommandEngineError(
                    "No version control system is set for this project.",
                    kind="no_vcs",
                )
            lang = self.project_lang() if not language else language
            name = self.catalog.commit_command_name(lang, vcs)
            if not self.chains.save_all_check(cancel_allowed=True):
                self.statusMessage.emit("Commit cancelled.")
                return None
            if message is None:
                message = self._ask_string(name, "PromptString1")
            if message is None:
                self.statusMessage.emit("Commit cancelled.")
                return None
            self.record_change(message)
            return self._launch(name, True, True, preset={"PromptString1": message})
        except CommandEngineError as exc:
            self._report("Commit", exc)
            return None

    def record_change(self, message: str) -> None:
        self.settings.add_change_record(
            {
                "date": datetime.now().isoformat(timespec="seconds"),
                "author": str(self.settings.get("user.name", "ide", default="") or ""),
                "email": str(self.settings.get("user.email", "ide", default="") or ""),
                "message": str(message),
            }
        )
        try:
            self.settings.save_all({"project"}, only_dirty=True)
        except SettingsStoreError as exc:
            self.errorReported.emit("Changelog", str(exc))

    def run_post_save_commands(self, file_path: str) -> bool:
        """Run the language's post-save commands against ``file_path``.

        ``postSaveFinished`` fires once every launched run has finished.
        """
        lang = language_id_for_path(file_path, default="")
        if not lang:
            return False
        names = self.settings.get(f"languages.{lang}.post_save_cmds", "project", default=[]) or []
        if not names:
            return False
        context = VariableContext(file_path=str(file_path), project_root=self.settings.project_root)

        watched: list[CommandChain] = []
        reported: list[bool] = []

        def settle(*_args) -> None:
            if reported or not watched or not watched[0].is_done():
                return
            if all(run.is_done() for run in watched[0].runs):
                reported.append(True)
                self.postSaveFinished.emit(str(file_path))

        def launcher(name: str, select: bool, clear: bool) -> Optional[CommandRun]:
            run = self._launch_for_chain(name, select, clear, context=context)
            if run is not None:
                run.finished.connect(settle)
            return run

        try:
            chain = self.chains.run_chain(names, False, True, check_unsaved=False, launcher=launcher)
        except CommandEngineError as exc:
            self._report("Post-Save Commands", exc)
            return False
        if chain is None:
            return False
        watched.append(chain)
        if not chain.is_done():
            chain.finished.connect(settle)
            chain.aborted.connect(settle)
        settle()
        return True

    # ---------- Launching ----------

    def current_context(self) -> VariableContext:
        if self.context_provider is not None:
            return self.context_provider()
        return VariableContext(project_root=self.settings.project_root)

    def values_for(
        self,
        command: Command,
        context: VariableContext,
        preset: Optional[Mapping[str, str]] = None,
    ) -> Optional[ArgVarValues]:
        """Fresh value map for one invocation; ``None`` if a prompt was cancelled."""
        values = context.arg_var_values()
        for key, value in (preset or {}).items():
            if key in values:
                values[key] = value
        used = set(command.arg_var_names())
        if command.user_prompt:
            used.add("PromptString1")

        if used & set(PROMPT_FILE_VAR_NAMES) and values.get("PromptFilePath") is None:
            if self.prompter is not None:
                start_dir = str(values.get("FileDirPath") or context.project_root or "")
                picked = self.prompter.prompt_file(command.name, start_dir)
                if picked is None:
                    return None
                set_prompt_file_vars(values, picked, context.project_root)

        for var_name in PROMPT_STRING_VAR_NAMES:
            if var_name not in used or values.get(var_name) is not None:
                continue
            answer = self._ask_string(command.name, var_name)
            if answer is None:
                if self.prompter is not None:
                    return None
                continue
            values[var_name] = answer
        return values

    def _ask_string(self, command_name: str, var_name: str) -> Optional[str]:
        if self.prompter is None:
            return None
        key = (command_name, var_name)
        answer = self.prompter.prompt_string(command_name, var_name, self._last_prompt_answers.get(key, ""))
        if answer is not None:
            # Offered as the default next time; never reused silently.
            self._last_prompt_answers[key] = answer
        return answer

    def _launch(
        self,
        name: str,
        select: bool,
        clear: bool,
        *,
        context: Optional[VariableContext] = None,
        preset: Optional[Mapping[str, str]] = None,
    ) -> Optional[CommandRun]:
        command = self.catalog.by_name(name)
        if command is None:
            raise CommandEngineError(f"Unknown command: {name}", kind="unknown_command")
        values = self.values_for(command, context or self.current_context(), preset)
        if values is None:
            self.statusMessage.emit(f"Cancelled: {name}")
            return None

        run = self.runner.create(command, values, display_name=command.name)
        self._pending.setdefault(command.name, []).append(run)
        run.finished.connect(lambda _code, r=run: self._on_run_done(r))

        def granted(buf: OutputBuffer) -> None:
            if run.is_done():
                return
            if clear:
                buf.clear()
            self.bufferShown.emit(command.name, bool(select))
            run.start(buf)

        if not self.buffers.acquire(command.name, run, granted):
            self.statusMessage.emit(f"{command.name}: waiting for the previous run to finish")
        return run

    def _launch_for_chain(
        self,
        name: str,
        select: bool,
        clear: bool,
        *,
        context: Optional[VariableContext] = None,
    ) -> Optional[CommandRun]:
        try:
            return self._launch(name, select, clear, context=context)
        except CommandEngineError as exc:
            self._report("Run Commands", exc)
            return None

    def _on_run_done(self, run: CommandRun) -> None:
        name = run.command.name
        runs = self._pending.get(name, [])
        if run in runs:
            runs.remove(run)
        if not runs:
            self._pending.pop(name, None)
        self.buffers.release(name, run)

    def _remember(self, name: str) -> None:
        self.history.add(name)
        self.settings.set("history.commands", self.history.names(), "ide")

    def _on_chain_aborted(self, names: list, reason: str) -> None:
        self.statusMessage.emit(f"Stopped {', '.join(names)}: {reason}")

    def _report(self, title: str, exc: CommandEngineError) -> None:
        self.statusMessage.emit(str(exc))
        self.errorReported.emit(title, str(exc))


__all__ = ["CommandEngine", "CommandPrompter", "ContextProvider"]

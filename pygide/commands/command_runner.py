"""Run one command's steps as child processes, streaming into its buffer."""

from __future__ import annotations

import codecs
import os
from enum import Enum
from typing import Optional

from PySide6.QtCore import QObject, QProcess, QTimer, Signal

from pygide.commands.argvars import ArgVarValues, bind_arg_vars
from pygide.commands.catalog import Command, CommandStep
from pygide.commands.output_buffers import OutputBuffer
from pygide.commands.running_registry import RunningCommandRegistry

KILLED_MARKER = "[Killed]"


class RunState(Enum):
    PENDING = "pending"  # waiting for its output buffer
    RUNNING = "running"
    FINISHED = "finished"
    FAILED_TO_START = "failed_to_start"
    KILLED = "killed"


_DONE_STATES = {RunState.FINISHED, RunState.FAILED_TO_START, RunState.KILLED}


class CommandRun(QObject):
    """Handle for one invocation of a command; registered while running."""

    started = Signal()
    outputReceived = Signal(str)
    finished = Signal(int)

    def __init__(
        self,
        command: Command,
        values: ArgVarValues,
        registry: RunningCommandRegistry,
        *,
        display_name: str = "",
        kill_grace_ms: int = 1500,
        parent: QObject | None = None,
    ) -> None:
        super().__init__(parent)
        self.command = command
        self.display_name = display_name or command.name
        self.values: ArgVarValues = dict(values)
        self._registry = registry
        self._kill_grace_ms = max(0, int(kill_grace_ms))
        self._buffer: Optional[OutputBuffer] = None
        self._state = RunState.PENDING
        self._exit_code: Optional[int] = None
        self._step_index = -1
        self._proc: Optional[QProcess] = None
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._kill_requested = False
        self._force_kill_timer = QTimer(self)
        self._force_kill_timer.setSingleShot(True)
        self._force_kill_timer.timeout.connect(self._force_kill_if_running)

    @property
    def state(self) -> RunState:
        return self._state

    @property
    def exit_code(self) -> Optional[int]:
        return self._exit_code

    @property
    def buffer(self) -> Optional[OutputBuffer]:
        return self._buffer

    def is_running(self) -> bool:
        return self._state == RunState.RUNNING

    def is_done(self) -> bool:
        return self._state in _DONE_STATES

    def working_dir(self) -> str:
        run_in = bind_arg_vars(self.command.dir, self.values).strip()
        if run_in and os.path.isdir(run_in):
            return run_in
        project = str(self.values.get("ProjectPath") or "")
        if project and os.path.isdir(project):
            return project
        return ""

    def expanded_step(self, step: CommandStep) -> tuple[str, list[str]]:
        program = bind_arg_vars(step.program, self.values)
        args = [bind_arg_vars(arg, self.values) for arg in step.args]
        return program, args

    def start(self, buffer: OutputBuffer) -> None:
        if self._state != RunState.PENDING:
            return
        self._buffer = buffer
        self._state = RunState.RUNNING
        buffer.mark_active()
        self._registry.register(self.display_name, self)
        self.started.emit()
        self._start_next_step()

    def kill(self) -> None:
        if self._state == RunState.PENDING:
            self._finish(RunState.KILLED, -1)
            return
        if self._state != RunState.RUNNING:
            return
        self._kill_requested = True
        proc = self._proc
        if proc is None or proc.state() == QProcess.NotRunning:
            self._finish(RunState.KILLED, -1)
            return
        proc.terminate()
        if self._kill_grace_ms <= 0:
            self._force_kill_if_running()
            return
        self._force_kill_timer.start(self._kill_grace_ms)

    def _start_next_step(self) -> None:
        self._step_index += 1
        if self._step_index >= len(self.command.steps):
            self._finish(RunState.FINISHED, self._exit_code if self._exit_code is not None else 0)
            return

        program, args = self.expanded_step(self.command.steps[self._step_index])
        self._decoder.reset()
        self._dispose_process()

        proc = QProcess(self)
        proc.setProcessChannelMode(QProcess.MergedChannels)
        proc.readyReadStandardOutput.connect(lambda p=proc: self._on_output_ready(p))
        proc.finished.connect(lambda code, status, p=proc: self._on_process_finished(p, code, status))
        proc.errorOccurred.connect(lambda error, p=proc: self._on_process_error(p, error))
        run_in = self.working_dir()
        if run_in:
            proc.setWorkingDirectory(run_in)
        proc.setProgram(program)
        proc.setArguments(args)
        self._proc = proc
        proc.start()

    def _on_output_ready(self, proc: QProcess) -> None:
        if proc is not self._proc:
            return
        raw = bytes(proc.readAllStandardOutput())
        if not raw:
            return
        self._append(self._decoder.decode(raw))

    def _on_process_finished(self, proc: QProcess, exit_code: int, exit_status: QProcess.ExitStatus) -> None:
        if proc is not self._proc or self.is_done():
            return
        self._force_kill_timer.stop()
        self._append(self._decoder.decode(bytes(proc.readAllStandardOutput()), final=True))
        if self._kill_requested:
            self._buffer_line(KILLED_MARKER)
            self._finish(RunState.KILLED, -1)
            return
        self._exit_code = int(exit_code) if exit_status == QProcess.NormalExit else -1
        self._start_next_step()

    def _on_process_error(self, proc: QProcess, error: QProcess.ProcessError) -> None:
        if proc is not self._proc or self.is_done():
            return
        if error != QProcess.ProcessError.FailedToStart:
            # Crashes and read errors still end in finished().
            return
        self._force_kill_timer.stop()
        self._buffer_line(f"{proc.program()}: {proc.errorString()}")
        self._finish(RunState.FAILED_TO_START, -1)

    def _force_kill_if_running(self) -> None:
        proc = self._proc
        if proc is None or proc.state() == QProcess.NotRunning:
            return
        try:
            proc.kill()
        except Exception:
            pass

    def _append(self, text: str) -> None:
        if not text:
            return
        if self._buffer is not None:
            self._buffer.append(text)
        self.outputReceived.emit(text)

    def _buffer_line(self, text: str) -> None:
        if self._buffer is not None:
            self._buffer.append_line(text)
        self.outputReceived.emit(text + "\n")

    def _finish(self, state: RunState, exit_code: int) -> None:
        if self.is_done():
            return
        self._force_kill_timer.stop()
        self._state = state
        self._exit_code = exit_code
        self._registry.unregister(self.display_name, self)
        if self._buffer is not None:
            self._buffer.mark_settled()
        self.finished.emit(exit_code)
        self._dispose_process()

    def _dispose_process(self) -> None:
        proc = self._proc
        self._proc = None
        if proc is None:
            return
        if proc.state() != QProcess.NotRunning:
            proc.kill()
        proc.deleteLater()


class CommandRunner(QObject):
    runStarted = Signal(str)
    runFinished = Signal(str, int)

    def __init__(
        self,
        registry: RunningCommandRegistry,
        *,
        kill_grace_ms: int = 1500,
        parent: QObject | None = None,
    ) -> None:
        super().__init__(parent)
        self.registry = registry
        self.kill_grace_ms = int(kill_grace_ms)

    def create(self, command: Command, values: ArgVarValues, *, display_name: str = "") -> CommandRun:
        run = CommandRun(
            command,
            values,
            self.registry,
            display_name=display_name,
            kill_grace_ms=self.kill_grace_ms,
            parent=self,
        )
        run.started.connect(lambda r=run: self.runStarted.emit(r.display_name))
        run.finished.connect(lambda code, r=run: self._on_run_finished(r, code))
        return run

    def run(
        self,
        command: Command,
        values: ArgVarValues,
        buffer: OutputBuffer,
        *,
        display_name: str = "",
    ) -> CommandRun:
        run = self.create(command, values, display_name=display_name)
        run.start(buffer)
        return run

    def _on_run_finished(self, run: CommandRun, exit_code: int) -> None:
        self.runFinished.emit(run.display_name, int(exit_code))
        run.deleteLater()

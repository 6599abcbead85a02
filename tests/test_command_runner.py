import sys

from PySide6.QtCore import QProcess

from pygide.commands.catalog import Command, CommandStep
from pygide.commands.command_runner import KILLED_MARKER, CommandRunner, RunState
from pygide.commands.output_buffers import OutputBufferStore
from pygide.commands.running_registry import RunningCommandRegistry


def _py(code, *args):
    return CommandStep(sys.executable, ("-c", code, *args))


def _runner(**kwargs):
    registry = RunningCommandRegistry()
    return CommandRunner(registry, **kwargs), registry, OutputBufferStore()


def test_output_streams_into_buffer_and_run_unregisters(values, wait_until):
    runner, registry, store = _runner()
    buf, _ = store.get_or_create("Hello")
    finished = []
    command = Command(name="Hello", steps=(_py("print('hello')"),))

    run = runner.run(command, values, buf)
    run.finished.connect(finished.append)
    assert "Hello" in registry
    assert buf.is_settled() is False

    assert wait_until(run.is_done)
    assert run.state == RunState.FINISHED
    assert run.exit_code == 0
    assert finished == [0]
    assert buf.text().splitlines() == ["hello"]
    assert buf.is_settled() is True
    assert "Hello" not in registry


def test_steps_run_in_order_and_nonzero_exit_does_not_stop(values, wait_until):
    runner, _registry, store = _runner()
    buf, _ = store.get_or_create("Steps")
    command = Command(
        name="Steps",
        steps=(
            _py("import sys; print('one'); sys.exit(3)"),
            _py("print('two')"),
        ),
    )
    run = runner.run(command, values, buf)
    assert wait_until(run.is_done)
    assert buf.text().splitlines() == ["one", "two"]
    assert run.exit_code == 0


def test_exit_code_of_last_step_is_reported(values, wait_until):
    runner, _registry, store = _runner()
    buf, _ = store.get_or_create("Fail")
    codes = []
    runner.runFinished.connect(lambda name, code: codes.append((name, code)))
    run = runner.run(Command(name="Fail", steps=(_py("import sys; sys.exit(2)"),)), values, buf)
    assert wait_until(run.is_done)
    assert run.state == RunState.FINISHED
    assert codes == [("Fail", 2)]


def test_stdout_and_stderr_are_merged(values, wait_until):
    runner, _registry, store = _runner()
    buf, _ = store.get_or_create("Merged")
    code = "import sys; print('out', flush=True); print('err', file=sys.stderr, flush=True)"
    run = runner.run(Command(name="Merged", steps=(_py(code),)), values, buf)
    assert wait_until(run.is_done)
    assert sorted(buf.text().split()) == ["err", "out"]


def test_arguments_and_working_dir_are_expanded(values, project_dir, wait_until):
    runner, _registry, store = _runner()
    buf, _ = store.get_or_create("Where")
    command = Command(name="Where", steps=(_py("import os, sys; print(os.getcwd()); print(sys.argv[1])", "{ProjectDir}"),))
    run = runner.run(command, values, buf)
    assert wait_until(run.is_done)
    lines = buf.text().splitlines()
    assert lines[0] == str(project_dir.resolve())
    assert lines[1] == project_dir.name


def test_launch_failure_reports_error_and_skips_remaining_steps(values, wait_until):
    runner, registry, store = _runner()
    buf, _ = store.get_or_create("Missing")
    command = Command(
        name="Missing",
        steps=(CommandStep("pygide-no-such-program-xyz"), _py("print('never')")),
    )
    finished = []
    run = runner.create(command, values)
    run.finished.connect(finished.append)
    run.start(buf)

    assert wait_until(run.is_done)
    assert run.state == RunState.FAILED_TO_START
    assert finished == [-1]
    assert "pygide-no-such-program-xyz" in buf.text()
    assert "never" not in buf.text()
    assert buf.is_settled() is True
    assert len(registry) == 0


def test_kill_terminates_and_marks_buffer(values, wait_until):
    runner, registry, store = _runner(kill_grace_ms=300)
    buf, _ = store.get_or_create("Sleep")
    code = "import time; print('started', flush=True); time.sleep(30)"
    run = runner.run(Command(name="Sleep", steps=(_py(code), _py("print('after')"))), values, buf)
    assert wait_until(lambda: "started" in buf.text())
    assert run._proc is not None and run._proc.state() == QProcess.Running

    assert registry.kill_by_name("Sleep") is True
    assert "Sleep" not in registry
    assert wait_until(run.is_done)
    assert run.state == RunState.KILLED
    assert buf.text().endswith(KILLED_MARKER + "\n")
    assert "after" not in buf.text()


def test_kill_pending_run_finishes_without_starting(qapp, values):
    runner, registry, _store = _runner()
    run = runner.create(Command(name="Never", steps=(_py("print('x')"),)), values)
    finished = []
    run.finished.connect(finished.append)
    run.kill()
    assert run.state == RunState.KILLED
    assert finished == [-1]
    assert len(registry) == 0


def test_expanded_step_keeps_unresolved_prompt_tokens(qapp, values):
    runner, _registry, _store = _runner()
    run = runner.create(Command(name="Tag", steps=(CommandStep("git", ("tag", "{PromptString1}")),)), values)
    assert run.expanded_step(run.command.steps[0]) == ("git", ["tag", "{PromptString1}"])

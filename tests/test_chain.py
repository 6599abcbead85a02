import sys

import pytest
from PySide6.QtCore import QCoreApplication, QEvent
from shiboken6 import isValid

from pygide.commands.catalog import Command, CommandCatalog, CommandEngineError, CommandStep
from pygide.commands.chain import ChainExecutor, ChainState, SaveChoice
from pygide.commands.command_runner import CommandRunner, RunState
from pygide.commands.output_buffers import OutputBufferStore
from pygide.commands.running_registry import RunningCommandRegistry
from tests.conftest import FakeGuard


def _py_command(name, code, *, wait=False):
    return Command(name=name, steps=(CommandStep(sys.executable, ("-c", code)),), wait=wait)


class Harness:
    """Chain executor over a real runner, logging buffer events in order."""

    def __init__(self, commands, values, guard=None):
        self.catalog = CommandCatalog(commands)
        self.registry = RunningCommandRegistry()
        self.runner = CommandRunner(self.registry)
        self.store = OutputBufferStore()
        self.values = values
        self.events = []
        self.launched = []
        self.executor = ChainExecutor(lambda: self.catalog, self.launch, guard=guard)

    def launch(self, name, select, clear):
        self.launched.append((name, select, clear))
        buf, created = self.store.get_or_create(name, clear)
        if created:
            buf.textAppended.connect(lambda _text, n=name: self.events.append(("text", n)))
            buf.settledChanged.connect(lambda settled, n=name: self.events.append(("settled" if settled else "active", n)))
        return self.runner.run(self.catalog.by_name(name), self.values, buf)


def test_wait_command_settles_before_next_command_writes(values, wait_until):
    harness = Harness(
        [_py_command("A", "print('a')", wait=True), _py_command("B", "print('b')")],
        values,
    )
    chain = harness.executor.run_chain(["A", "B"])
    assert chain.state == ChainState.WAITING
    assert [name for name, _s, _c in harness.launched] == ["A"]

    assert wait_until(lambda: chain.is_done() and all(run.is_done() for run in chain.runs))
    assert chain.state == ChainState.DONE
    events = harness.events
    first_b_text = events.index(("text", "B"))
    assert events.index(("settled", "A")) < first_b_text
    assert events.index(("active", "B")) > events.index(("settled", "A"))


def test_commands_without_wait_start_back_to_back(values, wait_until):
    harness = Harness(
        [_py_command("A", "import time; time.sleep(0.3)"), _py_command("B", "print('b')")],
        values,
    )
    chain = harness.executor.run_chain(["A", "B"], select=False, clear=False)
    assert chain.state == ChainState.DONE
    assert harness.launched == [("A", False, False), ("B", False, False)]
    assert wait_until(lambda: all(run.is_done() for run in chain.runs))


def test_unknown_name_rejects_whole_chain(qapp, values):
    harness = Harness([_py_command("A", "print('a')")], values)
    with pytest.raises(CommandEngineError) as excinfo:
        harness.executor.run_chain(["A", "Nope"])
    assert excinfo.value.kind == "unknown_command"
    assert "Nope" in str(excinfo.value)
    assert harness.launched == []


def test_empty_chain_is_an_error(qapp, values):
    harness = Harness([_py_command("A", "print('a')")], values)
    with pytest.raises(CommandEngineError) as excinfo:
        harness.executor.run_chain(["", "  "])
    assert excinfo.value.kind == "empty_chain"


def test_cancel_on_unsaved_files_starts_nothing(qapp, values):
    guard = FakeGuard(unsaved=2, choice=SaveChoice.CANCEL)
    harness = Harness([_py_command("A", "print('a')")], values, guard=guard)
    assert harness.executor.run_chain(["A"]) is None
    assert guard.asked == [(2, True)]
    assert harness.launched == []
    assert len(harness.registry) == 0


def test_save_all_choice_saves_then_runs(values, wait_until):
    guard = FakeGuard(unsaved=1, choice=SaveChoice.SAVE_ALL)
    harness = Harness([_py_command("A", "print('a')")], values, guard=guard)
    chain = harness.executor.run_chain(["A"])
    assert guard.saved == 1
    assert chain is not None
    assert wait_until(lambda: all(run.is_done() for run in chain.runs))


def test_dont_save_choice_runs_without_saving(values, wait_until):
    guard = FakeGuard(unsaved=1, choice=SaveChoice.DONT_SAVE)
    harness = Harness([_py_command("A", "print('a')")], values, guard=guard)
    chain = harness.executor.run_chain(["A"])
    assert guard.saved == 0
    assert [name for name, _s, _c in harness.launched] == ["A"]
    assert wait_until(lambda: all(run.is_done() for run in chain.runs))


def test_check_unsaved_false_skips_guard(values, wait_until):
    guard = FakeGuard(unsaved=3, choice=SaveChoice.CANCEL)
    harness = Harness([_py_command("A", "print('a')")], values, guard=guard)
    chain = harness.executor.run_chain(["A"], check_unsaved=False)
    assert chain is not None
    assert guard.asked == []
    assert wait_until(lambda: all(run.is_done() for run in chain.runs))


def test_launcher_returning_none_aborts_chain(qapp):
    catalog = CommandCatalog([_py_command("A", "print('a')"), _py_command("B", "print('b')")])
    calls = []

    def launcher(name, select, clear):
        calls.append(name)
        return None

    executor = ChainExecutor(lambda: catalog, launcher)
    aborted = []
    executor.chainAborted.connect(lambda names, reason: aborted.append((names, reason)))
    chain = executor.run_chain(["A", "B"])
    assert chain.state == ChainState.ABORTED
    assert calls == ["A"]
    assert aborted and aborted[0][0] == ["A", "B"]
    assert executor.active_chains() == []


def test_finished_chain_leaves_active_list(values, wait_until):
    harness = Harness([_py_command("A", "print('a')", wait=True)], values)
    finished = []
    harness.executor.chainFinished.connect(finished.append)
    chain = harness.executor.run_chain(["A"])
    assert harness.executor.active_chains() == [chain]
    assert wait_until(lambda: finished == [["A"]])
    assert harness.executor.active_chains() == []


def test_wait_step_that_fails_to_start_stops_chain(values, wait_until):
    missing = Command(name="A", steps=(CommandStep("pygide-no-such-program-xyz"),), wait=True)
    harness = Harness([missing, _py_command("B", "print('b')")], values)
    aborted = []
    harness.executor.chainAborted.connect(lambda names, reason: aborted.append(reason))

    chain = harness.executor.run_chain(["A", "B"])
    assert wait_until(chain.is_done)
    assert chain.state == ChainState.ABORTED
    assert [name for name, _s, _c in harness.launched] == ["A"]
    assert chain.runs[0].state == RunState.FAILED_TO_START
    assert aborted and "A failed to start" in aborted[0]


def test_failed_step_without_wait_does_not_stop_chain(values, wait_until):
    missing = Command(name="A", steps=(CommandStep("pygide-no-such-program-xyz"),))
    harness = Harness([missing, _py_command("B", "print('b')")], values)
    chain = harness.executor.run_chain(["A", "B"])
    assert wait_until(lambda: chain.is_done() and all(run.is_done() for run in chain.runs))
    assert chain.state == ChainState.DONE
    assert [name for name, _s, _c in harness.launched] == ["A", "B"]


def test_done_chain_is_deleted(values, wait_until):
    harness = Harness([_py_command("A", "print('a')", wait=True)], values)
    chain = harness.executor.run_chain(["A"])
    assert wait_until(chain.is_done)
    QCoreApplication.sendPostedEvents(None, QEvent.DeferredDelete)
    assert not isValid(chain)

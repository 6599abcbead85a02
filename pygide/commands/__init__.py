"""Command catalog, argument variables, runner, chains and the engine façade."""

from .argvars import ARG_VARS, ArgVarValues, EditorState, TextPos, VariableContext, bind_arg_vars, resolve_arg_vars
from .catalog import Command, CommandCatalog, CommandEngineError, CommandStep, default_commands, load_command_catalog
from .chain import ChainExecutor, CommandChain, OpenFilesGuard, SaveChoice
from .command_runner import KILLED_MARKER, CommandRun, CommandRunner, RunState
from .engine import CommandEngine, CommandPrompter
from .history import CommandHistory
from .output_buffers import OutputBuffer, OutputBufferStore
from .running_registry import RunningCommandRegistry

__all__ = [
    "ARG_VARS",
    "ArgVarValues",
    "ChainExecutor",
    "Command",
    "CommandCatalog",
    "CommandChain",
    "CommandEngine",
    "CommandEngineError",
    "CommandHistory",
    "CommandPrompter",
    "CommandRun",
    "CommandRunner",
    "CommandStep",
    "EditorState",
    "KILLED_MARKER",
    "OpenFilesGuard",
    "OutputBuffer",
    "OutputBufferStore",
    "RunState",
    "RunningCommandRegistry",
    "SaveChoice",
    "TextPos",
    "VariableContext",
    "bind_arg_vars",
    "default_commands",
    "load_command_catalog",
    "resolve_arg_vars",
]

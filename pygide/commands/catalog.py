from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Iterator, Mapping, Optional

from pygide.commands.argvars import referenced_arg_vars


def _config_flag(value: Any, default: bool = False) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    text = str(value or "").strip().lower()
    if text in {"1", "true", "yes", "on", "y"}:
        return True
    if text in {"0", "false", "no", "off", "n"}:
        return False
    return default


class CommandEngineError(RuntimeError):
    def __init__(self, message: str, *, kind: str = "command_error") -> None:
        super().__init__(message)
        self.kind = kind


@dataclass(frozen=True, slots=True)
class CommandStep:
    program: str
    args: tuple[str, ...] = ()

    def templates(self) -> tuple[str, ...]:
        return (self.program, *self.args)

    @staticmethod
    def from_config(raw: Any) -> "CommandStep | None":
        if isinstance(raw, str):
            # "prog arg1 arg2" shorthand; no quoting rules beyond whitespace.
            tokens = raw.split()
            if not tokens:
                return None
            return CommandStep(program=tokens[0], args=tuple(tokens[1:]))
        if not isinstance(raw, Mapping):
            return None
        program = str(raw.get("program") or raw.get("cmd") or "").strip()
        if not program:
            return None
        raw_args = raw.get("args")
        if isinstance(raw_args, str):
            args = tuple(raw_args.split())
        elif isinstance(raw_args, (list, tuple)):
            args = tuple(str(item) for item in raw_args if item is not None)
        else:
            args = ()
        return CommandStep(program=program, args=args)

    def to_config(self) -> dict[str, Any]:
        return {"program": self.program, "args": list(self.args)}


@dataclass(frozen=True, slots=True)
class Command:
    name: str
    steps: tuple[CommandStep, ...]
    desc: str = ""
    dir: str = "{ProjectPath}"
    langs: frozenset[str] = field(default_factory=frozenset)
    wait: bool = False
    user_prompt: bool = False

    def applies_to(self, lang: str, vcs: str) -> bool:
        if not self.langs:
            return True
        return (bool(lang) and lang in self.langs) or (bool(vcs) and vcs in self.langs)

    def arg_var_names(self) -> list[str]:
        out: list[str] = []
        for template in (self.dir, *(t for step in self.steps for t in step.templates())):
            for name in referenced_arg_vars(template):
                if name not in out:
                    out.append(name)
        return out

    @staticmethod
    def from_config(raw: Mapping[str, Any]) -> "Command | None":
        name = str(raw.get("name") or "").strip()
        if not name:
            return None
        raw_steps = raw.get("steps")
        if not isinstance(raw_steps, (list, tuple)):
            raw_steps = [raw_steps] if raw_steps else []
        steps = tuple(step for step in (CommandStep.from_config(item) for item in raw_steps) if step is not None)
        if not steps:
            return None
        raw_langs = raw.get("langs")
        if isinstance(raw_langs, str):
            raw_langs = raw_langs.replace(",", " ").split()
        langs = frozenset(
            str(item).strip().lower()
            for item in (raw_langs if isinstance(raw_langs, (list, tuple, set, frozenset)) else [])
            if str(item or "").strip()
        )
        dir_text = raw.get("dir")
        return Command(
            name=name,
            steps=steps,
            desc=str(raw.get("desc") or "").strip(),
            dir="{ProjectPath}" if dir_text is None else str(dir_text).strip(),
            langs=langs,
            wait=_config_flag(raw.get("wait")),
            user_prompt=_config_flag(raw.get("user_prompt")),
        )

    def to_config(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "desc": self.desc,
            "dir": self.dir,
            "steps": [step.to_config() for step in self.steps],
            "langs": sorted(self.langs),
            "wait": self.wait,
            "user_prompt": self.user_prompt,
        }


class CommandCatalog:
    """Ordered command definitions; names are unique and order is significant."""

    def __init__(self, commands: Iterable[Command] = ()) -> None:
        self._commands: list[Command] = []
        self._by_name: dict[str, Command] = {}
        for command in commands:
            if command.name in self._by_name:
                raise CommandEngineError(
                    f"Duplicate command name in catalog: {command.name}",
                    kind="duplicate_command",
                )
            self._commands.append(command)
            self._by_name[command.name] = command

    def __iter__(self) -> Iterator[Command]:
        return iter(self._commands)

    def __len__(self) -> int:
        return len(self._commands)

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    def names(self) -> list[str]:
        return [command.name for command in self._commands]

    def by_name(self, name: str) -> Optional[Command]:
        return self._by_name.get(str(name or ""))

    def filter_names(self, lang: str, vcs: str) -> list[str]:
        lang_key = str(lang or "").strip().lower()
        vcs_key = str(vcs or "").strip().lower()
        return [command.name for command in self._commands if command.applies_to(lang_key, vcs_key)]

    def commit_command_name(self, lang: str, vcs: str) -> str:
        for name in self.filter_names(lang, vcs):
            if "Commit" in name:
                return name
        raise CommandEngineError(
            "Could not find a Commit command in the list of available commands. "
            "Check the command settings for this version control system.",
            kind="no_commit_command",
        )

    def with_overrides(self, commands: Iterable[Command]) -> "CommandCatalog":
        """Return a catalog where ``commands`` replace same-named entries in place or append."""
        merged = list(self._commands)
        index = {command.name: idx for idx, command in enumerate(merged)}
        for command in commands:
            if command.name in index:
                merged[index[command.name]] = command
                continue
            index[command.name] = len(merged)
            merged.append(command)
        return CommandCatalog(merged)


def _cmd(
    name: str,
    desc: str,
    *steps: tuple[str, ...],
    langs: tuple[str, ...] = (),
    dir: str = "{ProjectPath}",
    wait: bool = False,
    user_prompt: bool = False,
) -> Command:
    return Command(
        name=name,
        desc=desc,
        steps=tuple(CommandStep(program=step[0], args=tuple(step[1:])) for step in steps),
        dir=dir,
        langs=frozenset(langs),
        wait=wait,
        user_prompt=user_prompt,
    )


def default_commands() -> list[Command]:
    return [
        _cmd("Run Proj", "run the project executable", ("{ProjectPath}/{ProjectDir}",), wait=True),
        _cmd("Make", "run make with no args", ("make",), wait=True),
        _cmd("Make Prompt", "run make with prompted target", ("make", "{PromptString1}"), wait=True, user_prompt=True),
        _cmd("Build Go Dir", "build the current file's directory", ("go", "build", "-v"), langs=("go",), dir="{FileDirPath}", wait=True),
        _cmd("Build Go Proj", "build the project root", ("go", "build", "-v"), langs=("go",), wait=True),
        _cmd("Go Vet Dir", "vet the current file's directory", ("go", "vet"), langs=("go",), dir="{FileDirPath}", wait=True),
        _cmd("Go Test Dir", "test the current file's directory", ("go", "test", "-v"), langs=("go",), dir="{FileDirPath}", wait=True),
        _cmd("Go Fmt File", "format the current Go file in place", ("gofmt", "-w", "{FilePath}"), langs=("go",), dir="{FileDirPath}", wait=True),
        _cmd("Python Run File", "run the current file", ("python", "{FilePath}"), langs=("python",), dir="{FileDirPath}"),
        _cmd("Python Lint File", "ruff check the current file", ("ruff", "check", "{FilePath}"), langs=("python",), wait=True),
        _cmd("Python Test Proj", "run pytest in the project root", ("python", "-m", "pytest", "-q"), langs=("python",), wait=True),
        _cmd("LaTeX PDF", "build a PDF from the current TeX file", ("pdflatex", "-file-line-error", "-interaction=nonstopmode", "{FilePath}"), langs=("tex",), dir="{FileDirPath}", wait=True),
        _cmd("Open Target File", "open the built PDF with the system viewer", ("xdg-open", "{FileDirPath}/{FileNameNoExt}.pdf"), langs=("tex",), dir="{FileDirPath}"),
        _cmd("Git Add File", "git add the current file", ("git", "add", "{FilePath}"), langs=("git",), dir="{FileDirPath}", wait=True),
        _cmd("Git Checkout File", "revert the current file to the committed version", ("git", "checkout", "{FilePath}"), langs=("git",), dir="{FileDirPath}", wait=True),
        _cmd("Git Status", "git status of the project", ("git", "status"), langs=("git",), wait=True),
        _cmd("Git Diff", "git diff of the project", ("git", "diff"), langs=("git",), wait=True),
        _cmd("Git Log", "recent git history", ("git", "log", "--oneline", "-n", "40"), langs=("git",), wait=True),
        _cmd("Git Commit", "commit all changes with a message", ("git", "commit", "-am", "{PromptString1}"), langs=("git",), wait=True, user_prompt=True),
        _cmd("Git Pull", "pull from the upstream branch", ("git", "pull"), langs=("git",), wait=True),
        _cmd("Git Push", "push to the upstream branch", ("git", "push"), langs=("git",), wait=True),
        _cmd("SVN Add File", "svn add the current file", ("svn", "add", "{FilePath}"), langs=("svn",), dir="{FileDirPath}", wait=True),
        _cmd("SVN Status", "svn status of the project", ("svn", "status"), langs=("svn",), wait=True),
        _cmd("SVN Update", "svn update", ("svn", "update"), langs=("svn",), wait=True),
        _cmd("SVN Commit", "commit all changes with a message", ("svn", "commit", "-m", "{PromptString1}"), langs=("svn",), wait=True, user_prompt=True),
    ]


def commands_from_config(raw_commands: Any) -> list[Command]:
    if not isinstance(raw_commands, list):
        return []
    out: list[Command] = []
    seen: set[str] = set()
    for item in raw_commands:
        if not isinstance(item, Mapping):
            continue
        command = Command.from_config(item)
        if command is None or command.name in seen:
            continue
        seen.add(command.name)
        out.append(command)
    return out


def load_command_catalog(settings_manager: Any) -> CommandCatalog:
    """Default commands, then IDE-scope custom commands, then project-scope ones."""
    catalog = CommandCatalog(default_commands())
    ide_custom = settings_manager.get("commands.custom", scope_preference="ide", default=[])
    catalog = catalog.with_overrides(commands_from_config(ide_custom))
    project_custom = settings_manager.get("commands.custom", scope_preference="project", default=[])
    return catalog.with_overrides(commands_from_config(project_custom))

import pytest

from pygide.commands.catalog import (
    Command,
    CommandCatalog,
    CommandEngineError,
    CommandStep,
    commands_from_config,
    default_commands,
    load_command_catalog,
)


def _command(name, *langs):
    return Command(name=name, steps=(CommandStep("true"),), langs=frozenset(langs))


def test_filter_names_keeps_universal_and_matching_commands():
    catalog = CommandCatalog([_command("Make"), _command("Build Go", "go")])
    assert catalog.filter_names("python", "") == ["Make"]
    assert catalog.filter_names("go", "") == ["Make", "Build Go"]


def test_filter_names_matches_vcs_tag_and_is_case_insensitive():
    catalog = CommandCatalog([_command("Git Status", "git"), _command("SVN Status", "svn")])
    assert catalog.filter_names("Python", "GIT") == ["Git Status"]


def test_duplicate_names_are_rejected():
    with pytest.raises(CommandEngineError) as excinfo:
        CommandCatalog([_command("Make"), _command("Make")])
    assert excinfo.value.kind == "duplicate_command"


def test_by_name_is_exact():
    catalog = CommandCatalog([_command("Make")])
    assert catalog.by_name("Make") is not None
    assert catalog.by_name("make") is None
    assert "Make" in catalog


def test_commit_command_name_picks_first_applicable():
    catalog = CommandCatalog(default_commands())
    assert catalog.commit_command_name("go", "git") == "Git Commit"
    assert catalog.commit_command_name("", "svn") == "SVN Commit"


def test_commit_command_name_without_match_raises():
    catalog = CommandCatalog([_command("Make")])
    with pytest.raises(CommandEngineError) as excinfo:
        catalog.commit_command_name("go", "git")
    assert excinfo.value.kind == "no_commit_command"


def test_default_commands_have_unique_names():
    names = [command.name for command in default_commands()]
    assert len(names) == len(set(names))
    assert {"Run Proj", "Make", "Build Go Proj", "LaTeX PDF", "Open Target File"} <= set(names)


def test_command_from_config_shorthand_and_defaults():
    command = Command.from_config({"name": " Lint ", "steps": "ruff check {FilePath}", "langs": "Python, go"})
    assert command is not None
    assert command.name == "Lint"
    assert command.steps == (CommandStep("ruff", ("check", "{FilePath}")),)
    assert command.langs == frozenset({"python", "go"})
    assert command.dir == "{ProjectPath}"
    assert command.wait is False
    assert command.arg_var_names() == ["ProjectPath", "FilePath"]


@pytest.mark.parametrize(
    ("raw", "expected"),
    [(True, True), (False, False), ("false", False), ("No", False), ("true", True), ("yes", True), (1, True), (0, False), ("maybe", False)],
)
def test_command_from_config_parses_flag_text(raw, expected):
    command = Command.from_config({"name": "Flagged", "steps": "true", "wait": raw, "user_prompt": raw})
    assert command.wait is expected
    assert command.user_prompt is expected


def test_command_from_config_rejects_empty_definitions():
    assert Command.from_config({"name": "", "steps": ["ls"]}) is None
    assert Command.from_config({"name": "Nothing", "steps": []}) is None


def test_config_round_trip_keeps_fields():
    original = Command.from_config(
        {
            "name": "Tag",
            "desc": "tag a release",
            "dir": "{FileDirPath}",
            "steps": [{"program": "git", "args": ["tag", "{PromptString1}"]}],
            "langs": ["git"],
            "wait": True,
            "user_prompt": True,
        }
    )
    assert Command.from_config(original.to_config()) == original


def test_commands_from_config_skips_invalid_and_duplicate_entries():
    commands = commands_from_config(
        [
            {"name": "A", "steps": ["echo a"]},
            "not a mapping",
            {"name": "A", "steps": ["echo again"]},
            {"name": "B"},
        ]
    )
    assert [command.name for command in commands] == ["A"]


def test_with_overrides_replaces_in_place_and_appends():
    catalog = CommandCatalog([_command("Make"), _command("Run Proj")])
    merged = catalog.with_overrides([_command("Make", "go"), _command("Extra")])
    assert merged.names() == ["Make", "Run Proj", "Extra"]
    assert merged.by_name("Make").langs == frozenset({"go"})


def test_load_command_catalog_layers_ide_then_project(settings_manager):
    settings_manager.set("commands.custom", [{"name": "Make", "steps": ["make all"]}, {"name": "Mine", "steps": ["ls"]}], "ide")
    settings_manager.set("commands.custom", [{"name": "Mine", "steps": ["ls -l"]}], "project")
    catalog = load_command_catalog(settings_manager)
    assert catalog.by_name("Make").steps[0].args == ("all",)
    assert catalog.by_name("Mine").steps[0].args == ("-l",)
    assert catalog.names()[-1] == "Mine"

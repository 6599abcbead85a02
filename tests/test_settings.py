import json

import pytest

from pygide.settings_manager import IDE_APP_DIR_ENV, SettingsManager, default_ide_app_dir
from pygide.settings_store import JsonSettingsStore, SettingsStoreError, deep_merge_defaults, dot_get, dot_set


def test_dot_helpers_create_and_read_nested_keys():
    data = {}
    dot_set(data, "run.kill_grace_ms", 200)
    assert data == {"run": {"kill_grace_ms": 200}}
    assert dot_get(data, "run.kill_grace_ms") == 200
    assert dot_get(data, "run.missing", "dflt") == "dflt"
    with pytest.raises(ValueError):
        dot_set(data, "", 1)


def test_deep_merge_keeps_existing_values():
    merged = deep_merge_defaults({"run": {"a": 1}}, {"run": {"a": 0, "b": 2}, "x": []})
    assert merged == {"run": {"a": 1, "b": 2}, "x": []}


def test_store_round_trip(tmp_path):
    path = tmp_path / "s.json"
    store = JsonSettingsStore(path, {"a": {"b": 1}})
    store.load()
    assert store.dirty is True
    assert store.set("a.b", 5) is True
    assert store.set("a.b", 5) is False
    store.save()
    assert json.loads(path.read_text(encoding="utf-8")) == {"a": {"b": 5}}

    again = JsonSettingsStore(path, {"a": {"b": 1}, "c": 3})
    again.load()
    assert again.get("a.b") == 5
    assert again.get("c") == 3
    assert again.dirty is False


def test_malformed_file_falls_back_and_is_not_overwritten(tmp_path):
    path = tmp_path / "s.json"
    path.write_text("{not json", encoding="utf-8")
    store = JsonSettingsStore(path, {"a": 1})
    store.load()
    assert store.last_error
    assert store.get("a") == 1
    with pytest.raises(SettingsStoreError):
        store.save()
    assert path.read_text(encoding="utf-8") == "{not json"


def test_non_object_root_is_an_error(tmp_path):
    path = tmp_path / "s.json"
    path.write_text("[1, 2]", encoding="utf-8")
    store = JsonSettingsStore(path, {"a": 1})
    store.load()
    assert "JSON object" in store.last_error


def test_append_to_list_copies_item(tmp_path):
    store = JsonSettingsStore(tmp_path / "s.json", {"items": []})
    store.load()
    item = {"k": 1}
    store.append_to_list("items", item)
    item["k"] = 2
    assert store.get("items") == [{"k": 1}]


def test_manager_normalizes_project_settings(tmp_path):
    root = tmp_path / "myproj"
    (root / ".pygide").mkdir(parents=True)
    (root / ".pygide" / "project.json").write_text(
        json.dumps(
            {
                "main_lang": " Go ",
                "vers_ctrl": "GIT",
                "build_cmds": "Build Go Proj",
                "run_cmds": ["Run Proj", "Run Proj", "", None],
                "languages": {"Python": {"post_save_cmds": "Python Lint File"}, "": {}},
                "changelog": [{"message": "ok"}, "junk"],
            }
        ),
        encoding="utf-8",
    )
    manager = SettingsManager(root, tmp_path / "ide")
    manager.load_all()

    assert manager.get("project_name") == "myproj"
    assert manager.get("main_lang") == "go"
    assert manager.get("vers_ctrl") == "git"
    assert manager.get("build_cmds") == ["Build Go Proj"]
    assert manager.get("run_cmds") == ["Run Proj"]
    assert manager.get("languages.python.post_save_cmds") == ["Python Lint File"]
    assert manager.get("changelog") == [{"message": "ok"}]
    assert manager.project_store.dirty is True


def test_manager_normalizes_ide_settings(tmp_path):
    ide_dir = tmp_path / "ide"
    ide_dir.mkdir()
    (ide_dir / "ide-settings.json").write_text(
        json.dumps(
            {
                "run": {"kill_grace_ms": "oops"},
                "keybindings": {"chord_timeout_ms": 999999, "sequences": {"action.build": "ctrl+k, ctrl+b"}},
                "history": {"max_commands": 2, "commands": ["a", "b", "c"]},
                "commands": {"custom": [{"name": "X"}, {"name": "X"}, {"nope": 1}]},
            }
        ),
        encoding="utf-8",
    )
    manager = SettingsManager(tmp_path / "proj", ide_dir)
    manager.load_all()

    assert manager.get("run.kill_grace_ms") == 1500
    assert manager.get("run.clear_output_before_run") is True
    assert manager.get("keybindings.chord_timeout_ms") == 10000
    assert manager.get("keybindings.sequences")["action.build"] == ["Ctrl+K", "Ctrl+B"]
    assert manager.get("keybindings.sequences")["action.run"] == ["Ctrl+X", "Ctrl+R"]
    assert manager.get("history.commands") == ["b", "c"]
    assert manager.get("commands.custom", "ide") == [{"name": "X"}]


def test_manager_scope_resolution_and_save(tmp_path):
    manager = SettingsManager(tmp_path / "proj", tmp_path / "ide")
    manager.load_all()
    assert manager.resolve_key_scope("build_cmds") == "project"
    assert manager.resolve_key_scope("run.kill_grace_ms") == "ide"
    assert manager.resolve_key_scope("commands.custom") is None

    manager.set("user.name", "Ada", "ide")
    manager.add_change_record({"message": "first"})
    saved = manager.save_all(only_dirty=True)
    assert saved == {"ide", "project"}
    assert manager.paths.project_file.is_file()
    assert manager.paths.ide_file.is_file()
    assert manager.save_all(only_dirty=True) == set()


def test_manager_skips_saving_unreadable_scope(tmp_path):
    ide_dir = tmp_path / "ide"
    ide_dir.mkdir()
    (ide_dir / "ide-settings.json").write_text("oops", encoding="utf-8")
    manager = SettingsManager(tmp_path / "proj", ide_dir)
    manager.load_all()
    assert set(manager.load_errors()) == {"ide"}
    assert manager.save_all() == {"project"}


def test_default_ide_app_dir_honors_env(monkeypatch, tmp_path):
    monkeypatch.setenv(IDE_APP_DIR_ENV, str(tmp_path / "custom"))
    assert default_ide_app_dir() == str(tmp_path / "custom")

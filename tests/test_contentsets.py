import json

from veinlog.contentloaders import JsonLoggerContentLoader, JsonLoggerContentSessionLoader
from veinlog.contentsets import LoggerContentSetConfig


def make_config(tmp_path):
    sets_dir = tmp_path / "sets"
    sessions_dir = tmp_path / "sessions"
    sets_dir.mkdir()
    sessions_dir.mkdir()
    (sets_dir / "s.json").write_text(
        json.dumps(
            {
                "SetA": [{"EntityId": 1040, "Components": ["a", "b"]}],
                "SetB": [
                    {"EntityId": 1040, "Components": ["b", "c"]},
                    {"EntityId": 200, "Components": ["x"]},
                ],
            }
        ),
        encoding="utf-8",
    )
    (sessions_dir / "s.json").write_text(
        json.dumps({"modules": [{"id": 200}, {"id": 1050}]}), encoding="utf-8"
    )
    config = LoggerContentSetConfig()
    config.set_json_environment(str(sets_dir), JsonLoggerContentLoader())
    config.set_json_environment(str(sessions_dir), JsonLoggerContentSessionLoader())
    for entry in config.get_config_environment():
        entry.handler.set_session("s.json")
    return config, sets_dir


def test_environment_entries_keep_directories(tmp_path):
    config, sets_dir = make_config(tmp_path)
    entries = config.get_config_environment()
    assert len(entries) == 2
    assert entries[0].config_file_dir == str(sets_dir)


def test_available_content_sets_concatenated(tmp_path):
    config, _ = make_config(tmp_path)
    assert config.get_available_content_sets() == ["SetA", "SetB", "ZeraAll"]


def test_union_of_specific_sets(tmp_path):
    config, _ = make_config(tmp_path)
    result = config.component_from_content_sets(["SetA", "SetB"])
    assert result == {"1040": ["a", "b", "c"], "200": ["x"]}


def test_all_components_win(tmp_path):
    config, _ = make_config(tmp_path)
    result = config.component_from_content_sets(["SetB", "ZeraAll"])
    assert result["200"] == []
    assert result["1050"] == []
    assert result["1040"] == ["b", "c"]


def test_empty_config_gives_nothing():
    config = LoggerContentSetConfig()
    assert config.get_available_content_sets() == []
    assert config.component_from_content_sets(["SetA"]) == {}
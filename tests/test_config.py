"""
Tests for ConfigService and the settings loader.
"""

import json

import pytest

from editree.config.settings import DEFAULT_CONFIG, load_config, merge_config
from editree.services.config_service import ConfigService


@pytest.fixture(autouse=True)
def no_api_key_env(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)


def test_missing_file_gives_defaults(tmp_path):
    config = load_config(tmp_path / "absent.json")
    assert config == DEFAULT_CONFIG
    assert config is not DEFAULT_CONFIG


def test_user_values_merge_over_defaults(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"ai": {"provider": "claude", "claude": {"api_key": "sk-ant"}}}))

    config = load_config(path)

    assert config["ai"]["provider"] == "claude"
    assert config["ai"]["claude"]["api_key"] == "sk-ant"
    assert config["ai"]["claude"]["model"] == DEFAULT_CONFIG["ai"]["claude"]["model"]
    assert config["workspace"]["confirm_delete"] is True


def test_environment_key_fallback(tmp_path, monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"ai": {"claude": {"api_key": "sk-file"}}}))
    monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ignored")

    config = load_config(path)

    assert config["ai"]["openai"]["api_key"] == "sk-env"
    assert config["ai"]["claude"]["api_key"] == "sk-file"


def test_invalid_json_raises_value_error(tmp_path):
    path = tmp_path / "config.json"
    path.write_text("{not json")
    with pytest.raises(ValueError):
        load_config(path)


def test_non_object_raises_value_error(tmp_path):
    path = tmp_path / "config.json"
    path.write_text("[1, 2]")
    with pytest.raises(ValueError):
        ConfigService(path).load()


def test_merge_does_not_mutate_inputs():
    base = {"a": {"b": 1, "c": 2}}
    merged = merge_config(base, {"a": {"b": 5}, "d": 3})
    assert merged == {"a": {"b": 5, "c": 2}, "d": 3}
    assert base == {"a": {"b": 1, "c": 2}}


def test_service_returns_file_contents(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"workspace": {"strict_rename": True}}))
    assert ConfigService(path).load() == {"workspace": {"strict_rename": True}}
    assert ConfigService(tmp_path / "absent.json").load() == {}

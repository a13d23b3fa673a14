"""Tests for ConfigManager sources and priorities."""

import json
from pathlib import Path

import pytest

from localgoose.core.config.config import ConfigManager
from localgoose.core.connection.connection import Connection


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "localgoose.json"
    path.write_text(json.dumps({"localgoose": {"json_indent": 4, "strict_query": True}}))
    return path


class TestDefaults:
    """Test default values."""

    def test_defaults(self, tmp_path, monkeypatch):
        """Defaults are available without any source."""
        monkeypatch.chdir(tmp_path)
        config = ConfigManager()
        assert config.get("json_indent") == 2
        assert config.get("serialize_writes") is True
        assert config.get("pluralize_collections") is False
        assert config.get("strict_query") is False
        assert Path(config.get("db_path")).resolve() == (tmp_path / "db").resolve()
        assert config.get("nope", "fallback") == "fallback"
        assert config.is_loaded

    def test_get_returns_copy(self):
        """get() without key returns a copy of the section."""
        config = ConfigManager()
        section = config.get()
        section["json_indent"] = 99
        assert config.get("json_indent") == 2


class TestSources:
    """Test JSON, dict and environment sources."""

    def test_json_file(self, config_file):
        """Values from the JSON file override defaults."""
        config = ConfigManager(config_path=str(config_file))
        config.load()
        assert config.get("json_indent") == 4
        assert config.get("strict_query") is True
        assert config.config_path == str(config_file)

    def test_dict_over_json(self, config_file):
        """A provided dict overrides the JSON file."""
        config = ConfigManager(config_path=str(config_file))
        config.load({"localgoose": {"json_indent": 8}})
        assert config.get("json_indent") == 8
        assert config.get("strict_query") is True

    def test_env_over_everything(self, config_file, monkeypatch):
        """Environment variables win and are parsed as JSON when possible."""
        monkeypatch.setenv("LOCALGOOSE__LOCALGOOSE__JSON_INDENT", "0")
        monkeypatch.setenv("LOCALGOOSE__LOCALGOOSE__SERIALIZE_WRITES", "false")
        monkeypatch.setenv("LOCALGOOSE__LOCALGOOSE__DB_PATH", "./data")
        config = ConfigManager(config_path=str(config_file))
        config.load({"localgoose": {"json_indent": 8}})
        assert config.get("json_indent") == 0
        assert config.get("serialize_writes") is False
        assert config.get("db_path") == "./data"

    def test_env_unknown_section_is_ignored(self, monkeypatch):
        """Variables for unknown sections or without a key are skipped."""
        monkeypatch.setenv("LOCALGOOSE__OTHER__KEY", "1")
        monkeypatch.setenv("LOCALGOOSE__LOCALGOOSE", "1")
        config = ConfigManager()
        config.load()
        assert "other" not in config.get_all_config()

    def test_missing_file_is_tolerated(self, tmp_path):
        """A missing config file falls back to defaults."""
        config = ConfigManager(config_path=str(tmp_path / "missing.json"))
        config.load()
        assert config.get("json_indent") == 2

    def test_invalid_json(self, tmp_path):
        """A corrupt config file raises ValueError."""
        path = tmp_path / "bad.json"
        path.write_text("{oops")
        with pytest.raises(ValueError, match="Invalid JSON configuration file"):
            ConfigManager(config_path=str(path)).load()

    def test_invalid_section(self):
        """Sections must be objects."""
        with pytest.raises(ValueError):
            ConfigManager().load({"localgoose": "nope"})


class TestRuntime:
    """Test runtime changes and reload."""

    def test_set_and_reload(self, monkeypatch):
        """set is runtime only; reload picks up new environment values."""
        config = ConfigManager()
        config.set("json_indent", 3)
        assert config.get("json_indent") == 3
        monkeypatch.setenv("LOCALGOOSE__LOCALGOOSE__JSON_INDENT", "5")
        config.reload()
        assert config.get("json_indent") == 5

    def test_connection_uses_its_own_config(self, tmp_path, monkeypatch):
        """Each Connection reads its settings through its own ConfigManager."""
        monkeypatch.setenv("LOCALGOOSE__LOCALGOOSE__SERIALIZE_WRITES", "false")
        first = Connection(tmp_path / "a", config={"localgoose": {"json_indent": None}})
        second = Connection(tmp_path / "b")
        assert first.get("serialize_writes") is False
        assert first.store.indent is None
        assert second.store.indent == 2
        first.set("strict_query", True)
        assert second.get("strict_query") is False

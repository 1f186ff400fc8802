"""
Unit tests for configuration loading and validation.
"""

import json
from unittest.mock import patch

import pytest

from ledgerclaw.utils.config import DEFAULT_CONFIG, deep_merge, load_config, validate_config
from ledgerclaw.utils.errors import ConfigurationError


@pytest.fixture
def home(tmp_path):
    with patch.dict("os.environ", {"LEDGERCLAW_HOME": str(tmp_path)}):
        yield tmp_path


class TestDeepMerge:
    def test_nested_override(self):
        merged = deep_merge(DEFAULT_CONFIG, {"schedule": {"timezone": "UTC"}})

        assert merged["schedule"]["timezone"] == "UTC"
        assert merged["schedule"]["daily_briefing"] == "0 18 * * *"

    def test_does_not_mutate_inputs(self):
        override = {"models": {"ollama": {"model": "mistral"}}}
        merged = deep_merge(DEFAULT_CONFIG, override)
        merged["models"]["ollama"]["model"] = "changed"

        assert DEFAULT_CONFIG["models"]["ollama"]["model"] == "llama3.2"
        assert override["models"]["ollama"]["model"] == "mistral"


class TestLoadConfig:
    """Tests for load_config."""

    def test_defaults_when_no_file(self, home, monkeypatch):
        monkeypatch.delenv("LEDGERCLAW_CONFIG", raising=False)
        cfg = load_config()

        assert cfg["schedule"]["timezone"] == "Asia/Kolkata"
        assert cfg["fetch"]["initial_fetch_days"] == 90
        assert cfg["storage"]["db_url"] == f"sqlite:///{home / 'ledger.db'}"

    def test_explicit_path_is_merged(self, home):
        path = home / "custom.json"
        path.write_text(json.dumps({"filter": {"refresh_interval_days": 3}}))

        cfg = load_config(str(path))

        assert cfg["filter"]["refresh_interval_days"] == 3
        assert cfg["models"]["provider"] == "ollama"

    def test_env_var_path(self, home):
        path = home / "from-env.json"
        path.write_text(json.dumps({"log_level": "DEBUG"}))

        with patch.dict("os.environ", {"LEDGERCLAW_CONFIG": str(path)}):
            assert load_config()["log_level"] == "DEBUG"

    def test_explicit_db_url_kept(self, home):
        path = home / "config.json"
        path.write_text(json.dumps({"storage": {"db_url": "sqlite:///:memory:"}}))

        assert load_config(str(path))["storage"]["db_url"] == "sqlite:///:memory:"

    def test_invalid_json(self, home):
        path = home / "config.json"
        path.write_text("{not json")

        with pytest.raises(ConfigurationError):
            load_config(str(path))

    def test_schema_violation_names_location(self, home):
        path = home / "config.json"
        path.write_text(json.dumps({"models": {"provider": "skynet"}}))

        with pytest.raises(ConfigurationError) as exc:
            load_config(str(path))

        assert "models/provider" in str(exc.value)


class TestValidateConfig:
    def test_defaults_are_valid(self):
        validate_config(deep_merge(DEFAULT_CONFIG, {}))

    def test_initial_fetch_days_must_be_positive(self):
        cfg = deep_merge(DEFAULT_CONFIG, {"fetch": {"initial_fetch_days": 0}})

        with pytest.raises(ConfigurationError):
            validate_config(cfg)

    def test_not_a_dict(self):
        with pytest.raises(ConfigurationError):
            validate_config(["nope"])

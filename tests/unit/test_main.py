"""
Unit tests for the command line entry point.
"""

import json
from unittest.mock import patch

import pytest

from ledgerclaw.main import main


@pytest.fixture
def home(tmp_path, monkeypatch):
    monkeypatch.setenv("LEDGERCLAW_HOME", str(tmp_path))
    monkeypatch.delenv("LEDGERCLAW_CONFIG", raising=False)
    config = tmp_path / "config.json"
    config.write_text(json.dumps({"schedule": {"timezone": "UTC"}}))
    with patch("ledgerclaw.main.setup_logger"):
        yield tmp_path


class TestMain:
    """Tests for CLI dispatch and exit codes."""

    def test_status_without_runs(self, home, capsys):
        assert main(["status"]) == 0

        assert "No pipeline runs yet." in capsys.readouterr().out
        assert (home / "ledger.db").exists()
        assert (home / "outbox").is_dir()

    def test_invalid_config_exits_2(self, home, capsys):
        (home / "config.json").write_text(json.dumps({"models": {"provider": "skynet"}}))

        assert main(["status"]) == 2
        assert "Configuration error" in capsys.readouterr().err

    def test_unknown_timezone_exits_2(self, home):
        (home / "config.json").write_text(json.dumps({"schedule": {"timezone": "Mars/Olympus"}}))

        assert main(["run"]) == 2

    def test_run_with_missing_inbox_fails(self, home, capsys):
        assert main(["run"]) == 1

    @patch("ledgerclaw.main.set_api_key", return_value=True)
    def test_set_key(self, mock_set, home):
        assert main(["set-key", "openai", "sk-test"]) == 0
        mock_set.assert_called_once_with("openai", "sk-test")

    @patch("ledgerclaw.main.start_scheduler")
    def test_daemon_is_default(self, mock_start, home):
        assert main([]) == 0
        mock_start.assert_called_once()

"""Tests for the command line interface."""

import json

import pytest
from typer.testing import CliRunner

from taxpilot import __version__
from taxpilot.cli import app
from taxpilot.registry import get_registry

runner = CliRunner()


@pytest.fixture(autouse=True)
def clean_registry(mock_config, temp_dir, monkeypatch):
    """Run every command against a temp config dir and the built-in roster."""
    monkeypatch.chdir(temp_dir)
    get_registry().reset()
    yield
    get_registry().reset()


class TestMain:
    def test_version(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert f"taxpilot version {__version__}" in result.output

    def test_no_command_shows_help(self):
        result = runner.invoke(app, [])
        assert result.exit_code == 0
        assert "taxpros" in result.output


class TestTaxPros:
    def test_lists_roster(self):
        result = runner.invoke(app, ["taxpros"])
        assert result.exit_code == 0
        assert "Tax Professionals" in result.output


class TestConfigCommands:
    """Tests for config show / config set."""

    def test_show(self, mock_config):
        result = runner.invoke(app, ["config", "show"])
        assert result.exit_code == 0
        assert "max_alternates" in result.output

    def test_set_persists(self, mock_config):
        result = runner.invoke(app, ["config", "set", "max_alternates", "3"])
        assert result.exit_code == 0
        assert "Set max_alternates = 3" in result.output

        saved = json.loads((mock_config / "config.json").read_text())
        assert saved["max_alternates"] == 3

    def test_set_appointment_type(self, mock_config):
        result = runner.invoke(app, ["config", "set", "default_appointment_type", "IN_PERSON"])
        assert result.exit_code == 0
        saved = json.loads((mock_config / "config.json").read_text())
        assert saved["default_appointment_type"] == "in_person"

    def test_unknown_key(self):
        result = runner.invoke(app, ["config", "set", "colour", "blue"])
        assert result.exit_code == 1
        assert "Unknown configuration key" in result.output

    @pytest.mark.parametrize(
        "key,value",
        [
            ("log_level", "LOUD"),
            ("max_alternates", "many"),
            ("default_appointment_type", "carrier_pigeon"),
        ],
    )
    def test_invalid_value(self, key, value):
        result = runner.invoke(app, ["config", "set", key, value])
        assert result.exit_code == 1
        assert "Invalid value" in result.output

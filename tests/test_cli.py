"""
CLI tests using click's CliRunner.
"""

import json
from uuid import uuid4

import pytest
from click.testing import CliRunner
from rich.console import Console

from natbridge import cli
from natbridge.config import Config


@pytest.fixture
def runner(monkeypatch):
    # Keep the root logger's handlers away from CliRunner's captured streams
    monkeypatch.setattr(cli, "setup_logging", lambda *args, **kwargs: None)
    monkeypatch.setattr(cli, "console", Console(width=200))
    return CliRunner()


def invoke(runner, data_dir, *args):
    return runner.invoke(cli.main, ["--data-dir", str(data_dir), *args])


class TestSerialCommands:
    """Tests for serial conversion."""

    def test_to_hex(self, runner):
        result = runner.invoke(cli.main, ["serial", "to-hex", "0x13000100"])
        assert result.exit_code == 0
        assert "13:00:01:00" in result.output

    def test_from_hex(self, runner):
        result = runner.invoke(cli.main, ["serial", "from-hex", "13:00:01:00"])
        assert result.exit_code == 0
        assert "318767360 (0x13000100)" in result.output

    def test_from_hex_malformed(self, runner):
        result = runner.invoke(cli.main, ["serial", "from-hex", "13:00:01"])
        assert result.exit_code == 1


class TestDecode:
    """Tests for the frame decoder command."""

    def test_digital(self, runner):
        result = runner.invoke(cli.main, ["decode", "0x81", "7", "01"])
        assert result.exit_code == 0
        assert "DigitalChanged" in result.output
        assert "on" in result.output

    def test_analog(self, runner):
        result = runner.invoke(cli.main, ["decode", "0x84", "7", "40420f00"])
        assert result.exit_code == 0
        assert "AnalogChanged" in result.output

    def test_short_payload_skipped(self, runner):
        result = runner.invoke(cli.main, ["decode", "0x8C", "7", "ff00"])
        assert result.exit_code == 2
        assert "too short" in result.output

    def test_unknown_command(self, runner):
        result = runner.invoke(cli.main, ["decode", "0x99", "7", "01"])
        assert result.exit_code == 2
        assert "0x99" in result.output

    def test_bad_payload(self, runner):
        result = runner.invoke(cli.main, ["decode", "0x81", "7", "zz"])
        assert result.exit_code == 1


class TestInit:
    """Tests for config initialization."""

    def test_writes_config(self, runner, data_dir):
        result = invoke(runner, data_dir, "init", "--mock")
        assert result.exit_code == 0
        assert Config.load(data_dir).bus.mock_mode is True

    def test_keeps_existing_config(self, runner, data_dir):
        invoke(runner, data_dir, "init", "--mock")
        result = invoke(runner, data_dir, "init", "--no-mock")
        assert "already exists" in result.output
        assert Config.load(data_dir).bus.mock_mode is True

        invoke(runner, data_dir, "init", "--no-mock", "--force")
        assert Config.load(data_dir).bus.mock_mode is False


class TestMappingCommands:
    """Tests for mapping management."""

    def test_add_list_remove(self, runner, data_dir):
        target = uuid4()

        added = invoke(
            runner, data_dir, "mappings", "add", "13:00:01:00", "f0:00:00:01", str(target),
            "--binding-type", "analog", "--name", "Desk",
        )
        assert added.exit_code == 0, added.output

        [record] = json.loads((data_dir / "mappings.json").read_text())
        assert record["deviceSerial"] == "F0:00:00:01"
        assert record["targetId"] == str(target)
        assert record["bindingType"] == "analog"

        listed = invoke(runner, data_dir, "mappings", "list")
        assert "13:00:01:00" in listed.output
        assert "Desk" in listed.output

        removed = invoke(runner, data_dir, "mappings", "remove", "13:00:01:00", "F0:00:00:01")
        assert removed.exit_code == 0
        assert json.loads((data_dir / "mappings.json").read_text()) == []

    def test_add_duplicate_needs_replace(self, runner, data_dir):
        args = ("mappings", "add", "13:00:01:00", "F0:00:00:01")
        invoke(runner, data_dir, *args, str(uuid4()))

        result = invoke(runner, data_dir, *args, str(uuid4()))
        assert result.exit_code == 1

        replacement = uuid4()
        result = invoke(runner, data_dir, *args, str(replacement), "--replace")
        assert result.exit_code == 0
        [record] = json.loads((data_dir / "mappings.json").read_text())
        assert record["targetId"] == str(replacement)

    def test_add_malformed(self, runner, data_dir):
        result = invoke(runner, data_dir, "mappings", "add", "13:00:01", "F0:00:00:01", str(uuid4()))
        assert result.exit_code == 1

    def test_remove_missing(self, runner, data_dir):
        result = invoke(runner, data_dir, "mappings", "remove", "13:00:01:00", "F0:00:00:01")
        assert result.exit_code == 1

    def test_list_empty(self, runner, data_dir):
        result = invoke(runner, data_dir, "mappings", "list")
        assert result.exit_code == 0
        assert "No mappings" in result.output


class TestLightingCommands:
    """Tests for lighting commands that need no bridge."""

    def test_lights_requires_pairing(self, runner, data_dir):
        result = invoke(runner, data_dir, "lighting", "lights")
        assert result.exit_code == 1
        assert "Not paired" in result.output


if __name__ == "__main__":
    pytest.main([__file__, "-v"])

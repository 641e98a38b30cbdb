import json
from importlib.metadata import EntryPoint
from pathlib import Path

import pytest
from typer.testing import CliRunner

from finch import __version__
from finch import commands as commands_mod
from finch.cli import create_app

runner = CliRunner()


@pytest.fixture(autouse=True)
def _cli_env(monkeypatch: pytest.MonkeyPatch) -> None:
    eps = [
        EntryPoint(
            name="help",
            value="finch.builtin.help:register",
            group=commands_mod.COMMAND_GROUP,
        ),
        EntryPoint(
            name="stats",
            value="finch.builtin.stats:register",
            group=commands_mod.COMMAND_GROUP,
        ),
    ]
    monkeypatch.setattr(commands_mod, "entry_points", lambda group: eps)
    monkeypatch.setattr("finch.cli.setup_logging", lambda **_: None)


def test_version() -> None:
    result = runner.invoke(create_app(), ["--version"])

    assert result.exit_code == 0
    assert result.output.strip() == __version__


def test_commands_listing(tmp_path: Path) -> None:
    result = runner.invoke(
        create_app(), ["commands", "--config", str(tmp_path / "config.json")]
    )

    assert result.exit_code == 0
    assert result.output.startswith("Loaded commands:")
    assert result.output.index("Help") < result.output.index("Stats")


def test_commands_respects_configured_order(tmp_path: Path) -> None:
    config = tmp_path / "config.json"
    config.write_text(json.dumps({"commands": ["stats", "help"]}))

    result = runner.invoke(
        create_app(), ["commands", "--botfather", "--config", str(config)]
    )

    assert result.exit_code == 0
    assert result.output.splitlines() == [
        "stats - Displays some statistics about bot usage",
        "help - Displays available commands and help information",
    ]


def test_commands_rejects_bad_plugin_list(tmp_path: Path) -> None:
    config = tmp_path / "config.json"
    config.write_text(json.dumps({"commands": "help"}))

    result = runner.invoke(create_app(), ["commands", "--config", str(config)])

    assert result.exit_code == 1
    assert "Invalid `commands`" in result.output


def test_run_without_token_fails(tmp_path: Path) -> None:
    result = runner.invoke(
        create_app(), ["run", "--config", str(tmp_path / "config.json")]
    )

    assert result.exit_code == 1
    assert "Missing bot token" in result.output

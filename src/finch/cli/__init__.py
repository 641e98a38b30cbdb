from __future__ import annotations

from functools import partial
from pathlib import Path

import anyio
import typer

from .. import __version__
from ..bot import Finch, StartError
from ..builtin.help import render_botfather, render_help
from ..commands import CommandRegistry, load_command_plugins
from ..config import ConfigError, ConfigStore, get_bot_token
from ..dispatch import DEFAULT_QUEUE_SIZE, DEFAULT_WORKERS
from ..logging import get_logger, setup_logging

logger = get_logger(__name__)

_CONFIG_PATH_OPTION = typer.Option(
    None,
    "--config",
    help="Path to the JSON config (defaults to $FINCH_CONFIG or config.json).",
)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(__version__)
        raise typer.Exit()


def _command_names(config: ConfigStore) -> list[str] | None:
    value = config.get("commands")
    if value is None:
        return None
    if isinstance(value, list) and all(isinstance(item, str) for item in value):
        return value
    raise ConfigError(
        f"Invalid `commands` in {config.path}; expected a list of plugin names."
    )


def build_registry(config: ConfigStore) -> CommandRegistry:
    registry = CommandRegistry()
    loaded = load_command_plugins(registry, names=_command_names(config))
    logger.info("cli.plugins_loaded", plugins=loaded, commands=len(registry))
    return registry


def app_main(
    version: bool = typer.Option(
        False,
        "--version",
        help="Show the version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """Telegram bots built from self-registering commands."""


def run(
    config_path: Path | None = _CONFIG_PATH_OPTION,
    debug: bool = typer.Option(False, "--debug", help="Log debug output."),
    workers: int = typer.Option(
        DEFAULT_WORKERS, "--workers", min=1, help="Concurrent update workers."
    ),
    queue_size: int = typer.Option(
        DEFAULT_QUEUE_SIZE,
        "--queue-size",
        min=0,
        help="Updates buffered before ingestion waits.",
    ),
    webhook_domain: str | None = typer.Option(
        None,
        "--webhook-domain",
        help="Public base URL; serve a webhook instead of long polling.",
    ),
    endpoint: str = typer.Option("/webhook", "--endpoint", help="Webhook path."),
    port: int = typer.Option(8443, "--port", help="Webhook listen port."),
) -> None:
    """Start the bot."""
    setup_logging(debug=debug)
    try:
        config = ConfigStore.load(config_path)
        token = get_bot_token(config)
        registry = build_registry(config)
    except ConfigError as e:
        typer.echo(f"error: {e}", err=True)
        raise typer.Exit(code=1) from e
    bot = Finch.from_token(token, config, registry, debug=debug)
    if webhook_domain:
        start = partial(
            bot.start_webhook,
            webhook_domain,
            endpoint,
            port,
            workers=workers,
            queue_size=queue_size,
        )
    else:
        start = partial(bot.start, workers=workers, queue_size=queue_size)
    try:
        anyio.run(start)
    except StartError as e:
        typer.echo(f"error: {e}", err=True)
        raise typer.Exit(code=1) from e
    except KeyboardInterrupt:
        logger.info("cli.interrupted")
        raise typer.Exit(code=130) from None


def commands(
    config_path: Path | None = _CONFIG_PATH_OPTION,
    botfather: bool = typer.Option(
        False, "--botfather", help="Print the BotFather command list."
    ),
) -> None:
    """List the commands the bot would load."""
    try:
        config = ConfigStore.load(config_path)
        registry = build_registry(config)
    except ConfigError as e:
        typer.echo(f"error: {e}", err=True)
        raise typer.Exit(code=1) from e
    if botfather:
        typer.echo(render_botfather(registry))
    else:
        typer.echo(render_help(registry).rstrip("\n"))


def create_app() -> typer.Typer:
    app = typer.Typer(
        add_completion=False,
        no_args_is_help=True,
        help="Telegram bots built from self-registering commands.",
    )
    app.callback()(app_main)
    app.command(name="run")(run)
    app.command(name="commands")(commands)
    return app


def main() -> None:
    app = create_app()
    app()

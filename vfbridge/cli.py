"""Click CLI for running and checking the bridge."""

from __future__ import annotations

import asyncio
import json

import click

from vfbridge.config import BridgeConfig
from vfbridge.dialogue.client import DialogueClient
from vfbridge.errors import ConfigError
from vfbridge.logging_config import configure_logging


@click.group()
def cli() -> None:
    """WhatsApp to Voiceflow relay bridge."""


@cli.command()
@click.option("--host", default="0.0.0.0", help="Interface to bind.")
@click.option("--port", default=3000, type=int, envvar="PORT", help="Port to listen on.")
def serve(host: str, port: int) -> None:
    """Run the webhook server (configuration comes from the environment)."""
    import uvicorn

    uvicorn.run(
        "vfbridge.app:create_app_from_env",
        factory=True,
        host=host,
        port=port,
        log_config=None,
    )


@cli.command("check-config")
@click.pass_context
def check_config(ctx: click.Context) -> None:
    """Report missing required settings; exits 1 if any are missing."""
    config = BridgeConfig.from_env(strict=False)
    missing = config.missing_settings()
    click.echo(json.dumps({"ok": not missing, "missing": missing}, indent=2))
    if missing:
        ctx.exit(1)


@cli.command()
@click.argument("utterance")
@click.option("--user", default="cli-user", help="Sender id used as the dialogue session key.")
def interact(utterance: str, user: str) -> None:
    """Run one dialogue turn and print the parsed traces as JSON."""
    try:
        config = BridgeConfig.from_env()
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc
    configure_logging(config.log_level)
    traces = asyncio.run(DialogueClient(config).interact(user, utterance))
    click.echo(json.dumps([trace.model_dump() for trace in traces], indent=2))

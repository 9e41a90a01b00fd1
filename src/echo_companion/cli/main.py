"""
Main CLI entry point for Echo Companion.

Runs the chat API server or a terminal client that talks to it.
"""

import asyncio
from typing import Callable, Optional

import click

from ..client.backend_client import ChatBackendClient
from ..client.console_adapters import ConsoleSpeechCapture, ConsoleSpeechOutput
from ..client.turn_controller import TurnController
from ..core.config import Config
from ..core.exceptions import CaptureUnavailable, ConfigurationError, EchoError
from ..core.logging import configure_logging, get_logger
from ..core.types import Speaker, Turn
from ..services.error_messages import ServiceErrorMessages
from .config import config_commands

logger = get_logger(__name__)

UNSPOKEN_NOTICES = {
    ServiceErrorMessages.UPSTREAM_UNAVAILABLE,
    ServiceErrorMessages.EMPTY_REPLY,
    ServiceErrorMessages.CAPTURE_UNAVAILABLE,
    ServiceErrorMessages.SYNTHESIS_FAILED,
}


def turn_printer(
    controller: TurnController,
    name: str,
    echo: Callable[[str], None] = click.echo,
) -> Callable[[Turn], None]:
    """Build a message listener that prints the agent turns nobody spoke."""

    def show(turn: Turn) -> None:
        if turn.speaker is not Speaker.AGENT:
            return
        if turn.text == ServiceErrorMessages.SYNTHESIS_FAILED:
            # The reply just before this notice was never spoken
            earlier = controller.transcript[:-1]
            if earlier and earlier[-1].speaker is Speaker.AGENT:
                echo(f"{name}: {earlier[-1].text}")
        elif controller.voice_mode and turn.text not in UNSPOKEN_NOTICES:
            # Spoken replies are printed by the speech output
            return
        echo(f"{name}: {turn.text}")

    return show


def load_config(config_path: Optional[str]) -> Config:
    """Resolve configuration once: a YAML file if given, else the environment."""
    if config_path:
        return Config.from_file(config_path)
    return Config.from_env()


@click.group()
@click.version_option(version="0.1.0")
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False),
    help="YAML configuration file",
)
@click.option("--debug", "-d", is_flag=True, help="Enable debug output")
@click.pass_context
def cli(ctx: click.Context, config_path: Optional[str], debug: bool) -> None:
    """
    Echo Companion CLI

    A compassionate conversational companion with a voice-first client.
    """
    ctx.ensure_object(dict)
    try:
        config = load_config(config_path)
    except ConfigurationError as e:
        raise click.ClickException(e.message) from e

    if debug:
        config.debug = True
        config.monitoring.log_level = "DEBUG"
    configure_logging(config.monitoring.log_level, config.monitoring.json_logs)
    ctx.obj["config"] = config


@cli.command()
@click.option("--host", help="Bind address (defaults to api.host)")
@click.option("--port", type=int, help="Port (defaults to api.port)")
@click.pass_context
def serve(ctx: click.Context, host: Optional[str], port: Optional[int]) -> None:
    """Run the chat API server."""
    import uvicorn

    from ..web.chat_api import create_app

    config: Config = ctx.obj["config"]
    try:
        app = create_app(config)
    except ConfigurationError as e:
        raise click.ClickException(e.message) from e

    uvicorn.run(
        app,
        host=host or config.api.host,
        port=port or config.api.port,
        log_level=config.monitoring.log_level.lower(),
    )


@cli.command()
@click.option(
    "--voice/--text",
    default=None,
    help="Start in voice mode (typed lines stand in for speech) or text mode",
)
@click.option("--session", "session_id", help="Session id to resume")
@click.option("--url", "backend_url", help="Backend URL (defaults to client.backend_url)")
@click.pass_context
def chat(
    ctx: click.Context,
    voice: Optional[bool],
    session_id: Optional[str],
    backend_url: Optional[str],
) -> None:
    """Chat with Echo from the terminal.

    In text mode type a message per line. Commands: /voice, /text, /quit.
    In voice mode each line is treated as one utterance; end input to quit.
    """
    config: Config = ctx.obj["config"]
    if voice is None:
        voice = config.client.voice_mode
    try:
        asyncio.run(run_chat(config, voice, session_id, backend_url))
    except KeyboardInterrupt:
        click.echo()


async def run_chat(
    config: Config,
    voice: bool,
    session_id: Optional[str] = None,
    backend_url: Optional[str] = None,
) -> None:
    name = config.persona.name
    backend = ChatBackendClient(
        backend_url or config.client.backend_url,
        timeout_s=config.client.request_timeout_s,
    )
    capture = ConsoleSpeechCapture()
    controller = TurnController(
        backend=backend,
        capture=capture,
        output=ConsoleSpeechOutput(prefix=name),
        voice_mode=voice,
        session_id=session_id,
        request_timeout_s=config.client.request_timeout_s,
    )

    controller.add_message_listener(turn_printer(controller, name))
    click.echo(f"{name}: {ServiceErrorMessages.get_greeting(name)}")
    click.echo(f"(session {controller.session_id})")

    loop = asyncio.get_running_loop()
    try:
        while True:
            if controller.voice_mode:
                if capture.closed:
                    break
                try:
                    controller.start_listening()
                except CaptureUnavailable:
                    continue
                await controller.wait_until_idle()
                continue

            try:
                line = await loop.run_in_executor(None, input, "You> ")
            except EOFError:
                break
            command = line.strip()
            if command in ("/quit", "/exit"):
                break
            if command in ("/voice", "/text"):
                try:
                    controller.set_voice_mode(command == "/voice")
                except EchoError as e:
                    logger.debug("Mode change refused", error=str(e))
                continue
            if not command:
                continue

            controller.send_text(command)
            await controller.wait_until_idle()
    finally:
        await backend.aclose()


cli.add_command(config_commands, name="config")


if __name__ == "__main__":
    cli()

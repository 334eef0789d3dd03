"""Pixel command line interface."""

from __future__ import annotations

import asyncio
import contextlib
import json
from typing import Annotated

import typer
import uvicorn
from rich.console import Console

from pixel.app.runtime import AppRuntime
from pixel.config import load_settings
from pixel.errors import ConfigurationError, PipelineError
from pixel.logging_utils import configure_logging
from pixel.remote.channel import MemoryChannel
from pixel.remote.messages import ACTION_RESULT, EXECUTE_ACTION
from pixel.server import create_app

CONSOLE_SESSION = "console"
EXIT_COMMANDS = frozenset({"/quit", "/exit"})

app = typer.Typer(name="pixel", help="Two-stage voice agent with UI-delegated actions", add_completion=False)
console = Console()


def _build_runtime(**overrides: object) -> AppRuntime:
    try:
        settings = load_settings(**overrides)
    except ConfigurationError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=2) from exc
    return AppRuntime(settings)


@app.command()
def serve(
    host: Annotated[str | None, typer.Option(help="Bind address")] = None,
    port: Annotated[int | None, typer.Option(help="Bind port")] = None,
) -> None:
    """Serve the HTTP and WebSocket API for the UI."""
    runtime = _build_runtime(host=host, port=port)
    configure_logging(profile="default", level=runtime.settings.log_level)
    uvicorn.run(create_app(runtime), host=runtime.settings.host, port=runtime.settings.port, log_level="warning")


@app.command()
def chat(
    router_model: Annotated[str | None, typer.Option(help="Override the router model")] = None,
    responder_model: Annotated[str | None, typer.Option(help="Override the responder model")] = None,
) -> None:
    """Chat in the terminal; delegated actions are acknowledged by a console peer."""
    runtime = _build_runtime(router_model=router_model, responder_model=responder_model)
    configure_logging(profile="chat", level=runtime.settings.log_level)
    asyncio.run(_chat_loop(runtime))


@app.command()
def check() -> None:
    """Verify that both models answer."""
    runtime = _build_runtime()
    results = asyncio.run(runtime.check_backends())
    for role, ok in results.items():
        status = "[green]ok[/green]" if ok else "[red]failed[/red]"
        console.print(f"{role}: {status}")
    if not all(results.values()):
        raise typer.Exit(code=1)


async def _chat_loop(runtime: AppRuntime) -> None:
    channel = MemoryChannel(CONSOLE_SESSION)
    session = runtime.open_session(CONSOLE_SESSION, channel)
    peer = asyncio.create_task(_console_peer(channel))
    try:
        while True:
            text = (await asyncio.to_thread(console.input, "[bold cyan]you[/bold cyan] > ")).strip()
            if not text:
                continue
            if text in EXIT_COMMANDS:
                break
            if text == "/clear":
                session.orchestrator.clear_history()
                console.print("[dim]history cleared[/dim]")
                continue
            try:
                reply = await session.handle_input(text)
            except PipelineError as exc:
                console.print(f"[red]error:[/red] {exc}")
                continue
            console.print(f"[bold magenta]pixel[/bold magenta] > {reply}")
    except (EOFError, KeyboardInterrupt):
        console.print()
    finally:
        await runtime.close_session(CONSOLE_SESSION)
        peer.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await peer


async def _console_peer(channel: MemoryChannel) -> None:
    """Play the UI: show each delegated action and report success."""
    while True:
        message = await channel.next_outbound()
        if message is None or message.get("type") != EXECUTE_ACTION:
            continue
        args = message.get("args", {})
        console.print(f"[dim]ui <- {message.get('actionName')} {json.dumps(args, ensure_ascii=False)}[/dim]")
        await channel.deliver(
            {
                "type": ACTION_RESULT,
                "executionId": message.get("executionId"),
                "success": True,
                "result": {"applied": args},
            }
        )

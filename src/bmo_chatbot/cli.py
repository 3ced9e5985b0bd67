"""CLI entry point for bmo-chatbot."""

import asyncio
import logging
import sys
import threading
from pathlib import Path

import click
import uvicorn

from .aggregator import CancelReason, ConversationObserver
from .export import conversation_to_json, conversation_to_markdown
from .session import ChatSession


class TerminalObserver(ConversationObserver):
    """Echoes a streaming reply to the terminal as it arrives."""

    def on_delta(self, text, delta, autoscroll):
        click.echo(delta, nl=False)

    def on_complete(self, text):
        click.echo()

    def on_error(self, error, partial):
        if partial:
            click.echo()
        click.secho(str(error), fg="red", err=True)

    def on_abort(self, partial, reason):
        click.echo()
        if reason is CancelReason.STOPPED:
            click.secho("[stopped]", fg="yellow")

    def on_notice(self, text):
        click.echo(text)


def _run(func, **kwargs):
    """Run ``func(session)`` on a fresh session and close it afterwards."""

    async def runner():
        session = ChatSession.from_config(**kwargs)
        try:
            return await func(session)
        finally:
            await session.aclose()

    return asyncio.run(runner())


@click.group()
@click.option("--log-level", default="WARNING", show_default=True,
              type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
              help="Logging verbosity.")
def main(log_level: str):
    """Chat with OpenAI, Anthropic, Ollama, Gemini, Mistral and OpenRouter models."""
    logging.basicConfig(level=log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")


@main.command()
@click.option("--port", default=8080, help="Port to serve on.")
@click.option("--host", default="127.0.0.1", help="Host to bind to.")
def serve(port: int, host: str):
    """Start the HTTP API."""
    click.echo(f"Starting bmo-chatbot on http://{host}:{port}")
    uvicorn.run("bmo_chatbot.server:app", host=host, port=port, reload=False)


def _read_stdin(queue: asyncio.Queue) -> None:
    """Feed stdin lines to ``queue`` from a daemon thread; ``None`` marks end of input."""
    loop = asyncio.get_running_loop()

    def reader():
        for line in sys.stdin:
            loop.call_soon_threadsafe(queue.put_nowait, line.rstrip("\r\n"))
        loop.call_soon_threadsafe(queue.put_nowait, None)

    threading.Thread(target=reader, name="stdin-reader", daemon=True).start()


async def run_repl(session: ChatSession, lines: asyncio.Queue) -> None:
    """Send each line taken from ``lines`` until ``None`` arrives.

    Replies stream in the background while the next line is read, so /stop
    reaches the reply in flight and new text supersedes it. Cancelling the
    REPL (Ctrl-C) stops a streaming reply; with nothing in flight it ends the
    REPL.
    """
    pending: asyncio.Task | None = None
    while True:
        try:
            text = await lines.get()
        except asyncio.CancelledError:
            if pending is None or pending.done():
                raise
            asyncio.current_task().uncancel()
            session.stop()
            continue
        if text is None:
            break
        if text.lstrip().startswith("/"):
            await session.send(text)
        elif text.strip():
            pending = asyncio.create_task(session.send(text))
    if pending is not None:
        await pending


@main.command()
def chat():
    """Chat in the terminal. Type /help for commands, /stop or Ctrl-C to stop a reply, Ctrl-D to quit."""

    async def repl(session: ChatSession):
        click.echo(f"Model: {session.settings.general.model or '(none)'}  Profile: {session.settings.profiles.profile}")
        lines = asyncio.Queue()
        _read_stdin(lines)
        await run_repl(session, lines)

    try:
        _run(repl, observer=TerminalObserver())
    except KeyboardInterrupt:
        click.echo()



@main.command()
@click.option("--refresh", is_flag=True, help="Re-fetch model lists from the providers first.")
def models(refresh: bool):
    """List the models that can be selected."""

    async def list_models(session: ChatSession):
        if refresh:
            await session.refresh_models()
        return session.settings.general.model, session.router.models()

    current, grouped = _run(list_models)
    if not grouped:
        click.echo("No models configured.")
        return
    for provider, names in grouped.items():
        click.secho(f"{provider}:", bold=True)
        for name in names:
            marker = "*" if name == current else " "
            click.echo(f" {marker} {name}")


@main.group()
def history():
    """Show, clear or export the message history."""
    pass


@history.command("show")
def history_show():
    """Print the current conversation."""

    async def show(session: ChatSession):
        return session.conversation.messages

    messages = _run(show)
    if not messages:
        click.echo("No messages.")
        return
    click.echo(conversation_to_markdown(messages))


@history.command("clear")
@click.confirmation_option(prompt="Clear the message history?")
def history_clear():
    """Delete every message in the current conversation."""

    async def clear(session: ChatSession):
        await session.clear()

    _run(clear)
    click.echo("Chat history cleared.")


@history.command("export")
@click.option("--format", "fmt", type=click.Choice(["md", "json"]), default="md", help="Export format.")
@click.option("--output", "-o", type=click.Path(dir_okay=False, path_type=Path), help="Write to a file.")
def history_export(fmt: str, output: Path | None):
    """Export the conversation as Markdown or JSON."""

    async def export(session: ChatSession):
        return session.conversation.messages

    messages = _run(export)
    content = conversation_to_json(messages) if fmt == "json" else conversation_to_markdown(messages)
    if output is None:
        click.echo(content)
        return
    output.write_text(content, encoding="utf-8")
    click.echo(f"Exported {len(messages)} messages to {output}")

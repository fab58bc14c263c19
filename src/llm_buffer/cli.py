"""CLI interface for LLM Buffer with streaming output."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
from pathlib import Path

import click
from prompt_toolkit import PromptSession
from prompt_toolkit.formatted_text import HTML
from prompt_toolkit.history import FileHistory
from rich.console import Console
from rich.table import Table

from llm_buffer.client import StreamingClient
from llm_buffer.config import BufferConfig, ProviderConfig, load_config
from llm_buffer.errors import LLMBufferError
from llm_buffer.output import ConsoleSink, FileSink, OutputSink
from llm_buffer.providers import PROVIDERS
from llm_buffer.types import EventType, JobEvent, JobState, Role

console = Console()

_HELP = """
[bold]Commands:[/bold]
  /provider [name]  - Show or switch provider (anthropic/openai/gemini/ollama)
  /model [id]       - Show or switch model
  /history          - Show the conversation context
  /turns [n]        - Show or set how many turns are kept as context
  /clear            - Clear conversation history
  /help             - Show this help
  /quit             - Exit

Ctrl-C while a response is streaming cancels it.
"""


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def select_lines(text: str, line_range: str | None) -> str:
    """Pick the prompt out of a document.

    *line_range* is ``"N"`` or ``"A:B"`` (1-based, inclusive; either side of the
    colon may be omitted).  Without a range the last non-empty line is used,
    the equivalent of sending the line under the cursor at the end of the
    buffer.
    """
    lines = text.splitlines()
    if not line_range:
        for line in reversed(lines):
            if line.strip():
                return line
        return ""
    try:
        if ":" in line_range:
            start_s, end_s = line_range.split(":", 1)
            start = int(start_s) if start_s else 1
            end = int(end_s) if end_s else len(lines)
        else:
            start = end = int(line_range)
    except ValueError:
        raise click.BadParameter(f"invalid line range: {line_range}") from None
    if start < 1 or end < start:
        raise click.BadParameter(f"invalid line range: {line_range}")
    return "\n".join(lines[start - 1:end])


def print_event(event: JobEvent) -> None:
    """Render job lifecycle notifications."""
    data = event.data
    if event.type == EventType.JOB_STARTED:
        console.print(
            f"[dim]{data['provider']}/{data['model']}: "
            f"~{data['context_tokens']} context tokens[/dim]"
        )
    elif event.type == EventType.JOB_COMPLETED:
        console.print(f"\n[dim]{data['message']}[/dim]")
    elif event.type == EventType.JOB_CANCELLED:
        console.print(f"\n[yellow]{data['message']}[/yellow]")
    elif event.type == EventType.JOB_FAILED:
        console.print(f"\n[red]{data['message']}[/red]")


async def stream_prompt(client: StreamingClient, prompt: str) -> JobState:
    """Send *prompt* and wait; Ctrl-C cancels the job instead of exiting."""
    job = await client.send(prompt)
    loop = asyncio.get_running_loop()
    installed = False
    with contextlib.suppress(NotImplementedError):
        loop.add_signal_handler(signal.SIGINT, client.cancel)
        installed = True
    try:
        return await client.wait(job)
    finally:
        if installed:
            loop.remove_signal_handler(signal.SIGINT)


def _show_history(client: StreamingClient) -> None:
    turns = client.turns
    if not turns:
        console.print("[dim]History is empty.[/dim]")
        return
    table = Table(title=f"Conversation (~{client.context_tokens()} tokens)")
    table.add_column("#", style="dim")
    table.add_column("Role")
    table.add_column("Content")
    for i, turn in enumerate(turns, 1):
        role = "user" if turn.role is Role.PROMPT else "assistant"
        content = turn.content if len(turn.content) <= 80 else turn.content[:77] + "..."
        table.add_row(str(i), role, content)
    console.print(table)


def handle_command(
    command_line: str, client: StreamingClient, config: BufferConfig,
) -> str | None:
    """Process a slash command.  Returns ``"quit"`` to leave the REPL."""
    parts = command_line.split(maxsplit=1)
    command = parts[0].lower()
    arg = parts[1].strip() if len(parts) > 1 else ""
    current = client.config

    if command in ("/quit", "/exit"):
        return "quit"

    if command == "/provider":
        if not arg:
            console.print(f"Provider: [bold]{current.kind}[/bold] ({', '.join(PROVIDERS)})")
        else:
            try:
                client.config = config.provider_config(arg)
            except LLMBufferError as e:
                console.print(f"[red]{e}[/red]")
            else:
                console.print(f"[green]Provider: {client.config.kind} ({client.config.model})[/green]")
    elif command == "/model":
        if not arg:
            console.print(f"Model: [bold]{current.model}[/bold]")
        else:
            client.config = config.provider_config(current.kind, model=arg)
            console.print(f"[green]Model: {arg}[/green]")
    elif command == "/history":
        _show_history(client)
    elif command == "/turns":
        if not arg:
            console.print(f"Turns kept: [bold]{client.history_limit}[/bold]")
        else:
            try:
                client.history_limit = int(arg)
            except ValueError:
                console.print(f"[red]Invalid turn count: {arg}[/red]")
            else:
                console.print(f"[green]Turns kept: {client.history_limit}[/green]")
    elif command == "/clear":
        client.clear_history()
        console.print("[dim]History cleared.[/dim]")
    elif command == "/help":
        console.print(_HELP)
    else:
        console.print(f"[red]Unknown command: {command}[/red] (try /help)")
    return None


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------

async def _repl(client: StreamingClient, config: BufferConfig) -> None:
    history_path = Path.home() / ".llm_buffer" / "history"
    history_path.parent.mkdir(parents=True, exist_ok=True)
    session: PromptSession[str] = PromptSession(history=FileHistory(str(history_path)))

    while True:
        try:
            user_input = (await session.prompt_async(
                lambda: HTML(f"<ansigreen><b>{client.config.kind} ❯ </b></ansigreen>"),
            )).strip()
        except (EOFError, KeyboardInterrupt):
            console.print("\n[dim]Goodbye![/dim]")
            return

        if not user_input:
            continue
        if user_input.startswith("/"):
            if handle_command(user_input, client, config) == "quit":
                console.print("[dim]Goodbye![/dim]")
                return
            continue

        try:
            await stream_prompt(client, user_input)
        except LLMBufferError as e:
            console.print(f"[red]{e}[/red]")
        console.print()


async def _run(
    config: BufferConfig,
    provider: ProviderConfig,
    prompt: str | None,
    file_path: Path | None,
    lines: str | None,
) -> int:
    sink: OutputSink
    if file_path is not None:
        prompt = select_lines(file_path.read_text(encoding="utf-8"), lines)
        sink = FileSink(file_path, lead="\n\n")
    else:
        sink = ConsoleSink(console)

    client = StreamingClient(
        provider,
        sink=sink,
        history_limit=config.history_turns,
        timeout=config.timeout,
    )
    client.event_bus.subscribe("*", print_event)

    try:
        async with client:
            if prompt is None:
                await _repl(client, config)
                return 0
            try:
                state = await stream_prompt(client, prompt)
            except LLMBufferError as e:
                console.print(f"[red]{e}[/red]")
                return 1
            return 0 if state is JobState.COMPLETED else 1
    finally:
        client.event_bus.unsubscribe("*", print_event)


@click.command()
@click.option("--config", "-c", "config_path", default=None,
              help="Path to llm_buffer.yaml (auto-detected from CWD or ~/.llm_buffer/)")
@click.option("--provider", "-p", default=None,
              type=click.Choice(PROVIDERS, case_sensitive=False), help="LLM provider")
@click.option("--model", "-m", default=None, help="Model identifier")
@click.option("--prompt", "prompt", default=None, help="Send one prompt and exit")
@click.option("--file", "-f", "file_path", default=None,
              type=click.Path(exists=True, dir_okay=False, path_type=Path),
              help="Markdown document to take the prompt from and append the answer to")
@click.option("--lines", "-l", default=None,
              help="Line range of --file to send, e.g. 3:7 (default: last non-empty line)")
@click.option("--verbose", "-v", is_flag=True, help="Verbose logging")
def main(config_path: str | None, provider: str | None, model: str | None,
         prompt: str | None, file_path: Path | None, lines: str | None,
         verbose: bool) -> None:
    """LLM Buffer - stream LLM answers into your terminal or a Markdown file."""
    if verbose:
        logging.basicConfig(level=logging.DEBUG)
    else:
        logging.basicConfig(level=logging.WARNING)

    try:
        config, config_file = load_config(config_path)
    except FileNotFoundError as e:
        raise click.ClickException(str(e)) from None
    if config_file:
        console.print(f"[dim]Config: {config_file}[/dim]")

    provider_config = config.provider_config(provider, model=model)
    code = asyncio.run(_run(config, provider_config, prompt, file_path, lines))
    raise SystemExit(code)


if __name__ == "__main__":
    main()

"""
Developer CLI: replay a captured model response through the tool parser.
"""
import sys
from typing import Any, Dict, Iterator, List, Optional, Tuple

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from toolstream.core.errors import SettingsError, ToolParseError
from toolstream.core.factory import ParserFactory
from toolstream.core.logging import configure_logging
from toolstream.core.interfaces import StreamHandler
from toolstream.protocol.orchestration.emitter import NdjsonEmitter


console = Console()
err_console = Console(stderr=True)
app = typer.Typer(
    name="toolstream",
    help="Replay model output through the tool-call stream parser.",
    add_completion=False,
)


def read_source(path: str) -> str:
    if path == "-":
        return sys.stdin.read()
    try:
        with open(path, "r", encoding="utf-8") as f:
            return f.read()
    except OSError as e:
        err_console.print(f"[bold red]Error:[/bold red] cannot read {escape(path)}: {escape(str(e))}")
        raise typer.Exit(2)


def iter_chunks(text: str, size: int) -> Iterator[str]:
    size = max(1, size)
    for i in range(0, len(text), size):
        yield text[i : i + size]


class ConsoleHandler(StreamHandler):
    """Prints a streaming element's content as it arrives."""

    def __init__(self, name: str, out: Console):
        self.name = name
        self.out = out
        self._started = False

    def stream(self, chunk: str, context: Optional[Any] = None) -> None:
        if not self._started:
            self.out.print(f"[bold cyan]<{self.name}>[/bold cyan] ", end="")
            self._started = True
        self.out.print(chunk, end="", markup=False, highlight=False)

    def finalize(self) -> None:
        if self._started:
            self.out.print()
        self._started = False


def _settings(
    log_level: Optional[str],
    strict_content: Optional[bool],
    emit_on_forced_close: Optional[bool],
) -> Tuple[ParserFactory, Any]:
    try:
        factory = ParserFactory()
    except SettingsError as e:
        err_console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
        raise typer.Exit(2)
    configure_logging(factory.config, level=log_level, handler=RichHandler(console=err_console, show_path=False))
    policy = factory.get_policy(strict_content=strict_content, emit_on_forced_close=emit_on_forced_close)
    return factory, policy


def _chunk_size(factory: ParserFactory, chunk_size: Optional[int]) -> int:
    if chunk_size is not None:
        return chunk_size
    return factory.config["cli"]["chunk_size"]


@app.command()
def parse(
    path: str = typer.Argument(..., help="File holding the raw model output, or '-' for stdin."),
    stream: Optional[List[str]] = typer.Option(
        None, "--stream", "-s", help="Tag to treat as a streaming element (repeatable). Defaults to settings."
    ),
    chunk_size: Optional[int] = typer.Option(None, "--chunk-size", "-c", help="Characters per push."),
    strict_content: Optional[bool] = typer.Option(
        None, "--strict-content/--lenient-content", help="Reject stray text inside buffered elements."
    ),
    emit_on_forced_close: Optional[bool] = typer.Option(
        None, "--emit-on-forced-close/--no-emit-on-forced-close", help="Report streaming elements closed by end of stream."
    ),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Override logging level."),
):
    """Parse tool elements, printing streamed content live and parsed tools as a table."""
    factory, policy = _settings(log_level, strict_content, emit_on_forced_close)
    tags = stream if stream else factory.get_streaming_tags()
    text = read_source(path)

    parsed: List[Tuple[str, Dict[str, str]]] = []
    handlers = {tag: ConsoleHandler(tag, console) for tag in tags}
    parser = factory.get_stream_parser(
        handlers,
        lambda name, params: parsed.append((name, params)),
        policy=policy,
    )

    try:
        for chunk in iter_chunks(text, _chunk_size(factory, chunk_size)):
            parser.push(chunk)
        parser.end()
    except ToolParseError as e:
        console.print(f"[bold red]Parse error ({e.kind.value}):[/bold red] {escape(str(e))}")
        raise typer.Exit(1)

    table = Table(title="Parsed tools")
    table.add_column("#", justify="right")
    table.add_column("Tool", style="green")
    table.add_column("Parameter", style="yellow")
    table.add_column("Value")
    for i, (name, params) in enumerate(parsed, start=1):
        if not params:
            table.add_row(str(i), name, "", "")
        for key, value in params.items():
            table.add_row(str(i), name, key, value)
    console.print(table)


@app.command()
def events(
    path: str = typer.Argument(..., help="File holding the raw model output, or '-' for stdin."),
    stream: Optional[List[str]] = typer.Option(None, "--stream", "-s", help="Streaming tag (repeatable)."),
    chunk_size: Optional[int] = typer.Option(None, "--chunk-size", "-c", help="Characters per feed."),
    strict_content: Optional[bool] = typer.Option(None, "--strict-content/--lenient-content"),
    emit_on_forced_close: Optional[bool] = typer.Option(None, "--emit-on-forced-close/--no-emit-on-forced-close"),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Override logging level."),
):
    """Print the raw parser events as NDJSON."""
    factory, policy = _settings(log_level, strict_content, emit_on_forced_close)
    parser = factory.get_event_parser(stream if stream else None, policy)
    emitter = NdjsonEmitter()
    text = read_source(path)

    failed = False
    for chunk in iter_chunks(text, _chunk_size(factory, chunk_size)):
        failed = _write_events(parser.feed(chunk), emitter)
        if failed:
            break
    if not failed:
        failed = _write_events(parser.finalize(), emitter)
    if failed:
        raise typer.Exit(1)


def _write_events(evts: List[Dict[str, Any]], emitter: NdjsonEmitter) -> bool:
    failed = False
    for evt in evts:
        sys.stdout.write(emitter.emit(evt).decode("utf-8"))
        if evt.get("type") == "error":
            failed = True
    sys.stdout.flush()
    return failed


if __name__ == "__main__":
    app()

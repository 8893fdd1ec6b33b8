"""
Main CLI interface for DropMind.

This module provides the Typer-based command-line interface with commands for:
- Classifying text or links and routing them to a content pipeline
- Cleaning raw dictation into structured text
- Dictating from an audio file through a capture session
- Listing the intent catalog
"""

import asyncio
import json
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional

import pyperclip
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from .core.capture import CaptureCallbacks, CaptureController
from .core.config import ConfigError, config, load_project_env
from .core.confirm import match_choice, route
from .core.debug_log import get_debug_logger
from .core.intent import INTENTS, get_alternatives
from .core.normalize import run_stages
from .core.progress import tracker
from .core.speech import NOT_SUPPORTED, SUPPORTED_AUDIO_EXTENSIONS, TRANSCRIPTION_FAILED, SpeechError, WhisperFileSource, get_audio_info, validate_audio_format
from .core.types import CaptureResult, EscalationDecision, Intent, RoutingDecision, StartOutcome, TranscriptUpdate

app = typer.Typer(
    name="dropmind",
    help="DropMind CLI - Drop text, links or dictation in and get it routed to the right pipeline",
    no_args_is_help=True,
)

console = Console()
logger = logging.getLogger(__name__)

DISMISS_ANSWERS = {"q", "quit", "n", "no", "dismiss"}
MAX_PROMPT_ATTEMPTS = 3


def _setup_debug(debug: bool) -> None:
    """CLI flag always overrides DM_DEBUG from the environment or .env."""
    if debug:
        os.environ["DM_DEBUG"] = "1"
        logging.basicConfig(level=logging.DEBUG, format="%(message)s", handlers=[RichHandler(console=console, show_path=False)])
    elif os.environ.get("DM_DEBUG") != "1":
        os.environ["DM_DEBUG"] = "0"


def _read_input(text: Optional[str], file: Optional[str]) -> str:
    """Resolve --text / --file into the input text, exiting on misuse."""
    if text and file:
        console.print("[bold red]Error:[/bold red] Cannot specify both --text and --file options")
        sys.exit(1)

    if not text and not file:
        console.print("[bold red]Error:[/bold red] Must specify either --text or --file option")
        sys.exit(1)

    if file:
        file_path = Path(file)
        if not file_path.exists():
            console.print(f"[bold red]Error:[/bold red] File not found: {file}")
            sys.exit(1)
        try:
            return file_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            console.print(f"[bold red]Error:[/bold red] Failed to read file '{file}': {e}")
            sys.exit(1)

    assert text is not None
    return text


def _copy_to_clipboard(text: str) -> None:
    try:
        pyperclip.copy(text)
    except pyperclip.PyperclipException as e:
        logger.debug("Clipboard unavailable: %s", e)


def _prompt_choice(decision: EscalationDecision) -> Optional[Intent]:
    """Ask the user to pick between the classified intent and its alternatives."""
    result = decision.result
    console.print(f"\n🤔 I think this is [bold]{result.intent.label}[/bold] [dim]({result.confidence:.0%}, {result.reason})[/dim]")
    for index, intent in enumerate(decision.options, 1):
        suffix = " [green](suggested)[/green]" if index == 1 else ""
        console.print(f"  {index}. {intent.label}{suffix}")

    for _ in range(MAX_PROMPT_ATTEMPTS):
        answer = typer.prompt("Pick an option (number or name, q to dismiss)", default="1")
        if answer.strip().lower() in DISMISS_ANSWERS:
            return None
        choice = match_choice(answer, decision.options)
        if choice is not None:
            return choice
        console.print(f"[yellow]'{answer}' does not match any option[/yellow]")

    return None


def _display_routing(decision: RoutingDecision, output_format: str) -> None:
    """Display a routing decision in the requested format."""
    if output_format == "json":
        output = decision.model_dump()
        output["alternatives"] = [intent.key for intent in get_alternatives(decision.result)]
        console.print_json(json.dumps(output, ensure_ascii=False))
        return

    result = decision.result
    table = Table(show_header=False, box=None)
    table.add_column("Key", style="cyan")
    table.add_column("Value", style="white")
    table.add_row("Intent", f"[{result.intent.color_hint}]{result.intent.label}[/]")
    table.add_row("Confidence", f"{result.confidence:.2f}")
    table.add_row("Level", str(result.level))
    table.add_row("Reason", result.reason)
    table.add_row("Pipeline", decision.pipeline_id or "[yellow]not dispatched[/yellow]")
    if decision.confirmed:
        table.add_row("Confirmed", "Yes")

    console.print("\n[bold blue]Routing:[/bold blue]")
    console.print(table)


@app.command()
def classify(
    text: Optional[str] = typer.Option(None, "--text", "-t", help="Text or link to classify"),
    file: Optional[str] = typer.Option(None, "--file", help="Path to file containing the input"),
    output_format: str = typer.Option("rich", "--format", "-f", help="Output format (rich, json)"),
    confirm: bool = typer.Option(True, "--confirm/--no-confirm", help="Ask for confirmation when the classification is uncertain"),
    debug: bool = typer.Option(False, "--debug", help="Enable debug logging and timing output"),
):
    """
    Classify an input and pick the pipeline it should be routed to.

    Examples:
        dropmind classify --text "https://www.youtube.com/watch?v=dQw4w9WgXcQ"
        dropmind classify --file notes.txt --format json --no-confirm
    """
    _setup_debug(debug)
    load_project_env()
    content = _read_input(text, file)

    decision = route(content, chooser=_prompt_choice if confirm else None)
    if decision is None:
        console.print("[yellow]Nothing to classify: input is empty[/yellow]")
        return

    _display_routing(decision, output_format)


@app.command()
def clean(
    text: Optional[str] = typer.Option(None, "--text", "-t", help="Raw transcript text"),
    file: Optional[str] = typer.Option(None, "--file", help="Path to file containing the raw transcript"),
    output_format: str = typer.Option("rich", "--format", "-f", help="Output format (rich, plain)"),
    stages: bool = typer.Option(False, "--stages", help="Show the text after every normalization stage"),
    debug: bool = typer.Option(False, "--debug", help="Enable debug logging and timing output"),
):
    """
    Clean a raw transcript: drop fillers, resolve self-corrections, fix punctuation and add structure.

    Examples:
        dropmind clean --text "um so like first we ship then we measure"
        dropmind clean --file transcript.txt --stages
    """
    _setup_debug(debug)
    raw = _read_input(text, file)
    trace = run_stages(raw)
    cleaned = trace[-1][1] if trace else ""

    debug_logger = get_debug_logger()
    if debug_logger.is_enabled():
        debug_logger.log_cleaning_trace(raw, trace)

    if output_format == "plain":
        console.print(cleaned, markup=False, highlight=False)
    else:
        if stages:
            stage_table = Table(title="Normalization stages")
            stage_table.add_column("Stage", style="cyan")
            stage_table.add_column("Text", style="white")
            for name, stage_text in trace:
                stage_table.add_row(name, stage_text)
            console.print(stage_table)
        console.print(Panel(cleaned or "[dim](empty)[/dim]", title="Cleaned", border_style="green"))

    if cleaned:
        _copy_to_clipboard(cleaned)


async def _capture(source: WhisperFileSource, silence_timeout: float, on_update) -> Optional[CaptureResult]:
    """Run one capture session to completion, returning None if it was abandoned."""
    loop = asyncio.get_running_loop()
    finished: "asyncio.Future[Optional[CaptureResult]]" = loop.create_future()
    controller = CaptureController(silence_timeout=silence_timeout)

    def on_complete(result: CaptureResult) -> None:
        if not finished.done():
            finished.set_result(result)

    def on_error(code: str) -> None:
        console.print(f"[yellow]Speech recognition error:[/yellow] {code}")
        if code in (NOT_SUPPORTED, TRANSCRIPTION_FAILED):
            controller.cancel()
            if not finished.done():
                finished.set_result(None)

    outcome, session = controller.start(source, CaptureCallbacks(on_update=on_update, on_complete=on_complete, on_error=on_error))
    if outcome is not StartOutcome.STARTED or session is None:
        raise SpeechError(f"Could not start capture: {outcome.value}")

    exhausted = loop.create_task(source.exhausted.wait())
    try:
        await asyncio.wait({finished, exhausted}, return_when=asyncio.FIRST_COMPLETED)
        # Nothing was said: the silence timer only closes sessions with text
        if not finished.done() and not session.final_text.strip():
            return None
        return await finished
    finally:
        exhausted.cancel()
        controller.cancel()
        await session.wait_closed()


@app.command()
def dictate(
    path: str = typer.Argument(..., help="Path to audio file"),
    silence_ms: Optional[int] = typer.Option(None, "--silence-ms", help="Silence in ms before the capture stops (default: DM_SILENCE_TIMEOUT_MS or 3000)"),
    confirm: bool = typer.Option(True, "--confirm/--no-confirm", help="Ask for confirmation when the classification is uncertain"),
    output_format: str = typer.Option("rich", "--format", "-f", help="Output format (rich, json)"),
    debug: bool = typer.Option(False, "--debug", help="Enable debug logging and timing output"),
):
    """
    Dictate from an audio file: transcribe with Whisper, clean the transcript and route it.

    Examples:
        dropmind dictate memo.m4a
        dropmind dictate memo.wav --silence-ms 1500 --no-confirm
    """
    _setup_debug(debug)
    if silence_ms is not None and silence_ms <= 0:
        console.print("[bold red]Error:[/bold red] --silence-ms must be positive")
        sys.exit(1)

    try:
        with tracker.track(console, "Checking audio file…"):
            if not Path(path).exists():
                console.print(f"[bold red]Error:[/bold red] Audio file not found: {path}")
                sys.exit(1)

            if not validate_audio_format(path):
                console.print(f"[bold red]Error:[/bold red] Unsupported audio format: {Path(path).suffix}")
                console.print(f"Supported formats: {', '.join(sorted(SUPPORTED_AUDIO_EXTENSIONS))}")
                sys.exit(1)

            audio_info = get_audio_info(path)
            source = WhisperFileSource(path)
            source.validate()
            if not source.is_available():
                raise ConfigError("OPENAI_API_KEY not found. Set it via environment, DM_ENV_FILE, or .dropmind/.env.")
            tracker.note(f"{audio_info['name']} ({audio_info['size_mb']} MB)")

            silence_timeout = silence_ms / 1000.0 if silence_ms is not None else config.silence_timeout

            def on_update(update: TranscriptUpdate) -> None:
                tracker.update(f"Listening… {update.cleaned[-60:]}")

            tracker.advance("Transcribing and listening…")
            result = asyncio.run(_capture(source, silence_timeout, on_update))
            tracker.finish()
            if result is not None:
                tracker.note(f"{len(result.chunks)} segments over {result.duration:.1f}s")

        if result is None or not result.cleaned:
            console.print("[yellow]No speech captured[/yellow]")
            return

        console.print(Panel(result.cleaned, title="Cleaned transcript", border_style="green"))
        _copy_to_clipboard(result.cleaned)

        decision = route(result.cleaned, chooser=_prompt_choice if confirm else None)
        if decision is not None:
            _display_routing(decision, output_format)

    except (ConfigError, SpeechError, FileNotFoundError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        sys.exit(1)


@app.command()
def intents(
    output_format: str = typer.Option("rich", "--format", "-f", help="Output format (rich, json)"),
):
    """List the intents DropMind can route to."""
    catalog: List[Intent] = list(INTENTS.values())

    if output_format == "json":
        console.print_json(json.dumps([intent.model_dump() for intent in catalog], ensure_ascii=False))
        return

    table = Table(title="Intents")
    table.add_column("Key", style="cyan")
    table.add_column("Label")
    table.add_column("Pipeline", style="white")
    table.add_column("Color", style="dim")
    for intent in catalog:
        table.add_row(intent.key, f"[{intent.color_hint}]{intent.label}[/]", intent.pipeline_id, intent.color_hint)
    console.print(table)


if __name__ == "__main__":
    app()

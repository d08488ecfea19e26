"""
Typer CLI for learnchain.

Commands:
    learnchain                  - Interactive hub (pick a session, take quizzes)
    learnchain hub              - Same as above
    learnchain set-key VALUE    - Store the OpenAI API key
    learnchain events PATH      - Show the normalized event timeline of a log
    learnchain concepts PATH    - Show the concepts extracted from a log

Usage:
    learnchain --help
    learnchain events ~/.codex/sessions/2025/10/01/rollout-abc.jsonl
    learnchain concepts ~/.claude/projects/my-app/1234.jsonl --tool claude_code
"""

from __future__ import annotations

import sys
from pathlib import Path

import typer
from loguru import logger
from rich.console import Console

from config import Settings, config_file_path, get_settings, mask_secret, save_settings
from learnchain.concepts.extractor import ConceptExtractor
from learnchain.errors import ConfigError, LearnchainError
from learnchain.sessions.loader import load_session
from learnchain.sessions.models import Session, ToolOrigin
from learnchain.views.render import concepts_table, events_table

console = Console()

app = typer.Typer(
    help="learnchain: turn your AI coding sessions into quizzes",
    no_args_is_help=False,  # Allow running without args for interactive mode
    invoke_without_command=True,
)


@app.callback()
def main_callback(ctx: typer.Context):
    """
    Learn from your Codex CLI and Claude Code sessions.

    Run without arguments to open the interactive hub.
    """
    if ctx.invoked_subcommand is None:
        from learnchain.cli.hub import run_hub

        run_hub()


@app.command("hub")
def hub():
    """Open the interactive hub."""
    from learnchain.cli.hub import run_hub

    run_hub()


@app.command("set-key")
def set_key(
    value: str = typer.Argument(..., help="OpenAI API key to store"),
):
    """Store the OpenAI API key in the config file."""
    key = value.strip()
    if not key:
        console.print("[red]API key cannot be empty.[/red]")
        raise typer.Exit(1)

    try:
        save_settings({"openai_api_key": key})
    except ConfigError as e:
        console.print(f"[red]Failed to save API key:[/red] {e}")
        raise typer.Exit(1)

    console.print(f"[green]Saved API key {mask_secret(key)} to {config_file_path()}[/green]")


@app.command("events")
def events(
    path: Path = typer.Argument(..., help="Session log file (.jsonl)"),
    tool: str | None = typer.Option(None, "--tool", "-t", help="codex or claude_code (default: auto-detect)"),
    hide_noise: bool = typer.Option(False, "--hide-noise", help="Hide sandbox failure output"),
):
    """Show the normalized event timeline of a session log."""
    session = _load_or_exit(path, tool)
    console.print(events_table(session, show_noise=not hide_noise))


@app.command("concepts")
def concepts(
    path: Path = typer.Argument(..., help="Session log file (.jsonl)"),
    tool: str | None = typer.Option(None, "--tool", "-t", help="codex or claude_code (default: auto-detect)"),
    look_back: int | None = typer.Option(None, "--look-back", help="Override look_back_events"),
    min_chars: int | None = typer.Option(None, "--min-chars", help="Override min_concept_chars"),
):
    """Show the concepts extracted from a session log."""
    settings = get_settings()
    session = _load_or_exit(path, tool)
    extractor = ConceptExtractor(
        look_back_events=look_back or settings.look_back_events,
        min_concept_chars=min_chars or settings.min_concept_chars,
        max_concepts=settings.max_concepts,
    )
    found = extractor.extract(session)
    if not found:
        console.print("[yellow]Nothing to review in this session.[/yellow]")
        return
    console.print(concepts_table(found))


def _load_or_exit(path: Path, tool: str | None) -> Session:
    origin = None
    if tool is not None:
        try:
            origin = ToolOrigin.parse(tool)
        except ValueError:
            console.print(f"[red]Unknown tool '{tool}'. Use codex or claude_code.[/red]")
            raise typer.Exit(2)

    try:
        return load_session(path, origin)
    except LearnchainError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)


def configure_logging(settings: Settings) -> None:
    """Console sink at the configured level, plus a debug file sink."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=settings.log_level,
        format="<level>{message}</level>",
    )
    if settings.log_file:
        Path(settings.log_file).parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            settings.log_file,
            level="DEBUG",
            rotation="1 MB",
            retention=3,
            format="{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} | {message}",
        )


def main() -> None:
    """Entry point for the CLI."""
    configure_logging(get_settings())
    app()


if __name__ == "__main__":
    main()

"""
vidtag CLI - Main entry point using Typer.

This module configures the main Typer application, registers all command groups,
and defines global options like --version and --verbose.
"""

from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.traceback import install

from .commands import audit, caps, config, diag, preset, tag
from .core.logging_util import setup_logging

# Install a rich traceback handler for readable exceptions
install(show_locals=False)

console = Console()

app = typer.Typer(
    name="vtag",
    help="🎬 vidtag - Batch-edit metadata on video files, with external-tool fallback.",
    epilog="Use `vtag [COMMAND] --help` for more info on a specific command.",
    no_args_is_help=True,
    pretty_exceptions_enable=False,  # Disable Typer's default handler to use Rich's
)

app.add_typer(
    tag.app, name="tag", help="🏷️ Apply, inspect and restore metadata on video files."
)
app.add_typer(
    caps.app,
    name="caps",
    help="📋 Inspect the container/field capability matrix.",
)
app.add_typer(
    preset.app, name="preset", help="💾 Manage named field-edit presets."
)
app.add_typer(
    config.app,
    name="config",
    help="⚙️ View and change settings.",
)
app.add_typer(
    diag.app, name="diag", help="🩺 Diagnostics for local tools."
)
app.add_typer(
    audit.app, name="audit", help="📜 Inspect the write audit log."
)


def _version_callback(value: bool):
    if value:
        from . import __version__

        console.print(f"vidtag v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None,  # Use None as the default for a pure flag
        "--version",
        "-v",
        help="Show the application version and exit.",
        callback=_version_callback,
        is_eager=True,  # Runs before the missing-command check
    ),
    verbose: bool = typer.Option(None, "--verbose", help="Enable DEBUG-level logging."),
    quiet: bool = typer.Option(
        None, "--quiet", help="Reduce logging to warnings and errors."
    ),
    json_logs: bool = typer.Option(
        False, "--json-logs", help="Emit logs as JSON lines to stdout."
    ),
    log_file: Optional[Path] = typer.Option(
        None, "--log-file", help="Also write log records to this file."
    ),
):
    """
    vidtag CLI - batch video metadata editing.
    """
    # Configure logging once, early
    setup_logging(
        json_logs=json_logs, verbose=bool(verbose), quiet=bool(quiet), log_file=log_file
    )
    if verbose:
        console.print("[yellow]Verbose logging enabled.[/yellow]")


def cli():
    """Main entry point for the console script defined in pyproject.toml."""
    try:
        app()
    except KeyboardInterrupt:
        console.print("\n[yellow]👋 Operation cancelled by user.[/yellow]")
        raise typer.Exit(130)
    except Exception as e:
        console.print(f"[bold red]An unexpected error occurred:[/bold red] {e}")
        raise typer.Exit(1)


if __name__ == "__main__":
    cli()

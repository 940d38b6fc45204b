"""
Configuration commands for vidtag (`vtag config`).

View the merged settings, change a single key, and reset to defaults.
"""

import json
from typing import Any

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.prompt import Confirm

from ..core.config import (
    USER_SETTINGS_FILE,
    VidtagSettings,
    create_default_settings,
    get_settings,
    reset_settings,
    save_settings,
)

console = Console()
app = typer.Typer(
    no_args_is_help=True,
    help="View and change settings.",
)

_NULL_WORDS = ("", "none", "null")


def _coerce(key: str, raw: str) -> Any:
    """Turn a command-line string into something the settings model accepts."""
    field = VidtagSettings.model_fields[key]
    if field.default is None and raw.strip().lower() in _NULL_WORDS:
        return None
    annotation = str(field.annotation)
    if annotation.startswith("list"):
        return [part.strip() for part in raw.split(",") if part.strip()]
    return raw


@app.command("show")
def config_show(
    json_output: bool = typer.Option(False, "--json", help="Output raw JSON to stdout"),
):
    """Display the current configuration."""
    settings = get_settings()
    data = settings.model_dump(mode="json")
    data["resolved"] = {
        "audit_log_path": str(settings.resolved_audit_log_path),
        "report_dir": str(settings.resolved_report_dir),
        "presets_path": str(settings.resolved_presets_path),
    }
    if json_output:
        typer.echo(json.dumps(data))
        return

    console.print("[bold]Current Configuration[/bold]")
    resolved = data.pop("resolved")
    for key, value in data.items():
        console.print(f"  {key}: [blue]{value}[/blue]")
    console.print("\n[bold]Resolved paths:[/bold]")
    for key, value in resolved.items():
        console.print(f"  {key}: [blue]{value}[/blue]")
    console.print(f"\nUser settings file: [blue]{USER_SETTINGS_FILE}[/blue]")


@app.command("set")
def config_set(
    key: str = typer.Argument(..., help="Setting name, e.g. exiftool_path"),
    value: str = typer.Argument(..., help="New value (comma-separated for lists)"),
):
    """Change one setting and persist it."""
    key = key.strip().lower().replace("-", "_")
    if key not in VidtagSettings.model_fields:
        console.print(f"[red]Unknown setting:[/red] {key}")
        raise typer.Exit(2)

    settings = get_settings().model_copy()
    try:
        setattr(settings, key, _coerce(key, value))
    except ValidationError as e:
        console.print(f"[red]Invalid value for {key}:[/red] {e.errors()[0].get('msg', e)}")
        raise typer.Exit(2)

    target = save_settings(settings)
    console.print(f"{key} = [blue]{getattr(settings, key)}[/blue]")
    console.print(f"[green]✅ Settings saved to {target}.[/green]")


@app.command("reset")
def config_reset(
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
):
    """Reset all settings to their defaults."""
    if not yes and not Confirm.ask("Reset all settings to defaults?", default=False):
        console.print("Operation cancelled.")
        return
    reset_settings()
    target = save_settings(create_default_settings())
    console.print(f"[green]✅ Settings reset and saved to {target}.[/green]")

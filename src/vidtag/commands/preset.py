"""
Preset commands for vidtag (`vtag preset`).

Presets are named sets of field values; only their checked fields are
applied by `vtag tag apply --preset`.
"""

from typing import List, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from ..core.config import get_settings
from ..core.errors import PresetError
from ..core.models import FieldKey, Preset
from ..core.presets import PresetStore
from .tag import parse_assignments

console = Console()
app = typer.Typer(no_args_is_help=True, help="Manage named field-edit presets.")


def _store() -> PresetStore:
    return PresetStore(get_settings().resolved_presets_path)


@app.command("list")
def preset_list():
    """List saved presets."""
    presets = _store().get_all()
    if not presets:
        console.print("[yellow]No presets saved.[/yellow]")
        return
    table = Table(title="Presets")
    table.add_column("Name")
    table.add_column("Fields")
    for p in presets:
        table.add_row(p.name, ", ".join(sorted(p.checked_fields)))
    console.print(table)


@app.command("show")
def preset_show(name: str = typer.Argument(..., help="Preset name")):
    """Show the values stored in a preset."""
    try:
        preset = _store().get(name)
    except PresetError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(1)
    table = Table(title=preset.name)
    table.add_column("Field")
    table.add_column("Value", overflow="fold")
    table.add_column("Checked")
    for field_name, value in preset.values.items():
        table.add_row(field_name, value, "x" if field_name in preset.checked_fields else "")
    console.print(table)


@app.command("save")
def preset_save(
    name: str = typer.Argument(..., help="Preset name (replaces an existing one)"),
    assignments: List[str] = typer.Option(
        [], "--set", "-s", help="FIELD=VALUE to store (repeatable)"
    ),
    unchecked: Optional[List[str]] = typer.Option(
        None, "--uncheck", help="Store a field's value but leave it out of apply runs"
    ),
):
    """Save field values under a name."""
    if not name.strip():
        console.print("[red]Preset name must not be empty[/red]")
        raise typer.Exit(2)
    values = parse_assignments(assignments)
    if not values:
        console.print("[yellow]Nothing to save: pass --set FIELD=VALUE.[/yellow]")
        raise typer.Exit(2)

    normalized = {}
    for raw_key, value in values.items():
        key = FieldKey.parse(raw_key)
        if key is None:
            console.print(f"[red]Unknown field: {raw_key}[/red]")
            raise typer.Exit(2)
        normalized[key.value] = value
    skip = {k.value for k in (FieldKey.parse(u) for u in unchecked or []) if k}
    preset = Preset(name.strip(), normalized, set(normalized) - skip)

    if not _store().add_or_replace(preset):
        console.print("[red]Could not save preset.[/red]")
        raise typer.Exit(1)
    console.print(f"[green]Saved preset[/green] {preset.name}")


@app.command("delete")
def preset_delete(name: str = typer.Argument(..., help="Preset name")):
    """Delete a preset."""
    if not _store().remove(name):
        console.print(f"[red]No preset named {name!r} (or it could not be saved).[/red]")
        raise typer.Exit(1)
    console.print(f"[green]Deleted preset[/green] {name}")

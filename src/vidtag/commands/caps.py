"""
Capability matrix commands for vidtag (`vtag caps`).
"""

import json
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.table import Table

from ..core.capability import CapabilityService, normalize_extension, visibility_table
from ..core.config import get_settings
from ..core.external import CONTAINER_TOOLS
from ..core.files import collect_files
from ..core.models import FieldKey, SupportLevel

console = Console()
app = typer.Typer(no_args_is_help=True, help="Inspect the container/field capability matrix.")

_LEVEL_STYLE = {
    SupportLevel.SUPPORTED: "green",
    SupportLevel.PARTIAL: "yellow",
    SupportLevel.UNSUPPORTED: "red",
}


def _service() -> CapabilityService:
    return CapabilityService(get_settings().capability_matrix_path)


@app.command("fields")
def caps_fields(
    files: List[Path] = typer.Argument(..., help="Video files or folders"),
    show_hidden: Optional[bool] = typer.Option(
        None, "--show-hidden/--hide-unsupported", help="Keep fields no selected file supports"
    ),
    json_out: bool = typer.Option(False, "--json", help="Output machine-readable JSON"),
):
    """Which fields are editable for this selection of files."""
    settings = get_settings()
    targets = collect_files(files, settings.supported_extensions)
    hidden = settings.show_hidden_fields if show_hidden is None else show_hidden
    rows = visibility_table(targets, _service().matrix, hidden)

    if json_out:
        typer.echo(
            json.dumps(
                [
                    {
                        "field": r.field.value,
                        "enabled": r.enabled,
                        "tooltip": r.tooltip,
                        "supported": r.supported,
                        "total": r.total,
                    }
                    for r in rows
                ]
            )
        )
        return

    table = Table(title=f"Fields for {len(targets)} file(s)")
    table.add_column("Field")
    table.add_column("Editable")
    table.add_column("Support")
    for r in rows:
        if not r.enabled and not hidden:
            continue
        table.add_row(r.field.label, "yes" if r.enabled else "[dim]no[/dim]", r.tooltip)
    console.print(table)


@app.command("show")
def caps_show(
    ext: Optional[str] = typer.Option(None, "--ext", help="Only this container, e.g. mp4"),
):
    """Print the capability matrix."""
    matrix = _service().matrix
    if not matrix.loaded:
        console.print("[yellow]No capability matrix loaded; every field will be attempted.[/yellow]")
        raise typer.Exit(1)

    formats = [normalize_extension(ext)] if ext else matrix.formats()
    table = Table(title="Capability matrix")
    table.add_column("Field")
    for name in formats:
        table.add_column(name)
    for key in FieldKey:
        cells = []
        for name in formats:
            level = matrix.get_support(name, key)
            style = _LEVEL_STYLE[level]
            cells.append(f"[{style}]{level.value}[/{style}]")
        table.add_row(key.value, *cells)
    console.print(table)

    order = [name.strip().lower() for name in get_settings().external_tool_order]
    for name in formats:
        tool = CONTAINER_TOOLS.get(name)
        if tool and tool not in order:
            console.print(
                f"[yellow]Note:[/yellow] .{name} fields marked Partial can only be written by {tool}, "
                "which is not in external_tool_order. Enable it with "
                f"`vtag config set external_tool_order {','.join(order + [tool])}`."
            )


@app.command("path")
def caps_path():
    """Print where the capability matrix is loaded from."""
    service = _service()
    state = "loaded" if service.matrix.loaded else "[red]not loaded[/red]"
    console.print(f"{service.path} ({state})")

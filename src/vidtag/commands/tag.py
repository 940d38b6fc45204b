"""
Tag commands for vidtag (`vtag tag`).

Apply field edits to a batch of video files, inspect current tags, strip a
substring from a field, and restore files from their backups.
"""

import json
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import typer
from rich.console import Console
from rich.markup import escape
from rich.prompt import Confirm
from rich.table import Table

from ..core.audit import write_batch_report
from ..core.backup import restore_backup
from ..core.capability import CapabilityService
from ..core.config import get_settings
from ..core.errors import BackupError, PresetError
from ..core.files import collect_files
from ..core.models import FieldKey, FieldStatus, FileReport, build_edits, file_extension
from ..core.orchestrator import ApplyOptions, WriteOrchestrator
from ..core.presets import PresetStore
from ..core.tagging import REMOVABLE_FIELDS, read_tags

console = Console()
app = typer.Typer(
    no_args_is_help=True,
    help="Apply, inspect and restore metadata on video files.",
)

_STATUS_STYLE = {
    FieldStatus.SUCCESS: "green",
    FieldStatus.PREVIEW: "cyan",
    FieldStatus.PARTIAL: "yellow",
    FieldStatus.UNSUPPORTED: "magenta",
    FieldStatus.FAILED: "red",
}

_OK_STATUSES = (FieldStatus.SUCCESS, FieldStatus.PREVIEW)


def parse_assignments(items: Sequence[str]) -> Dict[str, str]:
    """Turn repeated FIELD=VALUE options into a dict. The value may be empty."""
    values: Dict[str, str] = {}
    for item in items:
        if "=" not in item:
            raise typer.BadParameter(f"Expected FIELD=VALUE, got {item!r}")
        key, value = item.split("=", 1)
        values[key.strip()] = value
    return values


def _collect_or_exit(files: List[Path]) -> List[Path]:
    settings = get_settings()
    targets = collect_files(files, settings.supported_extensions)
    if not targets:
        console.print("[yellow]No supported video files found.[/yellow]")
        raise typer.Exit(0)
    return targets


def _confirm_batch(count: int, yes: bool) -> None:
    limit = get_settings().max_batch_default
    if yes or count <= limit:
        return
    if not Confirm.ask(f"Modify {count} files (more than {limit})?"):
        console.print("[yellow]Aborted.[/yellow]")
        raise typer.Exit(1)


def _print_reports(reports: Sequence[FileReport], title: str) -> None:
    table = Table(title=title)
    table.add_column("File")
    table.add_column("Status")
    table.add_column("Message", overflow="fold")
    for report in reports:
        result = report.write_result
        status = report.status or FieldStatus.FAILED
        style = _STATUS_STYLE.get(status, "white")
        table.add_row(
            escape(Path(report.file_path).name),
            f"[{style}]{status.value}[/{style}]",
            escape(result.message) if result else "",
        )
        for name, field_result in report.fields.items():
            if field_result is result or field_result.status in _OK_STATUSES:
                continue
            table.add_row("", f"  {name}", escape(f"{field_result.status.value}: {field_result.message}"))
    console.print(table)


def _finish(
    reports: Sequence[FileReport],
    *,
    title: str,
    preview: bool,
    report_dir: Optional[Path],
    json_out: bool,
) -> None:
    report_path = None
    if not preview:
        out_dir = report_dir or get_settings().resolved_report_dir
        try:
            report_path = write_batch_report(reports, out_dir)
        except OSError as e:
            console.print(f"[yellow]Could not write batch report:[/yellow] {e}")

    if json_out:
        payload = {
            "report": str(report_path) if report_path else None,
            "files": [r.to_dict() for r in reports],
        }
        typer.echo(json.dumps(payload, ensure_ascii=False))
    else:
        _print_reports(reports, title)
        if report_path:
            console.print(f"Report: [blue]{report_path}[/blue]")

    failed = [r for r in reports if r.status not in _OK_STATUSES]
    raise typer.Exit(1 if failed else 0)


@app.command("apply")
def tag_apply(
    files: List[Path] = typer.Argument(..., help="Video files or folders to tag"),
    assignments: List[str] = typer.Option(
        [], "--set", "-s", help="FIELD=VALUE to write (repeatable). Empty value clears."
    ),
    preset_name: Optional[str] = typer.Option(
        None, "--preset", "-p", help="Start from the checked fields of a saved preset"
    ),
    backup: Optional[bool] = typer.Option(
        None, "--backup/--no-backup", help="Copy each file once before its first write"
    ),
    preview: bool = typer.Option(
        False, "--preview", help="Show what would change without modifying files"
    ),
    allow_experimental: bool = typer.Option(
        False,
        "--allow-experimental",
        help="Attempt fields the capability matrix marks Unsupported",
    ),
    workers: int = typer.Option(1, "--workers", min=1, help="Files processed in parallel"),
    report_dir: Optional[Path] = typer.Option(
        None, "--report-dir", help="Where to write the batch JSON report"
    ),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
    json_out: bool = typer.Option(False, "--json", help="Output machine-readable JSON"),
):
    """Write field values to every file, with capability gating and fallback."""
    settings = get_settings()

    values: Dict = {}
    try:
        if preset_name:
            store = PresetStore(settings.resolved_presets_path)
            values.update(store.get(preset_name).edits())
        values.update(build_edits(parse_assignments(assignments)))
    except (PresetError, ValueError) as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(2)
    if not values:
        console.print("[yellow]Nothing to apply: pass --set FIELD=VALUE or --preset NAME.[/yellow]")
        raise typer.Exit(2)

    targets = _collect_or_exit(files)
    if not preview:
        _confirm_batch(len(targets), yes)

    options = ApplyOptions.from_settings(
        settings,
        create_backup=backup,
        preview=preview,
        allow_experimental=allow_experimental or None,
        workers=workers,
    )
    reports = WriteOrchestrator.from_settings(settings).apply(targets, values, options)
    _finish(
        reports,
        title="Preview" if preview else "Apply results",
        preview=preview,
        report_dir=report_dir,
        json_out=json_out,
    )


@app.command("show")
def tag_show(
    file: Path = typer.Argument(..., help="Video file to inspect"),
    json_out: bool = typer.Option(False, "--json", help="Output machine-readable JSON"),
):
    """Print the tags the primary backend can read, with field support."""
    if not file.exists():
        console.print(f"[red]File not found:[/red] {file}")
        raise typer.Exit(1)
    tags = read_tags(file)
    if json_out:
        typer.echo(json.dumps(tags, ensure_ascii=False))
        return

    settings = get_settings()
    service = CapabilityService(settings.capability_matrix_path)
    ext = file_extension(file)
    table = Table(title=file.name)
    table.add_column("Field")
    table.add_column("Value", overflow="fold")
    table.add_column("Support")
    for key in FieldKey:
        support = service.get_support(ext, key) if service.matrix.loaded else None
        table.add_row(key.label, tags.get(key.value, ""), support.value if support else "-")
    console.print(table)
    if not tags:
        console.print("[yellow]No readable tags (unsupported container or unreadable file).[/yellow]")


@app.command("remove-substring")
def tag_remove_substring(
    files: List[Path] = typer.Argument(..., help="Video files or folders"),
    field: str = typer.Option("Title", "--field", "-f", help="Field to edit"),
    substring: str = typer.Option(..., "--substring", help="Text to remove (case-insensitive)"),
    backup: Optional[bool] = typer.Option(
        None, "--backup/--no-backup", help="Copy each file once before its first write"
    ),
    preview: bool = typer.Option(False, "--preview", help="Do not modify files"),
    workers: int = typer.Option(1, "--workers", min=1, help="Files processed in parallel"),
    report_dir: Optional[Path] = typer.Option(
        None, "--report-dir", help="Where to write the batch JSON report"
    ),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
    json_out: bool = typer.Option(False, "--json", help="Output machine-readable JSON"),
):
    """Remove every occurrence of a substring from one field."""
    key = FieldKey.parse(field)
    if key not in REMOVABLE_FIELDS:
        allowed = ", ".join(k.value for k in REMOVABLE_FIELDS)
        console.print(f"[red]Field must be one of: {allowed}[/red]")
        raise typer.Exit(2)
    if not substring:
        console.print("[red]--substring must not be empty[/red]")
        raise typer.Exit(2)

    settings = get_settings()
    targets = _collect_or_exit(files)
    if not preview:
        _confirm_batch(len(targets), yes)

    options = ApplyOptions.from_settings(
        settings, create_backup=backup, preview=preview, workers=workers
    )
    reports = WriteOrchestrator.from_settings(settings).remove_substring(
        targets, key, substring, options
    )
    _finish(
        reports,
        title=f"Remove {substring!r} from {key.value}",
        preview=preview,
        report_dir=report_dir,
        json_out=json_out,
    )


@app.command("restore")
def tag_restore(
    backups: List[Path] = typer.Argument(..., help="Backup files to copy back over their originals"),
):
    """Restore original files from their backups."""
    suffix = get_settings().backup_suffix
    failures = 0
    for backup in backups:
        try:
            original = restore_backup(backup, suffix)
            console.print(f"[green]Restored[/green] {original}")
        except BackupError as e:
            failures += 1
            console.print(f"[red]{escape(str(e))}[/red]")
    if failures:
        raise typer.Exit(1)

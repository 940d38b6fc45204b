"""
Audit log commands for vidtag (`vtag audit`).
"""

import json

import typer
from rich.console import Console
from rich.table import Table

from ..core.audit import JsonlAuditLog
from ..core.config import get_settings

console = Console()
app = typer.Typer(no_args_is_help=True, help="Inspect the write audit log.")


@app.command("tail")
def audit_tail(
    limit: int = typer.Option(20, "-n", "--lines", min=1, help="How many records to show"),
    json_out: bool = typer.Option(False, "--json", help="Output raw JSON lines"),
):
    """Show the most recent audit records."""
    log = JsonlAuditLog(get_settings().resolved_audit_log_path)
    records = log.tail(limit)
    if json_out:
        for record in records:
            typer.echo(json.dumps(record, ensure_ascii=False))
        return
    if not records:
        console.print(f"[yellow]No audit records in {log.path}[/yellow]")
        return

    table = Table(title=str(log.path))
    table.add_column("Time")
    table.add_column("Operation")
    table.add_column("File", overflow="fold")
    table.add_column("Result")
    for record in records:
        write = (record.get("results") or {}).get("Write") or {}
        table.add_row(
            str(record.get("timestamp", "")),
            str(record.get("operation", "")),
            str(record.get("file_path", "")),
            f"{write.get('status', '?')} {write.get('message', '')}".strip(),
        )
    console.print(table)

"""
Diagnostics commands for vidtag (`vtag diag`).

Quick checks to validate local tooling.
"""

import json

import mutagen
import typer
from rich.console import Console

from ..core.capability import CapabilityService
from ..core.config import get_settings
from ..core.external import KNOWN_TOOLS, build_tools, probe_tool

console = Console()
app = typer.Typer(no_args_is_help=True, help="Run diagnostics for local tools.")


@app.command("tools")
def diag_tools(
    json_out: bool = typer.Option(
        False, "--json", help="Output machine-readable JSON"
    ),
):
    """Check presence of the external tag writers and the capability matrix."""
    settings = get_settings()
    enabled = {name.strip().lower() for name in settings.external_tool_order}

    report: dict[str, object] = {
        "mutagen": {"ok": True, "version": mutagen.version_string},
        "tools": {},
    }
    for tool in build_tools(settings, order=KNOWN_TOOLS):
        probe = probe_tool(tool)
        report["tools"][tool.name] = {
            "ok": probe.found,
            "enabled": tool.name in enabled,
            "executable": probe.executable,
            "path": probe.path,
            "version": probe.version,
        }
        if not json_out:
            state = "OK" if probe.found else "MISSING"
            suffix = "" if tool.name in enabled else " (not in external_tool_order)"
            console.print(
                f"{tool.display_name}: {state}{(' - ' + probe.version) if probe.version else ''}{suffix}"
            )

    service = CapabilityService(settings.capability_matrix_path)
    report["capability_matrix"] = {
        "ok": service.matrix.loaded,
        "path": str(service.path),
        "formats": service.matrix.formats(),
    }
    if json_out:
        typer.echo(json.dumps(report))
        return
    console.print(f"Mutagen: OK - {mutagen.version_string}")
    console.print(
        f"Capability matrix: {'OK' if service.matrix.loaded else 'FAIL'} ({service.path})"
    )

"""
External command-line tag writers (AtomicParsley, ExifTool, mkvpropedit).

Each tool is one `ExternalTool` instance: an executable, a timeout and a
per-field argument builder. There is no subclass per tool; adding a tool
means adding an entry to `_TOOL_FACTORIES`.

Processes are always started without a shell, with stdout/stderr captured,
and are killed and reaped on timeout.
"""

from __future__ import annotations

import logging
import os
import shutil
import signal
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from .models import FieldKey, WriteAttempt

logger = logging.getLogger(__name__)

ArgBuilder = Callable[[str, str], List[str]]

TIMEOUT_MESSAGE = "timeout"
NOT_SUPPORTED_MESSAGE = "field not supported"

# Cap stderr kept in reports; some tools dump whole usage screens.
_MAX_ERROR_CHARS = 2000

# Upper bound on reaping a killed tool and draining its pipes.
_DRAIN_TIMEOUT = 5.0


def escape_value(value: Optional[str]) -> str:
    """Prepare a tag value for use as a single argv entry.

    Values are never interpolated into a shell string; the OS (or
    `subprocess.list2cmdline` on Windows) applies quoting, which escapes
    embedded quote characters. What is left for us: NUL bytes cannot be
    passed at all, and bare CRs become newlines.
    """
    text = "" if value is None else str(value)
    return text.replace("\x00", "").replace("\r\n", "\n").replace("\r", "\n")


def _abs(path: str) -> str:
    # An absolute path can never be mistaken for an option.
    return str(Path(path).absolute())


@dataclass
class ExternalTool:
    """One external tag writer and the fields it can handle."""

    name: str
    executable: str
    timeout: float
    arg_builders: Mapping[FieldKey, ArgBuilder] = field(default_factory=dict)
    label: str = ""

    @property
    def display_name(self) -> str:
        return self.label or self.name

    def supports(self, field_key: FieldKey) -> bool:
        return field_key in self.arg_builders

    def build_command(self, path: str, field_key: FieldKey, value: str) -> List[str]:
        builder = self.arg_builders[field_key]
        return [self.executable, *builder(_abs(path), escape_value(value))]

    def try_write(self, path: Path | str, field_key: FieldKey, value: str) -> WriteAttempt:
        """Write one field. Never raises."""
        if not self.supports(field_key):
            return WriteAttempt(self.name, False, NOT_SUPPORTED_MESSAGE, field_key.value, launched=False)
        if not self.executable:
            return WriteAttempt(
                self.name, False, f"{self.display_name} not configured", field_key.value, launched=False
            )

        cmd = self.build_command(str(path), field_key, value)
        ok, error, launched = run_tool(cmd, self.timeout)
        if ok:
            logger.debug("%s wrote %s on %s", self.name, field_key.value, path)
        else:
            logger.debug("%s failed on %s (%s): %s", self.name, path, field_key.value, error)
        return WriteAttempt(self.name, ok, error, field_key.value, launched=launched)


def _kill_tree(proc: subprocess.Popen) -> None:
    """Kill a timed-out tool and everything it started."""
    if os.name == "nt":
        try:
            subprocess.run(
                ["taskkill", "/T", "/F", "/PID", str(proc.pid)],
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                timeout=_DRAIN_TIMEOUT,
                check=False,
            )
        except (OSError, subprocess.SubprocessError) as e:
            logger.debug("taskkill failed for pid %s: %s", proc.pid, e)
    else:
        try:
            os.killpg(proc.pid, signal.SIGKILL)
        except (ProcessLookupError, PermissionError):
            pass
    # taskkill may be missing or the group call may race the exit.
    if proc.poll() is None:
        proc.kill()


def run_tool(cmd: Sequence[str], timeout: float) -> Tuple[bool, str, bool]:
    """Run a command with captured output and a hard timeout.

    Returns (success, error text, launched). The tool runs in its own
    process group; on timeout the whole group is killed so wrapper scripts
    cannot leave the real binary running, and the pipes are drained with a
    bound.
    """
    popen_kwargs: Dict[str, object] = {}
    if os.name == "nt":
        popen_kwargs["creationflags"] = getattr(subprocess, "CREATE_NO_WINDOW", 0) | getattr(
            subprocess, "CREATE_NEW_PROCESS_GROUP", 0
        )
    else:
        popen_kwargs["start_new_session"] = True
    try:
        proc = subprocess.Popen(
            list(cmd),
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            **popen_kwargs,
        )
    except (OSError, ValueError) as e:
        return False, str(e) or type(e).__name__, False

    try:
        _out, err = proc.communicate(timeout=timeout)
    except subprocess.TimeoutExpired:
        _kill_tree(proc)
        try:
            proc.communicate(timeout=_DRAIN_TIMEOUT)
        except subprocess.TimeoutExpired:
            # Something outside the group still holds the pipes.
            for stream in (proc.stdout, proc.stderr):
                if stream is not None:
                    stream.close()
            proc.wait(timeout=_DRAIN_TIMEOUT)
        return False, TIMEOUT_MESSAGE, True

    if proc.returncode != 0:
        text = (err or b"").decode("utf-8", errors="replace").strip()
        return False, (text[:_MAX_ERROR_CHARS] or f"exit {proc.returncode}"), True
    return True, "", True


# --- Built-in tools ----------------------------------------------------------


def atomicparsley(executable: str = "AtomicParsley", timeout: float = 15.0) -> ExternalTool:
    return ExternalTool(
        name="atomicparsley",
        label="AtomicParsley",
        executable=executable,
        timeout=timeout,
        arg_builders={
            FieldKey.TITLE: lambda p, v: [p, "--title", v, "--overWrite"],
            FieldKey.COMMENT: lambda p, v: [p, "--comment", v, "--overWrite"],
        },
    )


def exiftool(executable: str = "exiftool", timeout: float = 20.0) -> ExternalTool:
    def _tag(tag: str) -> ArgBuilder:
        return lambda p, v: ["-overwrite_original", f"-{tag}={v}", p]

    return ExternalTool(
        name="exiftool",
        label="ExifTool",
        executable=executable,
        timeout=timeout,
        arg_builders={
            FieldKey.TITLE: _tag("Title"),
            FieldKey.COMMENT: _tag("Comment"),
            FieldKey.DIRECTOR: _tag("Director"),
        },
    )


def mkvpropedit(executable: str = "mkvpropedit", timeout: float = 10.0) -> ExternalTool:
    return ExternalTool(
        name="mkvpropedit",
        executable=executable,
        timeout=timeout,
        arg_builders={
            FieldKey.TITLE: lambda p, v: [p, "--edit", "info", "--set", f"title={v}"],
        },
    )


_TOOL_FACTORIES = {
    "atomicparsley": lambda s: atomicparsley(s.atomicparsley_path, s.atomicparsley_timeout),
    "exiftool": lambda s: exiftool(s.exiftool_path, s.exiftool_timeout),
    "mkvpropedit": lambda s: mkvpropedit(s.mkvpropedit_path, s.mkvpropedit_timeout),
}

KNOWN_TOOLS = tuple(_TOOL_FACTORIES)

# Containers Mutagen cannot write, and the only tool here that can.
CONTAINER_TOOLS = {"mkv": "mkvpropedit"}


def build_tools(settings, order: Optional[Sequence[str]] = None) -> List[ExternalTool]:
    """Instantiate the fallback cascade in priority order."""
    tools: List[ExternalTool] = []
    for name in order if order is not None else settings.external_tool_order:
        factory = _TOOL_FACTORIES.get(str(name).strip().lower())
        if factory is None:
            logger.warning("Unknown external tool %r in configuration; skipping", name)
            continue
        tools.append(factory(settings))
    return tools


@dataclass(frozen=True)
class ToolProbe:
    name: str
    executable: str
    found: bool
    path: Optional[str] = None
    version: Optional[str] = None


_VERSION_FLAGS = {
    "atomicparsley": ["--version"],
    "exiftool": ["-ver"],
    "mkvpropedit": ["--version"],
}


def probe_tool(tool: ExternalTool, timeout: float = 5.0) -> ToolProbe:
    """Check whether a tool is on PATH and grab its first version line."""
    resolved = shutil.which(tool.executable) if tool.executable else None
    if not resolved:
        return ToolProbe(tool.name, tool.executable, False)
    try:
        out = subprocess.run(
            [resolved, *_VERSION_FLAGS.get(tool.name, ["--version"])],
            capture_output=True,
            text=True,
            timeout=timeout,
        )
        lines = (out.stdout or out.stderr).splitlines()
        version = lines[0].strip() if lines else None
    except Exception:
        version = None
    return ToolProbe(tool.name, tool.executable, True, resolved, version)

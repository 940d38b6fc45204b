"""Tests for external tool invocation."""

from __future__ import annotations

import os
import time
from pathlib import Path
from types import SimpleNamespace

import pytest

from conftest import needs_posix, recorded_calls
from vidtag.core.external import (
    NOT_SUPPORTED_MESSAGE,
    TIMEOUT_MESSAGE,
    ExternalTool,
    atomicparsley,
    build_tools,
    escape_value,
    exiftool,
    mkvpropedit,
    probe_tool,
    run_tool,
)
from vidtag.core.models import FieldKey


def test_escape_value_strips_nul_and_normalizes_cr():
    assert escape_value('say "hi"') == 'say "hi"'
    assert escape_value("a\x00b") == "ab"
    assert escape_value("a\r\nb\rc") == "a\nb\nc"
    assert escape_value(None) == ""


def test_command_lines_use_absolute_paths(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    cwd = Path.cwd()
    ap = atomicparsley("AP")
    cmd = ap.build_command("clip.mp4", FieldKey.TITLE, 'A "quoted" title')
    assert cmd == ["AP", str(cwd / "clip.mp4"), "--title", 'A "quoted" title', "--overWrite"]

    et = exiftool("et")
    assert et.build_command("clip.mp4", FieldKey.COMMENT, "c") == [
        "et",
        "-overwrite_original",
        "-Comment=c",
        str(cwd / "clip.mp4"),
    ]

    mk = mkvpropedit("mk")
    assert mk.build_command("clip.mkv", FieldKey.TITLE, "t")[1:] == [
        str(cwd / "clip.mkv"),
        "--edit",
        "info",
        "--set",
        "title=t",
    ]


def test_unmapped_field_is_not_launched(tmp_path):
    attempt = atomicparsley("AP").try_write(tmp_path / "a.mp4", FieldKey.GENRE, "Drama")
    assert not attempt.success
    assert not attempt.launched
    assert attempt.error == NOT_SUPPORTED_MESSAGE
    assert attempt.field == "Genre"


def test_unconfigured_tool_is_not_launched(tmp_path):
    attempt = exiftool("").try_write(tmp_path / "a.mp4", FieldKey.TITLE, "T")
    assert not attempt.success
    assert not attempt.launched
    assert "not configured" in attempt.error


def test_missing_executable_reports_error(tmp_path):
    tool = atomicparsley(str(tmp_path / "no-such-tool"), timeout=2)
    attempt = tool.try_write(tmp_path / "a.mp4", FieldKey.TITLE, "T")
    assert not attempt.success
    assert not attempt.launched
    assert attempt.error


@needs_posix
def test_successful_tool_receives_value_intact(tmp_path, fake_tool):
    script = fake_tool("AtomicParsley")
    value = 'He said "hi" & left; $HOME `x`'
    attempt = atomicparsley(str(script), timeout=10).try_write(tmp_path / "a.mp4", FieldKey.TITLE, value)
    assert attempt.success, attempt.error
    assert attempt.launched
    assert attempt.error == ""
    assert recorded_calls(script) == [[str(tmp_path / "a.mp4"), "--title", value, "--overWrite"]]


@needs_posix
def test_nonzero_exit_reports_stderr(tmp_path, fake_tool):
    script = fake_tool("exiftool", "sys.stderr.write('Error: bad file\\n'); sys.exit(3)")
    attempt = exiftool(str(script), timeout=10).try_write(tmp_path / "a.mp4", FieldKey.TITLE, "T")
    assert not attempt.success
    assert attempt.launched
    assert attempt.error == "Error: bad file"


@needs_posix
def test_nonzero_exit_without_stderr_reports_code(fake_tool):
    script = fake_tool("quiet", "sys.exit(4)")
    assert run_tool([str(script)], timeout=10) == (False, "exit 4", True)


@needs_posix
def test_timeout_kills_the_process(tmp_path, fake_tool):
    pid_file = tmp_path / "pid"
    script = fake_tool(
        "slow",
        f"open({str(pid_file)!r}, 'w').write(str(os.getpid()))\ntime.sleep(30)",
    )
    started = time.monotonic()
    ok, error, launched = run_tool([str(script)], timeout=3.0)
    assert (ok, error, launched) == (False, TIMEOUT_MESSAGE, True)
    assert time.monotonic() - started < 15

    pid = int(pid_file.read_text())
    with pytest.raises(ProcessLookupError):
        os.kill(pid, 0)


def _alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    # A killed orphan may linger as a zombie until init reaps it.
    stat = Path(f"/proc/{pid}/stat")
    try:
        return stat.read_text().rsplit(")", 1)[1].split()[0] != "Z"
    except (OSError, IndexError):
        return True


@needs_posix
def test_timeout_kills_processes_the_tool_started(tmp_path, fake_tool):
    child_pid_file = tmp_path / "child.pid"
    script = fake_tool(
        "wrapper",
        "import subprocess\n"
        "child = subprocess.Popen([sys.executable, '-c', 'import time; time.sleep(30)'])\n"
        f"open({str(child_pid_file)!r}, 'w').write(str(child.pid))\n"
        "time.sleep(30)",
    )
    started = time.monotonic()
    ok, error, launched = run_tool([str(script)], timeout=2.0)
    elapsed = time.monotonic() - started
    assert (ok, error, launched) == (False, TIMEOUT_MESSAGE, True)
    # The grandchild holds the pipes too; it must not stretch the wait.
    assert elapsed < 10

    child_pid = int(child_pid_file.read_text())
    deadline = time.monotonic() + 5
    while _alive(child_pid) and time.monotonic() < deadline:
        time.sleep(0.1)
    assert not _alive(child_pid)


def test_build_tools_follows_configured_order():
    settings = SimpleNamespace(
        atomicparsley_path="AP",
        atomicparsley_timeout=1.0,
        exiftool_path="ET",
        exiftool_timeout=2.0,
        mkvpropedit_path="MK",
        mkvpropedit_timeout=3.0,
        external_tool_order=["exiftool", "bogus", "AtomicParsley"],
    )
    tools = build_tools(settings)
    assert [t.name for t in tools] == ["exiftool", "atomicparsley"]
    assert tools[0].executable == "ET"
    assert tools[0].timeout == 2.0
    assert [t.name for t in build_tools(settings, order=["mkvpropedit"])] == ["mkvpropedit"]


def test_probe_reports_missing_tool(tmp_path):
    probe = probe_tool(ExternalTool("ghost", str(tmp_path / "ghost"), 1.0))
    assert not probe.found
    assert probe.path is None

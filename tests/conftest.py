"""Pytest configuration and shared fixtures for vidtag tests."""

from __future__ import annotations

import json
import os
import struct
import sys
from pathlib import Path

import pytest

from vidtag.core.config import reset_settings

# =============================================================================
# Media fixtures
# =============================================================================


def _box(kind: bytes, payload: bytes = b"") -> bytes:
    return struct.pack(">I", 8 + len(payload)) + kind + payload


def create_minimal_mp4(path: Path) -> Path:
    """Write the smallest MP4 Mutagen will open and tag: ftyp + moov(mvhd) + mdat."""
    ftyp = _box(b"ftyp", b"isom" + struct.pack(">I", 0) + b"isommp42")
    # mvhd v0: version/flags, ctime, mtime, timescale, duration, then rate,
    # volume, reserved, matrix, pre-defined and next track id (100 bytes total)
    mvhd = _box(
        b"mvhd",
        b"\x00\x00\x00\x00"
        + struct.pack(">IIII", 0, 0, 1000, 0)
        + b"\x00" * 80,
    )
    moov = _box(b"moov", mvhd)
    mdat = _box(b"mdat")
    path.write_bytes(ftyp + moov + mdat)
    return path


@pytest.fixture
def make_mp4(tmp_path):
    """Factory for minimal taggable MP4 files in tmp_path."""

    def _make(name: str = "clip.mp4") -> Path:
        return create_minimal_mp4(tmp_path / name)

    return _make


@pytest.fixture
def make_junk(tmp_path):
    """Factory for files whose bytes no tag library recognizes."""

    def _make(name: str, payload: bytes = b"\x00garbage\x01" * 32) -> Path:
        p = tmp_path / name
        p.write_bytes(payload)
        return p

    return _make


# =============================================================================
# External tool fixtures
# =============================================================================

needs_posix = pytest.mark.skipif(os.name == "nt", reason="fake tools use shebang scripts")


@pytest.fixture
def fake_tool(tmp_path):
    """Create an executable Python script standing in for an external tool.

    The script records its argv (JSON) to ``<name>.args`` next to itself, then
    runs `body`.
    """

    def _make(name: str, body: str = "sys.exit(0)") -> Path:
        script = tmp_path / name
        record = tmp_path / f"{name}.args"
        script.write_text(
            f"#!{sys.executable}\n"
            "import json, os, sys, time\n"
            f"with open({str(record)!r}, 'a', encoding='utf-8') as fh:\n"
            "    fh.write(json.dumps(sys.argv[1:]) + '\\n')\n"
            f"{body}\n",
            encoding="utf-8",
        )
        script.chmod(0o755)
        return script

    return _make


def recorded_calls(script: Path) -> list:
    record = script.with_name(script.name + ".args")
    if not record.exists():
        return []
    return [json.loads(line) for line in record.read_text(encoding="utf-8").splitlines()]


# =============================================================================
# Settings isolation
# =============================================================================


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    """Point every test at its own settings file and data directory."""
    monkeypatch.chdir(tmp_path)
    settings_file = tmp_path / "settings.json"
    data_dir = tmp_path / "data"
    settings_file.write_text(json.dumps({"data_dir": str(data_dir)}), encoding="utf-8")
    monkeypatch.setenv("VTAG_SETTINGS_PATH", str(settings_file))
    monkeypatch.setenv("VTAG_IGNORE_LOCAL_SETTINGS", "1")
    reset_settings()
    yield settings_file
    reset_settings()

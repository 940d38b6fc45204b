"""
Input file ingestion.

Turns whatever the caller hands us (files, directories, duplicates, junk)
into the ordered list of video files an operation should touch. Anything
that is not an existing file with an allowed extension is dropped silently.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Iterable, List, Sequence


def _key(path: Path) -> str:
    return os.path.normcase(str(path.absolute())).lower()


def dedupe(paths: Iterable[Path]) -> List[Path]:
    """Drop case-insensitive duplicates, keeping the first occurrence."""
    seen: set[str] = set()
    out: List[Path] = []
    for p in paths:
        k = _key(p)
        if k in seen:
            continue
        seen.add(k)
        out.append(p)
    return out


def _scan_dir(folder: Path, exts: Sequence[str]) -> List[Path]:
    return sorted(
        p
        for p in folder.rglob("*")
        if p.is_file() and p.suffix.lower() in exts and not p.name.startswith(".")
    )


def collect_files(paths: Iterable[Path | str], allowed_extensions: Sequence[str]) -> List[Path]:
    """Expand directories recursively and filter by the extension allow-list."""
    exts = tuple(e.lower() if e.startswith(".") else "." + e.lower() for e in allowed_extensions)
    found: List[Path] = []
    for raw in paths:
        if raw is None or not str(raw).strip():
            continue
        p = Path(raw).expanduser()
        try:
            if p.is_dir():
                found.extend(_scan_dir(p, exts))
            elif p.is_file() and p.suffix.lower() in exts:
                found.append(p)
        except OSError:
            continue
    return dedupe(found)

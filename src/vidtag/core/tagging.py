"""
Primary tag backend using Mutagen.

Mutagen handles the MP4 family (mp4/m4v/mov) and ASF (wmv) containers. Each
supported container gets a small key map translating our field names into
its native atoms/attributes. Anything Mutagen cannot open (MKV, AVI, FLV,
corrupt files) is reported as a failed write so the orchestrator can fall
back to external tools.

Only six fields are understood here: Title, Comment, Artist, Genre, Year and
Copyright. Everything else falls through.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Tuple

import mutagen
from mutagen.asf import ASF
from mutagen.mp4 import MP4

from .models import FieldKey

logger = logging.getLogger(__name__)

BASIC_FIELDS = (
    FieldKey.TITLE,
    FieldKey.COMMENT,
    FieldKey.ARTIST,
    FieldKey.GENRE,
    FieldKey.YEAR,
    FieldKey.COPYRIGHT,
)

# Fields that may hold several values; joined with ";" when read.
MULTI_VALUE_FIELDS = (FieldKey.ARTIST, FieldKey.GENRE)

# Blank values clear these instead of writing an empty entry.
CLEAR_ON_BLANK = (FieldKey.ARTIST, FieldKey.GENRE)

REMOVABLE_FIELDS = (FieldKey.TITLE, FieldKey.COMMENT, FieldKey.ARTIST, FieldKey.GENRE)

_YEAR_RE = re.compile(r"^\s*(\d+)")


@dataclass(frozen=True)
class ContainerMap:
    name: str
    keys: Mapping[FieldKey, str]


MP4_MAP = ContainerMap(
    "mp4",
    {
        FieldKey.TITLE: "\xa9nam",
        FieldKey.COMMENT: "\xa9cmt",
        FieldKey.ARTIST: "\xa9ART",
        FieldKey.GENRE: "\xa9gen",
        FieldKey.YEAR: "\xa9day",
        FieldKey.COPYRIGHT: "cprt",
    },
)

ASF_MAP = ContainerMap(
    "asf",
    {
        FieldKey.TITLE: "Title",
        FieldKey.COMMENT: "Description",
        FieldKey.ARTIST: "Author",
        FieldKey.GENRE: "WM/Genre",
        FieldKey.YEAR: "WM/Year",
        FieldKey.COPYRIGHT: "Copyright",
    },
)


def _container_map(audio) -> Optional[ContainerMap]:
    if isinstance(audio, MP4):
        return MP4_MAP
    if isinstance(audio, ASF):
        return ASF_MAP
    return None


def _open(path: Path):
    """Open with Mutagen and return (file, key map). Raises on anything unusable."""
    audio = mutagen.File(path)
    if audio is None:
        raise ValueError(f"Cannot open tag: unrecognized container ({path.suffix or 'no extension'})")
    cmap = _container_map(audio)
    if cmap is None:
        raise ValueError(f"Cannot open tag: {type(audio).__name__} is not a supported video container")
    if audio.tags is None:
        audio.add_tags()
    return audio, cmap


def _as_text(value) -> str:
    # ASF attributes wrap the value; MP4 values are plain str.
    inner = getattr(value, "value", value)
    if isinstance(inner, bytes):
        return inner.decode("utf-8", errors="replace")
    return str(inner)


def _values(tags, key: str) -> List[str]:
    if key not in tags:
        return []
    raw = tags[key]
    if not isinstance(raw, list):
        raw = [raw]
    return [_as_text(v) for v in raw]


def parse_year(value: Optional[str]) -> Optional[int]:
    """Return the year as an int, or None when the text is not a plain number."""
    text = (value or "").strip()
    # isdigit() also accepts superscripts and circled digits, which int() rejects.
    if not text.isdecimal():
        return None
    return int(text)


def read_tags(path: Path | str) -> Dict[str, str]:
    """Best-effort read of the basic fields. Any failure yields {}."""
    out: Dict[str, str] = {}
    try:
        audio, cmap = _open(Path(path))
        for field, key in cmap.keys.items():
            vals = [v for v in _values(audio.tags, key) if v != ""]
            if not vals:
                continue
            if field is FieldKey.YEAR:
                m = _YEAR_RE.match(vals[0])
                if m and int(m.group(1)) != 0:
                    out[field.value] = m.group(1)
            elif field in MULTI_VALUE_FIELDS:
                out[field.value] = ";".join(vals)
            else:
                out[field.value] = vals[0]
    except Exception as e:
        logger.debug("read_tags failed for %s: %s", path, e)
        return {}
    return out


def _delete(tags, key: str) -> None:
    if key in tags:
        del tags[key]


def try_write_basic(path: Path | str, edits: Mapping[FieldKey, str]) -> Tuple[bool, str]:
    """Apply the understood subset of `edits` in one save.

    Returns (success, message); the message is empty on success. Never raises.
    """
    try:
        audio, cmap = _open(Path(path))
        tags = audio.tags
        for field, value in edits.items():
            key = cmap.keys.get(field)
            if key is None:
                continue
            value = "" if value is None else str(value)
            if field is FieldKey.YEAR:
                year = parse_year(value)
                if year is None:
                    logger.debug("Skipping non-numeric year %r for %s", value, path)
                    continue
                if year == 0:
                    _delete(tags, key)
                else:
                    tags[key] = [str(year)]
            elif field in CLEAR_ON_BLANK and not value.strip():
                _delete(tags, key)
            else:
                tags[key] = [value]
        audio.save()
        return True, ""
    except Exception as e:
        return False, str(e) or type(e).__name__


def remove_substring(path: Path | str, field: FieldKey, substring: str) -> Tuple[str, str]:
    """Remove every case-insensitive occurrence of `substring` from one field.

    Returns the old and new values ("|"-joined for multi-value fields).
    Raises on open/save failure or an unsupported field.
    """
    if field not in REMOVABLE_FIELDS:
        raise ValueError(f"Substring removal is not supported for {field.value}")
    audio, cmap = _open(Path(path))
    key = cmap.keys[field]
    old_values = _values(audio.tags, key)
    pattern = re.compile(re.escape(substring), re.IGNORECASE)
    new_values = [pattern.sub("", v) for v in old_values]
    if old_values:
        audio.tags[key] = new_values
        audio.save()
    return "|".join(old_values), "|".join(new_values)


class TagBackend:
    """The primary backend, bundled as an object so it can be swapped in tests."""

    name = "primary"
    fields = BASIC_FIELDS

    def read_tags(self, path: Path | str) -> Dict[str, str]:
        return read_tags(path)

    def try_write_basic(self, path: Path | str, edits: Mapping[FieldKey, str]) -> Tuple[bool, str]:
        return try_write_basic(path, edits)

    def remove_substring(self, path: Path | str, field: FieldKey, substring: str) -> Tuple[str, str]:
        return remove_substring(path, field, substring)

"""
Container/field capability matrix.

The matrix answers "does container X support field Y, and how well?". It is
loaded from a JSON document once at startup and treated as an immutable
snapshot; `CapabilityService.reload_if_possible` swaps in a fresh snapshot
only when the new one parsed cleanly, so readers never see a half-loaded or
missing matrix.

Accepted document shapes::

    {"formats": {"mp4": {"Title": "Supported", "Director": "Partial"}}}
    {"mp4": {"SupportsTitle": "true", "SupportsDirector": "conditional"}}
"""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional

from .models import FieldKey, SupportLevel

logger = logging.getLogger(__name__)

BUNDLED_MATRIX_PATH = Path(__file__).resolve().parent.parent / "data" / "capability_matrix.json"

_SUPPORTS_PREFIX = "supports"


def normalize_extension(ext: Optional[str]) -> str:
    """'.MP4' -> 'mp4'. Accepts a bare extension or a filename."""
    text = (ext or "").strip().lower()
    if "." in text.lstrip("."):
        text = text.rsplit(".", 1)[-1]
    return text.lstrip(".")


def normalize_field(field: Any) -> str:
    if isinstance(field, FieldKey):
        return field.value.lower()
    text = str(field or "").strip().lower()
    if text.startswith(_SUPPORTS_PREFIX) and len(text) > len(_SUPPORTS_PREFIX):
        text = text[len(_SUPPORTS_PREFIX):]
    return text


class CapabilityMatrix:
    """Immutable (extension, field) -> SupportLevel table."""

    def __init__(
        self,
        table: Mapping[str, Mapping[str, SupportLevel]],
        *,
        source: Optional[Path] = None,
        loaded: bool = True,
    ) -> None:
        frozen = {
            ext: MappingProxyType(dict(fields)) for ext, fields in table.items()
        }
        self._table: Mapping[str, Mapping[str, SupportLevel]] = MappingProxyType(frozen)
        self.source = source
        self.loaded = loaded

    @classmethod
    def empty(cls) -> "CapabilityMatrix":
        return cls({}, loaded=False)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], *, source: Optional[Path] = None) -> "CapabilityMatrix":
        if not isinstance(data, Mapping):
            raise ValueError("capability matrix must be a JSON object")
        formats = data.get("formats", data)
        if not isinstance(formats, Mapping):
            raise ValueError("'formats' must be an object")

        table: Dict[str, Dict[str, SupportLevel]] = {}
        for raw_ext, raw_fields in formats.items():
            if not isinstance(raw_fields, Mapping):
                # e.g. a top-level "version": 2 in the bare shape
                continue
            ext = normalize_extension(str(raw_ext))
            row = table.setdefault(ext, {})
            for raw_field, raw_level in raw_fields.items():
                row[normalize_field(raw_field)] = SupportLevel.parse(raw_level)
        return cls(table, source=source)

    @classmethod
    def load(cls, path: Path) -> "CapabilityMatrix":
        """Parse a matrix file. Raises on a missing, empty or malformed file."""
        text = Path(path).read_text(encoding="utf-8")
        if not text.strip():
            raise ValueError(f"capability matrix is empty: {path}")
        return cls.from_dict(json.loads(text), source=Path(path))

    def get_support(self, ext: Optional[str], field: Any) -> SupportLevel:
        """Never raises; anything not listed is Unsupported."""
        try:
            row = self._table.get(normalize_extension(ext))
            if not row:
                return SupportLevel.UNSUPPORTED
            return row.get(normalize_field(field), SupportLevel.UNSUPPORTED)
        except Exception:
            return SupportLevel.UNSUPPORTED

    def formats(self) -> List[str]:
        return sorted(self._table)

    def describe(self, ext: str) -> Dict[str, SupportLevel]:
        """Support level of every known field for one container."""
        return {key.value: self.get_support(ext, key) for key in FieldKey}

    def __len__(self) -> int:
        return len(self._table)


class CapabilityService:
    """Owns the current matrix snapshot and reloads it on demand."""

    def __init__(self, path: Optional[Path] = None) -> None:
        self.path = Path(path) if path else BUNDLED_MATRIX_PATH
        self._lock = threading.Lock()
        self._matrix = self._try_load() or CapabilityMatrix.empty()

    def _try_load(self) -> Optional[CapabilityMatrix]:
        try:
            return CapabilityMatrix.load(self.path)
        except FileNotFoundError:
            logger.warning("Capability matrix not found: %s", self.path)
        except Exception as e:
            logger.warning("Capability matrix could not be parsed (%s): %s", self.path, e)
        return None

    @property
    def matrix(self) -> CapabilityMatrix:
        return self._matrix

    def get_support(self, ext: Optional[str], field: Any) -> SupportLevel:
        return self._matrix.get_support(ext, field)

    def reload_if_possible(self) -> bool:
        """Re-read the backing file; keep the previous snapshot on failure."""
        fresh = self._try_load()
        if fresh is None:
            return False
        with self._lock:
            self._matrix = fresh
        return True


@dataclass(frozen=True)
class FieldVisibility:
    field: FieldKey
    enabled: bool
    tooltip: str
    supported: int
    total: int


def field_visibility(
    files: Iterable[Path | str],
    field: FieldKey,
    matrix: CapabilityMatrix,
    show_hidden: bool = False,
) -> FieldVisibility:
    """Decide whether a field should be editable for a set of target files.

    A file counts as supporting the field unless the matrix says Unsupported.
    An unloaded matrix hides nothing, matching the writer, which then
    attempts every field.
    """
    exts = [Path(f).suffix for f in files]
    total = len(exts)
    if not matrix.loaded:
        return FieldVisibility(field, True, "Capability matrix not loaded", total, total)
    supported = sum(
        1 for ext in exts if matrix.get_support(ext, field) is not SupportLevel.UNSUPPORTED
    )
    if total == 0:
        return FieldVisibility(field, True, "No files", supported, total)
    if supported == 0:
        tooltip = f"Supported 0/{total}" if show_hidden else "Hidden"
        return FieldVisibility(field, bool(show_hidden), tooltip, supported, total)
    if supported < total:
        return FieldVisibility(field, True, f"Supported {supported}/{total}", supported, total)
    return FieldVisibility(field, True, "Supported in all", supported, total)


def visibility_table(
    files: Iterable[Path | str], matrix: CapabilityMatrix, show_hidden: bool = False
) -> List[FieldVisibility]:
    targets = list(files)
    return [field_visibility(targets, key, matrix, show_hidden) for key in FieldKey]

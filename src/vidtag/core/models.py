"""
Data models shared by the write pipeline.

These are plain dataclasses and string enums so that every result can be
dumped to JSON without a custom encoder. Results (`WriteAttempt`,
`FieldResult`, `FileReport`) are frozen: they are produced once during an
apply pass and only ever serialized afterwards.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple


class FieldKey(str, Enum):
    """The fixed set of editable metadata fields."""

    TITLE = "Title"
    COMMENT = "Comment"
    ARTIST = "Artist"
    GENRE = "Genre"
    YEAR = "Year"
    DIRECTOR = "Director"
    PRODUCER = "Producer"
    WRITER = "Writer"
    PROVIDER = "Provider"
    ENCODED_BY = "EncodedBy"
    COPYRIGHT = "Copyright"
    AUTHOR_URL = "AuthorUrl"
    CUSTOM_URL = "CustomURL"

    @property
    def label(self) -> str:
        return _FIELD_LABELS[self]

    @classmethod
    def parse(cls, text: Optional[str]) -> Optional["FieldKey"]:
        """Case-insensitive lookup by value or member name; None when unknown."""
        if not text:
            return None
        key = str(text).strip().lower()
        for member in cls:
            if key in (member.value.lower(), member.name.lower()):
                return member
        return None


_FIELD_LABELS: Dict[FieldKey, str] = {
    FieldKey.TITLE: "Title",
    FieldKey.COMMENT: "Description / Comment",
    FieldKey.ARTIST: "Artist / Performer",
    FieldKey.GENRE: "Genre",
    FieldKey.YEAR: "Year",
    FieldKey.DIRECTOR: "Director",
    FieldKey.PRODUCER: "Producer",
    FieldKey.WRITER: "Writer",
    FieldKey.PROVIDER: "Provider",
    FieldKey.ENCODED_BY: "Encoded by",
    FieldKey.COPYRIGHT: "Copyright",
    FieldKey.AUTHOR_URL: "Author URL",
    FieldKey.CUSTOM_URL: "Custom URL",
}


class SupportLevel(str, Enum):
    """How well a container supports a field.

    Older matrices used "Conditional" and "Unknown"; those collapse into
    PARTIAL and UNSUPPORTED respectively.
    """

    UNSUPPORTED = "Unsupported"
    PARTIAL = "Partial"
    SUPPORTED = "Supported"

    @classmethod
    def parse(cls, value: Any) -> "SupportLevel":
        if value is None:
            return cls.UNSUPPORTED
        if isinstance(value, bool):
            return cls.SUPPORTED if value else cls.UNSUPPORTED
        text = str(value).strip().lower()
        if text in ("supported", "true", "yes", "full"):
            return cls.SUPPORTED
        if text in ("unsupported", "false", "no", "unknown", "none", ""):
            return cls.UNSUPPORTED
        # "partial", "conditional" and anything unrecognized
        return cls.PARTIAL


class FieldStatus(str, Enum):
    SUCCESS = "Success"
    PARTIAL = "Partial"
    FAILED = "Failed"
    UNSUPPORTED = "Unsupported"
    PREVIEW = "Preview"


# Key used in FileReport.fields for the overall outcome of a file.
WRITE_RESULT_KEY = "Write"


@dataclass(frozen=True)
class WriteAttempt:
    """One backend trying to apply one field (or the whole edit set) to one file."""

    backend: str
    success: bool
    error: str = ""
    field: Optional[str] = None
    # False when no process or file handle was ever used (not configured,
    # not found, field not mapped).
    launched: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class FieldResult:
    field: str
    status: FieldStatus = FieldStatus.PREVIEW
    message: str = ""
    backup_path: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "field": self.field,
            "status": self.status.value,
            "message": self.message,
            "backup_path": self.backup_path,
        }


@dataclass(frozen=True)
class FileReport:
    """The full outcome of one operation on one file."""

    file_path: str
    fields: Mapping[str, FieldResult] = field(default_factory=dict)
    attempts: Tuple[WriteAttempt, ...] = ()
    before: Mapping[str, str] = field(default_factory=dict)
    after: Mapping[str, str] = field(default_factory=dict)

    @property
    def write_result(self) -> Optional[FieldResult]:
        return self.fields.get(WRITE_RESULT_KEY)

    @property
    def status(self) -> Optional[FieldStatus]:
        result = self.write_result
        return result.status if result else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "file_path": self.file_path,
            "fields": {k: v.to_dict() for k, v in self.fields.items()},
            "attempts": [a.to_dict() for a in self.attempts],
            "before": dict(self.before),
            "after": dict(self.after),
        }


def build_edits(values: Mapping[str, Any]) -> Dict[FieldKey, str]:
    """Normalize a user supplied field->value mapping.

    Keys are matched case-insensitively against FieldKey; an unknown key
    raises ValueError. None values become empty strings.
    """
    edits: Dict[FieldKey, str] = {}
    for raw_key, raw_value in values.items():
        key = raw_key if isinstance(raw_key, FieldKey) else FieldKey.parse(raw_key)
        if key is None:
            raise ValueError(f"Unknown field: {raw_key}")
        edits[key] = "" if raw_value is None else str(raw_value)
    return edits


@dataclass
class Preset:
    """A named field-edit template."""

    name: str
    values: Dict[str, str] = field(default_factory=dict)
    checked_fields: set[str] = field(default_factory=set)

    def edits(self) -> Dict[FieldKey, str]:
        """Only the checked fields take part in an apply run."""
        checked = {FieldKey.parse(k) for k in self.checked_fields} - {None}
        selected = {
            k: v for k, v in self.values.items() if FieldKey.parse(k) in checked
        }
        return build_edits(selected)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "values": dict(self.values),
            "checked_fields": sorted(self.checked_fields),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Preset":
        # Accept the PascalCase keys written by older versions as well.
        name = data.get("name", data.get("Name", ""))
        values = data.get("values", data.get("Values")) or {}
        checked = data.get("checked_fields", data.get("CheckedFields")) or []
        return cls(
            name=str(name),
            values={str(k): "" if v is None else str(v) for k, v in values.items()},
            checked_fields={str(k) for k in checked},
        )


def file_extension(path: Path | str) -> str:
    """Lower-cased extension including the leading dot."""
    return Path(path).suffix.lower()


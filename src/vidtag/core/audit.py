"""
Audit trail and batch reports.

The audit log is JSON Lines: one self-contained record per operation per
file, appended under a lock. Appending is best effort. A failing audit write
is logged at debug level and otherwise ignored, so it can never change the
outcome of a tag write.

Batch reports are a single indented JSON document per apply run.
"""

from __future__ import annotations

import json
import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Optional, Protocol, Sequence

from .models import FileReport

logger = logging.getLogger(__name__)


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


@dataclass(frozen=True)
class AuditEntry:
    operation: str
    file_path: str
    before: Mapping[str, str] = field(default_factory=dict)
    after: Mapping[str, str] = field(default_factory=dict)
    attempts: Sequence[Mapping[str, Any]] = ()
    results: Mapping[str, Mapping[str, Any]] = field(default_factory=dict)
    timestamp: str = field(default_factory=_utc_now)

    @classmethod
    def from_report(cls, operation: str, report: FileReport) -> "AuditEntry":
        data = report.to_dict()
        return cls(
            operation=operation,
            file_path=report.file_path,
            before=data["before"],
            after=data["after"],
            attempts=data["attempts"],
            results=data["fields"],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "operation": self.operation,
            "file_path": self.file_path,
            "before": dict(self.before),
            "after": dict(self.after),
            "attempts": [dict(a) for a in self.attempts],
            "results": {k: dict(v) for k, v in self.results.items()},
        }


class AuditSink(Protocol):
    def append(self, entry: AuditEntry) -> None: ...


class NullAuditSink:
    """Discards everything."""

    def append(self, entry: AuditEntry) -> None:
        return None


class JsonlAuditLog:
    """Append-only JSON Lines audit log."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()

    def append(self, entry: AuditEntry) -> None:
        try:
            line = json.dumps(entry.to_dict(), ensure_ascii=False)
            with self._lock:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with open(self.path, "a", encoding="utf-8") as fh:
                    fh.write(line + "\n")
        except Exception as e:
            logger.debug("Audit append to %s failed: %s", self.path, e)

    def iter_entries(self) -> Iterator[Dict[str, Any]]:
        """Stream records from the log, skipping lines that do not parse."""
        if not self.path.exists():
            return
        with open(self.path, "r", encoding="utf-8") as fh:
            for line in fh:
                line = line.strip()
                if not line:
                    continue
                try:
                    record = json.loads(line)
                except json.JSONDecodeError:
                    continue
                if isinstance(record, dict):
                    yield record

    def tail(self, limit: int = 20) -> List[Dict[str, Any]]:
        return list(deque(self.iter_entries(), maxlen=max(0, limit)))


def write_batch_report(
    reports: Sequence[FileReport],
    out_dir: Path,
    prefix: str = "apply_report",
    now: Optional[datetime] = None,
) -> Path:
    """Write one JSON document for a whole run and return its path."""
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    stamp = (now or datetime.now()).strftime("%Y%m%d%H%M%S")
    target = out_dir / f"{prefix}_{stamp}.json"
    n = 1
    while target.exists():
        target = out_dir / f"{prefix}_{stamp}_{n}.json"
        n += 1
    payload = {
        "generated_at": _utc_now(),
        "files": [r.to_dict() for r in reports],
    }
    target.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
    return target

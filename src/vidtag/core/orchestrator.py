"""
Per-file write pipeline with capability gating and external-tool fallback.

For every file the orchestrator runs the same fixed sequence:

    read "before" tags -> drop fields the capability matrix rules out ->
    backup (once) -> primary Mutagen write -> on failure, per-field cascade
    through the external tools -> read "after" tags -> audit

Each file is isolated. Whatever goes wrong ends up as a status in that
file's `FileReport`, and the batch always yields one report per input file,
in input order.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Sequence

from .audit import AuditEntry, AuditSink, JsonlAuditLog, NullAuditSink
from .backup import backup_path_for, ensure_backup
from .capability import CapabilityService
from .config import DEFAULT_BACKUP_SUFFIX, VidtagSettings
from .external import ExternalTool, build_tools
from .models import (
    WRITE_RESULT_KEY,
    FieldKey,
    FieldResult,
    FieldStatus,
    FileReport,
    SupportLevel,
    WriteAttempt,
    build_edits,
    file_extension,
)
from .tagging import TagBackend, parse_year

logger = logging.getLogger(__name__)

DEFAULT_FALLBACK_FIELDS = (FieldKey.TITLE, FieldKey.COMMENT)

CANCELLED_MESSAGE = "cancelled before processing"


@dataclass
class ApplyOptions:
    create_backup: bool = True
    backup_suffix: str = DEFAULT_BACKUP_SUFFIX
    preview: bool = False
    allow_experimental: bool = False
    fallback_fields: Sequence[FieldKey] = DEFAULT_FALLBACK_FIELDS
    workers: int = 1
    cancel: Optional[threading.Event] = field(default=None, repr=False)

    @classmethod
    def from_settings(cls, settings: VidtagSettings, **overrides) -> "ApplyOptions":
        fallback = [k for k in (FieldKey.parse(f) for f in settings.fallback_fields) if k]
        values = {
            "create_backup": settings.create_backup,
            "backup_suffix": settings.backup_suffix,
            "allow_experimental": settings.allow_experimental,
            "fallback_fields": tuple(fallback),
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

    @property
    def cancelled(self) -> bool:
        return self.cancel is not None and self.cancel.is_set()


def _preview_message(before: Mapping[str, str], edits: Mapping[FieldKey, str]) -> str:
    parts = []
    for key, value in edits.items():
        if key is FieldKey.YEAR and parse_year(value) is None:
            continue
        parts.append(f"{key.value}: {before.get(key.value, '')!r} -> {value!r}")
    return "; ".join(parts) or "nothing to change"


class WriteOrchestrator:
    """Runs apply and substring-removal passes over a batch of files."""

    def __init__(
        self,
        capabilities: CapabilityService,
        primary: Optional[TagBackend] = None,
        tools: Optional[Sequence[ExternalTool]] = None,
        sink: Optional[AuditSink] = None,
    ) -> None:
        self.capabilities = capabilities
        self.primary = primary or TagBackend()
        self.tools: List[ExternalTool] = list(tools or [])
        self.sink: AuditSink = sink or NullAuditSink()

    @classmethod
    def from_settings(cls, settings: VidtagSettings) -> "WriteOrchestrator":
        return cls(
            CapabilityService(settings.capability_matrix_path),
            TagBackend(),
            build_tools(settings),
            JsonlAuditLog(settings.resolved_audit_log_path),
        )

    # --- batch entry points ---------------------------------------------------

    def apply(
        self,
        files: Iterable[Path | str],
        edits: Mapping,
        options: Optional[ApplyOptions] = None,
    ) -> List[FileReport]:
        options = options or ApplyOptions()
        normalized = build_edits(edits)
        return self._run(files, lambda p: self.apply_file(p, normalized, options), options)

    def remove_substring(
        self,
        files: Iterable[Path | str],
        field_key: FieldKey,
        substring: str,
        options: Optional[ApplyOptions] = None,
    ) -> List[FileReport]:
        if not substring:
            raise ValueError("substring must not be empty")
        options = options or ApplyOptions()
        return self._run(
            files, lambda p: self.remove_substring_file(p, field_key, substring, options), options
        )

    def _run(
        self,
        files: Iterable[Path | str],
        fn: Callable[[Path], FileReport],
        options: ApplyOptions,
    ) -> List[FileReport]:
        paths = [Path(f) for f in files]
        if options.workers > 1 and len(paths) > 1:
            with ThreadPoolExecutor(max_workers=options.workers) as pool:
                # map() keeps input order regardless of completion order
                return list(pool.map(fn, paths))
        return [fn(p) for p in paths]

    # --- per-file pipelines ---------------------------------------------------

    def apply_file(
        self, path: Path, edits: Mapping[FieldKey, str], options: ApplyOptions
    ) -> FileReport:
        if options.cancelled:
            return _cancelled_report(path)

        field_results: Dict[str, FieldResult] = {}
        attempts: List[WriteAttempt] = []
        before: Dict[str, str] = {}
        after: Optional[Dict[str, str]] = None
        try:
            before = self.primary.read_tags(path)
            wanted = self._gate(path, edits, options, field_results)
            if not wanted:
                ext = file_extension(path) or "files without an extension"
                write = FieldResult(
                    WRITE_RESULT_KEY,
                    FieldStatus.UNSUPPORTED,
                    f"No requested field is supported for {ext}",
                )
                after = before
            elif options.preview:
                write = FieldResult(
                    WRITE_RESULT_KEY, FieldStatus.PREVIEW, _preview_message(before, wanted)
                )
                after = before
            else:
                backup = None
                if options.create_backup:
                    ensure_backup(path, options.backup_suffix)
                    backup = str(backup_path_for(path, options.backup_suffix))
                write = self._write(path, wanted, options, field_results, attempts, backup)
        except Exception as e:
            logger.warning("Apply failed for %s: %s", path, e, extra={"file_path": path})
            write = FieldResult(WRITE_RESULT_KEY, FieldStatus.FAILED, str(e) or type(e).__name__)

        if after is None:
            after = self._safe_read(path)

        report = FileReport(
            file_path=str(path),
            fields={WRITE_RESULT_KEY: write, **field_results},
            attempts=tuple(attempts),
            before=before,
            after=after,
        )
        logger.debug("%s: %s %s", path.name, write.status.value, write.message, extra={"file_path": path})
        if not options.preview:
            self._audit("apply", report)
        return report

    def remove_substring_file(
        self, path: Path, field_key: FieldKey, substring: str, options: ApplyOptions
    ) -> FileReport:
        if options.cancelled:
            return _cancelled_report(path)

        attempts: List[WriteAttempt] = []
        before: Dict[str, str] = {}
        try:
            before = self.primary.read_tags(path)
            if options.preview:
                write = FieldResult(
                    WRITE_RESULT_KEY,
                    FieldStatus.PREVIEW,
                    f"would remove {substring!r} from {field_key.value}",
                )
            else:
                backup = None
                if options.create_backup:
                    ensure_backup(path, options.backup_suffix)
                    backup = str(backup_path_for(path, options.backup_suffix))
                old, new = self.primary.remove_substring(path, field_key, substring)
                attempts.append(WriteAttempt(self.primary.name, True, field=field_key.value))
                message = f"{field_key.value}: {old!r} -> {new!r}" if old != new else "no change"
                write = FieldResult(WRITE_RESULT_KEY, FieldStatus.SUCCESS, message, backup)
        except Exception as e:
            error = str(e) or type(e).__name__
            attempts.append(WriteAttempt(self.primary.name, False, error, field_key.value))
            write = FieldResult(WRITE_RESULT_KEY, FieldStatus.FAILED, error)

        report = FileReport(
            file_path=str(path),
            fields={WRITE_RESULT_KEY: write},
            attempts=tuple(attempts),
            before=before,
            after=before if options.preview else self._safe_read(path),
        )
        if not options.preview:
            self._audit("remove_substring", report)
        return report

    # --- steps ------------------------------------------------------------------

    def _gate(
        self,
        path: Path,
        edits: Mapping[FieldKey, str],
        options: ApplyOptions,
        field_results: Dict[str, FieldResult],
    ) -> Dict[FieldKey, str]:
        """Drop fields the capability matrix marks Unsupported for this container.

        An unloaded matrix knows nothing, so everything is attempted.
        """
        matrix = self.capabilities.matrix
        if options.allow_experimental or not matrix.loaded:
            return dict(edits)
        ext = file_extension(path)
        wanted: Dict[FieldKey, str] = {}
        for key, value in edits.items():
            if matrix.get_support(ext, key) is SupportLevel.UNSUPPORTED:
                field_results[key.value] = FieldResult(
                    key.value,
                    FieldStatus.UNSUPPORTED,
                    f"{key.value} is not supported for {ext or 'files without an extension'}",
                )
            else:
                wanted[key] = value
        return wanted

    def _write(
        self,
        path: Path,
        edits: Mapping[FieldKey, str],
        options: ApplyOptions,
        field_results: Dict[str, FieldResult],
        attempts: List[WriteAttempt],
        backup: Optional[str],
    ) -> FieldResult:
        for key in edits:
            if key not in self.primary.fields:
                field_results[key.value] = FieldResult(
                    key.value, FieldStatus.UNSUPPORTED, f"no backend writes {key.value} in this pass"
                )

        ok, message = self.primary.try_write_basic(path, edits)
        attempts.append(WriteAttempt(self.primary.name, ok, message))
        if ok:
            return FieldResult(WRITE_RESULT_KEY, FieldStatus.SUCCESS, self.primary.name, backup)

        errors = [f"{self.primary.name}: {message}"]
        written: List[str] = []
        launched = False
        for key in options.fallback_fields:
            value = edits.get(key)
            if value is None or not value.strip():
                continue
            field_errors: List[str] = []
            for tool in self.tools:
                attempt = tool.try_write(path, key, value)
                attempts.append(attempt)
                launched = launched or attempt.launched
                if attempt.success:
                    written.append(f"{key.value} via {tool.name}")
                    field_results[key.value] = FieldResult(key.value, FieldStatus.SUCCESS, tool.name)
                    break
                field_errors.append(f"{tool.name}({key.value}): {attempt.error}")
            else:
                field_results[key.value] = FieldResult(
                    key.value,
                    FieldStatus.FAILED,
                    "; ".join(field_errors) or "no external tool configured",
                )
            errors.extend(field_errors)

        if written:
            return FieldResult(
                WRITE_RESULT_KEY, FieldStatus.SUCCESS, "external: " + "; ".join(written), backup
            )
        # Partial: some tool actually ran against the file and failed.
        # Failed: nothing beyond the primary backend ever touched it.
        status = FieldStatus.PARTIAL if launched else FieldStatus.FAILED
        return FieldResult(WRITE_RESULT_KEY, status, "; ".join(errors), backup)

    def _safe_read(self, path: Path) -> Dict[str, str]:
        try:
            return self.primary.read_tags(path)
        except Exception:
            return {}

    def _audit(self, operation: str, report: FileReport) -> None:
        # Sinks swallow their own failures.
        self.sink.append(AuditEntry.from_report(operation, report))


def _cancelled_report(path: Path) -> FileReport:
    return FileReport(
        file_path=str(path),
        fields={WRITE_RESULT_KEY: FieldResult(WRITE_RESULT_KEY, FieldStatus.FAILED, CANCELLED_MESSAGE)},
    )

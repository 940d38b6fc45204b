"""
Logging setup for the vidtag CLI.

Core modules log through ``logging.getLogger(__name__)``; this module only
decides where those records go and how they look.
"""

import json as _json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, Optional

_TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

# Libraries that are chatty at DEBUG and never useful to end users.
_NOISY_LOGGERS = ("dynaconf", "asyncio")


class _JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        payload: Dict[str, Any] = {
            "time": self.formatTime(record),
            "level": record.levelname,
            "name": record.name,
            "message": record.getMessage(),
        }
        file_path = getattr(record, "file_path", None)
        if file_path:
            payload["file"] = str(file_path)
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return _json.dumps(payload, ensure_ascii=False)


def setup_logging(
    *,
    json_logs: bool = False,
    verbose: bool | None = None,
    quiet: bool | None = None,
    log_file: Optional[Path] = None,
) -> None:
    """Configure root logging.

    - json_logs: emit JSON lines to stdout
    - verbose: DEBUG level if True
    - quiet: WARNING level if True
    - log_file: additionally write the same records to this file
    Default level is INFO when neither verbose nor quiet is set.
    """
    level = logging.INFO
    if verbose:
        level = logging.DEBUG
    if quiet:
        level = max(level, logging.WARNING)

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(level)

    formatter: logging.Formatter = _JsonFormatter() if json_logs else logging.Formatter(_TEXT_FORMAT)

    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setFormatter(formatter)
    root.addHandler(handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

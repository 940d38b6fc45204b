"""
Configuration management using Dynaconf and Pydantic.

This module provides a layered configuration system. Dynaconf loads settings
from files (e.g., `settings.toml`, `.secrets.toml`) and `VTAG_*` environment
variables. Pydantic then validates the merged data into a typed
`VidtagSettings` object.

Settings are built once per process by `get_settings`. Every field has a safe
default, and a layer that cannot be parsed or a result that fails validation
yields the all-defaults model rather than a half-populated one.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import toml
from dynaconf import Dynaconf
from platformdirs import user_data_dir
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)

# Determine a user-scoped config directory (XDG-style)
USER_CONFIG_DIR = Path.home() / ".config" / "vidtag"
USER_SETTINGS_FILE = USER_CONFIG_DIR / "settings.toml"
USER_SECRETS_FILE = USER_CONFIG_DIR / ".secrets.toml"

# Project-local settings (CWD) to support isolated runs and tests
LOCAL_SETTINGS_FILE = Path("settings.toml")

DEFAULT_EXTENSIONS = [".mp4", ".m4v", ".mov", ".wmv", ".mkv", ".avi", ".flv"]
DEFAULT_BACKUP_SUFFIX = ".bak_vtag"


def _make_loader() -> Dynaconf:
    return Dynaconf(
        envvar_prefix="VTAG",
        # Later files override earlier ones; the project-local settings.toml
        # is applied separately so it can be switched off.
        settings_files=[
            str(USER_SETTINGS_FILE),
            str(USER_SECRETS_FILE),
            ".secrets.toml",
        ],
        load_dotenv=True,
    )


def get_default_data_dir() -> Path:
    """Return a user-scoped directory for the audit log, reports and presets."""
    return Path(user_data_dir("vidtag"))


class VidtagSettings(BaseModel):
    """A Pydantic model that defines and validates all application settings."""

    # Behavior
    create_backup: bool = True
    backup_suffix: str = DEFAULT_BACKUP_SUFFIX
    max_batch_default: int = Field(default=50, ge=1)
    supported_extensions: list[str] = Field(default_factory=lambda: list(DEFAULT_EXTENSIONS))
    show_hidden_fields: bool = False
    allow_experimental: bool = False

    # External tools
    atomicparsley_path: str = "AtomicParsley"
    exiftool_path: str = "exiftool"
    mkvpropedit_path: str = "mkvpropedit"
    atomicparsley_timeout: float = Field(default=15.0, gt=0)
    exiftool_timeout: float = Field(default=20.0, gt=0)
    mkvpropedit_timeout: float = Field(default=10.0, gt=0)
    external_tool_order: list[str] = Field(default_factory=lambda: ["atomicparsley", "exiftool"])
    fallback_fields: list[str] = Field(default_factory=lambda: ["Title", "Comment"])

    # Storage
    capability_matrix_path: Optional[Path] = None
    data_dir: Path = Field(default_factory=get_default_data_dir)
    audit_log_path: Optional[Path] = None
    report_dir: Optional[Path] = None
    presets_path: Optional[Path] = None

    # Pydantic v2 configuration
    model_config = ConfigDict(validate_assignment=True)

    @field_validator("supported_extensions")
    @classmethod
    def _normalize_extensions(cls, value: list[str]) -> list[str]:
        out: list[str] = []
        for ext in value:
            ext = str(ext).strip().lower()
            if not ext:
                continue
            if not ext.startswith("."):
                ext = "." + ext
            if ext not in out:
                out.append(ext)
        return out

    @field_validator("backup_suffix")
    @classmethod
    def _non_empty_suffix(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("backup_suffix must not be empty")
        return value

    @property
    def resolved_audit_log_path(self) -> Path:
        return self.audit_log_path or (self.data_dir / "audit.jsonl")

    @property
    def resolved_report_dir(self) -> Path:
        return self.report_dir or (self.data_dir / "reports")

    @property
    def resolved_presets_path(self) -> Path:
        return self.presets_path or (self.data_dir / "presets.json")


_settings_instance: Optional[VidtagSettings] = None


def _collect_layers() -> Dict[str, Any]:
    config_dict: Dict[str, Any] = {}

    # 1) Special env path for tests or explicit override (JSON file)
    env_settings_path = os.getenv("VTAG_SETTINGS_PATH")
    if env_settings_path:
        p = Path(env_settings_path)
        if p.exists():
            config_dict.update(json.loads(p.read_text(encoding="utf-8")) or {})

    # 2) Dynaconf loader (user + project scope, VTAG_* env vars)
    dc_dict = _make_loader().as_dict() or {}
    config_dict.update({str(k).lower(): v for k, v in dc_dict.items()})

    # 3) Optional project-local settings.toml overlay
    ignore_local = os.getenv("VTAG_IGNORE_LOCAL_SETTINGS") == "1"
    if (not ignore_local) and LOCAL_SETTINGS_FILE.exists():
        local_data = toml.loads(LOCAL_SETTINGS_FILE.read_text(encoding="utf-8")) or {}
        if isinstance(local_data, dict):
            config_dict.update(local_data)

    return config_dict


def get_settings() -> VidtagSettings:
    """Get the application settings as a singleton Pydantic model.

    Honors VTAG_SETTINGS_PATH when set: a JSON file path used for persistence in tests.
    """
    global _settings_instance
    if _settings_instance is None:
        try:
            _settings_instance = VidtagSettings(**_collect_layers())
        except ValidationError as e:
            logger.warning("Invalid configuration, using defaults:\n%s", e)
            _settings_instance = create_default_settings()
        except Exception as e:
            logger.warning("Could not read configuration (%s), using defaults", e)
            _settings_instance = create_default_settings()
    return _settings_instance


def save_settings(new_settings: VidtagSettings) -> Path:
    """Persist settings and make them current.

    If VTAG_SETTINGS_PATH is set, persist as JSON to that file (used by tests),
    otherwise write the project-local settings.toml.
    """
    global _settings_instance
    data = new_settings.model_dump(mode="json", exclude_defaults=True)

    env_settings_path = os.getenv("VTAG_SETTINGS_PATH")
    if env_settings_path:
        target = Path(env_settings_path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(json.dumps(data, indent=2), encoding="utf-8")
    else:
        target = LOCAL_SETTINGS_FILE
        target.write_text(toml.dumps(data), encoding="utf-8")

    _settings_instance = new_settings
    return target


def create_default_settings() -> VidtagSettings:
    """Create a default settings instance, useful for resets."""
    return VidtagSettings()


def reset_settings():
    """Reset in-memory settings (do not delete on-disk settings)."""
    global _settings_instance
    _settings_instance = None

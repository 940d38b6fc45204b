"""
Named field-edit presets stored as a JSON list.

Reading never fails loudly: a missing, empty or corrupt file simply means
"no presets". Writes are serialized by a lock and report success as a bool.
"""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import List, Optional

from .errors import PresetError
from .models import Preset

logger = logging.getLogger(__name__)


class PresetStore:
    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._lock = threading.RLock()

    def _read(self) -> List[Preset]:
        if not self.path.exists():
            return []
        try:
            text = self.path.read_text(encoding="utf-8")
            if not text.strip():
                return []
            data = json.loads(text)
            if not isinstance(data, list):
                raise ValueError("expected a JSON list")
            return [Preset.from_dict(item) for item in data if isinstance(item, dict)]
        except Exception as e:
            logger.warning("Could not read presets from %s: %s", self.path, e)
            return []

    def _write(self, presets: List[Preset]) -> bool:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            payload = json.dumps([p.to_dict() for p in presets], indent=2, ensure_ascii=False)
            self.path.write_text(payload, encoding="utf-8")
            return True
        except Exception as e:
            logger.warning("Could not save presets to %s: %s", self.path, e)
            return False

    def get_all(self) -> List[Preset]:
        with self._lock:
            return self._read()

    def find(self, name: str) -> Optional[Preset]:
        wanted = name.strip().lower()
        for preset in self.get_all():
            if preset.name.lower() == wanted:
                return preset
        return None

    def get(self, name: str) -> Preset:
        preset = self.find(name)
        if preset is None:
            raise PresetError(f"No preset named {name!r}")
        return preset

    def add_or_replace(self, preset: Preset) -> bool:
        with self._lock:
            presets = [p for p in self._read() if p.name.lower() != preset.name.lower()]
            presets.append(preset)
            return self._write(presets)

    def remove(self, name: str) -> bool:
        """Delete a preset; False when it did not exist or could not be saved."""
        with self._lock:
            presets = self._read()
            kept = [p for p in presets if p.name.lower() != name.strip().lower()]
            if len(kept) == len(presets):
                return False
            return self._write(kept)

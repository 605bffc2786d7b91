from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Mapping

from .constants import STATE_SCHEMA_VERSION
from .utils import atomic_write_text


def empty_state() -> Dict[str, Any]:
    return {
        "schema_version": STATE_SCHEMA_VERSION,
        "registry": {"roster": [], "agents": {}},
        "proposals": {"proposals": [], "predictions": {}},
    }


class ArbitrationStateStore:
    """Atomic JSON snapshot of the agent and proposal tables."""

    def __init__(self, path: Path | str) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def exists(self) -> bool:
        return self._path.exists()

    def load(self) -> Dict[str, Any]:
        if not self._path.exists():
            return empty_state()
        raw = json.loads(self._path.read_text(encoding="utf-8"))
        if not isinstance(raw, Mapping):
            raise ValueError(f"State file {self._path} does not hold a JSON object.")
        if int(raw.get("schema_version", 0)) != STATE_SCHEMA_VERSION:
            raise ValueError(f"Unsupported state schema version in {self._path}: {raw.get('schema_version')!r}")
        if not isinstance(raw.get("registry"), Mapping) or not isinstance(raw.get("proposals"), Mapping):
            raise ValueError(f"State file {self._path} is missing 'registry' or 'proposals'.")
        return dict(raw)

    def save_atomic(self, *, registry: Mapping[str, Any], proposals: Mapping[str, Any]) -> Dict[str, Any]:
        state = {
            "schema_version": STATE_SCHEMA_VERSION,
            "registry": dict(registry),
            "proposals": dict(proposals),
        }
        atomic_write_text(self._path, json.dumps(state, ensure_ascii=True, sort_keys=True, indent=2) + "\n")
        return state

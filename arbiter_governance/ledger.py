from __future__ import annotations

import copy
import json
import logging
import os
import threading
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional

from .constants import GENESIS_HASH
from .events import ArbitrationEvent
from .utils import canonical_hash, canonical_json

logger = logging.getLogger("arbiter.governance.ledger")


def _entry_record(entry: Mapping[str, Any]) -> Dict[str, Any]:
    payload = entry.get("payload")
    return {
        "seq": int(entry.get("seq", 0)),
        "event_type": str(entry.get("event_type", "")),
        "timestamp": str(entry.get("timestamp", "")),
        "payload": dict(payload) if isinstance(payload, Mapping) else {},
        "prev_hash": str(entry.get("prev_hash", "")),
    }


class ArbitrationLedger:
    """Append-only, hash-chained audit log of arbitration events.

    Each entry links to its predecessor through ``prev_hash``; editing or
    dropping any entry breaks :meth:`validate_hash_chain`.
    With a ``path`` the chain is also written as JSONL and fsynced per
    append; without one it lives in memory only.
    """

    def __init__(self, path: Path | str | None = None) -> None:
        self._path = Path(path) if path is not None else None
        self._lock = threading.Lock()
        self._hooks: List[Callable[[Dict[str, Any]], Any]] = []
        self._entries: List[Dict[str, Any]] = []
        if self._path is not None:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._entries = self._load_entries(self._path)

    @property
    def path(self) -> Optional[Path]:
        return self._path

    @property
    def head_hash(self) -> str:
        with self._lock:
            return self._entries[-1]["entry_hash"] if self._entries else GENESIS_HASH

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def add_publish_hook(self, hook: Callable[[Dict[str, Any]], Any]) -> None:
        self._hooks.append(hook)

    def remove_publish_hook(self, hook: Callable[[Dict[str, Any]], Any]) -> None:
        if hook in self._hooks:
            self._hooks.remove(hook)

    def append(self, event: ArbitrationEvent | Mapping[str, Any]) -> Dict[str, Any]:
        normalized = ArbitrationEvent.coerce(event)
        with self._lock:
            previous_hash = self._entries[-1]["entry_hash"] if self._entries else GENESIS_HASH
            record = {
                "seq": len(self._entries) + 1,
                "event_type": normalized.type.value,
                "timestamp": normalized.timestamp,
                "payload": dict(normalized.payload),
                "prev_hash": previous_hash,
            }
            persisted = dict(record)
            persisted["entry_hash"] = canonical_hash(record)
            if self._path is not None:
                with self._path.open("a", encoding="utf-8") as handle:
                    handle.write(canonical_json(persisted))
                    handle.write("\n")
                    handle.flush()
                    os.fsync(handle.fileno())
            self._entries.append(persisted)

        for hook in list(self._hooks):
            try:
                hook(copy.deepcopy(persisted))
            except Exception:
                logger.exception("Ledger publish hook failed for entry seq=%s", persisted["seq"])
        return copy.deepcopy(persisted)

    def read_entries(self) -> List[Dict[str, Any]]:
        with self._lock:
            return copy.deepcopy(self._entries)

    def validate_hash_chain(self) -> bool:
        return validate_entries(self.read_entries())

    @staticmethod
    def _load_entries(path: Path) -> List[Dict[str, Any]]:
        if not path.exists():
            return []
        entries: List[Dict[str, Any]] = []
        for line_no, line in enumerate(path.read_text(encoding="utf-8").splitlines(), start=1):
            if not line.strip():
                continue
            try:
                row = json.loads(line)
            except json.JSONDecodeError:
                logger.warning("Skipping unreadable ledger line %s in %s", line_no, path)
                continue
            if isinstance(row, Mapping):
                entries.append(dict(row))
        entries.sort(key=lambda row: int(row.get("seq", 0)))
        return entries


def validate_entries(entries: List[Mapping[str, Any]]) -> bool:
    previous_hash = GENESIS_HASH
    for expected_seq, entry in enumerate(entries, start=1):
        record = _entry_record(entry)
        if record["seq"] != expected_seq:
            return False
        if record["prev_hash"] != previous_hash:
            return False
        if str(entry.get("entry_hash", "")) != canonical_hash(record):
            return False
        previous_hash = str(entry.get("entry_hash", ""))
    return True

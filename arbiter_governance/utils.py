from __future__ import annotations

import hashlib
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Union

from .constants import OUTCOME_HASH_BYTES

Payload = Union[str, bytes]


def iso_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def normalize_agent_id(value: Any) -> str:
    if not isinstance(value, str):
        return ""
    return value.strip().lower()


def canonical_json(value: Any) -> str:
    return json.dumps(value, ensure_ascii=True, sort_keys=True, separators=(",", ":"))


def canonical_hash(value: Any) -> str:
    return hashlib.sha256(canonical_json(value).encode("utf-8")).hexdigest()


def atomic_write_text(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    tmp_path.write_text(text, encoding="utf-8")
    tmp_path.replace(path)


def to_hex(value: bytes) -> str:
    return "0x" + value.hex()


def from_hex(value: str) -> bytes:
    text = value.strip()
    if text[:2].lower() == "0x":
        text = text[2:]
    return bytes.fromhex(text)


def encode_payload(value: Payload) -> tuple[str, str]:
    """Render an opaque config payload as (encoding, text) for JSON records."""
    if isinstance(value, (bytes, bytearray)):
        return "hex", to_hex(bytes(value))
    return "utf-8", str(value)


def decode_payload(encoding: str, text: str) -> Payload:
    if encoding == "hex":
        return from_hex(text)
    return text


def coerce_outcome_hash(value: Any) -> bytes:
    """Accept 32 raw bytes or a 64 hex digit string (optionally 0x-prefixed)."""
    if isinstance(value, (bytes, bytearray)):
        raw = bytes(value)
    elif isinstance(value, str):
        try:
            raw = from_hex(value)
        except ValueError as exc:
            raise ValueError(f"Outcome hash is not valid hex: {value!r}") from exc
    else:
        raise ValueError(f"Unsupported outcome hash type: {type(value)!r}")
    if len(raw) != OUTCOME_HASH_BYTES:
        raise ValueError(f"Outcome hash must be {OUTCOME_HASH_BYTES} bytes, got {len(raw)}.")
    return raw


def outcome_fingerprint(data: Payload) -> bytes:
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.sha256(bytes(data)).digest()

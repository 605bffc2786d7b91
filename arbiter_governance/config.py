from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from .constants import DEFAULT_DECISION_WINDOW, DEFAULT_HOST, DEFAULT_PORT


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


def _optional_path(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


@dataclass(frozen=True)
class ArbiterConfig:
    decision_window: int = DEFAULT_DECISION_WINDOW
    enforce_decision_window: bool = False
    ledger_path: Optional[str] = None
    state_path: Optional[str] = None
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    log_level: str = "info"

    @classmethod
    def from_mapping(cls, config: Mapping[str, Any]) -> "ArbiterConfig":
        try:
            decision_window = int(config.get("decision_window", DEFAULT_DECISION_WINDOW))
            port = int(config.get("port", DEFAULT_PORT))
        except (TypeError, ValueError) as exc:
            raise ValueError(f"Invalid numeric arbiter setting: {exc}") from exc
        if decision_window < 0:
            raise ValueError("decision_window must be non-negative.")

        return cls(
            decision_window=decision_window,
            enforce_decision_window=_as_bool(config.get("enforce_decision_window", False)),
            ledger_path=_optional_path(config.get("ledger_path")),
            state_path=_optional_path(config.get("state_path")),
            host=str(config.get("host", DEFAULT_HOST)).strip() or DEFAULT_HOST,
            port=max(1, port),
            log_level=str(config.get("log_level", "info")).strip().lower() or "info",
        )

    def as_dict(self) -> Dict[str, Any]:
        return {
            "decision_window": self.decision_window,
            "enforce_decision_window": self.enforce_decision_window,
            "ledger_path": self.ledger_path,
            "state_path": self.state_path,
            "host": self.host,
            "port": self.port,
            "log_level": self.log_level,
        }

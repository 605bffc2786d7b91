from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Mapping

from .engine import ArbitrationEngine
from .ledger import validate_entries
from .reconstruct import rebuild_state
from .utils import canonical_hash


@dataclass(frozen=True)
class ReplayResult:
    live_state_hash: str
    replayed_state_hash: str
    chain_valid: bool
    hashes_equal: bool
    entries_processed: int
    error: str | None = None

    @property
    def consistent(self) -> bool:
        return self.chain_valid and self.hashes_equal and self.error is None

    def as_dict(self) -> Dict[str, object]:
        return {
            "live_state_hash": self.live_state_hash,
            "replayed_state_hash": self.replayed_state_hash,
            "chain_valid": self.chain_valid,
            "hashes_equal": self.hashes_equal,
            "entries_processed": self.entries_processed,
            "error": self.error,
        }


def replay_entries(entries: List[Mapping[str, Any]]) -> Dict[str, Any]:
    registry, proposals = rebuild_state(entries)
    return {"registry": registry.snapshot(), "proposals": proposals.snapshot()}


class AuditReplayHarness:
    """Check that an engine's live tables are exactly what its ledger implies."""

    def run(self, engine: ArbitrationEngine) -> ReplayResult:
        entries = engine.ledger.read_entries()
        live_hash = canonical_hash(engine.snapshot())
        chain_valid = validate_entries(entries)
        try:
            replayed_hash = canonical_hash(replay_entries(entries))
        except (KeyError, TypeError, ValueError) as exc:
            return ReplayResult(
                live_state_hash=live_hash,
                replayed_state_hash="",
                chain_valid=chain_valid,
                hashes_equal=False,
                entries_processed=len(entries),
                error=f"{type(exc).__name__}: {exc}",
            )
        return ReplayResult(
            live_state_hash=live_hash,
            replayed_state_hash=replayed_hash,
            chain_valid=chain_valid,
            hashes_equal=live_hash == replayed_hash,
            entries_processed=len(entries),
        )

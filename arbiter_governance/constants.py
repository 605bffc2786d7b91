from __future__ import annotations

REPUTATION_FLOOR = 100
REPUTATION_MAX = 2**256 - 1

OUTCOME_HASH_BYTES = 32
ZERO_HASH = b"\x00" * OUTCOME_HASH_BYTES

GENESIS_HASH = "GENESIS"

STATE_SCHEMA_VERSION = 1

DEFAULT_DECISION_WINDOW = 0
DEFAULT_LEDGER_PATH = "arbiter_state/ledger.jsonl"
DEFAULT_STATE_PATH = "arbiter_state/state.json"
DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8020

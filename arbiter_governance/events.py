from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping

from .utils import iso_now


class EventType(str, Enum):
    AGENT_REGISTERED = "AgentRegistered"
    PROPOSAL_CREATED = "ProposalCreated"
    PREDICTION_SUBMITTED = "PredictionSubmitted"
    DECISION_EXECUTED = "DecisionExecuted"
    OUTCOME_RECORDED = "OutcomeRecorded"
    REPUTATION_UPDATED = "ReputationUpdated"
    STATE_RESTORED = "StateRestored"


@dataclass(slots=True)
class ArbitrationEvent:
    """Audit record emitted by every successful mutating operation."""

    type: EventType
    payload: Dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=iso_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "timestamp": self.timestamp,
            "payload": dict(self.payload),
        }

    @classmethod
    def coerce(cls, raw: "ArbitrationEvent | Mapping[str, Any]") -> "ArbitrationEvent":
        if isinstance(raw, ArbitrationEvent):
            return raw
        if not isinstance(raw, Mapping):
            raise TypeError(f"Unsupported event type for coercion: {type(raw)!r}")

        raw_type = raw.get("type")
        if isinstance(raw_type, EventType):
            event_type = raw_type
        elif isinstance(raw_type, str) and raw_type.strip():
            event_type = EventType(raw_type.strip())
        else:
            raise ValueError("Event must include a valid 'type'.")

        payload = raw.get("payload")
        timestamp = raw.get("timestamp")
        return cls(
            type=event_type,
            payload=dict(payload) if isinstance(payload, Mapping) else {},
            timestamp=timestamp if isinstance(timestamp, str) and timestamp.strip() else iso_now(),
        )

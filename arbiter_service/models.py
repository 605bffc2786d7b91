from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, Field

from arbiter_governance.phases import derive_phase
from arbiter_governance.proposals import Proposal
from arbiter_governance.registry import Agent

CHANNEL_AUDIT_EVENTS = "audit_events"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def paginate(items: List[Mapping[str, Any]], *, limit: int, cursor: str | None) -> Dict[str, Any]:
    page_limit = max(1, min(500, int(limit)))
    start = 0
    if isinstance(cursor, str) and cursor.strip():
        try:
            start = max(0, int(cursor))
        except ValueError:
            start = 0
    page = items[start : start + page_limit]
    next_cursor = None
    if start + page_limit < len(items):
        next_cursor = str(start + page_limit)
    return {
        "items": page,
        "cursor": str(start),
        "next_cursor": next_cursor,
        "total": len(items),
    }


class RegisterAgentRequest(BaseModel):
    identity: str = Field(min_length=1)
    label: str = ""
    initial_reputation: int = Field(default=0, ge=0)

    class Config:
        extra = "ignore"


class ReputationRequest(BaseModel):
    delta: int

    class Config:
        extra = "ignore"


class ProposalRequest(BaseModel):
    config: str
    config_encoding: str = Field(default="utf-8", pattern="^(utf-8|hex)$")
    predicted_value: int = 0

    class Config:
        extra = "ignore"


class PredictionRequest(BaseModel):
    support: bool

    class Config:
        extra = "ignore"


class OutcomeRequest(BaseModel):
    outcome_hash: str = Field(description="32-byte fingerprint as 64 hex digits, optional 0x prefix.")

    class Config:
        extra = "ignore"


class AgentResponse(BaseModel):
    identity: str
    label: str
    reputation: int
    registered: bool

    @classmethod
    def from_agent(cls, agent: Agent) -> "AgentResponse":
        return cls(**agent.as_dict())


class ProposalResponse(BaseModel):
    proposal_id: int
    proposer: str
    config: str
    config_encoding: str
    predicted_value: int
    created_at: float
    decided: bool
    approved: bool
    support_count: int
    oppose_count: int
    outcome_hash: str
    phase: str

    @classmethod
    def from_proposal(cls, proposal: Proposal) -> "ProposalResponse":
        return cls(phase=derive_phase(proposal).value, **proposal.as_dict())


class DecisionResponse(BaseModel):
    proposal_id: int
    approved: bool
    support_count: int
    oppose_count: int


class StreamEnvelope(BaseModel):
    channel: str
    timestamp: str = Field(default_factory=utc_now_iso)
    data: Dict[str, Any] = Field(default_factory=dict)

    class Config:
        extra = "ignore"

    @classmethod
    def from_entry(cls, entry: Mapping[str, Any], *, channel: str = CHANNEL_AUDIT_EVENTS) -> "StreamEnvelope":
        timestamp: Optional[Any] = entry.get("timestamp")
        return cls(
            channel=channel,
            timestamp=timestamp if isinstance(timestamp, str) and timestamp.strip() else utc_now_iso(),
            data=dict(entry),
        )

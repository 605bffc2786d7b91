from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Dict, List, Mapping, Optional

from .constants import REPUTATION_FLOOR, REPUTATION_MAX
from .errors import AlreadyRegistered, UnknownAgent
from .utils import normalize_agent_id


@dataclass
class Agent:
    identity: str
    label: str
    reputation: int
    registered: bool = True

    def as_dict(self) -> Dict[str, Any]:
        return {
            "identity": self.identity,
            "label": self.label,
            "reputation": self.reputation,
            "registered": self.registered,
        }


def apply_reputation_delta(current: int, delta: int) -> int:
    """Add ``delta`` to ``current``.

    Credits saturate at ``REPUTATION_MAX``. A debit larger than the current
    score resets the agent to ``REPUTATION_FLOOR`` instead of zero.
    """
    if delta >= 0:
        return min(REPUTATION_MAX, current + delta)
    penalty = -delta
    if penalty > current:
        return REPUTATION_FLOOR
    return current - penalty


class AgentRegistry:
    """Registered identities, their labels and reputation counters."""

    def __init__(self) -> None:
        self._agents: Dict[str, Agent] = {}
        self._roster: List[str] = []

    @classmethod
    def from_snapshot(cls, snapshot: Mapping[str, Any]) -> "AgentRegistry":
        registry = cls()
        agents_raw = snapshot.get("agents")
        roster_raw = snapshot.get("roster")
        if not isinstance(agents_raw, Mapping) or not isinstance(roster_raw, list):
            raise ValueError("Registry snapshot requires 'agents' mapping and 'roster' list.")
        for identity in roster_raw:
            record = agents_raw.get(identity)
            if not isinstance(record, Mapping):
                raise ValueError(f"Registry snapshot is missing agent '{identity}'.")
            registry.register(identity, str(record.get("label", "")), int(record.get("reputation", 0)))
        return registry

    @property
    def roster(self) -> List[str]:
        return list(self._roster)

    @property
    def count(self) -> int:
        return len(self._roster)

    def is_registered(self, identity: str) -> bool:
        agent = self._agents.get(normalize_agent_id(identity))
        return agent is not None and agent.registered

    def get(self, identity: str) -> Optional[Agent]:
        agent = self._agents.get(normalize_agent_id(identity))
        return replace(agent) if agent is not None else None

    def reputation_of(self, identity: str) -> int:
        return self._require(identity).reputation

    def prepare(self, identity: str, label: str, initial_reputation: int) -> Agent:
        """Validate a registration and return the agent it would create, without storing it."""
        normalized = normalize_agent_id(identity)
        if not normalized:
            raise ValueError("Agent identity cannot be empty.")
        reputation = int(initial_reputation)
        if reputation < 0:
            raise ValueError("Initial reputation must be non-negative.")
        if normalized in self._agents:
            raise AlreadyRegistered(f"Agent '{normalized}' is already registered.")
        return Agent(identity=normalized, label=str(label), reputation=min(reputation, REPUTATION_MAX))

    def register(self, identity: str, label: str, initial_reputation: int) -> Agent:
        agent = self.prepare(identity, label, initial_reputation)
        self._agents[agent.identity] = agent
        self._roster.append(agent.identity)
        return replace(agent)

    def preview_adjustment(self, identity: str, delta: int) -> int:
        return apply_reputation_delta(self._require(identity).reputation, int(delta))

    def adjust_reputation(self, identity: str, delta: int) -> int:
        agent = self._require(identity)
        agent.reputation = apply_reputation_delta(agent.reputation, int(delta))
        return agent.reputation

    def snapshot(self) -> Dict[str, Any]:
        return {
            "roster": list(self._roster),
            "agents": {identity: self._agents[identity].as_dict() for identity in self._roster},
        }

    def _require(self, identity: str) -> Agent:
        normalized = normalize_agent_id(identity)
        agent = self._agents.get(normalized)
        if agent is None:
            raise UnknownAgent(f"Agent '{normalized}' is not registered.")
        return agent

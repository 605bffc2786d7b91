from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Mapping, Optional

from .constants import ZERO_HASH
from .errors import DuplicateVote, UnknownProposal
from .utils import Payload, coerce_outcome_hash, decode_payload, encode_payload, normalize_agent_id, to_hex


@dataclass
class Proposal:
    proposal_id: int
    proposer: str
    config: Payload
    predicted_value: int
    created_at: float
    decided: bool = False
    approved: bool = False
    support_count: int = 0
    oppose_count: int = 0
    outcome_hash: bytes = field(default=ZERO_HASH)

    @property
    def prediction_count(self) -> int:
        return self.support_count + self.oppose_count

    @property
    def outcome_recorded(self) -> bool:
        return self.outcome_hash != ZERO_HASH

    def as_dict(self) -> Dict[str, Any]:
        config_encoding, config_text = encode_payload(self.config)
        return {
            "proposal_id": self.proposal_id,
            "proposer": self.proposer,
            "config": config_text,
            "config_encoding": config_encoding,
            "predicted_value": self.predicted_value,
            "created_at": self.created_at,
            "decided": self.decided,
            "approved": self.approved,
            "support_count": self.support_count,
            "oppose_count": self.oppose_count,
            "outcome_hash": to_hex(self.outcome_hash),
        }

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "Proposal":
        return cls(
            proposal_id=int(raw["proposal_id"]),
            proposer=normalize_agent_id(raw["proposer"]),
            config=decode_payload(str(raw.get("config_encoding", "utf-8")), str(raw.get("config", ""))),
            predicted_value=int(raw.get("predicted_value", 0)),
            created_at=float(raw.get("created_at", 0.0)),
            decided=bool(raw.get("decided", False)),
            approved=bool(raw.get("approved", False)),
            support_count=int(raw.get("support_count", 0)),
            oppose_count=int(raw.get("oppose_count", 0)),
            outcome_hash=coerce_outcome_hash(str(raw.get("outcome_hash", to_hex(ZERO_HASH)))),
        )


@dataclass(frozen=True)
class Prediction:
    support: bool
    has_voted: bool = True

    def as_dict(self) -> Dict[str, Any]:
        return {"support": self.support, "has_voted": self.has_voted}


class ProposalStore:
    """Plain persistence for proposals and their predictions.

    Phase ordering is not checked here; the engine owns workflow legality and
    calls the mutators only after its own preconditions pass.
    """

    def __init__(self) -> None:
        self._proposals: List[Proposal] = []
        self._predictions: Dict[int, Dict[str, Prediction]] = {}

    @classmethod
    def from_snapshot(cls, snapshot: Mapping[str, Any]) -> "ProposalStore":
        store = cls()
        proposals_raw = snapshot.get("proposals")
        predictions_raw = snapshot.get("predictions")
        if not isinstance(proposals_raw, list) or not isinstance(predictions_raw, Mapping):
            raise ValueError("Proposal snapshot requires 'proposals' list and 'predictions' mapping.")

        for expected_id, raw in enumerate(proposals_raw):
            proposal = Proposal.from_dict(raw)
            if proposal.proposal_id != expected_id:
                raise ValueError(f"Proposal ids must be dense; expected {expected_id}, got {proposal.proposal_id}.")
            votes_raw = predictions_raw.get(str(expected_id), {})
            votes = {
                normalize_agent_id(agent): Prediction(support=bool(vote.get("support")))
                for agent, vote in dict(votes_raw).items()
            }
            support = sum(1 for vote in votes.values() if vote.support)
            if (support, len(votes) - support) != (proposal.support_count, proposal.oppose_count):
                raise ValueError(f"Vote counters of proposal {expected_id} do not match its predictions.")
            store._proposals.append(proposal)
            store._predictions[expected_id] = votes
        return store

    @property
    def count(self) -> int:
        return len(self._proposals)

    @property
    def next_id(self) -> int:
        return len(self._proposals)

    def has_proposal(self, proposal_id: int) -> bool:
        if isinstance(proposal_id, bool) or not isinstance(proposal_id, int):
            return False
        return 0 <= proposal_id < len(self._proposals)

    def get(self, proposal_id: int) -> Optional[Proposal]:
        if not self.has_proposal(proposal_id):
            return None
        return replace(self._proposals[proposal_id])

    def create(self, proposer: str, config: Payload, predicted_value: int, timestamp: float) -> int:
        proposal_id = len(self._proposals)
        self._proposals.append(
            Proposal(
                proposal_id=proposal_id,
                proposer=normalize_agent_id(proposer),
                config=config,
                predicted_value=int(predicted_value),
                created_at=float(timestamp),
            )
        )
        self._predictions[proposal_id] = {}
        return proposal_id

    def has_predicted(self, proposal_id: int, agent: str) -> bool:
        return normalize_agent_id(agent) in self._predictions.get(proposal_id, {})

    def prediction_of(self, proposal_id: int, agent: str) -> Optional[Prediction]:
        return self._predictions.get(proposal_id, {}).get(normalize_agent_id(agent))

    def predictors(self, proposal_id: int) -> List[str]:
        return list(self._predictions.get(proposal_id, {}).keys())

    def predictor_count(self, proposal_id: int) -> int:
        return len(self._predictions.get(proposal_id, {}))

    def record_prediction(self, proposal_id: int, agent: str, support: bool) -> Proposal:
        proposal = self._require(proposal_id)
        normalized = normalize_agent_id(agent)
        votes = self._predictions[proposal_id]
        if normalized in votes:
            raise DuplicateVote(f"Agent '{normalized}' already predicted on proposal {proposal_id}.")

        votes[normalized] = Prediction(support=bool(support))
        if support:
            proposal.support_count += 1
        else:
            proposal.oppose_count += 1
        return replace(proposal)

    def mark_decided(self, proposal_id: int, approved: bool) -> Proposal:
        proposal = self._require(proposal_id)
        proposal.decided = True
        proposal.approved = bool(approved)
        return replace(proposal)

    def set_outcome(self, proposal_id: int, outcome_hash: bytes) -> Proposal:
        proposal = self._require(proposal_id)
        proposal.outcome_hash = bytes(outcome_hash)
        return replace(proposal)

    def snapshot(self) -> Dict[str, Any]:
        return {
            "proposals": [proposal.as_dict() for proposal in self._proposals],
            "predictions": {
                str(proposal_id): {agent: vote.as_dict() for agent, vote in votes.items()}
                for proposal_id, votes in self._predictions.items()
            },
        }

    def _require(self, proposal_id: int) -> Proposal:
        if not self.has_proposal(proposal_id):
            raise UnknownProposal(f"Proposal {proposal_id!r} does not exist.")
        return self._proposals[proposal_id]

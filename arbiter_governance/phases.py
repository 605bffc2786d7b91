from __future__ import annotations

from enum import Enum

from .proposals import Proposal


class ProposalPhase(str, Enum):
    CREATED = "CREATED"
    AWAITING_DECISION = "AWAITING_DECISION"
    DECIDED = "DECIDED"
    RECORDED = "RECORDED"

    @property
    def accepts_predictions(self) -> bool:
        return self in (ProposalPhase.CREATED, ProposalPhase.AWAITING_DECISION)

    @property
    def terminal(self) -> bool:
        return self is ProposalPhase.RECORDED


def derive_phase(proposal: Proposal) -> ProposalPhase:
    """Phase of a proposal, computed only from its stored fields.

    ``outcome_hash`` and ``decided`` are the same fields the engine checks
    before every transition, so this view cannot drift from the guards.
    """
    if proposal.outcome_recorded:
        return ProposalPhase.RECORDED
    if proposal.decided:
        return ProposalPhase.DECIDED
    if proposal.prediction_count > 0:
        return ProposalPhase.AWAITING_DECISION
    return ProposalPhase.CREATED


def majority_approves(support_count: int, oppose_count: int) -> bool:
    """Strict majority; a tie rejects."""
    return support_count > oppose_count

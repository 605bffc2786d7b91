from .config import ArbiterConfig
from .constants import REPUTATION_FLOOR, REPUTATION_MAX, ZERO_HASH
from .engine import ArbitrationEngine, ProposalLockTable
from .errors import (
    AlreadyDecided,
    AlreadyRecorded,
    AlreadyRegistered,
    AlreadySubmitted,
    ArbitrationError,
    DecisionPending,
    DuplicateVote,
    InsufficientPredictions,
    InvalidProposal,
    NotRegistered,
    UnknownAgent,
    UnknownProposal,
    WindowClosed,
)
from .events import ArbitrationEvent, EventType
from .ledger import ArbitrationLedger
from .phases import ProposalPhase, derive_phase, majority_approves
from .proposals import Prediction, Proposal, ProposalStore
from .registry import Agent, AgentRegistry
from .replay import AuditReplayHarness, ReplayResult
from .store import ArbitrationStateStore
from .utils import outcome_fingerprint

__all__ = [
    "Agent",
    "AgentRegistry",
    "AlreadyDecided",
    "AlreadyRecorded",
    "AlreadyRegistered",
    "AlreadySubmitted",
    "ArbiterConfig",
    "ArbitrationEngine",
    "ArbitrationError",
    "ArbitrationEvent",
    "ArbitrationLedger",
    "ArbitrationStateStore",
    "AuditReplayHarness",
    "DecisionPending",
    "DuplicateVote",
    "EventType",
    "InsufficientPredictions",
    "InvalidProposal",
    "NotRegistered",
    "Prediction",
    "Proposal",
    "ProposalLockTable",
    "ProposalPhase",
    "ProposalStore",
    "REPUTATION_FLOOR",
    "REPUTATION_MAX",
    "ReplayResult",
    "UnknownAgent",
    "UnknownProposal",
    "WindowClosed",
    "ZERO_HASH",
    "derive_phase",
    "majority_approves",
    "outcome_fingerprint",
]

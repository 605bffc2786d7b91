from __future__ import annotations

import logging
import threading
import time
from contextlib import ExitStack, contextmanager
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, Mapping, Optional

from .config import ArbiterConfig
from .errors import (
    AlreadyDecided,
    AlreadyRecorded,
    AlreadySubmitted,
    ArbitrationError,
    DecisionPending,
    InsufficientPredictions,
    InvalidProposal,
    NotRegistered,
    UnknownAgent,
    WindowClosed,
)
from .events import ArbitrationEvent, EventType
from .ledger import ArbitrationLedger
from .phases import ProposalPhase, derive_phase, majority_approves
from .proposals import Proposal, ProposalStore
from .reconstruct import rebuild_state
from .registry import Agent, AgentRegistry
from .store import ArbitrationStateStore
from .utils import Payload, coerce_outcome_hash, encode_payload, normalize_agent_id, to_hex

logger = logging.getLogger("arbiter.governance.engine")


class ProposalLockTable:
    """One lock per proposal id; different ids never contend."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[int, threading.Lock] = {}

    @contextmanager
    def hold(self, proposal_id: int) -> Iterator[None]:
        with self._guard:
            lock = self._locks.setdefault(proposal_id, threading.Lock())
        with lock:
            yield

    @contextmanager
    def hold_all(self) -> Iterator[None]:
        # The guard stays held so no lock can be handed out mid-snapshot.
        with self._guard, ExitStack() as stack:
            for key in sorted(self._locks):
                stack.enter_context(self._locks[key])
            yield


class ArbitrationEngine:
    """Four-phase proposal workflow over injected registry and proposal stores.

    The engine keeps no protocol state of its own. A proposal's phase is
    always derived from its ``decided`` flag and ``outcome_hash`` (see
    :func:`derive_phase`), and each transition is guarded by exactly those
    fields. Successful mutations append one event to the ledger; rejected
    calls raise an :class:`ArbitrationError` and leave state and ledger
    untouched.
    """

    def __init__(
        self,
        *,
        registry: Optional[AgentRegistry] = None,
        proposals: Optional[ProposalStore] = None,
        ledger: Optional[ArbitrationLedger] = None,
        state_store: Optional[ArbitrationStateStore] = None,
        decision_window: int = 0,
        enforce_decision_window: bool = False,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if int(decision_window) < 0:
            raise ValueError("decision_window must be non-negative.")
        self._registry = registry if registry is not None else AgentRegistry()
        self._proposals = proposals if proposals is not None else ProposalStore()
        self._ledger = ledger if ledger is not None else ArbitrationLedger()
        self._state_store = state_store
        self._decision_window = int(decision_window)
        self._enforce_decision_window = bool(enforce_decision_window)
        self._clock = clock

        self._registry_lock = threading.Lock()
        self._create_lock = threading.Lock()
        self._proposal_locks = ProposalLockTable()

    @classmethod
    def from_config(cls, config: ArbiterConfig | Mapping[str, Any]) -> "ArbitrationEngine":
        resolved = config if isinstance(config, ArbiterConfig) else ArbiterConfig.from_mapping(config)
        ledger = ArbitrationLedger(resolved.ledger_path)
        state_store = ArbitrationStateStore(resolved.state_path) if resolved.state_path else None

        registry: Optional[AgentRegistry] = None
        proposals: Optional[ProposalStore] = None
        restored: Optional[Dict[str, Any]] = None
        if len(ledger) > 0:
            if not ledger.validate_hash_chain():
                raise ValueError(f"Ledger hash chain at {ledger.path} is broken; refusing to start.")
            registry, proposals = rebuild_state(ledger.read_entries())
            logger.info("Rebuilt state from %s ledger entries", len(ledger))
        elif state_store is not None and state_store.exists():
            state = state_store.load()
            registry = AgentRegistry.from_snapshot(state["registry"])
            proposals = ProposalStore.from_snapshot(state["proposals"])
            restored = {"registry": registry.snapshot(), "proposals": proposals.snapshot()}
            logger.info("Loaded state snapshot from %s", state_store.path)

        engine = cls(
            registry=registry,
            proposals=proposals,
            ledger=ledger,
            state_store=state_store,
            decision_window=resolved.decision_window,
            enforce_decision_window=resolved.enforce_decision_window,
        )
        if restored is not None and (restored["registry"]["roster"] or restored["proposals"]["proposals"]):
            # Later events only replay on top of the snapshot they follow.
            engine._emit(EventType.STATE_RESTORED, restored)
            logger.info("Recorded restored snapshot as ledger baseline")
        return engine

    @property
    def registry(self) -> AgentRegistry:
        return self._registry

    @property
    def proposals(self) -> ProposalStore:
        return self._proposals

    @property
    def ledger(self) -> ArbitrationLedger:
        return self._ledger

    @property
    def decision_window(self) -> int:
        return self._decision_window

    @property
    def enforce_decision_window(self) -> bool:
        return self._enforce_decision_window

    # Agent bookkeeping

    def register_agent(self, identity: str, label: str, initial_reputation: int) -> Agent:
        with self._registry_lock:
            try:
                agent = self._registry.prepare(identity, label, initial_reputation)
            except ArbitrationError as exc:
                raise self._rejected("register_agent", exc)
            self._emit(
                EventType.AGENT_REGISTERED,
                {"identity": agent.identity, "label": agent.label, "reputation": agent.reputation},
            )
            agent = self._registry.register(agent.identity, agent.label, agent.reputation)
        logger.info("Registered agent %s (%s) with reputation %s", agent.identity, agent.label, agent.reputation)
        return agent

    def adjust_reputation(self, identity: str, delta: int) -> int:
        normalized = normalize_agent_id(identity)
        with self._registry_lock:
            try:
                reputation = self._registry.preview_adjustment(normalized, delta)
            except ArbitrationError as exc:
                raise self._rejected("adjust_reputation", exc)
            self._emit(
                EventType.REPUTATION_UPDATED,
                {"identity": normalized, "reputation": reputation, "delta": int(delta)},
            )
            self._registry.adjust_reputation(normalized, delta)
        logger.info("Reputation of %s is now %s (delta %s)", normalized, reputation, delta)
        return reputation

    # Proposal workflow

    def submit_proposal(self, caller: str, config: Payload, predicted_value: int) -> int:
        proposer = normalize_agent_id(caller)
        if not isinstance(config, (str, bytes, bytearray)):
            raise ValueError(f"Proposal config must be text or bytes, got {type(config)!r}.")
        if isinstance(config, bytearray):
            config = bytes(config)
        with self._create_lock:
            self._require_registered("submit_proposal", proposer)
            # The id only becomes visible to other callers once the event is on the ledger.
            proposal_id = self._proposals.next_id
            created_at = float(self._clock())
            config_encoding, config_text = encode_payload(config)
            self._emit(
                EventType.PROPOSAL_CREATED,
                {
                    "id": proposal_id,
                    "proposer": proposer,
                    "config": config_text,
                    "config_encoding": config_encoding,
                    "predicted_value": int(predicted_value),
                    "created_at": created_at,
                },
            )
            self._proposals.create(proposer, config, int(predicted_value), created_at)
        logger.info("Proposal %s created by %s", proposal_id, proposer)
        return proposal_id

    def submit_prediction(self, caller: str, proposal_id: int, support: bool) -> None:
        agent = normalize_agent_id(caller)
        self._require_registered("submit_prediction", agent)
        self._require_valid_id("submit_prediction", proposal_id)
        with self._proposal_locks.hold(proposal_id):
            proposal = self._proposals.get(proposal_id)
            if proposal.decided:
                raise self._rejected("submit_prediction", WindowClosed(f"Proposal {proposal_id} is already decided."))
            if self._prediction_deadline_passed(proposal):
                raise self._rejected(
                    "submit_prediction",
                    WindowClosed(f"Decision window of proposal {proposal_id} has expired."),
                )
            if self._proposals.has_predicted(proposal_id, agent):
                raise self._rejected(
                    "submit_prediction",
                    AlreadySubmitted(f"Agent '{agent}' already predicted on proposal {proposal_id}."),
                )

            self._emit(EventType.PREDICTION_SUBMITTED, {"id": proposal_id, "agent": agent, "support": bool(support)})
            self._proposals.record_prediction(proposal_id, agent, bool(support))
        logger.info("Agent %s predicted %s on proposal %s", agent, "support" if support else "oppose", proposal_id)

    def evaluate_decision(self, proposal_id: int) -> bool:
        self._require_valid_id("evaluate_decision", proposal_id)
        with self._proposal_locks.hold(proposal_id):
            proposal = self._proposals.get(proposal_id)
            if proposal.decided:
                raise self._rejected("evaluate_decision", AlreadyDecided(f"Proposal {proposal_id} is already decided."))
            if proposal.prediction_count == 0:
                raise self._rejected(
                    "evaluate_decision",
                    InsufficientPredictions(f"Proposal {proposal_id} has no predictions."),
                )

            approved = majority_approves(proposal.support_count, proposal.oppose_count)
            self._emit(
                EventType.DECISION_EXECUTED,
                {
                    "id": proposal_id,
                    "approved": approved,
                    "support_count": proposal.support_count,
                    "oppose_count": proposal.oppose_count,
                },
            )
            self._proposals.mark_decided(proposal_id, approved)
        logger.info(
            "Proposal %s %s (%s support / %s oppose)",
            proposal_id,
            "approved" if approved else "rejected",
            proposal.support_count,
            proposal.oppose_count,
        )
        return approved

    def record_outcome(self, proposal_id: int, outcome_hash: bytes | str, caller: Optional[str] = None) -> None:
        # Any caller may attest an outcome; ``caller`` is only logged.
        digest = coerce_outcome_hash(outcome_hash)
        self._require_valid_id("record_outcome", proposal_id)
        with self._proposal_locks.hold(proposal_id):
            proposal = self._proposals.get(proposal_id)
            if not proposal.decided:
                raise self._rejected("record_outcome", DecisionPending(f"Proposal {proposal_id} is not decided yet."))
            if proposal.outcome_recorded:
                raise self._rejected(
                    "record_outcome",
                    AlreadyRecorded(f"Outcome of proposal {proposal_id} is already recorded."),
                )

            self._emit(EventType.OUTCOME_RECORDED, {"id": proposal_id, "hash": to_hex(digest)})
            self._proposals.set_outcome(proposal_id, digest)
        logger.info("Outcome %s recorded for proposal %s by %s", to_hex(digest), proposal_id, caller or "anonymous")

    # Reads

    def registered_agent_count(self) -> int:
        return self._registry.count

    def predictor_count(self, proposal_id: int) -> int:
        self._require_valid_id("predictor_count", proposal_id)
        return self._proposals.predictor_count(proposal_id)

    def get_agent(self, identity: str) -> Agent:
        agent = self._registry.get(identity)
        if agent is None:
            raise UnknownAgent(f"Agent '{normalize_agent_id(identity)}' is not registered.")
        return agent

    def get_proposal(self, proposal_id: int) -> Proposal:
        self._require_valid_id("get_proposal", proposal_id)
        return self._proposals.get(proposal_id)

    def phase_of(self, proposal_id: int) -> ProposalPhase:
        return derive_phase(self.get_proposal(proposal_id))

    def snapshot(self) -> Dict[str, Any]:
        with self._create_lock, self._registry_lock, self._proposal_locks.hold_all():
            return {
                "registry": self._registry.snapshot(),
                "proposals": self._proposals.snapshot(),
            }

    def save_state(self) -> Optional[Path]:
        if self._state_store is None:
            return None
        state = self.snapshot()
        self._state_store.save_atomic(registry=state["registry"], proposals=state["proposals"])
        logger.info("Saved state snapshot to %s", self._state_store.path)
        return self._state_store.path

    # Internals

    def _emit(self, event_type: EventType, payload: Dict[str, Any]) -> None:
        self._ledger.append(ArbitrationEvent(type=event_type, payload=payload))

    def _prediction_deadline_passed(self, proposal: Proposal) -> bool:
        if not self._enforce_decision_window or self._decision_window <= 0:
            return False
        return float(self._clock()) > proposal.created_at + self._decision_window

    def _require_registered(self, operation: str, identity: str) -> None:
        if not self._registry.is_registered(identity):
            raise self._rejected(operation, NotRegistered(f"Caller '{identity}' is not a registered agent."))

    def _require_valid_id(self, operation: str, proposal_id: Any) -> None:
        if not self._proposals.has_proposal(proposal_id):
            raise self._rejected(operation, InvalidProposal(f"Proposal {proposal_id!r} does not exist."))

    @staticmethod
    def _rejected(operation: str, exc: ArbitrationError) -> ArbitrationError:
        logger.warning("%s rejected: %s (%s)", operation, exc.code, exc.detail)
        return exc

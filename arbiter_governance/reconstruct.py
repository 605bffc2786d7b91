from __future__ import annotations

from typing import Any, Iterable, Mapping, Tuple

from .events import EventType
from .phases import majority_approves
from .proposals import ProposalStore
from .registry import AgentRegistry
from .utils import coerce_outcome_hash, decode_payload


def rebuild_state(entries: Iterable[Mapping[str, Any]]) -> Tuple[AgentRegistry, ProposalStore]:
    """Rebuild the agent and proposal tables from ledger entries alone.

    Every entry is re-applied through the same store mutators the engine
    uses. Counters and results carried in the payloads are checked against
    the rebuilt state, so an entry that disagrees with its predecessors
    raises ``ValueError``.

    A ``StateRestored`` entry seeds both tables from a snapshot and is only
    valid as the first entry of a ledger.
    """
    registry = AgentRegistry()
    proposals = ProposalStore()
    for index, entry in enumerate(entries):
        event_type = EventType(str(entry.get("event_type", "")))
        payload = entry.get("payload")
        if not isinstance(payload, Mapping):
            raise ValueError(f"Ledger entry {entry.get('seq')} has no payload.")
        if event_type is EventType.STATE_RESTORED:
            if index != 0:
                raise ValueError(f"Ledger entry {entry.get('seq')}: state restore must be the first entry.")
            registry = AgentRegistry.from_snapshot(payload.get("registry") or {})
            proposals = ProposalStore.from_snapshot(payload.get("proposals") or {})
            continue
        _apply(registry, proposals, event_type, payload, seq=entry.get("seq"))
    return registry, proposals


def _apply(
    registry: AgentRegistry,
    proposals: ProposalStore,
    event_type: EventType,
    payload: Mapping[str, Any],
    *,
    seq: Any,
) -> None:
    if event_type is EventType.AGENT_REGISTERED:
        registry.register(str(payload["identity"]), str(payload.get("label", "")), int(payload["reputation"]))
        return

    if event_type is EventType.REPUTATION_UPDATED:
        reputation = registry.adjust_reputation(str(payload["identity"]), int(payload["delta"]))
        if reputation != int(payload["reputation"]):
            raise ValueError(f"Ledger entry {seq}: reputation {payload['reputation']} does not replay ({reputation}).")
        return

    if event_type is EventType.PROPOSAL_CREATED:
        config = decode_payload(str(payload.get("config_encoding", "utf-8")), str(payload.get("config", "")))
        proposal_id = proposals.create(
            str(payload["proposer"]),
            config,
            int(payload.get("predicted_value", 0)),
            float(payload.get("created_at", 0.0)),
        )
        if proposal_id != int(payload["id"]):
            raise ValueError(f"Ledger entry {seq}: proposal id {payload['id']} replays as {proposal_id}.")
        return

    if event_type is EventType.PREDICTION_SUBMITTED:
        proposals.record_prediction(int(payload["id"]), str(payload["agent"]), bool(payload["support"]))
        return

    if event_type is EventType.DECISION_EXECUTED:
        proposal = proposals.mark_decided(int(payload["id"]), bool(payload["approved"]))
        tallies = (int(payload["support_count"]), int(payload["oppose_count"]))
        if tallies != (proposal.support_count, proposal.oppose_count):
            raise ValueError(f"Ledger entry {seq}: decision tallies {tallies} do not match recorded predictions.")
        if proposal.approved != majority_approves(*tallies):
            raise ValueError(f"Ledger entry {seq}: decision result contradicts its tallies.")
        return

    if event_type is EventType.OUTCOME_RECORDED:
        proposals.set_outcome(int(payload["id"]), coerce_outcome_hash(str(payload["hash"])))

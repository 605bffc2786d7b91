from __future__ import annotations

import argparse
import json
import logging
from typing import Any, Dict

from .config import ArbiterConfig
from .engine import ArbitrationEngine
from .replay import AuditReplayHarness
from .utils import outcome_fingerprint

logger = logging.getLogger("arbiter.governance.run_window")


def simulate_window(
    engine: ArbitrationEngine,
    *,
    agents: int,
    proposals: int,
    initial_reputation: int = 1000,
    resources: int = 19,
) -> Dict[str, Any]:
    """Drive one full decision window through the engine.

    Agents take turns proposing; every agent other than the proposer
    predicts, alternating support and oppose. All proposals are then decided
    and given an outcome fingerprint.
    """
    if agents < 2:
        raise ValueError("A decision window needs at least two agents.")
    if proposals < 0:
        raise ValueError("Proposal count must be non-negative.")

    identities = [f"agent_{index}" for index in range(agents)]
    for identity in identities:
        if not engine.registry.is_registered(identity):
            engine.register_agent(identity, identity, initial_reputation)

    proposal_ids = []
    for index in range(proposals):
        proposer = identities[index % agents]
        proposal_ids.append(
            engine.submit_proposal(proposer, f"resource_{index % max(1, resources)}:config", index % 10)
        )

    predictions = 0
    for index, proposal_id in enumerate(proposal_ids):
        proposer_index = index % agents
        for agent_index, identity in enumerate(identities):
            if agent_index == proposer_index:
                continue
            engine.submit_prediction(identity, proposal_id, (agent_index + index) % 2 == 0)
            predictions += 1

    approved = 0
    for proposal_id in proposal_ids:
        if engine.evaluate_decision(proposal_id):
            approved += 1

    for proposal_id in proposal_ids:
        engine.record_outcome(proposal_id, outcome_fingerprint(f"outcome_{proposal_id}"))

    logger.info("Window finished: %s proposals, %s predictions, %s approved", len(proposal_ids), predictions, approved)
    return {
        "agents": agents,
        "proposals": len(proposal_ids),
        "predictions": predictions,
        "approved": approved,
        "rejected": len(proposal_ids) - approved,
        "ledger_entries": len(engine.ledger),
    }


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Simulate one arbitration decision window.")
    parser.add_argument("--agents", type=int, default=7)
    parser.add_argument("--proposals", type=int, default=75)
    parser.add_argument("--initial-reputation", type=int, default=1000)
    parser.add_argument("--decision-window", type=int, default=0)
    parser.add_argument("--ledger-path", type=str, default="")
    parser.add_argument("--state-path", type=str, default="")
    parser.add_argument("--log-level", type=str, default="info")
    return parser


def main() -> None:
    parser = _build_parser()
    args = parser.parse_args()
    logging.basicConfig(level=args.log_level.upper(), format="%(asctime)s %(levelname)s %(message)s")

    config = ArbiterConfig.from_mapping(
        {
            "decision_window": args.decision_window,
            "ledger_path": args.ledger_path,
            "state_path": args.state_path,
            "log_level": args.log_level,
        }
    )
    engine = ArbitrationEngine.from_config(config)
    summary = simulate_window(
        engine,
        agents=args.agents,
        proposals=args.proposals,
        initial_reputation=args.initial_reputation,
    )
    engine.save_state()
    replay = AuditReplayHarness().run(engine)
    summary["chain_valid"] = replay.chain_valid
    summary["replay_consistent"] = replay.consistent
    print(json.dumps(summary, ensure_ascii=True, sort_keys=True))


if __name__ == "__main__":
    main()

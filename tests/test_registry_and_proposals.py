from __future__ import annotations

import unittest

from arbiter_governance import (
    REPUTATION_FLOOR,
    REPUTATION_MAX,
    ZERO_HASH,
    AgentRegistry,
    AlreadyRegistered,
    DuplicateVote,
    ProposalPhase,
    ProposalStore,
    UnknownAgent,
    UnknownProposal,
    derive_phase,
    majority_approves,
)
from arbiter_governance.registry import apply_reputation_delta


class TestAgentRegistry(unittest.TestCase):
    def test_register_preserves_roster_order_and_normalizes_identity(self) -> None:
        registry = AgentRegistry()
        registry.register(" Carol ", "third", 10)
        registry.register("alice", "first", 20)
        registry.register("bob", "second", 30)

        self.assertEqual(registry.roster, ["carol", "alice", "bob"])
        self.assertEqual(registry.count, 3)
        self.assertTrue(registry.is_registered("CAROL"))
        self.assertEqual(registry.reputation_of("alice"), 20)

    def test_double_registration_keeps_first_values(self) -> None:
        registry = AgentRegistry()
        registry.register("alice", "original", 1000)
        with self.assertRaises(AlreadyRegistered):
            registry.register("alice", "impostor", 5)

        agent = registry.get("alice")
        self.assertEqual(agent.label, "original")
        self.assertEqual(agent.reputation, 1000)
        self.assertEqual(registry.roster, ["alice"])

    def test_register_rejects_empty_identity_and_negative_reputation(self) -> None:
        registry = AgentRegistry()
        with self.assertRaises(ValueError):
            registry.register("   ", "blank", 1)
        with self.assertRaises(ValueError):
            registry.register("alice", "negative", -1)
        self.assertEqual(registry.count, 0)

    def test_reputation_floor_and_credit(self) -> None:
        registry = AgentRegistry()
        registry.register("alice", "a", 1000)
        registry.register("bob", "b", 1000)

        self.assertEqual(registry.adjust_reputation("alice", -2000), REPUTATION_FLOOR)
        self.assertEqual(registry.adjust_reputation("bob", 50), 1050)
        self.assertEqual(registry.adjust_reputation("bob", -1050), 0)

    def test_reputation_delta_rules(self) -> None:
        self.assertEqual(apply_reputation_delta(1000, -2000), 100)
        self.assertEqual(apply_reputation_delta(1000, -1000), 0)
        self.assertEqual(apply_reputation_delta(0, -1), 100)
        self.assertEqual(apply_reputation_delta(50, -20), 30)
        self.assertEqual(apply_reputation_delta(REPUTATION_MAX - 1, 10), REPUTATION_MAX)

    def test_unknown_agent_lookups_fail(self) -> None:
        registry = AgentRegistry()
        with self.assertRaises(UnknownAgent):
            registry.adjust_reputation("ghost", 1)
        with self.assertRaises(UnknownAgent):
            registry.reputation_of("ghost")
        self.assertIsNone(registry.get("ghost"))
        self.assertFalse(registry.is_registered("ghost"))

    def test_get_returns_detached_copy(self) -> None:
        registry = AgentRegistry()
        registry.register("alice", "a", 10)
        copy = registry.get("alice")
        copy.reputation = 999
        self.assertEqual(registry.reputation_of("alice"), 10)

    def test_snapshot_round_trip(self) -> None:
        registry = AgentRegistry()
        registry.register("bob", "b", 7)
        registry.register("alice", "a", 3)
        registry.adjust_reputation("alice", -10)

        restored = AgentRegistry.from_snapshot(registry.snapshot())
        self.assertEqual(restored.snapshot(), registry.snapshot())
        self.assertEqual(restored.roster, ["bob", "alice"])


class TestProposalStore(unittest.TestCase):
    def test_ids_are_dense_and_duplicates_allowed(self) -> None:
        store = ProposalStore()
        first = store.create("alice", "resource_0:config", 10, 1.0)
        second = store.create("alice", "resource_0:config", 10, 2.0)
        self.assertEqual((first, second), (0, 1))
        self.assertEqual(store.count, 2)

        proposal = store.get(0)
        self.assertFalse(proposal.decided)
        self.assertFalse(proposal.approved)
        self.assertEqual(proposal.outcome_hash, ZERO_HASH)
        self.assertEqual((proposal.support_count, proposal.oppose_count), (0, 0))

    def test_record_prediction_counts_and_rejects_duplicates(self) -> None:
        store = ProposalStore()
        proposal_id = store.create("alice", "cfg", -3, 1.0)
        store.record_prediction(proposal_id, "bob", True)
        store.record_prediction(proposal_id, "carol", False)
        store.record_prediction(proposal_id, "dave", True)

        with self.assertRaises(DuplicateVote):
            store.record_prediction(proposal_id, "BOB", False)

        proposal = store.get(proposal_id)
        self.assertEqual((proposal.support_count, proposal.oppose_count), (2, 1))
        self.assertEqual(proposal.prediction_count, store.predictor_count(proposal_id))
        self.assertEqual(store.predictors(proposal_id), ["bob", "carol", "dave"])
        self.assertTrue(store.prediction_of(proposal_id, "bob").support)
        self.assertTrue(store.prediction_of(proposal_id, "bob").has_voted)

    def test_out_of_range_ids_are_unknown(self) -> None:
        store = ProposalStore()
        store.create("alice", "cfg", 0, 1.0)
        for bad_id in (-1, 1, 99, True, "0"):
            self.assertFalse(store.has_proposal(bad_id))
        with self.assertRaises(UnknownProposal):
            store.record_prediction(5, "bob", True)
        with self.assertRaises(UnknownProposal):
            store.mark_decided(5, True)
        with self.assertRaises(UnknownProposal):
            store.set_outcome(5, b"\x01" * 32)

    def test_mutators_do_not_check_phase_order(self) -> None:
        store = ProposalStore()
        proposal_id = store.create("alice", "cfg", 0, 1.0)
        store.set_outcome(proposal_id, b"\x02" * 32)
        self.assertFalse(store.get(proposal_id).decided)
        self.assertEqual(store.get(proposal_id).outcome_hash, b"\x02" * 32)

    def test_snapshot_round_trip_keeps_bytes_config(self) -> None:
        store = ProposalStore()
        store.create("alice", b"\x00\xffraw", 4, 12.5)
        store.create("bob", "text config", -4, 13.0)
        store.record_prediction(0, "bob", False)
        store.mark_decided(0, False)

        restored = ProposalStore.from_snapshot(store.snapshot())
        self.assertEqual(restored.snapshot(), store.snapshot())
        self.assertEqual(restored.get(0).config, b"\x00\xffraw")
        self.assertEqual(restored.get(1).config, "text config")

    def test_snapshot_with_inconsistent_counters_is_refused(self) -> None:
        store = ProposalStore()
        store.create("alice", "cfg", 0, 1.0)
        store.record_prediction(0, "bob", True)
        snapshot = store.snapshot()
        snapshot["proposals"][0]["support_count"] = 5
        with self.assertRaises(ValueError):
            ProposalStore.from_snapshot(snapshot)


class TestPhaseDerivation(unittest.TestCase):
    def test_phase_follows_stored_fields(self) -> None:
        store = ProposalStore()
        proposal_id = store.create("alice", "cfg", 0, 1.0)
        self.assertIs(derive_phase(store.get(proposal_id)), ProposalPhase.CREATED)

        store.record_prediction(proposal_id, "bob", True)
        self.assertIs(derive_phase(store.get(proposal_id)), ProposalPhase.AWAITING_DECISION)
        self.assertTrue(ProposalPhase.AWAITING_DECISION.accepts_predictions)

        store.mark_decided(proposal_id, True)
        self.assertIs(derive_phase(store.get(proposal_id)), ProposalPhase.DECIDED)
        self.assertFalse(ProposalPhase.DECIDED.accepts_predictions)

        store.set_outcome(proposal_id, b"\x07" * 32)
        phase = derive_phase(store.get(proposal_id))
        self.assertIs(phase, ProposalPhase.RECORDED)
        self.assertTrue(phase.terminal)

    def test_majority_rule_ties_reject(self) -> None:
        self.assertTrue(majority_approves(2, 1))
        self.assertFalse(majority_approves(1, 1))
        self.assertFalse(majority_approves(3, 3))
        self.assertFalse(majority_approves(0, 1))


if __name__ == "__main__":
    unittest.main()

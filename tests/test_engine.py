"""
Governance Engine Test Suite

Coverage:
  - Exhaustive dispatch: every OpType has an operation class and a handler
  - Atomicity: a failing operation leaves the state root unchanged and
    produces no effects
  - process(): engine errors become failed results with an error kind
  - operation_from_dict(): replay-file deserialization
  - Admin parameter updates and the funds guard
"""

from decimal import Decimal

import pytest

from harness import ADMIN, APP_ID, GOV, WEEK, Chain, coins, dec, make_host
from vegov.coins import Coin
from vegov.config import Tier
from vegov.context import ExecContext
from vegov.engine import OPERATIONS, GovernanceEngine, OpType, operation_from_dict
from vegov.engine.operations import (
    ClaimDelegated,
    Delegate,
    FinalizeEmission,
    Lock,
    RaiseProposal,
    RegisterDelegate,
    UpdateAdmin,
    UpdateTiers,
    UpdateVestingLedger,
    UpdateVotingPeriod,
    Vote,
)
from vegov.exceptions import (
    ConfigurationError,
    FundsNotAllowedError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from vegov.host import StaticHost
from vegov.storage import KVStore

ALICE = "alice"


def _ctx(sender, funds=()):
    return ExecContext(sender=sender, time=0, height=1, funds=funds)


class FailingSurplusHost(StaticHost):
    """Host whose surplus query fails after the emission ledger is written."""

    def get_surplus_reward(self, app_id, asset_id):
        raise NotFoundError(f"Surplus asset {asset_id} unavailable")


# ═══════════════════════════════════════════════════════════════════════
#  DISPATCH
# ═══════════════════════════════════════════════════════════════════════

class TestDispatch:

    def test_every_op_type_has_a_class_and_handler(self, engine):
        assert set(OPERATIONS) == set(OpType)
        assert set(engine._handlers) == set(OpType)

    def test_operation_classes_carry_their_tag(self):
        for op_type, cls in OPERATIONS.items():
            assert cls.op_type == op_type

    def test_seeds_global_state_once(self, config, host):
        store = KVStore()
        first = GovernanceEngine(config, host, store)
        first.process(UpdateVotingPeriod(100), _ctx(ADMIN))
        second = GovernanceEngine(config, host, store)
        assert second.state.load().voting_period == 100

    def test_seeds_emission_records(self, engine):
        emission = engine.proposals.emission(APP_ID)
        assert emission.total_rewards == 1_000_000
        assert emission.emission_rate == Decimal("0.10")


# ═══════════════════════════════════════════════════════════════════════
#  ATOMICITY
# ═══════════════════════════════════════════════════════════════════════

class TestAtomicity:
    """Failed operations leave no trace."""

    def test_rollback_after_partial_writes(self, config):
        base = make_host()
        host = FailingSurplusHost(
            apps=base.apps,
            asset_denoms=base.asset_denoms,
            total_supply=base.total_supply,
            eligible_pairs=base.eligible_pairs,
            whitelisted=base.whitelisted,
        )
        chain = Chain(GovernanceEngine(config, host))
        chain.run(ALICE, Lock(APP_ID, Tier.T4), coins(1000))
        pid = chain.run(ADMIN, RaiseProposal(APP_ID)).data["proposal"]["id"]
        chain.advance(WEEK)

        root = chain.engine.state_root()
        result = chain.process(ADMIN, FinalizeEmission(pid))
        assert not result.success
        assert result.error_kind == "not_found"
        assert result.effects == []
        assert chain.engine.state_root() == root
        assert chain.engine.proposals.emission(APP_ID).rewards_pending == 1_000_000
        assert not chain.engine.proposals.get(pid).emission_completed

    def test_rollback_removes_created_keys(self, chain):
        chain.run(ADMIN, RegisterDelegate("dave", "0xFEE", dec("0.1"), dec("0.05")))
        chain.run(ALICE, Lock(APP_ID, Tier.T4), coins(100))
        chain.run(ALICE, Delegate("dave", GOV, dec(1)))
        pid = chain.run(ADMIN, RaiseProposal(APP_ID)).data["proposal"]["id"]
        chain.run("dave", Vote(APP_ID, pid, (1,), GOV, (dec(1),)))
        chain.advance(WEEK)
        chain.run(ADMIN, FinalizeEmission(pid))

        # no bribe was deposited, so the claim fails after marking the proposal
        root = chain.engine.state_root()
        result = chain.process(ALICE, ClaimDelegated("dave", APP_ID))
        assert not result.success
        assert result.error_kind == "validation"
        assert chain.engine.state_root() == root
        assert not chain.engine.delegated_claims.claimed.has((ALICE, pid))

        # proposal is still unclaimed
        result = chain.process(ALICE, ClaimDelegated("dave", APP_ID, pid))
        assert result.error == "No rewards to claim."

    def test_failed_vote_keeps_root(self, chain):
        chain.run(ALICE, Lock(APP_ID, Tier.T4), coins(100))
        pid = chain.run(ADMIN, RaiseProposal(APP_ID)).data["proposal"]["id"]
        root = chain.engine.state_root()
        result = chain.process(ALICE, Vote(APP_ID, pid, (1, 99), GOV, (dec("0.5"), dec("0.5"))))
        assert not result.success
        assert chain.engine.state_root() == root

    def test_execute_raises(self, chain):
        with pytest.raises(UnauthorizedError):
            chain.run(ALICE, RaiseProposal(APP_ID))

    def test_state_root_changes_on_success(self, chain):
        root = chain.engine.state_root()
        chain.run(ALICE, Lock(APP_ID, Tier.T4), coins(100))
        assert chain.engine.state_root() != root

    def test_identical_histories_share_root(self, config):
        roots = []
        for _ in range(2):
            chain = Chain(GovernanceEngine(config, make_host()))
            chain.run(ALICE, Lock(APP_ID, Tier.T4), coins(100))
            chain.run(ADMIN, RaiseProposal(APP_ID))
            roots.append(chain.engine.state_root())
        assert roots[0] == roots[1]


# ═══════════════════════════════════════════════════════════════════════
#  PROCESS RESULTS
# ═══════════════════════════════════════════════════════════════════════

class TestProcess:

    @pytest.mark.parametrize("sender, op, funds, kind", [
        (ALICE, RaiseProposal(APP_ID), (), "unauthorized"),
        (ALICE, Lock(APP_ID, Tier.T1), (), "validation"),
        (ALICE, Lock(42, Tier.T1), (Coin(GOV, 10),), "not_found"),
        (ADMIN, UpdateTiers(((Tier.T1, 10, Decimal("0.9")),)), (), "configuration"),
    ])
    def test_error_kinds(self, chain, sender, op, funds, kind):
        result = chain.process(sender, op, funds)
        assert not result.success
        assert result.error_kind == kind
        assert result.to_dict()["errorKind"] == kind

    def test_success_result(self, chain):
        result = chain.process(ALICE, Lock(APP_ID, Tier.T4), coins(100))
        d = result.to_dict()
        assert d["op"] == "LOCK"
        assert d["success"] is True
        assert d["data"]["entry"]["tier"] == "T4"
        assert d["effects"] == []


# ═══════════════════════════════════════════════════════════════════════
#  ADMIN
# ═══════════════════════════════════════════════════════════════════════

class TestAdmin:

    def test_update_voting_period(self, chain):
        chain.run(ADMIN, UpdateVotingPeriod(3600))
        p = chain.run(ADMIN, RaiseProposal(APP_ID)).data["proposal"]
        assert p["votingEnd"] - p["votingStart"] == 3600

    def test_voting_period_must_be_positive(self, chain):
        with pytest.raises(ValidationError, match="must be positive"):
            chain.run(ADMIN, UpdateVotingPeriod(0))

    def test_update_admin(self, chain):
        chain.run(ADMIN, UpdateAdmin("newadmin"))
        with pytest.raises(UnauthorizedError):
            chain.run(ADMIN, RaiseProposal(APP_ID))
        assert chain.run("newadmin", RaiseProposal(APP_ID)).success

    def test_update_tiers(self, chain):
        chain.run(ADMIN, UpdateTiers(((Tier.T1, 86_400, Decimal("0.1")),)))
        chain.run(ALICE, Lock(APP_ID, Tier.T1), coins(100))
        entry = chain.engine.ledger.entries_of(ALICE, GOV)[0]
        assert entry.vote_token.amount == 10
        assert entry.end_time - entry.start_time == 86_400

    def test_update_tiers_must_stay_increasing(self, chain):
        with pytest.raises(ConfigurationError, match="strictly increasing"):
            chain.run(ADMIN, UpdateTiers(((Tier.T2, 10, Decimal("0.5")),)))

    def test_existing_entries_keep_terms(self, chain):
        chain.run(ALICE, Lock(APP_ID, Tier.T1), coins(100))
        chain.run(ADMIN, UpdateTiers(((Tier.T1, 86_400, Decimal("0.1")),)))
        assert chain.engine.ledger.vote_weight(ALICE, GOV) == 25

    def test_update_vesting_ledger(self, chain):
        chain.run(ADMIN, UpdateVestingLedger("vesting"))
        assert chain.engine.state.load().vesting_ledger == "vesting"

    def test_admin_ops_reject_funds(self, chain):
        with pytest.raises(FundsNotAllowedError):
            chain.run(ADMIN, UpdateVotingPeriod(100), coins(1))

    def test_non_admin(self, chain):
        with pytest.raises(UnauthorizedError):
            chain.run(ALICE, UpdateVotingPeriod(100))


# ═══════════════════════════════════════════════════════════════════════
#  DESERIALIZATION
# ═══════════════════════════════════════════════════════════════════════

class TestOperationFromDict:

    def test_vote(self):
        op = operation_from_dict({
            "op": "vote", "app_id": "1", "proposal_id": 2,
            "pairs": [1, "3"], "denom": GOV, "ratios": ["0.5", 0.25],
        })
        assert op == Vote(1, 2, (1, 3), GOV, (Decimal("0.5"), Decimal("0.25")))

    def test_lock_with_tier_name(self):
        op = operation_from_dict({"op": "LOCK", "app_id": 1, "tier": "t3"})
        assert op == Lock(1, Tier.T3)

    def test_update_tiers(self):
        op = operation_from_dict({
            "op": "UPDATE_TIERS",
            "tiers": {"t1": {"duration": 10, "weight": "0.1"}},
        })
        assert op == UpdateTiers(((Tier.T1, 10, Decimal("0.1")),))

    def test_unknown_operation(self):
        with pytest.raises(ValidationError, match="Unknown operation"):
            operation_from_dict({"op": "MINT"})

    def test_missing_field(self):
        with pytest.raises(ValidationError, match="Invalid VOTE operation"):
            operation_from_dict({"op": "VOTE", "app_id": 1})

    def test_optional_fields(self):
        op = operation_from_dict({"op": "CLAIM_DELEGATED", "delegate": "dave", "app_id": 1})
        assert op.proposal_id is None

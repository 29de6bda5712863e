"""
Vote Tally Test Suite

Coverage:
  - Weighted allocation across eligible pairs
  - Re-voting retracts the previous allocation from every pair total
  - Ratio validation (length, duplicates, positivity, sum)
  - Window, denom, eligibility and voting-power checks
  - Bribe deposits against (proposal, pair)
"""

from decimal import Decimal

import pytest

from harness import ADMIN, APP_ID, GOV, USD, WEEK, coins, dec
from vegov.config import Tier
from vegov.engine.operations import Bribe, Lock, RaiseProposal, Vote
from vegov.exceptions import NotFoundError, ValidationError
from vegov.governance import validate_ratios

ALICE = "alice"
BOB = "bob"


@pytest.fixture
def proposal(chain):
    chain.run(ALICE, Lock(APP_ID, Tier.T4), coins(100))
    chain.run(BOB, Lock(APP_ID, Tier.T2), coins(100))
    return chain.run(ADMIN, RaiseProposal(APP_ID)).data["proposal"]["id"]


def _vote(pid, pairs, ratios):
    return Vote(APP_ID, pid, tuple(pairs), GOV, tuple(dec(r) for r in ratios))


# ═══════════════════════════════════════════════════════════════════════
#  RATIO VALIDATION
# ═══════════════════════════════════════════════════════════════════════

class TestValidateRatios:

    def test_accepts_partial_allocation(self):
        validate_ratios([1, 2], [Decimal("0.3"), Decimal("0.3")])

    def test_accepts_full_allocation(self):
        validate_ratios([1, 2, 3], [Decimal("0.5"), Decimal("0.25"), Decimal("0.25")])

    @pytest.mark.parametrize("pairs, ratios, message", [
        ([], [], "At least one pair"),
        ([1, 2], [Decimal("0.5")], "2 pair\\(s\\) but 1 ratio"),
        ([1, 1], [Decimal("0.5"), Decimal("0.5")], "Duplicate pair"),
        ([1], [Decimal("0")], "must be positive"),
        ([1], [Decimal("-0.1")], "must be positive"),
        ([1, 2], [Decimal("0.6"), Decimal("0.5")], "more than 1"),
    ])
    def test_rejects(self, pairs, ratios, message):
        with pytest.raises(ValidationError, match=message):
            validate_ratios(pairs, ratios)


# ═══════════════════════════════════════════════════════════════════════
#  VOTING
# ═══════════════════════════════════════════════════════════════════════

class TestVote:
    """Allocation of voting power across pairs."""

    def test_allocates_weight(self, chain, proposal):
        result = chain.run(ALICE, _vote(proposal, [1, 2], ["0.6", "0.4"]))
        tally = chain.engine.tally
        assert tally.pair_total(proposal, 1) == 60
        assert tally.pair_total(proposal, 2) == 40
        assert result.data["vote"]["votingPower"] == "100"
        assert chain.engine.proposals.get(proposal).total_voted_weight == 100

    def test_partial_allocation_leaves_weight_unused(self, chain, proposal):
        chain.run(ALICE, _vote(proposal, [1], ["0.25"]))
        assert chain.engine.tally.pair_total(proposal, 1) == 25
        assert chain.engine.proposals.get(proposal).total_voted_weight == 25

    def test_weights_are_floored(self, chain, proposal):
        chain.run(BOB, _vote(proposal, [1, 2], ["0.33", "0.33"]))
        # Bob holds 50 vote tokens at T2
        assert chain.engine.tally.pair_total(proposal, 1) == 16
        assert chain.engine.tally.pair_total(proposal, 2) == 16

    def test_totals_accumulate_across_voters(self, chain, proposal):
        chain.run(ALICE, _vote(proposal, [1], ["1"]))
        chain.run(BOB, _vote(proposal, [1], ["1"]))
        assert chain.engine.tally.pair_totals(proposal) == {1: 150}

    def test_revote_retracts_previous_allocation(self, chain, proposal):
        chain.run(ALICE, _vote(proposal, [1], ["1"]))
        chain.run(BOB, _vote(proposal, [1], ["1"]))
        chain.run(ALICE, _vote(proposal, [2, 3], ["0.5", "0.5"]))

        tally = chain.engine.tally
        assert tally.pair_total(proposal, 1) == 50
        assert tally.pair_total(proposal, 2) == 50
        assert tally.pair_total(proposal, 3) == 50
        assert chain.engine.proposals.get(proposal).total_voted_weight == 150

        record = tally.get_vote(ALICE, proposal)
        assert [vp.pair_id for vp in record.pairs] == [2, 3]

    def test_revote_same_allocation_is_idempotent(self, chain, proposal):
        chain.run(ALICE, _vote(proposal, [1], ["1"]))
        chain.run(ALICE, _vote(proposal, [1], ["1"]))
        assert chain.engine.tally.pair_total(proposal, 1) == 100
        assert chain.engine.proposals.get(proposal).total_voted_weight == 100

    def test_revote_uses_current_power(self, chain, proposal):
        chain.run(ALICE, _vote(proposal, [1], ["1"]))
        chain.run(ALICE, Lock(APP_ID, Tier.T4), coins(50))
        chain.run(ALICE, _vote(proposal, [1], ["1"]))
        assert chain.engine.tally.pair_total(proposal, 1) == 150

    def test_has_voted(self, chain, proposal):
        assert not chain.engine.tally.has_voted(ALICE, proposal)
        chain.run(ALICE, _vote(proposal, [1], ["1"]))
        assert chain.engine.tally.has_voted(ALICE, proposal)

    def test_pair_not_in_proposal(self, chain, proposal):
        with pytest.raises(ValidationError, match="Extended pair 99 does not exist in proposal"):
            chain.run(ALICE, _vote(proposal, [99], ["1"]))

    def test_no_tokens_locked(self, chain, proposal):
        with pytest.raises(ValidationError, match="No tokens locked to perform voting"):
            chain.run("carol", _vote(proposal, [1], ["1"]))

    def test_window_closed(self, chain, proposal):
        chain.advance(WEEK)
        with pytest.raises(ValidationError, match="not open for voting"):
            chain.run(ALICE, _vote(proposal, [1], ["1"]))

    def test_last_second_of_window(self, chain, proposal):
        chain.advance(WEEK - 1)
        assert chain.run(ALICE, _vote(proposal, [1], ["1"])).success

    def test_wrong_denom(self, chain, proposal):
        with pytest.raises(ValidationError, match="Voting denom must be ucmdx"):
            chain.run(ALICE, Vote(APP_ID, proposal, (1,), USD, (dec(1),)))

    def test_wrong_app(self, chain, proposal):
        with pytest.raises(ValidationError, match="belongs to app 1"):
            chain.run(ALICE, Vote(2, proposal, (1,), GOV, (dec(1),)))

    def test_unknown_proposal(self, chain, proposal):
        with pytest.raises(NotFoundError):
            chain.run(ALICE, _vote(99, [1], ["1"]))

    def test_failed_revote_keeps_previous(self, chain, proposal):
        chain.run(ALICE, _vote(proposal, [1], ["1"]))
        with pytest.raises(ValidationError):
            chain.run(ALICE, _vote(proposal, [2, 99], ["0.5", "0.5"]))
        assert chain.engine.tally.pair_total(proposal, 1) == 100
        assert chain.engine.tally.pair_total(proposal, 2) == 0


# ═══════════════════════════════════════════════════════════════════════
#  BRIBES
# ═══════════════════════════════════════════════════════════════════════

class TestBribe:
    """Deposits into (proposal, pair) pools."""

    def test_deposits_accumulate(self, chain, proposal):
        chain.run("briber", Bribe(proposal, 1), coins(300, USD))
        result = chain.run("other", Bribe(proposal, 1), coins(200, USD))
        assert result.data["pool"] == [{"denom": USD, "amount": "500"}]
        assert chain.engine.bribes.pools_of(proposal) == {1: chain.engine.bribes.pool(proposal, 1)}

    def test_multiple_denoms_per_pool(self, chain, proposal):
        chain.run("briber", Bribe(proposal, 1), coins(300, USD))
        chain.run("briber", Bribe(proposal, 1), coins(5, "uatom"))
        denoms = [c.denom for c in chain.engine.bribes.pool(proposal, 1)]
        assert denoms == ["uatom", USD]

    def test_asset_not_whitelisted(self, chain, proposal):
        with pytest.raises(ValidationError, match="not whitelisted"):
            chain.run("briber", Bribe(proposal, 1), coins(300, "ufoo"))

    def test_invalid_pair(self, chain, proposal):
        with pytest.raises(ValidationError, match="Invalid Extended pair 99"):
            chain.run("briber", Bribe(proposal, 99), coins(300, USD))

    def test_proposal_not_active(self, chain, proposal):
        chain.advance(WEEK)
        with pytest.raises(ValidationError, match="is not active"):
            chain.run("briber", Bribe(proposal, 1), coins(300, USD))

    def test_requires_funds(self, chain, proposal):
        with pytest.raises(ValidationError, match="No funds attached"):
            chain.run("briber", Bribe(proposal, 1))

"""
Proposal Lifecycle Test Suite

Coverage:
  - raise_proposal: admin only, one open voting window per app, sequential ids,
    sorted unique eligible pairs
  - finalize_emission: window boundary, emission / rebase / foundation figures,
    emission ledger bookkeeping, pair and pool allocations, surplus transfer
  - finalize_foundation: ordering, equal floor split across canonical
    addresses, single payout
  - Emission admin updates
"""

from decimal import Decimal

import pytest

from harness import ADMIN, APP_ID, GOV, USD, WEEK, coins, dec
from vegov.coins import Coin
from vegov.config import Tier
from vegov.effects import FoundationPayout, MintEmission, MintRebase, PairAllocation, TransferSurplus
from vegov.engine.operations import (
    FinalizeEmission,
    FinalizeFoundation,
    Lock,
    RaiseProposal,
    SetEmission,
    UpdateEmissionRate,
    UpdateFoundation,
    Vote,
)
from vegov.exceptions import NotFoundError, UnauthorizedError, ValidationError
from vegov.governance import ProposalStatus

ALICE = "alice"
BOB = "bob"


def _raise(chain):
    return chain.run(ADMIN, RaiseProposal(APP_ID)).data["proposal"]["id"]


# ═══════════════════════════════════════════════════════════════════════
#  RAISE PROPOSAL
# ═══════════════════════════════════════════════════════════════════════

class TestRaiseProposal:
    """Proposal creation."""

    def test_creates_voting_proposal(self, chain):
        pid = _raise(chain)
        p = chain.engine.proposals.get(pid)
        assert pid == 1
        assert p.gov_denom == GOV
        assert p.voting_start == chain.time
        assert p.voting_end == chain.time + WEEK
        assert p.status_at(chain.time) == ProposalStatus.VOTING
        assert chain.engine.proposals.current_proposal(APP_ID) == p

    def test_eligible_pairs_sorted_unique(self, chain):
        pid = _raise(chain)
        assert chain.engine.proposals.get(pid).eligible_pairs == (1, 2, 3, 1_000_001)

    def test_admin_only(self, chain):
        with pytest.raises(UnauthorizedError):
            chain.run(ALICE, RaiseProposal(APP_ID))

    def test_one_open_proposal_per_app(self, chain):
        _raise(chain)
        chain.advance(WEEK - 1)
        with pytest.raises(ValidationError, match="Previous proposal #1 in voting state"):
            chain.run(ADMIN, RaiseProposal(APP_ID))

    def test_next_proposal_after_window(self, chain):
        _raise(chain)
        chain.advance(WEEK)
        assert _raise(chain) == 2
        assert chain.engine.proposals.current_proposal(APP_ID).id == 2

    def test_unknown_app(self, chain):
        with pytest.raises(NotFoundError):
            chain.run(ADMIN, RaiseProposal(42))

    def test_no_eligible_pairs(self, chain, host):
        host.eligible_pairs[APP_ID] = []
        with pytest.raises(ValidationError, match="No eligible pairs"):
            chain.run(ADMIN, RaiseProposal(APP_ID))


# ═══════════════════════════════════════════════════════════════════════
#  FINALIZE EMISSION
# ═══════════════════════════════════════════════════════════════════════

class TestFinalizeEmission:
    """Emission, rebase and foundation figures at close."""

    def test_finalized_in_id_order(self, chain):
        first = _raise(chain)
        chain.advance(WEEK)
        second = _raise(chain)
        chain.advance(WEEK)
        with pytest.raises(ValidationError, match="Proposal #1 of app 1 must be finalized before #2"):
            chain.run(ADMIN, FinalizeEmission(second))
        assert not chain.engine.proposals.get(second).emission_completed

        chain.run(ADMIN, FinalizeEmission(first))
        chain.run(ADMIN, FinalizeEmission(second))
        assert chain.engine.proposals.completed_proposals(APP_ID) == [first, second]

    def _closed(self, chain):
        chain.run(ALICE, Lock(APP_ID, Tier.T4), coins(1000))
        pid = _raise(chain)
        chain.advance(WEEK)
        return pid

    def test_rejected_before_window_ends(self, chain):
        pid = _raise(chain)
        chain.advance(WEEK - 1)
        with pytest.raises(ValidationError, match="ends at"):
            chain.run(ADMIN, FinalizeEmission(pid))

    def test_figures(self, chain):
        pid = self._closed(chain)
        figures = chain.engine.proposals.emission_figures(APP_ID, GOV)
        assert figures.percentage_locked == Decimal("0.1")
        assert figures.raw == 100_000
        assert figures.effective == 90_000
        assert figures.foundation == 9_000
        assert figures.rebase == 10_000

        result = chain.run(ADMIN, FinalizeEmission(pid))
        p = chain.engine.proposals.get(pid)
        assert p.emission_completed and p.rebase_completed
        assert not p.foundation_emission_completed
        assert p.emission_distributed == 90_000
        assert p.rebase_distributed == 10_000
        assert p.foundation_distributed == 9_000
        assert p.closing_height == chain.height - 1
        assert p.status_at(chain.time) == ProposalStatus.FINALIZED

        assert result.effects == [
            MintEmission(APP_ID, pid, 81_000, ()),
            MintRebase(APP_ID, pid, Coin(GOV, 10_000)),
        ]

    def test_emission_ledger_updated(self, chain):
        pid = self._closed(chain)
        chain.run(ADMIN, FinalizeEmission(pid))
        emission = chain.engine.proposals.emission(APP_ID)
        assert emission.rewards_pending == 910_000
        assert emission.distributed_rewards == 90_000
        assert emission.total_rewards == 1_000_000

    def test_listed_as_completed(self, chain):
        pid = self._closed(chain)
        chain.run(ADMIN, FinalizeEmission(pid))
        assert chain.engine.proposals.completed_proposals(APP_ID) == [pid]

    def test_only_once(self, chain):
        pid = self._closed(chain)
        chain.run(ADMIN, FinalizeEmission(pid))
        with pytest.raises(ValidationError, match="already completed"):
            chain.run(ADMIN, FinalizeEmission(pid))

    def test_anyone_may_finalize(self, chain):
        pid = self._closed(chain)
        assert chain.run(BOB, FinalizeEmission(pid)).success

    def test_vested_supply_is_not_circulating(self, chain, host):
        host.vested[GOV] = 4000
        self._closed(chain)
        figures = chain.engine.proposals.emission_figures(APP_ID, GOV)
        # issued 1000 / (1000 + 10000 - 4000 - 1000)
        assert figures.percentage_locked.quantize(Decimal("0.0001")) == Decimal("0.1667")
        assert figures.rebase == 16_666
        assert figures.effective == 83_333

    def test_nothing_locked_gives_no_rebase(self, chain):
        pid = _raise(chain)
        chain.advance(WEEK)
        result = chain.run(ADMIN, FinalizeEmission(pid))
        assert chain.engine.proposals.get(pid).rebase_distributed == 0
        assert [type(e) for e in result.effects] == [MintEmission]

    def test_pair_and_pool_allocations(self, chain):
        chain.run(ALICE, Lock(APP_ID, Tier.T4), coins(100))
        pid = _raise(chain)
        chain.run(ALICE, Vote(APP_ID, pid, (1, 1_000_001), GOV, (dec("0.5"), dec("0.5"))))
        chain.advance(WEEK)

        result = chain.run(ADMIN, FinalizeEmission(pid))
        mint = result.effects[0]
        # raw 100000, pct 0.01: effective 99000, foundation 9900
        assert mint.amount == 89_100
        assert mint.allocations == (
            PairAllocation(1, 44_550),
            PairAllocation(1, 44_550, is_pool=True),
        )
        assert chain.engine.proposals.get(pid).total_voted_weight == 100

    def test_surplus_recorded_and_transferred(self, chain, host):
        host.surplus[APP_ID] = Coin(USD, 1000)
        pid = self._closed(chain)
        result = chain.run(ADMIN, FinalizeEmission(pid))
        assert chain.engine.proposals.get(pid).total_surplus == Coin(USD, 1000)
        assert TransferSurplus(APP_ID, pid, Coin(USD, 1000)) in result.effects


# ═══════════════════════════════════════════════════════════════════════
#  FINALIZE FOUNDATION
# ═══════════════════════════════════════════════════════════════════════

class TestFinalizeFoundation:
    """Foundation payout after emission."""

    def test_requires_emission(self, chain):
        pid = _raise(chain)
        chain.advance(WEEK)
        with pytest.raises(ValidationError, match="Emission calculation did not take place"):
            chain.run(ADMIN, FinalizeFoundation(pid))

    def test_equal_split_over_canonical_addresses(self, chain):
        chain.run(ALICE, Lock(APP_ID, Tier.T4), coins(1000))
        pid = _raise(chain)
        chain.advance(WEEK)
        chain.run(ADMIN, FinalizeEmission(pid))

        result = chain.run(ADMIN, FinalizeFoundation(pid))
        assert result.effects == [
            FoundationPayout(APP_ID, pid, GOV, (("fd1", 4500), ("fd2", 4500))),
        ]
        assert chain.engine.proposals.get(pid).foundation_emission_completed

    def test_remainder_is_not_distributed(self, chain):
        chain.run(ADMIN, UpdateFoundation(("a", "b", "c"), dec("0.10")))
        chain.run(ALICE, Lock(APP_ID, Tier.T4), coins(1000))
        pid = _raise(chain)
        chain.advance(WEEK)
        chain.run(ADMIN, FinalizeEmission(pid))

        payout = chain.run(ADMIN, FinalizeFoundation(pid)).effects[0]
        assert payout.payouts == (("a", 3000), ("b", 3000), ("c", 3000))

    def test_only_once(self, chain):
        pid = _raise(chain)
        chain.advance(WEEK)
        chain.run(ADMIN, FinalizeEmission(pid))
        chain.run(ADMIN, FinalizeFoundation(pid))
        with pytest.raises(ValidationError, match="already completed"):
            chain.run(ADMIN, FinalizeFoundation(pid))

    def test_no_foundation_addresses(self, chain):
        chain.run(ADMIN, UpdateFoundation((), dec("0.10")))
        pid = _raise(chain)
        chain.advance(WEEK)
        chain.run(ADMIN, FinalizeEmission(pid))
        with pytest.raises(ValidationError, match="No foundation addresses registered"):
            chain.run(ADMIN, FinalizeFoundation(pid))


# ═══════════════════════════════════════════════════════════════════════
#  EMISSION ADMIN
# ═══════════════════════════════════════════════════════════════════════

class TestEmissionAdmin:

    def test_set_emission_resets_pending(self, chain):
        result = chain.run(ADMIN, SetEmission(APP_ID, 500, dec("0.5")))
        assert result.data["emission"]["rewardsPending"] == "500"
        assert chain.engine.proposals.emission(APP_ID).emission_rate == Decimal("0.5")

    def test_set_emission_unknown_app(self, chain):
        with pytest.raises(NotFoundError):
            chain.run(ADMIN, SetEmission(42, 500, dec("0.5")))

    def test_rate_out_of_range(self, chain):
        with pytest.raises(ValidationError, match="Emission rate out of range"):
            chain.run(ADMIN, UpdateEmissionRate(APP_ID, dec("1.5")))

    def test_update_rate(self, chain):
        chain.run(ADMIN, UpdateEmissionRate(APP_ID, dec("0.2")))
        emission = chain.engine.proposals.emission(APP_ID)
        assert emission.emission_rate == Decimal("0.2")
        assert emission.rewards_pending == 1_000_000

    def test_non_admin(self, chain):
        with pytest.raises(UnauthorizedError):
            chain.run(ALICE, UpdateEmissionRate(APP_ID, dec("0.2")))

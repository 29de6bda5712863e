"""
Reward Distribution

Three streams per finalized proposal, attributed to a claimant at most once
through a per-(app, claimant) claim cursor:

  - Bribe:    floor(voteWeight × pool / pairTotal) per voted pair and denom
  - Rebase:   floor(tierWeight × rebaseDistributed / voteTokenIssued) per tier,
              re-locked at the same tier instead of being paid out
  - Surplus:  floor(lockedWeight × surplus / voteTokenIssued), paid out

Locked weights and supply are read as of the proposal's closing height.
Registered delegates take no bribe stream here; their bribes are split to
delegators through the delegated claim.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple

from ..coins import Coin, coins_to_list, merge_coins, ratio_floor
from ..config import Tier
from ..context import ExecContext
from ..effects import BankSend
from ..escrow import EscrowLedger
from ..logger import get_logger
from ..storage import KVStore, Table
from .bribes import BribeBook
from .delegation import DelegationBook
from .proposals import Proposal, ProposalManager
from .voting import VoteRecord, VoteTally

logger = get_logger(__name__)


@dataclass
class RewardClaim:
    """Rewards attributed to one claimant by one claim."""
    claimant: str
    app_id: int
    proposal_ids: List[int] = field(default_factory=list)
    bribe: List[Coin] = field(default_factory=list)
    surplus: List[Coin] = field(default_factory=list)
    rebase: List[Tuple[Tier, Coin]] = field(default_factory=list)
    _claimed_votes: List[VoteRecord] = field(default_factory=list, repr=False)

    @property
    def payout(self) -> List[Coin]:
        return merge_coins(self.bribe + self.surplus)

    @property
    def is_empty(self) -> bool:
        return not self.payout and not self.rebase

    def to_dict(self) -> Dict[str, Any]:
        return {
            "claimant": self.claimant,
            "appId": self.app_id,
            "proposalIds": list(self.proposal_ids),
            "bribe": coins_to_list(self.bribe),
            "surplus": coins_to_list(self.surplus),
            "rebase": [{"tier": t.value, "coin": c.to_dict()} for t, c in self.rebase],
            "payout": coins_to_list(self.payout),
        }


class RewardDistributor:
    """Bribe, rebase and surplus attribution with claim cursors."""

    def __init__(
        self,
        store: KVStore,
        proposals: ProposalManager,
        tally: VoteTally,
        bribes: BribeBook,
        ledger: EscrowLedger,
        delegation: DelegationBook,
    ) -> None:
        self.proposals = proposals
        self.tally = tally
        self.bribes = bribes
        self.ledger = ledger
        self.delegation = delegation
        self.cursors = Table(store, "claim_cursor")  # (app, claimant) → proposal id

    def cursor(self, app_id: int, claimant: str) -> int:
        return self.cursors.get((app_id, claimant), 0)

    # ── Per-stream computation ────────────────────────────────────────

    def rebase_share(self, claimant: str, p: Proposal) -> List[Tuple[Tier, Coin]]:
        supply = self.ledger.supply_of(p.gov_denom, p.closing_height)
        shares = []
        weights = self.ledger.tier_weights(claimant, p.gov_denom, p.closing_height)
        for tier in Tier:
            amount = ratio_floor(p.rebase_distributed, weights.get(tier, 0), supply.vote_token_issued)
            if amount > 0:
                shares.append((tier, Coin(p.gov_denom, amount)))
        return shares

    def surplus_share(self, claimant: str, p: Proposal) -> List[Coin]:
        if p.total_surplus is None or p.total_surplus.amount == 0:
            return []
        supply = self.ledger.supply_of(p.gov_denom, p.closing_height)
        weight = self.ledger.vote_weight(claimant, p.gov_denom, p.closing_height)
        amount = ratio_floor(p.total_surplus.amount, weight, supply.vote_token_issued)
        return [Coin(p.total_surplus.denom, amount)] if amount > 0 else []

    def compute(self, claimant: str, app_id: int) -> RewardClaim:
        """Rewards claimable now, without changing any state."""
        claim = RewardClaim(claimant, app_id)
        cursor = self.cursor(app_id, claimant)
        takes_bribes = not self.delegation.is_delegate(claimant)

        for pid in sorted(self.proposals.completed_proposals(app_id)):
            if pid <= cursor:
                continue
            p = self.proposals.get(pid)
            claim.proposal_ids.append(pid)
            if takes_bribes:
                record = self.tally.get_vote(claimant, pid)
                if record is not None and not record.bribe_claimed:
                    claim.bribe.extend(self.bribes.entitlement(claimant, p))
                    claim._claimed_votes.append(record)
            claim.rebase.extend(self.rebase_share(claimant, p))
            claim.surplus.extend(self.surplus_share(claimant, p))

        claim.bribe = merge_coins(claim.bribe)
        claim.surplus = merge_coins(claim.surplus)
        return claim

    # ── Operation ─────────────────────────────────────────────────────

    def claim_rewards(self, ctx: ExecContext, app_id: int) -> RewardClaim:
        """
        Attribute every finalized proposal after the caller's cursor.

        Calling again with nothing newly finalized returns an empty claim.
        """
        ctx.reject_funds()
        claimant = ctx.sender
        claim = self.compute(claimant, app_id)
        if not claim.proposal_ids:
            logger.debug(f"Nothing new to claim for {claimant} on app {app_id}")
            return claim

        for record in claim._claimed_votes:
            self.tally.mark_bribe_claimed(record)
        for tier, coin in claim.rebase:
            self.ledger.relock(ctx, claimant, coin, tier)
        self.cursors.set((app_id, claimant), max(self.cursor(app_id, claimant), *claim.proposal_ids))

        if claim.payout:
            ctx.emit(BankSend(claimant, tuple(claim.payout)))
        logger.info(
            f"{claimant} claimed app {app_id} proposals {claim.proposal_ids}: "
            f"payout={', '.join(map(str, claim.payout)) or 'none'} "
            f"rebase={sum(c.amount for _, c in claim.rebase)}"
        )
        return claim

"""
Vote Tally

Implements:
  - Weighted allocation of a voter's vote-token balance across eligible pairs
  - Re-voting: the previous allocation is retracted from every pair total
    before the new one is applied, so totals never double count
  - Voting power = own vote tokens − delegated out (floored at 0) + delegated in
"""

import bisect
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Any, Dict, Optional, Sequence, Tuple

from ..coins import mul_floor
from ..context import ExecContext
from ..escrow import EscrowLedger
from ..exceptions import ArithmeticConsistencyError, ValidationError
from ..logger import get_logger
from ..storage import KVStore, Table
from .delegation import DelegationBook
from .proposals import ProposalManager

logger = get_logger(__name__)


# ══════════════════════════════════════════════════════════════════════
#  VOTE DATA
# ══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class VotePair:
    pair_id: int
    weight: int

    def to_dict(self) -> Dict[str, Any]:
        return {"pairId": self.pair_id, "weight": str(self.weight)}


@dataclass(frozen=True)
class VoteRecord:
    """A voter's current allocation on one proposal."""
    proposal_id: int
    voter: str
    app_id: int
    denom: str
    pairs: Tuple[VotePair, ...]
    voting_power: int
    cast_at: int
    bribe_claimed: bool = False

    @property
    def total_weight(self) -> int:
        return sum(vp.weight for vp in self.pairs)

    def weight_for(self, pair_id: int) -> int:
        return sum(vp.weight for vp in self.pairs if vp.pair_id == pair_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "proposalId": self.proposal_id,
            "voter": self.voter,
            "appId": self.app_id,
            "denom": self.denom,
            "pairs": [vp.to_dict() for vp in self.pairs],
            "votingPower": str(self.voting_power),
            "castAt": self.cast_at,
            "bribeClaimed": self.bribe_claimed,
        }


def validate_ratios(pairs: Sequence[int], ratios: Sequence[Decimal]) -> None:
    """One ratio per pair, no repeated pair, each ratio > 0, sum ≤ 1."""
    if not pairs:
        raise ValidationError("At least one pair is required")
    if len(pairs) != len(ratios):
        raise ValidationError(f"{len(pairs)} pair(s) but {len(ratios)} ratio(s)")
    if len(set(pairs)) != len(pairs):
        raise ValidationError("Duplicate pair in vote")
    total = Decimal(0)
    for r in ratios:
        r = Decimal(r)
        if r <= 0:
            raise ValidationError(f"Vote ratio must be positive, got {r}")
        total += r
    if total > 1:
        raise ValidationError(f"Vote ratios sum to {total}, more than 1")


# ══════════════════════════════════════════════════════════════════════
#  TALLY
# ══════════════════════════════════════════════════════════════════════

class VoteTally:
    """Per-proposal pair totals and per-voter allocations."""

    def __init__(
        self,
        store: KVStore,
        proposals: ProposalManager,
        ledger: EscrowLedger,
        delegation: DelegationBook,
    ) -> None:
        self.proposals = proposals
        self.ledger = ledger
        self.delegation = delegation
        self.votes = Table(store, "vote")            # (voter, proposal) → VoteRecord
        self.pair_votes = Table(store, "pair_vote")  # (proposal, pair) → int

    def voting_power(self, voter: str, denom: str) -> int:
        own = self.ledger.vote_weight(voter, denom)
        delegated_out = self.delegation.delegated_out(voter, denom)
        delegated_in = self.delegation.delegated_in(voter, denom)
        return max(own - delegated_out, 0) + delegated_in

    def vote(
        self,
        ctx: ExecContext,
        app_id: int,
        proposal_id: int,
        pairs: Sequence[int],
        denom: str,
        ratios: Sequence[Decimal],
    ) -> VoteRecord:
        ctx.reject_funds()
        voter = ctx.sender
        p = self.proposals.get(proposal_id)
        if p.app_id != app_id:
            raise ValidationError(f"Proposal #{p.id} belongs to app {p.app_id}, not {app_id}")
        if not p.is_votable(ctx.time):
            raise ValidationError(f"Proposal #{p.id} is not open for voting")
        if denom != p.gov_denom:
            raise ValidationError(f"Voting denom must be {p.gov_denom}, got {denom}")
        validate_ratios(pairs, ratios)
        for pair_id in pairs:
            if not _contains(p.eligible_pairs, pair_id):
                raise ValidationError(f"Extended pair {pair_id} does not exist in proposal")

        power = self.voting_power(voter, denom)
        if power == 0:
            raise ValidationError("No tokens locked to perform voting on proposals")

        previous: Optional[VoteRecord] = self.votes.get((voter, p.id))
        total_voted = p.total_voted_weight
        if previous is not None:
            for vp in previous.pairs:
                self._add_pair_weight(p.id, vp.pair_id, -vp.weight)
            total_voted -= previous.total_weight

        allocation = []
        for pair_id, ratio in zip(pairs, ratios):
            weight = mul_floor(power, Decimal(ratio))
            self._add_pair_weight(p.id, pair_id, weight)
            allocation.append(VotePair(pair_id, weight))
            total_voted += weight
        if total_voted < 0:
            raise ArithmeticConsistencyError(f"Total voted weight of #{p.id} would underflow")

        record = VoteRecord(
            proposal_id=p.id,
            voter=voter,
            app_id=app_id,
            denom=denom,
            pairs=tuple(allocation),
            voting_power=power,
            cast_at=ctx.time,
        )
        self.votes.set((voter, p.id), record)
        self.proposals.save(replace(p, total_voted_weight=total_voted))

        action = "re-voted" if previous is not None else "voted"
        logger.info(f"{voter} {action} on proposal #{p.id} with power {power} across {len(allocation)} pair(s)")
        return record

    def _add_pair_weight(self, proposal_id: int, pair_id: int, delta: int) -> None:
        total = self.pair_votes.get((proposal_id, pair_id), 0) + delta
        if total < 0:
            raise ArithmeticConsistencyError(
                f"Vote total of pair {pair_id} on #{proposal_id} would underflow"
            )
        self.pair_votes.set((proposal_id, pair_id), total)

    # ── Queries ───────────────────────────────────────────────────────

    def get_vote(self, voter: str, proposal_id: int) -> Optional[VoteRecord]:
        return self.votes.get((voter, proposal_id))

    def has_voted(self, voter: str, proposal_id: int) -> bool:
        return self.votes.has((voter, proposal_id))

    def pair_total(self, proposal_id: int, pair_id: int) -> int:
        return self.pair_votes.get((proposal_id, pair_id), 0)

    def pair_totals(self, proposal_id: int) -> Dict[int, int]:
        return {pair: total for (_, pair), total in self.pair_votes.items(proposal_id)}

    def mark_bribe_claimed(self, record: VoteRecord) -> None:
        self.votes.set((record.voter, record.proposal_id), replace(record, bribe_claimed=True))


def _contains(sorted_ids: Sequence[int], value: int) -> bool:
    i = bisect.bisect_left(sorted_ids, value)
    return i < len(sorted_ids) and sorted_ids[i] == value

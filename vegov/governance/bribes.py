"""
Bribe pools: third-party incentives deposited against (proposal, pair).

A voter's entitlement on a pair is floor(voterWeight × poolAmount / pairTotal)
per denomination.
"""

from decimal import Decimal
from typing import Dict, List, Sequence, Tuple

from ..coins import Coin, merge_coins, mul_floor, scale_coins, single_coin
from ..context import ExecContext
from ..exceptions import ValidationError
from ..host import HostQuerier
from ..logger import get_logger
from ..storage import KVStore, Table
from .proposals import Proposal, ProposalManager
from .voting import VoteTally

logger = get_logger(__name__)


class BribeBook:
    """Deposits and per-voter bribe entitlements."""

    def __init__(self, store: KVStore, proposals: ProposalManager, tally: VoteTally, host: HostQuerier) -> None:
        self.proposals = proposals
        self.tally = tally
        self.host = host
        self.pools = Table(store, "bribe")  # (proposal, pair) → [Coin]

    def deposit(self, ctx: ExecContext, proposal_id: int, pair_id: int) -> List[Coin]:
        """Add the attached coin to the pool of (proposal, pair)."""
        coin = single_coin(ctx.funds)
        p = self.proposals.get(proposal_id)
        if not p.is_votable(ctx.time):
            raise ValidationError(f"Proposal #{p.id} is not active")
        if not p.has_pair(pair_id):
            raise ValidationError(f"Invalid Extended pair {pair_id}")
        if not self.host.is_asset_whitelisted(coin.denom):
            raise ValidationError(f"Asset {coin.denom} is not whitelisted for bribes")

        pool = merge_coins(self.pool(p.id, pair_id) + [coin])
        self.pools.set((p.id, pair_id), pool)
        logger.info(f"Bribe {coin} from {ctx.sender} on proposal #{p.id} pair {pair_id}")
        return pool

    def pool(self, proposal_id: int, pair_id: int) -> List[Coin]:
        return self.pools.get((proposal_id, pair_id), [])

    def entitlement_by_pair(self, voter: str, proposal: Proposal) -> Dict[int, List[Coin]]:
        record = self.tally.get_vote(voter, proposal.id)
        if record is None:
            return {}
        result = {}
        for vp in record.pairs:
            pool = self.pool(proposal.id, vp.pair_id)
            total = self.tally.pair_total(proposal.id, vp.pair_id)
            coins = scale_coins(pool, vp.weight, total)
            if coins:
                result[vp.pair_id] = coins
        return result

    def entitlement(self, voter: str, proposal: Proposal) -> List[Coin]:
        """Every pair's entitlement merged by denom."""
        by_pair = self.entitlement_by_pair(voter, proposal)
        return merge_coins(c for coins in by_pair.values() for c in coins)

    def split_protocol_fee(
        self,
        delegate: str,
        proposal: Proposal,
        protocol_fee_ratio: Decimal,
        excluded_pairs: Sequence[int] = (),
    ) -> Tuple[List[Coin], List[Coin]]:
        """
        Split a delegate's entitlement into (net, protocol fee).

        Pairs in *excluded_pairs* carry no protocol fee.
        """
        net: List[Coin] = []
        fee: List[Coin] = []
        for pair_id, coins in self.entitlement_by_pair(delegate, proposal).items():
            for c in coins:
                cut = 0 if pair_id in excluded_pairs else mul_floor(c.amount, protocol_fee_ratio)
                net.append(Coin(c.denom, c.amount - cut))
                fee.append(Coin(c.denom, cut))
        return merge_coins(net), merge_coins(fee)

    def pools_of(self, proposal_id: int) -> Dict[int, List[Coin]]:
        return {pair: coins for (_, pair), coins in self.pools.items(proposal_id)}

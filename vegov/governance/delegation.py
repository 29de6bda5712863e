"""
Delegation Subsystem

Holders lend part of their voting power to a registered delegate. The
delegate votes with it; bribes earned on the delegate's votes are split
back to delegators pro rata to their delegated amount, minus the
delegator fee kept by the delegate.

Every delegation entity is height-versioned so fee splits read the
relationship as it stood at a proposal's closing height:

  - DelegationInfo   delegate → fee collector and fee ratios
  - Delegation       (delegator, denom) → list of {delegate, amount}
  - DelegationStats  (delegate, denom) → totalDelegated, totalDelegators
"""

from dataclasses import dataclass, replace
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence, Tuple

from ..coins import Coin, coins_to_list, merge_coins, mul_floor, scale_coins
from ..context import ExecContext
from ..effects import BankSend
from ..escrow import EscrowLedger
from ..exceptions import NotFoundError, UnauthorizedError, ValidationError
from ..logger import get_logger
from ..state import StateCell
from ..storage import KVStore, Table, VersionedTable
from .proposals import Proposal, ProposalManager

if TYPE_CHECKING:
    from .bribes import BribeBook

logger = get_logger(__name__)


# ══════════════════════════════════════════════════════════════════════
#  DATA
# ══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class DelegationInfo:
    """Terms offered by a registered delegate."""
    delegate: str
    fee_collector: str
    delegator_fee_ratio: Decimal
    protocol_fee_ratio: Decimal
    excluded_fee_pairs: Tuple[int, ...] = ()

    def __post_init__(self):
        for name in ("delegator_fee_ratio", "protocol_fee_ratio"):
            ratio = getattr(self, name)
            if not Decimal(0) <= ratio <= Decimal(1):
                raise ValidationError(f"{name} out of range: {ratio}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "delegate": self.delegate,
            "feeCollector": self.fee_collector,
            "delegatorFeeRatio": str(self.delegator_fee_ratio),
            "protocolFeeRatio": str(self.protocol_fee_ratio),
            "excludedFeePairs": list(self.excluded_fee_pairs),
        }


@dataclass(frozen=True)
class Delegation:
    delegate: str
    denom: str
    amount: int
    delegated_at: int
    locked_until: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "delegate": self.delegate,
            "denom": self.denom,
            "amount": str(self.amount),
            "delegatedAt": self.delegated_at,
            "lockedUntil": self.locked_until,
        }


@dataclass(frozen=True)
class DelegationStats:
    delegate: str
    denom: str
    total_delegated: int = 0
    total_delegators: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "delegate": self.delegate,
            "denom": self.denom,
            "totalDelegated": str(self.total_delegated),
            "totalDelegators": self.total_delegators,
        }


@dataclass(frozen=True)
class DelegatedClaim:
    """Outcome of a delegator's claim on a delegate's bribes."""
    delegator: str
    delegate: str
    proposal_ids: Tuple[int, ...]
    delegator_coins: Tuple[Coin, ...]
    delegate_fee: Tuple[Coin, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "delegator": self.delegator,
            "delegate": self.delegate,
            "proposalIds": list(self.proposal_ids),
            "delegatorCoins": coins_to_list(self.delegator_coins),
            "delegateFee": coins_to_list(self.delegate_fee),
        }


# ══════════════════════════════════════════════════════════════════════
#  DELEGATION BOOK
# ══════════════════════════════════════════════════════════════════════

class DelegationBook:
    """Delegate registry, delegator positions and per-delegate totals."""

    def __init__(self, store: KVStore, state: StateCell, ledger: EscrowLedger) -> None:
        self.state = state
        self.ledger = ledger
        self.infos = VersionedTable(store, "delegation_info")
        self.delegations = VersionedTable(store, "delegation")
        self.stats_table = VersionedTable(store, "delegation_stats")
        ledger.committed = self.delegated_out

    # ── Registry ──────────────────────────────────────────────────────

    def _require_admin(self, ctx: ExecContext) -> None:
        if ctx.sender != self.state.load().admin:
            raise UnauthorizedError("Only the admin can manage delegates")

    def register_delegate(
        self,
        ctx: ExecContext,
        delegate: str,
        fee_collector: str,
        delegator_fee_ratio: Decimal,
        protocol_fee_ratio: Decimal,
    ) -> DelegationInfo:
        ctx.reject_funds()
        self._require_admin(ctx)
        if self.infos.load(delegate) is not None:
            raise ValidationError(f"Delegate {delegate} already registered")
        info = DelegationInfo(
            delegate, fee_collector or delegate,
            Decimal(delegator_fee_ratio), Decimal(protocol_fee_ratio),
        )
        self.infos.save(delegate, info, ctx.height)
        logger.info(f"Registered delegate {delegate} (fee {info.delegator_fee_ratio})")
        return info

    def update_delegate(
        self,
        ctx: ExecContext,
        delegate: str,
        fee_collector: Optional[str] = None,
        delegator_fee_ratio: Optional[Decimal] = None,
        protocol_fee_ratio: Optional[Decimal] = None,
    ) -> DelegationInfo:
        ctx.reject_funds()
        self._require_admin(ctx)
        info = self.get_info(delegate)
        changes = {}
        if fee_collector:
            changes["fee_collector"] = fee_collector
        if delegator_fee_ratio is not None:
            changes["delegator_fee_ratio"] = Decimal(delegator_fee_ratio)
        if protocol_fee_ratio is not None:
            changes["protocol_fee_ratio"] = Decimal(protocol_fee_ratio)
        info = replace(info, **changes)
        self.infos.save(delegate, info, ctx.height)
        return info

    def update_excluded_fee_pairs(self, ctx: ExecContext, app_id: int, pairs: Sequence[int]) -> DelegationInfo:
        """Delegate-only: set the pairs exempt from the protocol fee."""
        ctx.reject_funds()
        info = self.infos.load(ctx.sender)
        if info is None:
            raise UnauthorizedError(f"{ctx.sender} is not a registered delegate")
        eligible = set(self.ledger.host.get_eligible_pairs(app_id))
        for pair_id in pairs:
            if pair_id not in eligible:
                raise ValidationError(f"Invalid Extended pair {pair_id}")
        info = replace(info, excluded_fee_pairs=tuple(sorted(set(pairs))))
        self.infos.save(ctx.sender, info, ctx.height)
        return info

    # ── Delegate / undelegate ─────────────────────────────────────────

    def delegate(self, ctx: ExecContext, delegate: str, denom: str, ratio: Decimal) -> Delegation:
        """Lend floor(ratio × own vote tokens) of *denom* to *delegate*."""
        ctx.reject_funds()
        delegator = ctx.sender
        ratio = Decimal(ratio)
        if self.infos.load(delegate) is None:
            raise NotFoundError(f"Delegate {delegate} is not registered")
        if delegator == delegate:
            raise ValidationError("Cannot delegate to self")
        if self.is_delegate(delegator):
            raise ValidationError("Registered delegates cannot delegate")
        if not Decimal(0) < ratio <= Decimal(1):
            raise ValidationError(f"Delegation ratio must be in (0, 1], got {ratio}")

        own = self.ledger.vote_weight(delegator, denom)
        amount = mul_floor(own, ratio)
        if amount == 0:
            raise ValidationError("No tokens locked to delegate")

        current = self.delegations_of(delegator, denom)
        previous = next((d for d in current if d.delegate == delegate), None)
        others = [d for d in current if d.delegate != delegate]
        if sum(d.amount for d in others) + amount > own:
            raise ValidationError("Delegated amount exceeds voting power")

        position = Delegation(
            delegate=delegate,
            denom=denom,
            amount=amount,
            delegated_at=ctx.time,
            locked_until=ctx.time + self.state.load().undelegation_period,
        )
        self.delegations.save((delegator, denom), others + [position], ctx.height)

        stats = self.stats(delegate, denom)
        self.stats_table.save((delegate, denom), replace(
            stats,
            total_delegated=stats.total_delegated + amount - (previous.amount if previous else 0),
            total_delegators=stats.total_delegators + (0 if previous else 1),
        ), ctx.height)
        logger.info(f"{delegator} delegated {amount} {denom} to {delegate}")
        return position

    def undelegate(self, ctx: ExecContext, delegate: str, denom: str) -> Delegation:
        ctx.reject_funds()
        delegator = ctx.sender
        current = self.delegations_of(delegator, denom)
        position = next((d for d in current if d.delegate == delegate), None)
        if position is None:
            raise NotFoundError(f"No delegation from {delegator} to {delegate}")
        if ctx.time < position.locked_until:
            raise ValidationError(f"Undelegation not allowed before {position.locked_until}")

        remaining = [d for d in current if d.delegate != delegate]
        if remaining:
            self.delegations.save((delegator, denom), remaining, ctx.height)
        else:
            self.delegations.remove((delegator, denom), ctx.height)

        stats = self.stats(delegate, denom)
        self.stats_table.save((delegate, denom), replace(
            stats,
            total_delegated=max(stats.total_delegated - position.amount, 0),
            total_delegators=max(stats.total_delegators - 1, 0),
        ), ctx.height)
        logger.info(f"{delegator} undelegated {position.amount} {denom} from {delegate}")
        return position

    # ── Queries ───────────────────────────────────────────────────────

    def is_delegate(self, address: str) -> bool:
        return self.infos.load(address) is not None

    def get_info(self, delegate: str, height: Optional[int] = None) -> DelegationInfo:
        if height is None:
            info = self.infos.load(delegate)
        else:
            info = self.infos.may_load_at_height(delegate, height)
        if info is None:
            raise NotFoundError(f"Delegate {delegate} is not registered")
        return info

    def delegations_of(self, delegator: str, denom: str, height: Optional[int] = None) -> List[Delegation]:
        if height is None:
            return list(self.delegations.load((delegator, denom), []))
        return list(self.delegations.may_load_at_height((delegator, denom), height, []))

    def delegated_amount(self, delegator: str, delegate: str, denom: str, height: Optional[int] = None) -> int:
        return sum(d.amount for d in self.delegations_of(delegator, denom, height) if d.delegate == delegate)

    def stats(self, delegate: str, denom: str, height: Optional[int] = None) -> DelegationStats:
        if height is None:
            stats = self.stats_table.load((delegate, denom))
        else:
            stats = self.stats_table.may_load_at_height((delegate, denom), height)
        return stats or DelegationStats(delegate, denom)

    def delegated_out(self, delegator: str, denom: str) -> int:
        return sum(d.amount for d in self.delegations_of(delegator, denom))

    def delegated_in(self, delegate: str, denom: str) -> int:
        return self.stats(delegate, denom).total_delegated


# ══════════════════════════════════════════════════════════════════════
#  DELEGATED CLAIMS
# ══════════════════════════════════════════════════════════════════════

class DelegatedClaims:
    """
    Splits a delegate's bribe entitlement among its delegators.

    For proposal P closing at height H:

        net        = entitlement − protocol fee (non-excluded pairs)
        userShare  = net × delegated(delegator, H) / totalDelegated(delegate, H)
        fee        = userShare × delegatorFeeRatio(H)
        paid       = userShare − fee
    """

    def __init__(
        self,
        store: KVStore,
        book: DelegationBook,
        proposals: ProposalManager,
        bribes: "BribeBook",
    ) -> None:
        self.book = book
        self.proposals = proposals
        self.bribes = bribes
        self.claimed = Table(store, "delegator_claim")                 # (delegator, proposal) → True
        self.claimed_lists = Table(store, "delegator_claimed_proposals")  # delegator → [proposal]
        self.protocol_claims = Table(store, "protocol_fee_claim")      # (delegate, proposal) → True

    def _split(self, delegator: str, delegate: str, p: Proposal) -> Tuple[List[Coin], List[Coin]]:
        height = p.closing_height
        amount = self.book.delegated_amount(delegator, delegate, p.gov_denom, height)
        total = self.book.stats(delegate, p.gov_denom, height).total_delegated
        if amount == 0 or total == 0:
            return [], []
        info = self.book.get_info(delegate, height)
        net, _ = self.bribes.split_protocol_fee(
            delegate, p, info.protocol_fee_ratio, info.excluded_fee_pairs,
        )
        user_share = scale_coins(net, amount, total)
        fee = merge_coins(Coin(c.denom, mul_floor(c.amount, info.delegator_fee_ratio)) for c in user_share)
        fee_by_denom = {c.denom: c.amount for c in fee}
        paid = merge_coins(Coin(c.denom, c.amount - fee_by_denom.get(c.denom, 0)) for c in user_share)
        return paid, fee

    def claim(
        self,
        ctx: ExecContext,
        delegate: str,
        app_id: int,
        proposal_id: Optional[int] = None,
    ) -> DelegatedClaim:
        """
        Claim the caller's share of *delegate*'s bribes for one proposal, or
        for every finalized, unclaimed proposal of the app.
        """
        ctx.reject_funds()
        delegator = ctx.sender
        info = self.book.get_info(delegate)

        if proposal_id is not None:
            p = self.proposals.get(proposal_id)
            if p.app_id != app_id:
                raise ValidationError(f"Proposal #{p.id} belongs to app {p.app_id}, not {app_id}")
            if not p.emission_completed:
                raise ValidationError(f"Proposal #{p.id} is not finalized")
            if self.claimed.get((delegator, p.id)):
                raise ValidationError(f"Already claimed proposal #{p.id}")
            if self.book.delegated_amount(delegator, delegate, p.gov_denom, p.closing_height) == 0:
                raise NotFoundError(f"No delegation from {delegator} to {delegate} at proposal #{p.id}")
            targets = [p]
        else:
            targets = [
                self.proposals.get(pid)
                for pid in self.proposals.completed_proposals(app_id)
                if not self.claimed.get((delegator, pid))
            ]
            if not targets:
                raise ValidationError("No rewards to claim.")
            if not any(
                self.book.delegated_amount(delegator, delegate, p.gov_denom, p.closing_height)
                for p in targets
            ):
                raise NotFoundError(f"No delegation from {delegator} to {delegate}")

        paid: List[Coin] = []
        fees: List[Coin] = []
        for p in targets:
            user_coins, fee_coins = self._split(delegator, delegate, p)
            paid.extend(user_coins)
            fees.extend(fee_coins)
            self.claimed.set((delegator, p.id), True)

        paid = merge_coins(paid)
        fees = merge_coins(fees)
        if not paid and not fees:
            raise ValidationError("No rewards to claim.")

        claimed = set(self.claimed_lists.get(delegator, []))
        claimed.update(p.id for p in targets)
        self.claimed_lists.set(delegator, sorted(claimed))

        if paid:
            ctx.emit(BankSend(delegator, tuple(paid)))
        if fees:
            ctx.emit(BankSend(info.fee_collector, tuple(fees)))

        logger.info(
            f"{delegator} claimed delegated bribes from {delegate} on "
            f"{len(targets)} proposal(s): {', '.join(map(str, paid)) or 'nothing'}"
        )
        return DelegatedClaim(
            delegator, delegate, tuple(p.id for p in targets), tuple(paid), tuple(fees),
        )

    def claim_protocol_fee(self, ctx: ExecContext, proposal_id: int) -> List[Coin]:
        """Delegate-only: pay the protocol fee withheld on a proposal to the fee collector."""
        ctx.reject_funds()
        delegate = ctx.sender
        if not self.book.is_delegate(delegate):
            raise UnauthorizedError(f"{delegate} is not a registered delegate")
        p = self.proposals.get(proposal_id)
        if not p.emission_completed:
            raise ValidationError(f"Proposal #{p.id} is not finalized")
        if self.protocol_claims.get((delegate, p.id)):
            raise ValidationError(f"Protocol fee for proposal #{p.id} already claimed")

        info = self.book.get_info(delegate, p.closing_height)
        _, fee = self.bribes.split_protocol_fee(
            delegate, p, info.protocol_fee_ratio, info.excluded_fee_pairs,
        )
        if not fee:
            raise ValidationError("No protocol fee to claim")
        self.protocol_claims.set((delegate, p.id), True)
        collector = self.book.get_info(delegate).fee_collector
        ctx.emit(BankSend(collector, tuple(fee)))
        logger.info(f"Protocol fee for #{p.id} from {delegate}: {', '.join(map(str, fee))}")
        return fee

    def claimed_proposals(self, delegator: str) -> List[int]:
        return self.claimed_lists.get(delegator, [])

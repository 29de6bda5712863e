"""
Escrow Ledger

Locks governance coins into tiered vote-token entries and releases them on
maturity.

Storage:
  - entries:  (owner, denom) → ordered list of VoteTokenEntry, height-versioned.
              The per-owner view is a range query over this one table.
  - supply:   denom → SupplyTotals, height-versioned
  - holders:  owner → HolderRecord with a sequential holder id
"""

from typing import Callable, Dict, List, Optional

from ..coins import Coin, mul_floor, single_coin
from ..config import Tier
from ..context import ExecContext
from ..effects import BankSend
from ..exceptions import (
    ArithmeticConsistencyError,
    InsufficientFundsError,
    NotFoundError,
    ValidationError,
)
from ..host import HostQuerier
from ..logger import get_logger
from ..state import StateCell
from ..storage import Counter, KVStore, Table, VersionedTable
from .types import HolderRecord, SupplyTotals, VoteTokenEntry, vote_token_denom

logger = get_logger(__name__)


class EscrowLedger:
    """Lock / withdraw / transfer of principal into vote-token entries."""

    def __init__(self, store: KVStore, state: StateCell, host: HostQuerier) -> None:
        self.state = state
        self.host = host
        self.entries = VersionedTable(store, "entries")
        self.supply = VersionedTable(store, "supply")
        self.holders = Table(store, "holder")
        self._holder_ids = Counter(store, "holder_id")
        self._entry_ids = Counter(store, "entry_id")
        # (owner, denom) → vote tokens the owner has committed elsewhere
        self.committed: Callable[[str, str], int] = lambda owner, denom: 0

    # =====================================================================
    #  Operations
    # =====================================================================

    def gov_denom(self, app_id: int) -> str:
        """Denom of the app's governance asset; ValidationError if unresolvable."""
        app = self.host.get_app(app_id)
        denom = self.host.get_asset_denom(app.gov_token_id)
        if not denom:
            raise ValidationError(f"Governance asset of app {app_id} has no denom")
        return denom

    def lock(
        self,
        ctx: ExecContext,
        app_id: int,
        tier: Tier,
        recipient: Optional[str] = None,
    ) -> VoteTokenEntry:
        """
        Lock the attached governance coin for *tier*.

        The entry belongs to *recipient* when given, otherwise to the sender.
        """
        coin = single_coin(ctx.funds)
        denom = self.gov_denom(app_id)
        if coin.denom != denom:
            raise ValidationError(f"Only {denom} can be locked for app {app_id}, got {coin.denom}")
        minimum = self.state.load().min_lock_amount
        if coin.amount < minimum:
            raise InsufficientFundsError(f"Lock amount {coin.amount} below minimum {minimum}")

        owner = recipient or ctx.sender
        entry = self._create_entry(ctx, owner, coin, Tier(tier))
        logger.info(
            f"Locked {coin} for {owner} at {entry.tier.value} "
            f"({entry.vote_token}) until {entry.end_time}"
        )
        return entry

    def relock(self, ctx: ExecContext, owner: str, coin: Coin, tier: Tier) -> VoteTokenEntry:
        """Create an entry from engine-held funds (rebase compounding)."""
        return self._create_entry(ctx, owner, coin, Tier(tier))

    def withdraw(self, ctx: ExecContext, denom: str, tier: Tier) -> Coin:
        """Release every matured entry of (sender, denom, tier) as one payout."""
        ctx.reject_funds()
        tier = Tier(tier)
        owner = ctx.sender
        current = self.entries.load((owner, denom), [])
        matured = [e for e in current if e.tier == tier and e.is_withdrawable(ctx.time)]
        if not matured:
            raise NotFoundError(f"No withdrawable {denom} entries at {tier.value} for {owner}")

        remaining = [e for e in current if e not in matured]
        self._check_committed(owner, denom, remaining)
        self._save_entries(owner, denom, remaining, ctx.height)

        principal = sum(e.principal.amount for e in matured)
        issued = sum(e.vote_token.amount for e in matured)
        self._adjust_supply(denom, -principal, -issued, ctx.height)

        payout = Coin(denom, principal)
        ctx.emit(BankSend(owner, (payout,)))
        logger.info(f"Withdrew {payout} from {len(matured)} entr(ies) for {owner}")
        return payout

    def transfer(self, ctx: ExecContext, recipient: str, denom: str, tier: Tier) -> int:
        """Move every (sender, denom, tier) entry to *recipient*; returns the count."""
        ctx.reject_funds()
        tier = Tier(tier)
        sender = ctx.sender
        if not recipient:
            raise ValidationError("Recipient is required")
        if recipient == sender:
            raise ValidationError("Cannot transfer to self")

        current = self.entries.load((sender, denom), [])
        moving = [e for e in current if e.tier == tier]
        if not moving:
            raise NotFoundError(f"No {denom} entries at {tier.value} for {sender}")

        staying = [e for e in current if e.tier != tier]
        self._check_committed(sender, denom, staying)
        self._save_entries(sender, denom, staying, ctx.height)
        received = self.entries.load((recipient, denom), []) + moving
        received.sort(key=lambda e: e.entry_id)
        self._ensure_holder(recipient, ctx.time)
        self._save_entries(recipient, denom, received, ctx.height)

        logger.info(f"Transferred {len(moving)} {denom} {tier.value} entr(ies) {sender} -> {recipient}")
        return len(moving)

    # =====================================================================
    #  Internals
    # =====================================================================

    def _create_entry(self, ctx: ExecContext, owner: str, coin: Coin, tier: Tier) -> VoteTokenEntry:
        tw = self.state.load().tier(tier)
        entry = VoteTokenEntry(
            entry_id=self._entry_ids.next(),
            principal=coin,
            vote_token=Coin(vote_token_denom(coin.denom), mul_floor(coin.amount, tw.weight)),
            tier=tier,
            start_time=ctx.time,
            end_time=ctx.time + tw.duration,
        )
        self._ensure_holder(owner, ctx.time)
        entries = self.entries.load((owner, coin.denom), [])
        entries.append(entry)
        self._save_entries(owner, coin.denom, entries, ctx.height)
        self._adjust_supply(coin.denom, coin.amount, entry.vote_token.amount, ctx.height)
        return entry

    def _check_committed(self, owner: str, denom: str, remaining: List[VoteTokenEntry]) -> None:
        committed = self.committed(owner, denom)
        left = sum(e.vote_token.amount for e in remaining)
        if left < committed:
            raise ValidationError(
                f"{owner} has {committed} {denom} vote tokens delegated; "
                f"only {left} would remain. Undelegate first"
            )

    def _save_entries(self, owner: str, denom: str, entries: List[VoteTokenEntry], height: int) -> None:
        if entries:
            self.entries.save((owner, denom), entries, height)
        else:
            self.entries.remove((owner, denom), height)

    def _ensure_holder(self, owner: str, now: int) -> HolderRecord:
        record = self.holders.get(owner)
        if record is None:
            record = HolderRecord(owner=owner, holder_id=self._holder_ids.next(), created_at=now)
            self.holders.set(owner, record)
        return record

    def _adjust_supply(self, denom: str, principal: int, issued: int, height: int) -> None:
        totals = self.supply_of(denom)
        new_principal = totals.principal_locked + principal
        new_issued = totals.vote_token_issued + issued
        if new_principal < 0 or new_issued < 0:
            raise ArithmeticConsistencyError(f"Supply of {denom} would underflow")
        self.supply.save(denom, SupplyTotals(denom, new_principal, new_issued), height)

    # =====================================================================
    #  Queries
    # =====================================================================

    def holder(self, owner: str) -> Optional[HolderRecord]:
        return self.holders.get(owner)

    def entries_of(self, owner: str, denom: str, height: Optional[int] = None) -> List[VoteTokenEntry]:
        if height is None:
            return self.entries.load((owner, denom), [])
        return self.entries.may_load_at_height((owner, denom), height, [])

    def owner_entries(self, owner: str) -> Dict[str, List[VoteTokenEntry]]:
        """Every denom's entries for *owner*, derived by range query."""
        return {denom: entries for (_, denom), entries in self.entries.items(owner)}

    def supply_of(self, denom: str, height: Optional[int] = None) -> SupplyTotals:
        if height is None:
            totals = self.supply.load(denom)
        else:
            totals = self.supply.may_load_at_height(denom, height)
        return totals or SupplyTotals(denom)

    def vote_weight(self, owner: str, denom: str, height: Optional[int] = None) -> int:
        """Total vote-token amount held by *owner* for *denom*."""
        return sum(e.vote_token.amount for e in self.entries_of(owner, denom, height))

    def tier_weights(self, owner: str, denom: str, height: Optional[int] = None) -> Dict[Tier, int]:
        weights: Dict[Tier, int] = {}
        for e in self.entries_of(owner, denom, height):
            weights[e.tier] = weights.get(e.tier, 0) + e.vote_token.amount
        return weights

    def withdrawable(self, owner: str, denom: str, now: int) -> Coin:
        amount = sum(
            e.principal.amount for e in self.entries_of(owner, denom) if e.is_withdrawable(now)
        )
        return Coin(denom, amount)

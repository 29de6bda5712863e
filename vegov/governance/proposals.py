"""
Governance Proposals

Defines the proposal lifecycle and the per-app emission ledger:

  - raise_proposal:       admin-only, one open voting window per app
  - finalize_emission:    splits the app's pending rewards into emission,
                          rebase and foundation shares once voting ends
  - finalize_foundation:  pays the foundation share to the foundation
                          addresses in equal parts
"""

from dataclasses import dataclass, field, replace
from decimal import Decimal, localcontext
from enum import IntEnum
from typing import Any, Dict, List, Optional, Tuple

from ..coins import Coin, fraction, mul_floor, ratio_floor
from ..constants import DECIMAL_PRECISION, POOL_ID_OFFSET
from ..context import ExecContext
from ..effects import (
    FoundationPayout,
    MintEmission,
    MintRebase,
    PairAllocation,
    TransferSurplus,
)
from ..escrow import EscrowLedger
from ..exceptions import (
    ArithmeticConsistencyError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from ..host import HostQuerier
from ..logger import get_logger
from ..state import StateCell
from ..storage import Counter, KVStore, Table

logger = get_logger(__name__)


# ══════════════════════════════════════════════════════════════════════
#  ENUMS
# ══════════════════════════════════════════════════════════════════════

class ProposalStatus(IntEnum):
    """Lifecycle stage, derived from time and completion flags."""
    VOTING = 1      # Voting window open
    CLOSED = 2      # Window ended, emission not yet finalized
    FINALIZED = 3   # Emission finalized; listed as completed


# ══════════════════════════════════════════════════════════════════════
#  DATA
# ══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Proposal:
    """
    Emission allocation proposal for one app.

    Fields:
        id:                            Global sequential identifier
        app_id:                        App whose emission is allocated
        gov_denom:                     Governance denom at creation
        voting_start / voting_end:     Voting window [start, end)
        eligible_pairs:                Sorted unique pair ids
        emission_completed:            Emission finalized
        rebase_completed:              Rebase mint requested
        foundation_emission_completed: Foundation payout requested
        emission_distributed:          Effective emission (incl. foundation share)
        rebase_distributed:            Rebase share, re-locked on claim
        foundation_distributed:        Foundation share
        total_voted_weight:            Sum of every PairVoteTotal
        total_surplus:                 Surplus recorded at finalization
        closing_height:                Height of the finalizing operation
        pair_allocations:              Emission routed per voted pair
    """
    id: int
    app_id: int
    gov_denom: str
    voting_start: int
    voting_end: int
    eligible_pairs: Tuple[int, ...]
    emission_completed: bool = False
    rebase_completed: bool = False
    foundation_emission_completed: bool = False
    emission_distributed: int = 0
    rebase_distributed: int = 0
    foundation_distributed: int = 0
    total_voted_weight: int = 0
    total_surplus: Optional[Coin] = None
    closing_height: Optional[int] = None
    pair_allocations: Tuple[PairAllocation, ...] = field(default_factory=tuple)

    def status_at(self, now: int) -> ProposalStatus:
        if self.emission_completed:
            return ProposalStatus.FINALIZED
        if now < self.voting_end:
            return ProposalStatus.VOTING
        return ProposalStatus.CLOSED

    def is_votable(self, now: int) -> bool:
        return not self.emission_completed and self.voting_start <= now < self.voting_end

    def has_pair(self, pair_id: int) -> bool:
        return pair_id in self.eligible_pairs

    def to_dict(self, now: Optional[int] = None) -> Dict[str, Any]:
        d = {
            "id": self.id,
            "appId": self.app_id,
            "govDenom": self.gov_denom,
            "votingStart": self.voting_start,
            "votingEnd": self.voting_end,
            "eligiblePairs": list(self.eligible_pairs),
            "emissionCompleted": self.emission_completed,
            "rebaseCompleted": self.rebase_completed,
            "foundationEmissionCompleted": self.foundation_emission_completed,
            "emissionDistributed": str(self.emission_distributed),
            "rebaseDistributed": str(self.rebase_distributed),
            "foundationDistributed": str(self.foundation_distributed),
            "totalVotedWeight": str(self.total_voted_weight),
            "totalSurplus": self.total_surplus.to_dict() if self.total_surplus else None,
            "closingHeight": self.closing_height,
            "pairAllocations": [a.to_dict() for a in self.pair_allocations],
        }
        if now is not None:
            d["status"] = self.status_at(now).name
        return d


@dataclass(frozen=True)
class Emission:
    """Per-app reward budget. rewards_pending only decreases."""
    app_id: int
    total_rewards: int
    rewards_pending: int
    emission_rate: Decimal
    distributed_rewards: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "appId": self.app_id,
            "totalRewards": str(self.total_rewards),
            "rewardsPending": str(self.rewards_pending),
            "emissionRate": str(self.emission_rate),
            "distributedRewards": str(self.distributed_rewards),
        }


@dataclass(frozen=True)
class EmissionFigures:
    """Split of one emission round."""
    raw: int
    effective: int
    foundation: int
    rebase: int
    percentage_locked: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {
            "raw": str(self.raw),
            "effective": str(self.effective),
            "foundation": str(self.foundation),
            "rebase": str(self.rebase),
            "percentageLocked": str(self.percentage_locked),
        }


# ══════════════════════════════════════════════════════════════════════
#  MANAGER
# ══════════════════════════════════════════════════════════════════════

class ProposalManager:
    """Proposal creation, finalization and the per-app emission ledger."""

    def __init__(self, store: KVStore, state: StateCell, host: HostQuerier, ledger: EscrowLedger) -> None:
        self.state = state
        self.host = host
        self.ledger = ledger
        self.proposals = Table(store, "proposal")
        self.current = Table(store, "current_proposal")
        self.completed = Table(store, "completed_proposals")
        self.emissions = Table(store, "emission")
        self._ids = Counter(store, "proposal_id")

    # ── Lookup ────────────────────────────────────────────────────────

    def get(self, proposal_id: int) -> Proposal:
        p = self.proposals.get(proposal_id)
        if p is None:
            raise NotFoundError(f"Proposal {proposal_id} not found")
        return p

    def save(self, proposal: Proposal) -> None:
        self.proposals.set(proposal.id, proposal)

    def current_proposal(self, app_id: int) -> Optional[Proposal]:
        pid = self.current.get(app_id)
        return self.proposals.get(pid) if pid is not None else None

    def completed_proposals(self, app_id: int) -> List[int]:
        return self.completed.get(app_id, [])

    def unfinalized_before(self, proposal: Proposal) -> List[int]:
        """Ids of the app's earlier proposals whose emission is not yet completed."""
        return [
            pid for pid, p in self.proposals.items()
            if p.app_id == proposal.app_id and pid < proposal.id and not p.emission_completed
        ]

    # ── Creation ──────────────────────────────────────────────────────

    def raise_proposal(self, ctx: ExecContext, app_id: int) -> Proposal:
        ctx.reject_funds()
        state = self.state.load()
        if ctx.sender != state.admin:
            raise UnauthorizedError("Only the admin can raise proposals")

        self.host.get_app(app_id)
        pairs = tuple(sorted(set(self.host.get_eligible_pairs(app_id))))
        if not pairs:
            raise ValidationError(f"No eligible pairs for app {app_id}")

        previous = self.current_proposal(app_id)
        if previous is not None and previous.voting_end > ctx.time:
            raise ValidationError(
                f"Previous proposal #{previous.id} in voting state until {previous.voting_end}"
            )

        proposal = Proposal(
            id=self._ids.next(),
            app_id=app_id,
            gov_denom=self.ledger.gov_denom(app_id),
            voting_start=ctx.time,
            voting_end=ctx.time + state.voting_period,
            eligible_pairs=pairs,
        )
        self.save(proposal)
        self.current.set(app_id, proposal.id)
        logger.info(
            f"Proposal #{proposal.id} raised for app {app_id}: "
            f"{len(pairs)} pair(s), voting until {proposal.voting_end}"
        )
        return proposal

    # ── Emission ledger ───────────────────────────────────────────────

    def emission(self, app_id: int) -> Emission:
        e = self.emissions.get(app_id)
        if e is None:
            raise NotFoundError(f"No emission configured for app {app_id}")
        return e

    def set_emission(self, app_id: int, total_rewards: int, emission_rate: Decimal) -> Emission:
        """Create or reset an app's emission budget."""
        if total_rewards < 0:
            raise ValidationError("Total rewards cannot be negative")
        _check_rate(emission_rate)
        e = Emission(app_id, total_rewards, total_rewards, Decimal(emission_rate))
        self.emissions.set(app_id, e)
        return e

    def update_emission_rate(self, app_id: int, emission_rate: Decimal) -> Emission:
        _check_rate(emission_rate)
        e = replace(self.emission(app_id), emission_rate=Decimal(emission_rate))
        self.emissions.set(app_id, e)
        return e

    def emission_figures(self, app_id: int, denom: str) -> EmissionFigures:
        """
        Compute the split for the app's next emission round.

        circulating      = total supply − vested − principal locked
        percentageLocked = issued / (issued + circulating)
        raw              = rewardsPending × emissionRate
        effective        = raw × (1 − percentageLocked)
        foundation       = effective × foundationRatio
        rebase           = raw × percentageLocked
        """
        app = self.host.get_app(app_id)
        emission = self.emission(app_id)
        supply = self.ledger.supply_of(denom)

        total_supply = self.host.get_total_supply(app_id, app.gov_token_id)
        vested = self.host.get_vested_amount(denom)
        circulating = total_supply - vested - supply.principal_locked
        if circulating < 0:
            raise ArithmeticConsistencyError(
                f"Circulating supply of {denom} is negative: "
                f"total={total_supply} vested={vested} locked={supply.principal_locked}"
            )

        pct = fraction(supply.vote_token_issued, supply.vote_token_issued + circulating)
        with localcontext() as dctx:
            dctx.prec = DECIMAL_PRECISION
            unlocked = Decimal(1) - pct
        raw = mul_floor(emission.rewards_pending, emission.emission_rate)
        effective = mul_floor(raw, unlocked)
        return EmissionFigures(
            raw=raw,
            effective=effective,
            foundation=mul_floor(effective, self.state.load().foundation_ratio),
            rebase=mul_floor(raw, pct),
            percentage_locked=pct,
        )

    # ── Finalization ──────────────────────────────────────────────────

    def finalize_emission(
        self,
        ctx: ExecContext,
        proposal_id: int,
        pair_totals: Dict[int, int],
    ) -> Proposal:
        """
        Close a proposal's emission round.

        *pair_totals* maps each voted pair to its PairVoteTotal and drives
        the per-pair emission allocation.
        """
        ctx.reject_funds()
        p = self.get(proposal_id)
        if ctx.time < p.voting_end:
            raise ValidationError(f"Voting for proposal #{p.id} ends at {p.voting_end}")
        if p.emission_completed:
            raise ValidationError(f"Emission for proposal #{p.id} already completed")
        pending = self.unfinalized_before(p)
        if pending:
            raise ValidationError(
                f"Proposal #{pending[0]} of app {p.app_id} must be finalized before #{p.id}"
            )

        figures = self.emission_figures(p.app_id, p.gov_denom)
        emission = self.emission(p.app_id)
        if figures.effective > emission.rewards_pending:
            raise ArithmeticConsistencyError(f"Emission exceeds pending rewards of app {p.app_id}")
        self.emissions.set(p.app_id, replace(
            emission,
            rewards_pending=emission.rewards_pending - figures.effective,
            distributed_rewards=emission.distributed_rewards + figures.effective,
        ))

        distributable = figures.effective - figures.foundation
        allocations = _allocate(distributable, pair_totals, p.total_voted_weight)

        surplus = self.host.get_surplus_reward(p.app_id, self.state.load().surplus_asset_id)

        p = replace(
            p,
            emission_completed=True,
            rebase_completed=True,
            emission_distributed=figures.effective,
            rebase_distributed=figures.rebase,
            foundation_distributed=figures.foundation,
            total_surplus=surplus,
            closing_height=ctx.height,
            pair_allocations=allocations,
        )
        self.save(p)
        self.completed.set(p.app_id, self.completed_proposals(p.app_id) + [p.id])

        ctx.emit(MintEmission(p.app_id, p.id, distributable, allocations))
        if figures.rebase > 0:
            ctx.emit(MintRebase(p.app_id, p.id, Coin(p.gov_denom, figures.rebase)))
        if surplus.amount > 0:
            ctx.emit(TransferSurplus(p.app_id, p.id, surplus))

        logger.info(
            f"Proposal #{p.id} finalized at height {ctx.height}: emission={figures.effective} "
            f"foundation={figures.foundation} rebase={figures.rebase} surplus={surplus}"
        )
        return p

    def finalize_foundation(self, ctx: ExecContext, proposal_id: int) -> FoundationPayout:
        ctx.reject_funds()
        p = self.get(proposal_id)
        if not p.emission_completed:
            raise ValidationError(
                "Emission calculation did not take place to initiate foundation calculation"
            )
        if p.foundation_emission_completed:
            raise ValidationError(f"Foundation emission for proposal #{p.id} already completed")

        addresses = self.state.load().foundation_addresses
        if not addresses:
            raise ValidationError("No foundation addresses registered")

        share = p.foundation_distributed // len(addresses)
        payout = FoundationPayout(
            p.app_id, p.id, p.gov_denom,
            tuple((addr, share) for addr in addresses) if share > 0 else (),
        )
        self.save(replace(p, foundation_emission_completed=True))
        if payout.payouts:
            ctx.emit(payout)
        logger.info(f"Foundation payout for proposal #{p.id}: {share} x {len(addresses)}")
        return payout


def _check_rate(rate: Decimal) -> None:
    if not Decimal(0) <= Decimal(rate) <= Decimal(1):
        raise ValidationError(f"Emission rate out of range: {rate}")


def _allocate(amount: int, pair_totals: Dict[int, int], total_weight: int) -> Tuple[PairAllocation, ...]:
    allocations = []
    for pair_id in sorted(pair_totals):
        weight = pair_totals[pair_id]
        if weight <= 0:
            continue
        share = ratio_floor(amount, weight, total_weight)
        if pair_id >= POOL_ID_OFFSET:
            allocations.append(PairAllocation(pair_id - POOL_ID_OFFSET, share, is_pool=True))
        else:
            allocations.append(PairAllocation(pair_id, share))
    return tuple(allocations)

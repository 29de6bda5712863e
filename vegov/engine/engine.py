"""
Vegov Governance Engine

Single entry point for every state mutation. Each operation runs inside one
store transaction: it either completes and returns its effects, or fails
and leaves no trace.

Responsibilities:
  - Seeds the stored global state from EngineConfig on first use
  - Dispatches the tagged union of operations to the subsystems
  - Converts engine errors into failed ExecResults (process) or lets them
    propagate (execute)
  - Exposes the subsystems for read-only queries and the store state root

Usage:

    engine = GovernanceEngine(load_config(), host)
    ctx = ExecContext(sender="alice", time=now, height=h, funds=[Coin("ugov", 100)])
    result = engine.process(Lock(app_id=1, tier=Tier.T1), ctx)
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any, Callable, Dict, List, Optional

from ..coins import coins_to_list
from ..config import EngineConfig, Tier, TierWeight
from ..context import ExecContext
from ..effects import effects_to_list
from ..escrow import EscrowLedger
from ..exceptions import UnauthorizedError, ValidationError, VegovException
from ..governance import (
    BribeBook,
    DelegatedClaims,
    DelegationBook,
    ProposalManager,
    RewardDistributor,
    VoteTally,
)
from ..host import HostQuerier
from ..logger import get_logger
from ..state import GlobalState, StateCell
from ..storage import KVStore
from .operations import (
    Bribe,
    ClaimDelegated,
    ClaimProtocolFee,
    ClaimRewards,
    Delegate,
    FinalizeEmission,
    FinalizeFoundation,
    Lock,
    OpType,
    RaiseProposal,
    RegisterDelegate,
    SetEmission,
    Transfer,
    Undelegate,
    UpdateAdmin,
    UpdateDelegate,
    UpdateEmissionRate,
    UpdateExcludedFeePairs,
    UpdateFoundation,
    UpdateTiers,
    UpdateVestingLedger,
    UpdateVotingPeriod,
    Vote,
    Withdraw,
)

logger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Operation result
# ---------------------------------------------------------------------------

class ExecResult:
    """Result of executing a single operation."""

    __slots__ = ("success", "op_type", "data", "effects", "error", "error_kind")

    def __init__(
        self,
        op_type: OpType,
        success: bool = True,
        data: Optional[Dict[str, Any]] = None,
        effects: Optional[List] = None,
        error: str = "",
        error_kind: str = "",
    ):
        self.op_type = op_type
        self.success = success
        self.data = data or {}
        self.effects = effects or []
        self.error = error
        self.error_kind = error_kind

    def to_dict(self) -> Dict[str, Any]:
        return {
            "op": self.op_type.name,
            "success": self.success,
            "data": self.data,
            "effects": effects_to_list(self.effects),
            "error": self.error,
            "errorKind": self.error_kind,
        }


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

class GovernanceEngine:
    """Deterministic vote-escrow governance engine over one KVStore."""

    def __init__(
        self,
        config: EngineConfig,
        host: HostQuerier,
        store: Optional[KVStore] = None,
    ) -> None:
        self.config = config
        self.host = host
        self.store = store if store is not None else KVStore()
        self.state = StateCell(self.store)

        self.ledger = EscrowLedger(self.store, self.state, host)
        self.proposals = ProposalManager(self.store, self.state, host, self.ledger)
        self.delegation = DelegationBook(self.store, self.state, self.ledger)
        self.tally = VoteTally(self.store, self.proposals, self.ledger, self.delegation)
        self.bribes = BribeBook(self.store, self.proposals, self.tally, host)
        self.delegated_claims = DelegatedClaims(self.store, self.delegation, self.proposals, self.bribes)
        self.rewards = RewardDistributor(
            self.store, self.proposals, self.tally, self.bribes, self.ledger, self.delegation,
        )

        self._handlers: Dict[OpType, Callable[[Any, ExecContext], Dict[str, Any]]] = {
            OpType.LOCK: self._op_lock,
            OpType.WITHDRAW: self._op_withdraw,
            OpType.TRANSFER: self._op_transfer,
            OpType.RAISE_PROPOSAL: self._op_raise_proposal,
            OpType.VOTE: self._op_vote,
            OpType.BRIBE: self._op_bribe,
            OpType.FINALIZE_EMISSION: self._op_finalize_emission,
            OpType.FINALIZE_FOUNDATION: self._op_finalize_foundation,
            OpType.CLAIM_REWARDS: self._op_claim_rewards,
            OpType.DELEGATE: self._op_delegate,
            OpType.UNDELEGATE: self._op_undelegate,
            OpType.CLAIM_DELEGATED: self._op_claim_delegated,
            OpType.CLAIM_PROTOCOL_FEE: self._op_claim_protocol_fee,
            OpType.UPDATE_EXCLUDED_FEE_PAIRS: self._op_update_excluded_fee_pairs,
            OpType.REGISTER_DELEGATE: self._op_register_delegate,
            OpType.UPDATE_DELEGATE: self._op_update_delegate,
            OpType.SET_EMISSION: self._op_set_emission,
            OpType.UPDATE_EMISSION_RATE: self._op_update_emission_rate,
            OpType.UPDATE_VOTING_PERIOD: self._op_update_voting_period,
            OpType.UPDATE_TIERS: self._op_update_tiers,
            OpType.UPDATE_FOUNDATION: self._op_update_foundation,
            OpType.UPDATE_VESTING_LEDGER: self._op_update_vesting_ledger,
            OpType.UPDATE_ADMIN: self._op_update_admin,
        }
        missing = set(OpType) - set(self._handlers)
        if missing:
            raise NotImplementedError(
                f"No handler for operation(s): {sorted(m.name for m in missing)}"
            )

        if not self.state.initialized():
            self._seed()

    def _seed(self) -> None:
        with self.store.transaction():
            self.state.save(GlobalState.from_config(self.config))
            for seed in self.config.emissions:
                self.proposals.set_emission(seed.app_id, seed.total_rewards, seed.emission_rate)
        logger.info(
            f"Engine state initialized: admin={self.config.governance.admin} "
            f"{len(self.config.emissions)} emission record(s)"
        )

    # =====================================================================
    #  Execution
    # =====================================================================

    def execute(self, op, ctx: ExecContext) -> ExecResult:
        """
        Run *op* atomically. Engine errors propagate after rollback.
        """
        handler = self._handlers.get(op.op_type)
        if handler is None:
            raise ValidationError(f"Unknown op type: {op.op_type}")
        ctx.effects.clear()
        try:
            with self.store.transaction():
                data = handler(op, ctx)
        except BaseException:
            ctx.effects.clear()
            raise
        logger.info(f"[{op.op_type.name}] ok sender={ctx.sender} height={ctx.height}")
        return ExecResult(op.op_type, data=data, effects=list(ctx.effects))

    def process(self, op, ctx: ExecContext) -> ExecResult:
        """
        Run *op* atomically and report engine errors as a failed result.

        Unexpected exceptions are logged and re-raised.
        """
        try:
            return self.execute(op, ctx)
        except VegovException as e:
            logger.warning(f"[{op.op_type.name}] rejected ({e.kind}): {e}")
            return ExecResult(op.op_type, success=False, error=str(e), error_kind=e.kind)
        except Exception as e:
            logger.error(f"[{op.op_type.name}] failed: {e}")
            raise

    def state_root(self) -> str:
        return self.store.state_root()

    def _require_admin(self, ctx: ExecContext) -> None:
        ctx.reject_funds()
        if ctx.sender != self.state.load().admin:
            raise UnauthorizedError("Only the admin can perform this operation")

    # =====================================================================
    #  Operation handlers
    # =====================================================================

    def _op_lock(self, op: Lock, ctx: ExecContext) -> Dict[str, Any]:
        entry = self.ledger.lock(ctx, op.app_id, op.tier, op.recipient)
        return {"owner": op.recipient or ctx.sender, "entry": entry.to_dict(ctx.time)}

    def _op_withdraw(self, op: Withdraw, ctx: ExecContext) -> Dict[str, Any]:
        return {"withdrawn": self.ledger.withdraw(ctx, op.denom, op.tier).to_dict()}

    def _op_transfer(self, op: Transfer, ctx: ExecContext) -> Dict[str, Any]:
        moved = self.ledger.transfer(ctx, op.recipient, op.denom, op.tier)
        return {"recipient": op.recipient, "entriesMoved": moved}

    def _op_raise_proposal(self, op: RaiseProposal, ctx: ExecContext) -> Dict[str, Any]:
        return {"proposal": self.proposals.raise_proposal(ctx, op.app_id).to_dict(ctx.time)}

    def _op_vote(self, op: Vote, ctx: ExecContext) -> Dict[str, Any]:
        record = self.tally.vote(ctx, op.app_id, op.proposal_id, op.pairs, op.denom, op.ratios)
        return {"vote": record.to_dict()}

    def _op_bribe(self, op: Bribe, ctx: ExecContext) -> Dict[str, Any]:
        pool = self.bribes.deposit(ctx, op.proposal_id, op.pair_id)
        return {"proposalId": op.proposal_id, "pairId": op.pair_id, "pool": coins_to_list(pool)}

    def _op_finalize_emission(self, op: FinalizeEmission, ctx: ExecContext) -> Dict[str, Any]:
        p = self.proposals.finalize_emission(ctx, op.proposal_id, self.tally.pair_totals(op.proposal_id))
        return {"proposal": p.to_dict(ctx.time)}

    def _op_finalize_foundation(self, op: FinalizeFoundation, ctx: ExecContext) -> Dict[str, Any]:
        return {"payout": self.proposals.finalize_foundation(ctx, op.proposal_id).to_dict()}

    def _op_claim_rewards(self, op: ClaimRewards, ctx: ExecContext) -> Dict[str, Any]:
        return {"claim": self.rewards.claim_rewards(ctx, op.app_id).to_dict()}

    def _op_delegate(self, op: Delegate, ctx: ExecContext) -> Dict[str, Any]:
        return {"delegation": self.delegation.delegate(ctx, op.delegate, op.denom, op.ratio).to_dict()}

    def _op_undelegate(self, op: Undelegate, ctx: ExecContext) -> Dict[str, Any]:
        return {"undelegated": self.delegation.undelegate(ctx, op.delegate, op.denom).to_dict()}

    def _op_claim_delegated(self, op: ClaimDelegated, ctx: ExecContext) -> Dict[str, Any]:
        claim = self.delegated_claims.claim(ctx, op.delegate, op.app_id, op.proposal_id)
        return {"claim": claim.to_dict()}

    def _op_claim_protocol_fee(self, op: ClaimProtocolFee, ctx: ExecContext) -> Dict[str, Any]:
        return {"fee": coins_to_list(self.delegated_claims.claim_protocol_fee(ctx, op.proposal_id))}

    def _op_update_excluded_fee_pairs(self, op: UpdateExcludedFeePairs, ctx: ExecContext) -> Dict[str, Any]:
        info = self.delegation.update_excluded_fee_pairs(ctx, op.app_id, op.pairs)
        return {"delegationInfo": info.to_dict()}

    def _op_register_delegate(self, op: RegisterDelegate, ctx: ExecContext) -> Dict[str, Any]:
        info = self.delegation.register_delegate(
            ctx, op.delegate, op.fee_collector, op.delegator_fee_ratio, op.protocol_fee_ratio,
        )
        return {"delegationInfo": info.to_dict()}

    def _op_update_delegate(self, op: UpdateDelegate, ctx: ExecContext) -> Dict[str, Any]:
        info = self.delegation.update_delegate(
            ctx, op.delegate, op.fee_collector, op.delegator_fee_ratio, op.protocol_fee_ratio,
        )
        return {"delegationInfo": info.to_dict()}

    # -- admin --------------------------------------------------------------

    def _op_set_emission(self, op: SetEmission, ctx: ExecContext) -> Dict[str, Any]:
        self._require_admin(ctx)
        self.host.get_app(op.app_id)
        return {"emission": self.proposals.set_emission(op.app_id, op.total_rewards, op.emission_rate).to_dict()}

    def _op_update_emission_rate(self, op: UpdateEmissionRate, ctx: ExecContext) -> Dict[str, Any]:
        self._require_admin(ctx)
        return {"emission": self.proposals.update_emission_rate(op.app_id, op.emission_rate).to_dict()}

    def _op_update_voting_period(self, op: UpdateVotingPeriod, ctx: ExecContext) -> Dict[str, Any]:
        self._require_admin(ctx)
        if op.voting_period <= 0:
            raise ValidationError("Voting period must be positive")
        return self._save_state(voting_period=op.voting_period)

    def _op_update_tiers(self, op: UpdateTiers, ctx: ExecContext) -> Dict[str, Any]:
        self._require_admin(ctx)
        tiers = dict(self.state.load().tiers)
        for tier, duration, weight in op.tiers:
            tiers[Tier(tier)] = TierWeight(int(duration), weight)
        state = self.state.load().with_tiers(tiers)
        self.state.save(state)
        return {"state": state.to_dict()}

    def _op_update_foundation(self, op: UpdateFoundation, ctx: ExecContext) -> Dict[str, Any]:
        self._require_admin(ctx)
        state = self.state.load().with_foundation(list(op.addresses), op.ratio)
        self.state.save(state)
        return {"state": state.to_dict()}

    def _op_update_vesting_ledger(self, op: UpdateVestingLedger, ctx: ExecContext) -> Dict[str, Any]:
        self._require_admin(ctx)
        return self._save_state(vesting_ledger=op.address)

    def _op_update_admin(self, op: UpdateAdmin, ctx: ExecContext) -> Dict[str, Any]:
        self._require_admin(ctx)
        if not op.admin:
            raise ValidationError("Admin address cannot be empty")
        return self._save_state(admin=op.admin)

    def _save_state(self, **changes) -> Dict[str, Any]:
        state = replace(self.state.load(), **changes)
        self.state.save(state)
        return {"state": state.to_dict()}

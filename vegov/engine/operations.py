"""
Engine Operation Types

Every public operation is a frozen dataclass tagged with an OpType. The
engine dispatches on the tag and refuses to start if any OpType has no
handler.

Operations:
  - LOCK / WITHDRAW / TRANSFER                      Escrow Ledger
  - RAISE_PROPOSAL / FINALIZE_EMISSION /
    FINALIZE_FOUNDATION                             Proposal lifecycle
  - VOTE                                            Vote tally
  - BRIBE / CLAIM_REWARDS                           Reward distribution
  - DELEGATE / UNDELEGATE / CLAIM_DELEGATED /
    CLAIM_PROTOCOL_FEE / UPDATE_EXCLUDED_FEE_PAIRS  Delegation
  - REGISTER_DELEGATE / UPDATE_DELEGATE / SET_EMISSION /
    UPDATE_EMISSION_RATE / UPDATE_VOTING_PERIOD / UPDATE_TIERS /
    UPDATE_FOUNDATION / UPDATE_VESTING_LEDGER /
    UPDATE_ADMIN                                    Admin
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from decimal import Decimal
from enum import IntEnum
from typing import Any, Callable, ClassVar, Dict, Optional, Tuple

from ..config import Tier
from ..exceptions import ValidationError


class OpType(IntEnum):
    """All engine operation types.  Values are part of the replay format."""
    LOCK = 1
    WITHDRAW = 2
    TRANSFER = 3
    RAISE_PROPOSAL = 4
    VOTE = 5
    BRIBE = 6
    FINALIZE_EMISSION = 7
    FINALIZE_FOUNDATION = 8
    CLAIM_REWARDS = 9
    DELEGATE = 10
    UNDELEGATE = 11
    CLAIM_DELEGATED = 12
    CLAIM_PROTOCOL_FEE = 13
    UPDATE_EXCLUDED_FEE_PAIRS = 14
    REGISTER_DELEGATE = 15
    UPDATE_DELEGATE = 16
    SET_EMISSION = 17
    UPDATE_EMISSION_RATE = 18
    UPDATE_VOTING_PERIOD = 19
    UPDATE_TIERS = 20
    UPDATE_FOUNDATION = 21
    UPDATE_VESTING_LEDGER = 22
    UPDATE_ADMIN = 23


# ---------------------------------------------------------------------------
# Escrow
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Lock:
    op_type: ClassVar[OpType] = OpType.LOCK
    app_id: int
    tier: Tier
    recipient: Optional[str] = None


@dataclass(frozen=True)
class Withdraw:
    op_type: ClassVar[OpType] = OpType.WITHDRAW
    denom: str
    tier: Tier


@dataclass(frozen=True)
class Transfer:
    op_type: ClassVar[OpType] = OpType.TRANSFER
    recipient: str
    denom: str
    tier: Tier


# ---------------------------------------------------------------------------
# Proposals, votes and rewards
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RaiseProposal:
    op_type: ClassVar[OpType] = OpType.RAISE_PROPOSAL
    app_id: int


@dataclass(frozen=True)
class Vote:
    op_type: ClassVar[OpType] = OpType.VOTE
    app_id: int
    proposal_id: int
    pairs: Tuple[int, ...]
    denom: str
    ratios: Tuple[Decimal, ...]


@dataclass(frozen=True)
class Bribe:
    op_type: ClassVar[OpType] = OpType.BRIBE
    proposal_id: int
    pair_id: int


@dataclass(frozen=True)
class FinalizeEmission:
    op_type: ClassVar[OpType] = OpType.FINALIZE_EMISSION
    proposal_id: int


@dataclass(frozen=True)
class FinalizeFoundation:
    op_type: ClassVar[OpType] = OpType.FINALIZE_FOUNDATION
    proposal_id: int


@dataclass(frozen=True)
class ClaimRewards:
    op_type: ClassVar[OpType] = OpType.CLAIM_REWARDS
    app_id: int


# ---------------------------------------------------------------------------
# Delegation
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Delegate:
    op_type: ClassVar[OpType] = OpType.DELEGATE
    delegate: str
    denom: str
    ratio: Decimal


@dataclass(frozen=True)
class Undelegate:
    op_type: ClassVar[OpType] = OpType.UNDELEGATE
    delegate: str
    denom: str


@dataclass(frozen=True)
class ClaimDelegated:
    op_type: ClassVar[OpType] = OpType.CLAIM_DELEGATED
    delegate: str
    app_id: int
    proposal_id: Optional[int] = None


@dataclass(frozen=True)
class ClaimProtocolFee:
    op_type: ClassVar[OpType] = OpType.CLAIM_PROTOCOL_FEE
    proposal_id: int


@dataclass(frozen=True)
class UpdateExcludedFeePairs:
    op_type: ClassVar[OpType] = OpType.UPDATE_EXCLUDED_FEE_PAIRS
    app_id: int
    pairs: Tuple[int, ...]


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RegisterDelegate:
    op_type: ClassVar[OpType] = OpType.REGISTER_DELEGATE
    delegate: str
    fee_collector: str
    delegator_fee_ratio: Decimal
    protocol_fee_ratio: Decimal


@dataclass(frozen=True)
class UpdateDelegate:
    op_type: ClassVar[OpType] = OpType.UPDATE_DELEGATE
    delegate: str
    fee_collector: Optional[str] = None
    delegator_fee_ratio: Optional[Decimal] = None
    protocol_fee_ratio: Optional[Decimal] = None


@dataclass(frozen=True)
class SetEmission:
    op_type: ClassVar[OpType] = OpType.SET_EMISSION
    app_id: int
    total_rewards: int
    emission_rate: Decimal


@dataclass(frozen=True)
class UpdateEmissionRate:
    op_type: ClassVar[OpType] = OpType.UPDATE_EMISSION_RATE
    app_id: int
    emission_rate: Decimal


@dataclass(frozen=True)
class UpdateVotingPeriod:
    op_type: ClassVar[OpType] = OpType.UPDATE_VOTING_PERIOD
    voting_period: int


@dataclass(frozen=True)
class UpdateTiers:
    """Replace the tier table with (tier, duration, weight) triples."""
    op_type: ClassVar[OpType] = OpType.UPDATE_TIERS
    tiers: Tuple[Tuple[Tier, int, Decimal], ...]


@dataclass(frozen=True)
class UpdateFoundation:
    op_type: ClassVar[OpType] = OpType.UPDATE_FOUNDATION
    addresses: Tuple[str, ...]
    ratio: Decimal


@dataclass(frozen=True)
class UpdateVestingLedger:
    op_type: ClassVar[OpType] = OpType.UPDATE_VESTING_LEDGER
    address: str


@dataclass(frozen=True)
class UpdateAdmin:
    op_type: ClassVar[OpType] = OpType.UPDATE_ADMIN
    admin: str


OPERATIONS: Dict[OpType, type] = {
    cls.op_type: cls
    for cls in (
        Lock, Withdraw, Transfer, RaiseProposal, Vote, Bribe, FinalizeEmission,
        FinalizeFoundation, ClaimRewards, Delegate, Undelegate, ClaimDelegated,
        ClaimProtocolFee, UpdateExcludedFeePairs, RegisterDelegate, UpdateDelegate,
        SetEmission, UpdateEmissionRate, UpdateVotingPeriod, UpdateTiers,
        UpdateFoundation, UpdateVestingLedger, UpdateAdmin,
    )
}


# ---------------------------------------------------------------------------
# Deserialization (replay files)
# ---------------------------------------------------------------------------

def _dec(v: Any) -> Decimal:
    return Decimal(str(v))


def _tiers(v: Any) -> Tuple[Tuple[Tier, int, Decimal], ...]:
    return tuple(
        (Tier(name.upper()), int(params["duration"]), _dec(params["weight"]))
        for name, params in sorted(v.items())
    )


_CONVERTERS: Dict[str, Callable[[Any], Any]] = {
    "app_id": int,
    "proposal_id": int,
    "pair_id": int,
    "total_rewards": int,
    "voting_period": int,
    "tier": lambda v: Tier(str(v).upper()),
    "pairs": lambda v: tuple(int(x) for x in v),
    "ratios": lambda v: tuple(_dec(x) for x in v),
    "addresses": lambda v: tuple(str(x) for x in v),
    "ratio": _dec,
    "emission_rate": _dec,
    "delegator_fee_ratio": _dec,
    "protocol_fee_ratio": _dec,
    "tiers": _tiers,
}


def operation_from_dict(data: Dict[str, Any]):
    """
    Build an operation from ``{"op": "LOCK", "app_id": 1, "tier": "T1"}``.

    Raises ValidationError for unknown operations or missing fields.
    """
    name = str(data.get("op", "")).upper()
    try:
        cls = OPERATIONS[OpType[name]]
    except KeyError as e:
        raise ValidationError(f"Unknown operation: {data.get('op')!r}") from e

    kwargs = {}
    for f in fields(cls):
        if f.name not in data:
            continue
        value = data[f.name]
        convert = _CONVERTERS.get(f.name)
        kwargs[f.name] = convert(value) if convert is not None and value is not None else value
    try:
        return cls(**kwargs)
    except TypeError as e:
        raise ValidationError(f"Invalid {name} operation: {e}") from e

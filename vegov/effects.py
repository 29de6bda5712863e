"""
Outbound effects produced by the engine.

The host applies the effects of an operation atomically with it. An
operation that fails produces no effects.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple

from .coins import Coin, coins_to_list


@dataclass(frozen=True)
class BankSend:
    """Pay spendable funds to an address."""
    to_address: str
    amount: Tuple[Coin, ...]
    kind = "bank_send"

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "toAddress": self.to_address, "amount": coins_to_list(self.amount)}


@dataclass(frozen=True)
class PairAllocation:
    """Share of an emission routed to one vault pair or liquidity pool."""
    pair_id: int
    amount: int
    is_pool: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {"pairId": self.pair_id, "amount": str(self.amount), "isPool": self.is_pool}


@dataclass(frozen=True)
class MintEmission:
    """Mint the proposal's emission for distribution to voted pairs."""
    app_id: int
    proposal_id: int
    amount: int
    allocations: Tuple[PairAllocation, ...] = ()
    kind = "mint_emission"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "appId": self.app_id,
            "proposalId": self.proposal_id,
            "amount": str(self.amount),
            "allocations": [a.to_dict() for a in self.allocations],
        }


@dataclass(frozen=True)
class MintRebase:
    """Mint the rebase share into the engine; it is re-locked on claim."""
    app_id: int
    proposal_id: int
    coin: Coin
    kind = "mint_rebase"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "appId": self.app_id,
            "proposalId": self.proposal_id,
            "coin": self.coin.to_dict(),
        }


@dataclass(frozen=True)
class TransferSurplus:
    """Move the app's surplus reward into the engine's control."""
    app_id: int
    proposal_id: int
    coin: Coin
    kind = "transfer_surplus"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "appId": self.app_id,
            "proposalId": self.proposal_id,
            "coin": self.coin.to_dict(),
        }


@dataclass(frozen=True)
class FoundationPayout:
    """Mint the foundation share and pay it to the foundation addresses."""
    app_id: int
    proposal_id: int
    denom: str
    payouts: Tuple[Tuple[str, int], ...] = field(default_factory=tuple)
    kind = "foundation_payout"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "appId": self.app_id,
            "proposalId": self.proposal_id,
            "denom": self.denom,
            "payouts": [{"address": a, "amount": str(n)} for a, n in self.payouts],
        }


def effects_to_list(effects: List) -> List[Dict[str, Any]]:
    return [e.to_dict() for e in effects]

"""
Global engine state: governance parameters, tier table and foundation info.

Seeded from EngineConfig when a store is first used and persisted in the
store, so admin updates roll back with the operation that made them.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Any, Dict, List

from .config import EngineConfig, Tier, TierConfig, TierWeight, canonical_addresses
from .exceptions import ConfigurationError
from .storage import KVStore

_KEY = ("state", "global")


@dataclass(frozen=True)
class GlobalState:
    admin: str
    voting_period: int
    min_lock_amount: int
    undelegation_period: int
    surplus_asset_id: int
    vesting_ledger: str
    tiers: Dict[Tier, TierWeight] = field(default_factory=dict)
    foundation_addresses: List[str] = field(default_factory=list)
    foundation_ratio: Decimal = Decimal("0")

    @classmethod
    def from_config(cls, cfg: EngineConfig) -> "GlobalState":
        g = cfg.governance
        return cls(
            admin=g.admin,
            voting_period=g.voting_period,
            min_lock_amount=g.min_lock_amount,
            undelegation_period=g.undelegation_period,
            surplus_asset_id=g.surplus_asset_id,
            vesting_ledger=g.vesting_ledger,
            tiers=dict(cfg.tiers.tiers),
            foundation_addresses=list(cfg.foundation.addresses),
            foundation_ratio=cfg.foundation.ratio,
        )

    def tier(self, tier: Tier) -> TierWeight:
        return self.tiers[Tier(tier)]

    def with_tiers(self, tiers: Dict[Tier, TierWeight]) -> "GlobalState":
        checked = TierConfig(tiers=dict(tiers))
        return replace(self, tiers=dict(checked.tiers))

    def with_foundation(self, addresses: List[str], ratio: Decimal) -> "GlobalState":
        if not Decimal("0") <= ratio <= Decimal("1"):
            raise ConfigurationError(f"Foundation ratio out of range: {ratio}")
        return replace(
            self, foundation_addresses=canonical_addresses(addresses), foundation_ratio=ratio
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "admin": self.admin,
            "votingPeriod": self.voting_period,
            "minLockAmount": self.min_lock_amount,
            "undelegationPeriod": self.undelegation_period,
            "surplusAssetId": self.surplus_asset_id,
            "vestingLedger": self.vesting_ledger,
            "tiers": {t.value: self.tiers[t].to_dict() for t in Tier},
            "foundationAddresses": list(self.foundation_addresses),
            "foundationRatio": str(self.foundation_ratio),
        }


class StateCell:
    """Typed accessor for the stored GlobalState."""

    def __init__(self, store: KVStore) -> None:
        self.store = store

    def load(self) -> GlobalState:
        state = self.store.get(_KEY)
        if state is None:
            raise ConfigurationError("Global state has not been initialized")
        return state

    def save(self, state: GlobalState) -> None:
        self.store.set(_KEY, state)

    def initialized(self) -> bool:
        return self.store.has(_KEY)

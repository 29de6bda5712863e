"""
Host Platform Queries

The engine consults the host for application metadata, asset denominations,
supplies, eligible pairs and surplus rewards. Queries are synchronous and
answer for the state visible at the current logical time.

Provides:
  - AppInfo        (application metadata)
  - HostQuerier    (abstract query interface)
  - StaticHost     (in-memory implementation for tests and offline replay)
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Set

from .coins import Coin
from .exceptions import NotFoundError


@dataclass(frozen=True)
class AppInfo:
    app_id: int
    name: str
    gov_token_id: int

    def to_dict(self) -> Dict[str, Any]:
        return {"appId": self.app_id, "name": self.name, "govTokenId": self.gov_token_id}


class HostQuerier(ABC):
    """Queries the engine requires from the host platform."""

    @abstractmethod
    def get_app(self, app_id: int) -> AppInfo:
        """Raise NotFoundError for unknown apps."""

    @abstractmethod
    def get_asset_denom(self, asset_id: int) -> str:
        """Return the denom of an asset, or "" if unknown."""

    @abstractmethod
    def get_total_supply(self, app_id: int, asset_id: int) -> int:
        ...

    @abstractmethod
    def get_eligible_pairs(self, app_id: int) -> List[int]:
        ...

    @abstractmethod
    def is_asset_whitelisted(self, denom: str) -> bool:
        ...

    @abstractmethod
    def get_surplus_reward(self, app_id: int, asset_id: int) -> Coin:
        ...

    @abstractmethod
    def get_vested_amount(self, denom: str) -> int:
        """Amount of *denom* held by the vesting ledger."""


@dataclass
class StaticHost(HostQuerier):
    """
    In-memory host whose answers are plain mutable dictionaries.

    Used by the test suite and by the `replay` CLI command.
    """
    apps: Dict[int, AppInfo] = field(default_factory=dict)
    asset_denoms: Dict[int, str] = field(default_factory=dict)
    total_supply: Dict[int, int] = field(default_factory=dict)
    eligible_pairs: Dict[int, List[int]] = field(default_factory=dict)
    whitelisted: Set[str] = field(default_factory=set)
    surplus: Dict[int, Coin] = field(default_factory=dict)
    vested: Dict[str, int] = field(default_factory=dict)

    def get_app(self, app_id: int) -> AppInfo:
        app = self.apps.get(app_id)
        if app is None:
            raise NotFoundError(f"App {app_id} does not exist")
        return app

    def get_asset_denom(self, asset_id: int) -> str:
        return self.asset_denoms.get(asset_id, "")

    def get_total_supply(self, app_id: int, asset_id: int) -> int:
        return self.total_supply.get(asset_id, 0)

    def get_eligible_pairs(self, app_id: int) -> List[int]:
        return list(self.eligible_pairs.get(app_id, []))

    def is_asset_whitelisted(self, denom: str) -> bool:
        return denom in self.whitelisted

    def get_surplus_reward(self, app_id: int, asset_id: int) -> Coin:
        coin = self.surplus.get(app_id)
        if coin is None:
            return Coin(self.get_asset_denom(asset_id) or "unknown", 0)
        return coin

    def get_vested_amount(self, denom: str) -> int:
        return self.vested.get(denom, 0)

    # --- factories --------------------------------------------------------

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> StaticHost:
        """
        Build a host from a JSON-style dict::

            {"apps": [{"appId": 1, "name": "app", "govTokenId": 1}],
             "assets": {"1": "ugov"}, "totalSupply": {"1": 1000000},
             "eligiblePairs": {"1": [1, 2]}, "whitelisted": ["uusd"],
             "surplus": {"1": {"denom": "uusd", "amount": "10"}},
             "vested": {"ugov": 0}}
        """
        apps = {}
        for a in data.get("apps", []):
            info = AppInfo(int(a["appId"]), a.get("name", ""), int(a["govTokenId"]))
            apps[info.app_id] = info
        return cls(
            apps=apps,
            asset_denoms={int(k): v for k, v in data.get("assets", {}).items()},
            total_supply={int(k): int(v) for k, v in data.get("totalSupply", {}).items()},
            eligible_pairs={
                int(k): [int(p) for p in v] for k, v in data.get("eligiblePairs", {}).items()
            },
            whitelisted=set(data.get("whitelisted", [])),
            surplus={int(k): Coin.from_dict(v) for k, v in data.get("surplus", {}).items()},
            vested={k: int(v) for k, v in data.get("vested", {}).items()},
        )

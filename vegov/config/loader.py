"""
Vegov TOML Configuration Loader

Loads every section of vegov.toml with environment variable overrides.
Each section is a dataclass with a `from_dict` factory and `apply_env()`.

Environment variable mapping:
    [governance] admin          → VEGOV_ADMIN
    [governance] voting_period  → VEGOV_VOTING_PERIOD
    [foundation] ratio          → VEGOV_FOUNDATION_RATIO
    ...
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

try:
    import tomllib as tomli  # Python 3.11+
except ImportError:
    import tomli  # type: ignore[no-redef]

from ..constants import (
    DEFAULT_ADMIN,
    DEFAULT_CONFIG_FILE,
    DEFAULT_FOUNDATION_RATIO,
    DEFAULT_MIN_LOCK_AMOUNT,
    DEFAULT_TIERS,
    DEFAULT_UNDELEGATION_PERIOD,
    DEFAULT_VOTING_PERIOD,
    ENV_PREFIX,
)
from ..exceptions import ConfigurationError
from ..logger import get_logger

logger = get_logger(__name__)


def _decimal(value: Any, name: str) -> Decimal:
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise ConfigurationError(f"{name}: not a decimal: {value!r}") from e


def _env(name: str) -> Optional[str]:
    return os.environ.get(ENV_PREFIX + name)


def canonical_addresses(addresses: List[str]) -> List[str]:
    """Drop case-insensitive duplicates, keeping the first-seen spelling and order."""
    seen = set()
    result = []
    for addr in addresses:
        folded = addr.strip().casefold()
        if not folded or folded in seen:
            continue
        seen.add(folded)
        result.append(addr.strip())
    return result


# ---------------------------------------------------------------------------
# Lock tiers
# ---------------------------------------------------------------------------

class Tier(str, Enum):
    """Lock duration tier."""
    T1 = "T1"
    T2 = "T2"
    T3 = "T3"
    T4 = "T4"


@dataclass(frozen=True)
class TierWeight:
    duration: int
    weight: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {"duration": self.duration, "weight": str(self.weight)}


@dataclass
class TierConfig:
    """[tiers] section: exactly four tiers, strictly increasing."""
    tiers: Dict[Tier, TierWeight] = field(default_factory=lambda: {
        Tier(name): TierWeight(duration, weight)
        for name, (duration, weight) in DEFAULT_TIERS.items()
    })

    def __post_init__(self):
        self.validate()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TierConfig":
        tiers = cls().tiers
        for name, raw in data.items():
            try:
                tier = Tier(name.upper())
            except ValueError as e:
                raise ConfigurationError(f"Unknown tier: {name}") from e
            tiers[tier] = TierWeight(
                duration=int(raw.get("duration", tiers[tier].duration)),
                weight=_decimal(raw.get("weight", tiers[tier].weight), f"tiers.{name}.weight"),
            )
        return cls(tiers=tiers)

    def validate(self) -> None:
        if set(self.tiers) != set(Tier):
            raise ConfigurationError("Exactly four tiers T1..T4 are required")
        ordered = [self.tiers[t] for t in Tier]
        for tw in ordered:
            if tw.duration <= 0:
                raise ConfigurationError("Tier duration must be positive")
            if not Decimal("0") < tw.weight <= Decimal("1"):
                raise ConfigurationError(f"Tier weight out of range: {tw.weight}")
        for lower, higher in zip(ordered, ordered[1:]):
            if higher.duration <= lower.duration or higher.weight <= lower.weight:
                raise ConfigurationError(
                    "Tier durations and weights must be strictly increasing"
                )

    def get(self, tier: Tier) -> TierWeight:
        return self.tiers[Tier(tier)]

    def to_dict(self) -> Dict[str, Any]:
        return {t.value: self.tiers[t].to_dict() for t in Tier}


# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------

@dataclass
class GovernanceSectionConfig:
    """[governance] section."""
    admin: str = DEFAULT_ADMIN
    voting_period: int = DEFAULT_VOTING_PERIOD
    min_lock_amount: int = DEFAULT_MIN_LOCK_AMOUNT
    undelegation_period: int = DEFAULT_UNDELEGATION_PERIOD
    surplus_asset_id: int = 0
    vesting_ledger: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GovernanceSectionConfig":
        return cls(
            admin=data.get("admin", DEFAULT_ADMIN),
            voting_period=int(data.get("voting_period", DEFAULT_VOTING_PERIOD)),
            min_lock_amount=int(data.get("min_lock_amount", DEFAULT_MIN_LOCK_AMOUNT)),
            undelegation_period=int(data.get("undelegation_period", DEFAULT_UNDELEGATION_PERIOD)),
            surplus_asset_id=int(data.get("surplus_asset_id", 0)),
            vesting_ledger=data.get("vesting_ledger", ""),
        )

    def apply_env(self) -> None:
        """Override from environment variables."""
        if v := _env("ADMIN"):
            self.admin = v
        if v := _env("VOTING_PERIOD"):
            self.voting_period = int(v)
        if v := _env("MIN_LOCK_AMOUNT"):
            self.min_lock_amount = int(v)
        if v := _env("UNDELEGATION_PERIOD"):
            self.undelegation_period = int(v)
        if v := _env("VESTING_LEDGER"):
            self.vesting_ledger = v

    def validate(self) -> None:
        if not self.admin:
            raise ConfigurationError("governance.admin is required")
        if self.voting_period <= 0:
            raise ConfigurationError("governance.voting_period must be positive")
        if self.min_lock_amount < 1:
            raise ConfigurationError("governance.min_lock_amount must be at least 1")
        if self.undelegation_period < 0:
            raise ConfigurationError("governance.undelegation_period cannot be negative")


@dataclass
class FoundationConfig:
    """[foundation] section. Addresses are canonicalized on construction."""
    addresses: List[str] = field(default_factory=list)
    ratio: Decimal = DEFAULT_FOUNDATION_RATIO

    def __post_init__(self):
        self.addresses = canonical_addresses(self.addresses)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FoundationConfig":
        return cls(
            addresses=list(data.get("addresses", [])),
            ratio=_decimal(data.get("ratio", DEFAULT_FOUNDATION_RATIO), "foundation.ratio"),
        )

    def apply_env(self) -> None:
        if v := _env("FOUNDATION_RATIO"):
            self.ratio = _decimal(v, "VEGOV_FOUNDATION_RATIO")
        if v := _env("FOUNDATION_ADDRESSES"):
            self.addresses = canonical_addresses(v.split(","))

    def validate(self) -> None:
        if not Decimal("0") <= self.ratio <= Decimal("1"):
            raise ConfigurationError(f"foundation.ratio out of range: {self.ratio}")


@dataclass
class EmissionSeed:
    """One [[emission]] entry: initial emission record of an app."""
    app_id: int
    total_rewards: int
    emission_rate: Decimal

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EmissionSeed":
        seed = cls(
            app_id=int(data["app_id"]),
            total_rewards=int(data.get("total_rewards", 0)),
            emission_rate=_decimal(data.get("emission_rate", "0"), "emission.emission_rate"),
        )
        if seed.total_rewards < 0:
            raise ConfigurationError("emission.total_rewards cannot be negative")
        if not Decimal("0") <= seed.emission_rate <= Decimal("1"):
            raise ConfigurationError(f"emission.emission_rate out of range: {seed.emission_rate}")
        return seed


# ---------------------------------------------------------------------------
# Top-level config
# ---------------------------------------------------------------------------

@dataclass
class EngineConfig:
    """
    Unified engine configuration.

    Loads every section of vegov.toml and applies environment variable
    overrides. The engine seeds its stored global state from these values
    once; admin operations then update the stored state, not this object.
    """
    governance: GovernanceSectionConfig = field(default_factory=GovernanceSectionConfig)
    tiers: TierConfig = field(default_factory=TierConfig)
    foundation: FoundationConfig = field(default_factory=FoundationConfig)
    emissions: List[EmissionSeed] = field(default_factory=list)

    # --- factories --------------------------------------------------------

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EngineConfig":
        """Create EngineConfig from a parsed TOML dict."""
        try:
            return cls(
                governance=GovernanceSectionConfig.from_dict(data.get("governance", {})),
                tiers=TierConfig.from_dict(data.get("tiers", {})),
                foundation=FoundationConfig.from_dict(data.get("foundation", {})),
                emissions=[EmissionSeed.from_dict(e) for e in data.get("emission", [])],
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e

    @classmethod
    def from_file(cls, config_path: str) -> "EngineConfig":
        """
        Load configuration from a TOML file.

        A missing file yields the defaults (with environment overrides).
        """
        path = Path(config_path)
        if not path.exists():
            logger.warning("Config file not found: %s, using defaults", config_path)
            cfg = cls()
        else:
            try:
                with open(path, "rb") as f:
                    raw = tomli.load(f)
            except tomli.TOMLDecodeError as e:
                raise ConfigurationError(f"Malformed TOML in {config_path}: {e}") from e
            cfg = cls.from_dict(raw)
        cfg.apply_env()
        cfg.validate()
        return cfg

    # --- env overrides ----------------------------------------------------

    def apply_env(self) -> None:
        """Apply environment variable overrides to all sections."""
        self.governance.apply_env()
        self.foundation.apply_env()

    def validate(self) -> None:
        self.governance.validate()
        self.tiers.validate()
        self.foundation.validate()
        app_ids = [e.app_id for e in self.emissions]
        if len(app_ids) != len(set(app_ids)):
            raise ConfigurationError("Duplicate [[emission]] app_id")

    def to_dict(self) -> Dict[str, Any]:
        g = self.governance
        return {
            "governance": {
                "admin": g.admin,
                "votingPeriod": g.voting_period,
                "minLockAmount": g.min_lock_amount,
                "undelegationPeriod": g.undelegation_period,
                "surplusAssetId": g.surplus_asset_id,
                "vestingLedger": g.vesting_ledger,
            },
            "tiers": self.tiers.to_dict(),
            "foundation": {
                "addresses": list(self.foundation.addresses),
                "ratio": str(self.foundation.ratio),
            },
            "emissions": [
                {"appId": e.app_id, "totalRewards": str(e.total_rewards),
                 "emissionRate": str(e.emission_rate)}
                for e in self.emissions
            ],
        }


def load_config(config_path: Optional[str] = None) -> EngineConfig:
    """
    Resolve and load the engine configuration.

    Order: explicit path, VEGOV_CONFIG, ./vegov.toml, built-in defaults.
    """
    path = config_path or _env("CONFIG")
    if path:
        return EngineConfig.from_file(path)
    if Path(DEFAULT_CONFIG_FILE).exists():
        return EngineConfig.from_file(DEFAULT_CONFIG_FILE)
    cfg = EngineConfig()
    cfg.apply_env()
    cfg.validate()
    return cfg

"""
Vegov configuration.
"""

from .loader import (
    EmissionSeed,
    EngineConfig,
    FoundationConfig,
    GovernanceSectionConfig,
    Tier,
    TierConfig,
    TierWeight,
    canonical_addresses,
    load_config,
)

__all__ = [
    "EmissionSeed",
    "EngineConfig",
    "FoundationConfig",
    "GovernanceSectionConfig",
    "Tier",
    "TierConfig",
    "TierWeight",
    "canonical_addresses",
    "load_config",
]

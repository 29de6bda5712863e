"""
Governance: proposals, vote tally, bribes, rewards and delegation.

Provides:
  - Proposal / ProposalStatus / Emission / ProposalManager     (proposals.py)
  - VotePair / VoteRecord / VoteTally                          (voting.py)
  - BribeBook                                                  (bribes.py)
  - RewardClaim / RewardDistributor                            (rewards.py)
  - DelegationInfo / Delegation / DelegationStats /
    DelegationBook / DelegatedClaims                           (delegation.py)
"""

from .proposals import (
    Emission,
    EmissionFigures,
    Proposal,
    ProposalManager,
    ProposalStatus,
)
from .delegation import (
    DelegatedClaim,
    DelegatedClaims,
    Delegation,
    DelegationBook,
    DelegationInfo,
    DelegationStats,
)
from .voting import VotePair, VoteRecord, VoteTally, validate_ratios
from .bribes import BribeBook
from .rewards import RewardClaim, RewardDistributor

__all__ = [
    # Proposals
    "Emission",
    "EmissionFigures",
    "Proposal",
    "ProposalManager",
    "ProposalStatus",
    # Delegation
    "DelegatedClaim",
    "DelegatedClaims",
    "Delegation",
    "DelegationBook",
    "DelegationInfo",
    "DelegationStats",
    # Voting
    "VotePair",
    "VoteRecord",
    "VoteTally",
    "validate_ratios",
    # Rewards
    "BribeBook",
    "RewardClaim",
    "RewardDistributor",
]

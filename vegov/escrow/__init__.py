"""
Escrow Ledger

Provides:
  - VoteTokenEntry / HolderRecord / SupplyTotals / EntryStatus   (types.py)
  - EscrowLedger                                                 (ledger.py)
"""

from .types import (
    EntryStatus,
    HolderRecord,
    SupplyTotals,
    VoteTokenEntry,
    vote_token_denom,
)
from .ledger import EscrowLedger

__all__ = [
    "EntryStatus",
    "EscrowLedger",
    "HolderRecord",
    "SupplyTotals",
    "VoteTokenEntry",
    "vote_token_denom",
]

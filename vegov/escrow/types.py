"""
Escrow data types: vote-token entries, holder records and supply totals.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Dict, Optional

from ..coins import Coin
from ..config import Tier
from ..constants import VOTE_TOKEN_PREFIX


class EntryStatus(IntEnum):
    """Maturity of a vote-token entry relative to the current time."""
    LOCKED = 0      # end time not reached
    UNLOCKING = 1   # end time is now; withdrawable from the next second
    UNLOCKED = 2    # end time passed; withdrawable


def vote_token_denom(denom: str) -> str:
    return VOTE_TOKEN_PREFIX + denom


@dataclass(frozen=True)
class VoteTokenEntry:
    """
    One locked deposit. Never merged with other entries.

    Fields:
        entry_id:    Global sequential identifier
        principal:   Locked governance coin
        vote_token:  Issued vote-token coin (weight(tier) × principal)
        tier:        Lock tier
        start_time:  Lock time
        end_time:    start_time + tier duration
    """
    entry_id: int
    principal: Coin
    vote_token: Coin
    tier: Tier
    start_time: int
    end_time: int

    def status_at(self, now: int) -> EntryStatus:
        if now < self.end_time:
            return EntryStatus.LOCKED
        if now == self.end_time:
            return EntryStatus.UNLOCKING
        return EntryStatus.UNLOCKED

    def is_withdrawable(self, now: int) -> bool:
        return self.end_time < now

    def to_dict(self, now: Optional[int] = None) -> Dict[str, Any]:
        d = {
            "entryId": self.entry_id,
            "principal": self.principal.to_dict(),
            "voteToken": self.vote_token.to_dict(),
            "tier": self.tier.value,
            "startTime": self.start_time,
            "endTime": self.end_time,
        }
        if now is not None:
            d["status"] = self.status_at(now).name
        return d


@dataclass(frozen=True)
class HolderRecord:
    """Registered owner of vote-token entries."""
    owner: str
    holder_id: int
    created_at: int

    def to_dict(self) -> Dict[str, Any]:
        return {"owner": self.owner, "holderId": self.holder_id, "createdAt": self.created_at}


@dataclass(frozen=True)
class SupplyTotals:
    """Per-denom totals across every holder's entries."""
    denom: str
    principal_locked: int = 0
    vote_token_issued: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "denom": self.denom,
            "principalLocked": str(self.principal_locked),
            "voteTokenIssued": str(self.vote_token_issued),
        }

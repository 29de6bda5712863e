"""
Execution context supplied by the caller for every operation.

The engine never reads a wall clock: time and height come from here, so the
same operation against the same prior state always yields the same result.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Tuple

from .coins import Coin
from .exceptions import FundsNotAllowedError


@dataclass
class ExecContext:
    sender: str
    time: int
    height: int
    funds: Tuple[Coin, ...] = ()
    effects: List = field(default_factory=list, repr=False)

    def __post_init__(self):
        self.funds = tuple(self.funds)

    def emit(self, effect) -> None:
        """Queue an outbound effect; discarded if the operation fails."""
        self.effects.append(effect)

    def reject_funds(self) -> None:
        if self.funds:
            raise FundsNotAllowedError()

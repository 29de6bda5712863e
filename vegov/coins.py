"""
Coin amounts and the floor arithmetic shared by every proportional split.

All amounts are non-negative integers in base units. Ratios are Decimals.
Every split rounds toward zero; the remainder is not tracked.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_DOWN, localcontext
from typing import Any, Dict, Iterable, List

from .constants import DECIMAL_PRECISION
from .exceptions import ValidationError


@dataclass(frozen=True)
class Coin:
    """An amount of a single denomination."""
    denom: str
    amount: int

    def __post_init__(self):
        if not self.denom:
            raise ValidationError("Coin denom cannot be empty")
        if not isinstance(self.amount, int) or self.amount < 0:
            raise ValidationError(f"Invalid coin amount: {self.amount!r}")

    def to_dict(self) -> Dict[str, Any]:
        return {"denom": self.denom, "amount": str(self.amount)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Coin:
        return cls(denom=str(data["denom"]), amount=int(data["amount"]))

    def __str__(self) -> str:
        return f"{self.amount}{self.denom}"


def merge_coins(coins: Iterable[Coin]) -> List[Coin]:
    """Sum equal denominations, drop zeros, and sort by denom."""
    totals: Dict[str, int] = {}
    for c in coins:
        totals[c.denom] = totals.get(c.denom, 0) + c.amount
    return [Coin(d, a) for d, a in sorted(totals.items()) if a > 0]


def single_coin(funds: Iterable[Coin]) -> Coin:
    """
    Return the only coin in *funds*.

    Raises ValidationError for empty funds, several denominations or a
    zero amount.
    """
    funds = list(funds)
    if not funds:
        raise ValidationError("No funds attached")
    if len(funds) != 1:
        raise ValidationError("Multiple denominations are not supported")
    coin = funds[0]
    if coin.amount == 0:
        raise ValidationError("Amount cannot be zero")
    return coin


def mul_floor(amount: int, ratio: Decimal) -> int:
    """floor(amount × ratio)."""
    with localcontext() as ctx:
        ctx.prec = DECIMAL_PRECISION
        product = Decimal(amount) * Decimal(ratio)
        return int(product.to_integral_value(rounding=ROUND_DOWN))


def ratio_floor(amount: int, numerator: int, denominator: int) -> int:
    """floor(amount × numerator / denominator), 0 when the denominator is 0."""
    if denominator <= 0:
        return 0
    return amount * numerator // denominator


def scale_coins(coins: Iterable[Coin], numerator: int, denominator: int) -> List[Coin]:
    """Apply ratio_floor to every coin, dropping results that floor to zero."""
    return merge_coins(
        Coin(c.denom, ratio_floor(c.amount, numerator, denominator)) for c in coins
    )


def coins_to_list(coins: Iterable[Coin]) -> List[Dict[str, Any]]:
    return [c.to_dict() for c in coins]


def fraction(numerator: int, denominator: int) -> Decimal:
    """numerator / denominator as a Decimal, 0 when the denominator is 0."""
    if denominator <= 0:
        return Decimal(0)
    with localcontext() as ctx:
        ctx.prec = DECIMAL_PRECISION
        return Decimal(numerator) / Decimal(denominator)

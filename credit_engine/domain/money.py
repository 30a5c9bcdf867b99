"""Fixed-point credit arithmetic

Every credit amount is a Decimal with four fractional digits. Values are
quantized on the way in and after every multiplication so balances never
drift across many small consumptions.
"""

from decimal import Decimal, ROUND_DOWN, ROUND_HALF_UP
from typing import Union

CREDIT_QUANTUM = Decimal("0.0001")
ZERO = Decimal("0.0000")

Number = Union[Decimal, int, str]


def to_credits(value: Number) -> Decimal:
    """Quantize a value to four fractional digits (half-up)"""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CREDIT_QUANTUM, rounding=ROUND_HALF_UP)


def floor_credits(value: Number) -> Decimal:
    """Quantize a value to four fractional digits, rounding toward zero"""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CREDIT_QUANTUM, rounding=ROUND_DOWN)


def multiply(unit_cost: Number, quantity: Number) -> Decimal:
    return to_credits(to_credits(unit_cost) * Decimal(str(quantity)))

"""Decimal helpers. Intermediate sums keep full precision; outputs are cents."""

from decimal import Decimal, ROUND_HALF_UP

CENT = Decimal("0.01")


def to_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    # str() avoids binary float artefacts such as 0.1 -> 0.1000000000000000055
    return Decimal(str(value))


def round_money(value) -> Decimal:
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)

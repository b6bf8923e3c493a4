from __future__ import annotations

from decimal import Decimal, ROUND_CEILING, ROUND_HALF_UP


UNIT_QUANT = Decimal("1")
PERCENT_QUANT = Decimal("0.1")


def to_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value).strip())


def ceil_decimal(value: Decimal, quant: Decimal) -> Decimal:
    return value.quantize(quant, rounding=ROUND_CEILING)


def ceil_int(value) -> int:
    """Round a dimension or weight up to whole units (mm, g)."""
    return int(ceil_decimal(to_decimal(value), UNIT_QUANT))


def round_percent(part, whole) -> float:
    if not whole:
        return 0.0
    ratio = Decimal(part) / Decimal(whole) * Decimal("100")
    return float(ratio.quantize(PERCENT_QUANT, rounding=ROUND_HALF_UP))


def round_tenth(value) -> float:
    return float(to_decimal(value).quantize(PERCENT_QUANT, rounding=ROUND_HALF_UP))

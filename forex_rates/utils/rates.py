"""Rate normalisation helpers shared by every provider."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

RATE_PRECISION = 6
_QUANTUM = Decimal(1).scaleb(-RATE_PRECISION)


def round_rate(value: float | int | str | Decimal) -> float:
    """Round to six decimal digits, half away from zero.

    ``Decimal`` is built from the textual form so binary noise such as
    ``0.1234565000000001`` does not move the result.
    """

    try:
        quantised = Decimal(str(value)).quantize(_QUANTUM, rounding=ROUND_HALF_UP)
    except InvalidOperation as exc:
        raise ValueError(f"Rate is not numeric: {value!r}") from exc
    return float(quantised)


def invert_rate(reverse_rate: float) -> float:
    """Turn a reverse quotation into a direct one (``1 / reverse``).

    The reverse rate is rounded first and the direct result rounded again.
    """

    normalised = round_rate(reverse_rate)
    if normalised == 0:
        raise ValueError("Cannot invert a zero rate")
    return round_rate(1 / normalised)


__all__ = ["RATE_PRECISION", "invert_rate", "round_rate"]

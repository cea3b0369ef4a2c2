"""Decimal utilities for exact exceedance arithmetic.

Exceedance probabilities are ratios of two integer trial counts. Keeping
them as :class:`decimal.Decimal` rather than ``float`` makes curve values
reproducible and monotone by construction, and lets comparisons such as
``prob == 1`` hold exactly.

Example:
    Fraction of trials at or above a threshold::

        from risk_register.decimal_utils import exceedance_ratio

        ratio = exceedance_ratio(25, 100)
        assert ratio == Decimal("0.25")
"""

from decimal import ROUND_HALF_UP, Decimal
import numbers
from typing import Union

ZERO = Decimal("0")
ONE = Decimal("1")

Numeric = Union[Decimal, float, int, str]


def to_decimal(value: Union[Numeric, None]) -> Decimal:
    """Convert a numeric value to Decimal.

    Floats are converted via their string representation to avoid binary
    floating point artifacts.

    Args:
        value: Numeric value to convert, numpy scalars included. None is
            converted to zero.

    Returns:
        Decimal representation of the value.

    Example:
        >>> to_decimal(0.1)
        Decimal('0.1')
        >>> to_decimal(None)
        Decimal('0')
    """
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    if isinstance(value, numbers.Integral):
        # covers numpy integers, which Decimal does not accept
        return Decimal(int(value))
    if isinstance(value, numbers.Real):
        return Decimal(repr(float(value)))
    return Decimal(value)


def exceedance_ratio(count: int, total: int) -> Decimal:
    """Exact ratio of exceeding trials to all trials.

    Args:
        count: Number of trials whose loss met the threshold.
        total: Total number of trials run.

    Returns:
        ``count / total`` as a Decimal, or zero when ``total`` is zero.

    Raises:
        ValueError: If either count is negative or ``count > total``.
    """
    if count < 0 or total < 0:
        raise ValueError(f"Trial counts must be non-negative, got {count}/{total}")
    if count > total:
        raise ValueError(f"Exceeding count {count} cannot be larger than total {total}")
    if total == 0:
        return ZERO
    if count == total:
        return ONE
    return Decimal(count) / Decimal(total)


def round_half_up(value: Numeric) -> int:
    """Round to the nearest integer, with halves rounded away from zero.

    Args:
        value: Value to round.

    Returns:
        Rounded integer.

    Example:
        >>> round_half_up(2.5)
        3
        >>> round_half_up(Decimal("44999.5"))
        45000
    """
    return int(to_decimal(value).quantize(ONE, rounding=ROUND_HALF_UP))

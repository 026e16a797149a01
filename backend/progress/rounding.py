"""Rounding that matches the browser client's ``Math.round``."""

import math


def round_half_up(value: float) -> int:
    """Round .5 up for non-negative values, like JavaScript's Math.round.

    >>> round_half_up(12.5), round(12.5)
    (13, 12)
    """
    return math.floor(value + 0.5)

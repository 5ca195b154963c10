"""Money / rounding helpers.

Split allocation and any amount shown back to clients go through here so
every share is rounded the same way (half-up to cents).
"""

from __future__ import annotations
from decimal import Decimal, ROUND_HALF_UP
from typing import List


def round2(value: float) -> float:
    return float(Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def split_evenly(total: float, parts: int) -> List[float]:
    """Split ``total`` into ``parts`` cent-rounded shares that sum to it exactly.

    The last share absorbs the rounding remainder.
    """
    if parts <= 0:
        return []
    each = round2(total / parts)
    shares = [each] * parts
    shares[-1] = round2(total - each * (parts - 1))
    return shares

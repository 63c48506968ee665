"""Blog monetization rule.

Every full ``threshold`` of views (or impressions) is worth ``rate`` LOB
tokens. Earnings are credited one event at a time as the marginal
difference between the accrued amount after and before the event, so the
running total always equals ``floor(counter / threshold) * rate``.
"""

from __future__ import annotations

from decimal import Decimal


def _as_decimal(value: Decimal | float | int) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))


def accrued_earnings(counter: int, threshold: int, rate: Decimal | float | int) -> Decimal:
    """Total earned by a counter value: ``floor(counter/threshold) * rate``."""
    if threshold < 1:
        msg = "threshold must be at least 1"
        raise ValueError(msg)
    if counter <= 0:
        return Decimal(0)
    return (counter // threshold) * _as_decimal(rate)


def marginal_earning(counter: int, threshold: int, rate: Decimal | float | int) -> Decimal:
    """Earning produced by the event that moved the counter to ``counter``.

    >>> marginal_earning(1000, 1000, 100)
    Decimal('100')
    >>> marginal_earning(999, 1000, 100)
    Decimal('0')
    """
    if counter <= 0:
        return Decimal(0)
    return accrued_earnings(counter, threshold, rate) - accrued_earnings(counter - 1, threshold, rate)

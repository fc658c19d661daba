"""
Module: caisse_engines.bonus
Responsibility:
    Look up the monthly bonus rate and compute the bonus a period earns
    when it is completed.  Rates come from the caisse settings bonus table
    (``M4`` .. ``M12``, percent); earlier months earn nothing.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Bonus is earned once per period, on its first transition to PAID
      (enforced by the settlement service, which calls ``period_bonus``).
    - Decimal-only arithmetic.
"""

from __future__ import annotations

from decimal import Decimal

from caisse_kernel.domain.contract import Period
from caisse_kernel.domain.rules import BonusTable
from caisse_kernel.domain.values import HUNDRED, ZERO

# Bonus starts with the fourth contract month.
FIRST_BONUS_MONTH = 4


def bonus_rate(table: BonusTable | None, period_index: int) -> Decimal:
    """Rate (percent) for period ``period_index`` (month number index + 1)."""
    month_number = period_index + 1
    if table is None or month_number < FIRST_BONUS_MONTH:
        return ZERO
    return table.rate_for_month(month_number)


def credited_amount(period: Period) -> Decimal:
    """Amount a completed period contributes toward bonus."""
    if period.target_amount is None:
        return period.accumulated_amount
    return min(period.accumulated_amount, period.target_amount)


def period_bonus(table: BonusTable | None, period: Period) -> Decimal:
    """Bonus earned by ``period`` (zero unless it is PAID)."""
    if not period.is_paid:
        return ZERO
    rate = bonus_rate(table, period.index)
    if rate == ZERO:
        return ZERO
    return rate / HUNDRED * credited_amount(period)

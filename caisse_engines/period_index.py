"""
Module: caisse_engines.period_index
Responsibility:
    Map calendar dates to zero-based contractual due-periods relative to a
    contract's start date, and derive the schedule dates that go with them
    (per-period due dates, contract end date, daily slots).

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import caisse_kernel.

Invariants enforced:
    - Purity: never reads the clock; identical inputs give identical output.
    - Monotonicity: for a fixed start, the index never decreases as the
      target date advances, and consecutive months never skip an index.
    - Month-length irregularities roll to the last representable day:
      a contract started on Jan 31 has its month-1 anniversary on the last
      day of February, never on an overflowed March day.

Failure modes:
    - NotYetStartedError when the target day precedes the start day.

Usage:
    from datetime import date
    from caisse_engines.period_index import resolve_period_index
    from caisse_kernel.domain.contract import Cadence

    resolve_period_index(date(2024, 1, 31), Cadence.MONTHLY, date(2024, 2, 29))
    # -> 1
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta

from dateutil.relativedelta import relativedelta

from caisse_kernel.domain.contract import Cadence
from caisse_kernel.domain.values import to_day
from caisse_kernel.exceptions import NotYetStartedError


@dataclass(frozen=True)
class PeriodSlot:
    """
    Where a date lands in a contract schedule.

    ``day_index`` is the number of elapsed calendar days since the start
    and is only set for DAILY contracts, where every day is its own
    contribution slot inside the monthly period.
    """

    period_index: int
    day_index: int | None = None


def anniversary(contract_start: date | datetime, months: int) -> date:
    """Start date advanced by ``months``, clamped to the month's last day."""
    return to_day(contract_start) + relativedelta(months=months)


def resolve_period_index(
    contract_start: date | datetime,
    cadence: Cadence | str,
    target_date: date | datetime,
) -> int:
    """
    Resolve the due-period index a date belongs to.

    Period N covers the calendar month holding the rolled anniversary
    ``contract_start + N months``.  Daily contracts use the same monthly
    grouping; see ``resolve_slot`` for their day index.

    Raises:
        NotYetStartedError: If ``target_date`` is before ``contract_start``.
    """
    Cadence(cadence)
    start = to_day(contract_start)
    target = to_day(target_date)
    if target < start:
        raise NotYetStartedError(start.isoformat(), target.isoformat())

    index = (target.year - start.year) * 12 + (target.month - start.month)
    rolled = anniversary(start, index)
    # INVARIANT: the rolled anniversary lives in the same calendar month
    assert (rolled.year, rolled.month) == (target.year, target.month)
    return index


def resolve_slot(
    contract_start: date | datetime,
    cadence: Cadence | str,
    target_date: date | datetime,
) -> PeriodSlot:
    """Resolve both the monthly period and, for DAILY contracts, the day slot."""
    cadence = Cadence(cadence)
    period_index = resolve_period_index(contract_start, cadence, target_date)
    if cadence == Cadence.MONTHLY:
        return PeriodSlot(period_index=period_index)
    day_index = (to_day(target_date) - to_day(contract_start)).days
    return PeriodSlot(period_index=period_index, day_index=day_index)


def due_date_for_period(contract_start: date | datetime, index: int) -> date:
    """Due date of period ``index``: its rolled anniversary."""
    if index < 0:
        raise ValueError("Period index cannot be negative")
    return anniversary(contract_start, index)


def contract_end_date(contract_start: date | datetime, planned_periods: int) -> date:
    """Day the schedule ends (start advanced by the planned number of months)."""
    return anniversary(contract_start, planned_periods)


def is_date_in_period(
    contract_start: date | datetime,
    index: int,
    day: date | datetime,
) -> bool:
    """True if ``day`` resolves to period ``index`` (False before start)."""
    if to_day(day) < to_day(contract_start):
        return False
    return resolve_period_index(contract_start, Cadence.MONTHLY, day) == index


def period_days(contract_start: date | datetime, index: int) -> tuple[date, ...]:
    """
    Calendar days belonging to period ``index`` (daily contribution slots).

    Period 0 starts on the contract start day; later periods start on the
    first of their calendar month.
    """
    start = to_day(contract_start)
    rolled = anniversary(start, index)
    first = max(start, rolled.replace(day=1))
    last = rolled.replace(day=1) + relativedelta(months=1) - timedelta(days=1)
    return tuple(first + timedelta(days=n) for n in range((last - first).days + 1))

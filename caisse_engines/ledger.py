"""
Module: caisse_engines.ledger
Responsibility:
    Accumulate individual and group contributions into period records and
    derive each period's status.  Also hosts the sequential-payment guard
    and the explicit contribution correction operation.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May import caisse_kernel and sibling engines.

Invariants enforced:
    - ``accumulated_amount`` always equals the sum of the period's
      contribution amounts.
    - Status: PAID iff accumulated >= target (open periods: any positive
      amount); PARTIAL if some money arrived; DUE otherwise.  REFUSED is
      only ever set by rescission and is preserved.
    - Sequential payment: a period is payable only when every earlier
      period is PAID, unless the administrative backfill override is used.
    - No idempotency: recording the same contribution twice counts it
      twice.  At-most-once recording is the caller's responsibility.

Failure modes:
    - InvalidAmountError for a non-positive amount.
    - DateBeforeContractStartError for a contribution dated before start.
    - PeriodRefusedError when recording on a refused period.
    - OutOfOrderPaymentError / PeriodNotFoundError from ``ensure_payable``.
    - ContributionNotFoundError from ``correct_contribution`` and
      ``restate_penalty``.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Sequence
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from caisse_engines.period_index import due_date_for_period
from caisse_kernel.domain.contract import (
    Contract,
    Contribution,
    DocumentRef,
    PaymentMode,
    Period,
    PeriodStatus,
)
from caisse_kernel.domain.values import ZERO, days_between, to_amount, to_day
from caisse_kernel.exceptions import (
    ContributionNotFoundError,
    DateBeforeContractStartError,
    InvalidAmountError,
    OutOfOrderPaymentError,
    PeriodNotFoundError,
    PeriodRefusedError,
)
from caisse_kernel.logging_config import get_logger

logger = get_logger("engines.ledger")


def derive_period_status(accumulated: Decimal, target: Decimal | None) -> PeriodStatus:
    """Status implied by an accumulated amount against a target."""
    if target is None:
        return PeriodStatus.PAID if accumulated > ZERO else PeriodStatus.DUE
    if accumulated >= target:
        return PeriodStatus.PAID
    if accumulated > ZERO:
        return PeriodStatus.PARTIAL
    return PeriodStatus.DUE


def _validate(contribution: Contribution, contract_start: date | datetime) -> None:
    if contribution.amount <= ZERO:
        raise InvalidAmountError(contribution.amount)
    start = to_day(contract_start)
    if contribution.paid_on < start:
        raise DateBeforeContractStartError(start.isoformat(), contribution.paid_on.isoformat())


def _rebuild(period: Period, contributions: tuple[Contribution, ...]) -> Period:
    """Recompute totals and status from a contribution list."""
    accumulated = sum((c.amount for c in contributions), ZERO)
    if period.status == PeriodStatus.REFUSED:
        status = PeriodStatus.REFUSED
    else:
        status = derive_period_status(accumulated, period.target_amount)

    paid_at = period.paid_at
    if status == PeriodStatus.PAID and paid_at is None:
        paid_at = contributions[-1].paid_at
    elif status != PeriodStatus.PAID:
        paid_at = None

    return dataclasses.replace(
        period,
        contributions=contributions,
        accumulated_amount=accumulated,
        status=status,
        paid_at=paid_at,
    )


def record_contribution(
    period: Period,
    contribution: Contribution,
    contract_start: date | datetime,
) -> Period:
    """
    Append ``contribution`` to ``period`` and return the updated period.

    Postconditions:
        - The returned period's ``contributions`` ends with ``contribution``.
        - ``accumulated_amount`` and ``status`` are recomputed.
    Raises:
        InvalidAmountError, DateBeforeContractStartError, PeriodRefusedError.
    """
    _validate(contribution, contract_start)
    if period.status == PeriodStatus.REFUSED:
        raise PeriodRefusedError(period.index)

    updated = _rebuild(period, period.contributions + (contribution,))

    logger.info("contribution_recorded", extra={
        "period_index": period.index,
        "amount": str(contribution.amount),
        "payer_id": contribution.payer_id,
        "mode": contribution.mode.value,
        "accumulated_amount": str(updated.accumulated_amount),
        "period_status": updated.status.value,
    })
    return updated


def apply_penalty(period: Period, penalty_amount: Decimal, days_late: int) -> Period:
    """
    Record a computed penalty on the period.

    A period carries the highest penalty computed across its contributions,
    so several partial payments on one late period are penalized once.
    """
    return dataclasses.replace(
        period,
        penalty_amount=max(period.penalty_amount, to_amount(penalty_amount)),
        penalty_days=max(period.penalty_days, days_late),
    )


def restate_penalty(
    period: Period,
    contribution_id: UUID,
    penalty_amount: Decimal,
    reference_due_date: date | datetime,
) -> Period:
    """
    Replace one contribution's penalty and rebuild the period penalty.

    Unlike ``apply_penalty`` the period value can go down: it becomes the
    highest penalty still carried by any contribution, and
    ``penalty_days`` the longest lateness among penalized payments.

    Raises:
        ContributionNotFoundError: If the id is not on this period.
    """
    if not any(c.contribution_id == contribution_id for c in period.contributions):
        raise ContributionNotFoundError(str(contribution_id), period.index)

    amount = to_amount(penalty_amount)
    contributions = tuple(
        dataclasses.replace(c, penalty=amount if amount > ZERO else None)
        if c.contribution_id == contribution_id else c
        for c in period.contributions
    )
    penalized = [c for c in contributions if c.penalty is not None and c.penalty > ZERO]
    due = to_day(reference_due_date)
    restated = dataclasses.replace(
        period,
        contributions=contributions,
        penalty_amount=max((c.penalty for c in penalized), default=ZERO),
        penalty_days=max((days_between(c.paid_at, due) for c in penalized), default=0),
    )

    if restated.penalty_amount != period.penalty_amount:
        logger.info("period_penalty_restated", extra={
            "period_index": period.index,
            "contribution_id": str(contribution_id),
            "previous_penalty": str(period.penalty_amount),
            "penalty_amount": str(restated.penalty_amount),
        })
    return restated


def correct_contribution(
    period: Period,
    contribution_id: UUID,
    *,
    contract_start: date | datetime,
    corrected_at: datetime,
    amount: Decimal | None = None,
    paid_at: datetime | None = None,
    mode: PaymentMode | None = None,
    proof: DocumentRef | None = None,
) -> Period:
    """
    Replace amount/time/mode/proof of a recorded contribution.

    This is the only way a recorded contribution changes.  Fields left as
    ``None`` keep their current value.  The period total and status are
    recomputed; a period can fall back from PAID to PARTIAL.

    Raises:
        ContributionNotFoundError: If the id is not on this period.
        InvalidAmountError, DateBeforeContractStartError: As for recording.
    """
    position = next(
        (i for i, c in enumerate(period.contributions) if c.contribution_id == contribution_id),
        None,
    )
    if position is None:
        raise ContributionNotFoundError(str(contribution_id), period.index)

    original = period.contributions[position]
    replacement = dataclasses.replace(
        original,
        amount=to_amount(amount) if amount is not None else original.amount,
        paid_at=paid_at if paid_at is not None else original.paid_at,
        mode=mode if mode is not None else original.mode,
        proof=proof if proof is not None else original.proof,
        corrected_at=corrected_at,
    )
    _validate(replacement, contract_start)

    contributions = (
        period.contributions[:position] + (replacement,) + period.contributions[position + 1:]
    )
    updated = _rebuild(period, contributions)

    logger.info("contribution_corrected", extra={
        "period_index": period.index,
        "contribution_id": str(contribution_id),
        "previous_amount": str(original.amount),
        "amount": str(replacement.amount),
        "period_status": updated.status.value,
    })
    return updated


# ---------------------------------------------------------------------------
# Schedule helpers
# ---------------------------------------------------------------------------


def build_schedule(contract: Contract) -> tuple[Period, ...]:
    """
    Create every planned period up front.

    Due dates are filled in when the contract already has a start date;
    otherwise activation sets them.
    """
    periods = []
    for index in range(contract.planned_periods):
        due = None
        if contract.start_date is not None:
            due = due_date_for_period(contract.start_date, index)
        periods.append(Period(index=index, target_amount=contract.target_amount, due_date=due))
    return tuple(periods)


def open_period(
    periods: Sequence[Period],
    index: int,
    target_amount: Decimal | None,
    due_date: date | None = None,
) -> tuple[tuple[Period, ...], Period]:
    """
    Return the period at ``index``, appending a fresh one if it is missing.

    Lazily created schedules only ever grow; existing periods are returned
    untouched.
    """
    for period in periods:
        if period.index == index:
            return tuple(periods), period
    created = Period(index=index, target_amount=target_amount, due_date=due_date)
    return tuple(periods) + (created,), created


def find_period(periods: Sequence[Period], index: int) -> Period:
    """Return the period with ``index``; raise PeriodNotFoundError otherwise."""
    for period in periods:
        if period.index == index:
            return period
    raise PeriodNotFoundError(index)


def replace_period(periods: Sequence[Period], updated: Period) -> tuple[Period, ...]:
    """Return ``periods`` with the entry sharing ``updated.index`` swapped."""
    found = False
    result: list[Period] = []
    for period in periods:
        if period.index == updated.index:
            result.append(updated)
            found = True
        else:
            result.append(period)
    if not found:
        raise PeriodNotFoundError(updated.index)
    return tuple(result)


def ensure_payable(
    periods: Sequence[Period],
    target_index: int,
    allow_backfill: bool = False,
) -> Period:
    """
    Check the sequential-payment invariant for ``target_index``.

    ``allow_backfill`` is the administrative late-payment override: it
    skips the ordering check (penalties still apply downstream).

    Returns:
        The target period.
    Raises:
        PeriodNotFoundError, OutOfOrderPaymentError.
    """
    target = find_period(periods, target_index)
    if allow_backfill:
        logger.info("sequential_check_bypassed", extra={"period_index": target_index})
        return target

    blocking = sorted(p.index for p in periods if p.index < target_index and not p.is_paid)
    if blocking:
        raise OutOfOrderPaymentError(target_index, blocking[0])
    return target


# ---------------------------------------------------------------------------
# Calendar / group queries
# ---------------------------------------------------------------------------


def contributions_on(period: Period, day: date | datetime) -> tuple[Contribution, ...]:
    """All contributions dated ``day`` (any payer)."""
    target = to_day(day)
    return tuple(c for c in period.contributions if c.paid_on == target)


def is_touched_on(period: Period, day: date | datetime) -> bool:
    """True if any contribution on the period is dated ``day``."""
    return bool(contributions_on(period, day))


def totals_by_payer(period: Period) -> dict[str | None, Decimal]:
    """Sum of contributions per payer identity (``None`` for unnamed payers)."""
    totals: dict[str | None, Decimal] = {}
    for c in period.contributions:
        totals[c.payer_id] = totals.get(c.payer_id, ZERO) + c.amount
    return totals

"""
Module: caisse_engines.contract_status
Responsibility:
    Derive the contract-level status from the periods and "now", and own
    the administrative lifecycle edges: activation, refund-pending moves,
    closure and rescission.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  ``now`` is always passed
    in by the caller; this module never reads a clock.

Invariants enforced:
    - ``CONTRACT_TRANSITIONS`` is the only definition of administrative
      status changes.  RESCINDED and CLOSED have no outgoing edges.
    - Sticky statuses (DRAFT, both refund-pending states, RESCINDED,
      CLOSED) are never overwritten by lateness.
    - Lateness uses the same day rule and windows as the penalty engine:
      0 or fewer days ACTIVE, 1-3 LATE_NO_PENALTY, 4-12 LATE_WITH_PENALTY,
      beyond DEFAULTED.

Failure modes:
    - InvalidContractTransitionError for an edge missing from the table.
    - ContractTerminatedError for any change on a RESCINDED/CLOSED contract.
    - ContractNotActiveError when a DRAFT contract is asked to take money.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Sequence
from datetime import date, datetime

from caisse_engines.penalty import LatenessWindow, classify_lateness
from caisse_engines.period_index import contract_end_date, due_date_for_period
from caisse_kernel.domain.contract import (
    LATENESS_CONTRACT_STATUSES,
    STICKY_CONTRACT_STATUSES,
    Contract,
    ContractStatus,
    Period,
    PeriodStatus,
)
from caisse_kernel.domain.rules import PenaltyRules
from caisse_kernel.domain.values import days_between, to_day
from caisse_kernel.exceptions import (
    ContractNotActiveError,
    ContractTerminatedError,
    InvalidContractTransitionError,
)
from caisse_kernel.logging_config import get_logger

logger = get_logger("engines.contract_status")


_FROM_LATENESS: frozenset[ContractStatus] = LATENESS_CONTRACT_STATUSES | frozenset({
    ContractStatus.EARLY_REFUND_PENDING,
    ContractStatus.FINAL_REFUND_PENDING,
    ContractStatus.RESCINDED,
})

CONTRACT_TRANSITIONS: dict[ContractStatus, frozenset[ContractStatus]] = {
    ContractStatus.DRAFT: frozenset({ContractStatus.ACTIVE}),
    ContractStatus.ACTIVE: _FROM_LATENESS,
    ContractStatus.LATE_NO_PENALTY: _FROM_LATENESS,
    ContractStatus.LATE_WITH_PENALTY: _FROM_LATENESS,
    ContractStatus.DEFAULTED: _FROM_LATENESS,
    # Cancelling an early request hands the contract back to the resolver.
    ContractStatus.EARLY_REFUND_PENDING: frozenset({
        ContractStatus.ACTIVE,
        ContractStatus.CLOSED,
    }),
    ContractStatus.FINAL_REFUND_PENDING: frozenset({ContractStatus.CLOSED}),
    ContractStatus.RESCINDED: frozenset(),
    ContractStatus.CLOSED: frozenset(),
}

_WINDOW_STATUS: dict[LatenessWindow, ContractStatus] = {
    LatenessWindow.ON_TIME: ContractStatus.ACTIVE,
    LatenessWindow.TOLERANCE: ContractStatus.LATE_NO_PENALTY,
    LatenessWindow.PENALTY: ContractStatus.LATE_WITH_PENALTY,
    LatenessWindow.DEFAULT: ContractStatus.DEFAULTED,
}


# ---------------------------------------------------------------------------
# Guards
# ---------------------------------------------------------------------------


def ensure_contract_open(contract: Contract) -> None:
    """Raise ContractTerminatedError if the contract is RESCINDED or CLOSED."""
    if contract.is_terminated:
        raise ContractTerminatedError(str(contract.contract_id), contract.status.value)


def ensure_contract_active(contract: Contract) -> None:
    """
    The contract can take money: activated and not waiting on a refund.

    Refund-pending contracts are refused because the request already
    snapshotted the amounts owed.
    """
    ensure_contract_open(contract)
    if contract.status not in LATENESS_CONTRACT_STATUSES:
        raise ContractNotActiveError(str(contract.contract_id), contract.status.value)


def transition_contract(contract: Contract, to_status: ContractStatus) -> Contract:
    """Apply an administrative status change checked against the table."""
    ensure_contract_open(contract)
    if contract.status == to_status:
        return contract
    if to_status not in CONTRACT_TRANSITIONS[contract.status]:
        raise InvalidContractTransitionError(
            str(contract.contract_id), contract.status.value, to_status.value,
        )
    logger.info("contract_status_changed", extra={
        "contract_id": str(contract.contract_id),
        "from_status": contract.status.value,
        "to_status": to_status.value,
    })
    return dataclasses.replace(contract, status=to_status)


# ---------------------------------------------------------------------------
# Period queries
# ---------------------------------------------------------------------------


def next_due_period(periods: Sequence[Period]) -> Period | None:
    """Lowest-index period that is not PAID (REFUSED counts as not paid)."""
    unpaid = [p for p in periods if not p.is_paid]
    if not unpaid:
        return None
    return min(unpaid, key=lambda p: p.index)


def next_due_index(periods: Sequence[Period]) -> int | None:
    """Index of the next due period, or ``None`` when everything is paid."""
    period = next_due_period(periods)
    return period.index if period is not None else None


def all_periods_paid(periods: Sequence[Period]) -> bool:
    return bool(periods) and all(p.is_paid for p in periods)


def paid_count(periods: Sequence[Period]) -> int:
    return sum(1 for p in periods if p.is_paid)


def has_any_contribution(periods: Sequence[Period]) -> bool:
    return any(p.has_contributions for p in periods)


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------


def resolve_status(
    periods: Sequence[Period],
    now: date | datetime,
    rules: PenaltyRules | None = None,
    current: ContractStatus = ContractStatus.ACTIVE,
    contract_start: date | None = None,
) -> ContractStatus:
    """
    Resolve the contract status implied by lateness of the next due period.

    Sticky statuses are returned unchanged.  The reference date is the next
    due period's due date, falling back to ``contract_start``; with neither
    the contract counts as ACTIVE.
    """
    if current in STICKY_CONTRACT_STATUSES:
        return current

    period = next_due_period(periods)
    if period is None:
        return ContractStatus.ACTIVE

    reference = period.due_date or contract_start
    if reference is None:
        return ContractStatus.ACTIVE

    window = classify_lateness(days_between(now, reference), rules)
    return _WINDOW_STATUS[window]


def refresh_contract(
    contract: Contract,
    periods: Sequence[Period],
    now: date | datetime,
    rules: PenaltyRules | None = None,
) -> Contract:
    """Contract with its lateness status and ``next_due_date`` re-derived."""
    status = resolve_status(
        periods, now, rules=rules, current=contract.status,
        contract_start=contract.start_date,
    )
    period = next_due_period(periods)
    next_due = period.due_date if period is not None else None
    if status != contract.status:
        logger.info("contract_status_resolved", extra={
            "contract_id": str(contract.contract_id),
            "from_status": contract.status.value,
            "to_status": status.value,
            "as_of": to_day(now).isoformat(),
        })
    return dataclasses.replace(contract, status=status, next_due_date=next_due)


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


def activate_contract(
    contract: Contract,
    periods: Sequence[Period],
    start_date: date | datetime,
) -> tuple[Contract, tuple[Period, ...]]:
    """
    DRAFT -> ACTIVE: fix the start date and every period due date.

    Returns:
        The activated contract and its periods with ``due_date`` set.
    """
    activated = transition_contract(contract, ContractStatus.ACTIVE)
    start = to_day(start_date)
    dated = tuple(
        dataclasses.replace(p, due_date=due_date_for_period(start, p.index))
        for p in periods
    )
    first_due = next_due_period(dated)
    activated = dataclasses.replace(
        activated,
        start_date=start,
        end_date=contract_end_date(start, contract.planned_periods),
        next_due_date=first_due.due_date if first_due is not None else None,
    )
    logger.info("contract_activated", extra={
        "contract_id": str(contract.contract_id),
        "start_date": start.isoformat(),
        "end_date": activated.end_date.isoformat(),
        "period_count": len(dated),
    })
    return activated, dated


def close_contract(contract: Contract) -> Contract:
    """Terminal CLOSED status; only reachable from a refund-pending state."""
    return transition_contract(contract, ContractStatus.CLOSED)


def rescind_contract(
    contract: Contract,
    periods: Sequence[Period],
) -> tuple[Contract, tuple[Period, ...]]:
    """
    Administrative rescission ("resiliation").

    Allowed from ACTIVE and the lateness statuses.  The next due period is
    marked REFUSED; afterwards the contract accepts no contributions and no
    refund requests.
    """
    if contract.status not in LATENESS_CONTRACT_STATUSES:
        ensure_contract_open(contract)
        raise InvalidContractTransitionError(
            str(contract.contract_id), contract.status.value,
            ContractStatus.RESCINDED.value,
        )
    rescinded = transition_contract(contract, ContractStatus.RESCINDED)

    refused = next_due_period(periods)
    updated = tuple(periods)
    if refused is not None:
        updated = tuple(
            dataclasses.replace(p, status=PeriodStatus.REFUSED) if p.index == refused.index else p
            for p in periods
        )
    logger.warning("contract_rescinded", extra={
        "contract_id": str(contract.contract_id),
        "refused_period": refused.index if refused is not None else None,
    })
    return dataclasses.replace(rescinded, next_due_date=None), updated

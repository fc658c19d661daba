"""
Module: caisse_engines.penalty
Responsibility:
    Compute late-payment penalties under the tiered caisse policy and
    classify lateness into the windows shared with the contract status
    resolver.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import caisse_kernel.

Invariants enforced:
    - Day granularity: time-of-day is discarded on both operands before
      counting days late.
    - Tiers: 0 or fewer days late is on time; up to ``tolerance_days`` is
      flagged but free; from ``penalty_threshold_days`` a penalty accrues.
    - Percentage rules are linear in days late and NOT capped after the
      default threshold.
    - Decimal-only arithmetic.

Failure modes:
    - Missing rules (``None``) or rules with neither a rate nor steps are a
      configuration gap: zero penalty, ``rules_configured=False``.  Never
      raises for that case; the caller decides whether to log.

Usage:
    from datetime import date
    from decimal import Decimal
    from caisse_engines.penalty import compute_penalty
    from caisse_kernel.domain.rules import PenaltyRules

    result = compute_penalty(
        reference_due_date=date(2024, 3, 1),
        payment_date=date(2024, 3, 6),
        period_target_amount=Decimal("100000"),
        rules=PenaltyRules(per_day_rate_percent=Decimal("1")),
    )
    # result.days_late == 5, result.penalty_amount == Decimal("5000")
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from caisse_engines.tracer import traced_engine
from caisse_kernel.domain.rules import PenaltyRules
from caisse_kernel.domain.values import HUNDRED, ZERO, days_between, to_amount
from caisse_kernel.logging_config import get_logger

logger = get_logger("engines.penalty")

_DEFAULT_RULES = PenaltyRules()


class LatenessWindow(str, Enum):
    """Lateness tier of a payment or of the next due period."""

    ON_TIME = "ON_TIME"
    TOLERANCE = "TOLERANCE"
    PENALTY = "PENALTY"
    DEFAULT = "DEFAULT"


@dataclass(frozen=True)
class PenaltyResult:
    """Outcome of a penalty computation."""

    days_late: int
    penalty_amount: Decimal
    has_penalty: bool
    window: LatenessWindow
    rules_configured: bool = True

    @property
    def is_late(self) -> bool:
        """True for any lateness, including the free tolerance window."""
        return self.days_late > 0


def classify_lateness(days_late: int, rules: PenaltyRules | None = None) -> LatenessWindow:
    """Map a day count onto the lateness windows of ``rules``."""
    thresholds = rules or _DEFAULT_RULES
    if days_late <= 0:
        return LatenessWindow.ON_TIME
    if days_late < thresholds.penalty_threshold_days:
        return LatenessWindow.TOLERANCE
    if days_late <= thresholds.default_threshold_days:
        return LatenessWindow.PENALTY
    return LatenessWindow.DEFAULT


def _stepped_penalty(days_late: int, rules: PenaltyRules) -> Decimal:
    """Sum fixed per-day amounts for each penalized day."""
    last_step = rules.steps[-1]
    total = ZERO
    for late_day in range(rules.penalty_threshold_days, days_late + 1):
        step_day = late_day - rules.penalty_threshold_days + 1
        if step_day > last_step.to_day:
            total += last_step.amount_per_day
            continue
        for step in rules.steps:
            if step.contains(step_day):
                total += step.amount_per_day
                break
    return total


@traced_engine(
    "penalty", "1.0",
    fingerprint_fields=(
        "reference_due_date", "payment_date", "period_target_amount",
    ),
)
def compute_penalty(
    reference_due_date: date | datetime,
    payment_date: date | datetime,
    period_target_amount: Decimal,
    rules: PenaltyRules | None,
) -> PenaltyResult:
    """
    Compute the penalty for paying a period on ``payment_date``.

    Preconditions:
        - ``reference_due_date`` is the period due date, or the contract
          start date when the period has none yet.
    Postconditions:
        - ``has_penalty`` is True exactly when the payment is past the
          penalty threshold and rules are configured.
        - ``window`` is ``classify_lateness(days_late, rules)``.
    """
    days_late = days_between(payment_date, reference_due_date)
    window = classify_lateness(days_late, rules)
    configured = rules is not None and rules.is_configured

    if window in (LatenessWindow.ON_TIME, LatenessWindow.TOLERANCE):
        return PenaltyResult(
            days_late=days_late,
            penalty_amount=ZERO,
            has_penalty=False,
            window=window,
            rules_configured=configured,
        )

    if not configured:
        logger.debug("penalty_rules_not_configured", extra={
            "days_late": days_late,
            "window": window.value,
        })
        return PenaltyResult(
            days_late=days_late,
            penalty_amount=ZERO,
            has_penalty=False,
            window=window,
            rules_configured=False,
        )

    if rules.uses_steps:
        amount = _stepped_penalty(days_late, rules)
    else:
        base = to_amount(period_target_amount)
        amount = rules.per_day_rate_percent / HUNDRED * base * days_late

    logger.debug("penalty_computed", extra={
        "days_late": days_late,
        "window": window.value,
        "penalty_amount": str(amount),
        "stepped": rules.uses_steps,
    })

    return PenaltyResult(
        days_late=days_late,
        penalty_amount=amount,
        has_penalty=True,
        window=window,
        rules_configured=True,
    )

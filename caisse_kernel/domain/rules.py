"""
Settlement rule value objects (``caisse_kernel.domain.rules``).

Responsibility
--------------
Kernel-side shapes for the per-caisse-type settings the engines consume:
late-payment penalty rules, the monthly bonus table and support-advance
bounds.  ``caisse_config`` parses YAML into these; engines receive them as
plain arguments and never import the config layer.

Invariants enforced
-------------------
* ``tolerance_days < penalty_threshold_days <= default_threshold_days``.
* Penalty steps are ordered, non-overlapping and start at day 1.
* Support bounds satisfy ``0 < minimum <= maximum``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from caisse_kernel.domain.values import ZERO, to_amount, to_optional_amount


@dataclass(frozen=True)
class PenaltyStep:
    """
    Fixed per-day penalty for a range of late days.

    Days are counted from the penalty threshold: step day 1 is the first
    penalized day (J+4 with the default threshold), day 9 is J+12.
    """

    from_day: int
    to_day: int
    amount_per_day: Decimal

    def __post_init__(self) -> None:
        if self.from_day < 1:
            raise ValueError("from_day must be >= 1")
        if self.to_day < self.from_day:
            raise ValueError("to_day cannot be less than from_day")
        object.__setattr__(self, "amount_per_day", to_amount(self.amount_per_day))
        if self.amount_per_day < ZERO:
            raise ValueError("amount_per_day cannot be negative")

    def contains(self, step_day: int) -> bool:
        return self.from_day <= step_day <= self.to_day


@dataclass(frozen=True)
class PenaltyRules:
    """Tiered late-payment policy for one caisse type."""

    per_day_rate_percent: Decimal | None = None
    tolerance_days: int = 3
    penalty_threshold_days: int = 4
    default_threshold_days: int = 12
    steps: tuple[PenaltyStep, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "per_day_rate_percent", to_optional_amount(self.per_day_rate_percent)
        )
        if self.tolerance_days < 0:
            raise ValueError("tolerance_days cannot be negative")
        if self.penalty_threshold_days <= self.tolerance_days:
            raise ValueError("penalty_threshold_days must exceed tolerance_days")
        if self.default_threshold_days < self.penalty_threshold_days:
            raise ValueError("default_threshold_days cannot precede the penalty threshold")
        ordered = tuple(sorted(self.steps, key=lambda s: s.from_day))
        if ordered and ordered[0].from_day != 1:
            raise ValueError(
                f"Penalty steps must start at day 1, first step starts at {ordered[0].from_day}"
            )
        for prev, nxt in zip(ordered, ordered[1:]):
            if nxt.from_day <= prev.to_day:
                raise ValueError(
                    f"Penalty steps overlap: {prev.from_day}-{prev.to_day} "
                    f"and {nxt.from_day}-{nxt.to_day}"
                )
        object.__setattr__(self, "steps", ordered)

    @property
    def uses_steps(self) -> bool:
        return bool(self.steps)

    @property
    def is_configured(self) -> bool:
        """False when neither a rate nor steps are set (configuration gap)."""
        return self.uses_steps or self.per_day_rate_percent is not None


@dataclass(frozen=True)
class BonusTable:
    """
    Bonus rate (percent) per contract month, keyed ``M4`` .. ``M12``.

    Months missing from the table earn nothing.
    """

    rates: dict[str, Decimal] = field(default_factory=dict)

    def __post_init__(self) -> None:
        normalized = {}
        for key, value in self.rates.items():
            label = key.upper()
            if not label.startswith("M") or not label[1:].isdigit():
                raise ValueError(f"Bonus table key must look like 'M4', got {key!r}")
            normalized[label] = to_amount(value)
        object.__setattr__(self, "rates", normalized)

    def rate_for_month(self, month_number: int) -> Decimal:
        return self.rates.get(f"M{month_number}", ZERO)


@dataclass(frozen=True)
class SupportBounds:
    """Inclusive amount bounds for a support advance."""

    minimum: Decimal
    maximum: Decimal

    def __post_init__(self) -> None:
        object.__setattr__(self, "minimum", to_amount(self.minimum))
        object.__setattr__(self, "maximum", to_amount(self.maximum))
        if self.minimum <= ZERO:
            raise ValueError("Support minimum must be positive")
        if self.maximum < self.minimum:
            raise ValueError("Support maximum cannot be below minimum")

    def contains(self, amount: Decimal) -> bool:
        return self.minimum <= amount <= self.maximum

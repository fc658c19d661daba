"""
Support advance domain types (``caisse_kernel.domain.support``).

An emergency advance granted against a contract.  While it is ACTIVE,
every incoming payment repays it first; ordinary contributions resume only
once it is REPAID.

Invariants enforced
-------------------
* ``amount_remaining == amount - amount_repaid`` and is never negative.
* REPAID is terminal: ``amount_remaining`` is zero.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID, uuid4

from caisse_kernel.domain.values import ZERO, to_amount


class SupportStatus(str, Enum):
    """Support advance lifecycle states."""

    ACTIVE = "ACTIVE"
    REPAID = "REPAID"


@dataclass(frozen=True)
class Repayment:
    """One repayment event and the period it was collected against."""

    paid_at: datetime
    amount: Decimal
    period_index: int | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "amount", to_amount(self.amount))


@dataclass(frozen=True)
class SupportAdvance:
    """Emergency cash advance with its repayment history."""

    contract_id: UUID
    amount: Decimal
    granted_at: datetime
    advance_id: UUID = field(default_factory=uuid4)
    amount_repaid: Decimal = ZERO
    status: SupportStatus = SupportStatus.ACTIVE
    repayments: tuple[Repayment, ...] = ()
    repaid_at: datetime | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "amount", to_amount(self.amount))
        object.__setattr__(self, "amount_repaid", to_amount(self.amount_repaid))
        if self.amount_repaid > self.amount:
            raise ValueError("amount_repaid cannot exceed the advance amount")

    @property
    def amount_remaining(self) -> Decimal:
        return max(ZERO, self.amount - self.amount_repaid)

    @property
    def is_active(self) -> bool:
        return self.status == SupportStatus.ACTIVE


def find_active_advance(
    advances: tuple[SupportAdvance, ...] | list[SupportAdvance],
) -> SupportAdvance | None:
    """Return the single ACTIVE advance, if any."""
    for advance in advances:
        if advance.is_active:
            return advance
    return None

"""
Refund domain types (``caisse_kernel.domain.refund``).

Responsibility
--------------
Pure value objects for early-withdrawal and final-refund requests, and
the transition table that is the only definition of their lifecycle.

Invariants enforced
-------------------
* ``REFUND_TRANSITIONS`` defines the only valid status transitions.
  PAID and ARCHIVED have no outgoing edges; nothing moves backwards and
  no state is skipped.
* ``reason``, ``amount_nominal`` and ``amount_bonus`` are captured at
  creation and never change afterwards.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from uuid import UUID, uuid4

from caisse_kernel.domain.contract import DocumentRef
from caisse_kernel.domain.values import ZERO, to_amount


class RefundType(str, Enum):
    """Refund request kinds."""

    EARLY = "EARLY"
    FINAL = "FINAL"


class RefundStatus(str, Enum):
    """Refund request lifecycle states."""

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    PAID = "PAID"
    ARCHIVED = "ARCHIVED"


REFUND_TRANSITIONS: dict[RefundStatus, frozenset[RefundStatus]] = {
    RefundStatus.PENDING: frozenset({
        RefundStatus.APPROVED,
        RefundStatus.ARCHIVED,
    }),
    RefundStatus.APPROVED: frozenset({
        RefundStatus.PAID,
    }),
    RefundStatus.PAID: frozenset(),
    RefundStatus.ARCHIVED: frozenset(),
}

TERMINAL_REFUND_STATUSES: frozenset[RefundStatus] = frozenset({
    RefundStatus.PAID,
    RefundStatus.ARCHIVED,
})


@dataclass(frozen=True)
class RefundRequest:
    """Snapshot of a refund request."""

    contract_id: UUID
    refund_type: RefundType
    reason: str
    requested_at: datetime
    request_id: UUID = field(default_factory=uuid4)
    status: RefundStatus = RefundStatus.PENDING
    amount_nominal: Decimal = ZERO
    amount_bonus: Decimal = ZERO
    deadline_at: datetime | None = None
    document: DocumentRef | None = None
    approved_at: datetime | None = None
    withdrawal_date: date | None = None
    withdrawal_time: time | None = None
    withdrawal_proof: DocumentRef | None = None
    paid_at: datetime | None = None
    archived_at: datetime | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "amount_nominal", to_amount(self.amount_nominal))
        object.__setattr__(self, "amount_bonus", to_amount(self.amount_bonus))

    @property
    def amount_total(self) -> Decimal:
        return self.amount_nominal + self.amount_bonus

    @property
    def is_archived(self) -> bool:
        return self.status == RefundStatus.ARCHIVED

    @property
    def has_document(self) -> bool:
        return self.document is not None


def can_transition(from_status: RefundStatus, to_status: RefundStatus) -> bool:
    """True if the lifecycle table allows ``from_status -> to_status``."""
    return to_status in REFUND_TRANSITIONS[from_status]

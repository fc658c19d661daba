"""
Contract domain types (``caisse_kernel.domain.contract``).

Responsibility
--------------
Pure value objects for a savings contract and its schedule: the contract
header with running totals, one ``Period`` per due month, and the
``Contribution`` records that fill each period.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  Engines build
new instances with ``dataclasses.replace``; nothing here is mutated in
place.

Invariants enforced
-------------------
* Amounts are ``Decimal`` (coerced in ``__post_init__``, floats rejected).
* ``Period.contributions`` is an ordered tuple; ``accumulated_amount`` is
  kept equal to its sum by the ledger engine.
* A contribution amount is never negative (zero/negative is rejected by the
  ledger before a record is built).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID, uuid4

from caisse_kernel.domain.values import ZERO, to_amount, to_day, to_optional_amount


# =========================================================================
# Enumerations
# =========================================================================


class Cadence(str, Enum):
    """How often a contract expects contributions."""

    MONTHLY = "MONTHLY"
    DAILY = "DAILY"


class CaisseType(str, Enum):
    """Product family; selects settings (penalties, bonus, support bounds)."""

    STANDARD = "STANDARD"
    JOURNALIERE = "JOURNALIERE"
    LIBRE = "LIBRE"


class OwnerKind(str, Enum):
    """Whether a contract belongs to one member or to a group."""

    MEMBER = "MEMBER"
    GROUP = "GROUP"


class ContractStatus(str, Enum):
    """Contract-level status (flat, no sub-machine)."""

    DRAFT = "DRAFT"
    ACTIVE = "ACTIVE"
    LATE_NO_PENALTY = "LATE_NO_PENALTY"
    LATE_WITH_PENALTY = "LATE_WITH_PENALTY"
    DEFAULTED = "DEFAULTED"
    EARLY_REFUND_PENDING = "EARLY_REFUND_PENDING"
    FINAL_REFUND_PENDING = "FINAL_REFUND_PENDING"
    RESCINDED = "RESCINDED"
    CLOSED = "CLOSED"


# Statuses the resolver never overwrites from lateness.
STICKY_CONTRACT_STATUSES: frozenset[ContractStatus] = frozenset({
    ContractStatus.DRAFT,
    ContractStatus.EARLY_REFUND_PENDING,
    ContractStatus.FINAL_REFUND_PENDING,
    ContractStatus.RESCINDED,
    ContractStatus.CLOSED,
})

TERMINAL_CONTRACT_STATUSES: frozenset[ContractStatus] = frozenset({
    ContractStatus.RESCINDED,
    ContractStatus.CLOSED,
})

LATENESS_CONTRACT_STATUSES: frozenset[ContractStatus] = frozenset({
    ContractStatus.ACTIVE,
    ContractStatus.LATE_NO_PENALTY,
    ContractStatus.LATE_WITH_PENALTY,
    ContractStatus.DEFAULTED,
})


class PeriodStatus(str, Enum):
    """Status of one due slot."""

    DUE = "DUE"
    PARTIAL = "PARTIAL"
    PAID = "PAID"
    REFUSED = "REFUSED"


class PaymentMode(str, Enum):
    """Closed set of payment channels."""

    AIRTEL_MONEY = "airtel_money"
    MOBICASH = "mobicash"
    CASH = "cash"
    BANK_TRANSFER = "bank_transfer"


# =========================================================================
# Records
# =========================================================================


@dataclass(frozen=True)
class DocumentRef:
    """Opaque handle to a stored document; the engine never reads its bytes."""

    document_id: str
    url: str | None = None
    content_type: str | None = None


@dataclass(frozen=True)
class Contribution:
    """One recorded payment ("versement") attributed to a period."""

    amount: Decimal
    paid_at: datetime
    mode: PaymentMode = PaymentMode.CASH
    contribution_id: UUID = field(default_factory=uuid4)
    payer_id: str | None = None
    penalty: Decimal | None = None
    proof: DocumentRef | None = None
    corrected_at: datetime | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "amount", to_amount(self.amount))
        object.__setattr__(self, "penalty", to_optional_amount(self.penalty))
        if not isinstance(self.mode, PaymentMode):
            object.__setattr__(self, "mode", PaymentMode(self.mode))

    @property
    def paid_on(self) -> date:
        """Calendar day of the payment."""
        return to_day(self.paid_at)


@dataclass(frozen=True)
class Period:
    """
    One due slot (a month) within a contract schedule.

    ``target_amount`` is ``None`` for open ("free") contracts, where any
    positive accumulated amount completes the slot.
    """

    index: int
    target_amount: Decimal | None
    due_date: date | None = None
    accumulated_amount: Decimal = ZERO
    status: PeriodStatus = PeriodStatus.DUE
    penalty_amount: Decimal = ZERO
    penalty_days: int = 0
    contributions: tuple[Contribution, ...] = ()
    paid_at: datetime | None = None

    def __post_init__(self) -> None:
        if self.index < 0:
            raise ValueError("Period index cannot be negative")
        object.__setattr__(self, "target_amount", to_optional_amount(self.target_amount))
        object.__setattr__(self, "accumulated_amount", to_amount(self.accumulated_amount))
        object.__setattr__(self, "penalty_amount", to_amount(self.penalty_amount))

    @property
    def is_paid(self) -> bool:
        return self.status == PeriodStatus.PAID

    @property
    def has_contributions(self) -> bool:
        return bool(self.contributions)

    @property
    def remaining_amount(self) -> Decimal:
        """Amount still needed to reach the target (zero for open periods)."""
        if self.target_amount is None:
            return ZERO
        return max(ZERO, self.target_amount - self.accumulated_amount)


@dataclass(frozen=True)
class Contract:
    """
    Contract header and running totals.

    Contract:
        Owned by one member or one group.  Identity, cadence, targets and
        schedule size never change once periods exist; engines only touch
        status, dates and totals.
    """

    owner_id: str
    caisse_type: CaisseType
    cadence: Cadence
    target_amount: Decimal | None
    planned_periods: int
    contract_id: UUID = field(default_factory=uuid4)
    owner_kind: OwnerKind = OwnerKind.MEMBER
    start_date: date | None = None
    end_date: date | None = None
    status: ContractStatus = ContractStatus.DRAFT
    nominal_paid: Decimal = ZERO
    bonus_accrued: Decimal = ZERO
    penalties_total: Decimal = ZERO
    next_due_date: date | None = None

    def __post_init__(self) -> None:
        if self.planned_periods < 1:
            raise ValueError("planned_periods must be at least 1")
        if not isinstance(self.caisse_type, CaisseType):
            object.__setattr__(self, "caisse_type", CaisseType(self.caisse_type))
        if not isinstance(self.cadence, Cadence):
            object.__setattr__(self, "cadence", Cadence(self.cadence))
        object.__setattr__(self, "target_amount", to_optional_amount(self.target_amount))
        object.__setattr__(self, "nominal_paid", to_amount(self.nominal_paid))
        object.__setattr__(self, "bonus_accrued", to_amount(self.bonus_accrued))
        object.__setattr__(self, "penalties_total", to_amount(self.penalties_total))

    @property
    def is_open_contract(self) -> bool:
        """True for "free" contracts without a fixed per-period target."""
        return self.target_amount is None

    @property
    def is_terminated(self) -> bool:
        return self.status in TERMINAL_CONTRACT_STATUSES

    @property
    def is_group(self) -> bool:
        return self.owner_kind == OwnerKind.GROUP

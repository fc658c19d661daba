"""Pure domain value objects for the caisse engine."""

from caisse_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from caisse_kernel.domain.contract import (
    Cadence,
    CaisseType,
    Contract,
    ContractStatus,
    Contribution,
    DocumentRef,
    OwnerKind,
    PaymentMode,
    Period,
    PeriodStatus,
)
from caisse_kernel.domain.refund import RefundRequest, RefundStatus, RefundType
from caisse_kernel.domain.rules import (
    BonusTable,
    PenaltyRules,
    PenaltyStep,
    SupportBounds,
)
from caisse_kernel.domain.support import (
    Repayment,
    SupportAdvance,
    SupportStatus,
)

__all__ = [
    "BonusTable",
    "Cadence",
    "CaisseType",
    "Clock",
    "Contract",
    "ContractStatus",
    "Contribution",
    "DeterministicClock",
    "DocumentRef",
    "OwnerKind",
    "PaymentMode",
    "PenaltyRules",
    "PenaltyStep",
    "Period",
    "PeriodStatus",
    "RefundRequest",
    "RefundStatus",
    "RefundType",
    "Repayment",
    "SupportAdvance",
    "SupportBounds",
    "SupportStatus",
    "SystemClock",
]

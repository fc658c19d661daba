"""
Module: caisse_engines
Responsibility:
    Package entrypoint that re-exports the public symbols of the pure
    settlement engines.  This is the import surface for caisse_services.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import caisse_kernel (and sibling engine modules).
    MUST NOT import caisse_config or caisse_services.

Invariants enforced:
    - Purity: engines NEVER call ``datetime.now()`` or ``date.today()``.
      Callers pass timestamps in explicitly.
    - Decimal-only arithmetic for every amount.
    - Determinism: identical inputs always produce identical outputs.

Usage:
    from caisse_engines import compute_penalty, resolve_period_index
    from caisse_engines import record_contribution, apply_payment
"""

from caisse_kernel.logging_config import get_logger

logger = get_logger("engines")

from caisse_engines.bonus import (
    FIRST_BONUS_MONTH,
    bonus_rate,
    credited_amount,
    period_bonus,
)
from caisse_engines.contract_status import (
    CONTRACT_TRANSITIONS,
    activate_contract,
    all_periods_paid,
    close_contract,
    ensure_contract_active,
    ensure_contract_open,
    has_any_contribution,
    next_due_index,
    next_due_period,
    paid_count,
    refresh_contract,
    rescind_contract,
    resolve_status,
    transition_contract,
)
from caisse_engines.ledger import (
    apply_penalty,
    build_schedule,
    contributions_on,
    correct_contribution,
    derive_period_status,
    ensure_payable,
    find_period,
    is_touched_on,
    open_period,
    record_contribution,
    replace_period,
    restate_penalty,
    totals_by_payer,
)
from caisse_engines.penalty import (
    LatenessWindow,
    PenaltyResult,
    classify_lateness,
    compute_penalty,
)
from caisse_engines.period_index import (
    PeriodSlot,
    anniversary,
    contract_end_date,
    due_date_for_period,
    is_date_in_period,
    period_days,
    resolve_period_index,
    resolve_slot,
)
from caisse_engines.refund import (
    EARLY_REFUND_DEADLINE,
    FINAL_REFUND_DEADLINE,
    approve,
    attach_document,
    cancel,
    mark_paid,
    refund_deadline,
    request_refund,
)
from caisse_engines.support import (
    SupportPaymentSplit,
    apply_payment,
    grant_advance,
)
from caisse_engines.tracer import compute_input_fingerprint, traced_engine

__all__ = [
    # Bonus
    "FIRST_BONUS_MONTH",
    "bonus_rate",
    "credited_amount",
    "period_bonus",
    # Contract status
    "CONTRACT_TRANSITIONS",
    "activate_contract",
    "all_periods_paid",
    "close_contract",
    "ensure_contract_active",
    "ensure_contract_open",
    "has_any_contribution",
    "next_due_index",
    "next_due_period",
    "paid_count",
    "refresh_contract",
    "rescind_contract",
    "resolve_status",
    "transition_contract",
    # Ledger
    "apply_penalty",
    "build_schedule",
    "contributions_on",
    "correct_contribution",
    "derive_period_status",
    "ensure_payable",
    "find_period",
    "is_touched_on",
    "open_period",
    "record_contribution",
    "replace_period",
    "restate_penalty",
    "totals_by_payer",
    # Penalty
    "LatenessWindow",
    "PenaltyResult",
    "classify_lateness",
    "compute_penalty",
    # Period index
    "PeriodSlot",
    "anniversary",
    "contract_end_date",
    "due_date_for_period",
    "is_date_in_period",
    "period_days",
    "resolve_period_index",
    "resolve_slot",
    # Refund
    "EARLY_REFUND_DEADLINE",
    "FINAL_REFUND_DEADLINE",
    "approve",
    "attach_document",
    "cancel",
    "mark_paid",
    "refund_deadline",
    "request_refund",
    # Support
    "SupportPaymentSplit",
    "apply_payment",
    "grant_advance",
    # Tracing
    "compute_input_fingerprint",
    "traced_engine",
]

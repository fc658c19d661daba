"""
Module: caisse_engines.support
Responsibility:
    Grant emergency support advances and split incoming payments between
    advance repayment and ordinary contribution.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - At most one ACTIVE advance per contract.
    - Repayment priority: while an advance is ACTIVE an incoming payment
      repays it first; only the surplus can become a contribution.
    - ``amount_repaid`` never exceeds ``amount``; a full repayment consumes
      exactly ``amount_remaining`` and makes the advance REPAID (terminal).
    - No deduplication: applying the same payment twice repays twice.

Failure modes:
    - AdvanceAlreadyActiveError, AmountOutOfRangeError,
      SupportNotEligibleError, ContractTerminatedError from ``grant_advance``.
    - AdvanceNotActiveError, InvalidAmountError from ``apply_payment``.

Usage:
    from decimal import Decimal
    from caisse_engines.support import apply_payment

    split = apply_payment(advance, Decimal("8000"), paid_at=now, period_index=2)
    split.repayment_amount            # what went to the advance
    split.remainder_for_contribution  # what the ledger may record
"""

from __future__ import annotations

import dataclasses
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from caisse_engines.contract_status import ensure_contract_open
from caisse_kernel.domain.contract import Contract
from caisse_kernel.domain.rules import SupportBounds
from caisse_kernel.domain.support import (
    Repayment,
    SupportAdvance,
    SupportStatus,
    find_active_advance,
)
from caisse_kernel.domain.values import ZERO, to_amount
from caisse_kernel.exceptions import (
    AdvanceAlreadyActiveError,
    AdvanceNotActiveError,
    AmountOutOfRangeError,
    InvalidAmountError,
    SupportNotEligibleError,
)
from caisse_kernel.logging_config import get_logger

logger = get_logger("engines.support")


@dataclass(frozen=True)
class SupportPaymentSplit:
    """How one incoming payment was divided."""

    repayment_amount: Decimal
    remainder_for_contribution: Decimal
    advance: SupportAdvance

    @property
    def has_remainder(self) -> bool:
        return self.remainder_for_contribution > ZERO


def grant_advance(
    contract: Contract,
    amount: Decimal,
    bounds: SupportBounds | None,
    existing_advances: Sequence[SupportAdvance],
    granted_at: datetime,
    eligible: bool = True,
) -> SupportAdvance:
    """
    Grant a new support advance on ``contract``.

    ``eligible`` is the verdict of the external eligibility check (member
    standing, contract age and so on); the engine only enforces it.
    ``bounds`` of ``None`` means the caisse type has no configured range.
    """
    ensure_contract_open(contract)
    amount = to_amount(amount)
    if amount <= ZERO:
        raise InvalidAmountError(amount)

    active = find_active_advance(existing_advances)
    if active is not None:
        raise AdvanceAlreadyActiveError(str(contract.contract_id), str(active.advance_id))

    if not eligible:
        raise SupportNotEligibleError(str(contract.contract_id))

    if bounds is not None and not bounds.contains(amount):
        raise AmountOutOfRangeError(amount, bounds.minimum, bounds.maximum)

    advance = SupportAdvance(
        contract_id=contract.contract_id,
        amount=amount,
        granted_at=granted_at,
    )
    logger.info("support_advance_granted", extra={
        "contract_id": str(contract.contract_id),
        "advance_id": str(advance.advance_id),
        "amount": str(amount),
    })
    return advance


def apply_payment(
    advance: SupportAdvance,
    incoming_amount: Decimal,
    paid_at: datetime,
    period_index: int | None = None,
) -> SupportPaymentSplit:
    """
    Route ``incoming_amount`` to the advance first.

    Postconditions:
        - ``repayment_amount + remainder_for_contribution == incoming_amount``.
        - ``remainder_for_contribution > 0`` only if the advance is now REPAID.
    """
    incoming = to_amount(incoming_amount)
    if incoming <= ZERO:
        raise InvalidAmountError(incoming)
    if not advance.is_active:
        raise AdvanceNotActiveError(str(advance.advance_id))

    repayment = min(incoming, advance.amount_remaining)
    remainder = incoming - repayment
    repaid_total = advance.amount_repaid + repayment
    fully_repaid = repaid_total >= advance.amount

    updated = dataclasses.replace(
        advance,
        amount_repaid=repaid_total,
        repayments=advance.repayments + (
            Repayment(paid_at=paid_at, amount=repayment, period_index=period_index),
        ),
        status=SupportStatus.REPAID if fully_repaid else SupportStatus.ACTIVE,
        repaid_at=paid_at if fully_repaid else None,
    )

    logger.info("support_repayment_applied", extra={
        "advance_id": str(advance.advance_id),
        "repayment_amount": str(repayment),
        "remainder": str(remainder),
        "amount_remaining": str(updated.amount_remaining),
        "advance_status": updated.status.value,
    })
    return SupportPaymentSplit(
        repayment_amount=repayment,
        remainder_for_contribution=remainder,
        advance=updated,
    )

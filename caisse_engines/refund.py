"""
Module: caisse_engines.refund
Responsibility:
    Drive the refund request lifecycle for early withdrawals and final
    refunds: request, document attachment, approval, cancellation and
    payout, together with the contract status changes each step implies.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Documents are opaque
    ``DocumentRef`` handles; storing and deleting files is the caller's job.

Invariants enforced:
    - ``REFUND_TRANSITIONS`` is the only definition of legal moves:
      PENDING -> APPROVED -> PAID, and PENDING -> ARCHIVED.  No skipping,
      no backwards moves.
    - At most one non-archived request per refund type per contract.
    - ``reason`` and the nominal/bonus snapshot are fixed at creation.
    - A request is approved only with a document, and paid only with a
      withdrawal date, time and proof.
    - Only an EARLY request without a document can be cancelled.

Failure modes:
    - InvalidRefundTransitionError for any move outside the table.
    - ReasonRequiredError, DocumentRequiredError, ProofRequiredError,
      WithdrawalDateRequiredError, WithdrawalTimeRequiredError.
    - NotAllPeriodsPaidError, NoContributionYetError,
      AllPeriodsAlreadyPaidError, DuplicateActiveRequestError,
      ContractTerminatedError from ``request_refund``.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Sequence
from datetime import date, datetime, time, timedelta

from caisse_engines.contract_status import (
    all_periods_paid,
    close_contract,
    ensure_contract_open,
    has_any_contribution,
    paid_count,
    transition_contract,
)
from caisse_kernel.domain.contract import Contract, ContractStatus, DocumentRef, Period
from caisse_kernel.domain.refund import (
    RefundRequest,
    RefundStatus,
    RefundType,
    can_transition,
)
from caisse_kernel.exceptions import (
    AllPeriodsAlreadyPaidError,
    DocumentRequiredError,
    DuplicateActiveRequestError,
    InvalidRefundTransitionError,
    NoContributionYetError,
    NotAllPeriodsPaidError,
    ProofRequiredError,
    ReasonRequiredError,
    WithdrawalDateRequiredError,
    WithdrawalTimeRequiredError,
)
from caisse_kernel.logging_config import get_logger

logger = get_logger("engines.refund")

# Processing deadlines
FINAL_REFUND_DEADLINE = timedelta(days=30)
EARLY_REFUND_DEADLINE = timedelta(days=45)

_PENDING_STATUS: dict[RefundType, ContractStatus] = {
    RefundType.EARLY: ContractStatus.EARLY_REFUND_PENDING,
    RefundType.FINAL: ContractStatus.FINAL_REFUND_PENDING,
}


def _check_transition(request: RefundRequest, to_status: RefundStatus) -> None:
    if not can_transition(request.status, to_status):
        raise InvalidRefundTransitionError(
            str(request.request_id), request.status.value, to_status.value,
        )


def _log_transition(request: RefundRequest, to_status: RefundStatus) -> None:
    logger.info("refund_status_changed", extra={
        "request_id": str(request.request_id),
        "contract_id": str(request.contract_id),
        "refund_type": request.refund_type.value,
        "from_status": request.status.value,
        "to_status": to_status.value,
    })


def refund_deadline(
    refund_type: RefundType,
    requested_at: datetime,
    contract_end: date | None,
) -> datetime:
    """
    Processing deadline for a new request.

    FINAL: contract end date plus 30 days (request time when the end date
    is unknown).  EARLY: request time plus 45 days.
    """
    if refund_type == RefundType.EARLY:
        return requested_at + EARLY_REFUND_DEADLINE
    if contract_end is None:
        base = requested_at
    else:
        base = datetime.combine(contract_end, requested_at.timetz())
    return base + FINAL_REFUND_DEADLINE


def request_refund(
    contract: Contract,
    periods: Sequence[Period],
    existing_requests: Sequence[RefundRequest],
    refund_type: RefundType,
    reason: str,
    requested_at: datetime,
) -> tuple[RefundRequest, Contract]:
    """
    Open a refund request and move the contract to the matching pending
    status.

    The request snapshots ``contract.nominal_paid`` and
    ``contract.bonus_accrued``; later payments do not change it.
    """
    refund_type = RefundType(refund_type)
    ensure_contract_open(contract)
    contract_id = str(contract.contract_id)

    if reason is None or not reason.strip():
        raise ReasonRequiredError(contract_id)

    for existing in existing_requests:
        if existing.refund_type == refund_type and not existing.is_archived:
            raise DuplicateActiveRequestError(
                contract_id, refund_type.value, str(existing.request_id),
            )

    if refund_type == RefundType.FINAL:
        if not all_periods_paid(periods):
            raise NotAllPeriodsPaidError(contract_id, paid_count(periods), len(periods))
    else:
        if not has_any_contribution(periods):
            raise NoContributionYetError(contract_id)
        if all_periods_paid(periods):
            raise AllPeriodsAlreadyPaidError(contract_id)

    pending_contract = transition_contract(contract, _PENDING_STATUS[refund_type])
    request = RefundRequest(
        contract_id=contract.contract_id,
        refund_type=refund_type,
        reason=reason.strip(),
        requested_at=requested_at,
        amount_nominal=contract.nominal_paid,
        amount_bonus=contract.bonus_accrued,
        deadline_at=refund_deadline(refund_type, requested_at, contract.end_date),
    )

    logger.info("refund_requested", extra={
        "request_id": str(request.request_id),
        "contract_id": contract_id,
        "refund_type": refund_type.value,
        "amount_nominal": str(request.amount_nominal),
        "amount_bonus": str(request.amount_bonus),
        "deadline_at": request.deadline_at.isoformat(),
    })
    return request, pending_contract


def attach_document(
    request: RefundRequest,
    document: DocumentRef,
) -> tuple[RefundRequest, DocumentRef | None]:
    """
    Attach (or replace) the supporting document of a PENDING request.

    Returns:
        The updated request and the superseded document, if any, so the
        caller can delete the stored file.
    """
    if request.status != RefundStatus.PENDING:
        raise InvalidRefundTransitionError(
            str(request.request_id), request.status.value, RefundStatus.PENDING.value,
        )
    superseded = request.document
    updated = dataclasses.replace(request, document=document)
    logger.info("refund_document_attached", extra={
        "request_id": str(request.request_id),
        "document_id": document.document_id,
        "replaced": superseded is not None,
    })
    return updated, superseded


def approve(request: RefundRequest, approved_at: datetime) -> RefundRequest:
    """PENDING -> APPROVED; requires an attached document."""
    _check_transition(request, RefundStatus.APPROVED)
    if not request.has_document:
        raise DocumentRequiredError(str(request.request_id))
    _log_transition(request, RefundStatus.APPROVED)
    return dataclasses.replace(
        request, status=RefundStatus.APPROVED, approved_at=approved_at,
    )


def cancel(
    request: RefundRequest,
    contract: Contract,
    archived_at: datetime,
) -> tuple[RefundRequest, Contract]:
    """
    PENDING -> ARCHIVED for an EARLY request that has no document yet.

    The contract leaves EARLY_REFUND_PENDING for ACTIVE; the caller
    re-resolves lateness afterwards.
    """
    _check_transition(request, RefundStatus.ARCHIVED)
    if request.refund_type != RefundType.EARLY or request.has_document:
        raise InvalidRefundTransitionError(
            str(request.request_id), request.status.value, RefundStatus.ARCHIVED.value,
        )

    updated_contract = contract
    if contract.status == ContractStatus.EARLY_REFUND_PENDING:
        updated_contract = transition_contract(contract, ContractStatus.ACTIVE)

    _log_transition(request, RefundStatus.ARCHIVED)
    return (
        dataclasses.replace(request, status=RefundStatus.ARCHIVED, archived_at=archived_at),
        updated_contract,
    )


def mark_paid(
    request: RefundRequest,
    contract: Contract,
    withdrawal_date: date | None,
    withdrawal_time: time | None,
    proof: DocumentRef | None,
    paid_at: datetime,
) -> tuple[RefundRequest, Contract]:
    """
    APPROVED -> PAID with the withdrawal details; the contract is CLOSED.
    """
    _check_transition(request, RefundStatus.PAID)
    request_id = str(request.request_id)
    if withdrawal_date is None:
        raise WithdrawalDateRequiredError(request_id)
    if withdrawal_time is None:
        raise WithdrawalTimeRequiredError(request_id)
    if proof is None:
        raise ProofRequiredError(request_id)

    closed = close_contract(contract)
    _log_transition(request, RefundStatus.PAID)
    paid = dataclasses.replace(
        request,
        status=RefundStatus.PAID,
        withdrawal_date=withdrawal_date,
        withdrawal_time=withdrawal_time,
        withdrawal_proof=proof,
        paid_at=paid_at,
    )
    return paid, closed

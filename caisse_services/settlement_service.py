"""
caisse_services.settlement_service -- Orchestration of contract settlement.

Responsibility:
    Wire the pure engines into the operations an administrator performs
    on a contract: activation, payments (with support repayment priority,
    sequential checks and penalties), support advances, refunds,
    rescission, contribution corrections and status refresh.

Architecture position:
    Services -- orchestration over engines + kernel.  Reads the injected
    Clock and SettingsProvider; takes the per-contract lock around every
    mutating operation; performs no persistence.  The returned aggregate
    must be stored atomically by the caller.

Invariants enforced:
    - Every mutating operation runs under the contract's lock.
    - Repayment priority: an ACTIVE support advance claims an incoming
      payment before any contribution is recorded.
    - Contract totals are always re-derived from the periods:
      ``nominal_paid`` is the sum of contributions, ``bonus_accrued`` the
      sum of bonuses of PAID periods, ``penalties_total`` the sum of
      period penalties.
    - Atomicity: an operation either returns a complete new aggregate or
      raises; the input aggregate is never modified.

Failure modes:
    - Any CaisseError raised by the engines propagates unchanged.
    - EnvironmentRestrictedError from ``simulate_payment`` outside the
      development environment.
    - Missing penalty rules are NOT an error: a ``penalty_rules_missing``
      WARNING is logged and no penalty is charged.

Usage:
    from caisse_config import get_settings
    from caisse_services import SettlementService

    service = SettlementService(get_settings())
    aggregate = service.activate(aggregate, start_date=date(2024, 1, 15))
    outcome = service.pay(aggregate, Decimal("100000"), mode=PaymentMode.CASH)
    aggregate = outcome.aggregate
"""

from __future__ import annotations

import dataclasses
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from uuid import UUID, uuid4

from caisse_config.provider import SettingsProvider
from caisse_config.schema import Environment
from caisse_engines import refund as refund_engine
from caisse_engines.bonus import period_bonus
from caisse_engines.contract_status import (
    activate_contract,
    ensure_contract_active,
    ensure_contract_open,
    next_due_index,
    next_due_period,
    refresh_contract,
    rescind_contract,
)
from caisse_engines.ledger import (
    apply_penalty,
    build_schedule,
    correct_contribution as correct_period_contribution,
    ensure_payable,
    open_period,
    record_contribution,
    restate_penalty,
)
from caisse_engines.penalty import LatenessWindow, PenaltyResult, compute_penalty
from caisse_engines.period_index import due_date_for_period, resolve_slot
from caisse_engines.support import apply_payment, grant_advance
from caisse_kernel.domain.clock import Clock, SystemClock
from caisse_kernel.domain.contract import (
    Cadence,
    Contract,
    Contribution,
    DocumentRef,
    PaymentMode,
    Period,
)
from caisse_kernel.domain.refund import RefundRequest, RefundType
from caisse_kernel.domain.support import SupportAdvance
from caisse_kernel.domain.values import ZERO, to_amount, to_day
from caisse_kernel.exceptions import (
    AllPeriodsAlreadyPaidError,
    CaisseError,
    DateBeforeContractStartError,
    EnvironmentRestrictedError,
    InvalidAmountError,
    SupportRepaymentRequiredError,
)
from caisse_kernel.logging_config import LogContext, get_logger
from caisse_services.aggregate import ContractAggregate
from caisse_services.contract_locks import ContractLockRegistry

logger = get_logger("services.settlement")


@dataclass(frozen=True)
class PaymentOutcome:
    """Result of one incoming payment."""

    aggregate: ContractAggregate
    period_index: int | None
    amount: Decimal
    repayment_amount: Decimal = ZERO
    contribution: Contribution | None = None
    penalty: PenaltyResult | None = None
    bonus_earned: Decimal = ZERO

    @property
    def absorbed_by_advance(self) -> bool:
        """True when the whole payment went to support repayment."""
        return self.contribution is None


class SettlementService:
    """
    Settlement operations over a ContractAggregate.

    Contract:
        Each public method takes an aggregate, validates the request with
        the engines and returns a new aggregate (plus operation details).

    Guarantees:
        - The input aggregate is never mutated.
        - Status and ``next_due_date`` are re-resolved against the injected
          clock after every change that can affect them.

    Non-goals:
        - Does NOT persist anything, upload files or notify anyone.
        - Does NOT deduplicate payments; at-most-once submission is the
          caller's responsibility.
    """

    def __init__(
        self,
        settings: SettingsProvider,
        clock: Clock | None = None,
        locks: ContractLockRegistry | None = None,
    ):
        self._settings = settings
        self._clock = clock or SystemClock()
        self._locks = locks or ContractLockRegistry()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @contextmanager
    def _operation(self, aggregate: ContractAggregate, operation: str) -> Iterator[None]:
        """Hold the contract lock and bind log context for one operation."""
        with self._locks.hold(aggregate.contract_id), LogContext.bind(
            correlation_id=str(uuid4()),
            contract_id=str(aggregate.contract_id),
            operation=operation,
        ):
            logger.debug("settlement_operation_started")
            try:
                yield
            except CaisseError as exc:
                logger.info("settlement_operation_rejected", extra={
                    "error_type": type(exc).__name__,
                    "error_code": exc.code,
                })
                raise

    def _with_totals(self, contract: Contract, periods: Sequence[Period]) -> Contract:
        table = self._settings.get_bonus_table(contract.caisse_type)
        return dataclasses.replace(
            contract,
            nominal_paid=sum((p.accumulated_amount for p in periods), ZERO),
            bonus_accrued=sum((period_bonus(table, p) for p in periods), ZERO),
            penalties_total=sum((p.penalty_amount for p in periods), ZERO),
        )

    def _refreshed(self, aggregate: ContractAggregate) -> ContractAggregate:
        contract = aggregate.contract
        rules = self._settings.get_penalty_rules(contract.caisse_type)
        refreshed = refresh_contract(contract, aggregate.periods, self._clock.now(), rules)
        return aggregate.with_contract(refreshed)

    def _as_moment(self, paid_at: date | datetime | None) -> datetime:
        if paid_at is None:
            return self._clock.now()
        if isinstance(paid_at, datetime):
            return paid_at
        return datetime.combine(paid_at, self._clock.now().timetz())

    def _indicated_index(
        self,
        aggregate: ContractAggregate,
        paid_at: datetime,
        period_index: int | None,
    ) -> int | None:
        """Period a payment points at, without opening or validating it."""
        if period_index is not None:
            return period_index
        contract = aggregate.contract
        if contract.cadence == Cadence.DAILY:
            index = resolve_slot(contract.start_date, contract.cadence, paid_at).period_index
            return index if index < contract.planned_periods else None
        return next_due_index(aggregate.periods)

    def _resolve_target(
        self,
        aggregate: ContractAggregate,
        paid_at: datetime,
        period_index: int | None,
    ) -> tuple[ContractAggregate, int]:
        """Pick the period a payment goes to, opening it lazily if needed."""
        contract = aggregate.contract
        if period_index is None:
            if contract.cadence == Cadence.DAILY:
                period_index = resolve_slot(
                    contract.start_date, contract.cadence, paid_at,
                ).period_index
            else:
                period_index = next_due_index(aggregate.periods)
                if period_index is None:
                    raise AllPeriodsAlreadyPaidError(str(contract.contract_id))

        if period_index < contract.planned_periods:
            periods, _ = open_period(
                aggregate.periods,
                period_index,
                contract.target_amount,
                due_date_for_period(contract.start_date, period_index),
            )
            aggregate = dataclasses.replace(aggregate, periods=periods)
        return aggregate, period_index

    # ------------------------------------------------------------------
    # Activation and status
    # ------------------------------------------------------------------

    def activate(
        self,
        aggregate: ContractAggregate,
        start_date: date | None = None,
    ) -> ContractAggregate:
        """DRAFT -> ACTIVE; builds the schedule when no periods exist yet."""
        with self._operation(aggregate, "activate"):
            start = start_date or self._clock.today()
            periods = aggregate.periods or build_schedule(aggregate.contract)
            contract, dated = activate_contract(aggregate.contract, periods, start)
            updated = dataclasses.replace(aggregate, contract=contract, periods=dated)
            return self._refreshed(updated)

    def refresh_status(self, aggregate: ContractAggregate) -> ContractAggregate:
        """Re-resolve lateness status and ``next_due_date`` as of now."""
        with self._operation(aggregate, "refresh_status"):
            return self._refreshed(aggregate)

    def rescind(self, aggregate: ContractAggregate) -> ContractAggregate:
        """Administrative rescission; refuses the next due period."""
        with self._operation(aggregate, "rescind"):
            contract, periods = rescind_contract(aggregate.contract, aggregate.periods)
            return dataclasses.replace(aggregate, contract=contract, periods=periods)

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------

    def pay(
        self,
        aggregate: ContractAggregate,
        amount: Decimal,
        paid_at: date | datetime | None = None,
        mode: PaymentMode = PaymentMode.CASH,
        payer_id: str | None = None,
        proof: DocumentRef | None = None,
        period_index: int | None = None,
        allow_backfill: bool = False,
    ) -> PaymentOutcome:
        """
        Take one incoming payment.

        Steps: the start-date check, support repayment, then (only for
        money left after repayment) target resolution, the sequential
        check, the penalty against the period due date (or contract
        start), the contribution itself, and finally totals and status.

        Args:
            paid_at: Payment instant.  A plain date takes the clock's time
                of day; None means now.
            period_index: Explicit target.  Defaults to the next due
                period (MONTHLY) or the period holding ``paid_at`` (DAILY).
            allow_backfill: Administrative override of the sequential
                check.  Penalties still apply.
        """
        with self._operation(aggregate, "pay"):
            contract = aggregate.contract
            ensure_contract_active(contract)
            amount = to_amount(amount)
            if amount <= ZERO:
                raise InvalidAmountError(amount)
            paid_at = self._as_moment(paid_at)
            start = to_day(contract.start_date)
            if to_day(paid_at) < start:
                raise DateBeforeContractStartError(
                    start.isoformat(), to_day(paid_at).isoformat(),
                )

            remainder = amount
            repayment = ZERO
            advance = aggregate.active_advance
            if advance is not None:
                indicated = self._indicated_index(aggregate, paid_at, period_index)
                split = apply_payment(advance, amount, paid_at, indicated)
                aggregate = aggregate.with_advance(split.advance)
                repayment = split.repayment_amount
                remainder = split.remainder_for_contribution
                if not split.has_remainder:
                    logger.info("payment_absorbed_by_advance", extra={
                        "amount": str(amount),
                        "advance_id": str(advance.advance_id),
                    })
                    return PaymentOutcome(
                        aggregate=self._refreshed(aggregate),
                        period_index=indicated,
                        amount=amount,
                        repayment_amount=repayment,
                    )

            aggregate, target_index = self._resolve_target(aggregate, paid_at, period_index)
            period = ensure_payable(aggregate.periods, target_index, allow_backfill)

            rules = self._settings.get_penalty_rules(contract.caisse_type)
            base = period.target_amount if period.target_amount is not None else remainder
            penalty = compute_penalty(
                reference_due_date=period.due_date or contract.start_date,
                payment_date=paid_at,
                period_target_amount=base,
                rules=rules,
            )
            if not penalty.rules_configured and penalty.window in (
                LatenessWindow.PENALTY, LatenessWindow.DEFAULT,
            ):
                logger.warning("penalty_rules_missing", extra={
                    "caisse_type": contract.caisse_type.value,
                    "period_index": target_index,
                    "days_late": penalty.days_late,
                })

            contribution = Contribution(
                amount=remainder,
                paid_at=paid_at,
                mode=mode,
                payer_id=payer_id,
                penalty=penalty.penalty_amount if penalty.has_penalty else None,
                proof=proof,
            )
            updated = record_contribution(period, contribution, contract.start_date)
            if penalty.has_penalty:
                updated = apply_penalty(updated, penalty.penalty_amount, penalty.days_late)

            aggregate = aggregate.with_period(updated)
            totals = self._with_totals(contract, aggregate.periods)
            bonus_earned = totals.bonus_accrued - contract.bonus_accrued
            aggregate = self._refreshed(aggregate.with_contract(totals))

            logger.info("payment_recorded", extra={
                "period_index": target_index,
                "amount": str(amount),
                "repayment_amount": str(repayment),
                "contribution_amount": str(remainder),
                "penalty_amount": str(penalty.penalty_amount),
                "days_late": penalty.days_late,
                "period_status": updated.status.value,
                "contract_status": aggregate.contract.status.value,
            })
            return PaymentOutcome(
                aggregate=aggregate,
                period_index=target_index,
                amount=amount,
                repayment_amount=repayment,
                contribution=contribution,
                penalty=penalty,
                bonus_earned=bonus_earned,
            )

    def correct_contribution(
        self,
        aggregate: ContractAggregate,
        period_index: int,
        contribution_id: UUID,
        amount: Decimal | None = None,
        paid_at: datetime | None = None,
        mode: PaymentMode | None = None,
        proof: DocumentRef | None = None,
    ) -> ContractAggregate:
        """
        Explicitly correct a recorded contribution and re-derive totals.

        The corrected contribution's penalty is recomputed, so a payment
        moved back on time stops carrying one.

        Raising an amount while a support advance is outstanding would
        bypass repayment priority and is refused.
        """
        with self._operation(aggregate, "correct_contribution"):
            contract = aggregate.contract
            ensure_contract_open(contract)
            period = aggregate.period(period_index)

            advance = aggregate.active_advance
            if advance is not None and amount is not None:
                original = next(
                    (c for c in period.contributions if c.contribution_id == contribution_id),
                    None,
                )
                if original is not None and to_amount(amount) > original.amount:
                    raise SupportRepaymentRequiredError(
                        str(contract.contract_id), str(advance.advance_id),
                    )

            updated = correct_period_contribution(
                period,
                contribution_id,
                contract_start=contract.start_date,
                corrected_at=self._clock.now(),
                amount=amount,
                paid_at=paid_at,
                mode=mode,
                proof=proof,
            )
            corrected = next(
                c for c in updated.contributions if c.contribution_id == contribution_id
            )
            reference = updated.due_date or contract.start_date
            penalty = compute_penalty(
                reference_due_date=reference,
                payment_date=corrected.paid_at,
                period_target_amount=(
                    updated.target_amount if updated.target_amount is not None
                    else corrected.amount
                ),
                rules=self._settings.get_penalty_rules(contract.caisse_type),
            )
            updated = restate_penalty(
                updated,
                contribution_id,
                penalty.penalty_amount if penalty.has_penalty else ZERO,
                reference,
            )

            aggregate = aggregate.with_period(updated)
            totals = self._with_totals(contract, aggregate.periods)
            return self._refreshed(aggregate.with_contract(totals))

    def simulate_payment(
        self,
        aggregate: ContractAggregate,
        delay_days: int = 0,
        amount: Decimal | None = None,
    ) -> PaymentOutcome:
        """
        Development tool: pay the next due period ``delay_days`` after its
        due date (negative for early).

        Defaults to the period's remaining amount.
        """
        environment = self._settings.environment
        if environment != Environment.DEVELOPMENT:
            raise EnvironmentRestrictedError("simulate_payment", environment.value)

        period = next_due_period(aggregate.periods)
        if period is None:
            raise AllPeriodsAlreadyPaidError(str(aggregate.contract_id))
        due = period.due_date or aggregate.contract.start_date
        if amount is None:
            amount = period.remaining_amount
        paid_at = datetime.combine(
            due + timedelta(days=delay_days), self._clock.now().timetz(),
        )
        logger.info("payment_simulated", extra={
            "contract_id": str(aggregate.contract_id),
            "period_index": period.index,
            "delay_days": delay_days,
        })
        return self.pay(
            aggregate,
            amount,
            paid_at=paid_at,
            mode=PaymentMode.CASH,
            period_index=period.index,
        )

    # ------------------------------------------------------------------
    # Support advances
    # ------------------------------------------------------------------

    def grant_support(
        self,
        aggregate: ContractAggregate,
        amount: Decimal,
        eligible: bool = True,
    ) -> tuple[ContractAggregate, SupportAdvance]:
        """Grant a support advance within the caisse type's bounds."""
        with self._operation(aggregate, "grant_support"):
            contract = aggregate.contract
            advance = grant_advance(
                contract,
                amount,
                self._settings.get_support_bounds(contract.caisse_type),
                aggregate.advances,
                granted_at=self._clock.now(),
                eligible=eligible,
            )
            return aggregate.with_advance(advance), advance

    # ------------------------------------------------------------------
    # Refunds
    # ------------------------------------------------------------------

    def request_refund(
        self,
        aggregate: ContractAggregate,
        refund_type: RefundType,
        reason: str,
    ) -> tuple[ContractAggregate, RefundRequest]:
        with self._operation(aggregate, "request_refund"):
            request, contract = refund_engine.request_refund(
                aggregate.contract,
                aggregate.periods,
                aggregate.refund_requests,
                refund_type,
                reason,
                requested_at=self._clock.now(),
            )
            updated = aggregate.with_contract(contract).with_refund_request(request)
            return updated, request

    def attach_refund_document(
        self,
        aggregate: ContractAggregate,
        request_id: UUID,
        document: DocumentRef,
    ) -> tuple[ContractAggregate, DocumentRef | None]:
        """Attach a document; returns the superseded one for deletion."""
        with self._operation(aggregate, "attach_refund_document"):
            request = aggregate.refund_request(request_id)
            updated, superseded = refund_engine.attach_document(request, document)
            return aggregate.with_refund_request(updated), superseded

    def approve_refund(
        self,
        aggregate: ContractAggregate,
        request_id: UUID,
    ) -> ContractAggregate:
        with self._operation(aggregate, "approve_refund"):
            request = aggregate.refund_request(request_id)
            approved = refund_engine.approve(request, approved_at=self._clock.now())
            return aggregate.with_refund_request(approved)

    def cancel_refund(
        self,
        aggregate: ContractAggregate,
        request_id: UUID,
    ) -> ContractAggregate:
        """Archive an EARLY request and hand the contract back to the resolver."""
        with self._operation(aggregate, "cancel_refund"):
            request = aggregate.refund_request(request_id)
            archived, contract = refund_engine.cancel(
                request, aggregate.contract, archived_at=self._clock.now(),
            )
            updated = aggregate.with_contract(contract).with_refund_request(archived)
            return self._refreshed(updated)

    def mark_refund_paid(
        self,
        aggregate: ContractAggregate,
        request_id: UUID,
        withdrawal_date: date | None,
        withdrawal_time: time | None,
        proof: DocumentRef | None,
    ) -> ContractAggregate:
        """Record the payout; the contract is CLOSED."""
        with self._operation(aggregate, "mark_refund_paid"):
            request = aggregate.refund_request(request_id)
            paid, contract = refund_engine.mark_paid(
                request,
                aggregate.contract,
                withdrawal_date=withdrawal_date,
                withdrawal_time=withdrawal_time,
                proof=proof,
                paid_at=self._clock.now(),
            )
            return aggregate.with_contract(contract).with_refund_request(paid)

"""
Tests for SettlementService.

Covers:
- Activation and status refresh against the injected clock
- Payments: target selection, penalties, bonuses, totals
- Sequential payment guard and administrative backfill
- Support advances and repayment priority
- Contribution corrections
- Refund flows (early, final, cancellation)
- Rescission
- Development-only payment simulation
- Configuration gaps and operation logging
"""

from dataclasses import replace
from datetime import date, datetime, time, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from caisse_kernel.domain.contract import (
    Cadence,
    CaisseType,
    ContractStatus,
    DocumentRef,
    OwnerKind,
    PaymentMode,
    PeriodStatus,
)
from caisse_kernel.domain.refund import RefundStatus, RefundType
from caisse_kernel.domain.support import SupportStatus
from caisse_kernel.exceptions import (
    AllPeriodsAlreadyPaidError,
    AmountOutOfRangeError,
    ContractNotActiveError,
    ContractTerminatedError,
    DateBeforeContractStartError,
    EnvironmentRestrictedError,
    InvalidAmountError,
    OutOfOrderPaymentError,
    PeriodRefusedError,
    RefundRequestNotFoundError,
    SupportRepaymentRequiredError,
)
from caisse_services.aggregate import ContractAggregate
from caisse_services.contract_locks import ContractLockRegistry
from caisse_services.settlement_service import SettlementService
from tests.factories import make_contract

DOC = DocumentRef(document_id="id-card-scan")
PROOF = DocumentRef(document_id="withdrawal-receipt")


def utc(year, month, day, hour=10):
    return datetime(year, month, day, hour, 0, tzinfo=timezone.utc)


def _pay_all(service, aggregate, count):
    for _ in range(count):
        aggregate = service.pay(aggregate, Decimal("100000")).aggregate
    return aggregate


class TestActivation:
    """DRAFT -> ACTIVE with a dated schedule."""

    def test_activate_builds_schedule(self, active_aggregate):
        aggregate = active_aggregate()

        assert aggregate.contract.status == ContractStatus.ACTIVE
        assert aggregate.contract.start_date == date(2024, 1, 15)
        assert aggregate.contract.end_date == date(2024, 7, 15)
        assert aggregate.contract.next_due_date == date(2024, 1, 15)
        assert len(aggregate.periods) == 6
        assert aggregate.periods[5].due_date == date(2024, 6, 15)

    def test_activate_defaults_to_clock_day(self, service):
        draft = ContractAggregate(contract=make_contract())
        aggregate = service.activate(draft)
        assert aggregate.contract.start_date == date(2024, 1, 15)

    def test_activate_twice_is_harmless(self, service, active_aggregate):
        aggregate = active_aggregate()
        again = service.activate(aggregate, start_date=date(2024, 1, 15))
        assert again.contract.status == ContractStatus.ACTIVE

    def test_draft_cannot_take_payment(self, service):
        draft = ContractAggregate(contract=make_contract())
        with pytest.raises(ContractNotActiveError):
            service.pay(draft, Decimal("1000"))


class TestStatusRefresh:
    """Lateness is resolved against the clock."""

    @pytest.mark.parametrize("now,expected", [
        (utc(2024, 1, 15), ContractStatus.ACTIVE),
        (utc(2024, 1, 17), ContractStatus.LATE_NO_PENALTY),
        (utc(2024, 1, 20), ContractStatus.LATE_WITH_PENALTY),
        (utc(2024, 2, 1), ContractStatus.DEFAULTED),
    ])
    def test_refresh(self, service, active_aggregate, deterministic_clock, now, expected):
        aggregate = active_aggregate()
        deterministic_clock.set_time(now)
        assert service.refresh_status(aggregate).contract.status == expected

    def test_payment_clears_lateness(self, service, active_aggregate, deterministic_clock):
        aggregate = active_aggregate()
        deterministic_clock.set_time(utc(2024, 1, 20))
        aggregate = service.refresh_status(aggregate)
        assert aggregate.contract.status == ContractStatus.LATE_WITH_PENALTY

        aggregate = service.pay(aggregate, Decimal("100000")).aggregate

        assert aggregate.contract.status == ContractStatus.ACTIVE
        assert aggregate.contract.next_due_date == date(2024, 2, 15)


class TestPayments:
    """Recording contributions."""

    def test_full_payment_on_time(self, service, active_aggregate):
        aggregate = active_aggregate()

        outcome = service.pay(aggregate, Decimal("100000"), mode=PaymentMode.AIRTEL_MONEY)

        period = outcome.aggregate.period(0)
        assert outcome.period_index == 0
        assert period.status == PeriodStatus.PAID
        assert outcome.contribution.mode == PaymentMode.AIRTEL_MONEY
        assert not outcome.penalty.has_penalty
        assert outcome.aggregate.contract.nominal_paid == Decimal("100000")
        assert outcome.aggregate.contract.next_due_date == date(2024, 2, 15)

    def test_two_halves(self, service, active_aggregate):
        aggregate = active_aggregate()
        aggregate = service.pay(aggregate, Decimal("50000")).aggregate
        assert aggregate.period(0).status == PeriodStatus.PARTIAL

        outcome = service.pay(aggregate, Decimal("50000"))

        assert outcome.period_index == 0
        assert outcome.aggregate.period(0).status == PeriodStatus.PAID

    def test_late_payment_penalized(self, service, active_aggregate, deterministic_clock):
        aggregate = _pay_all(service, active_aggregate(), 1)
        deterministic_clock.set_time(utc(2024, 2, 20))

        outcome = service.pay(aggregate, Decimal("100000"))

        assert outcome.period_index == 1
        assert outcome.penalty.days_late == 5
        assert outcome.penalty.penalty_amount == Decimal("5000")
        assert outcome.contribution.penalty == Decimal("5000")
        assert outcome.aggregate.period(1).penalty_amount == Decimal("5000")
        assert outcome.aggregate.contract.penalties_total == Decimal("5000")
        # the contribution is not reduced by the penalty
        assert outcome.aggregate.period(1).status == PeriodStatus.PAID

    def test_partial_payments_penalized_once(self, service, active_aggregate, deterministic_clock):
        aggregate = active_aggregate()
        deterministic_clock.set_time(utc(2024, 1, 20))
        aggregate = service.pay(aggregate, Decimal("50000")).aggregate
        deterministic_clock.set_time(utc(2024, 1, 22))
        aggregate = service.pay(aggregate, Decimal("50000")).aggregate

        assert aggregate.period(0).penalty_amount == Decimal("7000")
        assert aggregate.period(0).penalty_days == 7
        assert aggregate.contract.penalties_total == Decimal("7000")

    def test_explicit_paid_at(self, service, active_aggregate):
        outcome = service.pay(active_aggregate(), Decimal("100000"), paid_at=utc(2024, 1, 19))
        assert outcome.penalty.days_late == 4
        assert outcome.penalty.penalty_amount == Decimal("4000")

    def test_plain_date_takes_clock_time(self, service, active_aggregate):
        outcome = service.pay(active_aggregate(), Decimal("100000"), paid_at=date(2024, 1, 19))

        assert outcome.contribution.paid_at == utc(2024, 1, 19, hour=9)
        assert outcome.contribution.paid_on == date(2024, 1, 19)
        assert outcome.penalty.days_late == 4

    def test_bonus_from_fourth_month(self, service, active_aggregate):
        aggregate = _pay_all(service, active_aggregate(), 3)
        assert aggregate.contract.bonus_accrued == Decimal("0")

        outcome = service.pay(aggregate, Decimal("100000"))
        assert outcome.period_index == 3
        assert outcome.bonus_earned == Decimal("1000")
        assert outcome.aggregate.contract.bonus_accrued == Decimal("1000")

        outcome = service.pay(outcome.aggregate, Decimal("100000"))
        assert outcome.bonus_earned == Decimal("2000")
        assert outcome.aggregate.contract.bonus_accrued == Decimal("3000")

    def test_payment_after_everything_paid(self, service, active_aggregate):
        aggregate = _pay_all(service, active_aggregate(), 6)
        with pytest.raises(AllPeriodsAlreadyPaidError):
            service.pay(aggregate, Decimal("100000"))

    def test_non_positive_amount(self, service, active_aggregate):
        with pytest.raises(InvalidAmountError):
            service.pay(active_aggregate(), Decimal("0"))

    def test_input_aggregate_untouched(self, service, active_aggregate):
        aggregate = active_aggregate()
        service.pay(aggregate, Decimal("100000"))
        assert aggregate.period(0).accumulated_amount == Decimal("0")
        assert aggregate.contract.nominal_paid == Decimal("0")

    def test_group_contract_sums_members(self, service, active_aggregate):
        aggregate = active_aggregate(owner_kind=OwnerKind.GROUP)
        aggregate = service.pay(aggregate, Decimal("60000"), payer_id="alice").aggregate
        aggregate = service.pay(aggregate, Decimal("40000"), payer_id="bob").aggregate

        period = aggregate.period(0)
        assert period.status == PeriodStatus.PAID
        assert [c.payer_id for c in period.contributions] == ["alice", "bob"]


class TestSequentialPayments:
    """Explicit targets and the backfill override."""

    def test_skipping_ahead_rejected(self, service, active_aggregate):
        with pytest.raises(OutOfOrderPaymentError) as exc_info:
            service.pay(active_aggregate(), Decimal("100000"), period_index=2)
        assert exc_info.value.next_due_index == 0

    def test_backfill_override(self, service, active_aggregate):
        outcome = service.pay(
            active_aggregate(), Decimal("100000"), period_index=2, allow_backfill=True,
        )
        assert outcome.aggregate.period(2).status == PeriodStatus.PAID
        assert outcome.aggregate.period(0).status == PeriodStatus.DUE
        assert outcome.aggregate.contract.next_due_date == date(2024, 1, 15)

    def test_rejection_is_logged(self, service, active_aggregate, captured_logs):
        aggregate = active_aggregate()
        with pytest.raises(OutOfOrderPaymentError):
            service.pay(aggregate, Decimal("100000"), period_index=2)

        rejected = [r for r in captured_logs() if r["message"] == "settlement_operation_rejected"]
        assert rejected[0]["error_code"] == "OUT_OF_ORDER_PAYMENT"
        assert rejected[0]["operation"] == "pay"
        assert rejected[0]["contract_id"] == str(aggregate.contract_id)


class TestOpenAndDailyContracts:
    """LIBRE (no target, no penalty rules) and JOURNALIERE (stepped, daily)."""

    def test_open_contract_any_amount_completes(self, service, active_aggregate):
        aggregate = active_aggregate(caisse_type=CaisseType.LIBRE, target_amount=None)
        outcome = service.pay(aggregate, Decimal("2500"))
        assert outcome.aggregate.period(0).status == PeriodStatus.PAID
        assert outcome.aggregate.contract.nominal_paid == Decimal("2500")

    def test_missing_penalty_rules_warn(
        self, service, active_aggregate, deterministic_clock, captured_logs,
    ):
        aggregate = active_aggregate(caisse_type=CaisseType.LIBRE, target_amount=None)
        deterministic_clock.set_time(utc(2024, 1, 21))

        outcome = service.pay(aggregate, Decimal("2500"))

        assert outcome.penalty.penalty_amount == Decimal("0")
        assert not outcome.penalty.rules_configured
        warnings = [r for r in captured_logs() if r["message"] == "penalty_rules_missing"]
        assert len(warnings) == 1
        assert warnings[0]["level"] == "WARNING"
        assert warnings[0]["caisse_type"] == "LIBRE"
        assert warnings[0]["days_late"] == 6

    def test_no_warning_when_on_time(self, service, active_aggregate, captured_logs):
        aggregate = active_aggregate(caisse_type=CaisseType.LIBRE, target_amount=None)
        service.pay(aggregate, Decimal("2500"))
        assert not any(r["message"] == "penalty_rules_missing" for r in captured_logs())

    def test_daily_stepped_penalty(self, service, active_aggregate, deterministic_clock):
        aggregate = active_aggregate(
            caisse_type=CaisseType.JOURNALIERE,
            cadence=Cadence.DAILY,
            target_amount=Decimal("30000"),
        )
        deterministic_clock.set_time(utc(2024, 1, 20))

        outcome = service.pay(aggregate, Decimal("1000"))

        assert outcome.period_index == 0
        # J+4 and J+5 at 500 each
        assert outcome.penalty.penalty_amount == Decimal("1000")
        assert outcome.aggregate.period(0).status == PeriodStatus.PARTIAL

    def test_daily_payment_goes_to_dated_period(self, service, active_aggregate):
        aggregate = active_aggregate(
            caisse_type=CaisseType.JOURNALIERE,
            cadence=Cadence.DAILY,
            target_amount=Decimal("3000"),
        )
        aggregate = service.pay(aggregate, Decimal("3000"), paid_at=utc(2024, 1, 16)).aggregate

        outcome = service.pay(aggregate, Decimal("500"), paid_at=utc(2024, 2, 3))

        assert outcome.period_index == 1
        assert outcome.aggregate.period(1).status == PeriodStatus.PARTIAL

    def test_daily_payment_before_start_rejected(self, service, active_aggregate):
        aggregate = active_aggregate(
            caisse_type=CaisseType.JOURNALIERE,
            cadence=Cadence.DAILY,
            target_amount=Decimal("3000"),
        )
        with pytest.raises(DateBeforeContractStartError):
            service.pay(aggregate, Decimal("1000"), paid_at=utc(2024, 1, 10))

    def test_monthly_payment_before_start_rejected(self, service, active_aggregate):
        with pytest.raises(DateBeforeContractStartError):
            service.pay(active_aggregate(), Decimal("1000"), paid_at=utc(2024, 1, 10))


class TestSupport:
    """Support advances take payments first."""

    def test_grant_and_repay(self, service, active_aggregate):
        aggregate, advance = service.grant_support(active_aggregate(), Decimal("20000"))
        assert aggregate.active_advance == advance

        first = service.pay(aggregate, Decimal("15000"))
        assert first.absorbed_by_advance
        assert first.repayment_amount == Decimal("15000")
        assert first.aggregate.period(0).accumulated_amount == Decimal("0")
        assert first.aggregate.active_advance.amount_remaining == Decimal("5000")

        second = service.pay(first.aggregate, Decimal("8000"))
        assert second.repayment_amount == Decimal("5000")
        assert second.contribution.amount == Decimal("3000")
        assert second.aggregate.period(0).accumulated_amount == Decimal("3000")
        assert second.aggregate.active_advance is None
        assert second.aggregate.advances[0].status == SupportStatus.REPAID
        assert second.aggregate.contract.nominal_paid == Decimal("3000")

    def test_absorbed_payment_is_logged(self, service, active_aggregate, captured_logs):
        aggregate, _ = service.grant_support(active_aggregate(), Decimal("20000"))
        service.pay(aggregate, Decimal("1000"))
        assert any(r["message"] == "payment_absorbed_by_advance" for r in captured_logs())

    def test_repayment_on_fully_paid_contract(self, service, active_aggregate):
        aggregate = _pay_all(service, active_aggregate(planned_periods=2), 2)
        aggregate, _ = service.grant_support(aggregate, Decimal("20000"))

        outcome = service.pay(aggregate, Decimal("20000"))

        assert outcome.absorbed_by_advance
        assert outcome.period_index is None
        assert outcome.aggregate.advances[0].status == SupportStatus.REPAID
        assert outcome.aggregate.contract.nominal_paid == Decimal("200000")

    def test_excess_over_advance_on_fully_paid_contract(self, service, active_aggregate):
        aggregate = _pay_all(service, active_aggregate(planned_periods=2), 2)
        aggregate, _ = service.grant_support(aggregate, Decimal("20000"))

        with pytest.raises(AllPeriodsAlreadyPaidError):
            service.pay(aggregate, Decimal("25000"))
        assert aggregate.active_advance.amount_repaid == Decimal("0")

    def test_daily_repayment_after_last_period(self, service, active_aggregate):
        aggregate = active_aggregate(
            caisse_type=CaisseType.JOURNALIERE,
            cadence=Cadence.DAILY,
            target_amount=Decimal("3000"),
            planned_periods=2,
        )
        aggregate, _ = service.grant_support(aggregate, Decimal("20000"))

        outcome = service.pay(aggregate, Decimal("1000"), paid_at=utc(2024, 4, 2))

        assert outcome.absorbed_by_advance
        assert outcome.period_index is None
        assert outcome.aggregate.active_advance.amount_remaining == Decimal("19000")

    def test_repayment_dated_before_start_rejected(self, service, active_aggregate):
        aggregate, _ = service.grant_support(active_aggregate(), Decimal("20000"))

        with pytest.raises(DateBeforeContractStartError):
            service.pay(aggregate, Decimal("1000"), paid_at=utc(2023, 1, 1))

    def test_out_of_bounds(self, service, active_aggregate):
        with pytest.raises(AmountOutOfRangeError):
            service.grant_support(active_aggregate(), Decimal("60000"))

    def test_unbounded_type(self, service, active_aggregate):
        aggregate = active_aggregate(caisse_type=CaisseType.LIBRE, target_amount=None)
        _, advance = service.grant_support(aggregate, Decimal("250000"))
        assert advance.amount == Decimal("250000")


class TestCorrections:
    """Explicit contribution corrections."""

    def test_lower_amount(self, service, active_aggregate):
        outcome = service.pay(active_aggregate(), Decimal("100000"))

        aggregate = service.correct_contribution(
            outcome.aggregate, 0, outcome.contribution.contribution_id, amount=Decimal("60000"),
        )

        assert aggregate.period(0).status == PeriodStatus.PARTIAL
        assert aggregate.contract.nominal_paid == Decimal("60000")
        assert aggregate.contract.next_due_date == date(2024, 1, 15)
        assert aggregate.period(0).contributions[0].corrected_at is not None

    def test_raise_with_active_advance_refused(self, service, active_aggregate):
        outcome = service.pay(active_aggregate(), Decimal("50000"))
        aggregate, _ = service.grant_support(outcome.aggregate, Decimal("10000"))

        with pytest.raises(SupportRepaymentRequiredError):
            service.correct_contribution(
                aggregate, 0, outcome.contribution.contribution_id, amount=Decimal("70000"),
            )

    def test_mode_change_with_active_advance_allowed(self, service, active_aggregate):
        outcome = service.pay(active_aggregate(), Decimal("50000"))
        aggregate, _ = service.grant_support(outcome.aggregate, Decimal("10000"))

        aggregate = service.correct_contribution(
            aggregate, 0, outcome.contribution.contribution_id, mode=PaymentMode.MOBICASH,
        )
        assert aggregate.period(0).contributions[0].mode == PaymentMode.MOBICASH

    def test_moving_late_payment_on_time_drops_penalty(
        self, service, active_aggregate, deterministic_clock,
    ):
        deterministic_clock.set_time(utc(2024, 1, 25))
        outcome = service.pay(active_aggregate(), Decimal("100000"))
        assert outcome.aggregate.contract.penalties_total == Decimal("10000")

        aggregate = service.correct_contribution(
            outcome.aggregate, 0, outcome.contribution.contribution_id,
            paid_at=utc(2024, 1, 15),
        )

        period = aggregate.period(0)
        assert period.penalty_amount == Decimal("0")
        assert period.penalty_days == 0
        assert period.contributions[0].penalty is None
        assert aggregate.contract.penalties_total == Decimal("0")

    def test_moving_payment_late_adds_penalty(self, service, active_aggregate):
        outcome = service.pay(active_aggregate(), Decimal("100000"))

        aggregate = service.correct_contribution(
            outcome.aggregate, 0, outcome.contribution.contribution_id,
            paid_at=utc(2024, 1, 20),
        )

        assert aggregate.period(0).penalty_amount == Decimal("5000")
        assert aggregate.period(0).penalty_days == 5
        assert aggregate.period(0).contributions[0].penalty == Decimal("5000")
        assert aggregate.contract.penalties_total == Decimal("5000")

    def test_other_contribution_keeps_its_penalty(
        self, service, active_aggregate, deterministic_clock,
    ):
        aggregate = active_aggregate()
        deterministic_clock.set_time(utc(2024, 1, 20))
        aggregate = service.pay(aggregate, Decimal("50000")).aggregate
        deterministic_clock.set_time(utc(2024, 1, 22))
        second = service.pay(aggregate, Decimal("50000"))
        assert second.aggregate.period(0).penalty_amount == Decimal("7000")

        aggregate = service.correct_contribution(
            second.aggregate, 0, second.contribution.contribution_id,
            paid_at=utc(2024, 1, 16),
        )

        assert aggregate.period(0).penalty_amount == Decimal("5000")
        assert aggregate.period(0).penalty_days == 5
        assert aggregate.contract.penalties_total == Decimal("5000")


class TestRefunds:
    """Early and final refund flows."""

    def test_early_refund_full_flow(self, service, active_aggregate):
        aggregate = _pay_all(service, active_aggregate(), 2)

        aggregate, request = service.request_refund(aggregate, RefundType.EARLY, "school fees")
        assert aggregate.contract.status == ContractStatus.EARLY_REFUND_PENDING
        assert request.amount_nominal == Decimal("200000")

        with pytest.raises(ContractNotActiveError):
            service.pay(aggregate, Decimal("100000"))

        aggregate, superseded = service.attach_refund_document(aggregate, request.request_id, DOC)
        assert superseded is None
        aggregate = service.approve_refund(aggregate, request.request_id)
        aggregate = service.mark_refund_paid(
            aggregate, request.request_id, date(2024, 1, 30), time(11, 0), PROOF,
        )

        assert aggregate.contract.status == ContractStatus.CLOSED
        assert aggregate.refund_request(request.request_id).status == RefundStatus.PAID
        with pytest.raises(ContractTerminatedError):
            service.pay(aggregate, Decimal("100000"))

    def test_cancel_re_resolves_lateness(self, service, active_aggregate, deterministic_clock):
        aggregate = _pay_all(service, active_aggregate(), 1)
        aggregate, request = service.request_refund(aggregate, RefundType.EARLY, "changed mind")

        deterministic_clock.set_time(utc(2024, 2, 20))
        aggregate = service.cancel_refund(aggregate, request.request_id)

        assert aggregate.refund_request(request.request_id).status == RefundStatus.ARCHIVED
        assert aggregate.contract.status == ContractStatus.LATE_WITH_PENALTY

    def test_final_refund(self, service, active_aggregate):
        aggregate = _pay_all(service, active_aggregate(), 6)

        aggregate, request = service.request_refund(aggregate, RefundType.FINAL, "term reached")

        assert aggregate.contract.status == ContractStatus.FINAL_REFUND_PENDING
        assert request.amount_nominal == Decimal("600000")
        assert request.amount_bonus == Decimal("3000")
        assert request.deadline_at == datetime(2024, 8, 14, 9, 0, tzinfo=timezone.utc)

    def test_unknown_request(self, service, active_aggregate):
        with pytest.raises(RefundRequestNotFoundError):
            service.approve_refund(active_aggregate(), uuid4())


class TestRescission:
    """Administrative rescission."""

    def test_rescind(self, service, active_aggregate):
        aggregate = _pay_all(service, active_aggregate(), 1)

        aggregate = service.rescind(aggregate)

        assert aggregate.contract.status == ContractStatus.RESCINDED
        assert aggregate.period(1).status == PeriodStatus.REFUSED
        with pytest.raises(ContractTerminatedError):
            service.pay(aggregate, Decimal("100000"))
        with pytest.raises(ContractTerminatedError):
            service.request_refund(aggregate, RefundType.EARLY, "late")

    def test_refused_period_rejects_backfill(self, service, active_aggregate):
        aggregate = service.rescind(_pay_all(service, active_aggregate(), 1))
        # reopen the contract header only, to reach the period guard
        reopened = aggregate.with_contract(
            replace(aggregate.contract, status=ContractStatus.ACTIVE)
        )
        with pytest.raises(PeriodRefusedError):
            service.pay(reopened, Decimal("100000"), period_index=1)


class TestSimulatePayment:
    """Development-only payment simulation."""

    def test_refused_outside_development(self, service, active_aggregate):
        with pytest.raises(EnvironmentRestrictedError) as exc_info:
            service.simulate_payment(active_aggregate(), delay_days=5)
        assert exc_info.value.environment == "test"

    def test_simulated_late_payment(self, dev_service, active_aggregate):
        outcome = dev_service.simulate_payment(active_aggregate(), delay_days=5)

        assert outcome.period_index == 0
        assert outcome.amount == Decimal("100000")
        assert outcome.penalty.days_late == 5
        assert outcome.penalty.penalty_amount == Decimal("5000")
        assert outcome.contribution.paid_at == datetime(2024, 1, 20, 9, 0, tzinfo=timezone.utc)

    def test_simulated_early_payment(self, dev_service, active_aggregate):
        aggregate = dev_service.pay(active_aggregate(), Decimal("100000")).aggregate

        outcome = dev_service.simulate_payment(aggregate, delay_days=-2)

        assert outcome.period_index == 1
        assert outcome.contribution.paid_at.date() == date(2024, 2, 13)
        assert outcome.penalty.days_late == -2
        assert not outcome.penalty.has_penalty


class TestOperationContext:
    """Locks and log context around operations."""

    def test_lock_released_after_operation(self, settings, deterministic_clock, active_aggregate):
        locks = ContractLockRegistry()
        service = SettlementService(settings, clock=deterministic_clock, locks=locks)
        aggregate = active_aggregate()

        service.pay(aggregate, Decimal("100000"))

        assert len(locks) == 1
        assert not locks.lock_for(aggregate.contract_id).locked()

    def test_lock_released_after_rejection(self, settings, deterministic_clock, active_aggregate):
        locks = ContractLockRegistry()
        service = SettlementService(settings, clock=deterministic_clock, locks=locks)
        aggregate = active_aggregate()

        with pytest.raises(InvalidAmountError):
            service.pay(aggregate, Decimal("-1"))

        assert not locks.lock_for(aggregate.contract_id).locked()

    def test_payment_log_carries_context(self, service, active_aggregate, captured_logs):
        aggregate = active_aggregate()
        service.pay(aggregate, Decimal("100000"))

        recorded = [r for r in captured_logs() if r["message"] == "payment_recorded"]
        assert len(recorded) == 1
        assert recorded[0]["contract_id"] == str(aggregate.contract_id)
        assert "correlation_id" in recorded[0]
        assert recorded[0]["period_status"] == "PAID"

"""Tests for JSON-lines logging and operation context."""

import json
import logging
import threading
from datetime import date, datetime, timezone
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from caisse_kernel.exceptions import OutOfOrderPaymentError
from caisse_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture
def log_stream():
    """Fresh caisse logging wired to an in-memory stream."""
    reset_logging()
    stream = StringIO()
    configure_logging(stream=stream, level=logging.DEBUG)
    yield stream
    reset_logging()
    # Restore the session-wide configuration from conftest.
    configure_logging(level=logging.DEBUG)


def _records(stream: StringIO) -> list[dict]:
    return [json.loads(line) for line in stream.getvalue().splitlines() if line]


class TestRecordShape:

    def test_core_keys(self, log_stream):
        get_logger("engines.penalty").info("penalty_computed")

        (record,) = _records(log_stream)
        assert record["message"] == "penalty_computed"
        assert record["level"] == "INFO"
        assert record["logger"] == "caisse.engines.penalty"
        assert datetime.fromisoformat(record["ts"]).tzinfo is not None

    def test_extra_fields_are_top_level(self, log_stream):
        get_logger("engines.ledger").info(
            "contribution_recorded", extra={"period_index": 2, "mode": "cash"},
        )

        (record,) = _records(log_stream)
        assert record["period_index"] == 2
        assert record["mode"] == "cash"

    def test_domain_values_rendered_as_text(self, log_stream):
        advance_id = uuid4()
        get_logger("engines.support").info("advance_granted", extra={
            "advance_id": advance_id,
            "due_date": date(2024, 2, 29),
            "granted_at": datetime(2024, 2, 1, 8, 30, tzinfo=timezone.utc),
            "amount": Decimal("15000.50"),
        })

        (record,) = _records(log_stream)
        assert record["advance_id"] == str(advance_id)
        assert record["due_date"] == "2024-02-29"
        assert record["granted_at"] == "2024-02-01T08:30:00+00:00"
        assert record["amount"] == "15000.50"

    def test_level_filtering(self, log_stream):
        logging.getLogger("caisse").setLevel(logging.INFO)
        logger = get_logger("services.settlement")
        logger.debug("hidden")
        logger.warning("penalty_rules_missing")

        assert [r["message"] for r in _records(log_stream)] == ["penalty_rules_missing"]


class TestExceptionFields:

    def test_plain_exception(self, log_stream):
        try:
            raise RuntimeError("disk full")
        except RuntimeError:
            get_logger("test").exception("unexpected")

        (record,) = _records(log_stream)
        assert record["exc_type"] == "RuntimeError"
        assert record["exc_message"] == "disk full"
        assert "exc_code" not in record
        assert "Traceback" in record["traceback"]

    def test_caisse_error_attributes(self, log_stream):
        try:
            raise OutOfOrderPaymentError(3, 1)
        except OutOfOrderPaymentError:
            get_logger("test").error("payment_rejected", exc_info=True)

        (record,) = _records(log_stream)
        assert record["exc_code"] == "OUT_OF_ORDER_PAYMENT"
        assert record["exc_target_index"] == 3
        assert record["exc_next_due_index"] == 1


class TestLogContext:

    def test_context_stamped_on_records(self, log_stream):
        LogContext.set(correlation_id="corr-1", contract_id="ctr-9")
        get_logger("test").info("with_context")

        (record,) = _records(log_stream)
        assert record["correlation_id"] == "corr-1"
        assert record["contract_id"] == "ctr-9"

    def test_no_context_keys_when_unset(self, log_stream):
        get_logger("test").info("bare")

        (record,) = _records(log_stream)
        assert "correlation_id" not in record
        assert "operation" not in record

    def test_set_merges_and_ignores_none(self):
        LogContext.set(correlation_id="a")
        LogContext.set(operation="pay", correlation_id=None)
        assert LogContext.get_all() == {"correlation_id": "a", "operation": "pay"}

    def test_unknown_field_rejected(self):
        with pytest.raises(KeyError):
            LogContext.set(member_name="x")

    def test_bind_overlays_and_restores(self):
        LogContext.set(operation="refresh_status")
        with LogContext.bind(operation="pay", contract_id="ctr-1"):
            assert LogContext.get_all() == {"operation": "pay", "contract_id": "ctr-1"}
        assert LogContext.get_all() == {"operation": "refresh_status"}

    def test_bind_restores_on_error(self):
        with pytest.raises(ValueError):
            with LogContext.bind(contract_id="ctr-2"):
                raise ValueError
        assert LogContext.get_all() == {}

    def test_clear(self):
        LogContext.set(actor_id="admin-1", request_id="req-1")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_context_is_per_thread(self):
        LogContext.set(contract_id="main")
        seen = {}

        def worker():
            with LogContext.bind(contract_id="worker"):
                seen["inside"] = LogContext.get_all()

        thread = threading.Thread(target=worker)
        thread.start()
        thread.join()

        assert seen["inside"] == {"contract_id": "worker"}
        assert LogContext.get_all() == {"contract_id": "main"}


class TestConfigureLogging:

    def test_second_call_is_ignored(self, log_stream):
        configure_logging(stream=StringIO())
        assert len(logging.getLogger("caisse").handlers) == 1

    def test_namespace_does_not_propagate(self, log_stream):
        assert logging.getLogger("caisse").propagate is False

    def test_explicit_handler_gets_formatter(self):
        reset_logging()
        handler = logging.StreamHandler(StringIO())
        try:
            configure_logging(handler=handler)
            assert isinstance(handler.formatter, StructuredFormatter)
        finally:
            reset_logging()
            configure_logging(level=logging.DEBUG)

    def test_reset_allows_reconfiguration(self):
        reset_logging()
        assert logging.getLogger("caisse").handlers == []
        configure_logging(level=logging.DEBUG)
        assert len(logging.getLogger("caisse").handlers) == 1

"""
Pytest fixtures for the caisse settlement test suite.

Provides:
- Structured logging setup and log capture
- Deterministic clock
- In-memory settings providers (test and development environments)
- A wired SettlementService and an activated-aggregate factory
"""

import json
import logging
from datetime import datetime, timezone
from io import StringIO

import pytest

from caisse_config.provider import StaticSettingsProvider
from caisse_config.schema import Environment
from caisse_kernel.domain.clock import DeterministicClock
from caisse_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from caisse_services.aggregate import ContractAggregate
from caisse_services.settlement_service import SettlementService
from tests.factories import CONTRACT_START, make_contract, make_settings_set


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture caisse logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, service):
            service.pay(...)
            logs = captured_logs()
            assert any(r["message"] == "payment_recorded" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("caisse")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Clock fixtures
# =============================================================================


@pytest.fixture
def deterministic_clock():
    """Clock pinned to the morning of the shared contract start date."""
    return DeterministicClock(datetime(2024, 1, 15, 9, 0, tzinfo=timezone.utc))


# =============================================================================
# Settings and service fixtures
# =============================================================================


@pytest.fixture
def settings():
    return StaticSettingsProvider(make_settings_set())


@pytest.fixture
def dev_settings():
    return StaticSettingsProvider(make_settings_set(Environment.DEVELOPMENT))


@pytest.fixture
def service(settings, deterministic_clock):
    return SettlementService(settings, clock=deterministic_clock)


@pytest.fixture
def dev_service(dev_settings, deterministic_clock):
    return SettlementService(dev_settings, clock=deterministic_clock)


@pytest.fixture
def active_aggregate(service):
    """Factory: an activated aggregate starting on CONTRACT_START."""

    def _make(**contract_kwargs) -> ContractAggregate:
        draft = ContractAggregate(contract=make_contract(**contract_kwargs))
        return service.activate(draft, start_date=CONTRACT_START)

    return _make

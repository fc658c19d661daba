"""
caisse_services -- Package init and public API.

Responsibility:
    Stateful orchestration that composes the pure settlement engines
    (caisse_engines/) with the injected clock, settings provider and
    per-contract locks.  This is the **only** layer that reads wall-clock
    time.

Architecture position:
    Services -- orchestration over engines + kernel.

    Dependency direction (enforced by tests/architecture/test_layer_boundary.py):
        caisse_services/ -> caisse_engines/  (allowed)
        caisse_services/ -> caisse_config/   (allowed)
        caisse_services/ -> caisse_kernel/   (allowed)
        caisse_engines/  -> caisse_services/ (FORBIDDEN)
        caisse_kernel/   -> caisse_services/ (FORBIDDEN)
"""

from caisse_kernel.logging_config import get_logger

logger = get_logger("services")

from caisse_services.aggregate import ContractAggregate
from caisse_services.contract_locks import ContractLockRegistry
from caisse_services.settlement_service import PaymentOutcome, SettlementService

__all__ = [
    "ContractAggregate",
    "ContractLockRegistry",
    "PaymentOutcome",
    "SettlementService",
]

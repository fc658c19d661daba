"""
caisse_services.contract_locks -- Per-contract mutual exclusion.

Responsibility:
    Hand out one ``threading.Lock`` per contract id so that concurrent
    payments, refunds and support operations on the SAME contract are
    serialized while distinct contracts never contend.

Architecture position:
    Services -- infrastructure used by ``SettlementService``.  Engines stay
    lock-free and pure.

Invariants enforced:
    - One lock object per contract id for the lifetime of the registry.
    - Locks are NOT re-entrant: a service method holding a contract lock
      must not call another locking method for the same contract.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from uuid import UUID

from caisse_kernel.logging_config import get_logger

logger = get_logger("services.contract_locks")


class ContractLockRegistry:
    """Registry of per-contract locks."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[UUID, threading.Lock] = {}

    def lock_for(self, contract_id: UUID) -> threading.Lock:
        """Return the lock of ``contract_id``, creating it on first use."""
        with self._guard:
            lock = self._locks.get(contract_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[contract_id] = lock
            return lock

    @contextmanager
    def hold(self, contract_id: UUID) -> Iterator[None]:
        """Hold the contract lock for the duration of the block."""
        lock = self.lock_for(contract_id)
        lock.acquire()
        logger.debug("contract_lock_acquired", extra={"contract_id": str(contract_id)})
        try:
            yield
        finally:
            lock.release()

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

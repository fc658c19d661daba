"""
ContractAggregate -- the unit of persistence for the settlement service.

A contract together with its periods, support advances and refund
requests.  Every service operation takes an aggregate and returns a new
one; the caller persists the result atomically with the input that
triggered it.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from uuid import UUID

from caisse_engines.ledger import find_period, replace_period
from caisse_kernel.domain.contract import Contract, Period
from caisse_kernel.domain.refund import RefundRequest
from caisse_kernel.domain.support import SupportAdvance, find_active_advance
from caisse_kernel.exceptions import RefundRequestNotFoundError


@dataclass(frozen=True)
class ContractAggregate:
    """Contract plus everything that hangs off it."""

    contract: Contract
    periods: tuple[Period, ...] = ()
    advances: tuple[SupportAdvance, ...] = ()
    refund_requests: tuple[RefundRequest, ...] = ()

    @property
    def contract_id(self) -> UUID:
        return self.contract.contract_id

    @property
    def active_advance(self) -> SupportAdvance | None:
        return find_active_advance(self.advances)

    def period(self, index: int) -> Period:
        return find_period(self.periods, index)

    def refund_request(self, request_id: UUID) -> RefundRequest:
        for request in self.refund_requests:
            if request.request_id == request_id:
                return request
        raise RefundRequestNotFoundError(str(request_id))

    def with_contract(self, contract: Contract) -> ContractAggregate:
        return dataclasses.replace(self, contract=contract)

    def with_period(self, period: Period) -> ContractAggregate:
        return dataclasses.replace(self, periods=replace_period(self.periods, period))

    def with_advance(self, advance: SupportAdvance) -> ContractAggregate:
        """Replace the advance with the same id, or append it."""
        if any(a.advance_id == advance.advance_id for a in self.advances):
            return dataclasses.replace(
                self,
                advances=tuple(
                    advance if a.advance_id == advance.advance_id else a
                    for a in self.advances
                ),
            )
        return dataclasses.replace(self, advances=self.advances + (advance,))

    def with_refund_request(self, request: RefundRequest) -> ContractAggregate:
        """Replace the request with the same id, or append it."""
        if any(r.request_id == request.request_id for r in self.refund_requests):
            return dataclasses.replace(
                self,
                refund_requests=tuple(
                    request if r.request_id == request.request_id else r
                    for r in self.refund_requests
                ),
            )
        return dataclasses.replace(
            self, refund_requests=self.refund_requests + (request,),
        )

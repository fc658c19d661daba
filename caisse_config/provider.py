"""
Settings provider port (``caisse_config.provider``).

The settlement service asks a ``SettingsProvider`` for the rules that
apply to a contract; ``StaticSettingsProvider`` answers from a parsed
``SettingsSet``.  Any other source (a database, a remote admin service)
only has to satisfy the protocol.

A missing section is answered with ``None``.  For penalty rules that is a
configuration gap the service reports but does not fail on.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from caisse_config.schema import (
    BonusTable,
    CaisseSettings,
    Environment,
    PenaltyRules,
    SettingsSet,
    SupportBounds,
)
from caisse_kernel.domain.contract import CaisseType


@runtime_checkable
class SettingsProvider(Protocol):
    """Read-only access to per caisse type settings."""

    @property
    def environment(self) -> Environment: ...

    def get_penalty_rules(self, caisse_type: CaisseType) -> PenaltyRules | None: ...

    def get_bonus_table(self, caisse_type: CaisseType) -> BonusTable | None: ...

    def get_support_bounds(self, contract_type: CaisseType) -> SupportBounds | None: ...


class StaticSettingsProvider:
    """SettingsProvider over an in-memory ``SettingsSet``."""

    def __init__(self, settings: SettingsSet):
        self._settings = settings

    @property
    def settings(self) -> SettingsSet:
        return self._settings

    @property
    def environment(self) -> Environment:
        return self._settings.environment

    def _for(self, caisse_type: CaisseType) -> CaisseSettings | None:
        return self._settings.for_type(caisse_type)

    def get_penalty_rules(self, caisse_type: CaisseType) -> PenaltyRules | None:
        entry = self._for(caisse_type)
        return entry.penalty_rules if entry else None

    def get_bonus_table(self, caisse_type: CaisseType) -> BonusTable | None:
        entry = self._for(caisse_type)
        return entry.bonus_table if entry else None

    def get_support_bounds(self, contract_type: CaisseType) -> SupportBounds | None:
        entry = self._for(contract_type)
        return entry.support_bounds if entry else None

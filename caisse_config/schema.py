"""
Caisse settings schema.

Defines the human-authored settings artifact: per caisse type penalty
rules, bonus table and support-advance bounds, plus the environment the
settings were issued for.  YAML files are parsed into these types by the
loader.  The rule value objects themselves live in
``caisse_kernel.domain.rules`` so engines can take them without importing
this package.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from caisse_kernel.domain.contract import CaisseType
from caisse_kernel.domain.rules import (
    BonusTable,
    PenaltyRules,
    PenaltyStep,
    SupportBounds,
)

__all__ = [
    "BonusTable",
    "CaisseSettings",
    "Environment",
    "PenaltyRules",
    "PenaltyStep",
    "SettingsSet",
    "SupportBounds",
]


class Environment(str, Enum):
    """Deployment environment; gates development-only tooling."""

    PRODUCTION = "production"
    DEVELOPMENT = "development"
    TEST = "test"


@dataclass(frozen=True)
class CaisseSettings:
    """Settings for one caisse type.  Any section may be absent."""

    caisse_type: CaisseType
    penalty_rules: PenaltyRules | None = None
    bonus_table: BonusTable | None = None
    support_bounds: SupportBounds | None = None


@dataclass(frozen=True)
class SettingsSet:
    """A complete, versioned settings artifact."""

    config_id: str
    version: int
    environment: Environment
    caisse_types: tuple[CaisseSettings, ...] = ()
    checksum: str = ""

    def for_type(self, caisse_type: CaisseType | str) -> CaisseSettings | None:
        wanted = CaisseType(caisse_type)
        for settings in self.caisse_types:
            if settings.caisse_type == wanted:
                return settings
        return None

"""
Settings Loader (``caisse_config.loader``).

Responsibility
--------------
Loads a YAML settings file and parses it into typed
``caisse_config.schema`` dataclass instances.  The single public entry
point for runtime settings is ``caisse_config.get_settings()``.

Invariants enforced
-------------------
* Parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages; no silent defaults for required fields.
* YAML numbers become ``Decimal`` through their string form, never
  through binary floats.
* ``compute_checksum`` produces a deterministic SHA-256 hash of the raw
  settings for identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Unknown caisse type or environment  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from caisse_config.schema import (
    BonusTable,
    CaisseSettings,
    Environment,
    PenaltyRules,
    PenaltyStep,
    SettingsSet,
    SupportBounds,
)
from caisse_kernel.domain.contract import CaisseType


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_decimal(value: Any) -> Decimal:
    """Parse a YAML scalar (int, float or string) into ``Decimal``."""
    if isinstance(value, bool):
        raise ValueError(f"Cannot parse amount from {value!r}")
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except InvalidOperation as e:
        raise ValueError(f"Cannot parse amount from {value!r}") from e


def parse_penalty_step(data: dict[str, Any]) -> PenaltyStep:
    """Parse a PenaltyStep from a dict (``from_day``, ``to_day``, ``amount_per_day``)."""
    return PenaltyStep(
        from_day=int(data["from_day"]),
        to_day=int(data["to_day"]),
        amount_per_day=parse_decimal(data["amount_per_day"]),
    )


def parse_penalty_rules(data: dict[str, Any]) -> PenaltyRules:
    """
    Parse PenaltyRules from a dict.

    Thresholds default to the standard 3 / 4 / 12 day tiers when omitted.
    """
    rate = data.get("per_day_rate_percent")
    return PenaltyRules(
        per_day_rate_percent=parse_decimal(rate) if rate is not None else None,
        tolerance_days=int(data.get("tolerance_days", 3)),
        penalty_threshold_days=int(data.get("penalty_threshold_days", 4)),
        default_threshold_days=int(data.get("default_threshold_days", 12)),
        steps=tuple(parse_penalty_step(s) for s in data.get("steps", [])),
    )


def parse_bonus_table(data: dict[str, Any]) -> BonusTable:
    """Parse a bonus table keyed ``M4`` .. ``M12``."""
    return BonusTable(rates={str(k): parse_decimal(v) for k, v in data.items()})


def parse_support_bounds(data: dict[str, Any]) -> SupportBounds:
    """Parse support bounds (``minimum``, ``maximum``)."""
    return SupportBounds(
        minimum=parse_decimal(data["minimum"]),
        maximum=parse_decimal(data["maximum"]),
    )


def parse_caisse_settings(caisse_type: str, data: dict[str, Any]) -> CaisseSettings:
    """Parse the settings block of one caisse type."""
    data = data or {}
    penalties = data.get("penalties")
    bonus = data.get("bonus")
    support = data.get("support")
    return CaisseSettings(
        caisse_type=CaisseType(caisse_type),
        penalty_rules=parse_penalty_rules(penalties) if penalties else None,
        bonus_table=parse_bonus_table(bonus) if bonus else None,
        support_bounds=parse_support_bounds(support) if support else None,
    )


def parse_settings_set(data: dict[str, Any]) -> SettingsSet:
    """
    Parse a complete SettingsSet from the root document.

    Postconditions:
        - ``checksum`` is ``compute_checksum(data)``.
    """
    types = data.get("caisse_types") or {}
    return SettingsSet(
        config_id=data["config_id"],
        version=int(data.get("version", 1)),
        environment=Environment(data.get("environment", Environment.PRODUCTION.value)),
        caisse_types=tuple(
            parse_caisse_settings(name, block) for name, block in sorted(types.items())
        ),
        checksum=compute_checksum(data),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()

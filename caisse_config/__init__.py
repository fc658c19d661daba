"""
caisse_config -- single public entrypoint for caisse settings.

Responsibility:
    Provides the ONLY way to obtain settings at runtime through
    ``get_settings()``.  No other component reads settings files or
    environment variables directly.

Architecture position:
    Configuration -- YAML-driven settings.  Sits above ``caisse_kernel``
    and below ``caisse_services``.  Engines MUST NEVER import from
    ``caisse_config``; they receive rule value objects as arguments.

Invariants enforced:
    - Single entrypoint: runtime settings flow through ``get_settings()``.
    - Deterministic parsing: the same YAML always yields the same
      ``SettingsSet`` and checksum.

Failure modes:
    - ``FileNotFoundError`` -- the settings file does not exist.
    - ``ValueError`` / ``KeyError`` -- schema failures while parsing.

Audit relevance:
    Every successful ``get_settings()`` call emits a ``CAISSE_CONFIG_TRACE``
    log entry with the config id, version, environment and checksum, so a
    penalty or bonus can be tied back to the settings that produced it.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from pathlib import Path

from caisse_config.loader import load_yaml_file, parse_settings_set
from caisse_config.provider import SettingsProvider, StaticSettingsProvider
from caisse_config.schema import CaisseSettings, Environment, SettingsSet

_logger = logging.getLogger("caisse.config")

_DEFAULT_SETTINGS_FILE = Path(__file__).parent / "sets" / "default.yaml"

__all__ = [
    "CaisseSettings",
    "Environment",
    "SettingsProvider",
    "SettingsSet",
    "StaticSettingsProvider",
    "get_settings",
]


def get_settings(
    path: Path | None = None,
    environment: Environment | str | None = None,
) -> StaticSettingsProvider:
    """The ONLY public settings entrypoint.

    Args:
        path: Override path to a settings YAML file.  Defaults to
            caisse_config/sets/default.yaml.
        environment: Override the environment declared in the file
            (used by development tooling and tests).

    Returns:
        A ``StaticSettingsProvider`` over the parsed settings.

    Raises:
        FileNotFoundError: If the settings file does not exist.
        ValueError: If the settings fail schema validation.
    """
    settings_path = path or _DEFAULT_SETTINGS_FILE
    settings_set = parse_settings_set(load_yaml_file(settings_path))

    if environment is not None:
        settings_set = replace(settings_set, environment=Environment(environment))

    _logger.info(
        "CAISSE_CONFIG_TRACE",
        extra={
            "trace_type": "CAISSE_CONFIG_TRACE",
            "config_set_id": settings_set.config_id,
            "config_set_version": settings_set.version,
            "environment": settings_set.environment.value,
            "checksum": settings_set.checksum,
            "caisse_type_count": len(settings_set.caisse_types),
        },
    )
    return StaticSettingsProvider(settings_set)

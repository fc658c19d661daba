"""
caisse_engines.tracer -- ``@traced_engine`` and the CAISSE_ENGINE_TRACE record.

Responsibility:
    Make every engine calculation reconstructable from logs.  A successful
    call of a decorated engine emits one INFO record carrying the engine
    name and version, the calling function, its duration, and a
    fingerprint of the inputs that determine the result.

Architecture position:
    Engines -- support code for the pure calculation layer.  Emitting a
    log record is its only side effect.

Invariants enforced:
    - The fingerprint depends only on the selected arguments, bound by
      name whether they were passed positionally or by keyword.
    - Canonical form: JSON with sorted keys, non-JSON values (Decimal,
      date, UUID, enums) rendered with ``str``; SHA-256 truncated to 16
      hex characters.

Failure modes:
    - A selected argument that was not supplied is fingerprinted as null.
    - Engine exceptions propagate unchanged and no trace record is emitted.

Usage:
    @traced_engine("penalty", "1.0", fingerprint_fields=("payment_date",))
    def compute_penalty(...):
        ...
"""

from __future__ import annotations

import functools
import hashlib
import inspect
import json
import time
from collections.abc import Callable, Mapping
from typing import Any

from caisse_kernel.logging_config import get_logger

logger = get_logger("engines.tracer")

TRACE_MESSAGE = "CAISSE_ENGINE_TRACE"


def compute_input_fingerprint(
    fingerprint_fields: tuple[str, ...],
    arguments: Mapping[str, Any],
) -> str:
    selected = {name: arguments.get(name) for name in fingerprint_fields}
    canonical = json.dumps(selected, sort_keys=True, default=str, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
) -> Callable[[Callable], Callable]:
    """
    Decorate a pure engine function with trace logging.

    Args:
        engine_name: Short engine identifier, e.g. ``"penalty"``.
        engine_version: Version of the calculation rules.
        fingerprint_fields: Parameter names hashed into ``input_fingerprint``.
    """

    def decorator(func: Callable) -> Callable:
        signature = inspect.signature(func)

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            started = time.perf_counter()
            result = func(*args, **kwargs)
            elapsed_ms = (time.perf_counter() - started) * 1000

            fingerprint = ""
            if fingerprint_fields:
                bound = signature.bind_partial(*args, **kwargs)
                fingerprint = compute_input_fingerprint(fingerprint_fields, bound.arguments)

            logger.info(TRACE_MESSAGE, extra={
                "trace_type": TRACE_MESSAGE,
                "engine_name": engine_name,
                "engine_version": engine_version,
                "function": func.__qualname__,
                "input_fingerprint": fingerprint,
                "duration_ms": round(elapsed_ms, 3),
            })
            return result

        return wrapper

    return decorator

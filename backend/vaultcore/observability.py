"""
CryptoVault Core: Observability

Lightweight timing spans around pipeline stages, logged through structlog.

Usage:
    with trace_span("indicator_engine.compute_all", symbol="BTCUSDT"):
        snapshots = engine.compute_all(candles)
"""

from __future__ import annotations

import functools
import time
from contextlib import contextmanager
from typing import Any, Callable, Optional

import structlog

logger = structlog.get_logger(__name__)

SLOW_SPAN_SECONDS = 5.0


# ──────────────────────────────────────────────
# Manual Tracing
# ──────────────────────────────────────────────

@contextmanager
def trace_span(name: str, **metadata: Any):
    """Context manager that times a block and logs the elapsed milliseconds.

    Args:
        name: Name of the span (e.g., "pattern_engine.detect_all").
        **metadata: Extra key/values attached to both log events.

    Yields a dict the block may add result fields to; they are logged
    with the end event.
    """
    extra = {"span_name": name, **metadata}
    fields: dict[str, Any] = {}
    start = time.perf_counter()
    logger.debug("trace_span_start", **extra)
    try:
        yield fields
    finally:
        elapsed = time.perf_counter() - start
        logger.debug("trace_span_end", elapsed_ms=round(elapsed * 1000, 2), **extra, **fields)
        if elapsed > SLOW_SPAN_SECONDS:
            logger.warning("trace_span_slow", elapsed_s=round(elapsed, 2), **extra)


def traced(name: Optional[str] = None):
    """Decorator to time a function as a span.

    Usage:
        @traced("risk_engine.generate_report")
        def generate_report(...):
            ...
    """
    def decorator(func: Callable) -> Callable:
        span_name = name or f"{func.__module__}.{func.__qualname__}"

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            with trace_span(span_name):
                return func(*args, **kwargs)

        return wrapper

    return decorator

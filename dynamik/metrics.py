# -*- coding: utf-8 -*-
"""
Prometheus Metrics for dynamik

Metrics:
    1. dynamik_compilations_total (Counter)
    2. dynamik_compile_duration_seconds (Histogram)
    3. dynamik_compile_step_failures_total (Counter)
    4. dynamik_expression_failures_total (Counter)
    5. dynamik_mutations_total (Counter)
    6. dynamik_change_notifications_total (Counter)

Helper functions are no-ops when ``enable_metrics`` is switched off in
the active configuration.
"""

from __future__ import annotations

import logging

from prometheus_client import Counter, Histogram

from dynamik.config import get_config

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Metric definitions
# ---------------------------------------------------------------------------

# 1. Compilations count
compilations_total = Counter(
    "dynamik_compilations_total",
    "Total schema compilations performed",
    labelnames=["result"],
)

# 2. Compilation duration
compile_duration_seconds = Histogram(
    "dynamik_compile_duration_seconds",
    "Schema compilation duration in seconds",
    buckets=(0.0005, 0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 1.0),
)

# 3. Compile step failures
compile_step_failures_total = Counter(
    "dynamik_compile_step_failures_total",
    "Total compile step failures by step",
    labelnames=["step"],
)

# 4. Expression failures
expression_failures_total = Counter(
    "dynamik_expression_failures_total",
    "Total expression compile/evaluation failures replaced by a default",
    labelnames=["attribute", "kind"],
)

# 5. Mutations
mutations_total = Counter(
    "dynamik_mutations_total",
    "Total live graph mutations by outcome",
    labelnames=["outcome"],
)

# 6. Change notifications
change_notifications_total = Counter(
    "dynamik_change_notifications_total",
    "Total change notifications delivered to listeners",
)


# ---------------------------------------------------------------------------
# Helper functions
# ---------------------------------------------------------------------------


def _enabled() -> bool:
    return get_config().enable_metrics


def record_compilation(result: str, duration_seconds: float) -> None:
    """Record a schema compilation.

    Args:
        result: Compilation result ("success" or "error").
        duration_seconds: Compilation duration in seconds.
    """
    if not _enabled():
        return
    compilations_total.labels(result=result).inc()
    compile_duration_seconds.observe(duration_seconds)


def record_step_failure(step: str) -> None:
    """Record a compile step failure.

    Args:
        step: Name of the failing step.
    """
    if not _enabled():
        return
    compile_step_failures_total.labels(step=step).inc()


def record_expression_failure(attribute: str, kind: str) -> None:
    """Record an expression failure replaced by the kind default.

    Args:
        attribute: Dynamic attribute name (e.g. "readonly").
        kind: Declared result kind ("string", "boolean" or "any").
    """
    if not _enabled():
        return
    expression_failures_total.labels(attribute=attribute, kind=kind).inc()


def record_mutation(outcome: str) -> None:
    """Record a live graph mutation.

    Args:
        outcome: "applied", "readonly", "deleted" or "inserted".
    """
    if not _enabled():
        return
    mutations_total.labels(outcome=outcome).inc()


def record_notifications(count: int) -> None:
    """Record delivered change notifications.

    Args:
        count: Number of listeners called.
    """
    if not _enabled() or count <= 0:
        return
    change_notifications_total.inc(count)


__all__ = [
    # Metric objects
    "compilations_total",
    "compile_duration_seconds",
    "compile_step_failures_total",
    "expression_failures_total",
    "mutations_total",
    "change_notifications_total",
    # Helper functions
    "record_compilation",
    "record_step_failure",
    "record_expression_failure",
    "record_mutation",
    "record_notifications",
]

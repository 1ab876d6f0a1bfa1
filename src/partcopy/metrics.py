"""Prometheus metrics definitions for partcopy.

All custom metrics use the ``partcopy_`` prefix. The
``prometheus-fastapi-instrumentator`` package provides HTTP-level metrics for
the ingress; these are copy-protocol metrics.

Counters reset to zero on restart. When metrics are disabled the module
references stay ``None`` and nothing is registered in the global registry.
"""

from __future__ import annotations

from prometheus_client import Counter

_initialized: bool = False

# Messages processed (labels: action, outcome)
messages_total: Counter | None = None

parts_copied_total: Counter | None = None
bytes_copied_total: Counter | None = None

sessions_started_total: Counter | None = None
sessions_completed_total: Counter | None = None


def init_metrics() -> None:
    """Create and register all Prometheus metrics. Safe to call repeatedly."""
    global _initialized
    global messages_total, parts_copied_total, bytes_copied_total
    global sessions_started_total, sessions_completed_total

    if _initialized:
        return

    messages_total = Counter(
        "partcopy_messages_total",
        "Queue messages processed by action and outcome",
        ["action", "outcome"],
    )

    parts_copied_total = Counter(
        "partcopy_parts_copied_total",
        "Parts uploaded to the destination",
    )

    bytes_copied_total = Counter(
        "partcopy_bytes_copied_total",
        "Bytes read from the source and uploaded to the destination",
    )

    sessions_started_total = Counter(
        "partcopy_sessions_started_total",
        "Copy sessions planned and seeded",
    )

    sessions_completed_total = Counter(
        "partcopy_sessions_completed_total",
        "Copy sessions assembled at the destination",
    )

    _initialized = True


def record_message(action: str, outcome: str) -> None:
    if messages_total is not None:
        messages_total.labels(action=action, outcome=outcome).inc()


def record_part(size: int) -> None:
    if parts_copied_total is not None:
        parts_copied_total.inc()
    if bytes_copied_total is not None:
        bytes_copied_total.inc(size)


def record_session_started() -> None:
    if sessions_started_total is not None:
        sessions_started_total.inc()


def record_session_completed() -> None:
    if sessions_completed_total is not None:
        sessions_completed_total.inc()

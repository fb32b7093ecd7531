"""Aggregate latency statistics for the stats endpoint.

Summarizes recent ``DispatchEvent`` and ``ActionEvent`` records from the
``EventLog`` into percentiles and counters.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from whisker.observability.events import ActionEvent, DispatchEvent, DispatchFailure

if TYPE_CHECKING:
    from whisker.observability.log import EventLog


def _percentile(data: list[float], pct: float) -> float:
    idx = int(len(data) * pct / 100)
    return data[min(idx, len(data) - 1)]


def _latency(values: list[float]) -> dict[str, float]:
    ordered = sorted(values)
    return {
        "p50": round(_percentile(ordered, 50), 1),
        "p95": round(_percentile(ordered, 95), 1),
        "p99": round(_percentile(ordered, 99), 1),
        "min": round(ordered[0], 1),
        "max": round(ordered[-1], 1),
    }


def compute_aggregate_stats(log: EventLog, *, limit: int = 100) -> dict:
    """Compute aggregate statistics from recent fan-out and action events.

    Returns a dict with a ``dispatch`` and an ``actions`` section.  Each
    section has a ``count`` and, when non-empty, latency percentiles.

    """
    passes = log.query(event_type=DispatchEvent, limit=limit)
    failures = log.query(event_type=DispatchFailure, limit=limit)
    actions = log.query(event_type=ActionEvent, limit=limit)

    dispatch: dict = {"count": len(passes)}
    if passes:
        dispatch["duration_ms"] = _latency([p.duration_ms for p in passes])
        dispatch["delivered"] = sum(p.delivered for p in passes)
        dispatch["failed"] = sum(p.failed for p in passes)
        dispatch["removed"] = sum(p.removed for p in passes)
    if failures:
        reasons: dict[str, int] = {}
        for failure in failures:
            reasons[failure.reason] = reasons.get(failure.reason, 0) + 1
        dispatch["failures_by_reason"] = reasons

    action_stats: dict = {"count": len(actions)}
    if actions:
        action_stats["duration_ms"] = _latency([a.duration_ms for a in actions])
        outcomes: dict[str, int] = {}
        for event in actions:
            outcomes[event.outcome] = outcomes.get(event.outcome, 0) + 1
        action_stats["by_outcome"] = outcomes

    return {"dispatch": dispatch, "actions": action_stats}

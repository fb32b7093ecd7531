"""Observability — event model for subscriptions, fan-out and actions.

All events are frozen dataclasses with nanosecond timestamps, safe for
concurrent production from dispatch shards and pounce worker threads.

Quick Start:
    >>> from whisker.observability import StackCollector, EventLog
    >>> log = EventLog()
    >>> collector = StackCollector(log)
    >>> collector.record_dispatch("Person:1", delivered=2)

"""

from whisker.observability.collector import StackCollector
from whisker.observability.events import (
    ActionEvent,
    DispatchEvent,
    DispatchFailure,
    StackEvent,
    SubscriptionEvent,
    now_ns,
)
from whisker.observability.log import EventLog
from whisker.observability.stats import compute_aggregate_stats

__all__ = [
    "ActionEvent",
    "DispatchEvent",
    "DispatchFailure",
    "EventLog",
    "StackCollector",
    "StackEvent",
    "SubscriptionEvent",
    "compute_aggregate_stats",
    "now_ns",
]

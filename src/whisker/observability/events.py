"""Event model for live-component observability.

Defines event types for the subscription lifecycle, fan-out passes and
action handling.

All events are frozen dataclasses with:
- ``timestamp_ns``: Monotonic nanosecond timestamp
- Descriptive fields for the specific event type

Thread Safety:
    All events are frozen (immutable) and safe to share across threads.

"""

import time
from dataclasses import dataclass
from typing import Literal


# ---------------------------------------------------------------------------
# Subscription lifecycle
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class SubscriptionEvent:
    """A component instance changed lifecycle state.

    Attributes:
        kind: What happened to the instance.
        instance_id: The instance affected.
        component_type: Name of the instance's component type.
        identity: Text form of the bound resource identity.
        timestamp_ns: Monotonic nanosecond timestamp.

    """

    kind: Literal["mounted", "registered", "deregistered", "disconnected"]
    instance_id: str
    component_type: str
    identity: str
    timestamp_ns: int


# ---------------------------------------------------------------------------
# Fan-out
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class DispatchEvent:
    """One fan-out pass completed for a resource.

    Attributes:
        identity: Text form of the resource identity that changed.
        delivered: Instances that received a push.
        failed: Instances whose render or push failed.
        skipped: Instances retired between snapshot and push.
        removed: Instances retired because the resource no longer exists.
        duration_ms: Time spent on the whole pass.
        timestamp_ns: Monotonic nanosecond timestamp.

    """

    identity: str
    delivered: int
    failed: int
    skipped: int
    removed: int
    duration_ms: float
    timestamp_ns: int


@dataclass(frozen=True, slots=True)
class DispatchFailure:
    """Delivery to one instance failed during a fan-out pass.

    Attributes:
        identity: Text form of the resource identity.
        instance_id: The instance that failed.
        reason: ``render``, ``push`` (channel closed), ``backlog``
            (channel queue full) or ``load`` (resource read failed).
        error: Exception summary.
        timestamp_ns: Monotonic nanosecond timestamp.

    """

    identity: str
    instance_id: str
    reason: Literal["render", "push", "backlog", "load"]
    error: str
    timestamp_ns: int


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ActionEvent:
    """An action request reached the router.

    Attributes:
        instance_id: Target instance.
        component_type: Component type name (empty if unresolved).
        action: Requested action name.
        outcome: How the request ended.
        duration_ms: Time from receipt to acknowledgement.
        timestamp_ns: Monotonic nanosecond timestamp.

    """

    instance_id: str
    component_type: str
    action: str
    outcome: Literal["ok", "instance_not_found", "unknown_action", "not_found", "handler_error"]
    duration_ms: float
    timestamp_ns: int


# ---------------------------------------------------------------------------
# Union type
# ---------------------------------------------------------------------------

type StackEvent = SubscriptionEvent | DispatchEvent | DispatchFailure | ActionEvent


def now_ns() -> int:
    """Return the current monotonic clock value in nanoseconds."""
    return time.monotonic_ns()

"""Stack collector — records live-component events into the event log.

Also implements Pounce's ``LifecycleCollector`` protocol (duck-typed
``record``) so connection lifecycle events from Pounce workers land in
the same log.

Thread Safety:
    The collector delegates to ``EventLog`` which is internally locked.

"""

from __future__ import annotations

from typing import Any

from whisker.observability.events import (
    ActionEvent,
    DispatchEvent,
    DispatchFailure,
    SubscriptionEvent,
    now_ns,
)
from whisker.observability.log import EventLog


class StackCollector:
    """Unified event collector.

    Args:
        log: The EventLog to store events in.

    """

    __slots__ = ("_log",)

    def __init__(self, log: EventLog | None = None) -> None:
        self._log = log if log is not None else EventLog()

    @property
    def log(self) -> EventLog:
        """The underlying event log."""
        return self._log

    # ----- Pounce LifecycleCollector protocol -----

    def record(self, event: Any) -> None:
        """Record a Pounce lifecycle event as-is."""
        self._log.append(event)

    # ----- Subscriptions -----

    def record_subscription(
        self,
        kind: str,
        instance_id: str,
        *,
        component_type: str = "",
        identity: str = "",
    ) -> None:
        self._log.append(
            SubscriptionEvent(
                kind=kind,  # type: ignore[arg-type]
                instance_id=instance_id,
                component_type=component_type,
                identity=identity,
                timestamp_ns=now_ns(),
            )
        )

    # ----- Fan-out -----

    def record_dispatch(
        self,
        identity: str,
        *,
        delivered: int = 0,
        failed: int = 0,
        skipped: int = 0,
        removed: int = 0,
        duration_ms: float = 0.0,
    ) -> None:
        """Record a completed fan-out pass."""
        self._log.append(
            DispatchEvent(
                identity=identity,
                delivered=delivered,
                failed=failed,
                skipped=skipped,
                removed=removed,
                duration_ms=duration_ms,
                timestamp_ns=now_ns(),
            )
        )

    def record_dispatch_failure(
        self,
        identity: str,
        instance_id: str,
        *,
        reason: str,
        error: BaseException | str,
    ) -> None:
        """Record a per-instance delivery failure."""
        if isinstance(error, BaseException):
            error = f"{type(error).__name__}: {error}"
        self._log.append(
            DispatchFailure(
                identity=identity,
                instance_id=instance_id,
                reason=reason,  # type: ignore[arg-type]
                error=error,
                timestamp_ns=now_ns(),
            )
        )

    # ----- Actions -----

    def record_action(
        self,
        instance_id: str,
        action: str,
        *,
        component_type: str = "",
        outcome: str = "ok",
        duration_ms: float = 0.0,
    ) -> None:
        self._log.append(
            ActionEvent(
                instance_id=instance_id,
                component_type=component_type,
                action=action,
                outcome=outcome,  # type: ignore[arg-type]
                duration_ms=duration_ms,
                timestamp_ns=now_ns(),
            )
        )

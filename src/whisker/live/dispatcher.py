"""Dispatcher — re-render and push, one per interested component instance.

Given a resource identity, the dispatcher:

    1. Snapshots the registry's subscribers for that identity
    2. Reads the resource fresh through its registered loader
    3. Renders each instance with (resource, viewer, local_state)
    4. Pushes the fragment over the instance's connection

Each instance is isolated: a render or push failure is caught, logged and
recorded, and a closed connection retires the instance.  Nothing that goes
wrong for one instance stops delivery to its siblings.
"""

from __future__ import annotations

import sys
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from whisker._errors import ConnectionClosed, RenderError
from whisker.live.connections import ERROR_EVENT, FRAGMENT_EVENT, REMOVED_EVENT, Push
from whisker.live.errors_view import format_error_payload

if TYPE_CHECKING:
    from whisker.live.component import ComponentCatalog
    from whisker.live.identity import ResourceIdentity, ResourceTypes
    from whisker.live.instance import ComponentInstance
    from whisker.live.registry import ResourceRegistry
    from whisker.live.rendering import ComponentRenderer
    from whisker.observability.collector import StackCollector


@dataclass(frozen=True, slots=True)
class DispatchReport:
    """Outcome of one fan-out pass.

    Attributes:
        identity: Resource identity the pass was for.
        delivered: Instances that received a fragment.
        failed: Instances whose render or push failed.
        skipped: Instances retired (or never connected) before their push.
        removed: Instances retired because the resource is gone.
        duration_ms: Time spent on the pass.

    """

    identity: ResourceIdentity
    delivered: int = 0
    failed: int = 0
    skipped: int = 0
    removed: int = 0
    duration_ms: float = 0.0


class Dispatcher:
    """Performs fan-out passes for changed resources.

    Args:
        registry: Shared resource registry.
        components: Component catalog (render logic per type).
        resources: Resource loaders for fresh reads.
        renderer: Component renderer.
        on_closed: Called with an instance id when its connection is found
            closed; normally ``SubscriptionManager.disconnect``-style retirement.
        collector: Optional observability collector.

    """

    def __init__(
        self,
        registry: ResourceRegistry,
        components: ComponentCatalog,
        resources: ResourceTypes,
        renderer: ComponentRenderer,
        *,
        on_closed: Callable[[str], None] | None = None,
        collector: StackCollector | None = None,
    ) -> None:
        self._registry = registry
        self._components = components
        self._resources = resources
        self._renderer = renderer
        self._on_closed = on_closed
        self._collector = collector

    def dispatch(self, identity: ResourceIdentity) -> DispatchReport:
        """Re-render and push every instance subscribed to *identity*.

        Never raises: per-instance failures are recorded in the report.

        """
        t0 = time.perf_counter()
        subscribers = self._registry.subscribers_of(identity)
        if not subscribers:
            return DispatchReport(identity=identity)

        delivered = failed = skipped = removed = 0

        try:
            resource = self._resources.load(identity)
        except Exception as exc:
            print(f"  Dispatch load error ({identity}): {exc}", file=sys.stderr)
            for instance in subscribers:
                self._record_failure(identity, instance, "load", exc)
            return self._finish(identity, t0, failed=len(subscribers))

        for instance in subscribers:
            if not instance.is_active or instance.connection is None:
                skipped += 1
                continue

            if resource is None:
                if self._push_removed(instance):
                    removed += 1
                else:
                    skipped += 1
                continue

            outcome = self._deliver(identity, instance, resource)
            if outcome == "delivered":
                delivered += 1
            elif outcome == "skipped":
                skipped += 1
            else:
                failed += 1

        return self._finish(
            identity, t0,
            delivered=delivered, failed=failed, skipped=skipped, removed=removed,
        )

    def _deliver(self, identity: ResourceIdentity, instance: ComponentInstance, resource: Any) -> str:
        component = self._components.get(instance.component_type)
        if component is None:
            self._record_failure(
                identity, instance, "render",
                f"Unknown component type {instance.component_type!r}",
            )
            return "failed"

        try:
            fragment = self._renderer.render(component, instance, resource)
        except RenderError as exc:
            print(f"  Render error ({instance.instance_id}): {exc}", file=sys.stderr)
            self._record_failure(identity, instance, "render", exc)
            # Let the client mark just this component as stale.
            self._push(
                identity, instance,
                Push(
                    event=ERROR_EVENT,
                    data=format_error_payload(exc, instance_id=instance.instance_id),
                    instance_id=instance.instance_id,
                ),
            )
            return "failed"

        # Deregistered while rendering: nothing to push to.
        if not instance.is_active:
            return "skipped"

        return self._push(
            identity, instance,
            Push(event=FRAGMENT_EVENT, data=fragment, instance_id=instance.instance_id),
        )

    def _push(self, identity: ResourceIdentity, instance: ComponentInstance, item: Push) -> str:
        connection = instance.connection
        if connection is None:
            return "skipped"
        try:
            queued = connection.push(item)
        except ConnectionClosed as exc:
            self._record_failure(identity, instance, "push", exc)
            self._closed(instance)
            return "failed"
        except Exception as exc:
            print(f"  Push error ({instance.instance_id}): {exc}", file=sys.stderr)
            self._record_failure(identity, instance, "push", exc)
            return "failed"
        if not queued:
            self._record_failure(identity, instance, "backlog", "client backlog full")
            return "failed"
        return "delivered"

    def _push_removed(self, instance: ComponentInstance) -> bool:
        """Tell the client its resource is gone, then retire the instance."""
        identity = instance.resource_identity
        result = self._push(
            identity, instance,
            Push(event=REMOVED_EVENT, data=instance.instance_id, instance_id=instance.instance_id),
        )
        self._closed(instance)
        return result == "delivered"

    def _closed(self, instance: ComponentInstance) -> None:
        if self._on_closed is not None:
            self._on_closed(instance.instance_id)
        else:
            self._registry.deregister(instance.instance_id)
            instance.retire()

    def _record_failure(
        self,
        identity: ResourceIdentity,
        instance: ComponentInstance,
        reason: str,
        error: BaseException | str,
    ) -> None:
        if self._collector is not None:
            self._collector.record_dispatch_failure(
                str(identity), instance.instance_id, reason=reason, error=error,
            )

    def _finish(self, identity: ResourceIdentity, t0: float, **counts: int) -> DispatchReport:
        duration_ms = (time.perf_counter() - t0) * 1000
        report = DispatchReport(identity=identity, duration_ms=duration_ms, **counts)
        if self._collector is not None:
            self._collector.record_dispatch(str(identity), duration_ms=duration_ms, **counts)
        return report

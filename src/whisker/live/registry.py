"""Resource registry — which component instances watch which resources.

Arena-style storage keyed by instance id, plus a secondary index from
resource identity to instance ids and a reverse link from instance id to the
identities it is attached to.  The three maps always agree: an instance id
present in one is present, with the same identity, in the others.

Thread-safe: a single lock guards all maps.  This is the scalability
ceiling: thousands of concurrent viewers per process, not millions.
"""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from whisker.live.identity import ResourceIdentity
    from whisker.live.instance import ComponentInstance


class ResourceRegistry:
    """Process-wide map of resource identities to subscribed instances."""

    def __init__(self) -> None:
        self._instances: dict[str, ComponentInstance] = {}
        self._index: dict[ResourceIdentity, set[str]] = {}
        self._links: dict[str, set[ResourceIdentity]] = {}
        self._lock = threading.Lock()

    @property
    def subscriber_count(self) -> int:
        """Number of (resource, instance) subscriptions."""
        with self._lock:
            return sum(len(ids) for ids in self._index.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._instances)

    def __contains__(self, instance_id: object) -> bool:
        with self._lock:
            return instance_id in self._instances

    def register(self, resource_identity: ResourceIdentity, instance: ComponentInstance) -> None:
        """Subscribe *instance* to *resource_identity*.

        Inserts or overwrites: a second call for the same instance id keeps
        exactly one entry, and links to any other identity are dropped.

        """
        instance_id = instance.instance_id
        with self._lock:
            for stale in self._links.get(instance_id, set()) - {resource_identity}:
                self._unlink(stale, instance_id)
            self._instances[instance_id] = instance
            self._index.setdefault(resource_identity, set()).add(instance_id)
            self._links[instance_id] = {resource_identity}

    def deregister(self, instance_id: str) -> ComponentInstance | None:
        """Remove *instance_id* from every identity it is attached to.

        Unknown ids are a no-op (duplicate or late disconnect signals).

        Returns:
            The removed instance, or ``None`` if it was not registered.

        """
        with self._lock:
            instance = self._instances.pop(instance_id, None)
            for identity in self._links.pop(instance_id, set()):
                self._unlink(identity, instance_id)
            return instance

    def _unlink(self, identity: ResourceIdentity, instance_id: str) -> None:
        # Caller holds the lock.
        ids = self._index.get(identity)
        if ids is None:
            return
        ids.discard(instance_id)
        if not ids:
            del self._index[identity]

    def subscribers_of(self, resource_identity: ResourceIdentity) -> frozenset[ComponentInstance]:
        """Instances subscribed to a resource (snapshot, no lock held on return)."""
        with self._lock:
            ids = self._index.get(resource_identity, ())
            return frozenset(self._instances[i] for i in ids)

    def get(self, instance_id: str) -> ComponentInstance | None:
        with self._lock:
            return self._instances.get(instance_id)

    def instances(self) -> tuple[ComponentInstance, ...]:
        """All registered instances (snapshot)."""
        with self._lock:
            return tuple(self._instances.values())

    def instances_on(self, connection_id: str) -> tuple[ComponentInstance, ...]:
        """Registered instances pushing over one connection (snapshot)."""
        with self._lock:
            return tuple(
                inst for inst in self._instances.values()
                if inst.connection_id == connection_id
            )

    def subscribed_identities(self) -> frozenset[ResourceIdentity]:
        """Identities with at least one subscriber."""
        with self._lock:
            return frozenset(self._index)

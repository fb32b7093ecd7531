"""Subscription manager — lifecycle authority for component instances.

Validates and normalizes mount, registration and deregistration requests
coming from the transport boundary before touching the registry:

    mount       -> pending instance with a fresh id (server-side render)
    register    -> active instance in the registry (browser connected)
    deregister  -> retired (explicit, best-effort)
    disconnect  -> every instance on a closed connection retired
"""

from __future__ import annotations

import threading
from collections import OrderedDict
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from whisker._errors import RegistrationError
from whisker.live.identity import ResourceIdentity, identity_of
from whisker.live.instance import ComponentInstance, LocalState, ViewerContext, new_instance_id

if TYPE_CHECKING:
    from collections.abc import Mapping

    from whisker._types import ConnectionID
    from whisker.live.component import ComponentCatalog
    from whisker.live.connections import Connection
    from whisker.live.identity import ResourceTypes
    from whisker.live.registry import ResourceRegistry
    from whisker.observability.collector import StackCollector


@dataclass(frozen=True, slots=True)
class Registration:
    """A client registration request.

    Attributes:
        instance_id: Id generated at mount and echoed back by the browser.
        component_type: Component type name.
        resource_identity: Identity (or its ``type:key`` text form).
        viewer: Viewer context resolved server-side for the request.

    """

    instance_id: str | None
    component_type: str | None
    resource_identity: ResourceIdentity | str | None
    viewer: ViewerContext | None


class SubscriptionManager:
    """Creates, registers and retires component instances.

    Guarantees exactly one live registry entry per instance id.

    Args:
        registry: Shared resource registry.
        components: Known component types.
        resources: Resource loaders (registration requires a live resource).
        collector: Optional observability collector.
        pending_limit: Mounted-but-unregistered instances to remember.
        retired_limit: Retired ids to remember (to refuse resurrection).

    """

    def __init__(
        self,
        registry: ResourceRegistry,
        components: ComponentCatalog,
        resources: ResourceTypes,
        *,
        collector: StackCollector | None = None,
        pending_limit: int = 10_000,
        retired_limit: int = 50_000,
    ) -> None:
        self._registry = registry
        self._components = components
        self._resources = resources
        self._collector = collector
        self._pending_limit = pending_limit
        self._retired_limit = retired_limit
        self._pending: OrderedDict[str, ComponentInstance] = OrderedDict()
        self._retired: OrderedDict[str, None] = OrderedDict()
        self._lock = threading.Lock()

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    # ----- Mount -----

    def mount(
        self,
        component_type: str,
        resource: Any,
        viewer: ViewerContext,
        *,
        state: Mapping[str, Any] | None = None,
    ) -> ComponentInstance:
        """Create a pending instance for a server-side render.

        Raises:
            RegistrationError: Unknown component type, or a resource of a
                type the component doesn't bind to.
            KeyError: *state* names an undeclared local state field.

        """
        component = self._components.get(component_type)
        if component is None:
            msg = f"Unknown component type: {component_type!r}"
            raise RegistrationError(msg)
        identity = identity_of(resource)
        if not component.accepts(identity):
            msg = f"{component_type} cannot bind to {identity}"
            raise RegistrationError(msg)

        instance = ComponentInstance(
            instance_id=new_instance_id(),
            component_type=component_type,
            resource_identity=identity,
            viewer=viewer,
            state=LocalState(component.state, state),
        )
        with self._lock:
            self._pending[instance.instance_id] = instance
            while len(self._pending) > self._pending_limit:
                self._pending.popitem(last=False)
        self._record("mounted", instance)
        return instance

    # ----- Register -----

    def register(self, request: Registration, connection: Connection | None) -> ComponentInstance:
        """Activate an instance and subscribe it to its resource.

        A second registration for the same id replaces the first (new
        connection, same single registry entry).

        Raises:
            RegistrationError: Missing fields, unknown component type,
                malformed identity, retired id, or a viewer that doesn't
                match the one the instance was mounted for.
            NotFound: The resource cannot be loaded right now.

        """
        instance_id = request.instance_id
        component_type = request.component_type
        raw_identity = request.resource_identity
        viewer = request.viewer
        missing = [
            name for name, value in (
                ("instance_id", instance_id),
                ("component_type", component_type),
                ("resource_identity", raw_identity),
                ("viewer", viewer),
            ) if value is None or value == ""
        ]
        if missing:
            msg = f"Registration missing {', '.join(missing)}"
            raise RegistrationError(msg)

        if isinstance(raw_identity, ResourceIdentity):
            identity = raw_identity
        else:
            try:
                identity = ResourceIdentity.parse(str(raw_identity))
            except ValueError as exc:
                raise RegistrationError(str(exc)) from exc

        component = self._components.get(component_type)
        if component is None:
            msg = f"Unknown component type: {component_type!r}"
            raise RegistrationError(msg)
        if not component.accepts(identity):
            msg = f"{component_type} cannot bind to {identity}"
            raise RegistrationError(msg)

        with self._lock:
            self._check_not_retired(instance_id)

        # The component must not be registered against a phantom resource.
        self._resources.require(identity)

        # Loading can block; a deregister may have landed meanwhile.  Retire
        # and activate are serialized on the same lock from here on.
        with self._lock:
            self._check_not_retired(instance_id)
            existing = self._registry.get(instance_id)
            pending = self._pending.get(instance_id)

            if pending is not None and pending.viewer.user != viewer.user:
                msg = f"Instance {instance_id} was mounted for a different viewer"
                raise RegistrationError(msg)
            if existing is not None and existing.viewer.user != viewer.user:
                msg = f"Instance {instance_id} is registered to a different viewer"
                raise RegistrationError(msg)

            if (
                existing is not None
                and existing.resource_identity == identity
                and existing.component_type == component_type
            ):
                # Re-registration: same entry, possibly a new connection.
                existing.connection = connection
                self._registry.register(identity, existing)
                return existing

            if pending is not None and pending.resource_identity == identity:
                state = pending.state
            else:
                state = LocalState(component.state)

            instance = ComponentInstance(
                instance_id=instance_id,
                component_type=component_type,
                resource_identity=identity,
                viewer=viewer,
                state=state,
                connection=connection,
                status="active",
            )
            self._registry.register(identity, instance)
            if existing is not None:
                existing.retire()
            self._pending.pop(instance_id, None)
        self._record("registered", instance)
        return instance

    # ----- Deregister -----

    def deregister(self, instance_id: str) -> None:
        """Retire an instance.  Unknown or already-removed ids are not errors."""
        self._retire(instance_id, kind="deregistered")

    def disconnect(self, connection_id: ConnectionID) -> int:
        """Retire every instance bound to a closed connection.

        Returns:
            Number of instances retired.

        """
        count = 0
        for instance in self._registry.instances_on(connection_id):
            if self._retire(instance.instance_id, kind="disconnected"):
                count += 1
        return count

    def is_retired(self, instance_id: str) -> bool:
        with self._lock:
            return instance_id in self._retired

    def _check_not_retired(self, instance_id: str) -> None:
        # Caller holds the lock.
        if instance_id in self._retired:
            msg = f"Instance {instance_id} was retired; mount a new one"
            raise RegistrationError(msg)

    def _retire(self, instance_id: str, *, kind: str) -> bool:
        with self._lock:
            instance = self._registry.deregister(instance_id)
            pending = self._pending.pop(instance_id, None)
            if instance is not None or pending is not None:
                self._retired[instance_id] = None
                while len(self._retired) > self._retired_limit:
                    self._retired.popitem(last=False)
        target = instance or pending
        if target is None:
            return False
        target.retire()
        self._record(kind, target)
        return True

    def _record(self, kind: str, instance: ComponentInstance) -> None:
        if self._collector is not None:
            self._collector.record_subscription(
                kind,
                instance.instance_id,
                component_type=instance.component_type,
                identity=str(instance.resource_identity),
            )

"""Component definitions — stateless render and action logic per type.

A component type is a ``Component`` subclass naming its Kida template, the
resource type it binds to, its local state fields and its actions::

    class PersonCard(Component):
        template = "person_card.html"
        resource_type = "Person"
        state = {"selected": StateField(False, redraw=True)}

        def context(self, resource, viewer, state):
            return {"person": resource, "can_poke": resource.can_be_poked_by(viewer.user)}

        @action
        def poke(self, ctx):
            ctx.resource.poke(ctx.viewer.user)
            ctx.changed(ctx.resource)

One object per type is kept in the ``ComponentCatalog`` and shared by every
instance; per-instance data arrives as arguments.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, ClassVar, overload

from whisker.live.identity import ResourceIdentity, identity_of
from whisker.live.instance import StateField

if TYPE_CHECKING:
    from collections.abc import Mapping

    from whisker.live.instance import ComponentInstance, LocalState, ViewerContext


_ACTION_ATTR = "__whisker_action__"


@overload
def action(func: Callable[..., Any], /) -> Callable[..., Any]: ...
@overload
def action(*, name: str | None = None) -> Callable[[Callable[..., Any]], Callable[..., Any]]: ...


def action(func: Callable[..., Any] | None = None, /, *, name: str | None = None) -> Any:
    """Expose a component method as a client-invocable action.

    Usable bare (``@action``) or with an explicit public name
    (``@action(name="toggle-select")``).  Only decorated methods can be
    reached through the action router.

    """

    def decorate(fn: Callable[..., Any]) -> Callable[..., Any]:
        setattr(fn, _ACTION_ATTR, name or fn.__name__)
        return fn

    if func is not None:
        return decorate(func)
    return decorate


class Component:
    """Base class for component types.

    Class attributes:
        name: Public component type name (defaults to the class name).
        template: Kida template rendered for each instance.
        resource_type: Resource type name instances bind to; ``None``
            accepts any type.
        state: Local state field declarations.
        actions: Public action name to method name; collected automatically
            from ``@action`` methods, including inherited ones.

    """

    name: ClassVar[str] = ""
    template: ClassVar[str] = ""
    resource_type: ClassVar[str | None] = None
    state: ClassVar[dict[str, StateField]] = {}
    actions: ClassVar[dict[str, str]] = {}

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        if "name" not in cls.__dict__ or not cls.__dict__["name"]:
            cls.name = cls.__name__

        actions: dict[str, str] = {}
        for klass in reversed(cls.__mro__):
            for attr, value in vars(klass).items():
                public = getattr(value, _ACTION_ATTR, None)
                if public is not None:
                    actions[public] = attr
        cls.actions = actions

    def context(
        self,
        resource: Any,
        viewer: ViewerContext,
        state: Mapping[str, Any],
    ) -> dict[str, Any]:
        """Template context for one render.  Override to shape it.

        Permission checks for what this viewer may see belong here.

        """
        return {"resource": resource}

    def handler(self, action_name: str) -> Callable[..., Any] | None:
        """Bound handler for a public action name, or ``None``."""
        attr = self.actions.get(action_name)
        if attr is None:
            return None
        return getattr(self, attr)

    def accepts(self, identity: ResourceIdentity) -> bool:
        return self.resource_type is None or identity.type_name == self.resource_type


@dataclass(slots=True)
class ActionContext:
    """Everything an action handler may look at or change.

    Attributes:
        instance: The instance the action targets.
        resource: Freshly loaded resource.
        viewer: The instance's viewer context.
        state: The instance's local state (writable).
        params: Parameters sent with the action.
        notified: Identities the handler reported as changed.

    """

    instance: ComponentInstance
    resource: Any
    viewer: ViewerContext
    state: LocalState
    params: Mapping[str, Any]
    _notify: Callable[..., None] = field(repr=False)
    _cascade: Callable[[Any], tuple[ResourceIdentity, ...]] = field(repr=False)
    notified: list[ResourceIdentity] = field(default_factory=list)

    def notify_changed(self, target: Any, *, also: tuple[Any, ...] = ()) -> None:
        """Report that *target* (a resource or identity) changed."""
        identity = identity_of(target)
        extra = tuple(identity_of(item) for item in also)
        self._notify(identity, also=extra)
        for item in (identity, *extra):
            if item not in self.notified:
                self.notified.append(item)

    def changed(self, resource: Any) -> None:
        """Report a mutation of *resource* including its declared cascades."""
        identities = self._cascade(resource)
        self.notify_changed(identities[0], also=identities[1:])


class ComponentCatalog:
    """Registry of component types, one shared definition object per type."""

    def __init__(self) -> None:
        self._components: dict[str, Component] = {}
        self._lock = threading.Lock()

    def register(self, cls: type[Component]) -> type[Component]:
        """Register a component class.  Usable as a decorator."""
        if not isinstance(cls, type) or not issubclass(cls, Component):
            msg = f"{cls!r} is not a Component subclass"
            raise TypeError(msg)
        if not cls.template:
            msg = f"{cls.__name__} must declare a template"
            raise TypeError(msg)
        with self._lock:
            self._components[cls.name] = cls()
        return cls

    def get(self, name: str) -> Component | None:
        with self._lock:
            return self._components.get(name)

    def names(self) -> frozenset[str]:
        with self._lock:
            return frozenset(self._components)

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._components

    def __len__(self) -> int:
        with self._lock:
            return len(self._components)

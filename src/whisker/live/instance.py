"""Component instances and the per-instance values they carry.

A ``ComponentInstance`` is one live rendering of a component type, bound to
one resource, one viewer and its own local UI state.  Instances are created
at mount time (``pending``), become ``active`` when the browser registers
them, and are ``retired`` on deregistration or disconnect.  They are never
resurrected.
"""

from __future__ import annotations

import threading
import uuid
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from whisker.observability.events import now_ns

if TYPE_CHECKING:
    from whisker._types import InstanceStatus
    from whisker.live.connections import Connection
    from whisker.live.identity import ResourceIdentity


def new_instance_id() -> str:
    """Generate a fresh instance id."""
    return uuid.uuid4().hex


@dataclass(frozen=True, slots=True)
class ViewerContext:
    """Immutable snapshot of who is viewing a component.

    Attributes:
        user: Opaque user identity (``None`` for anonymous viewers).
        values: Read-only session-scoped values.

    """

    user: Any = None
    values: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    def __post_init__(self) -> None:
        if not isinstance(self.values, MappingProxyType):
            object.__setattr__(self, "values", MappingProxyType(dict(self.values)))

    def __hash__(self) -> int:
        return hash(self.user)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ViewerContext):
            return NotImplemented
        return self.user == other.user and dict(self.values) == dict(other.values)

    def get(self, key: str, default: Any = None) -> Any:
        return self.values.get(key, default)

    @property
    def is_anonymous(self) -> bool:
        return self.user is None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> ViewerContext:
        """Build from a plain mapping; the ``user`` key becomes ``user``."""
        values = {k: v for k, v in data.items() if k != "user"}
        return cls(user=data.get("user"), values=values)


@dataclass(frozen=True, slots=True)
class StateField:
    """Declaration of one local state field on a component type.

    Attributes:
        default: Initial value for new instances.  Mutable defaults are
            copied per instance.
        redraw: A change to this field alone warrants a re-render.

    """

    default: Any = None
    redraw: bool = False


class LocalState:
    """Mutable per-instance UI state with redraw tracking.

    Only fields declared on the component type may be written.  Writing a
    ``redraw`` field to a new value marks the state dirty until
    ``take_redraw`` is called.

    """

    __slots__ = ("_dirty", "_fields", "_values")

    def __init__(
        self,
        fields: Mapping[str, StateField],
        initial: Mapping[str, Any] | None = None,
    ) -> None:
        self._fields = dict(fields)
        self._values: dict[str, Any] = {}
        for name, declared in self._fields.items():
            default = declared.default
            if isinstance(default, (list, dict, set)):
                default = type(default)(default)
            self._values[name] = default
        self._dirty = False
        if initial:
            for name, value in initial.items():
                self._check(name)
                self._values[name] = value

    def _check(self, name: str) -> None:
        if name not in self._fields:
            msg = f"Undeclared local state field: {name!r}"
            raise KeyError(msg)

    def __getitem__(self, name: str) -> Any:
        self._check(name)
        return self._values[name]

    def __setitem__(self, name: str, value: Any) -> None:
        self._check(name)
        if self._values[name] != value and self._fields[name].redraw:
            self._dirty = True
        self._values[name] = value

    def __contains__(self, name: object) -> bool:
        return name in self._values

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def get(self, name: str, default: Any = None) -> Any:
        return self._values.get(name, default)

    def as_dict(self) -> dict[str, Any]:
        """Snapshot of the current values."""
        return dict(self._values)

    @property
    def needs_redraw(self) -> bool:
        return self._dirty

    def take_redraw(self) -> bool:
        """Return and clear the redraw flag."""
        dirty = self._dirty
        self._dirty = False
        return dirty


@dataclass(slots=True, eq=False)
class ComponentInstance:
    """One live binding of a component type, a resource and a viewer.

    Identity semantics: two instance objects are equal only if they are the
    same object; the registry keys them by ``instance_id``.

    Attributes:
        instance_id: Unique per render, never reused.
        component_type: Name of the component definition used to render.
        resource_identity: The single resource this instance represents.
        viewer: Viewer context captured at registration, immutable.
        state: Local UI state, mutated only by this instance's actions.
        connection: Transport channel used for pushes (``None`` until
            registered).
        status: ``pending``, ``active`` or ``retired``.
        created_ns: Monotonic timestamp of the mount.
        lock: Serializes handler invocation and rendering of this instance.

    """

    instance_id: str
    component_type: str
    resource_identity: ResourceIdentity
    viewer: ViewerContext
    state: LocalState
    connection: Connection | None = None
    status: InstanceStatus = "pending"
    created_ns: int = field(default_factory=now_ns)
    lock: threading.RLock = field(default_factory=threading.RLock, repr=False)

    @property
    def dom_id(self) -> str:
        """DOM id of the component's root element."""
        return f"whisker-{self.instance_id}"

    @property
    def connection_id(self) -> str | None:
        return self.connection.connection_id if self.connection is not None else None

    @property
    def is_active(self) -> bool:
        return self.status == "active"

    def retire(self) -> None:
        self.status = "retired"

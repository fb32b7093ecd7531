"""Resource identities and the resource type catalog.

A ``ResourceIdentity`` is the registry's lookup key: the resource's type
name plus its key, normalized so that two identities are equal iff they
denote the same record.

``ResourceTypes`` knows how to load a resource fresh by identity and which
related resources a mutation cascades to ("touches").  Persistence itself
stays outside whisker; loaders are plain callables supplied by the
application.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

from whisker._errors import NotFound


@dataclass(frozen=True, slots=True, order=True)
class ResourceIdentity:
    """Stable, comparable identity of one backend resource.

    Attributes:
        type_name: Resource type name (e.g. ``Person``).
        key: Primary key, always stored as ``str``.

    """

    type_name: str
    key: str

    def __post_init__(self) -> None:
        if not isinstance(self.key, str):
            object.__setattr__(self, "key", str(self.key))
        if not self.type_name or ":" in self.type_name:
            msg = f"Invalid resource type name: {self.type_name!r}"
            raise ValueError(msg)

    def __str__(self) -> str:
        return f"{self.type_name}:{self.key}"

    @classmethod
    def parse(cls, text: str) -> ResourceIdentity:
        """Parse the ``type_name:key`` text form.

        Raises:
            ValueError: If *text* has no ``:`` separator or an empty part.

        """
        type_name, sep, key = text.partition(":")
        if not sep or not type_name or not key:
            msg = f"Invalid resource identity: {text!r}"
            raise ValueError(msg)
        return cls(type_name, key)


def identity_of(resource: Any) -> ResourceIdentity:
    """Derive the identity of a resource object.

    Resolution order:
        1. ``resource.resource_identity()`` if the object defines it.
        2. ``__resource_type__`` (default: class name) plus the attribute
           named by ``__resource_key__`` (default: ``id``).

    Identities pass through unchanged, so callers may hand either.

    """
    if isinstance(resource, ResourceIdentity):
        return resource

    explicit = getattr(resource, "resource_identity", None)
    if callable(explicit):
        return explicit()

    type_name = getattr(resource, "__resource_type__", None) or type(resource).__name__
    key_attr = getattr(resource, "__resource_key__", "id")
    key = getattr(resource, key_attr, None)
    if key is None:
        msg = f"{type(resource).__name__} has no {key_attr!r} to build an identity from"
        raise ValueError(msg)
    return ResourceIdentity(type_name, key)


@dataclass(frozen=True, slots=True)
class ResourceType:
    """How one resource type is loaded and what its mutations cascade to.

    Attributes:
        name: Type name used in identities.
        load: ``load(key) -> resource | None``.
        touches: ``touches(resource) -> iterable`` of related resources or
            identities to notify alongside this one.

    """

    name: str
    load: Callable[[str], Any]
    touches: Callable[[Any], Iterable[Any]] | None = None


class ResourceTypes:
    """Catalog of resource types known to the application.

    Thread-safe: types are usually registered at startup but lookups happen
    on every dispatch and action from many threads.

    """

    def __init__(self) -> None:
        self._types: dict[str, ResourceType] = {}
        self._lock = threading.Lock()

    def register(
        self,
        name: str,
        load: Callable[[str], Any],
        *,
        touches: Callable[[Any], Iterable[Any]] | None = None,
    ) -> ResourceType:
        """Register (or replace) a resource type."""
        resource_type = ResourceType(name=name, load=load, touches=touches)
        with self._lock:
            self._types[name] = resource_type
        return resource_type

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._types

    def __len__(self) -> int:
        with self._lock:
            return len(self._types)

    def get(self, name: str) -> ResourceType | None:
        with self._lock:
            return self._types.get(name)

    def load(self, identity: ResourceIdentity) -> Any:
        """Read the current state of a resource.

        Returns:
            The resource, or ``None`` if the loader reports it missing.

        Raises:
            NotFound: If the resource type is not registered.

        """
        resource_type = self.get(identity.type_name)
        if resource_type is None:
            raise NotFound(identity)
        return resource_type.load(identity.key)

    def require(self, identity: ResourceIdentity) -> Any:
        """Like ``load`` but raises ``NotFound`` for a missing resource."""
        resource = self.load(identity)
        if resource is None:
            raise NotFound(identity)
        return resource

    def cascade(self, resource: Any) -> tuple[ResourceIdentity, ...]:
        """Identities to notify when *resource* changes, itself first.

        The "also notify" list is computed now, at mutation time, from the
        type's ``touches`` function.  Duplicates are dropped, order kept.

        """
        identity = identity_of(resource)
        result = [identity]
        resource_type = self.get(identity.type_name)
        if resource_type is not None and resource_type.touches is not None:
            for related in resource_type.touches(resource):
                related_identity = identity_of(related)
                if related_identity not in result:
                    result.append(related_identity)
        return tuple(result)

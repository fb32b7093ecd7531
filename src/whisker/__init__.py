"""Whisker — live server-rendered components for Chirp apps.

Components render on the server from a resource, the viewer and a little
local state.  When a resource changes, every component showing it is
re-rendered and pushed to its browser over SSE.

Quick start::

    from whisker import Component, Whisker, action, create_app

    live = Whisker(".")
    live.resource("Person", load=people.get)

    @live.component
    class PersonCard(Component):
        template = "person_card.html"
        resource_type = "Person"

        @action
        def poke(self, ctx):
            ctx.resource.poked_by(ctx.viewer.user)
            ctx.changed(ctx.resource)

    app = create_app(live)

Two modes::

    whisker dev app:app           # Debug server, one worker
    whisker serve app:app         # Pounce server, many workers

Part of the Bengal ecosystem:

    whisker     Live components   (pushes HTML)
    pounce      ASGI server       (serves apps)
    chirp       Web framework     (serves HTML)
    kida        Template engine   (renders HTML)

"""

# PEP 703: Declare this module as free-threading safe
_Py_mod_gil = 0

__version__ = "0.1.0.dev0"
__all__ = [
    "Component",
    "ResourceIdentity",
    "StateField",
    "ViewerContext",
    "Whisker",
    "WhiskerConfig",
    "__version__",
    "action",
    "create_app",
    "dev",
    "serve",
]

_LAZY: dict[str, str] = {
    "Component": "whisker.live.component",
    "action": "whisker.live.component",
    "ResourceIdentity": "whisker.live.identity",
    "StateField": "whisker.live.instance",
    "ViewerContext": "whisker.live.instance",
    "WhiskerConfig": "whisker.config",
    "Whisker": "whisker.app",
    "create_app": "whisker.app",
    "dev": "whisker.app",
    "serve": "whisker.app",
}


def __getattr__(name: str) -> object:
    """Lazy imports for the public API.

    Keeps ``import whisker`` fast (the CLI's ``--version`` needs nothing else).
    """
    module_name = _LAZY.get(name)
    if module_name is None:
        msg = f"module {__name__!r} has no attribute {name!r}"
        raise AttributeError(msg)

    import importlib

    return getattr(importlib.import_module(module_name), name)

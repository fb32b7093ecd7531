"""Whisker application — live components on a Chirp app.

``Whisker`` owns the live layer (catalogs, registry, connections, notifier,
dispatcher, action router) and attaches it to a Chirp App.  The public
functions (``create_app``, ``dev``, ``serve``) are the primary entry points.
"""

from __future__ import annotations

import importlib
import os
import sys
import time
from collections.abc import Callable, Iterable, Mapping
from contextvars import ContextVar
from pathlib import Path
from typing import TYPE_CHECKING, Any

from whisker._errors import ConfigError, RegistrationError
from whisker.config import WhiskerConfig
from whisker.config_loader import load_config
from whisker.live.actions import ActionRouter
from whisker.live.component import ComponentCatalog
from whisker.live.connections import ConnectionHub
from whisker.live.dispatcher import Dispatcher
from whisker.live.identity import ResourceTypes
from whisker.live.instance import ViewerContext
from whisker.live.notifier import ChangeNotifier
from whisker.live.registry import ResourceRegistry
from whisker.live.rendering import ComponentRenderer, create_environment
from whisker.live.subscriptions import SubscriptionManager
from whisker.observability import EventLog, StackCollector

if TYPE_CHECKING:
    from chirp import App
    from chirp.http.request import Request
    from chirp.middleware.protocol import Next

    from whisker._types import ActionParams, InstanceID, ResourceLoader, ViewerResolver
    from whisker.live.actions import ActionResult
    from whisker.live.component import Component
    from whisker.live.identity import ResourceIdentity
    from whisker.live.instance import ComponentInstance


_current_request: ContextVar[Any] = ContextVar("whisker_current_request", default=None)


def _anonymous(request: Any) -> ViewerContext:
    return ViewerContext()


async def request_scope_middleware(request: Request, next: Next) -> Any:
    """Expose the request being served to template globals."""
    token = _current_request.set(request)
    try:
        return await next(request)
    finally:
        _current_request.reset(token)


class Whisker:
    """The live component layer of one application.

    Args:
        root: Project root; ``whisker.yaml``/``whisker.toml`` there is merged
            into the configuration.
        config: Use this configuration instead of loading one.
        env: Kida environment for component templates (defaults to one over
            ``config.templates_path``).
        viewer_resolver: Maps an inbound request to a ``ViewerContext`` (or
            a mapping with ``user`` and extra values).  Defaults to an
            anonymous viewer.
        **overrides: WhiskerConfig fields, applied on top of file config.

    """

    def __init__(
        self,
        root: str | Path = ".",
        *,
        config: WhiskerConfig | None = None,
        env: Any = None,
        viewer_resolver: ViewerResolver | None = None,
        **overrides: object,
    ) -> None:
        self.config = config if config is not None else load_config(Path(root), **overrides)
        cfg = self.config

        self.components = ComponentCatalog()
        self.resources = ResourceTypes()
        self.registry = ResourceRegistry()
        self.hub = ConnectionHub(cfg.queue_size)
        self.collector = StackCollector(EventLog(max_events=cfg.max_events))

        if env is None:
            env = create_environment([cfg.templates_path], debug=cfg.debug)
        self.renderer = ComponentRenderer(env)

        self.subscriptions = SubscriptionManager(
            self.registry,
            self.components,
            self.resources,
            collector=self.collector,
            pending_limit=cfg.pending_limit,
            retired_limit=cfg.retired_limit,
        )
        self.dispatcher = Dispatcher(
            self.registry,
            self.components,
            self.resources,
            self.renderer,
            on_closed=self.subscriptions.deregister,
            collector=self.collector,
        )
        self.notifier = ChangeNotifier(self.dispatcher, self.resources, shards=cfg.dispatch_shards)
        self.actions = ActionRouter(
            self.registry,
            self.components,
            self.resources,
            self.renderer,
            self.notifier,
            self.subscriptions,
            collector=self.collector,
            debug=cfg.debug,
        )
        self._viewer_resolver = viewer_resolver or _anonymous
        self.app: App | None = None

    # ----- Definitions -----

    def component(self, cls: type[Component]) -> type[Component]:
        """Register a component type.  Usable as a class decorator."""
        return self.components.register(cls)

    def resource(
        self,
        name: str,
        *,
        load: ResourceLoader,
        touches: Callable[[Any], Iterable[Any]] | None = None,
    ) -> None:
        """Register a resource type's loader and optional cascade."""
        self.resources.register(name, load, touches=touches)

    # ----- Rendering -----

    def mount(
        self,
        component_type: str,
        resource: Any,
        viewer: ViewerContext | None = None,
        *,
        state: Mapping[str, Any] | None = None,
    ) -> ComponentInstance:
        """Create a pending instance (see ``render`` for the usual path).

        Without *viewer*, the viewer of the request being served is used
        (anonymous outside a request).

        """
        if viewer is None:
            viewer = self.current_viewer()
        return self.subscriptions.mount(component_type, resource, viewer, state=state)

    def render(
        self,
        component_type: str,
        resource: Any,
        viewer: ViewerContext | None = None,
        *,
        state: Mapping[str, Any] | None = None,
    ) -> str:
        """Mount and render a component for an initial page render.

        The returned HTML carries the instance id the browser registers with.
        The instance is mounted for *viewer*, or for the viewer of the request
        being served, so the browser's registration matches it.

        Raises:
            RegistrationError: Unknown component type or incompatible resource.
            RenderError: The template failed to render.

        """
        component = self.components.get(component_type)
        if component is None:
            msg = f"Unknown component type: {component_type!r}"
            raise RegistrationError(msg)
        instance = self.mount(component_type, resource, viewer, state=state)
        return self.renderer.render(component, instance, resource)

    def current_viewer(self) -> ViewerContext:
        """Viewer of the request being served (anonymous outside a request)."""
        request = _current_request.get()
        if request is None:
            return ViewerContext()
        return self.resolve_viewer(request)

    def resolve_viewer(self, request: Any) -> ViewerContext:
        """Viewer context for an inbound request."""
        viewer = self._viewer_resolver(request)
        if viewer is None:
            return ViewerContext()
        if isinstance(viewer, ViewerContext):
            return viewer
        if isinstance(viewer, Mapping):
            return ViewerContext.from_mapping(viewer)
        return ViewerContext(user=viewer)

    # ----- Changes and actions -----

    def notify_changed(self, resource: Any, *, also: Iterable[Any] = ()) -> None:
        """Schedule fan-out for a changed resource (identity or object)."""
        self.notifier.notify_changed(resource, also=also)

    def changed(self, resource: Any) -> None:
        """Schedule fan-out for a resource and its declared cascade."""
        self.notifier.changed(resource)

    def handle_action(
        self,
        instance_id: InstanceID,
        action_name: str,
        params: ActionParams | None = None,
        *,
        viewer: ViewerContext | None = None,
    ) -> ActionResult:
        return self.actions.handle_action(instance_id, action_name, params, viewer)

    def subscribers(self, resource_identity: ResourceIdentity) -> frozenset[ComponentInstance]:
        return self.registry.subscribers_of(resource_identity)

    # ----- Chirp wiring -----

    def attach(self, app: App) -> None:
        """Wire endpoints, middleware, template globals and lifecycle hooks.

        Must be called before the app is frozen.

        """
        from whisker.live.endpoints import LiveEndpoints

        self.app = app
        LiveEndpoints(self).register_routes(app)
        app.add_middleware(request_scope_middleware)

        if self.config.debug:
            from whisker.live.errors_view import error_overlay_middleware

            app.add_middleware(error_overlay_middleware)

        if self.config.inject_client:
            from whisker.live.client import client_middleware

            app.add_middleware(client_middleware(self.config.endpoint_prefix))

        # Page templates embed components with {{ live("PersonCard", person) | safe }}
        app.template_global("live")(self.render)

        @app.on_shutdown
        async def _close_live_layer() -> None:
            self.close()

    def close(self) -> None:
        """Close every connection and stop the dispatch shards."""
        closed = self.hub.close_all()
        self.notifier.close(wait_for_pending=False)
        if closed:
            print(f"  Closed {closed} live connection(s)", file=sys.stderr)


def _mount_static_files(app: App, config: WhiskerConfig) -> None:
    if config.static_path.is_dir():
        from chirp.middleware import StaticFiles

        app.add_middleware(StaticFiles(directory=config.static_path, prefix="/static"))


def create_app(whisker: Whisker) -> App:
    """Create a Chirp App with the live layer attached.

    Page routes are added by the caller, before the app starts serving.

    """
    from chirp import App, AppConfig

    config = whisker.config
    app = App(
        config=AppConfig(
            template_dir=config.templates_path,
            debug=config.debug,
            host=config.host,
            port=config.port,
        )
    )
    whisker.attach(app)
    _mount_static_files(app, config)
    return app


def resolve_target(target: str) -> tuple[Whisker, App | None]:
    """Resolve a ``module:attr`` target.

    *attr* may name a ``Whisker`` (a fresh App is created for it) or the
    Chirp App a module-level ``Whisker`` was attached to.

    Raises:
        ConfigError: Malformed target, import failure, or wrong object type.

    """
    module_name, _, attr = target.partition(":")
    if not module_name or not attr:
        msg = f"Target must be 'module:attr', got {target!r}"
        raise ConfigError(msg)

    cwd = os.getcwd()
    if cwd not in sys.path:
        sys.path.insert(0, cwd)

    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        msg = f"Cannot import {module_name!r}: {exc}"
        raise ConfigError(msg) from exc

    obj = getattr(module, attr, None)
    if isinstance(obj, Whisker):
        return obj, None
    if obj is not None:
        for candidate in vars(module).values():
            if isinstance(candidate, Whisker) and candidate.app is obj:
                return candidate, obj
    msg = f"{target!r} is not a Whisker instance"
    raise ConfigError(msg)


def _prepare(target: str, mode: str) -> tuple[Whisker, App]:
    from whisker.banner import print_banner

    t0 = time.perf_counter()
    whisker, app = resolve_target(target)
    if app is None:
        app = create_app(whisker)
    load_ms = (time.perf_counter() - t0) * 1000
    print_banner(whisker, mode=mode, load_ms=load_ms)
    return whisker, app


# ---------------------------------------------------------------------------
# Public entry points
# ---------------------------------------------------------------------------


def dev(target: str, *, host: str | None = None, port: int | None = None) -> None:
    """Run a development server (single worker, debug config honoured).

    Args:
        target: ``module:attr`` naming a Whisker (or an app carrying one).
        host: Bind address override.
        port: Bind port override.

    """
    whisker, app = _prepare(target, "dev")
    config = whisker.config
    app.run(
        host=host or config.host,
        port=port or config.port,
        lifecycle_collector=whisker.collector,
    )


def serve(
    target: str,
    *,
    host: str | None = None,
    port: int | None = None,
    workers: int | None = None,
) -> None:
    """Run a production Pounce server.

    Workers share one live layer: registry, connections and dispatch
    shards are process-wide and thread-safe.

    """
    whisker, app = _prepare(target, "serve")
    config = whisker.config

    from pounce.config import ServerConfig
    from pounce.server import Server

    server_config = ServerConfig(
        host=host or config.host,
        port=port or config.port,
        workers=config.workers if workers is None else workers,
    )
    server = Server(server_config, app, lifecycle_collector=whisker.collector)
    server.run()

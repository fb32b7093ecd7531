"""Action router — user-triggered actions on live component instances.

Each request moves through ``received -> resolved -> invoked ->
(mutation?) -> acknowledged``:

    resolved      live instance looked up by id (else InstanceNotFound)
    invoked       named @action handler called (else UnknownAction)
    mutation      the handler may change local state and/or the resource;
                  resource changes go through the change notifier to *all*
                  subscribers, asynchronously
    acknowledged  this instance is re-rendered and returned synchronously,
                  so the acting user never waits on the broadcast path
"""

from __future__ import annotations

import sys
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from whisker._errors import HandlerError, InstanceNotFound, NotFound, RenderError, UnknownAction
from whisker.live.component import ActionContext
from whisker.live.errors_view import render_degraded

if TYPE_CHECKING:
    from collections.abc import Mapping

    from whisker.live.component import Component, ComponentCatalog
    from whisker.live.identity import ResourceIdentity, ResourceTypes
    from whisker.live.instance import ComponentInstance, ViewerContext
    from whisker.live.notifier import ChangeNotifier
    from whisker.live.registry import ResourceRegistry
    from whisker.live.rendering import ComponentRenderer
    from whisker.live.subscriptions import SubscriptionManager
    from whisker.observability.collector import StackCollector


@dataclass(frozen=True, slots=True)
class ActionResult:
    """The acting instance's response.

    Attributes:
        instance_id: Instance the action ran on.
        action: Action name.
        html: Re-rendered fragment (empty when ``removed``).
        redraw: A redraw-flagged state field changed, or the handler
            reported a resource change.
        notified: Identities the handler reported as changed.
        removed: The resource no longer exists; the instance was retired.

    """

    instance_id: str
    action: str
    html: str
    redraw: bool = False
    notified: tuple[ResourceIdentity, ...] = ()
    removed: bool = False


class ActionRouter:
    """Resolves and invokes component actions.

    Args:
        registry: Live instances by id.
        components: Component types (handlers are looked up here).
        resources: Resource loaders for fresh reads.
        renderer: Renders the acting instance after the handler ran.
        notifier: Receives the handler's change notifications.
        subscriptions: Retires instances whose resource disappeared.
        collector: Optional observability collector.
        debug: Include exception details in degraded fragments.

    """

    def __init__(
        self,
        registry: ResourceRegistry,
        components: ComponentCatalog,
        resources: ResourceTypes,
        renderer: ComponentRenderer,
        notifier: ChangeNotifier,
        subscriptions: SubscriptionManager,
        *,
        collector: StackCollector | None = None,
        debug: bool = False,
    ) -> None:
        self._registry = registry
        self._components = components
        self._resources = resources
        self._renderer = renderer
        self._notifier = notifier
        self._subscriptions = subscriptions
        self._collector = collector
        self._debug = debug

    def handle_action(
        self,
        instance_id: str,
        action_name: str,
        params: Mapping[str, Any] | None = None,
        viewer: ViewerContext | None = None,
    ) -> ActionResult:
        """Run *action_name* on an instance and return its new rendering.

        Args:
            instance_id: Target instance.
            action_name: Public action name.
            params: Parameters sent by the client.
            viewer: Viewer making the request; when given, it must be the
                viewer the instance was registered for.

        Raises:
            InstanceNotFound: Unknown, retired, or another viewer's instance.
            UnknownAction: The component type doesn't expose the action.
            NotFound: The resource no longer exists before the handler runs.
            HandlerError: The handler (or the re-render) raised; carries a
                degraded fragment.

        """
        t0 = time.perf_counter()
        component_type = ""
        try:
            instance = self._resolve(instance_id, viewer)
            component_type = instance.component_type
            component = self._components.get(component_type)
            if component is None:
                raise UnknownAction(component_type, action_name)
            handler = component.handler(action_name)
            if handler is None:
                raise UnknownAction(component_type, action_name)

            result = self._invoke(component, instance, handler, action_name, params or {})
        except InstanceNotFound:
            self._record(instance_id, action_name, component_type, "instance_not_found", t0)
            raise
        except UnknownAction:
            self._record(instance_id, action_name, component_type, "unknown_action", t0)
            raise
        except NotFound:
            self._record(instance_id, action_name, component_type, "not_found", t0)
            raise
        except HandlerError:
            self._record(instance_id, action_name, component_type, "handler_error", t0)
            raise

        self._record(instance_id, action_name, component_type, "ok", t0)
        return result

    def _resolve(self, instance_id: str, viewer: ViewerContext | None) -> ComponentInstance:
        instance = self._registry.get(instance_id)
        if instance is None or not instance.is_active:
            raise InstanceNotFound(instance_id)
        # Instance ids are not transferable between viewers.
        if viewer is not None and viewer.user != instance.viewer.user:
            raise InstanceNotFound(instance_id)
        return instance

    def _invoke(
        self,
        component: Component,
        instance: ComponentInstance,
        handler: Any,
        action_name: str,
        params: Mapping[str, Any],
    ) -> ActionResult:
        identity = instance.resource_identity

        with instance.lock:
            try:
                resource = self._resources.require(identity)
            except NotFound:
                raise
            except Exception as exc:
                print(f"  Load error ({identity}): {exc}", file=sys.stderr)
                fragment = render_degraded(instance, exc, debug=self._debug)
                raise HandlerError(instance.instance_id, action_name, fragment) from exc
            ctx = ActionContext(
                instance=instance,
                resource=resource,
                viewer=instance.viewer,
                state=instance.state,
                params=params,
                _notify=self._notifier.notify_changed,
                _cascade=self._resources.cascade,
            )

            try:
                handler(ctx)
            except Exception as exc:
                print(
                    f"  Action error ({instance.component_type}.{action_name}): {exc}",
                    file=sys.stderr,
                )
                instance.state.take_redraw()
                fragment = render_degraded(instance, exc, debug=self._debug)
                raise HandlerError(instance.instance_id, action_name, fragment) from exc

            state_redraw = instance.state.take_redraw()
            notified = tuple(ctx.notified)

            try:
                fresh = self._resources.load(identity)
            except Exception as exc:
                print(f"  Reload error ({identity}): {exc}", file=sys.stderr)
                fragment = render_degraded(instance, exc, debug=self._debug)
                raise HandlerError(instance.instance_id, action_name, fragment) from exc
            if fresh is None:
                self._subscriptions.deregister(instance.instance_id)
                return ActionResult(
                    instance_id=instance.instance_id,
                    action=action_name,
                    html="",
                    redraw=True,
                    notified=notified,
                    removed=True,
                )

            try:
                html = self._renderer.render(component, instance, fresh)
            except RenderError as exc:
                print(f"  Render error ({instance.instance_id}): {exc}", file=sys.stderr)
                fragment = render_degraded(instance, exc, debug=self._debug)
                raise HandlerError(instance.instance_id, action_name, fragment) from exc

        return ActionResult(
            instance_id=instance.instance_id,
            action=action_name,
            html=html,
            redraw=state_redraw or bool(notified),
            notified=notified,
        )

    def _record(
        self,
        instance_id: str,
        action_name: str,
        component_type: str,
        outcome: str,
        t0: float,
    ) -> None:
        if self._collector is not None:
            self._collector.record_action(
                instance_id,
                action_name,
                component_type=component_type,
                outcome=outcome,
                duration_ms=(time.perf_counter() - t0) * 1000,
            )

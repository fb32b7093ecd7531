"""Live endpoints — the HTTP surface of the live component layer.

Registers five routes under the configured prefix (``/__whisker`` by
default):

    GET  {prefix}/events       SSE stream, one per browser tab
    POST {prefix}/register     bind a mounted instance to a connection
    POST {prefix}/deregister   drop an instance (tab closed, element removed)
    POST {prefix}/action       run a component action, return its fragment
    GET  {prefix}/stats        dispatch and action telemetry as JSON

Handlers are plain methods so they can be exercised without a running
server; ``register_routes`` binds them to a Chirp app.
"""

from __future__ import annotations

import asyncio
import json
from typing import TYPE_CHECKING, Any

from whisker._errors import (
    HandlerError,
    InstanceNotFound,
    NotFound,
    RegistrationError,
    UnknownAction,
)
from whisker.live.subscriptions import Registration

if TYPE_CHECKING:
    from chirp import App, Request

    from whisker.app import Whisker


_HTML = "text/html; charset=utf-8"
_TEXT = "text/plain; charset=utf-8"
_JSON = "application/json"


def _response(body: str = "", *, status: int = 200, content_type: str = _TEXT) -> Any:
    from chirp.http.response import Response

    return Response(body=body, status=status, content_type=content_type)


def _field(form: Any, name: str) -> str:
    value = form.get(name, "")
    return value.strip() if isinstance(value, str) else ""


def _parse_params(raw: str) -> dict[str, Any]:
    if not raw:
        return {}
    params = json.loads(raw)
    if not isinstance(params, dict):
        msg = "params must be a JSON object"
        raise ValueError(msg)
    return params


class LiveEndpoints:
    """Request handlers bound to one :class:`~whisker.app.Whisker`.

    Args:
        whisker: The live application whose subsystems serve the requests.

    """

    def __init__(self, whisker: Whisker) -> None:
        self._whisker = whisker

    def register_routes(self, app: App) -> None:
        """Add the live routes to a Chirp app (must not yet be frozen)."""
        endpoint = self._whisker.config.endpoint
        app.route(endpoint("events"), name="whisker:events")(self.events)
        app.route(endpoint("register"), methods=["POST"], name="whisker:register")(
            self.register
        )
        app.route(endpoint("deregister"), methods=["POST"], name="whisker:deregister")(
            self.deregister
        )
        app.route(endpoint("action"), methods=["POST"], name="whisker:action")(self.action)
        app.route(endpoint("stats"), name="whisker:stats")(self.stats)

    async def events(self, request: Request) -> Any:
        """Open an SSE connection for one browser tab."""
        from chirp import EventStream

        hub = self._whisker.hub
        subscriptions = self._whisker.subscriptions
        conn = hub.open()

        async def generate():  # type: ignore[return]
            try:
                async for event in hub.client_generator(conn):
                    yield event
            finally:
                hub.close(conn.connection_id)
                subscriptions.disconnect(conn.connection_id)

        return EventStream(generate())

    async def register(self, request: Request) -> Any:
        """Register a mounted instance against the caller's connection.

        204 on success, 404 when the resource is gone, 400 otherwise.
        """
        form = await request.form()
        connection = self._whisker.hub.get(_field(form, "connection"))
        if connection is None:
            return _response("Unknown connection", status=400)

        registration = Registration(
            instance_id=_field(form, "instance"),
            component_type=_field(form, "component"),
            resource_identity=_field(form, "resource"),
            viewer=self._whisker.resolve_viewer(request),
        )
        try:
            # Loading the resource can block; keep it off the event loop.
            await asyncio.to_thread(self._whisker.subscriptions.register, registration, connection)
        except NotFound as exc:
            return _response(str(exc), status=404)
        except RegistrationError as exc:
            return _response(str(exc), status=400)
        return _response(status=204)

    async def deregister(self, request: Request) -> Any:
        """Deregister an instance.  Unknown ids are not an error."""
        form = await request.form()
        instance_id = _field(form, "instance")
        if instance_id:
            instance = self._whisker.registry.get(instance_id)
            viewer = self._whisker.resolve_viewer(request)
            if instance is None or instance.viewer.user == viewer.user:
                self._whisker.subscriptions.deregister(instance_id)
        return _response(status=204)

    async def action(self, request: Request) -> Any:
        """Run an action and answer with the acting instance's new fragment."""
        form = await request.form()
        instance_id = _field(form, "instance")
        action_name = _field(form, "action")
        try:
            params = _parse_params(_field(form, "params"))
        except ValueError as exc:
            return _response(f"Invalid params: {exc}", status=400)

        viewer = self._whisker.resolve_viewer(request)
        try:
            result = await asyncio.to_thread(
                self._whisker.handle_action, instance_id, action_name, params, viewer=viewer,
            )
        except InstanceNotFound as exc:
            return _response(str(exc), status=410)
        except UnknownAction as exc:
            return _response(str(exc), status=400)
        except NotFound as exc:
            return _response(str(exc), status=404)
        except HandlerError as exc:
            return _response(exc.fragment, status=500, content_type=_HTML)

        if result.removed:
            return _response(status=204)
        return _response(result.html, content_type=_HTML)

    async def stats(self, request: Request) -> Any:
        """Aggregate telemetry plus live counters."""
        from whisker.observability.stats import compute_aggregate_stats

        whisker = self._whisker
        payload = json.dumps(
            {
                "live": {
                    "connections": whisker.hub.connection_count,
                    "instances": len(whisker.registry),
                    "subscriptions": whisker.registry.subscriber_count,
                    "subscribed_resources": len(whisker.registry.subscribed_identities()),
                    "pending_mounts": whisker.subscriptions.pending_count,
                    "pending_dispatches": whisker.notifier.pending_count,
                },
                "telemetry": compute_aggregate_stats(whisker.collector.log),
                "event_log": whisker.collector.log.stats(),
            },
            indent=2,
        )
        return _response(payload, content_type=_JSON)

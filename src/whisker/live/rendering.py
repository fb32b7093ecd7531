"""Component rendering through Kida.

Renders a component instance's template with the context its component
type builds from ``(resource, viewer, local_state)`` and wraps the result
in a root element the client script can find and swap by id.
"""

from __future__ import annotations

import html
from typing import TYPE_CHECKING, Any

from whisker._errors import RenderError

if TYPE_CHECKING:
    from pathlib import Path

    from whisker.live.component import Component
    from whisker.live.instance import ComponentInstance


def create_environment(template_dirs: list[Path], *, debug: bool = False) -> Any:
    """Create the Kida environment used for component templates."""
    from kida import Environment, FileSystemLoader

    return Environment(
        loader=FileSystemLoader(template_dirs),
        autoescape=True,
        auto_reload=debug,
    )


def wrap_fragment(instance: ComponentInstance, inner: str) -> str:
    """Wrap rendered component HTML in its addressable root element."""
    attrs = {
        "id": instance.dom_id,
        "data-whisker-instance": instance.instance_id,
        "data-whisker-component": instance.component_type,
        "data-whisker-resource": str(instance.resource_identity),
    }
    rendered = " ".join(f'{k}="{html.escape(v, quote=True)}"' for k, v in attrs.items())
    return f"<div {rendered}>{inner}</div>"


class ComponentRenderer:
    """Renders component instances to HTML fragments.

    Args:
        env: Kida ``Environment`` that resolves component templates.

    """

    def __init__(self, env: Any) -> None:
        self._env = env

    @property
    def env(self) -> Any:
        return self._env

    def render(self, component: Component, instance: ComponentInstance, resource: Any) -> str:
        """Render *instance* against *resource*.

        The instance lock is held while local state is read so a concurrent
        action on the same instance can't interleave with the render.

        Raises:
            RenderError: If building the context or rendering the template fails.

        """
        with instance.lock:
            state = instance.state.as_dict()
            try:
                context = component.context(resource, instance.viewer, state)
                context.setdefault("resource", resource)
                context.setdefault("viewer", instance.viewer)
                context.setdefault("state", state)
                context.setdefault("instance_id", instance.instance_id)
                context.setdefault("dom_id", instance.dom_id)
                template = self._env.get_template(component.template)
                inner = template.render(**context)
            except Exception as exc:
                msg = (
                    f"{instance.component_type} failed to render "
                    f"{instance.resource_identity}: {exc}"
                )
                raise RenderError(msg) from exc
        return wrap_fragment(instance, inner)

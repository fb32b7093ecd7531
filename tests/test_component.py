"""Tests for whisker.live.component and whisker.live.rendering."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest

from helpers import TEMPLATES, PersonCard, Person, StubEnv, TeamBadge
from whisker._errors import RenderError
from whisker.live.component import ActionContext, Component, ComponentCatalog, action
from whisker.live.identity import ResourceIdentity
from whisker.live.instance import ComponentInstance, LocalState, ViewerContext
from whisker.live.rendering import ComponentRenderer, create_environment, wrap_fragment


def _instance(component: type[Component] = PersonCard, key: str = "1") -> ComponentInstance:
    return ComponentInstance(
        instance_id="abc123",
        component_type=component.name,
        resource_identity=ResourceIdentity(component.resource_type or "Person", key),
        viewer=ViewerContext(user="Bob"),
        state=LocalState(component.state),
        status="active",
    )


class TestActionDecorator:
    """@action — collects public action names across the MRO."""

    def test_bare_and_named(self) -> None:
        assert PersonCard.actions["poke"] == "poke"
        assert PersonCard.actions["set-draft"] == "set_draft"

    def test_undecorated_methods_hidden(self) -> None:
        assert "not_an_action" not in PersonCard.actions
        assert "context" not in PersonCard.actions
        assert PersonCard().handler("not_an_action") is None

    def test_inherited_actions(self) -> None:
        class FancyCard(PersonCard):
            @action
            def sparkle(self, ctx: Any) -> None:
                pass

        assert {"poke", "sparkle"} <= set(FancyCard.actions)
        assert "sparkle" not in PersonCard.actions

    def test_handler_is_bound(self) -> None:
        handler = PersonCard().handler("toggle")
        assert handler is not None
        assert handler.__self__.__class__ is PersonCard  # type: ignore[attr-defined]

    def test_name_defaults_to_class_name(self) -> None:
        assert PersonCard.name == "PersonCard"

    def test_explicit_name_kept(self) -> None:
        class Card(Component):
            name = "card"
            template = "x.html"

        assert Card.name == "card"


class TestAccepts:
    def test_bound_type(self) -> None:
        assert PersonCard().accepts(ResourceIdentity("Person", "1"))
        assert not PersonCard().accepts(ResourceIdentity("Team", "red"))

    def test_any_type(self) -> None:
        class Anything(Component):
            template = "x.html"

        assert Anything().accepts(ResourceIdentity("Team", "red"))


class TestComponentCatalog:
    """ComponentCatalog — one shared definition per type."""

    def test_register_as_decorator(self) -> None:
        catalog = ComponentCatalog()
        assert catalog.register(PersonCard) is PersonCard
        assert "PersonCard" in catalog
        assert isinstance(catalog.get("PersonCard"), PersonCard)
        assert catalog.names() == frozenset({"PersonCard"})

    def test_rejects_non_component(self) -> None:
        with pytest.raises(TypeError):
            ComponentCatalog().register(object)  # type: ignore[arg-type]

    def test_rejects_missing_template(self) -> None:
        class NoTemplate(Component):
            pass

        with pytest.raises(TypeError, match="template"):
            ComponentCatalog().register(NoTemplate)

    def test_unknown_is_none(self) -> None:
        assert ComponentCatalog().get("Nope") is None


class TestActionContext:
    """ActionContext — change reporting from handlers."""

    def _ctx(self, notified: list[tuple[Any, tuple[Any, ...]]]) -> ActionContext:
        return ActionContext(
            instance=_instance(),
            resource=Person(1, "Susan", team="red"),
            viewer=ViewerContext(user="Bob"),
            state=LocalState({}),
            params={},
            _notify=lambda identity, also=(): notified.append((identity, also)),
            _cascade=lambda r: (ResourceIdentity("Person", r.id), ResourceIdentity("Team", r.team)),
        )

    def test_notify_changed_records(self) -> None:
        calls: list[tuple[Any, tuple[Any, ...]]] = []
        ctx = self._ctx(calls)
        ctx.notify_changed(Person(2, "Bob"))
        assert calls == [(ResourceIdentity("Person", "2"), ())]
        assert ctx.notified == [ResourceIdentity("Person", "2")]

    def test_changed_uses_cascade(self) -> None:
        calls: list[tuple[Any, tuple[Any, ...]]] = []
        ctx = self._ctx(calls)
        ctx.changed(ctx.resource)
        assert ctx.notified == [ResourceIdentity("Person", "1"), ResourceIdentity("Team", "red")]

    def test_notified_deduplicated(self) -> None:
        ctx = self._ctx([])
        ctx.notify_changed(ResourceIdentity("Person", "1"))
        ctx.notify_changed(ResourceIdentity("Person", "1"))
        assert len(ctx.notified) == 1


class TestWrapFragment:
    def test_root_attributes(self) -> None:
        html = wrap_fragment(_instance(), "<p>hi</p>")
        assert html.startswith('<div id="whisker-abc123"')
        assert 'data-whisker-instance="abc123"' in html
        assert 'data-whisker-component="PersonCard"' in html
        assert 'data-whisker-resource="Person:1"' in html
        assert html.endswith("<p>hi</p></div>")

    def test_attributes_escaped(self) -> None:
        instance = _instance()
        instance.resource_identity = ResourceIdentity("Person", '"><script>')
        assert "<script>" not in wrap_fragment(instance, "")


class TestComponentRenderer:
    """ComponentRenderer — context, wrapping and failure handling."""

    def test_render_uses_context(self) -> None:
        renderer = ComponentRenderer(StubEnv(TEMPLATES))
        html = renderer.render(PersonCard(), _instance(), Person(1, "Susan"))
        assert "<h3>Susan</h3>" in html
        assert "data-whisker-action=poke" in html

    def test_default_context(self) -> None:
        seen: dict[str, Any] = {}
        env = StubEnv({"team_badge.html": lambda ctx: seen.update(ctx) or ""})
        instance = _instance(TeamBadge, "red")
        ComponentRenderer(env).render(TeamBadge(), instance, object())
        assert {"resource", "viewer", "state", "instance_id", "dom_id"} <= set(seen)
        assert seen["instance_id"] == "abc123"

    def test_failure_wrapped(self) -> None:
        env = StubEnv(TEMPLATES)
        with pytest.raises(RenderError, match="PersonCard failed to render Person:1"):
            ComponentRenderer(env).render(PersonCard(), _instance(), None)

    def test_missing_template_wrapped(self) -> None:
        with pytest.raises(RenderError):
            ComponentRenderer(StubEnv({})).render(PersonCard(), _instance(), Person(1, "S"))


class TestKidaEnvironment:
    """create_environment — real Kida templates from disk."""

    def test_renders_and_escapes(self, tmp_path: Path) -> None:
        (tmp_path / "person_card.html").write_text("<h3>{{ person.name }}</h3>")
        renderer = ComponentRenderer(create_environment([tmp_path]))
        html = renderer.render(PersonCard(), _instance(), Person(1, "<Susan>"))
        assert "&lt;Susan&gt;" in html
        assert 'id="whisker-abc123"' in html

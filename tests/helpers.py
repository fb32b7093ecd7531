"""Shared test domain and helpers: people who poke each other, in teams."""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from whisker.app import Whisker
from whisker.config import WhiskerConfig
from whisker.live.component import Component, action
from whisker.live.connections import Connection, Push
from whisker.live.identity import ResourceIdentity
from whisker.live.instance import ComponentInstance, StateField, ViewerContext
from whisker.live.subscriptions import Registration


# ---------------------------------------------------------------------------
# Domain: people who poke each other, grouped in teams
# ---------------------------------------------------------------------------


@dataclass
class Person:
    id: int
    name: str
    team: str | None = None
    pokes: list[str] = field(default_factory=list)

    def poked_by(self, user: str) -> None:
        self.pokes.append(user)


@dataclass
class Team:
    __resource_key__ = "slug"

    slug: str
    members: tuple[str, ...] = ()


class PeopleStore:
    """In-memory resource store shared by request and dispatch threads."""

    def __init__(self) -> None:
        self._people: dict[str, Person] = {}
        self._lock = threading.Lock()

    def add(self, person: Person) -> Person:
        with self._lock:
            self._people[str(person.id)] = person
        return person

    def get(self, key: str) -> Person | None:
        with self._lock:
            return self._people.get(key)

    def delete(self, key: str) -> None:
        with self._lock:
            self._people.pop(key, None)

    def team(self, slug: str) -> Team | None:
        with self._lock:
            members = tuple(sorted(p.name for p in self._people.values() if p.team == slug))
        return Team(slug=slug, members=members) if members else None

    def teams_of(self, person: Person) -> list[ResourceIdentity]:
        return [ResourceIdentity("Team", person.team)] if person.team else []


# ---------------------------------------------------------------------------
# Templates: a stand-in for a Kida environment
# ---------------------------------------------------------------------------


class StubTemplate:
    def __init__(self, fn: Callable[[dict[str, Any]], str]) -> None:
        self._fn = fn

    def render(self, **context: Any) -> str:
        return self._fn(context)


class StubEnv:
    """Minimal ``get_template``/``render`` environment for unit tests."""

    def __init__(self, templates: dict[str, Callable[[dict[str, Any]], str]]) -> None:
        self.templates = dict(templates)
        self.renders = 0

    def get_template(self, name: str) -> StubTemplate:
        fn = self.templates[name]

        def counted(context: dict[str, Any]) -> str:
            self.renders += 1
            return fn(context)

        return StubTemplate(counted)


def _person_card(ctx: dict[str, Any]) -> str:
    person = ctx["person"]
    parts = [f"<h3>{person.name}</h3>", f"<span class=pokes>{len(person.pokes)}</span>"]
    if ctx["can_poke"]:
        parts.append("<button data-whisker-action=poke>Poke</button>")
    if ctx["state"]["expanded"]:
        parts.append("<p class=expanded>details</p>")
    if ctx["state"]["draft"]:
        parts.append(f"<q>{ctx['state']['draft']}</q>")
    return "".join(parts)


def _team_badge(ctx: dict[str, Any]) -> str:
    team = ctx["resource"]
    return f"<b>{team.slug}: {', '.join(team.members)}</b>"


def _broken(ctx: dict[str, Any]) -> str:
    msg = "template exploded"
    raise RuntimeError(msg)


TEMPLATES: dict[str, Callable[[dict[str, Any]], str]] = {
    "person_card.html": _person_card,
    "team_badge.html": _team_badge,
    "broken.html": _broken,
}


# ---------------------------------------------------------------------------
# Components
# ---------------------------------------------------------------------------


class PersonCard(Component):
    template = "person_card.html"
    resource_type = "Person"
    state = {
        "expanded": StateField(False, redraw=True),
        "draft": StateField(""),
    }

    def context(self, resource: Any, viewer: ViewerContext, state: Any) -> dict[str, Any]:
        return {
            "person": resource,
            "can_poke": (
                viewer.user is not None
                and viewer.user != resource.name
                and viewer.user not in resource.pokes
            ),
        }

    @action
    def poke(self, ctx: Any) -> None:
        ctx.resource.poked_by(ctx.viewer.user)
        ctx.changed(ctx.resource)

    @action
    def toggle(self, ctx: Any) -> None:
        ctx.state["expanded"] = not ctx.state["expanded"]

    @action(name="set-draft")
    def set_draft(self, ctx: Any) -> None:
        ctx.state["draft"] = ctx.params.get("text", "")

    @action
    def explode(self, ctx: Any) -> None:
        ctx.state["expanded"] = True
        msg = "handler blew up"
        raise ValueError(msg)

    @action
    def rename(self, ctx: Any) -> None:
        ctx.resource.name = ctx.params["name"]
        ctx.notify_changed(ctx.resource)

    def not_an_action(self, ctx: Any) -> None:
        raise AssertionError("must not be reachable")


class TeamBadge(Component):
    template = "team_badge.html"
    resource_type = "Team"


class BrokenCard(Component):
    template = "broken.html"
    resource_type = "Person"


# ---------------------------------------------------------------------------
# Wiring and helpers
# ---------------------------------------------------------------------------


def build_whisker(
    root: Path,
    store: PeopleStore,
    env: Any,
    *,
    viewer_resolver: Callable[[Any], Any] | None = None,
    **overrides: Any,
) -> Whisker:
    live = Whisker(
        config=WhiskerConfig(root=root, **overrides),
        env=env,
        viewer_resolver=viewer_resolver,
    )
    live.resource("Person", load=store.get, touches=store.teams_of)
    live.resource("Team", load=store.team)
    live.component(PersonCard)
    live.component(TeamBadge)
    live.component(BrokenCard)
    return live


def viewer(user: str | None) -> ViewerContext:
    return ViewerContext(user=user)


def connect(
    live: Whisker,
    component_type: str,
    resource: Any,
    user: str | None = None,
    *,
    connection: Connection | None = None,
) -> tuple[ComponentInstance, Connection]:
    """Mount, then register the instance the way a browser tab would."""
    conn = connection or live.hub.open()
    mounted = live.mount(component_type, resource, viewer(user))
    instance = live.subscriptions.register(
        Registration(
            instance_id=mounted.instance_id,
            component_type=component_type,
            resource_identity=str(mounted.resource_identity),
            viewer=viewer(user),
        ),
        conn,
    )
    return instance, conn


def drain(conn: Connection) -> list[Push]:
    """Every frame queued on a connection so far (close markers skipped)."""
    items: list[Push] = []
    while not conn.queue.empty():
        item = conn.queue.get_nowait()
        if isinstance(item, Push):
            items.append(item)
    return items

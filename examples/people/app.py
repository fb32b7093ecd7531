"""People demo: poke cards that stay live across browser tabs.

Run from this directory::

    whisker dev app:app

Open http://127.0.0.1:3000/?as=Bob and http://127.0.0.1:3000/?as=Susan side
by side.  A poke in one tab shows up in the other.
"""

import threading
from dataclasses import dataclass, field

from chirp import Template

from whisker import Component, ResourceIdentity, StateField, Whisker, action, create_app


@dataclass
class Person:
    id: int
    name: str
    team: str
    pokes: list[str] = field(default_factory=list)


@dataclass
class Team:
    __resource_key__ = "slug"

    slug: str
    pokes: int = 0


_lock = threading.Lock()
PEOPLE = {
    "1": Person(1, "Susan", "red"),
    "2": Person(2, "Bob", "red"),
    "3": Person(3, "Carol", "blue"),
}


def load_person(key: str) -> Person | None:
    with _lock:
        return PEOPLE.get(key)


def load_team(slug: str) -> Team | None:
    with _lock:
        pokes = sum(len(p.pokes) for p in PEOPLE.values() if p.team == slug)
    return Team(slug, pokes)


def teams_of(person: Person) -> list[ResourceIdentity]:
    return [ResourceIdentity("Team", person.team)]


live = Whisker(".", viewer_resolver=lambda request: request.query.get("as"))
live.resource("Person", load=load_person, touches=teams_of)
live.resource("Team", load=load_team)


@live.component
class PersonCard(Component):
    template = "person_card.html"
    resource_type = "Person"
    state = {"expanded": StateField(False, redraw=True)}

    def context(self, resource, viewer, state):
        return {
            "person": resource,
            "can_poke": viewer.user not in (None, resource.name) and viewer.user not in resource.pokes,
        }

    @action
    def poke(self, ctx):
        with _lock:
            ctx.resource.pokes.append(ctx.viewer.user)
        ctx.changed(ctx.resource)

    @action
    def toggle(self, ctx):
        ctx.state["expanded"] = not ctx.state["expanded"]


@live.component
class TeamScore(Component):
    template = "team_score.html"
    resource_type = "Team"


app = create_app(live)


@app.route("/")
async def index(request):
    viewer = live.resolve_viewer(request)
    with _lock:
        people = list(PEOPLE.values())
    teams = sorted({p.team for p in people})
    return Template(
        "people.html",
        people=people,
        teams=[load_team(slug) for slug in teams],
        viewer=viewer,
    )

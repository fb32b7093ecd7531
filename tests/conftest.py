"""Shared test fixtures for whisker."""

from __future__ import annotations

from pathlib import Path

import pytest

from helpers import TEMPLATES, PeopleStore, Person, StubEnv, build_whisker


@pytest.fixture
def store() -> PeopleStore:
    people = PeopleStore()
    people.add(Person(1, "Susan", team="red"))
    people.add(Person(2, "Bob", team="red"))
    people.add(Person(3, "Carol"))
    return people


@pytest.fixture
def env() -> StubEnv:
    return StubEnv(TEMPLATES)


@pytest.fixture
def live(tmp_path: Path, store: PeopleStore, env: StubEnv):  # noqa: ANN201
    """A fully wired Whisker over the people store."""
    whisker = build_whisker(tmp_path, store, env)
    yield whisker
    whisker.close()

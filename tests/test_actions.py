"""Tests for whisker.live.actions — resolving and invoking actions."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest

from helpers import TEMPLATES, PeopleStore, PersonCard, StubEnv, build_whisker, connect, drain, viewer
from whisker._errors import HandlerError, InstanceNotFound, NotFound, UnknownAction
from whisker.app import Whisker
from whisker.live.component import action
from whisker.live.identity import ResourceIdentity
from whisker.observability import ActionEvent

SUSAN = ResourceIdentity("Person", "1")


def _outcomes(live: Whisker) -> list[str]:
    return [e.outcome for e in reversed(live.collector.log.query(event_type=ActionEvent))]


class TestResolve:
    """Unknown, retired and foreign instances are all InstanceNotFound."""

    def test_unknown_instance(self, live: Whisker) -> None:
        with pytest.raises(InstanceNotFound):
            live.handle_action("nope", "poke")
        assert _outcomes(live) == ["instance_not_found"]

    def test_retired_instance(self, live: Whisker, store: PeopleStore) -> None:
        view, _ = connect(live, "PersonCard", store.get("1"), "Bob")
        live.subscriptions.deregister(view.instance_id)
        with pytest.raises(InstanceNotFound):
            live.handle_action(view.instance_id, "toggle")

    def test_pending_instance(self, live: Whisker, store: PeopleStore) -> None:
        mounted = live.mount("PersonCard", store.get("1"), viewer("Bob"))
        with pytest.raises(InstanceNotFound):
            live.handle_action(mounted.instance_id, "toggle")

    def test_other_viewer(self, live: Whisker, store: PeopleStore) -> None:
        view, _ = connect(live, "PersonCard", store.get("1"), "Bob")
        with pytest.raises(InstanceNotFound):
            live.handle_action(view.instance_id, "poke", viewer=viewer("Mallory"))
        assert store.get("1").pokes == []


class TestUnknownAction:
    def test_unknown_name(self, live: Whisker, store: PeopleStore) -> None:
        view, _ = connect(live, "PersonCard", store.get("1"), "Bob")
        with pytest.raises(UnknownAction) as excinfo:
            live.handle_action(view.instance_id, "fly")
        assert excinfo.value.component_type == "PersonCard"
        assert _outcomes(live) == ["unknown_action"]

    def test_undecorated_method_unreachable(self, live: Whisker, store: PeopleStore) -> None:
        view, _ = connect(live, "PersonCard", store.get("1"), "Bob")
        with pytest.raises(UnknownAction):
            live.handle_action(view.instance_id, "not_an_action")


class TestSynchronousResponse:
    """The acting instance gets its new rendering back directly."""

    def test_toggle_redraws_self_only(self, live: Whisker, store: PeopleStore) -> None:
        view, conn = connect(live, "PersonCard", store.get("1"), "Bob")
        _other, other_conn = connect(live, "PersonCard", store.get("1"), "Ann")

        result = live.handle_action(view.instance_id, "toggle", viewer=viewer("Bob"))

        assert result.redraw is True
        assert result.notified == ()
        assert "class=expanded" in result.html
        assert f'id="{view.dom_id}"' in result.html
        live.notifier.flush(timeout=5)
        assert drain(conn) == []
        assert drain(other_conn) == []
        assert _outcomes(live) == ["ok"]

    def test_non_redraw_field(self, live: Whisker, store: PeopleStore) -> None:
        view, _ = connect(live, "PersonCard", store.get("1"), "Bob")
        result = live.handle_action(view.instance_id, "set-draft", {"text": "hello"})
        assert result.redraw is False
        assert "<q>hello</q>" in result.html
        assert view.state["draft"] == "hello"

    def test_params_reach_handler(self, live: Whisker, store: PeopleStore) -> None:
        view, _ = connect(live, "PersonCard", store.get("1"), "Bob")
        result = live.handle_action(view.instance_id, "rename", {"name": "Suzie"})
        assert "<h3>Suzie</h3>" in result.html
        assert result.notified == (SUSAN,)


class TestBroadcastOnMutation:
    """Resource mutations reach every subscriber through the notifier."""

    def test_poke_between_viewers(self, live: Whisker, store: PeopleStore) -> None:
        """Bob pokes Susan; Susan's own card and Ann's view update too."""
        bobs_view, bob_conn = connect(live, "PersonCard", store.get("1"), "Bob")
        _susans_view, susan_conn = connect(live, "PersonCard", store.get("1"), "Susan")
        _anns_view, ann_conn = connect(live, "PersonCard", store.get("1"), "Ann")
        _badge, badge_conn = connect(live, "TeamBadge", store.team("red"), "Ann")

        result = live.handle_action(bobs_view.instance_id, "poke", viewer=viewer("Bob"))

        assert "<span class=pokes>1</span>" in result.html
        assert result.redraw is True
        assert result.notified == (SUSAN, ResourceIdentity("Team", "red"))

        assert live.notifier.flush(timeout=5)
        for conn in (susan_conn, ann_conn, bob_conn):
            (push,) = drain(conn)
            assert "<span class=pokes>1</span>" in push.data
        assert len(drain(badge_conn)) == 1
        assert store.get("1").pokes == ["Bob"]

    def test_poke_is_rate_limited_per_viewer(self, live: Whisker, store: PeopleStore) -> None:
        """Bob loses his poke button after poking; Ann keeps hers."""
        bobs_view, bob_conn = connect(live, "PersonCard", store.get("1"), "Bob")
        _anns_view, ann_conn = connect(live, "PersonCard", store.get("1"), "Ann")

        result = live.handle_action(bobs_view.instance_id, "poke", viewer=viewer("Bob"))

        assert "data-whisker-action=poke" not in result.html
        assert live.notifier.flush(timeout=5)
        assert "data-whisker-action=poke" not in drain(bob_conn)[0].data
        assert "data-whisker-action=poke" in drain(ann_conn)[0].data


class TestHandlerFailure:
    """A raising handler degrades only its own component."""

    def test_degraded_fragment(self, live: Whisker, store: PeopleStore) -> None:
        view, _ = connect(live, "PersonCard", store.get("1"), "Bob")

        with pytest.raises(HandlerError) as excinfo:
            live.handle_action(view.instance_id, "explode")

        fragment = excinfo.value.fragment
        assert f'id="{view.dom_id}"' in fragment
        assert "whisker-error" in fragment
        assert "handler blew up" not in fragment
        assert not view.state.needs_redraw
        # The instance is still live and can be acted on again.
        assert view.is_active
        assert live.handle_action(view.instance_id, "set-draft", {"text": "ok"}).html
        assert _outcomes(live) == ["handler_error", "ok"]

    def test_debug_shows_details(self, tmp_path: Path, store: PeopleStore) -> None:
        live = build_whisker(tmp_path, store, StubEnv(TEMPLATES), debug=True)
        try:
            view, _ = connect(live, "PersonCard", store.get("1"), "Bob")
            with pytest.raises(HandlerError) as excinfo:
                live.handle_action(view.instance_id, "explode")
            assert "ValueError: handler blew up" in excinfo.value.fragment
        finally:
            live.close()

    def test_load_failure_before_handler(self, live: Whisker, store: PeopleStore) -> None:
        view, _ = connect(live, "PersonCard", store.get("1"), "Bob")

        def failing_load(key: str) -> Any:
            raise ConnectionError("database unreachable")

        live.resource("Person", load=failing_load)

        with pytest.raises(HandlerError) as excinfo:
            live.handle_action(view.instance_id, "toggle")

        assert f'id="{view.dom_id}"' in excinfo.value.fragment
        assert "database unreachable" not in excinfo.value.fragment
        assert view.is_active
        assert _outcomes(live) == ["handler_error"]

    def test_render_failure_after_handler(self, live: Whisker, store: PeopleStore, env: StubEnv) -> None:
        view, _ = connect(live, "PersonCard", store.get("1"), "Bob")

        def broken(ctx: dict[str, Any]) -> str:
            raise RuntimeError("template exploded")

        env.templates["person_card.html"] = broken
        with pytest.raises(HandlerError):
            live.handle_action(view.instance_id, "toggle")


class TestMissingResource:
    def test_deleted_before_action(self, live: Whisker, store: PeopleStore) -> None:
        view, _ = connect(live, "PersonCard", store.get("1"), "Bob")
        store.delete("1")
        with pytest.raises(NotFound):
            live.handle_action(view.instance_id, "toggle")
        assert _outcomes(live) == ["not_found"]

    def test_deleted_by_handler(self, live: Whisker, store: PeopleStore) -> None:
        class DeletableCard(PersonCard):
            name = "DeletableCard"

            @action
            def delete(self, ctx: Any) -> None:
                store.delete(ctx.instance.resource_identity.key)
                ctx.notify_changed(ctx.instance.resource_identity)

        live.component(DeletableCard)
        view, _ = connect(live, "DeletableCard", store.get("1"), "Bob")
        _other, other_conn = connect(live, "PersonCard", store.get("1"), "Ann")

        result = live.handle_action(view.instance_id, "delete")

        assert result.removed is True
        assert result.html == ""
        assert not view.is_active
        live.notifier.flush(timeout=5)
        assert drain(other_conn)[0].event == "whisker:removed"

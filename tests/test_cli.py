"""Tests for whisker._cli — argument parsing and command dispatch."""

from __future__ import annotations

import pytest

from whisker import _cli
from whisker._cli import _build_parser
from whisker._errors import ConfigError


class TestBuildParser:
    """_build_parser — CLI argument parsing."""

    def test_dev_default_args(self) -> None:
        parser = _build_parser()
        args = parser.parse_args(["dev", "app:live"])
        assert args.command == "dev"
        assert args.target == "app:live"
        assert args.host is None
        assert args.port is None

    def test_dev_with_host_and_port(self) -> None:
        parser = _build_parser()
        args = parser.parse_args(["dev", "app:live", "--host", "0.0.0.0", "--port", "9000"])
        assert args.host == "0.0.0.0"
        assert args.port == 9000

    def test_serve_default_args(self) -> None:
        parser = _build_parser()
        args = parser.parse_args(["serve", "app:app"])
        assert args.command == "serve"
        assert args.target == "app:app"
        assert args.workers is None

    def test_serve_with_workers(self) -> None:
        parser = _build_parser()
        args = parser.parse_args(["serve", "app:app", "--workers", "4"])
        assert args.workers == 4

    def test_target_is_required(self) -> None:
        parser = _build_parser()
        with pytest.raises(SystemExit):
            parser.parse_args(["dev"])

    def test_no_command_returns_none(self) -> None:
        parser = _build_parser()
        args = parser.parse_args([])
        assert args.command is None

    def test_version_flag(self, capsys: pytest.CaptureFixture[str]) -> None:
        parser = _build_parser()
        with pytest.raises(SystemExit) as exc_info:
            parser.parse_args(["--version"])
        assert exc_info.value.code == 0
        assert "whisker 0.1.0" in capsys.readouterr().out


class TestMain:
    """main — dispatch to dev/serve and error reporting."""

    def test_no_command_prints_help(self, capsys: pytest.CaptureFixture[str]) -> None:
        with pytest.raises(SystemExit) as exc_info:
            _cli.main([])
        assert exc_info.value.code == 0
        assert "usage: whisker" in capsys.readouterr().out

    def test_dev_dispatch(self, monkeypatch: pytest.MonkeyPatch) -> None:
        calls: list[tuple] = []
        monkeypatch.setattr(
            "whisker.app.dev",
            lambda target, **kwargs: calls.append((target, kwargs)),
        )

        _cli.main(["dev", "app:live", "--port", "4000"])

        assert calls == [("app:live", {"host": None, "port": 4000})]

    def test_serve_dispatch(self, monkeypatch: pytest.MonkeyPatch) -> None:
        calls: list[tuple] = []
        monkeypatch.setattr(
            "whisker.app.serve",
            lambda target, **kwargs: calls.append((target, kwargs)),
        )

        _cli.main(["serve", "app:app", "--workers", "2"])

        assert calls == [("app:app", {"host": None, "port": None, "workers": 2})]

    def test_whisker_error_exits_one(
        self, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str],
    ) -> None:
        def fail(target: str, **kwargs: object) -> None:
            msg = f"Cannot import {target!r}"
            raise ConfigError(msg)

        monkeypatch.setattr("whisker.app.dev", fail)

        with pytest.raises(SystemExit) as exc_info:
            _cli.main(["dev", "missing:live"])

        assert exc_info.value.code == 1
        assert "Error: Cannot import 'missing'" in capsys.readouterr().err

"""Startup banner — mode-aware status output.

Prints a branded startup banner with timing and the live layer's shape.
Detects ``NO_COLOR`` / ``TERM`` for safe fallback.
"""

from __future__ import annotations

import os
import sys
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from whisker._types import WhiskerMode
    from whisker.app import Whisker


# ---------------------------------------------------------------------------
# ANSI helpers — respect NO_COLOR (https://no-color.org)
# ---------------------------------------------------------------------------

def _supports_color() -> bool:
    """Return True if the terminal supports ANSI colors."""
    if os.environ.get("NO_COLOR"):
        return False
    if os.environ.get("TERM") == "dumb":
        return False
    return hasattr(sys.stderr, "isatty") and sys.stderr.isatty()


_COLOR = _supports_color()

_RESET = "\033[0m" if _COLOR else ""
_BOLD = "\033[1m" if _COLOR else ""
_DIM = "\033[2m" if _COLOR else ""
_CYAN = "\033[36m" if _COLOR else ""
_GREEN = "\033[32m" if _COLOR else ""
_YELLOW = "\033[33m" if _COLOR else ""
_ORANGE = "\033[38;5;214m" if _COLOR else ""

_MODE_STYLES: dict[str, tuple[str, str]] = {
    "dev": (_GREEN, "dev"),
    "serve": (_CYAN, "serve"),
}


def _mode_badge(mode: str) -> str:
    color, label = _MODE_STYLES.get(mode, (_DIM, mode))
    return f"{color}[{label}]{_RESET}"


def _clickable_url(url: str) -> str:
    """Wrap *url* in an OSC 8 hyperlink escape if the terminal supports it."""
    if not _COLOR:
        return url
    return f"\033]8;;{url}\033\\{_BOLD}{_CYAN}{url}{_RESET}\033]8;;\033\\"


def _plural(count: int, word: str) -> str:
    return f"{count} {word}" if count == 1 else f"{count} {word}s"


def print_banner(
    whisker: Whisker,
    mode: WhiskerMode,
    *,
    load_ms: float = 0.0,
    warnings: list[str] | None = None,
) -> None:
    """Print the Whisker startup banner to stderr.

    Args:
        whisker: The live layer being served.
        mode: ``"dev"`` or ``"serve"``.
        load_ms: Time spent importing and wiring the app.
        warnings: Optional warning lines.

    """
    from whisker import __version__

    config = whisker.config
    cat = "\u14DA\u1618\u14E2"  # ᓚᘏᗢ
    header = (
        f"  {_ORANGE}{_BOLD}{cat}{_RESET}  Whisker {_DIM}v{__version__}{_RESET}  "
        f"{_mode_badge(mode)}"
    )

    timing = f" {_DIM}in {load_ms:.0f}ms{_RESET}" if load_ms > 0 else ""
    lines: list[str] = [
        "",
        header,
        f"  {_DIM}{'─' * 43}{_RESET}",
        f"  {_DIM}├─{_RESET} {_plural(len(whisker.components), 'component')}, "
        f"{_plural(len(whisker.resources), 'resource type')}{timing}",
        f"  {_DIM}├─{_RESET} templates: {_DIM}{config.templates_path}{_RESET}",
        f"  {_DIM}├─{_RESET} {_GREEN}live{_RESET} "
        f"SSE on {_DIM}{config.endpoint('events')}{_RESET}, "
        f"{_plural(config.dispatch_shards, 'dispatch shard')}",
    ]

    if mode == "serve":
        workers_label = str(config.workers) if config.workers > 0 else "auto"
        lines.append(f"  {_DIM}├─{_RESET} workers: {workers_label}")

    url = f"http://{config.host}:{config.port}"
    lines.append("")
    lines.append(f"  {_clickable_url(url)}")

    if warnings:
        lines.append("")
        lines.extend(f"  {_YELLOW}!{_RESET} {w}" for w in warnings)

    lines.append("")

    print("\n".join(lines), file=sys.stderr)

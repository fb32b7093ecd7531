"""Error views — degraded fragments, SSE error payloads and a debug overlay.

Provides three mechanisms:
1. ``render_degraded`` — an error-safe stand-in for a component whose action
   failed.  It keeps the component's DOM id so the client swaps it in place
   and the rest of the page keeps working.
2. ``format_error_payload`` — an exception as a JSON payload for
   ``whisker:error`` SSE events.
3. ``error_overlay_middleware`` — Chirp middleware that renders unexpected
   exceptions as a styled page instead of a bare 500 (debug only).
"""

from __future__ import annotations

import html
import json
import traceback
from typing import TYPE_CHECKING

from whisker.live.rendering import wrap_fragment

if TYPE_CHECKING:
    from chirp.http.request import Request
    from chirp.http.response import Response, SSEResponse, StreamingResponse
    from chirp.middleware.protocol import Next

    from whisker.live.instance import ComponentInstance

    type AnyResponse = Response | StreamingResponse | SSEResponse


_DEGRADED = (
    '<div class="whisker-error" role="alert" data-whisker-error="{error_type}">'
    "<p>This section couldn't be updated.</p>"
    "{details}"
    '<button type="button" data-whisker-reload>Reload</button>'
    "</div>"
)

_ERROR_PAGE = """\
<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="UTF-8">
<title>Whisker — Error</title>
<style>
body{{margin:0;font-family:ui-monospace,SFMono-Regular,Menlo,Consolas,monospace;
  background:#1a1a1a;color:#e0e0e0;line-height:1.6}}
.overlay{{max-width:860px;margin:2rem auto;padding:0 1.5rem}}
.error-header{{background:#2d1010;border:1px solid #e74c3c;border-radius:8px;
  padding:1.25rem 1.5rem;margin-bottom:1.5rem}}
.error-header h1{{margin:0;font-size:1rem;color:#e74c3c}}
.error-header .message{{margin:0.5rem 0 0;color:#f0a0a0;word-break:break-word}}
.trace{{background:#1e1e1e;border:1px solid #3a3a3a;border-radius:8px;
  padding:1rem 1.25rem;font-size:0.8rem;overflow-x:auto;white-space:pre;color:#9e9e9e}}
</style>
</head>
<body>
<div class="overlay">
  <div class="error-header">
    <h1>{error_type}</h1>
    <p class="message">{error_message}</p>
  </div>
  <div class="trace">{stack_trace}</div>
</div>
</body>
</html>
"""


def _root_cause(exc: BaseException) -> BaseException:
    while exc.__cause__ is not None:
        exc = exc.__cause__
    return exc


def render_degraded(instance: ComponentInstance, exc: BaseException, *, debug: bool = False) -> str:
    """Render the error-safe replacement for a failed component."""
    cause = _root_cause(exc)
    details = ""
    if debug:
        details = (
            f'<pre class="whisker-error-detail">'
            f"{html.escape(type(cause).__qualname__)}: {html.escape(str(cause))}"
            f"</pre>"
        )
    inner = _DEGRADED.format(
        error_type=html.escape(type(cause).__qualname__, quote=True),
        details=details,
    )
    return wrap_fragment(instance, inner)


def render_error_page(exc: BaseException) -> str:
    """Render a full HTML error page for the given exception."""
    return _ERROR_PAGE.format(
        error_type=html.escape(type(exc).__qualname__),
        error_message=html.escape(str(exc)),
        stack_trace=html.escape(
            "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        ),
    )


def format_error_payload(exc: BaseException, *, instance_id: str = "") -> str:
    """Format an exception as a JSON payload for ``whisker:error`` events."""
    cause = _root_cause(exc)
    return json.dumps({
        "type": type(cause).__qualname__,
        "message": str(cause),
        "instance": instance_id,
    })


async def error_overlay_middleware(request: Request, next: Next) -> AnyResponse:
    """Chirp middleware that catches exceptions and renders a styled error page."""
    try:
        return await next(request)
    except Exception as exc:
        from chirp.http.response import Response

        return Response(
            body=render_error_page(exc),
            status=500,
            content_type="text/html; charset=utf-8",
        )

"""Client script — browser glue injected into HTML responses.

The injected script:
1. Opens the SSE stream and learns its connection id (``whisker:connected``)
2. Registers every ``[data-whisker-instance]`` element on the page
3. Swaps ``fragment`` events into the DOM by element id
4. Removes components on ``whisker:removed`` and marks them stale on
   ``whisker:error``
5. Posts ``[data-whisker-action]`` clicks to the action endpoint and swaps
   the synchronous response; reloads on 410 (stale instance)
6. Deregisters its components when the tab goes away
"""

from __future__ import annotations

from dataclasses import replace
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from chirp.http.request import Request
    from chirp.http.response import Response, SSEResponse, StreamingResponse
    from chirp.middleware.protocol import Next

    type AnyResponse = Response | StreamingResponse | SSEResponse


# No framework dependency, just native EventSource and fetch.
_CLIENT_SCRIPT = """\
<script data-whisker-client>
(function() {
  var prefix = '__PREFIX__';
  var connId = null;
  var src = new EventSource(prefix + '/events');
  function post(path, fields) {
    var body = new FormData();
    for (var k in fields) body.append(k, fields[k]);
    return fetch(prefix + path, {method: 'POST', body: body, credentials: 'same-origin'});
  }
  function swap(html) {
    var tmp = document.createElement('div');
    tmp.innerHTML = html;
    var el = tmp.firstElementChild;
    if (el && el.id) {
      var target = document.getElementById(el.id);
      if (target) target.outerHTML = el.outerHTML;
    }
  }
  function register(el) {
    post('/register', {
      connection: connId,
      instance: el.dataset.whiskerInstance,
      component: el.dataset.whiskerComponent,
      resource: el.dataset.whiskerResource
    }).then(function(r) {
      if (r.status === 404) el.remove();
      else if (r.status >= 400) el.classList.add('whisker-stale');
    });
  }
  src.addEventListener('whisker:connected', function(e) {
    if (connId !== null && connId !== e.data) { location.reload(); return; }
    connId = e.data;
    document.querySelectorAll('[data-whisker-instance]').forEach(register);
  });
  src.addEventListener('fragment', function(e) { swap(e.data); });
  src.addEventListener('whisker:removed', function(e) {
    var el = document.querySelector('[data-whisker-instance="' + e.data + '"]');
    if (el) el.remove();
  });
  src.addEventListener('whisker:error', function(e) {
    try {
      var d = JSON.parse(e.data);
      var el = document.querySelector('[data-whisker-instance="' + d.instance + '"]');
      if (el) el.classList.add('whisker-stale');
    } catch (x) {}
  });
  document.addEventListener('click', function(e) {
    if (e.target.closest('[data-whisker-reload]')) { location.reload(); return; }
    var trigger = e.target.closest('[data-whisker-action]');
    if (!trigger) return;
    var root = trigger.closest('[data-whisker-instance]');
    if (!root) return;
    e.preventDefault();
    post('/action', {
      instance: root.dataset.whiskerInstance,
      action: trigger.dataset.whiskerAction,
      params: trigger.dataset.whiskerParams || '{}'
    }).then(function(r) {
      if (r.status === 410) { location.reload(); return null; }
      if (r.status === 204) { root.remove(); return null; }
      return r.text();
    }).then(function(html) { if (html) swap(html); });
  });
  window.addEventListener('pagehide', function() {
    document.querySelectorAll('[data-whisker-instance]').forEach(function(el) {
      var body = new FormData();
      body.append('instance', el.dataset.whiskerInstance);
      navigator.sendBeacon(prefix + '/deregister', body);
    });
  });
})();
</script>
"""


def client_script(prefix: str) -> str:
    """The client script bound to an endpoint prefix."""
    return _CLIENT_SCRIPT.replace("__PREFIX__", prefix)


def client_middleware(prefix: str):  # noqa: ANN201
    """Build Chirp middleware that injects the client script into HTML responses.

    Only modifies responses with ``text/html`` content type. Injects
    the script tag just before ``</body>`` (or ``</html>``).  Fragments and
    pages without live components are left untouched.

    """
    script = client_script(prefix)

    async def whisker_client_middleware(request: Request, next: Next) -> AnyResponse:
        response = await next(request)

        # Only inject into regular (non-streaming, non-SSE) HTML responses
        if not hasattr(response, "body") or not hasattr(response, "content_type"):
            return response
        if "text/html" not in response.content_type:
            return response

        body = response.body
        if isinstance(body, bytes):
            body = body.decode("utf-8")
        if "data-whisker-instance" not in body or "data-whisker-client" in body:
            return response

        # Fragments (action responses) have no document end and stay untouched.
        if "</body>" in body:
            body = body.replace("</body>", script + "</body>", 1)
        elif "</html>" in body:
            body = body.replace("</html>", script + "</html>", 1)
        else:
            return response

        return replace(response, body=body)

    return whisker_client_middleware

"""Change notifier — the entry point resource code calls after it mutates.

``notify_changed`` hands the fan-out to the dispatch shards and returns
immediately, so a request that just committed a change is never held up by
pushes to many viewers.  Each identity hashes to one single-thread shard:
passes for the same resource run in the order they were notified, passes
for different resources run in parallel.

Every call causes an attempted fan-out; rapid repeated notifications are
not coalesced.
"""

from __future__ import annotations

import asyncio
import sys
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import TYPE_CHECKING, Any

from whisker.live.identity import ResourceIdentity, identity_of

if TYPE_CHECKING:
    from collections.abc import Iterable

    from whisker.live.dispatcher import Dispatcher
    from whisker.live.identity import ResourceTypes


class ChangeNotifier:
    """Schedules fan-out passes off the caller's thread.

    Args:
        dispatcher: Performs the passes.
        resources: Resource catalog, used by ``changed`` for cascades.
        shards: Number of single-thread dispatch executors.

    """

    def __init__(self, dispatcher: Dispatcher, resources: ResourceTypes, *, shards: int = 4) -> None:
        self._dispatcher = dispatcher
        self._resources = resources
        self._shards = [
            ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"whisker-dispatch-{i}")
            for i in range(shards)
        ]
        self._pending: set[Future[Any]] = set()
        self._lock = threading.Lock()
        self._closed = False

    @property
    def pending_count(self) -> int:
        """Fan-out passes submitted but not yet finished."""
        with self._lock:
            return len(self._pending)

    def notify_changed(
        self,
        resource_identity: ResourceIdentity | Any,
        *,
        also: Iterable[ResourceIdentity | Any] = (),
    ) -> None:
        """Schedule a fan-out pass for a resource and its explicit cascade.

        *resource_identity* and the *also* entries may be identities or
        resource objects.  Never raises: a notification that can't be
        scheduled is logged and dropped (the missed-update window).

        """
        try:
            identities = [identity_of(resource_identity)]
            for item in also:
                identity = identity_of(item)
                if identity not in identities:
                    identities.append(identity)
        except (ValueError, TypeError) as exc:
            print(f"  Notify error: {exc}", file=sys.stderr)
            return

        for identity in identities:
            self._submit(identity)

    def changed(self, resource: Any) -> None:
        """Notify a mutated resource plus its type's declared ``touches``."""
        try:
            identities = self._resources.cascade(resource)
        except Exception as exc:
            print(f"  Notify error ({type(resource).__name__}): {exc}", file=sys.stderr)
            return
        self.notify_changed(identities[0], also=identities[1:])

    def _submit(self, identity: ResourceIdentity) -> None:
        shard = self._shards[hash(identity) % len(self._shards)]
        with self._lock:
            if self._closed:
                print(f"  Notify dropped ({identity}): notifier closed", file=sys.stderr)
                return
            try:
                future = shard.submit(self._run, identity)
            except RuntimeError as exc:
                print(f"  Notify dropped ({identity}): {exc}", file=sys.stderr)
                return
            self._pending.add(future)
        future.add_done_callback(self._done)

    def _run(self, identity: ResourceIdentity) -> None:
        try:
            self._dispatcher.dispatch(identity)
        except Exception as exc:
            print(f"  Dispatch error ({identity}): {exc}", file=sys.stderr)

    def _done(self, future: Future[Any]) -> None:
        with self._lock:
            self._pending.discard(future)

    def flush(self, timeout: float | None = None) -> bool:
        """Block until every submitted pass has finished.

        Returns:
            ``True`` if everything finished within *timeout*.

        """
        with self._lock:
            pending = set(self._pending)
        if not pending:
            return True
        _done, not_done = wait(pending, timeout=timeout)
        return not not_done

    async def drain(self) -> None:
        """Await every submitted pass from an event loop.

        Yields once more afterwards so pushes handed to this loop with
        ``call_soon_threadsafe`` have been applied when it returns.

        """
        while True:
            with self._lock:
                pending = list(self._pending)
            if not pending:
                break
            await asyncio.gather(*(asyncio.wrap_future(f) for f in pending))
        await asyncio.sleep(0)

    def close(self, *, wait_for_pending: bool = True) -> None:
        """Stop accepting notifications and shut the shards down."""
        with self._lock:
            self._closed = True
        for shard in self._shards:
            shard.shutdown(wait=wait_for_pending)

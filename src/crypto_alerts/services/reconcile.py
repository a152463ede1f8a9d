"""Optimistic render, then reconcile in the background.

A view is first built from fast (possibly stale) prices and returned at
once. A background task then rebuilds it from authoritative prices and
publishes the result, which replaces the shown content in place. If the user
has interacted again in the meantime, the late result is dropped.
"""
import asyncio
import logging
from collections import defaultdict
from collections.abc import Awaitable, Callable

from crypto_alerts.schemas import AlertsPageView, DeleteMenuView, ViewUpdate

logger = logging.getLogger(__name__)

View = AlertsPageView | DeleteMenuView
ViewPublisher = Callable[[ViewUpdate], Awaitable[None]]


class ViewHub:
    """In-process fan-out of reconciled views to per-user subscribers.

    Updates for users with no subscriber are dropped silently; a slow
    subscriber loses its oldest queued update rather than blocking others.
    """

    def __init__(self, max_queue: int = 16) -> None:
        self._max_queue = max_queue
        self._subscribers: dict[int, set[asyncio.Queue[ViewUpdate]]] = defaultdict(set)

    def subscribe(self, user_id: int) -> asyncio.Queue[ViewUpdate]:
        queue: asyncio.Queue[ViewUpdate] = asyncio.Queue(maxsize=self._max_queue)
        self._subscribers[user_id].add(queue)
        return queue

    def unsubscribe(self, user_id: int, queue: asyncio.Queue[ViewUpdate]) -> None:
        queues = self._subscribers.get(user_id)
        if queues is None:
            return
        queues.discard(queue)
        if not queues:
            del self._subscribers[user_id]

    def subscriber_count(self, user_id: int) -> int:
        return len(self._subscribers.get(user_id, ()))

    async def publish(self, update: ViewUpdate) -> None:
        for queue in list(self._subscribers.get(update.user_id, ())):
            if queue.full():
                queue.get_nowait()
            queue.put_nowait(update)


class ViewReconciler:
    """Runs the authoritative pass of each render and publishes it if still wanted.

    Each user has a generation counter. Starting a new render bumps it and
    cancels the previous, now superseded, reconcile task for that user.
    """

    def __init__(self, publish: ViewPublisher) -> None:
        self._publish = publish
        self._generations: dict[int, int] = defaultdict(int)
        self._pending: dict[int, asyncio.Task] = {}

    def begin(self, user_id: int) -> int:
        """Mark a new interaction for ``user_id``; returns its generation."""
        self._generations[user_id] += 1
        previous = self._pending.pop(user_id, None)
        if previous is not None and not previous.done():
            previous.cancel()
        return self._generations[user_id]

    def is_current(self, user_id: int, generation: int) -> bool:
        return self._generations[user_id] == generation

    def schedule(
        self,
        user_id: int,
        generation: int,
        view_kind: str,
        optimistic: View,
        build: Callable[[], Awaitable[View]],
    ) -> asyncio.Task:
        """Start the authoritative rebuild for an optimistic view."""
        task = asyncio.create_task(
            self._reconcile(user_id, generation, view_kind, optimistic, build)
        )
        self._pending[user_id] = task
        task.add_done_callback(lambda t: self._forget(user_id, t))
        return task

    def _forget(self, user_id: int, task: asyncio.Task) -> None:
        if self._pending.get(user_id) is task:
            del self._pending[user_id]

    async def _reconcile(
        self,
        user_id: int,
        generation: int,
        view_kind: str,
        optimistic: View,
        build: Callable[[], Awaitable[View]],
    ) -> None:
        try:
            view = await build()
        except Exception as exc:  # pylint: disable=broad-except
            logger.warning("Reconcile of %s for user %s failed: %s", view_kind, user_id, exc)
            return
        if not self.is_current(user_id, generation):
            logger.debug("Dropping superseded %s update for user %s", view_kind, user_id)
            return
        if view == optimistic:
            return
        await self._publish(ViewUpdate(user_id=user_id, view_kind=view_kind, view=view))

    async def drain(self) -> None:
        """Wait for every pending reconcile task (shutdown and tests)."""
        pending = list(self._pending.values())
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

"""
Live project feeds.

A subscription re-delivers its whole matching set, sorted, every time a
project it could see changes. Gateway writes call ``feed.publish`` after
they land; the deliveries run as background tasks so a slow subscriber
never holds up the write that triggered them.
"""
import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

logger = logging.getLogger(__name__)

Snapshot = Callable[[], Awaitable[List[Any]]]


class Subscription:
    def __init__(self, owner_id: Optional[str], load: Snapshot,
                 on_data: Callable, on_error: Optional[Callable] = None):
        self.owner_id = owner_id
        self.load = load
        self.on_data = on_data
        self.on_error = on_error
        self.active = True
        # Deliveries for one subscriber happen one at a time, in publish order.
        self._lock = asyncio.Lock()

    def watches(self, created_by: Optional[str]) -> bool:
        return self.owner_id is None or created_by is None or self.owner_id == created_by

    async def deliver(self):
        async with self._lock:
            if not self.active:
                return
            try:
                projects = await self.load()
            except Exception as e:
                logger.error("Error refreshing project subscription: %s", e)
                if self.active and self.on_error is not None:
                    await _call(self.on_error, e)
                return
            if self.active:
                await _call(self.on_data, projects)


async def _call(callback: Callable, value: Any):
    try:
        result = callback(value)
        if inspect.isawaitable(result):
            await result
    except Exception as e:
        logger.warning("Subscriber callback failed: %s", e)


class ProjectFeed:
    def __init__(self):
        self.subscriptions: List[Subscription] = []
        self._pending: Set[asyncio.Task] = set()

    async def subscribe(self, owner_id: Optional[str], load: Snapshot,
                        on_data: Callable, on_error: Optional[Callable] = None) -> Callable[[], None]:
        """Register a subscription, deliver the current snapshot, return its unsubscribe."""
        sub = Subscription(owner_id, load, on_data, on_error)
        self.subscriptions.append(sub)

        def unsubscribe():
            sub.active = False
            if sub in self.subscriptions:
                self.subscriptions.remove(sub)

        await sub.deliver()
        return unsubscribe

    async def publish(self, created_by: Optional[str] = None) -> List[asyncio.Task]:
        """Schedule a refresh for every subscription that can see a project owned by ``created_by``."""
        tasks = []
        for sub in list(self.subscriptions):
            if sub.watches(created_by):
                task = asyncio.ensure_future(sub.deliver())
                self._pending.add(task)
                task.add_done_callback(self._pending.discard)
                tasks.append(task)
        return tasks

    async def drain(self):
        """Wait until every scheduled delivery has finished."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def stats(self) -> Dict[str, int]:
        return {
            "subscriptions": len(self.subscriptions),
            "owner_feeds": len([s for s in self.subscriptions if s.owner_id is not None]),
            "pending_deliveries": len(self._pending),
        }


feed = ProjectFeed()

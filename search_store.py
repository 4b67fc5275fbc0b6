"""
Debounced search state.

The visible query changes on every keystroke; the backend call waits for a
quiet period after the last one. A result is applied only if no newer
search has been scheduled since it started.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, List, Optional, Set

import config
import gateway
import users
from schemas import ProjectSearchFilters

logger = logging.getLogger(__name__)


class DebouncedSearch:
    """Base for stores that turn typed input into debounced backend searches."""

    def __init__(self, delay: Optional[float] = None):
        self.delay = config.SEARCH_DEBOUNCE_SECONDS if delay is None else delay
        self.results: List[Any] = []
        self.is_searching = False
        self.error: Optional[str] = None
        self._generation = 0
        self._timer: Optional[asyncio.TimerHandle] = None
        self._inflight: Set[asyncio.Task] = set()

    # Subclasses decide when there is nothing to search and how to search.
    def _should_search(self) -> bool:
        raise NotImplementedError

    def _search(self) -> Awaitable[List[Any]]:
        raise NotImplementedError

    def _schedule(self):
        self._generation += 1
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if not self._should_search():
            self.results = []
            self.is_searching = False
            return
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.delay, self._fire, self._generation)

    def _fire(self, generation: int):
        self._timer = None
        task = asyncio.ensure_future(self._perform(generation))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    async def _perform(self, generation: int):
        self.is_searching = True
        try:
            results = await self._search()
        except Exception as e:
            logger.error("Error searching: %s", e)
            if generation == self._generation:
                self.error = str(e)
                self.is_searching = False
            return
        if generation != self._generation:
            logger.debug("Dropping stale search results (generation %s)", generation)
            return
        self.results = results
        self.error = None
        self.is_searching = False

    def clear_search(self):
        self._generation += 1
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self.results = []
        self.is_searching = False
        self.error = None

    @property
    def pending(self) -> bool:
        return self._timer is not None or bool(self._inflight)

    async def flush(self):
        """Wait until the scheduled search, if any, has run and settled."""
        while self.pending:
            if self._timer is not None:
                await asyncio.sleep(self.delay)
            else:
                await asyncio.gather(*list(self._inflight))


class UserSearchStore(DebouncedSearch):
    def __init__(self, search: Optional[Callable] = None, delay: Optional[float] = None):
        super().__init__(delay)
        self.search = search or users.search_users
        self.search_query = ""

    def set_search_query(self, query: str):
        self.search_query = query
        self._schedule()

    def _should_search(self) -> bool:
        return bool(self.search_query.strip())

    def _search(self):
        return self.search(self.search_query)

    def clear_search(self):
        self.search_query = ""
        super().clear_search()


class ProjectSearchStore(DebouncedSearch):
    """Project search; runs when there is a query or any active filter."""

    def __init__(self, search: Optional[Callable] = None, delay: Optional[float] = None):
        super().__init__(delay)
        self.search = search or gateway.search_projects
        self.filters = ProjectSearchFilters()

    @property
    def search_query(self) -> str:
        return self.filters.query or ""

    def set_search_query(self, query: str):
        self.filters = self.filters.model_copy(update={"query": query})
        self._schedule()

    def set_filters(self, **filters: Any):
        self.filters = self.filters.model_copy(update=filters)
        self._schedule()

    def _should_search(self) -> bool:
        return not self.filters.is_empty()

    def _search(self):
        return self.search(self.filters)

    def clear_search(self):
        self.filters = ProjectSearchFilters()
        super().clear_search()

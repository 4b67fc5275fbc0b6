"""
Memoized user lookups.

Many views need the same creator's display data at once. The first lookup
for a uid starts one profile read; concurrent lookups share it. Results,
including "no such user", stay cached until ``clear_user_cache``; there is
no expiry and writes do not invalidate.
"""
import asyncio
import logging
from typing import Awaitable, Callable, Dict, Optional

import users
from schemas import UserProfile, UserSearchResult

logger = logging.getLogger(__name__)

Loader = Callable[[str], Awaitable[Optional[UserProfile]]]


class UserCache:
    def __init__(self, loader: Optional[Loader] = None):
        self.loader = loader
        self._cache: Dict[str, Optional[UserSearchResult]] = {}
        self._pending: Dict[str, asyncio.Future] = {}

    async def fetch(self, uid: str) -> Optional[UserSearchResult]:
        if uid in self._cache:
            return self._cache[uid]
        pending = self._pending.get(uid)
        if pending is None:
            pending = asyncio.ensure_future(self._load(uid))
            self._pending[uid] = pending
        return await asyncio.shield(pending)

    async def _load(self, uid: str) -> Optional[UserSearchResult]:
        try:
            loader = self.loader or users.get_user_profile
            profile = await loader(uid)
            result = users.to_search_result(profile) if profile else None
            if self._pending.get(uid) is asyncio.current_task():
                self._cache[uid] = result
            return result
        finally:
            if self._pending.get(uid) is asyncio.current_task():
                del self._pending[uid]

    def clear(self):
        self._cache.clear()
        self._pending.clear()

    def __len__(self):
        return len(self._cache)


_default = UserCache()


async def fetch_user_by_id(uid: str) -> Optional[UserSearchResult]:
    return await _default.fetch(uid)


def clear_user_cache():
    _default.clear()

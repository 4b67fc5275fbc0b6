"""
Current-identity stream.

Sign-in itself happens at the external identity provider. An AuthSession
holds whoever is signed in now and tells its listeners when that changes;
stores take one in their constructor instead of reading global state.
"""
import inspect
import logging
from typing import Callable, List, Optional

from pydantic import BaseModel

import users

logger = logging.getLogger(__name__)


class Identity(BaseModel):
    uid: str
    display_name: Optional[str] = None
    email: Optional[str] = None
    photo_url: Optional[str] = None


class AuthSession:
    def __init__(self, sync_profile: bool = True):
        self.user: Optional[Identity] = None
        self.loading = True
        self.sync_profile = sync_profile
        self._listeners: List[Callable] = []

    def add_listener(self, listener: Callable) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    async def sign_in(self, identity: Identity):
        if self.sync_profile:
            try:
                await users.create_or_update_user_profile(
                    identity.uid,
                    identity.display_name or "Anonymous",
                    identity.email,
                    identity.photo_url,
                )
            except Exception as e:
                # A failed profile upsert does not block the sign-in.
                logger.error("Error creating/updating user profile: %s", e)
        await self._set(identity)

    async def sign_out(self):
        await self._set(None)

    async def _set(self, identity: Optional[Identity]):
        self.user = identity
        self.loading = False
        for listener in list(self._listeners):
            result = listener(identity)
            if inspect.isawaitable(result):
                await result

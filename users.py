"""
User profile gateway over the ``users`` collection.

Profiles are keyed by the identity uid and are created lazily on the first
sign-in. Nothing here deletes a profile.
"""
import logging
from typing import Any, Dict, List, Optional, Union

import config
import database
from errors import NotFoundError
from gateway import backend_call
from schemas import UserProfile, UserProfileUpdate, UserSearchResult

logger = logging.getLogger(__name__)

# Highest code point in the BMP private use area; closes a prefix range.
PREFIX_END = "\uf8ff"


def _users():
    return database.collection(config.USERS_COLLECTION)


def _to_profile(doc: Dict[str, Any]) -> UserProfile:
    d = database.serialize(doc)
    d["uid"] = d.pop("id", d.get("uid"))
    return UserProfile(**d)


def to_search_result(profile: Union[UserProfile, Dict[str, Any]]) -> UserSearchResult:
    if isinstance(profile, dict):
        d = database.serialize(profile)
        return UserSearchResult(uid=d.get("id") or d["uid"], **{
            k: d.get(k) for k in ("display_name", "photo_url", "username", "bio")
        })
    return UserSearchResult(
        uid=profile.uid,
        display_name=profile.display_name,
        photo_url=profile.photo_url,
        username=profile.username,
        bio=profile.bio,
    )


async def create_or_update_user_profile(uid: str, display_name: str, email: Optional[str],
                                        photo_url: Optional[str] = None) -> None:
    with backend_call("create or update user profile"):
        now = database.utcnow()
        _users().update_one(
            {"_id": uid},
            {
                "$set": {
                    "display_name": display_name,
                    "email": email or None,
                    "photo_url": photo_url or None,
                    "updated_at": now,
                },
                "$setOnInsert": {
                    "bio": None,
                    "username": None,
                    "created_at": now,
                },
            },
            upsert=True,
        )


async def get_user_profile(uid: str) -> Optional[UserProfile]:
    with backend_call("load user profile"):
        doc = _users().find_one({"_id": uid})
        return _to_profile(doc) if doc else None


async def update_user_profile(uid: str, updates: Union[UserProfileUpdate, Dict[str, Any]]) -> None:
    if isinstance(updates, dict):
        updates = UserProfileUpdate(**updates)
    changes = updates.model_dump(exclude_unset=True)
    if changes.get("username"):
        changes["username"] = changes["username"].lower()
    with backend_call("update user profile"):
        changes["updated_at"] = database.utcnow()
        res = _users().update_one({"_id": uid}, {"$set": changes})
        if res.matched_count == 0:
            raise NotFoundError(f"User {uid} not found")


async def search_users(term: str, max_results: int = config.USER_SEARCH_LIMIT) -> List[UserSearchResult]:
    """Prefix search on display name (as typed) and username (lower-cased)."""
    if not term.strip():
        return []
    lowered = term.lower()
    with backend_call("search users"):
        by_name = list(_users().find(
            {"display_name": {"$gte": term, "$lte": term + PREFIX_END}}
        ).limit(max_results))
        by_username = list(_users().find(
            {"username": {"$gte": lowered, "$lte": lowered + PREFIX_END}}
        ).limit(max_results))

    results: Dict[str, UserSearchResult] = {}
    for doc in by_name + by_username:
        hit = to_search_result(doc)
        results.setdefault(hit.uid, hit)
    return list(results.values())[:max_results]


async def get_all_users() -> List[UserProfile]:
    with backend_call("load users"):
        docs = list(_users().find({}).sort("created_at", -1))
        return [_to_profile(d) for d in docs]

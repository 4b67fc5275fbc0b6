"""
MongoDB connection and small document helpers.

The client is created lazily from DATABASE_URL / DATABASE_NAME. Tests swap
``database.db`` for an in-memory database.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from bson import ObjectId
from pymongo import MongoClient
from pymongo.database import Database

import config

logger = logging.getLogger(__name__)

db: Optional[Database] = None

try:
    _client = MongoClient(config.DATABASE_URL, tz_aware=True, connect=False)
    db = _client[config.DATABASE_NAME]
except Exception as e:
    logger.error("Could not configure MongoDB client: %s", e)
    db = None


def get_db() -> Database:
    if db is None:
        raise RuntimeError("Database is not configured")
    return db


def collection(name: str):
    return get_db()[name]


def utcnow() -> datetime:
    """Current UTC time at BSON (millisecond) precision."""
    return to_utc(datetime.now(timezone.utc))


def to_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    else:
        value = value.astimezone(timezone.utc)
    return value.replace(microsecond=(value.microsecond // 1000) * 1000)


def normalize(value: Any) -> Any:
    """Make a stored value comparable: aware UTC datetimes, str ids."""
    if isinstance(value, datetime):
        return to_utc(value)
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, dict):
        return {k: normalize(v) for k, v in value.items()}
    if isinstance(value, list):
        return [normalize(v) for v in value]
    return value


def serialize(doc: Dict[str, Any]) -> Dict[str, Any]:
    if not doc:
        return doc
    d = {**doc}
    if "_id" in d:
        d["id"] = str(d.pop("_id"))
    return normalize(d)


def oid(value: str) -> Optional[ObjectId]:
    """Parse a document id; None when it cannot be a stored id."""
    try:
        return ObjectId(value)
    except Exception:
        return None


def create_document(collection_name: str, data: Dict[str, Any]) -> str:
    res = collection(collection_name).insert_one(dict(data))
    return str(res.inserted_id)

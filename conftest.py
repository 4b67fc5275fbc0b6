"""Shared fixtures: an in-memory MongoDB, a fresh project feed and a steerable clock."""
from datetime import datetime, timedelta, timezone

import mongomock
import pytest

import database
import realtime
import user_cache

START = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def db(monkeypatch):
    test_db = mongomock.MongoClient()["bezaspace_test"]
    monkeypatch.setattr(database, "db", test_db)
    monkeypatch.setattr(realtime, "feed", realtime.ProjectFeed())
    user_cache.clear_user_cache()
    yield test_db
    user_cache.clear_user_cache()


class Clock:
    def __init__(self, start=START, step=timedelta(seconds=1)):
        self.now = start
        self.step = step

    def __call__(self):
        value = self.now
        self.now = self.now + self.step
        return value


@pytest.fixture
def clock(monkeypatch):
    """Every read of the clock moves it one second forward."""
    c = Clock()
    monkeypatch.setattr(database, "utcnow", c)
    return c

"""
Tests for the per-session project store and the identity stream.

Run: pytest test_project_store.py -v
"""
import asyncio

import pytest

import database
import gateway
import users
from auth import AuthSession, Identity
from errors import GatewayError, PreconditionError
from project_store import LOADING, READY, UNINITIALIZED, ProjectStore

DEMO = {"title": "Demo", "description": "d", "category": "Web Development"}
U1 = Identity(uid="U1", display_name="Meron", email="meron@example.com")
U2 = Identity(uid="U2", display_name="Yonas")


class TestAuthSession:
    def test_sign_in_upserts_profile_and_notifies(self):
        session = AuthSession()
        seen = []
        session.add_listener(seen.append)
        asyncio.run(session.sign_in(U1))
        asyncio.run(session.sign_out())
        assert seen == [U1, None]
        assert asyncio.run(users.get_user_profile("U1")).display_name == "Meron"

    def test_profile_failure_does_not_block_sign_in(self, monkeypatch):
        async def broken(*args):
            raise GatewayError("create or update user profile")
        monkeypatch.setattr(users, "create_or_update_user_profile", broken)
        session = AuthSession()
        asyncio.run(session.sign_in(U1))
        assert session.user == U1


class TestProjectStore:
    def test_signed_out_store_is_ready_and_empty(self):
        async def scenario():
            store = ProjectStore(AuthSession())
            assert store.state == UNINITIALIZED
            await store.start()
            return store

        store = asyncio.run(scenario())
        assert store.state == READY
        assert store.loading is False
        assert store.projects == []

    def test_create_and_delete_follow_the_live_feed(self, clock):
        async def scenario():
            session = AuthSession()
            store = ProjectStore(session)
            await store.start()
            await session.sign_in(U1)
            project_id = await store.create_project(DEMO)
            await gateway.realtime.feed.drain()
            after_create = [p.id for p in store.projects]
            await store.delete_project(project_id)
            await gateway.realtime.feed.drain()
            after_delete = list(store.projects)
            await store.close()
            return project_id, after_create, after_delete

        project_id, after_create, after_delete = asyncio.run(scenario())
        assert after_create == [project_id]
        assert after_delete == []

    def test_identity_switch_restarts_subscription(self, clock):
        async def scenario():
            await gateway.create_project("U1", DEMO)
            await gateway.create_project("U2", {**DEMO, "title": "Theirs"})
            session = AuthSession()
            store = ProjectStore(session)
            await store.start()
            await session.sign_in(U1)
            mine = [p.title for p in store.projects]
            await session.sign_in(U2)
            theirs = [p.title for p in store.projects]
            await session.sign_out()
            feeds_left = gateway.realtime.feed.stats()["subscriptions"]
            return mine, theirs, store, feeds_left

        mine, theirs, store, feeds_left = asyncio.run(scenario())
        assert mine == ["Demo"]
        assert theirs == ["Theirs"]
        assert store.projects == []
        assert store.state == READY
        assert feeds_left == 0

    def test_create_requires_sign_in(self):
        async def scenario():
            store = ProjectStore(AuthSession())
            await store.start()
            with pytest.raises(PreconditionError):
                await store.create_project(DEMO)
            return store

        store = asyncio.run(scenario())
        assert store.error == "You must be signed in to create a project"
        assert database.collection("projects").count_documents({}) == 0

    def test_create_rejects_blank_required_fields(self):
        async def scenario():
            session = AuthSession()
            store = ProjectStore(session)
            await store.start()
            await session.sign_in(U1)
            with pytest.raises(PreconditionError):
                await store.create_project({**DEMO, "title": "  "})
            return store

        store = asyncio.run(scenario())
        assert "title" in store.error

    def test_gateway_error_is_kept_with_previous_projects(self, monkeypatch):
        async def failing(*args):
            raise GatewayError("update project")

        real_update = gateway.update_project

        async def scenario():
            session = AuthSession()
            store = ProjectStore(session)
            await store.start()
            await session.sign_in(U1)
            project_id = await store.create_project(DEMO)
            await gateway.realtime.feed.drain()
            monkeypatch.setattr(gateway, "update_project", failing)
            with pytest.raises(GatewayError):
                await store.update_project(project_id, {"title": "x"})
            failed = (store.error, [p.id for p in store.projects])
            monkeypatch.setattr(gateway, "update_project", real_update)
            await store.add_task(project_id, {"title": "first task"})
            await gateway.realtime.feed.drain()
            return project_id, failed, store

        project_id, (error, ids), store = asyncio.run(scenario())
        assert error == "Failed to update project"
        assert ids == [project_id]
        assert store.error is None
        assert store.projects[0].tasks[0].title == "first task"

    def test_subscription_error_keeps_loaded_projects(self, monkeypatch):
        def broken(name):
            raise RuntimeError("offline")

        async def scenario():
            session = AuthSession()
            store = ProjectStore(session)
            await store.start()
            await session.sign_in(U1)
            await store.create_project(DEMO)
            await gateway.realtime.feed.drain()
            monkeypatch.setattr(database, "collection", broken)
            await gateway.realtime.feed.publish("U1")
            await gateway.realtime.feed.drain()
            return store

        store = asyncio.run(scenario())
        assert store.error == "Failed to subscribe to projects"
        assert store.state == READY
        assert len(store.projects) == 1

    def test_task_updates_recompute_progress(self):
        async def scenario():
            session = AuthSession()
            store = ProjectStore(session)
            await store.start()
            await session.sign_in(U1)
            project_id = await store.create_project(DEMO)
            task_id = await store.add_task(project_id, {"title": "ship"})
            await store.update_task(project_id, task_id, {"status": "done"})
            milestone_id = await store.add_milestone(project_id, {"title": "v1", "due_date": "2026-09-01T00:00:00Z"})
            await store.update_milestone(project_id, milestone_id, {"status": "completed", "progress": 100})
            await gateway.realtime.feed.drain()
            return store.get_project(project_id)

        project = asyncio.run(scenario())
        assert project.progress.overall == 100
        assert project.milestones[0].status == "completed"

    def test_refresh_reloads_once(self):
        async def scenario():
            session = AuthSession()
            store = ProjectStore(session)
            await store.start()
            await session.sign_in(U1)
            database.collection("projects").insert_one({
                **DEMO, "created_by": "U1", "created_at": database.utcnow(),
                "updated_at": database.utcnow(), "status": "active",
            })
            before = len(store.projects)
            await store.refresh_projects()
            return before, store

        before, store = asyncio.run(scenario())
        assert before == 0
        assert len(store.projects) == 1
        assert store.loading is False

    def test_loading_state_while_subscribing(self, monkeypatch):
        states = []
        real_subscribe = gateway.subscribe_to_user_projects

        async def spying(owner_id, on_data, on_error):
            states.append(store.state)
            return await real_subscribe(owner_id, on_data, on_error)

        monkeypatch.setattr(gateway, "subscribe_to_user_projects", spying)
        session = AuthSession()
        store = ProjectStore(session)

        async def scenario():
            await store.start()
            await session.sign_in(U1)

        asyncio.run(scenario())
        assert states == [LOADING]
        assert store.state == READY

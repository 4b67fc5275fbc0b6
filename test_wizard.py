"""
Tests for the project creation wizard.

Run: pytest test_wizard.py -v
"""
import asyncio

import database
import gateway
from auth import AuthSession, Identity
from project_store import ProjectStore
from wizard import TOTAL_STEPS, ProjectWizard, STEP_BASIC, STEP_TEAM

U1 = Identity(uid="U1", display_name="Tigist")


def signed_in_wizard():
    async def setup():
        session = AuthSession()
        store = ProjectStore(session)
        await store.start()
        await session.sign_in(U1)
        return ProjectWizard(store)
    return asyncio.run(setup())


def fill_basics(wizard):
    wizard.update(title="Water map", description="Map village wells", category="Civic Tech")


class TestNavigation:
    def test_basic_step_blocks_until_required_fields(self):
        wizard = signed_in_wizard()
        wizard.next()
        assert wizard.current_step == STEP_BASIC
        wizard.update(title="Water map", description="  ", category="Civic Tech")
        assert wizard.can_go_next() is False
        wizard.update(description="Map village wells")
        wizard.next()
        assert wizard.current_step == 2

    def test_cannot_move_past_bounds(self):
        wizard = signed_in_wizard()
        fill_basics(wizard)
        wizard.previous()
        assert wizard.current_step == STEP_BASIC
        for _ in range(TOTAL_STEPS + 2):
            wizard.next()
        assert wizard.current_step == STEP_TEAM
        assert wizard.is_last_step


class TestDraft:
    def test_list_steps_add_and_remove(self):
        wizard = signed_in_wizard()
        wizard.add_goal("Find wells")
        wizard.add_goal("  ")
        wizard.add_goal("Rate water quality")
        wizard.remove_goal(0)
        wizard.add_outcome("Public map")
        wizard.add_technology("Leaflet")
        wizard.add_technology("PostGIS")
        wizard.remove_technology(1)
        assert wizard.draft["goals"] == ["Rate water quality"]
        assert wizard.draft["outcomes"] == ["Public map"]
        assert wizard.draft["technologies"] == ["Leaflet"]

    def test_roadmap_items_get_ids(self):
        wizard = signed_in_wizard()
        first = wizard.add_roadmap_item("Survey", "Walk the district")
        second = wizard.add_roadmap_item("Publish", "")
        assert first != second
        assert [r["status"] for r in wizard.draft["roadmap"]] == ["pending", "pending"]
        wizard.remove_roadmap_item(0)
        assert [r["id"] for r in wizard.draft["roadmap"]] == [second]

    def test_team_roles(self):
        wizard = signed_in_wizard()
        role_id = wizard.add_role("Field surveyor")
        assert wizard.add_role("   ") is None
        wizard.add_role_item(role_id, "skills", "GPS")
        wizard.add_role_item(role_id, "skills", "Amharic")
        wizard.add_role_item(role_id, "responsibilities", "Visit wells")
        wizard.remove_role_item(role_id, "skills", 0)
        (role,) = wizard.roles
        assert role["name"] == "Field surveyor"
        assert role["skills"] == ["Amharic"]
        assert role["responsibilities"] == ["Visit wells"]
        wizard.remove_role(role_id)
        assert wizard.roles == []


class TestSubmit:
    def test_submit_requires_last_step(self):
        wizard = signed_in_wizard()
        fill_basics(wizard)
        assert asyncio.run(wizard.submit()) is None
        assert wizard.error == "Please complete all steps before submitting"
        assert database.collection("projects").count_documents({}) == 0

    def test_submit_requires_sign_in(self):
        async def setup():
            store = ProjectStore(AuthSession())
            await store.start()
            return ProjectWizard(store)

        wizard = asyncio.run(setup())
        fill_basics(wizard)
        assert asyncio.run(wizard.submit()) is None
        assert wizard.error == "You must be signed in to create a project"

    def test_submit_creates_project_and_resets(self):
        wizard = signed_in_wizard()
        fill_basics(wizard)
        wizard.next()
        wizard.add_goal("Find wells")
        wizard.next()
        wizard.next()
        wizard.add_technology("Leaflet")
        wizard.next()
        wizard.add_roadmap_item("Survey", "Walk the district")
        wizard.next()
        role_id = wizard.add_role("Field surveyor")
        wizard.add_role_item(role_id, "skills", "GPS")

        project_id = asyncio.run(wizard.submit())

        assert project_id is not None
        assert wizard.current_step == STEP_BASIC
        assert wizard.draft["title"] == ""
        project = asyncio.run(gateway.get_project_by_id(project_id))
        assert project.created_by == "U1"
        assert project.goals == ["Find wells"]
        assert project.technologies == ["Leaflet"]
        assert project.roadmap[0].title == "Survey"
        assert project.people_needed.roles[0].skills == ["GPS"]

    def test_gateway_failure_is_reported(self, monkeypatch):
        wizard = signed_in_wizard()
        fill_basics(wizard)
        for _ in range(TOTAL_STEPS):
            wizard.next()

        def broken(name):
            raise RuntimeError("quota exceeded")

        monkeypatch.setattr(database, "collection", broken)
        assert asyncio.run(wizard.submit()) is None
        assert wizard.error == "Failed to create project"
        assert wizard.loading is False
        assert wizard.draft["title"] == "Water map"

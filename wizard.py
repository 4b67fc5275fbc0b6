"""
Six-step project creation wizard.

The draft is built up across steps and committed with a single create
call. Problems the user can fix are reported on ``error`` without touching
the backend.
"""
import copy
import logging
from typing import Any, Dict, List, Optional

from errors import GatewayError, PreconditionError
from gateway import new_id
from database import utcnow
from project_store import ProjectStore, SIGN_IN_REQUIRED
from schemas import missing_required_fields

logger = logging.getLogger(__name__)

TOTAL_STEPS = 6

STEP_BASIC = 1
STEP_GOALS = 2
STEP_OUTCOMES = 3
STEP_TECHNOLOGIES = 4
STEP_ROADMAP = 5
STEP_TEAM = 6

ROLE_LISTS = ("responsibilities", "skills", "contributions")


def empty_draft() -> Dict[str, Any]:
    return {
        "title": "",
        "description": "",
        "category": "",
        "goals": [],
        "outcomes": [],
        "milestones": [],
        "roadmap": [],
        "people_needed": {"roles": [], "count": 0, "skills": []},
        "resources": [],
        "location": {"type": "remote", "address": "", "city": "", "country": ""},
        "tasks": [],
        "technologies": [],
    }


class ProjectWizard:
    def __init__(self, store: ProjectStore):
        self.store = store
        self.current_step = STEP_BASIC
        self.draft = empty_draft()
        self.loading = False
        self.error: Optional[str] = None

    def update(self, **updates):
        self.draft.update(updates)
        self.error = None

    # List steps

    def _append(self, field: str, value: str):
        value = value.strip()
        if value:
            self.draft[field] = self.draft.get(field, []) + [value]

    def _remove(self, field: str, index: int):
        self.draft[field] = [v for i, v in enumerate(self.draft.get(field, [])) if i != index]

    def add_goal(self, goal: str):
        self._append("goals", goal)

    def remove_goal(self, index: int):
        self._remove("goals", index)

    def add_outcome(self, outcome: str):
        self._append("outcomes", outcome)

    def remove_outcome(self, index: int):
        self._remove("outcomes", index)

    def add_technology(self, technology: str):
        self._append("technologies", technology)

    def remove_technology(self, index: int):
        self._remove("technologies", index)

    def add_roadmap_item(self, title: str, description: str) -> str:
        item = {
            "id": new_id(),
            "title": title,
            "description": description,
            "due_date": utcnow(),
            "status": "pending",
            "progress": 0,
        }
        self.draft["roadmap"] = self.draft.get("roadmap", []) + [item]
        return item["id"]

    def remove_roadmap_item(self, index: int):
        self._remove("roadmap", index)

    # Team step

    @property
    def roles(self) -> List[Dict[str, Any]]:
        return self.draft["people_needed"]["roles"]

    def add_role(self, name: str) -> Optional[str]:
        name = name.strip()
        if not name:
            return None
        role = {"id": new_id(), "name": name, "responsibilities": [], "skills": [], "contributions": []}
        self.draft["people_needed"] = {
            **self.draft["people_needed"],
            "roles": self.roles + [role],
        }
        return role["id"]

    def remove_role(self, role_id: str):
        self.draft["people_needed"] = {
            **self.draft["people_needed"],
            "roles": [r for r in self.roles if r["id"] != role_id],
        }

    def add_role_item(self, role_id: str, kind: str, value: str):
        """Add a responsibility, skill or contribution to one role."""
        if kind not in ROLE_LISTS:
            raise ValueError(f"Unknown role list: {kind}")
        value = value.strip()
        if not value:
            return
        for role in self.roles:
            if role["id"] == role_id:
                role[kind] = role[kind] + [value]

    def remove_role_item(self, role_id: str, kind: str, index: int):
        if kind not in ROLE_LISTS:
            raise ValueError(f"Unknown role list: {kind}")
        for role in self.roles:
            if role["id"] == role_id:
                role[kind] = [v for i, v in enumerate(role[kind]) if i != index]

    # Navigation

    def basic_step_valid(self) -> bool:
        return not missing_required_fields(self.draft)

    def can_go_next(self) -> bool:
        if self.current_step == STEP_BASIC:
            return self.basic_step_valid()
        return STEP_BASIC < self.current_step <= TOTAL_STEPS

    @property
    def is_last_step(self) -> bool:
        return self.current_step == TOTAL_STEPS

    def next(self):
        if self.can_go_next() and self.current_step < TOTAL_STEPS:
            self.current_step += 1

    def previous(self):
        if self.current_step > STEP_BASIC:
            self.current_step -= 1

    def reset(self):
        self.current_step = STEP_BASIC
        self.draft = empty_draft()
        self.error = None

    async def submit(self) -> Optional[str]:
        """Create the project; returns its id, or None with ``error`` set."""
        if self.store.session.user is None:
            self.error = SIGN_IN_REQUIRED
            return None
        if not self.basic_step_valid():
            self.error = "Please fill in all required fields"
            return None
        if not self.is_last_step:
            self.error = "Please complete all steps before submitting"
            return None

        self.loading = True
        self.error = None
        try:
            project_id = await self.store.create_project(copy.deepcopy(self.draft))
        except (GatewayError, PreconditionError) as e:
            self.error = str(e)
            return None
        finally:
            self.loading = False
        logger.info("Wizard created project %s", project_id)
        self.reset()
        return project_id

"""
Per-session project state.

Holds the signed-in user's live project list and the mutations the UI calls.
Gateway failures land in ``error`` as a display string; previously loaded
projects are kept.
"""
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

import gateway
from auth import AuthSession, Identity
from errors import GatewayError, PreconditionError
from schemas import Project, missing_required_fields

logger = logging.getLogger(__name__)

UNINITIALIZED = "uninitialized"
LOADING = "loading"
READY = "ready"

SIGN_IN_REQUIRED = "You must be signed in to create a project"


class ProjectStore:
    def __init__(self, session: AuthSession):
        self.session = session
        self.state = UNINITIALIZED
        self.projects: List[Project] = []
        self.loading = True
        self.error: Optional[str] = None
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._remove_listener: Optional[Callable[[], None]] = None

    async def start(self):
        self._remove_listener = self.session.add_listener(self._on_identity)
        await self._on_identity(self.session.user)

    async def close(self):
        self._teardown()
        if self._remove_listener:
            self._remove_listener()
            self._remove_listener = None

    def _teardown(self):
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None
        self.state = UNINITIALIZED

    async def _on_identity(self, identity: Optional[Identity]):
        self._teardown()
        if identity is None:
            self.projects = []
            self.loading = False
            self.state = READY
            return

        self.projects = []
        self.loading = True
        self.error = None
        self.state = LOADING
        self._unsubscribe = await gateway.subscribe_to_user_projects(
            identity.uid, self._on_data, self._on_error
        )

    def _on_data(self, projects: List[Project]):
        self.projects = projects
        self.loading = False
        self.error = None
        self.state = READY

    def _on_error(self, err: Exception):
        self.error = str(err)
        self.loading = False
        self.state = READY

    async def _run(self, call: Awaitable) -> Any:
        self.error = None
        try:
            return await call
        except (GatewayError, PreconditionError) as e:
            self.error = str(e)
            raise

    async def create_project(self, data: Dict[str, Any], image_urls: Optional[List[str]] = None) -> str:
        user = self.session.user
        if user is None:
            self.error = SIGN_IN_REQUIRED
            raise PreconditionError(SIGN_IN_REQUIRED)
        missing = missing_required_fields(data)
        if missing:
            self.error = f"Missing required fields: {', '.join(missing)}"
            raise PreconditionError(self.error)
        return await self._run(gateway.create_project(user.uid, data, image_urls))

    async def update_project(self, project_id: str, data: Dict[str, Any]):
        await self._run(gateway.update_project(project_id, data))

    async def delete_project(self, project_id: str):
        await self._run(gateway.delete_project(project_id))

    async def update_project_progress(self, project_id: str, progress: Dict[str, Any]):
        await self._run(gateway.update_project_progress(project_id, progress))

    async def add_milestone(self, project_id: str, milestone: Dict[str, Any]) -> str:
        return await self._run(gateway.add_milestone(project_id, milestone))

    async def update_milestone(self, project_id: str, milestone_id: str, updates: Dict[str, Any]):
        await self._run(gateway.update_milestone(project_id, milestone_id, updates))

    async def add_task(self, project_id: str, task: Dict[str, Any]) -> str:
        return await self._run(gateway.add_task(project_id, task))

    async def update_task(self, project_id: str, task_id: str, updates: Dict[str, Any]):
        await self._run(gateway.update_task(project_id, task_id, updates))

    async def refresh_projects(self):
        """Reload the list once, outside the live feed."""
        user = self.session.user
        if user is None:
            return
        self.loading = True
        try:
            self._on_data(await self._run(gateway.get_user_projects(user.uid)))
        finally:
            self.loading = False

    def get_project(self, project_id: str) -> Optional[Project]:
        return next((p for p in self.projects if p.id == project_id), None)

"""
Project gateway.

Stateless translation between typed project entities and the ``projects``
collection. Results are sorted in memory (newest first) so no compound
index is needed. Every backend failure surfaces as a GatewayError naming
the operation; point lookups return None for a missing document.
"""
import logging
import math
import uuid
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Union

from pydantic import ValidationError

import config
import database
import realtime
from errors import GatewayError, NotFoundError, PreconditionError, WriteConflictError
from schemas import (
    MilestoneCreate,
    MilestoneUpdate,
    Progress,
    ProgressUpdate,
    Project,
    ProjectFormData,
    ProjectSearchFilters,
    ProjectUpdate,
    TaskCreate,
    TaskUpdate,
    missing_required_fields,
    normalize_role,
)

logger = logging.getLogger(__name__)

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

Mutation = Callable[[Dict[str, Any]], Dict[str, Any]]


# -----------------------------
# Helpers
# -----------------------------

@contextmanager
def backend_call(operation: str):
    """Wrap backend failures into a GatewayError for ``operation``."""
    try:
        yield
    except (GatewayError, PreconditionError):
        raise
    except Exception as e:
        logger.error("Error trying to %s: %s", operation, e)
        raise GatewayError(operation, e) from e


def _projects():
    return database.collection(config.PROJECTS_COLLECTION)


def new_id() -> str:
    return uuid.uuid4().hex


def sort_newest_first(projects: List[Project]) -> List[Project]:
    return sorted(projects, key=lambda p: p.created_at or EPOCH, reverse=True)


def next_timestamp(previous: Optional[datetime]) -> datetime:
    """Now, or one millisecond past ``previous`` if the clock has not moved on."""
    now = database.utcnow()
    if previous is not None:
        previous = database.to_utc(previous)
        if now <= previous:
            now = previous + timedelta(milliseconds=1)
    return now


def _to_project(doc: Dict[str, Any]) -> Project:
    return Project(**database.serialize(doc))


def _require_oid(project_id: str):
    _id = database.oid(project_id)
    if _id is None:
        raise NotFoundError(f"Project {project_id} not found")
    return _id


def _coerce(model, data):
    return data if isinstance(data, model) else model(**data)


def _field(entry, name):
    return entry.get(name) if isinstance(entry, dict) else getattr(entry, name, None)


def task_progress(tasks: List[Any], now: datetime) -> Dict[str, Any]:
    total = len(tasks)
    completed = len([t for t in tasks if _field(t, "status") == "done"])
    overall = int(math.floor(100 * completed / total + 0.5)) if total else 0
    return {
        "overall": overall,
        "tasks_completed": completed,
        "total_tasks": total,
        "last_updated": now,
    }


async def _find_projects(query: Dict[str, Any], operation: str) -> List[Project]:
    with backend_call(operation):
        docs = list(_projects().find(query))
        return sort_newest_first([_to_project(d) for d in docs])


# -----------------------------
# Projects
# -----------------------------

async def create_project(owner_id: str, data: Union[ProjectFormData, Dict[str, Any]],
                         image_urls: Optional[List[str]] = None) -> str:
    form = _coerce(ProjectFormData, data)
    with backend_call("create project"):
        now = database.utcnow()
        doc = database.normalize(form.model_dump(exclude_none=True))
        doc.update({
            "created_by": owner_id,
            "created_at": now,
            "updated_at": now,
            "status": "active",
            "version": 0,
        })
        if image_urls:
            doc["image_urls"] = list(image_urls)
        project_id = database.create_document(config.PROJECTS_COLLECTION, doc)
    logger.info("Created project %s for %s", project_id, owner_id)
    await realtime.feed.publish(owner_id)
    return project_id


async def get_project_by_id(project_id: str) -> Optional[Project]:
    with backend_call("load project"):
        _id = database.oid(project_id)
        if _id is None:
            return None
        doc = _projects().find_one({"_id": _id})
        return _to_project(doc) if doc else None


async def get_user_projects(owner_id: str) -> List[Project]:
    return await _find_projects({"created_by": owner_id}, "load projects")


async def get_all_projects() -> List[Project]:
    return await _find_projects({}, "load projects")


async def subscribe_to_user_projects(owner_id: str, on_data: Callable,
                                     on_error: Optional[Callable] = None) -> Callable[[], None]:
    async def load():
        return await _find_projects({"created_by": owner_id}, "subscribe to projects")
    return await realtime.feed.subscribe(owner_id, load, on_data, on_error)


async def subscribe_to_all_projects(on_data: Callable,
                                    on_error: Optional[Callable] = None) -> Callable[[], None]:
    async def load():
        return await _find_projects({}, "subscribe to projects")
    return await realtime.feed.subscribe(None, load, on_data, on_error)


async def read_modify_write(project_id: str, operation: str, mutate: Mutation) -> Dict[str, Any]:
    """Apply ``mutate(doc)`` as a $set, conditional on the version that was read.

    A write that loses to a concurrent writer is recomputed from a fresh
    read, up to MAX_WRITE_RETRIES times.
    """
    with backend_call(operation):
        _id = _require_oid(project_id)
        for _ in range(config.MAX_WRITE_RETRIES):
            doc = _projects().find_one({"_id": _id})
            if doc is None:
                raise NotFoundError(f"Project {project_id} not found")
            changes = mutate(doc)
            if "updated_at" not in changes:
                changes["updated_at"] = next_timestamp(doc.get("updated_at"))
            res = _projects().update_one(
                {"_id": _id, "version": doc.get("version")},
                {"$set": changes, "$inc": {"version": 1}},
            )
            if res.matched_count == 1:
                break
            logger.info("Write conflict on project %s during %s, retrying", project_id, operation)
        else:
            raise WriteConflictError(f"Project {project_id} kept changing during {operation}")
    await realtime.feed.publish(doc.get("created_by"))
    return changes


async def update_project(project_id: str, data: Union[ProjectUpdate, Dict[str, Any]]) -> None:
    changes = database.normalize(_coerce(ProjectUpdate, data).model_dump(exclude_unset=True))
    # Stored projects must stay loadable: required fields and status are never cleared.
    cleared = [f for f in missing_required_fields(changes) if f in changes]
    if "status" in changes and changes["status"] is None:
        cleared.append("status")
    if cleared:
        raise PreconditionError(f"Missing required fields: {', '.join(cleared)}")

    def mutate(doc):
        return {**changes, "updated_at": next_timestamp(doc.get("updated_at"))}

    await read_modify_write(project_id, "update project", mutate)


async def delete_project(project_id: str) -> None:
    """Remove a project for good. Deleting a missing project succeeds."""
    with backend_call("delete project"):
        _id = database.oid(project_id)
        if _id is None:
            return
        doc = _projects().find_one_and_delete({"_id": _id})
    if doc:
        logger.info("Deleted project %s", project_id)
        await realtime.feed.publish(doc.get("created_by"))


async def update_project_progress(project_id: str,
                                  progress: Union[ProgressUpdate, Dict[str, Any]]) -> None:
    partial = _coerce(ProgressUpdate, progress).model_dump(exclude_none=True)

    def mutate(doc):
        now = next_timestamp(doc.get("updated_at"))
        current = doc.get("progress") or {
            "overall": 0,
            "tasks_completed": 0,
            "total_tasks": 0,
            "last_updated": now,
        }
        merged = {**current, **partial, "last_updated": now}
        try:
            Progress(**merged)
        except ValidationError as e:
            raise PreconditionError(f"Invalid progress: {e.errors()[0]['msg']}") from e
        return {"progress": merged, "updated_at": now}

    await read_modify_write(project_id, "update project progress", mutate)


async def _push_entry(project_id: str, field: str, entry: Dict[str, Any], operation: str) -> None:
    """Append ``entry`` to a list field with $push, stamped like every other write."""
    with backend_call(operation):
        _id = _require_oid(project_id)
        for _ in range(config.MAX_WRITE_RETRIES):
            doc = _projects().find_one({"_id": _id}, projection={"created_by": 1, "updated_at": 1, "version": 1})
            if doc is None:
                raise NotFoundError(f"Project {project_id} not found")
            res = _projects().update_one(
                {"_id": _id, "version": doc.get("version")},
                {
                    "$push": {field: database.normalize(entry)},
                    "$set": {"updated_at": next_timestamp(doc.get("updated_at"))},
                    "$inc": {"version": 1},
                },
            )
            if res.matched_count == 1:
                break
            logger.info("Write conflict on project %s during %s, retrying", project_id, operation)
        else:
            raise WriteConflictError(f"Project {project_id} kept changing during {operation}")
    await realtime.feed.publish(doc.get("created_by"))


def _replace_entry(entries: List[Dict[str, Any]], entry_id: str, changes: Dict[str, Any],
                   kind: str) -> List[Dict[str, Any]]:
    if not any(e.get("id") == entry_id for e in entries):
        raise NotFoundError(f"{kind} {entry_id} not found")
    return [{**e, **changes} if e.get("id") == entry_id else e for e in entries]


# -----------------------------
# Milestones
# -----------------------------

async def add_milestone(project_id: str, milestone: Union[MilestoneCreate, Dict[str, Any]]) -> str:
    entry = {"id": new_id(), **_coerce(MilestoneCreate, milestone).model_dump()}
    await _push_entry(project_id, "milestones", entry, "add milestone")
    return entry["id"]


async def update_milestone(project_id: str, milestone_id: str,
                           updates: Union[MilestoneUpdate, Dict[str, Any]]) -> None:
    changes = database.normalize(_coerce(MilestoneUpdate, updates).model_dump(exclude_unset=True))

    def mutate(doc):
        milestones = _replace_entry(doc.get("milestones") or [], milestone_id, changes, "Milestone")
        return {"milestones": milestones}

    await read_modify_write(project_id, "update milestone", mutate)


# -----------------------------
# Tasks
# -----------------------------

async def add_task(project_id: str, task: Union[TaskCreate, Dict[str, Any]]) -> str:
    entry = {"id": new_id(), **_coerce(TaskCreate, task).model_dump()}
    await _push_entry(project_id, "tasks", entry, "add task")
    return entry["id"]


async def update_task(project_id: str, task_id: str,
                      updates: Union[TaskUpdate, Dict[str, Any]]) -> None:
    """Update one task and recompute the project's progress from task statuses."""
    changes = database.normalize(_coerce(TaskUpdate, updates).model_dump(exclude_unset=True))

    def mutate(doc):
        tasks = _replace_entry(doc.get("tasks") or [], task_id, changes, "Task")
        now = next_timestamp(doc.get("updated_at"))
        return {"tasks": tasks, "progress": task_progress(tasks, now), "updated_at": now}

    await read_modify_write(project_id, "update task", mutate)


# -----------------------------
# Search
# -----------------------------

def _contains_any(needles: List[str], haystack: List[str]) -> bool:
    hay = [h.lower() for h in haystack if h]
    return any(n.lower() in h for n in needles if n for h in hay)


def matches_filters(project: Project, filters: ProjectSearchFilters) -> bool:
    if filters.category and project.category != filters.category:
        return False
    if filters.technologies and not _contains_any(filters.technologies, project.technologies or []):
        return False
    if filters.location:
        loc = project.location
        if loc is None or not _contains_any([filters.location], [loc.city or "", loc.country or ""]):
            return False
    if filters.status and project.status != filters.status:
        return False
    if filters.skills:
        roles = project.people_needed.roles if project.people_needed else []
        terms = [s for role in roles for s in normalize_role(role).skills]
        if not _contains_any(filters.skills, terms):
            return False
    if filters.has_funding and not any(r.type == "funding" for r in project.resources or []):
        return False
    if filters.remote_only and not (project.location and project.location.type == "remote"):
        return False
    query = (filters.query or "").strip()
    if query:
        fields = [project.title, project.description, *(project.technologies or []),
                  *(project.goals or []), *(project.outcomes or [])]
        if not _contains_any([query], fields):
            return False
    return True


def filter_projects(projects: List[Project],
                    filters: Union[ProjectSearchFilters, Dict[str, Any]]) -> List[Project]:
    filters = _coerce(ProjectSearchFilters, filters)
    return [p for p in projects if matches_filters(p, filters)]


async def search_projects(filters: Union[ProjectSearchFilters, Dict[str, Any]]) -> List[Project]:
    """Equality filters run in the query; substring filters run in memory."""
    filters = _coerce(ProjectSearchFilters, filters)
    query: Dict[str, Any] = {}
    if filters.category:
        query["category"] = filters.category
    if filters.status:
        query["status"] = filters.status
    if filters.remote_only:
        query["location.type"] = "remote"
    if filters.has_funding:
        query["resources.type"] = "funding"
    projects = await _find_projects(query, "search projects")
    return filter_projects(projects, filters)

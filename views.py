"""Derived view models built from already-fetched projects."""
import asyncio
import logging
from typing import Any, Dict, List, Optional

from schemas import Progress, Project, ProjectRole, normalize_role
from user_cache import UserCache, fetch_user_by_id

logger = logging.getLogger(__name__)

UNKNOWN_USER = "Unknown User"
ALL_CATEGORIES = "all"


async def creator_name(uid: str, cache: Optional[UserCache] = None) -> str:
    try:
        creator = await (cache.fetch(uid) if cache else fetch_user_by_id(uid))
    except Exception as e:
        logger.error("Error fetching creator data: %s", e)
        return UNKNOWN_USER
    return creator.display_name if creator and creator.display_name else UNKNOWN_USER


async def attach_creator_names(projects: List[Project],
                               cache: Optional[UserCache] = None) -> List[Dict[str, Any]]:
    names = await asyncio.gather(*[creator_name(p.created_by, cache) for p in projects])
    return [{**p.model_dump(), "creator_name": name} for p, name in zip(projects, names)]


def project_categories(projects: List[Project]) -> List[str]:
    categories = [ALL_CATEGORIES]
    for p in projects:
        if p.category not in categories:
            categories.append(p.category)
    return categories


def browse_filter(projects: List[Project], term: str = "",
                  category: str = ALL_CATEGORIES) -> List[Project]:
    term = term.lower()
    return [
        p for p in projects
        if (term in p.title.lower() or term in p.description.lower())
        and (category == ALL_CATEGORIES or p.category == category)
    ]


def team_roles(project: Project) -> List[ProjectRole]:
    if not project.people_needed:
        return []
    return [normalize_role(r) for r in project.people_needed.roles]


def summarize_progress(project: Project) -> Dict[str, Any]:
    progress = project.progress or Progress()
    milestones = project.milestones or []
    tasks = project.tasks or []
    resources = project.resources or []

    def count(items, status):
        return len([i for i in items if i.status == status])

    return {
        "progress": progress.model_dump(),
        "milestones": {
            "completed": count(milestones, "completed"),
            "total": len(milestones),
        },
        "tasks": {
            "done": count(tasks, "done"),
            "in_progress": count(tasks, "in-progress"),
            "todo": count(tasks, "todo"),
            "total": len(tasks),
        },
        "resources": {
            "secured": count(resources, "secured"),
            "available": count(resources, "available"),
            "needed": count(resources, "needed"),
        },
    }

"""
Schemas for BezaSpace

Each top-level document model maps to a MongoDB collection: Project ->
"projects", UserProfile -> "users". Milestones, tasks and resources have no
collection of their own; they live as embedded lists inside a project.
"""
from datetime import datetime
from typing import List, Optional, Literal, Union

from pydantic import BaseModel, Field, EmailStr, model_validator

# Enumerations
ProjectStatus = Literal["active", "completed", "archived"]
MilestoneStatus = Literal["pending", "in-progress", "completed"]
ResourceType = Literal["funding", "tools", "equipment", "other"]
ResourceStatus = Literal["available", "needed", "secured"]
TaskStatus = Literal["todo", "in-progress", "done"]
TaskPriority = Literal["low", "medium", "high"]
LocationType = Literal["remote", "onsite", "hybrid"]


# Milestones (also used for roadmap entries)
class MilestoneCreate(BaseModel):
    title: str
    description: str = ""
    due_date: datetime
    status: MilestoneStatus = "pending"
    progress: int = Field(0, ge=0, le=100, description="Percentage complete")


class Milestone(MilestoneCreate):
    id: str


class MilestoneUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    due_date: Optional[datetime] = None
    status: Optional[MilestoneStatus] = None
    progress: Optional[int] = Field(None, ge=0, le=100)


# Resources
class Resource(BaseModel):
    id: str
    type: ResourceType
    name: str
    description: str = ""
    amount: Optional[float] = Field(None, description="Only meaningful for funding")
    status: ResourceStatus = "needed"


# Tasks
class TaskCreate(BaseModel):
    title: str
    description: str = ""
    status: TaskStatus = "todo"
    assigned_to: Optional[str] = None
    priority: TaskPriority = "medium"
    due_date: Optional[datetime] = None


class ProjectTask(TaskCreate):
    id: str


class TaskUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    status: Optional[TaskStatus] = None
    assigned_to: Optional[str] = None
    priority: Optional[TaskPriority] = None
    due_date: Optional[datetime] = None


# Team
class ProjectRole(BaseModel):
    id: str
    name: str
    responsibilities: List[str] = Field(default_factory=list)
    skills: List[str] = Field(default_factory=list)
    contributions: List[str] = Field(default_factory=list)


# Older documents store a role as its bare name.
TeamRole = Union[ProjectRole, str]


def normalize_role(role: TeamRole) -> ProjectRole:
    if isinstance(role, ProjectRole):
        return role
    if isinstance(role, dict):
        return ProjectRole(**role)
    return ProjectRole(id=role, name=role)


class PeopleNeeded(BaseModel):
    roles: List[TeamRole] = Field(default_factory=list)
    count: int = Field(0, ge=0)
    skills: List[str] = Field(default_factory=list)


class Location(BaseModel):
    type: LocationType = "remote"
    address: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None


class Progress(BaseModel):
    overall: int = Field(0, ge=0, le=100)
    tasks_completed: int = Field(0, ge=0)
    total_tasks: int = Field(0, ge=0)
    last_updated: Optional[datetime] = None

    @model_validator(mode="after")
    def completed_within_total(self):
        if self.tasks_completed > self.total_tasks:
            raise ValueError("tasks_completed cannot exceed total_tasks")
        return self


class ProgressUpdate(BaseModel):
    overall: Optional[int] = Field(None, ge=0, le=100)
    tasks_completed: Optional[int] = Field(None, ge=0)
    total_tasks: Optional[int] = Field(None, ge=0)


# Projects
class ProjectFormData(BaseModel):
    title: str
    description: str
    category: str
    goals: Optional[List[str]] = None
    outcomes: Optional[List[str]] = None
    milestones: Optional[List[Milestone]] = None
    roadmap: Optional[List[Milestone]] = None
    people_needed: Optional[PeopleNeeded] = None
    resources: Optional[List[Resource]] = None
    location: Optional[Location] = None
    tasks: Optional[List[ProjectTask]] = None
    technologies: Optional[List[str]] = None


class ProjectUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    status: Optional[ProjectStatus] = None
    image_urls: Optional[List[str]] = None
    goals: Optional[List[str]] = None
    outcomes: Optional[List[str]] = None
    milestones: Optional[List[Milestone]] = None
    roadmap: Optional[List[Milestone]] = None
    people_needed: Optional[PeopleNeeded] = None
    resources: Optional[List[Resource]] = None
    location: Optional[Location] = None
    tasks: Optional[List[ProjectTask]] = None
    technologies: Optional[List[str]] = None


class Project(ProjectFormData):
    id: str
    created_by: str = Field(..., description="User id of the creator")
    created_at: datetime
    updated_at: datetime
    status: ProjectStatus = "active"
    image_urls: Optional[List[str]] = None
    progress: Optional[Progress] = None


REQUIRED_PROJECT_FIELDS = ("title", "description", "category")


def missing_required_fields(data) -> List[str]:
    """Names of required project fields that are blank."""
    if isinstance(data, BaseModel):
        data = data.model_dump()
    return [f for f in REQUIRED_PROJECT_FIELDS if not str(data.get(f) or "").strip()]


class ProjectSearchFilters(BaseModel):
    query: Optional[str] = None
    category: Optional[str] = None
    technologies: Optional[List[str]] = None
    location: Optional[str] = None
    status: Optional[str] = None
    skills: Optional[List[str]] = None
    has_funding: Optional[bool] = None
    remote_only: Optional[bool] = None

    def is_empty(self) -> bool:
        return not any([
            (self.query or "").strip(),
            self.category,
            self.technologies,
            self.location,
            self.status,
            self.skills,
            self.has_funding,
            self.remote_only,
        ])


# Users
class UserProfile(BaseModel):
    uid: str
    display_name: str
    email: Optional[EmailStr] = None
    photo_url: Optional[str] = None
    bio: Optional[str] = None
    username: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class UserSearchResult(BaseModel):
    """Public projection of a profile; never carries the email."""
    uid: str
    display_name: str
    photo_url: Optional[str] = None
    username: Optional[str] = None
    bio: Optional[str] = None


class UserProfileUpdate(BaseModel):
    display_name: Optional[str] = None
    bio: Optional[str] = None
    username: Optional[str] = None
    photo_url: Optional[str] = None

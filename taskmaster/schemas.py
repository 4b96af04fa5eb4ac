"""Request and response schemas. JSON keys are camelCase on the wire."""

import uuid
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel

from taskmaster.models import Task, TaskPriority, TaskStatus, User, UserRole


class CamelModel(BaseModel):
    """Accepts camelCase or snake_case keys, serializes camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


# -- auth ---------------------------------------------------------------------


class RegisterRequest(CamelModel):
    name: str = Field(min_length=2, max_length=50)
    email: EmailStr
    password: str = Field(min_length=6, max_length=128)

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, v):
        return v.strip() if isinstance(v, str) else v


class LoginRequest(CamelModel):
    email: EmailStr
    password: str = Field(min_length=1)


class UserRead(CamelModel):
    id: uuid.UUID
    name: str
    email: str
    role: UserRole
    is_active: bool
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_user(cls, user: User) -> "UserRead":
        return cls(
            id=user.id,
            name=user.name,
            email=user.email,
            role=user.role,
            is_active=user.is_active,
            created_at=user.created_at,
            updated_at=user.updated_at,
        )


class OwnerSummary(CamelModel):
    id: uuid.UUID
    name: str
    email: str


# -- tasks --------------------------------------------------------------------


class TaskCreate(CamelModel):
    """Payload for creating a task. Owner fields in the payload are ignored."""

    title: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    due_date: Optional[date] = None

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Title is required")
        return v.strip()


class TaskUpdate(CamelModel):
    """Partial update payload.

    Empty strings for title/status/priority mean "leave unchanged", so they
    are accepted here and dropped by the merge in the access layer.
    """

    title: Optional[str] = Field(default=None, max_length=200)
    description: Optional[str] = None
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    due_date: Optional[date] = None

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, v: Optional[str]) -> Optional[str]:
        if not v:
            return v
        if not v.strip():
            raise ValueError("Title cannot be blank")
        return v.strip()

    @field_validator("status", "priority", mode="before")
    @classmethod
    def empty_enum_is_none(cls, v):
        if v == "":
            return None
        return v

    def provided(self, field_name: str) -> bool:
        """True when the key was present in the payload, even if null."""
        return field_name in self.model_fields_set


class TaskRead(CamelModel):
    id: uuid.UUID
    title: str
    description: Optional[str]
    status: TaskStatus
    priority: TaskPriority
    due_date: Optional[date]
    user_id: uuid.UUID
    created_at: datetime
    updated_at: datetime
    user: Optional[OwnerSummary] = None

    @classmethod
    def from_task(cls, task: Task, owner: Optional[User] = None) -> "TaskRead":
        return cls(
            id=task.id,
            title=task.title,
            description=task.description,
            status=task.status,
            priority=task.priority,
            due_date=task.due_date,
            user_id=task.user_id,
            created_at=task.created_at,
            updated_at=task.updated_at,
            user=OwnerSummary(id=owner.id, name=owner.name, email=owner.email) if owner else None,
        )

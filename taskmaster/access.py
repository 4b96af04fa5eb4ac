"""Authorization-scoped task operations.

Every operation runs on behalf of a :class:`Requester`. The requester's role
is turned into an access policy once, when the :class:`TaskAccess` is built:

- ``AdminPolicy`` sees and may change every task.
- ``OwnerScopedPolicy`` sees only the requester's tasks and may change only
  those.

Point operations (get/update/delete) check existence first and permission
second, so an unknown id is always ``NotFound`` and a foreign task is
``Forbidden``.
"""

import logging
import math
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Union

from sqlalchemy import func
from sqlmodel import Session, select
from sqlmodel.sql.expression import SelectOfScalar

from taskmaster.errors import Forbidden, NotFound, ValidationFailed
from taskmaster.models import Task, TaskPriority, TaskStatus, User, UserRole
from taskmaster.schemas import TaskCreate, TaskUpdate

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Requester:
    """Identity resolved from the bearer token for the current request."""

    id: uuid.UUID
    role: UserRole

    @classmethod
    def from_user(cls, user: User) -> "Requester":
        return cls(id=user.id, role=user.role)


@dataclass(frozen=True)
class AdminPolicy:
    def scope(self, statement: SelectOfScalar) -> SelectOfScalar:
        return statement

    def permits(self, task: Task) -> bool:
        return True


@dataclass(frozen=True)
class OwnerScopedPolicy:
    owner_id: uuid.UUID

    def scope(self, statement: SelectOfScalar) -> SelectOfScalar:
        return statement.where(Task.user_id == self.owner_id)

    def permits(self, task: Task) -> bool:
        return task.user_id == self.owner_id


AccessPolicy = Union[AdminPolicy, OwnerScopedPolicy]


def policy_for(requester: Requester) -> AccessPolicy:
    if requester.role == UserRole.admin:
        return AdminPolicy()
    return OwnerScopedPolicy(owner_id=requester.id)


@dataclass(frozen=True)
class TaskFilters:
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None


@dataclass(frozen=True)
class TaskPage:
    tasks: list[Task]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit)


def _parse_id(task_id: Union[str, uuid.UUID]) -> Optional[uuid.UUID]:
    if isinstance(task_id, uuid.UUID):
        return task_id
    try:
        return uuid.UUID(str(task_id))
    except ValueError:
        return None


class TaskAccess:
    """Task CRUD for one requester inside one store session."""

    def __init__(self, session: Session, requester: Requester) -> None:
        self.session = session
        self.requester = requester
        self.policy = policy_for(requester)

    def list_tasks(
        self,
        filters: TaskFilters = TaskFilters(),
        page: int = 1,
        limit: int = 10,
    ) -> TaskPage:
        """Return one page of visible tasks, newest first."""
        if page < 1 or limit < 1:
            raise ValidationFailed(
                errors=[
                    {"field": name, "message": f"{name.capitalize()} must be at least 1"}
                    for name, value in (("page", page), ("limit", limit))
                    if value < 1
                ]
            )

        statement = self.policy.scope(select(Task))
        if filters.status is not None:
            statement = statement.where(Task.status == filters.status)
        if filters.priority is not None:
            statement = statement.where(Task.priority == filters.priority)

        total = self.session.exec(
            select(func.count()).select_from(statement.subquery())
        ).one()
        rows = self.session.exec(
            statement.order_by(Task.created_at.desc(), Task.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        ).all()
        return TaskPage(tasks=list(rows), total=total, page=page, limit=limit)

    def get_task(self, task_id: Union[str, uuid.UUID]) -> Task:
        return self._authorized(task_id, "access")

    def create_task(self, payload: TaskCreate) -> Task:
        task = Task(
            title=payload.title,
            description=payload.description,
            status=payload.status or TaskStatus.pending,
            priority=payload.priority or TaskPriority.medium,
            due_date=payload.due_date,
            user_id=self.requester.id,
        )
        self.session.add(task)
        self.session.commit()
        self.session.refresh(task)
        logger.info("Task %s created by user %s", task.id, self.requester.id)
        return task

    def update_task(self, task_id: Union[str, uuid.UUID], payload: TaskUpdate) -> Task:
        """Merge ``payload`` into the task.

        title/status/priority change only when the new value is truthy;
        description/due_date change whenever the key was sent, null included.
        """
        task = self._authorized(task_id, "update")

        if payload.title:
            task.title = payload.title
        if payload.status:
            task.status = payload.status
        if payload.priority:
            task.priority = payload.priority
        if payload.provided("description"):
            task.description = payload.description
        if payload.provided("due_date"):
            task.due_date = payload.due_date
        task.updated_at = datetime.now(timezone.utc)

        self.session.add(task)
        self.session.commit()
        self.session.refresh(task)
        logger.info("Task %s updated by user %s", task.id, self.requester.id)
        return task

    def delete_task(self, task_id: Union[str, uuid.UUID]) -> None:
        task = self._authorized(task_id, "delete")
        deleted_id = task.id
        self.session.delete(task)
        self.session.commit()
        logger.info("Task %s deleted by user %s", deleted_id, self.requester.id)

    def owner_of(self, task: Task) -> Optional[User]:
        return self.session.get(User, task.user_id)

    def owners_of(self, tasks: list[Task]) -> dict[uuid.UUID, User]:
        owner_ids = {t.user_id for t in tasks}
        if not owner_ids:
            return {}
        users = self.session.exec(select(User).where(User.id.in_(owner_ids))).all()
        return {u.id: u for u in users}

    def _authorized(self, task_id: Union[str, uuid.UUID], action: str) -> Task:
        parsed = _parse_id(task_id)
        task = self.session.get(Task, parsed) if parsed is not None else None
        if task is None:
            raise NotFound("Task not found")
        if not self.policy.permits(task):
            logger.warning(
                "User %s denied %s on task %s owned by %s",
                self.requester.id, action, task.id, task.user_id,
            )
            raise Forbidden(f"Not authorized to {action} this task")
        return task

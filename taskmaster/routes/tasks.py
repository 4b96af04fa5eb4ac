"""CRUD endpoints for tasks, scoped to the requester."""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from taskmaster.access import TaskAccess, TaskFilters
from taskmaster.auth import get_task_access
from taskmaster.errors import ValidationFailed
from taskmaster.models import TaskPriority, TaskStatus
from taskmaster.responses import success
from taskmaster.schemas import TaskCreate, TaskRead, TaskUpdate

router = APIRouter(prefix="/api/v1/tasks", tags=["tasks"])


def _filter_value(enum_cls, raw: Optional[str], field: str, errors: list[dict]):
    """Parse a list filter. An empty value means no filter."""
    if not raw:
        return None
    try:
        return enum_cls(raw)
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        errors.append({"field": field, "message": f"{field.capitalize()} must be one of: {allowed}"})
        return None


@router.get("")
def list_tasks(
    request: Request,
    status: Optional[str] = None,
    priority: Optional[str] = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1),
    access: TaskAccess = Depends(get_task_access),
) -> dict:
    """List visible tasks, newest first, optionally filtered by status and/or priority."""
    errors: list[dict] = []
    filters = TaskFilters(
        status=_filter_value(TaskStatus, status, "status", errors),
        priority=_filter_value(TaskPriority, priority, "priority", errors),
    )
    max_page_size = request.app.state.settings.max_page_size
    if limit > max_page_size:
        errors.append({"field": "limit", "message": f"Limit must be at most {max_page_size}"})
    if errors:
        raise ValidationFailed(errors=errors)

    result = access.list_tasks(filters, page=page, limit=limit)
    owners = access.owners_of(result.tasks)
    tasks = [TaskRead.from_task(t, owners.get(t.user_id)).to_json() for t in result.tasks]
    return success(
        {"tasks": tasks},
        count=len(tasks),
        total=result.total,
        page=result.page,
        totalPages=result.total_pages,
    )


@router.get("/{task_id}")
def get_task(task_id: str, access: TaskAccess = Depends(get_task_access)) -> dict:
    """Get a single task by ID."""
    task = access.get_task(task_id)
    return success({"task": TaskRead.from_task(task, access.owner_of(task)).to_json()})


@router.post("", status_code=201)
def create_task(body: TaskCreate, access: TaskAccess = Depends(get_task_access)) -> dict:
    """Create a task owned by the requester."""
    task = access.create_task(body)
    return success(
        {"task": TaskRead.from_task(task, access.owner_of(task)).to_json()},
        message="Task created successfully",
    )


@router.put("/{task_id}")
def update_task(
    task_id: str, body: TaskUpdate, access: TaskAccess = Depends(get_task_access)
) -> dict:
    """Update an existing task. Only provided fields are changed."""
    task = access.update_task(task_id, body)
    return success(
        {"task": TaskRead.from_task(task, access.owner_of(task)).to_json()},
        message="Task updated successfully",
    )


@router.delete("/{task_id}")
def delete_task(task_id: str, access: TaskAccess = Depends(get_task_access)) -> dict:
    """Delete a task permanently."""
    access.delete_task(task_id)
    return success({}, message="Task deleted successfully")

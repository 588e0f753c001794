"""
Task feature routes.

Reads are scoped by the caller's task edit permission; creation is checked
against the prospective parent (a project, or a parent task for subtasks).
"""
from typing import Annotated, Optional
from datetime import datetime, timezone
from fastapi import APIRouter, Depends, HTTPException, Request, status, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from taskdesk.core.database.engine import get_db
from taskdesk.features.permissions.dependencies import (
    create_audit_log,
    ensure_allowed,
    ensure_visible,
)
from taskdesk.features.permissions.engine import authorize
from taskdesk.features.permissions.filters import scope_clause
from taskdesk.features.permissions.principal import Principal
from taskdesk.features.permissions.resolver import ResourceRef
from taskdesk.features.projects.models import Project
from taskdesk.features.tasks.models import Task, TaskRole, TaskStatus, TaskUser
from taskdesk.features.tasks.schemas import (
    SubtaskCreate,
    TaskAssigneeAdd,
    TaskAssigneeResponse,
    TaskCreate,
    TaskResponse,
    TaskUpdate,
)
from taskdesk.features.users.dependencies import require_principal
from taskdesk.features.users.models import User


router = APIRouter(tags=["tasks"])


async def get_task_or_404(db: AsyncSession, task_id: str) -> Task:
    result = await db.execute(select(Task).where(Task.id == task_id))
    task = result.scalar_one_or_none()
    if task is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Task not found")
    return task


def new_task(principal: Principal, data: SubtaskCreate, **placement) -> Task:
    return Task(
        title=data.title,
        description=data.description,
        priority=data.priority,
        due_date=data.due_date,
        tags=data.tags,
        user_id=principal.id,
        creator_id=principal.id,
        assignees=[TaskUser(user_id=principal.id, role=TaskRole.OWNER)],
        **placement,
    )


@router.get("/", response_model=list[TaskResponse])
async def list_tasks(
    principal: Annotated[Principal, Depends(require_principal)],
    db: Annotated[AsyncSession, Depends(get_db)],
    project_id: Optional[str] = None,
    parent_task_id: Optional[str] = None,
    task_status: Optional[TaskStatus] = None,
    top_level: bool = False,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=200)
):
    """List the tasks within the caller's scope."""
    decision = ensure_allowed(authorize(principal, "view", "task"))

    query = select(Task).where(scope_clause(decision.predicate))
    if project_id:
        query = query.where(Task.project_id == project_id)
    if parent_task_id:
        query = query.where(Task.parent_task_id == parent_task_id)
    elif top_level:
        query = query.where(Task.parent_task_id.is_(None))
    if task_status is not None:
        query = query.where(Task.status == task_status)

    query = query.order_by(Task.position, Task.created_at.desc()).offset(skip).limit(limit)
    result = await db.execute(query)
    return result.scalars().all()


@router.post("/", response_model=TaskResponse, status_code=status.HTTP_201_CREATED)
async def create_task(
    task_data: TaskCreate,
    principal: Annotated[Principal, Depends(require_principal)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Create a task, standalone or inside a project."""
    if task_data.project_id is not None:
        result = await db.execute(select(Project).where(Project.id == task_data.project_id))
        project = result.scalar_one_or_none()
        if project is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Project not found")
        parent = project.as_resource()
    else:
        parent = ResourceRef.standalone()

    ensure_allowed(authorize(principal, "create", "task", parent))

    task = new_task(principal, task_data, project_id=task_data.project_id)
    db.add(task)
    await db.commit()
    await db.refresh(task)
    return task


@router.get("/{task_id}", response_model=TaskResponse)
async def get_task(
    task_id: str,
    principal: Annotated[Principal, Depends(require_principal)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Get a task, if it is within the caller's scope."""
    task = await get_task_or_404(db, task_id)
    ensure_visible(authorize(principal, "view", "task", task.as_resource()), "Task not found")
    return task


@router.post("/{task_id}/subtasks", response_model=TaskResponse, status_code=status.HTTP_201_CREATED)
async def create_subtask(
    task_id: str,
    subtask_data: SubtaskCreate,
    principal: Annotated[Principal, Depends(require_principal)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Create a subtask under a task; it inherits the parent's project."""
    parent = await get_task_or_404(db, task_id)
    ensure_allowed(authorize(principal, "create_subtask", "task", parent.as_resource()))

    subtask = new_task(principal, subtask_data, project_id=parent.project_id, parent_task_id=parent.id)
    db.add(subtask)
    await db.commit()
    await db.refresh(subtask)
    return subtask


@router.patch("/{task_id}", response_model=TaskResponse)
async def update_task(
    task_id: str,
    update_data: TaskUpdate,
    principal: Annotated[Principal, Depends(require_principal)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Update a task. Completing it stamps completed_at."""
    task = await get_task_or_404(db, task_id)
    ensure_allowed(authorize(principal, "edit", "task", task.as_resource()))

    changes = update_data.model_dump(exclude_unset=True)
    if "status" in changes and changes["status"] != task.status:
        if changes["status"] == TaskStatus.COMPLETED:
            task.completed_at = datetime.now(timezone.utc)
        else:
            task.completed_at = None

    for key, value in changes.items():
        setattr(task, key, value)

    await db.commit()
    await db.refresh(task)
    return task


@router.delete("/{task_id}")
async def delete_task(
    task_id: str,
    request: Request,
    principal: Annotated[Principal, Depends(require_principal)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Delete a task and its subtasks."""
    task = await get_task_or_404(db, task_id)
    ensure_allowed(authorize(principal, "delete", "task", task.as_resource()))

    title = task.title
    await db.delete(task)
    await create_audit_log(db, principal, "delete", "task", task_id, {"title": title}, request)
    await db.commit()
    return {"message": "Task deleted successfully"}


@router.post("/{task_id}/assignees", response_model=TaskAssigneeResponse, status_code=status.HTTP_201_CREATED)
async def add_task_assignee(
    task_id: str,
    assignee_data: TaskAssigneeAdd,
    principal: Annotated[Principal, Depends(require_principal)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Assign a user to a task."""
    task = await get_task_or_404(db, task_id)
    resource = task.as_resource()
    ensure_allowed(authorize(principal, "edit", "task", resource))

    result = await db.execute(select(User).where(User.id == assignee_data.user_id))
    if result.scalar_one_or_none() is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    if assignee_data.user_id in resource.assignee_ids:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="User is already assigned to this task"
        )

    assignee = TaskUser(task_id=task.id, user_id=assignee_data.user_id, role=assignee_data.role)
    db.add(assignee)
    await db.commit()
    await db.refresh(assignee)
    return assignee

"""
Task comment routes.

A comment is visible to everyone who can view its task. Only the author
may edit or delete it.
"""
from typing import Annotated
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from taskdesk.core.database.engine import get_db
from taskdesk.features.comments.models import Comment
from taskdesk.features.comments.schemas import CommentCreate, CommentResponse, CommentUpdate
from taskdesk.features.permissions.dependencies import ensure_visible
from taskdesk.features.permissions.engine import authorize
from taskdesk.features.permissions.principal import Principal
from taskdesk.features.tasks.models import Task
from taskdesk.features.tasks.routes import get_task_or_404
from taskdesk.features.users.dependencies import require_principal


router = APIRouter(tags=["comments"])


async def get_visible_task(db: AsyncSession, principal: Principal, task_id: str) -> Task:
    task = await get_task_or_404(db, task_id)
    ensure_visible(authorize(principal, "view", "task", task.as_resource()), "Task not found")
    return task


async def get_own_comment(db: AsyncSession, principal: Principal, comment_id: str) -> Comment:
    """Load a comment the caller can see, and require that they wrote it."""
    result = await db.execute(select(Comment).where(Comment.id == comment_id))
    comment = result.scalar_one_or_none()
    if comment is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Comment not found")

    task = await get_task_or_404(db, comment.task_id)
    ensure_visible(authorize(principal, "view", "task", task.as_resource()), "Comment not found")

    if comment.user_id != principal.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only the author can change this comment"
        )
    return comment


@router.get("/task/{task_id}", response_model=list[CommentResponse])
async def list_task_comments(
    task_id: str,
    principal: Annotated[Principal, Depends(require_principal)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """List a task's comments, newest first."""
    await get_visible_task(db, principal, task_id)
    result = await db.execute(
        select(Comment)
        .where(Comment.task_id == task_id)
        .order_by(Comment.created_at.desc(), Comment.id.desc())
    )
    return result.scalars().all()


@router.post("/", response_model=CommentResponse, status_code=status.HTTP_201_CREATED)
async def create_comment(
    comment_data: CommentCreate,
    principal: Annotated[Principal, Depends(require_principal)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Comment on a task the caller can view."""
    task = await get_visible_task(db, principal, comment_data.task_id)

    comment = Comment(content=comment_data.content, task_id=task.id, user_id=principal.id)
    db.add(comment)
    await db.commit()
    await db.refresh(comment)
    return comment


@router.put("/{comment_id}", response_model=CommentResponse)
async def update_comment(
    comment_id: str,
    update_data: CommentUpdate,
    principal: Annotated[Principal, Depends(require_principal)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    comment = await get_own_comment(db, principal, comment_id)
    comment.content = update_data.content

    await db.commit()
    await db.refresh(comment)
    return comment


@router.delete("/{comment_id}")
async def delete_comment(
    comment_id: str,
    principal: Annotated[Principal, Depends(require_principal)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    comment = await get_own_comment(db, principal, comment_id)
    await db.delete(comment)
    await db.commit()
    return {"message": "Comment deleted successfully"}

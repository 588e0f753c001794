"""
Project feature routes.
"""
from typing import Annotated, Optional
from fastapi import APIRouter, Depends, HTTPException, Request, status, Query
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from taskdesk.core.database.engine import get_db
from taskdesk.features.permissions.account_status import AccountStatus
from taskdesk.features.permissions.dependencies import (
    create_audit_log,
    ensure_allowed,
    ensure_visible,
    require_permission,
)
from taskdesk.features.permissions.engine import authorize
from taskdesk.features.permissions.filters import scope_clause
from taskdesk.features.permissions.principal import Principal
from taskdesk.features.projects.models import Project, ProjectRole, ProjectStatus, ProjectType, ProjectUser
from taskdesk.features.projects.schemas import (
    ProjectCreate,
    ProjectMemberAdd,
    ProjectMemberResponse,
    ProjectResponse,
    ProjectUpdate,
)
from taskdesk.features.users.dependencies import get_current_user, require_principal
from taskdesk.features.users.models import User


router = APIRouter(tags=["projects"])


async def get_project_or_404(db: AsyncSession, project_id: str) -> Project:
    result = await db.execute(select(Project).where(Project.id == project_id))
    project = result.scalar_one_or_none()
    if project is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Project not found")
    return project


@router.get("/", response_model=list[ProjectResponse])
async def list_projects(
    principal: Annotated[Principal, Depends(require_principal)],
    db: Annotated[AsyncSession, Depends(get_db)],
    project_status: Optional[ProjectStatus] = None,
    project_type: Optional[ProjectType] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200)
):
    """List the projects within the caller's view scope."""
    decision = ensure_allowed(authorize(principal, "view", "project"))

    query = select(Project).where(scope_clause(decision.predicate))
    if project_status is not None:
        query = query.where(Project.status == project_status)
    if project_type is not None:
        query = query.where(Project.type == project_type)

    query = query.order_by(Project.updated_at.desc()).offset(skip).limit(limit)
    result = await db.execute(query)
    return result.scalars().all()


@router.post("/", response_model=ProjectResponse, status_code=status.HTTP_201_CREATED)
async def create_project(
    project_data: ProjectCreate,
    principal: Annotated[Principal, Depends(require_permission("project", "create"))],
    user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """
    Create a project owned by the caller.

    Personal projects are limited per user. Unassigned accounts may only
    create personal projects.
    """
    if principal.account_status == AccountStatus.UNASSIGNED and project_data.type != ProjectType.PERSONAL:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Unassigned accounts can only create personal projects"
        )

    if project_data.type == ProjectType.PERSONAL:
        if not user.can_create_personal_projects:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Personal projects are disabled for this account"
            )
        owned = (await db.execute(
            select(func.count(Project.id)).where(
                Project.user_id == user.id,
                Project.type == ProjectType.PERSONAL,
            )
        )).scalar_one()
        if owned >= user.personal_project_limit:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Personal project limit reached ({user.personal_project_limit})"
            )

    project = Project(
        **project_data.model_dump(),
        user_id=principal.id,
        creator_id=principal.id,
        members=[ProjectUser(user_id=principal.id, role=ProjectRole.OWNER)],
    )
    db.add(project)
    await db.commit()
    await db.refresh(project)
    return project


@router.get("/{project_id}", response_model=ProjectResponse)
async def get_project(
    project_id: str,
    principal: Annotated[Principal, Depends(require_principal)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Get a project, if it is within the caller's view scope."""
    project = await get_project_or_404(db, project_id)
    ensure_visible(authorize(principal, "view", "project", project.as_resource()), "Project not found")
    return project


@router.patch("/{project_id}", response_model=ProjectResponse)
async def update_project(
    project_id: str,
    update_data: ProjectUpdate,
    principal: Annotated[Principal, Depends(require_principal)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Update a project."""
    project = await get_project_or_404(db, project_id)
    ensure_allowed(authorize(principal, "edit", "project", project.as_resource()))

    for key, value in update_data.model_dump(exclude_unset=True).items():
        setattr(project, key, value)

    await db.commit()
    await db.refresh(project)
    return project


@router.delete("/{project_id}")
async def delete_project(
    project_id: str,
    request: Request,
    principal: Annotated[Principal, Depends(require_principal)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Delete a project together with its tasks."""
    project = await get_project_or_404(db, project_id)
    ensure_allowed(authorize(principal, "delete", "project", project.as_resource()))

    name = project.name
    await db.delete(project)
    await create_audit_log(db, principal, "delete", "project", project_id, {"name": name}, request)
    await db.commit()
    return {"message": "Project deleted successfully"}


# ============================================================================
# Members
# ============================================================================

@router.post("/{project_id}/members", response_model=ProjectMemberResponse, status_code=status.HTTP_201_CREATED)
async def add_project_member(
    project_id: str,
    member_data: ProjectMemberAdd,
    principal: Annotated[Principal, Depends(require_principal)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Assign a user to a project team."""
    project = await get_project_or_404(db, project_id)
    resource = project.as_resource()
    ensure_visible(authorize(principal, "view", "project", resource), "Project not found")
    ensure_allowed(authorize(principal, "assign_users", "project", resource))

    result = await db.execute(select(User).where(User.id == member_data.user_id))
    if result.scalar_one_or_none() is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    if member_data.user_id in resource.assignee_ids:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="User is already a member of this project"
        )

    member = ProjectUser(project_id=project.id, user_id=member_data.user_id, role=member_data.role)
    db.add(member)
    await db.commit()
    await db.refresh(member)
    return member


@router.delete("/{project_id}/members/{user_id}")
async def remove_project_member(
    project_id: str,
    user_id: str,
    principal: Annotated[Principal, Depends(require_principal)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Remove a user from a project team. The owner cannot be removed."""
    project = await get_project_or_404(db, project_id)
    resource = project.as_resource()
    ensure_visible(authorize(principal, "view", "project", resource), "Project not found")
    ensure_allowed(authorize(principal, "assign_users", "project", resource))

    if user_id == project.user_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="The project owner cannot be removed"
        )

    member = next((m for m in project.members if m.user_id == user_id), None)
    if member is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Member not found")

    project.members.remove(member)
    await db.commit()
    return {"message": "Member removed successfully"}

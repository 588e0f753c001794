"""
Permission API routes.

Lets clients ask the engine about the current user, describes the closed
action vocabulary, and exposes preset permission records and the audit log.
"""
from typing import Annotated, Dict, Any, Optional
from fastapi import APIRouter, Depends, HTTPException, status, Query
from pydantic.alias_generators import to_camel
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from taskdesk.core.database.engine import get_db
from taskdesk.features.permissions.dependencies import require_permission
from taskdesk.features.permissions.engine import authorize
from taskdesk.features.permissions.errors import InvalidPermissionQuery
from taskdesk.features.permissions.models import AuditLog
from taskdesk.features.permissions.presets import PRESETS
from taskdesk.features.permissions.principal import Principal
from taskdesk.features.permissions.resolver import ResourceRef
from taskdesk.features.permissions.schema import (
    ACTIONS,
    BOOLEAN_DOMAIN,
    RESOURCE_GROUPS,
    ActionSpec,
    field_domain,
    lookup_action,
)
from taskdesk.features.permissions.schemas import (
    ActionDescription,
    AuditLogListResponse,
    AuditLogResponse,
    PermissionCheckRequest,
    PermissionCheckResponse,
    PermissionSchemaResponse,
)
from taskdesk.features.projects.models import Project
from taskdesk.features.tasks.models import Task
from taskdesk.features.users.dependencies import require_principal
from taskdesk.features.users.models import User


router = APIRouter(tags=["permissions"])


async def load_resource(db: AsyncSession, spec: ActionSpec, resource_id: str):
    """
    Load the instance a check is made against.

    Task creation is checked against the parent project, everything else
    against an instance of the action's own group.
    """
    if spec.resource_group == "task" and spec.action == "create":
        model = Project
    else:
        model = {"project": Project, "task": Task, "user": User}.get(spec.resource_group)

    if model is None:
        return ResourceRef(id=resource_id)

    result = await db.execute(select(model).where(model.id == resource_id))
    instance = result.scalar_one_or_none()
    if instance is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Resource not found")
    return instance.as_resource()


@router.post("/check", response_model=PermissionCheckResponse)
async def check_permission(
    check: PermissionCheckRequest,
    principal: Annotated[Principal, Depends(require_principal)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Check whether the current user may perform an action."""
    try:
        spec = lookup_action(check.resource_group, check.action)
    except InvalidPermissionQuery as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    if check.resource_id is not None:
        resource = await load_resource(db, spec, check.resource_id)
    elif spec.resource_group == "task" and spec.action == "create":
        resource = ResourceRef.standalone()
    else:
        resource = None

    decision = authorize(principal, spec.action, spec.resource_group, resource)
    return PermissionCheckResponse(
        allowed=decision.allowed,
        action=decision.action,
        scope=decision.scope.value if decision.scope is not None else None,
        reason=decision.reason.value if decision.reason is not None else None,
        message=decision.message,
    )


@router.get("/schema", response_model=PermissionSchemaResponse)
async def get_permission_schema():
    """Describe every action and the tokens its permission field accepts."""
    actions = []
    for spec in ACTIONS.values():
        domain = field_domain(spec)
        if spec.field is None:
            tokens = []
        elif domain == BOOLEAN_DOMAIN:
            tokens = ["false", "true"]
        else:
            tokens = [scope.value for scope in domain]
        actions.append(ActionDescription(
            resource_group=spec.resource_group,
            action=to_camel(spec.action),
            field=f"{spec.field_group}.{to_camel(spec.field)}" if spec.field else None,
            tokens=tokens,
            self_guarded=spec.self_guarded,
        ))
    return PermissionSchemaResponse(resource_groups=sorted(RESOURCE_GROUPS), actions=actions)


@router.get("/presets", response_model=Dict[str, Dict[str, Any]])
async def list_presets(
    principal: Annotated[Principal, Depends(require_principal)]
):
    """Ready-made permission records for new positions."""
    return {name: preset.to_json() for name, preset in PRESETS.items()}


@router.get("/audit-logs", response_model=AuditLogListResponse)
async def list_audit_logs(
    principal: Annotated[Principal, Depends(require_permission("department", "manage"))],
    db: Annotated[AsyncSession, Depends(get_db)],
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    user_id: Optional[str] = None,
    department_id: Optional[str] = None,
    action: Optional[str] = None,
    resource_type: Optional[str] = None
):
    """List audit logs with optional filtering."""
    stmt = select(AuditLog)

    if user_id:
        stmt = stmt.where(AuditLog.user_id == user_id)
    if department_id:
        stmt = stmt.where(AuditLog.department_id == department_id)
    if action:
        stmt = stmt.where(AuditLog.action == action)
    if resource_type:
        stmt = stmt.where(AuditLog.resource_type == resource_type)

    total = (await db.execute(select(func.count()).select_from(stmt.subquery()))).scalar() or 0

    stmt = stmt.order_by(AuditLog.created_at.desc()).offset(skip).limit(limit)
    result = await db.execute(stmt)
    logs = result.scalars().all()

    pages = (total + limit - 1) // limit if limit > 0 else 0
    page = (skip // limit) + 1 if limit > 0 else 1

    return AuditLogListResponse(
        items=[AuditLogResponse.model_validate(entry) for entry in logs],
        total=total,
        page=page,
        page_size=limit,
        pages=pages,
    )

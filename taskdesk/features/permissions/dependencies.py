"""
Permission checking dependencies and helpers for routes.

Implements:
- FastAPI dependencies for route protection
- Helpers turning a denied Decision into the right HTTP response
- Audit logging helper
"""
from typing import Annotated, Any, Dict, Optional
from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from taskdesk.features.permissions.engine import Decision, authorize
from taskdesk.features.permissions.errors import DenialReason
from taskdesk.features.permissions.models import AuditLog
from taskdesk.features.permissions.principal import Principal
from taskdesk.features.users.dependencies import require_principal
from taskdesk.utils import get_logger


log = get_logger(__name__)


# ============================================================================
# Decision -> HTTP
# ============================================================================

def ensure_allowed(decision: Decision) -> Decision:
    """
    Raise 403 for a denied decision, return it otherwise.

    Raises:
        HTTPException: 403 carrying the denial reason
    """
    if not decision.allowed:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "error": decision.message or f"Permission denied: {decision.action}",
                "reason": decision.reason.value if decision.reason else None,
                "action": decision.action,
            }
        )
    return decision


def ensure_visible(decision: Decision, not_found: str) -> Decision:
    """
    Like ensure_allowed, but an out-of-scope read answers 404 so the
    existence of other users' resources is not revealed.
    """
    if not decision.allowed and decision.reason == DenialReason.OUT_OF_SCOPE:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=not_found)
    return ensure_allowed(decision)


# ============================================================================
# FastAPI Dependencies
# ============================================================================

def require_permission(resource_group: str, action: str):
    """
    FastAPI dependency to require an action on a resource group.

    Only checks that the principal's position grants the action at some
    scope; instance checks happen in the route once the resource is loaded.

    Usage:
        @router.post("/departments")
        async def create_department(
            principal: Principal = Depends(require_permission("department", "create"))
        ):
            ...

    Raises:
        HTTPException: 403 if the action is not granted
    """
    async def permission_dependency(
        principal: Annotated[Principal, Depends(require_principal)]
    ) -> Principal:
        ensure_allowed(authorize(principal, action, resource_group))
        return principal

    return permission_dependency


# ============================================================================
# Audit Logging
# ============================================================================

async def create_audit_log(
    db: AsyncSession,
    actor: Optional[Principal],
    action: str,
    resource_type: str,
    resource_id: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
    request: Optional[Request] = None,
) -> AuditLog:
    """
    Create an audit log entry in the current transaction.

    Args:
        db: Database session
        actor: Principal performing the action; its department is recorded
            as it was at the time of the action
        action: Action performed (e.g., "create", "update_status", "assign")
        resource_type: Type of resource (e.g., "department", "position", "user")
        resource_id: ID of the resource
        details: Additional details
        request: Incoming request, for client address and user agent

    Returns:
        Created AuditLog object
    """
    audit_log = AuditLog(
        user_id=actor.id if actor is not None else None,
        department_id=actor.department_id if actor is not None else None,
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        details=details,
        ip_address=request.client.host if request is not None and request.client else None,
        user_agent=request.headers.get("user-agent") if request is not None else None,
    )
    db.add(audit_log)
    await db.flush()

    log.info(
        "Audit: user=%s action=%s resource=%s:%s",
        audit_log.user_id, action, resource_type, resource_id
    )

    return audit_log

"""
User feature routes.

Profile endpoints are open to every authenticated account, whatever its
status, so pending or suspended users can still see why they are blocked.
Everything else goes through the authorization engine.
"""
from typing import Annotated, Optional
from datetime import datetime
from fastapi import APIRouter, Depends, HTTPException, Request, status, Query
from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession
from slowapi.util import get_remote_address

from taskdesk.core.database.engine import get_db
from taskdesk.features.departments.models import Position
from taskdesk.features.permissions.account_status import (
    AccountStatus,
    check_access,
    get_allowed_transitions,
    validate_transition,
)
from taskdesk.features.permissions.dependencies import (
    create_audit_log,
    ensure_allowed,
    ensure_visible,
    require_permission,
)
from taskdesk.features.permissions.engine import authorize
from taskdesk.features.permissions.errors import Unauthenticated
from taskdesk.features.permissions.filters import scope_clause
from taskdesk.features.permissions.principal import Principal
from taskdesk.features.permissions.resolver import resolve_scope
from taskdesk.features.permissions.schema import ACTIONS, get_permission
from taskdesk.features.users.auth import create_token_pair, verify_token
from taskdesk.features.users.dependencies import (
    get_current_principal,
    get_current_user,
    limiter,
    require_principal,
)
from taskdesk.features.users.models import User
from taskdesk.features.users.schemas import (
    AssignUserRequest,
    MyPermissionsResponse,
    ProfileUpdate,
    RefreshRequest,
    StatusTransitionsResponse,
    StatusUpdate,
    TokenPair,
    UserInvite,
    UserResponse,
    UserUpdate,
)
from taskdesk.utils import get_logger


log = get_logger(__name__)
router = APIRouter(tags=["users"])
auth_router = APIRouter(tags=["auth"])


async def get_user_or_404(db: AsyncSession, user_id: str) -> User:
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()

    if user is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found"
        )
    return user


# ============================================================================
# Auth
# ============================================================================

@auth_router.post("/refresh", response_model=TokenPair)
@limiter.limit("30/minute", key_func=get_remote_address)
async def refresh_tokens(
    request: Request,
    body: RefreshRequest,
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Exchange a refresh token for a new access/refresh token pair."""
    payload = verify_token(body.refresh_token, "refresh")

    result = await db.execute(select(User).where(User.id == payload["sub"]))
    user = result.scalar_one_or_none()
    if user is None:
        raise Unauthenticated("Invalid token - user not found")

    return create_token_pair(user.id, user.email)


# ============================================================================
# Current user
# ============================================================================

@router.get("/me", response_model=UserResponse)
async def get_current_user_profile(
    user: Annotated[User, Depends(get_current_user)]
):
    """Get current authenticated user's profile."""
    return user


@router.patch("/me", response_model=UserResponse)
async def update_current_user_profile(
    update_data: ProfileUpdate,
    principal: Annotated[Principal, Depends(require_principal)],
    user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Update current user's profile."""
    if update_data.name is not None:
        user.name = update_data.name

    await db.commit()
    await db.refresh(user)
    return user


@router.get("/me/permissions", response_model=MyPermissionsResponse)
async def get_my_permissions(
    principal: Annotated[Principal, Depends(get_current_principal)]
):
    """
    Get the current user's permission record and the effective scope of
    every action. Blocked accounts get an empty effective map.
    """
    gate = check_access(principal)

    effective = {}
    if gate:
        for spec in ACTIONS.values():
            token = get_permission(principal, spec.resource_group, spec.action)
            effective[spec.key] = resolve_scope(principal, token, spec.resource_group).scope.value

    return MyPermissionsResponse(
        user_id=principal.id,
        account_status=principal.account_status,
        scope_limited=gate.scope_limited,
        department_id=principal.department_id,
        position_id=principal.position_id,
        position_level=principal.position_level,
        permissions=principal.permissions.to_json() if principal.permissions is not None else None,
        effective=effective,
    )


# ============================================================================
# User directory
# ============================================================================

@router.get("/", response_model=list[UserResponse])
async def list_users(
    principal: Annotated[Principal, Depends(require_principal)],
    db: Annotated[AsyncSession, Depends(get_db)],
    account_status: Optional[AccountStatus] = Query(None, alias="status"),
    department_id: Optional[str] = None,
    search: Optional[str] = Query(None, max_length=255),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200)
):
    """List the users the caller may view, with optional filters."""
    decision = ensure_allowed(authorize(principal, "view_details", "user"))

    query = select(User).where(scope_clause(decision.predicate))

    if account_status is not None:
        query = query.where(User.account_status == account_status)
    if department_id:
        query = query.where(User.department_id == department_id)
    if search:
        pattern = f"%{search}%"
        query = query.where(or_(User.name.ilike(pattern), User.email.ilike(pattern)))

    query = query.order_by(User.created_at.desc()).offset(skip).limit(limit)
    result = await db.execute(query)
    return result.scalars().all()


@router.post("/", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def invite_user(
    invite: UserInvite,
    request: Request,
    principal: Annotated[Principal, Depends(require_permission("user", "invite"))],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """
    Invite a new account.

    The account starts in PENDING_VERIFICATION; verifying it moves it to
    UNASSIGNED, and assigning a department and position activates it.
    """
    result = await db.execute(select(User).where(User.email == invite.email))
    if result.scalar_one_or_none() is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="User already exists with this email"
        )

    user = User(
        email=invite.email,
        name=invite.name,
        account_status=AccountStatus.PENDING_VERIFICATION,
        email_verified=False,
    )
    db.add(user)
    await db.flush()

    await create_audit_log(db, principal, "invite", "user", user.id, {"email": user.email}, request)
    await db.commit()
    await db.refresh(user)

    log.info("User %s invited by %s", user.id, principal.id)
    return user


@router.get("/{user_id}", response_model=UserResponse)
async def get_user_by_id(
    user_id: str,
    principal: Annotated[Principal, Depends(require_principal)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Get a user's profile, if it is within the caller's view scope."""
    user = await get_user_or_404(db, user_id)
    ensure_visible(authorize(principal, "view_details", "user", user.as_resource()), "User not found")
    return user


@router.patch("/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: str,
    update_data: UserUpdate,
    request: Request,
    principal: Annotated[Principal, Depends(require_principal)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Update another user's profile and personal workspace limits."""
    user = await get_user_or_404(db, user_id)
    ensure_allowed(authorize(principal, "edit", "user", user.as_resource()))

    changes = update_data.model_dump(exclude_unset=True)
    for key, value in changes.items():
        setattr(user, key, value)

    await create_audit_log(db, principal, "update", "user", user.id, changes, request)
    await db.commit()
    await db.refresh(user)
    return user


# ============================================================================
# Account administration
# ============================================================================

@router.get("/{user_id}/status", response_model=StatusTransitionsResponse)
async def get_user_status(
    user_id: str,
    principal: Annotated[Principal, Depends(require_principal)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Get a user's status and the statuses it can move to."""
    user = await get_user_or_404(db, user_id)
    ensure_visible(authorize(principal, "view_details", "user", user.as_resource()), "User not found")
    return StatusTransitionsResponse(
        user_id=user.id,
        account_status=user.account_status,
        allowed_transitions=get_allowed_transitions(user.account_status),
    )


@router.put("/{user_id}/status", response_model=UserResponse)
async def update_user_status(
    user_id: str,
    body: StatusUpdate,
    request: Request,
    principal: Annotated[Principal, Depends(require_principal)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """
    Change a user's account status.

    Moving an active user to UNASSIGNED removes them from their department.
    Verifying a pending account (to UNASSIGNED) marks the email verified.
    """
    user = await get_user_or_404(db, user_id)
    ensure_allowed(authorize(principal, "update_status", "user", user.as_resource()))

    previous = AccountStatus(user.account_status)
    new_status = body.status
    validate_transition(
        previous,
        new_status,
        assigned=user.department_id is not None and user.position_id is not None,
    )

    if previous == AccountStatus.PENDING_VERIFICATION and new_status == AccountStatus.UNASSIGNED:
        user.email_verified = True
        user.verified_at = datetime.now()
    if previous == AccountStatus.ACTIVE and new_status == AccountStatus.UNASSIGNED:
        user.department_id = None
        user.position_id = None

    user.account_status = new_status

    await create_audit_log(
        db, principal, "update_status", "user", user.id,
        {"from": previous.value, "to": new_status.value},
        request,
    )
    await db.commit()
    await db.refresh(user)
    return user


@router.put("/{user_id}/assign", response_model=UserResponse)
async def assign_user(
    user_id: str,
    body: AssignUserRequest,
    request: Request,
    principal: Annotated[Principal, Depends(require_principal)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """
    Place a user in a department and position, or remove them from one.

    Assigning activates UNASSIGNED accounts; removing moves ACTIVE accounts
    back to UNASSIGNED. Suspended accounts keep their status.
    """
    user = await get_user_or_404(db, user_id)
    ensure_allowed(authorize(principal, "assign", "user", user.as_resource()))

    if body.department_id is not None:
        if body.position_id is None:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="A position is required when assigning a department"
            )
        result = await db.execute(select(Position).where(Position.id == body.position_id))
        position = result.scalar_one_or_none()
        if position is None or position.department_id != body.department_id:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Position does not belong to this department"
            )
        target_status = AccountStatus.ACTIVE
    else:
        target_status = AccountStatus.UNASSIGNED

    previous = AccountStatus(user.account_status)
    if previous in (AccountStatus.PENDING_VERIFICATION, AccountStatus.ARCHIVED):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Cannot assign an account with status {previous.value}"
        )
    if previous == AccountStatus.SUSPENDED:
        target_status = previous
    validate_transition(previous, target_status, assigned=body.department_id is not None)

    user.department_id = body.department_id
    user.position_id = body.position_id if body.department_id is not None else None
    user.account_status = target_status

    await create_audit_log(
        db, principal, "assign", "user", user.id,
        {
            "department_id": user.department_id,
            "position_id": user.position_id,
            "status": target_status.value,
        },
        request,
    )
    await db.commit()
    await db.refresh(user)
    return user


@router.delete("/{user_id}")
async def delete_user(
    user_id: str,
    request: Request,
    principal: Annotated[Principal, Depends(require_principal)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Delete a user account and everything it owns."""
    user = await get_user_or_404(db, user_id)
    ensure_allowed(authorize(principal, "delete", "user", user.as_resource()))

    email = user.email
    await db.delete(user)
    await create_audit_log(db, principal, "delete", "user", user_id, {"email": email}, request)
    await db.commit()

    log.info("User %s deleted by %s", user_id, principal.id)
    return {"message": "User deleted successfully"}

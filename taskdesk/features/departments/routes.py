"""
Department feature routes: departments, their positions, and access
requests from unassigned users.
"""
from typing import Annotated, Optional
from datetime import datetime
from fastapi import APIRouter, Depends, HTTPException, Request, status, Query
from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from taskdesk.core.database.engine import get_db
from taskdesk.features.departments.models import (
    AccessRequest,
    AccessRequestStatus,
    Department,
    Position,
)
from taskdesk.features.departments.schemas import (
    AccessRequestCreate,
    AccessRequestListResponse,
    AccessRequestResponse,
    AccessRequestReview,
    DepartmentCreate,
    DepartmentResponse,
    DepartmentUpdate,
    PositionCreate,
    PositionResponse,
    PositionUpdate,
)
from taskdesk.features.permissions.account_status import AccountStatus, validate_transition
from taskdesk.features.permissions.dependencies import (
    create_audit_log,
    ensure_allowed,
    require_permission,
)
from taskdesk.features.permissions.engine import authorize
from taskdesk.features.permissions.principal import Principal
from taskdesk.features.users.dependencies import require_principal
from taskdesk.features.users.models import User
from taskdesk.utils import get_logger


log = get_logger(__name__)
router = APIRouter(tags=["departments"])


# ============================================================================
# Helpers
# ============================================================================

async def get_department_or_404(db: AsyncSession, department_id: str) -> Department:
    result = await db.execute(select(Department).where(Department.id == department_id))
    department = result.scalar_one_or_none()
    if department is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Department not found")
    return department


async def get_position_or_404(db: AsyncSession, position_id: str) -> Position:
    result = await db.execute(select(Position).where(Position.id == position_id))
    position = result.scalar_one_or_none()
    if position is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Position not found")
    return position


async def count_users(db: AsyncSession, *, department_id: Optional[str] = None, position_id: Optional[str] = None) -> int:
    query = select(func.count(User.id))
    if department_id is not None:
        query = query.where(User.department_id == department_id)
    if position_id is not None:
        query = query.where(User.position_id == position_id)
    return (await db.execute(query)).scalar_one()


async def department_response(db: AsyncSession, department: Department) -> DepartmentResponse:
    response = DepartmentResponse.model_validate(department)
    response.user_count = await count_users(db, department_id=department.id)
    response.position_count = len(department.positions)
    return response


async def position_response(db: AsyncSession, position: Position) -> PositionResponse:
    response = PositionResponse.model_validate(position)
    response.user_count = await count_users(db, position_id=position.id)
    return response


# ============================================================================
# Position Routes
# ============================================================================

@router.post("/positions", response_model=PositionResponse, status_code=status.HTTP_201_CREATED)
async def create_position(
    position_data: PositionCreate,
    request: Request,
    principal: Annotated[Principal, Depends(require_permission("position", "create"))],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Create a position inside a department (hierarchy editors only)."""
    await get_department_or_404(db, position_data.department_id)

    position = Position(
        name=position_data.name,
        level=position_data.level,
        department_id=position_data.department_id,
        permissions=position_data.permissions.to_json(),
    )
    db.add(position)
    try:
        await db.flush()
    except IntegrityError:
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Position with this name already exists in the department"
        )

    await create_audit_log(
        db, principal, "create", "position", position.id,
        {"name": position.name, "level": position.level, "department_id": position.department_id},
        request,
    )
    await db.commit()
    await db.refresh(position)
    return await position_response(db, position)


@router.get("/positions/{position_id}", response_model=PositionResponse)
async def get_position(
    position_id: str,
    principal: Annotated[Principal, Depends(require_permission("position", "view"))],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Get a position with its permission record."""
    position = await get_position_or_404(db, position_id)
    return await position_response(db, position)


@router.patch("/positions/{position_id}", response_model=PositionResponse)
async def update_position(
    position_id: str,
    update_data: PositionUpdate,
    request: Request,
    principal: Annotated[Principal, Depends(require_permission("position", "edit"))],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """
    Update a position's name, level or permissions.

    Holders of the position see the change on their next request.
    """
    position = await get_position_or_404(db, position_id)

    changes = update_data.model_dump(exclude_unset=True, exclude={"permissions"})
    for key, value in changes.items():
        setattr(position, key, value)
    if update_data.permissions is not None:
        position.permissions = update_data.permissions.to_json()
        changes["permissions"] = position.permissions

    try:
        await db.flush()
    except IntegrityError:
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Position with this name already exists in the department"
        )

    await create_audit_log(db, principal, "update", "position", position.id, changes, request)
    await db.commit()
    await db.refresh(position)
    return await position_response(db, position)


@router.delete("/positions/{position_id}")
async def delete_position(
    position_id: str,
    request: Request,
    principal: Annotated[Principal, Depends(require_permission("position", "delete"))],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Delete a position. Positions still held by users cannot be deleted."""
    position = await get_position_or_404(db, position_id)

    holders = await count_users(db, position_id=position.id)
    if holders > 0:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Cannot delete position with {holders} assigned user(s)"
        )

    name = position.name
    await db.delete(position)
    await create_audit_log(db, principal, "delete", "position", position_id, {"name": name}, request)
    await db.commit()
    return {"message": "Position deleted successfully"}


# ============================================================================
# Access Request Routes
# ============================================================================

@router.post("/access-requests", response_model=AccessRequestResponse, status_code=status.HTTP_201_CREATED)
async def create_access_request(
    request_data: AccessRequestCreate,
    principal: Annotated[Principal, Depends(require_principal)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Ask to join a department. Only unassigned accounts can request access."""
    if principal.account_status != AccountStatus.UNASSIGNED:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Only unassigned accounts can request department access"
        )

    await get_department_or_404(db, request_data.department_id)

    result = await db.execute(
        select(AccessRequest).where(
            AccessRequest.user_id == principal.id,
            AccessRequest.status.in_([AccessRequestStatus.PENDING, AccessRequestStatus.MORE_INFO_NEEDED])
        )
    )
    if result.scalars().first() is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="You already have an open access request"
        )

    access_request = AccessRequest(user_id=principal.id, **request_data.model_dump())
    db.add(access_request)
    await db.commit()
    await db.refresh(access_request)

    log.info("Access request %s created by %s", access_request.id, principal.id)
    return access_request


@router.get("/access-requests/mine", response_model=list[AccessRequestResponse])
async def list_my_access_requests(
    principal: Annotated[Principal, Depends(require_principal)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """List the current user's own access requests."""
    result = await db.execute(
        select(AccessRequest)
        .where(AccessRequest.user_id == principal.id)
        .order_by(AccessRequest.created_at.desc())
    )
    return result.scalars().all()


@router.get("/access-requests", response_model=AccessRequestListResponse)
async def list_access_requests(
    principal: Annotated[Principal, Depends(require_permission("department", "review_access"))],
    db: Annotated[AsyncSession, Depends(get_db)],
    request_status: Optional[AccessRequestStatus] = None,
    department_id: Optional[str] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200)
):
    """List access requests for review."""
    query = select(AccessRequest)
    if request_status is not None:
        query = query.where(AccessRequest.status == request_status)
    if department_id:
        query = query.where(AccessRequest.department_id == department_id)

    total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar_one()

    query = query.order_by(AccessRequest.created_at.desc()).offset(skip).limit(limit)
    result = await db.execute(query)
    return AccessRequestListResponse(items=result.scalars().all(), total=total)


@router.put("/access-requests/{request_id}", response_model=AccessRequestResponse)
async def review_access_request(
    request_id: str,
    review: AccessRequestReview,
    request: Request,
    principal: Annotated[Principal, Depends(require_permission("department", "review_access"))],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """
    Approve, reject, or ask for more information on an access request.

    Approval places the user in the requested department with the given
    position and activates the account.
    """
    result = await db.execute(select(AccessRequest).where(AccessRequest.id == request_id))
    access_request = result.scalar_one_or_none()
    if access_request is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Access request not found")

    if access_request.status in (AccessRequestStatus.APPROVED, AccessRequestStatus.REJECTED):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Access request already {access_request.status.value.lower()}"
        )

    if review.status == AccessRequestStatus.APPROVED:
        user = access_request.user
        ensure_allowed(authorize(principal, "assign", "user", user.as_resource()))

        if review.position_id is None:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="A position is required to approve an access request"
            )
        position = await get_position_or_404(db, review.position_id)
        if position.department_id != access_request.department_id:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Position does not belong to the requested department"
            )

        current = AccountStatus(user.account_status)
        if current != AccountStatus.UNASSIGNED:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"Cannot approve access for an account with status {current.value}"
            )
        validate_transition(current, AccountStatus.ACTIVE, assigned=True)
        user.department_id = access_request.department_id
        user.position_id = position.id
        user.account_status = AccountStatus.ACTIVE

    access_request.status = review.status
    access_request.review_notes = review.review_notes
    access_request.reviewed_by_id = principal.id
    access_request.reviewed_at = datetime.now()

    await create_audit_log(
        db, principal, "review_access", "access_request", access_request.id,
        {"status": review.status.value, "user_id": access_request.user_id, "position_id": review.position_id},
        request,
    )
    await db.commit()
    await db.refresh(access_request)
    return access_request


# ============================================================================
# Department Routes
# ============================================================================

@router.get("/", response_model=list[DepartmentResponse])
async def list_departments(
    principal: Annotated[Principal, Depends(require_permission("department", "view"))],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """List all departments with member and position counts."""
    result = await db.execute(select(Department).order_by(Department.name))
    return [await department_response(db, department) for department in result.scalars().all()]


@router.post("/", response_model=DepartmentResponse, status_code=status.HTTP_201_CREATED)
async def create_department(
    department_data: DepartmentCreate,
    request: Request,
    principal: Annotated[Principal, Depends(require_permission("department", "create"))],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Create a new department."""
    result = await db.execute(select(Department).where(Department.name == department_data.name))
    if result.scalar_one_or_none() is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Department with this name already exists"
        )

    department = Department(**department_data.model_dump())
    db.add(department)
    await db.flush()

    await create_audit_log(
        db, principal, "create", "department", department.id,
        department_data.model_dump(), request,
    )
    await db.commit()
    await db.refresh(department)
    return await department_response(db, department)


@router.get("/{department_id}", response_model=DepartmentResponse)
async def get_department(
    department_id: str,
    principal: Annotated[Principal, Depends(require_permission("department", "view"))],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Get a department by ID."""
    department = await get_department_or_404(db, department_id)
    return await department_response(db, department)


@router.get("/{department_id}/positions", response_model=list[PositionResponse])
async def list_department_positions(
    department_id: str,
    principal: Annotated[Principal, Depends(require_permission("position", "view"))],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """List a department's positions, highest authority (level 1) first."""
    await get_department_or_404(db, department_id)
    result = await db.execute(
        select(Position)
        .where(Position.department_id == department_id)
        .order_by(Position.level, Position.name)
    )
    return [await position_response(db, position) for position in result.scalars().all()]


@router.patch("/{department_id}", response_model=DepartmentResponse)
async def update_department(
    department_id: str,
    update_data: DepartmentUpdate,
    request: Request,
    principal: Annotated[Principal, Depends(require_permission("department", "edit"))],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Update a department's name or description."""
    department = await get_department_or_404(db, department_id)

    changes = update_data.model_dump(exclude_unset=True)
    for key, value in changes.items():
        setattr(department, key, value)

    try:
        await db.flush()
    except IntegrityError:
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Department with this name already exists"
        )

    await create_audit_log(db, principal, "update", "department", department.id, changes, request)
    await db.commit()
    await db.refresh(department)
    return await department_response(db, department)


@router.delete("/{department_id}")
async def delete_department(
    department_id: str,
    request: Request,
    principal: Annotated[Principal, Depends(require_permission("department", "delete"))],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Delete a department and its positions. Departments with users cannot be deleted."""
    department = await get_department_or_404(db, department_id)

    members = await count_users(db, department_id=department.id)
    if members > 0:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Cannot delete department with {members} assigned user(s)"
        )

    name = department.name
    await db.delete(department)
    await create_audit_log(db, principal, "delete", "department", department_id, {"name": name}, request)
    await db.commit()
    return {"message": "Department deleted successfully"}

"""
Pydantic schemas for departments, positions and access requests.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, ConfigDict, field_validator

from taskdesk.features.departments.models import AccessRequestStatus
from taskdesk.features.permissions.schema import PositionPermissions


# ============================================================================
# Department Schemas
# ============================================================================

class DepartmentBrief(BaseModel):
    id: str
    name: str

    model_config = ConfigDict(from_attributes=True)


class DepartmentCreate(BaseModel):
    """Schema for creating a new department."""
    name: str = Field(..., min_length=1, max_length=100, description="Unique department name")
    description: str = Field("", max_length=1000)

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Department name is required")
        return v


class DepartmentUpdate(BaseModel):
    """Schema for updating a department."""
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=1000)

    @field_validator("name", "description")
    @classmethod
    def not_null(cls, v: Optional[str]) -> str:
        if v is None:
            raise ValueError("Field cannot be null")
        return v


class DepartmentResponse(BaseModel):
    """Schema for department response, with member and position counts."""
    id: str
    name: str
    description: str
    user_count: int = 0
    position_count: int = 0
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


# ============================================================================
# Position Schemas
# ============================================================================

class PositionBrief(BaseModel):
    id: str
    name: str
    level: int

    model_config = ConfigDict(from_attributes=True)


class PositionCreate(BaseModel):
    """Schema for creating a position. Omitted permissions mean no access."""
    name: str = Field(..., min_length=1, max_length=100)
    level: int = Field(..., ge=1, le=100, description="1 = highest authority")
    department_id: str
    permissions: PositionPermissions = PositionPermissions()


class PositionUpdate(BaseModel):
    """Schema for updating a position."""
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    level: Optional[int] = Field(None, ge=1, le=100)
    permissions: Optional[PositionPermissions] = None

    @field_validator("name", "level")
    @classmethod
    def not_null(cls, v):
        if v is None:
            raise ValueError("Field cannot be null")
        return v


class PositionResponse(BaseModel):
    """Schema for position response."""
    id: str
    name: str
    level: int
    department_id: str
    department: Optional[DepartmentBrief] = None
    permissions: Dict[str, Any]
    user_count: int = 0
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


# ============================================================================
# Access Request Schemas
# ============================================================================

class AccessRequestCreate(BaseModel):
    """Schema for an unassigned user asking to join a department."""
    department_id: str
    reason: str = Field(..., min_length=1, max_length=1000)
    supervisor_name: Optional[str] = Field(None, max_length=255)


class AccessRequestReview(BaseModel):
    """
    Schema for reviewing an access request.

    Approving requires the position the user will hold.
    """
    status: AccessRequestStatus
    position_id: Optional[str] = None
    review_notes: Optional[str] = Field(None, max_length=1000)

    @field_validator("status")
    @classmethod
    def not_pending(cls, v: AccessRequestStatus) -> AccessRequestStatus:
        if v == AccessRequestStatus.PENDING:
            raise ValueError("Review must approve, reject or ask for more information")
        return v


class AccessRequestResponse(BaseModel):
    id: str
    user_id: str
    department_id: str
    department: Optional[DepartmentBrief] = None
    reason: str
    supervisor_name: Optional[str] = None
    status: AccessRequestStatus
    reviewed_by_id: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    review_notes: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AccessRequestListResponse(BaseModel):
    items: List[AccessRequestResponse]
    total: int

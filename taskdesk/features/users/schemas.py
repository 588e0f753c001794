"""
Pydantic schemas for user-related requests and responses.
"""
from datetime import datetime
from typing import Any, Dict, Optional
from pydantic import BaseModel, EmailStr, Field, ConfigDict, field_validator

from taskdesk.features.departments.schemas import DepartmentBrief, PositionBrief
from taskdesk.features.permissions.account_status import AccountStatus


class UserInvite(BaseModel):
    """Schema for inviting a new account. It starts pending verification."""
    email: EmailStr
    name: Optional[str] = Field(None, min_length=1, max_length=255)

    @field_validator("email")
    @classmethod
    def email_lowercase(cls, v: str) -> str:
        return v.lower()


class UserUpdate(BaseModel):
    """Schema for updating another user's profile and workspace limits."""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    can_create_personal_projects: Optional[bool] = None
    personal_project_limit: Optional[int] = Field(None, ge=0, le=1000)

    @field_validator("can_create_personal_projects", "personal_project_limit")
    @classmethod
    def not_null(cls, v):
        if v is None:
            raise ValueError("Field cannot be null")
        return v


class ProfileUpdate(BaseModel):
    """Schema for updating the current user's own profile."""
    name: Optional[str] = Field(None, min_length=1, max_length=255)


class UserResponse(BaseModel):
    """Schema for user responses."""
    id: str
    email: EmailStr
    name: Optional[str] = None
    account_status: AccountStatus
    email_verified: bool
    verified_at: Optional[datetime] = None
    department_id: Optional[str] = None
    position_id: Optional[str] = None
    department: Optional[DepartmentBrief] = None
    position: Optional[PositionBrief] = None
    can_create_personal_projects: bool
    personal_project_limit: int
    last_login_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class UserPublic(BaseModel):
    """Public user information (limited fields)."""
    id: str
    name: Optional[str] = None
    department_id: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class StatusUpdate(BaseModel):
    """Schema for changing a user's account status."""
    status: AccountStatus


class AssignUserRequest(BaseModel):
    """
    Schema for placing a user in a department and position.

    Leaving department_id empty removes the user from their department.
    """
    department_id: Optional[str] = None
    position_id: Optional[str] = None


class StatusTransitionsResponse(BaseModel):
    user_id: str
    account_status: AccountStatus
    allowed_transitions: list[AccountStatus]


class MyPermissionsResponse(BaseModel):
    """Current principal's authorization context."""
    user_id: str
    account_status: AccountStatus
    scope_limited: bool
    department_id: Optional[str] = None
    position_id: Optional[str] = None
    position_level: Optional[int] = None
    permissions: Optional[Dict[str, Any]] = None
    effective: Dict[str, str] = {}


class RefreshRequest(BaseModel):
    refresh_token: str = Field(..., min_length=1)


class TokenPair(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"

"""
Pydantic schemas for projects and project membership.
"""
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field, ConfigDict, field_validator

from taskdesk.features.projects.models import ProjectRole, ProjectStatus, ProjectType, Visibility


class ProjectCreate(BaseModel):
    """Schema for creating a project."""
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=5000)
    color: Optional[str] = Field(None, pattern=r"^#[0-9A-Fa-f]{6}$", description="Hex color, e.g. #3B82F6")
    type: ProjectType = ProjectType.TEAM
    visibility: Visibility = Visibility.PRIVATE


class ProjectUpdate(BaseModel):
    """Schema for updating a project (all fields optional)."""
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=5000)
    color: Optional[str] = Field(None, pattern=r"^#[0-9A-Fa-f]{6}$")
    status: Optional[ProjectStatus] = None
    visibility: Optional[Visibility] = None

    @field_validator("name", "status", "visibility")
    @classmethod
    def not_null(cls, v):
        if v is None:
            raise ValueError("Field cannot be null")
        return v


class ProjectMemberAdd(BaseModel):
    user_id: str
    role: ProjectRole = ProjectRole.MEMBER


class ProjectMemberResponse(BaseModel):
    id: str
    user_id: str
    role: ProjectRole
    assigned_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ProjectResponse(BaseModel):
    """Schema for project response."""
    id: str
    name: str
    description: Optional[str] = None
    color: Optional[str] = None
    status: ProjectStatus
    type: ProjectType
    visibility: Visibility
    user_id: str
    creator_id: Optional[str] = None
    members: List[ProjectMemberResponse] = []
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)

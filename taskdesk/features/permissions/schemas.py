"""
Pydantic schemas for permission checks, the action vocabulary and audit logs.
"""
from datetime import datetime
from typing import Dict, Any, List, Optional
from pydantic import BaseModel, Field, ConfigDict


# ============================================================================
# Permission Check Schemas
# ============================================================================

class PermissionCheckRequest(BaseModel):
    """Schema for checking whether the current user may perform an action."""
    resource_group: str = Field(..., description="project, task, user, department or position")
    action: str = Field(..., description="Action, camelCase or snake_case (e.g. 'assignUsers')")
    resource_id: Optional[str] = Field(
        None,
        description="Instance to check; for task creation the parent project, for subtasks the parent task"
    )


class PermissionCheckResponse(BaseModel):
    """Schema for permission check response."""
    allowed: bool
    action: str
    scope: Optional[str] = None
    reason: Optional[str] = None
    message: Optional[str] = None


# ============================================================================
# Vocabulary Schemas
# ============================================================================

class ActionDescription(BaseModel):
    resource_group: str
    action: str
    field: Optional[str] = None
    tokens: List[str]
    self_guarded: bool = False


class PermissionSchemaResponse(BaseModel):
    resource_groups: List[str]
    actions: List[ActionDescription]


# ============================================================================
# Audit Log Schemas
# ============================================================================

class AuditLogResponse(BaseModel):
    """Schema for audit log response."""
    id: str
    user_id: Optional[str]
    department_id: Optional[str] = None
    action: str
    resource_type: str
    resource_id: Optional[str]
    details: Optional[Dict[str, Any]]
    ip_address: Optional[str]
    user_agent: Optional[str]
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AuditLogListResponse(BaseModel):
    """Schema for paginated audit log list."""
    items: List[AuditLogResponse]
    total: int
    page: int
    page_size: int
    pages: int

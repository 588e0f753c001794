"""
Pydantic schemas for tasks, subtasks and task assignees.
"""
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field, ConfigDict, field_validator

from taskdesk.features.tasks.models import TaskPriority, TaskRole, TaskStatus


class SubtaskCreate(BaseModel):
    """Schema for creating a subtask; project and parent come from the parent task."""
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=5000)
    priority: TaskPriority = TaskPriority.MEDIUM
    due_date: Optional[datetime] = None
    tags: List[str] = []

    @field_validator("tags")
    @classmethod
    def strip_tags(cls, v: List[str]) -> List[str]:
        return [tag.strip() for tag in v if tag.strip()]


class TaskCreate(SubtaskCreate):
    """Schema for creating a task. Without project_id the task is standalone."""
    project_id: Optional[str] = None


class TaskUpdate(BaseModel):
    """Schema for updating a task (all fields optional)."""
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=5000)
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    due_date: Optional[datetime] = None
    position: Optional[int] = Field(None, ge=0)
    tags: Optional[List[str]] = None

    @field_validator("title", "status", "priority", "position", "tags")
    @classmethod
    def not_null(cls, v):
        if v is None:
            raise ValueError("Field cannot be null")
        return v


class TaskAssigneeAdd(BaseModel):
    user_id: str
    role: TaskRole = TaskRole.ASSIGNEE


class TaskAssigneeResponse(BaseModel):
    id: str
    user_id: str
    role: TaskRole
    assigned_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TaskResponse(BaseModel):
    """Schema for task response."""
    id: str
    title: str
    description: Optional[str] = None
    status: TaskStatus
    priority: TaskPriority
    due_date: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    position: int
    tags: List[str] = []
    user_id: str
    creator_id: Optional[str] = None
    project_id: Optional[str] = None
    parent_task_id: Optional[str] = None
    assignees: List[TaskAssigneeResponse] = []
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)

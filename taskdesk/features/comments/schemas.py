"""
Pydantic schemas for task comments.
"""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field, ConfigDict

from taskdesk.features.users.schemas import UserPublic


class CommentCreate(BaseModel):
    task_id: str = Field(..., min_length=1)
    content: str = Field(..., min_length=1, max_length=2000)


class CommentUpdate(BaseModel):
    content: str = Field(..., min_length=1, max_length=2000)


class CommentResponse(BaseModel):
    """Schema for comment response, with its author."""
    id: str
    content: str
    task_id: str
    user_id: str
    author: Optional[UserPublic] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)

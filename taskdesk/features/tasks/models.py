"""
Task models.

Tasks can be standalone or belong to a project, and can have subtasks.
Like projects they carry an owner (user_id) and an original creator
(creator_id). Assignees are recorded in task_users.
"""
import enum
from datetime import datetime
from typing import Any
from sqlalchemy import String, ForeignKey, Text, Integer, JSON, UniqueConstraint, DateTime, Enum as SQLEnum, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from taskdesk.core.database.base import Base, TimestampMixin, generate_ulid
from taskdesk.features.permissions.resolver import ResourceRef


class TaskStatus(str, enum.Enum):
    TODO = "TODO"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class TaskPriority(str, enum.Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"


class TaskRole(str, enum.Enum):
    OWNER = "OWNER"
    ASSIGNEE = "ASSIGNEE"
    VIEWER = "VIEWER"


class Task(Base, TimestampMixin):
    """Task model."""
    __tablename__ = "tasks"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[TaskStatus] = mapped_column(
        SQLEnum(TaskStatus), default=TaskStatus.TODO, nullable=False, index=True
    )
    priority: Mapped[TaskPriority] = mapped_column(
        SQLEnum(TaskPriority), default=TaskPriority.MEDIUM, nullable=False
    )
    due_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    tags: Mapped[list[Any]] = mapped_column(JSON, default=list, nullable=False)

    # Current owner, compared by the "own" scope
    user_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    # Original creator, never reassigned
    creator_id: Mapped[str | None] = mapped_column(
        String(26), ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
    )

    project_id: Mapped[str | None] = mapped_column(
        String(26), ForeignKey("projects.id", ondelete="CASCADE"), nullable=True, index=True
    )
    parent_task_id: Mapped[str | None] = mapped_column(
        String(26), ForeignKey("tasks.id", ondelete="CASCADE"), nullable=True, index=True
    )

    # Relationships
    creator: Mapped["User"] = relationship(  # type: ignore
        "User", foreign_keys=[creator_id], lazy="selectin"
    )
    assignees: Mapped[list["TaskUser"]] = relationship(
        "TaskUser",
        back_populates="task",
        cascade="all, delete-orphan",
        lazy="selectin"
    )

    def as_resource(self) -> ResourceRef:
        return ResourceRef(
            id=self.id,
            user_id=self.user_id,
            creator_department_id=self.creator.department_id if self.creator is not None else None,
            assignee_ids=frozenset(assignee.user_id for assignee in self.assignees),
        )

    def __repr__(self) -> str:
        return f"<Task(id={self.id}, title={self.title!r}, owner={self.user_id})>"


class TaskUser(Base):
    """Assignment of a user to a task."""
    __tablename__ = "task_users"
    __table_args__ = (
        UniqueConstraint("task_id", "user_id", name="uq_task_users_task_user"),
    )

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    role: Mapped[TaskRole] = mapped_column(
        SQLEnum(TaskRole), default=TaskRole.ASSIGNEE, nullable=False
    )
    assigned_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    task_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )

    task: Mapped["Task"] = relationship("Task", back_populates="assignees", lazy="noload")

    def __repr__(self) -> str:
        return f"<TaskUser(task_id={self.task_id}, user_id={self.user_id}, role={self.role})>"

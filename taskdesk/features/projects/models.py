"""
Project models.

Projects carry an owner (user_id, may change hands) and a creator
(creator_id, set once). Team membership is recorded in project_users.
"""
import enum
from sqlalchemy import String, ForeignKey, Text, UniqueConstraint, DateTime, Enum as SQLEnum, func
from sqlalchemy.orm import Mapped, mapped_column, relationship
from datetime import datetime

from taskdesk.core.database.base import Base, TimestampMixin, generate_ulid
from taskdesk.features.permissions.resolver import ResourceRef


class ProjectStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    ARCHIVED = "ARCHIVED"


class ProjectType(str, enum.Enum):
    PERSONAL = "PERSONAL"
    TEAM = "TEAM"


class Visibility(str, enum.Enum):
    PRIVATE = "PRIVATE"
    INTERNAL = "INTERNAL"
    PUBLIC = "PUBLIC"


class ProjectRole(str, enum.Enum):
    OWNER = "OWNER"
    ADMIN = "ADMIN"
    MEMBER = "MEMBER"
    VIEWER = "VIEWER"


class Project(Base, TimestampMixin):
    """Project model."""
    __tablename__ = "projects"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    name: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    color: Mapped[str | None] = mapped_column(String(7), nullable=True)
    status: Mapped[ProjectStatus] = mapped_column(
        SQLEnum(ProjectStatus), default=ProjectStatus.ACTIVE, nullable=False, index=True
    )
    type: Mapped[ProjectType] = mapped_column(
        SQLEnum(ProjectType), default=ProjectType.TEAM, nullable=False
    )
    visibility: Mapped[Visibility] = mapped_column(
        SQLEnum(Visibility), default=Visibility.PRIVATE, nullable=False
    )

    # Current owner, compared by the "own" scope
    user_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    # Original creator, never reassigned
    creator_id: Mapped[str | None] = mapped_column(
        String(26), ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
    )

    # Relationships
    creator: Mapped["User"] = relationship(  # type: ignore
        "User", foreign_keys=[creator_id], lazy="selectin"
    )
    members: Mapped[list["ProjectUser"]] = relationship(
        "ProjectUser",
        back_populates="project",
        cascade="all, delete-orphan",
        lazy="selectin"
    )

    def as_resource(self) -> ResourceRef:
        return ResourceRef(
            id=self.id,
            user_id=self.user_id,
            creator_department_id=self.creator.department_id if self.creator is not None else None,
            assignee_ids=frozenset(member.user_id for member in self.members),
        )

    def __repr__(self) -> str:
        return f"<Project(id={self.id}, name={self.name!r}, owner={self.user_id})>"


class ProjectUser(Base):
    """Team assignment of a user to a project."""
    __tablename__ = "project_users"
    __table_args__ = (
        UniqueConstraint("project_id", "user_id", name="uq_project_users_project_user"),
    )

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    role: Mapped[ProjectRole] = mapped_column(
        SQLEnum(ProjectRole), default=ProjectRole.MEMBER, nullable=False
    )
    assigned_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    project_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )

    project: Mapped["Project"] = relationship("Project", back_populates="members", lazy="noload")

    def __repr__(self) -> str:
        return f"<ProjectUser(project_id={self.project_id}, user_id={self.user_id}, role={self.role})>"

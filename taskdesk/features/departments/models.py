"""
Department, position and access request models.

Departments own positions; each position carries a numeric level
(1 = highest authority) and a permission record stored as JSON.
"""
from datetime import datetime
from typing import Any, Dict
import enum
from sqlalchemy import String, ForeignKey, Integer, JSON, Text, UniqueConstraint, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from taskdesk.core.database.base import Base, TimestampMixin, generate_ulid
from taskdesk.features.permissions.schema import PositionPermissions


class Department(Base, TimestampMixin):
    """
    Department model.

    A department with assigned users cannot be deleted.
    """
    __tablename__ = "departments"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")

    # Relationships
    positions: Mapped[list["Position"]] = relationship(
        "Position",
        back_populates="department",
        cascade="all, delete-orphan",
        order_by="Position.level",
        lazy="selectin"
    )

    users: Mapped[list["User"]] = relationship(  # type: ignore
        "User",
        back_populates="department",
        lazy="noload"
    )

    def __repr__(self) -> str:
        return f"<Department(id={self.id}, name={self.name!r})>"


class Position(Base, TimestampMixin):
    """
    Position model: a named role inside one department.

    A position with assigned users cannot be deleted.
    """
    __tablename__ = "positions"
    __table_args__ = (
        UniqueConstraint("department_id", "name", name="uq_positions_department_name"),
    )

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    level: Mapped[int] = mapped_column(Integer, nullable=False, index=True)

    department_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("departments.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    # Stored in the camelCase wire form of PositionPermissions
    permissions: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    # Relationships
    department: Mapped["Department"] = relationship(
        "Department",
        back_populates="positions",
        lazy="selectin"
    )

    users: Mapped[list["User"]] = relationship(  # type: ignore
        "User",
        back_populates="position",
        lazy="noload"
    )

    @property
    def typed_permissions(self) -> PositionPermissions:
        return PositionPermissions.model_validate(self.permissions or {})

    def __repr__(self) -> str:
        return f"<Position(id={self.id}, name={self.name!r}, level={self.level}, dept_id={self.department_id})>"


class AccessRequestStatus(str, enum.Enum):
    """Status of department access requests."""
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    MORE_INFO_NEEDED = "MORE_INFO_NEEDED"


class AccessRequest(Base, TimestampMixin):
    """
    Request from an unassigned user to join a department.

    Reviewers holding department management permission approve it (assigning
    a position and activating the account) or reject it.
    """
    __tablename__ = "access_requests"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    user_id: Mapped[str] = mapped_column(String(26), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    department_id: Mapped[str] = mapped_column(String(26), ForeignKey("departments.id", ondelete="CASCADE"), nullable=False, index=True)

    reason: Mapped[str] = mapped_column(String(1000), nullable=False)
    supervisor_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    status: Mapped[AccessRequestStatus] = mapped_column(
        SQLEnum(AccessRequestStatus),
        default=AccessRequestStatus.PENDING,
        nullable=False,
        index=True
    )

    # Reviewer response
    reviewed_by_id: Mapped[str | None] = mapped_column(String(26), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    review_notes: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    # Relationships
    user: Mapped["User"] = relationship("User", foreign_keys=[user_id], lazy="selectin")  # type: ignore
    department: Mapped["Department"] = relationship("Department", lazy="selectin")

    def __repr__(self) -> str:
        return f"<AccessRequest(id={self.id}, user_id={self.user_id}, dept_id={self.department_id}, status={self.status})>"

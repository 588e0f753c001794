"""
User model with ULID primary keys.
"""
from datetime import datetime
from sqlalchemy import String, Boolean, ForeignKey, Integer, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from taskdesk.core import config
from taskdesk.core.database.base import Base, TimestampMixin, generate_ulid
from taskdesk.features.permissions.account_status import AccountStatus
from taskdesk.features.permissions.resolver import ResourceRef


class User(Base, TimestampMixin):
    """
    User model representing an account.

    The account status lives here and is re-read on every request, so a
    status change takes effect on the next request without revoking tokens.
    """
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    # User information
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Account lifecycle
    account_status: Mapped[AccountStatus] = mapped_column(
        SQLEnum(AccountStatus),
        default=AccountStatus.PENDING_VERIFICATION,
        nullable=False,
        index=True
    )
    email_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    verified_at: Mapped[datetime | None] = mapped_column(nullable=True)

    # Organizational placement
    department_id: Mapped[str | None] = mapped_column(
        String(26),
        ForeignKey("departments.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )
    position_id: Mapped[str | None] = mapped_column(
        String(26),
        ForeignKey("positions.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )

    # Personal workspace limits
    can_create_personal_projects: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    personal_project_limit: Mapped[int] = mapped_column(
        Integer, default=config.PERSONAL_PROJECT_LIMIT, nullable=False
    )

    # Track last login
    last_login_at: Mapped[datetime | None] = mapped_column(nullable=True)

    # Relationships
    department: Mapped["Department"] = relationship(  # type: ignore
        "Department",
        back_populates="users",
        lazy="selectin"
    )

    position: Mapped["Position"] = relationship(  # type: ignore
        "Position",
        back_populates="users",
        lazy="selectin"
    )

    def as_resource(self) -> ResourceRef:
        """Authorization view of this user as the target of a user-group action."""
        position = self.position
        return ResourceRef(
            id=self.id,
            user_id=self.id,
            department_id=position.department_id if position is not None else self.department_id,
            position_level=position.level if position is not None else None,
        )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email!r}, status={self.account_status})>"

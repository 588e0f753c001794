"""
Audit log of administrative actions.

Authorization checks themselves have no side effects; the operations they
guard (status changes, assignments, department and position edits,
deletions) leave an entry here, written in the same transaction.
"""
from typing import Any, Dict
from sqlalchemy import String, ForeignKey, JSON, Index
from sqlalchemy.orm import Mapped, mapped_column

from taskdesk.core.database.base import Base, TimestampMixin, generate_ulid


class AuditLog(Base, TimestampMixin):
    """
    One administrative action: the actor and the department they acted
    from, the action and its target, and the request it came in on.
    """
    __tablename__ = "audit_logs"
    __table_args__ = (
        Index("ix_audit_logs_resource", "resource_type", "resource_id"),
    )

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    # Actor, kept when the account or department is later removed
    user_id: Mapped[str | None] = mapped_column(
        String(26),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )
    department_id: Mapped[str | None] = mapped_column(
        String(26),
        ForeignKey("departments.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )

    # What was done
    action: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    resource_type: Mapped[str] = mapped_column(String(50), nullable=False)
    resource_id: Mapped[str | None] = mapped_column(String(26), nullable=True)
    details: Mapped[Dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    # Request context
    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(255), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<AuditLog(id={self.id}, user_id={self.user_id}, action={self.action}, "
            f"target={self.resource_type}:{self.resource_id})>"
        )

"""
Task comment model.
"""
from sqlalchemy import String, ForeignKey, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from taskdesk.core.database.base import Base, TimestampMixin, generate_ulid


class Comment(Base, TimestampMixin):
    """A comment left on a task. Only its author may change it."""
    __tablename__ = "comments"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    content: Mapped[str] = mapped_column(Text, nullable=False)

    task_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )

    author: Mapped["User"] = relationship("User", lazy="selectin")  # type: ignore

    def __repr__(self) -> str:
        return f"<Comment(id={self.id}, task_id={self.task_id}, user_id={self.user_id})>"

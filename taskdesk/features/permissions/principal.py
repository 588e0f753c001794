"""
The authenticated actor a permission check is made for.
"""
from dataclasses import dataclass
from typing import Optional

from taskdesk.features.permissions.account_status import AccountStatus
from taskdesk.features.permissions.schema import PositionPermissions


@dataclass(frozen=True)
class Principal:
    """
    Snapshot of a user's identity and authorization context.

    Built per request from the verified token subject plus a fresh read of the
    user row; the token itself carries identity only, never status.
    """
    id: str
    account_status: AccountStatus
    department_id: Optional[str] = None
    position_id: Optional[str] = None
    position_level: Optional[int] = None
    permissions: Optional[PositionPermissions] = None

    @property
    def has_position(self) -> bool:
        return self.position_id is not None and self.permissions is not None

    @classmethod
    def from_user(cls, user) -> "Principal":
        """
        Build a principal from a loaded User row (with its position relationship).

        A position id pointing at a missing position leaves the principal
        without permissions, which the lookup treats as most restrictive.
        """
        position = user.position
        permissions = None
        level = None
        if position is not None:
            permissions = PositionPermissions.model_validate(position.permissions or {})
            level = position.level

        return cls(
            id=user.id,
            account_status=AccountStatus(user.account_status),
            department_id=user.department_id,
            position_id=user.position_id if position is not None else None,
            position_level=level,
            permissions=permissions,
        )

"""Account lifecycle states, their transitions, and the status gate.

The gate runs before any permission evaluation:
- PENDING_VERIFICATION, SUSPENDED and ARCHIVED accounts may not act at all
- UNASSIGNED accounts may act but are capped at "own" scope
- ACTIVE accounts get full evaluation
"""
import enum
from dataclasses import dataclass
from typing import Optional

from taskdesk.features.permissions.errors import DenialReason, Unauthenticated
from taskdesk.utils import get_logger


log = get_logger(__name__)


class AccountStatus(str, enum.Enum):
    """Lifecycle state of a user account."""
    PENDING_VERIFICATION = "PENDING_VERIFICATION"
    UNASSIGNED = "UNASSIGNED"
    ACTIVE = "ACTIVE"
    SUSPENDED = "SUSPENDED"
    ARCHIVED = "ARCHIVED"


class StatusTransitionError(Exception):
    """Raised when an invalid account status transition is attempted."""

    def __init__(
        self,
        message: str,
        current_status: AccountStatus,
        requested_status: AccountStatus,
        allowed_transitions: list[AccountStatus]
    ):
        super().__init__(message)
        self.current_status = current_status
        self.requested_status = requested_status
        self.allowed_transitions = allowed_transitions


# Maps current status -> statuses it may move to (excluding the no-op)
TRANSITION_MATRIX: dict[AccountStatus, list[AccountStatus]] = {
    AccountStatus.PENDING_VERIFICATION: [
        AccountStatus.UNASSIGNED,   # email verified
        AccountStatus.ARCHIVED,
    ],
    AccountStatus.UNASSIGNED: [
        AccountStatus.ACTIVE,       # assigned to department + position
        AccountStatus.ARCHIVED,
    ],
    AccountStatus.ACTIVE: [
        AccountStatus.SUSPENDED,
        AccountStatus.UNASSIGNED,   # removed from department
        AccountStatus.ARCHIVED,
    ],
    AccountStatus.SUSPENDED: [
        AccountStatus.ACTIVE,
        AccountStatus.ARCHIVED,
    ],
    # Terminal
    AccountStatus.ARCHIVED: [],
}

# Statuses that need a department and a position to be entered
REQUIRES_ASSIGNMENT = frozenset({AccountStatus.ACTIVE})


def is_transition_valid(current_status: AccountStatus, new_status: AccountStatus) -> bool:
    """Check if a status transition is valid. Setting the same status is always valid."""
    if current_status == new_status:
        return True
    return new_status in TRANSITION_MATRIX.get(current_status, [])


def get_allowed_transitions(current_status: AccountStatus) -> list[AccountStatus]:
    """Statuses reachable from current_status in one step."""
    return list(TRANSITION_MATRIX.get(current_status, []))


def validate_transition(
    current_status: AccountStatus,
    new_status: AccountStatus,
    *,
    assigned: bool = True,
) -> None:
    """
    Validate a status transition and raise if it is not allowed.

    Args:
        current_status: Current account status
        new_status: Requested account status
        assigned: Whether the account holds both a department and a position

    Raises:
        StatusTransitionError: If the transition is not allowed
    """
    if current_status == new_status:
        log.debug("No-op status transition: %s", current_status.value)
        return

    allowed = get_allowed_transitions(current_status)

    if new_status not in allowed:
        message = f"Invalid status transition: {current_status.value} -> {new_status.value}."
        if allowed:
            message += f" From {current_status.value} you can only move to: {', '.join(s.value for s in allowed)}."
        if current_status == AccountStatus.ARCHIVED:
            message += " Archived accounts are terminal and cannot be reactivated."
        elif current_status == AccountStatus.PENDING_VERIFICATION:
            message += " The account must verify its email address first."
        log.warning("Blocked status transition: %s", message)
        raise StatusTransitionError(message, current_status, new_status, allowed)

    if new_status in REQUIRES_ASSIGNMENT and not assigned:
        message = (
            f"Cannot move account to {new_status.value}: "
            "it must be assigned to a department and position first."
        )
        log.warning("Blocked status transition: %s", message)
        raise StatusTransitionError(message, current_status, new_status, allowed)

    log.debug("Valid status transition: %s -> %s", current_status.value, new_status.value)


# ============================================================================
# Status gate
# ============================================================================

DENIED_STATUSES: dict[AccountStatus, tuple[DenialReason, str]] = {
    AccountStatus.PENDING_VERIFICATION: (
        DenialReason.ACCOUNT_PENDING_VERIFICATION,
        "Account pending email verification. Verify your email address to continue.",
    ),
    AccountStatus.SUSPENDED: (
        DenialReason.ACCOUNT_SUSPENDED,
        "Account suspended. Contact administrator.",
    ),
    AccountStatus.ARCHIVED: (
        DenialReason.ACCOUNT_ARCHIVED,
        "Account archived. Contact administrator.",
    ),
}


@dataclass(frozen=True)
class AccessCheck:
    """Result of the status gate."""
    allowed: bool
    status: AccountStatus
    reason: Optional[DenialReason] = None
    message: Optional[str] = None
    scope_limited: bool = False

    def __bool__(self) -> bool:
        return self.allowed


def check_access(principal) -> AccessCheck:
    """
    Decide whether a principal may act at all.

    Raises:
        Unauthenticated: If there is no principal
    """
    if principal is None:
        raise Unauthenticated("User not authenticated")

    status = AccountStatus(principal.account_status)

    if status in DENIED_STATUSES:
        reason, message = DENIED_STATUSES[status]
        return AccessCheck(allowed=False, status=status, reason=reason, message=message)

    return AccessCheck(
        allowed=True,
        status=status,
        scope_limited=status == AccountStatus.UNASSIGNED,
    )

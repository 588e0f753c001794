"""
Error surface of the authorization engine.

Only programming errors and authentication failures are exceptions.
A refused action is a Decision with allowed=False, carrying a DenialReason.
"""
import enum
from typing import Optional


class DenialReason(str, enum.Enum):
    """Why an action was refused."""
    ACCOUNT_PENDING_VERIFICATION = "account_pending_verification"
    ACCOUNT_SUSPENDED = "account_suspended"
    ACCOUNT_ARCHIVED = "account_archived"
    SELF_MODIFICATION = "self_modification"
    NO_PERMISSION = "no_permission"
    OUT_OF_SCOPE = "out_of_scope"

    @property
    def is_status_based(self) -> bool:
        return self in (
            DenialReason.ACCOUNT_PENDING_VERIFICATION,
            DenialReason.ACCOUNT_SUSPENDED,
            DenialReason.ACCOUNT_ARCHIVED,
        )


class AuthorizationError(Exception):
    """Base class for authorization engine exceptions."""


class Unauthenticated(AuthorizationError):
    """No principal could be established for the request."""

    def __init__(self, message: str = "Not authenticated"):
        super().__init__(message)
        self.message = message


class AccountNotActive(AuthorizationError):
    """The principal's account status does not allow acting at all."""

    def __init__(self, status, reason: DenialReason, message: Optional[str] = None):
        super().__init__(message or f"Account status {status.value} does not allow this request")
        self.status = status
        self.reason = reason
        self.message = message or str(self)


class InvalidPermissionQuery(AuthorizationError):
    """A resource group / action pair outside the closed vocabulary was queried."""

    def __init__(self, resource_group: str, action: str, message: Optional[str] = None):
        super().__init__(message or f"Unknown permission query: {resource_group}.{action}")
        self.resource_group = resource_group
        self.action = action

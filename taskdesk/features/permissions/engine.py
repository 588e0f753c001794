"""
Authorization engine: the single entry point for permission decisions.

    decision = authorize(principal, "delete", "task", task.as_resource())
    if not decision:
        ...  # decision.reason says why

    decision = authorize(principal, "view", "project")
    if decision:
        stmt = stmt.where(scope_clause(decision.predicate))

Steps:
1. account status gate (pending / suspended / archived accounts are refused)
2. self-modification guard for status changes, reassignment and deletion
3. permission lookup on the principal's position
4. `false` token refuses without resolving anything
5. scope resolution into a predicate
6. single-instance checks evaluate the predicate, list checks return it

Refusals are returned as data, never raised.
"""
from dataclasses import dataclass
from typing import Optional

from taskdesk.features.permissions.account_status import check_access
from taskdesk.features.permissions.errors import DenialReason
from taskdesk.features.permissions.resolver import ScopePredicate, resolve_scope
from taskdesk.features.permissions.schema import Scope, get_permission, lookup_action
from taskdesk.utils import get_logger


log = get_logger(__name__)


DENIAL_MESSAGES: dict[DenialReason, str] = {
    DenialReason.SELF_MODIFICATION: "You cannot perform this action on your own account",
    DenialReason.NO_PERMISSION: "Your position does not grant this permission",
    DenialReason.OUT_OF_SCOPE: "This resource is outside the scope of your permission",
}


@dataclass(frozen=True)
class Decision:
    """Outcome of an authorization check. Truthy when allowed."""
    allowed: bool
    action: str
    reason: Optional[DenialReason] = None
    message: Optional[str] = None
    scope: Optional[Scope] = None
    predicate: Optional[ScopePredicate] = None

    def __bool__(self) -> bool:
        return self.allowed

    @classmethod
    def deny(cls, action: str, reason: DenialReason, message: Optional[str] = None, scope: Optional[Scope] = None):
        return cls(
            allowed=False,
            action=action,
            reason=reason,
            message=message or DENIAL_MESSAGES.get(reason),
            scope=scope,
        )


def authorize(principal, action: str, resource_group: str, resource=None) -> Decision:
    """
    Decide whether a principal may perform an action.

    Args:
        principal: The authenticated Principal
        action: Action name (camelCase or snake_case)
        resource_group: "project", "task", "user", "department" or "position"
        resource: Optional instance to check (a ResourceRef, or anything with
            the same attributes). Omit it for list-style checks.

    Returns:
        Decision; for list checks an allowed decision carries the predicate to
        filter the collection with.

    Raises:
        Unauthenticated: If principal is None
        InvalidPermissionQuery: If the action is not in the vocabulary
    """
    spec = lookup_action(resource_group, action)

    gate = check_access(principal)
    if not gate:
        log.debug("Denied %s for %s: account %s", spec.key, principal.id, gate.status.value)
        return Decision.deny(spec.key, gate.reason, gate.message)

    if spec.self_guarded and resource is not None and getattr(resource, "id", None) == principal.id:
        log.debug("Denied %s for %s: self modification", spec.key, principal.id)
        return Decision.deny(spec.key, DenialReason.SELF_MODIFICATION)

    scope = get_permission(principal, spec.resource_group, spec.action)
    if scope == Scope.NONE:
        log.debug("Denied %s for %s: no permission", spec.key, principal.id)
        return Decision.deny(spec.key, DenialReason.NO_PERMISSION, scope=scope)

    predicate = resolve_scope(principal, scope, spec.resource_group)
    if predicate.matches_nothing:
        return Decision.deny(spec.key, DenialReason.NO_PERMISSION, scope=scope)

    if resource is not None and not predicate.matches(resource):
        log.debug("Denied %s for %s: out of %s scope", spec.key, principal.id, scope.value)
        return Decision.deny(spec.key, DenialReason.OUT_OF_SCOPE, scope=scope)

    return Decision(allowed=True, action=spec.key, scope=predicate.scope, predicate=predicate)


def can(principal, action: str, resource_group: str, resource=None) -> bool:
    """Boolean shorthand for authorize()."""
    return authorize(principal, action, resource_group, resource).allowed

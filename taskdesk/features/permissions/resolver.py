"""
Scope resolver: turns a scope token into a predicate over resources.

Pure computation with no I/O. A predicate can be evaluated against a single
resource in memory (`ScopePredicate.matches`) or translated into a query
filter (`taskdesk.features.permissions.filters.scope_clause`).

Mapping:
- false        -> matches nothing
- own          -> resource.user_id == principal.id
- assigned     -> own, or the principal is on the resource's assignment rows
- department   -> resource creator's department == principal's department
                  (own when the principal has no department)
- all          -> matches everything
- subordinate  -> user resources in the principal's department with a
                  strictly higher level number (own when the principal has no
                  department or level)
- standalone / assigned_project / any_project -> task creation, evaluated
  against the prospective parent project (id None means no project)

UNASSIGNED principals never resolve beyond own (standalone for task creation).
"""
import enum
from dataclasses import dataclass, field
from typing import Optional

from taskdesk.features.departments.hierarchy import Rank, is_subordinate
from taskdesk.features.permissions.account_status import AccountStatus
from taskdesk.features.permissions.errors import InvalidPermissionQuery
from taskdesk.features.permissions.schema import RESOURCE_GROUPS, Scope


@dataclass(frozen=True)
class ResourceRef:
    """
    Authorization-relevant view of one resource instance.

    Projects and tasks fill user_id, creator_department_id and assignee_ids.
    Users fill department_id and position_level; their owner is themselves.
    """
    id: Optional[str]
    user_id: Optional[str] = None
    creator_department_id: Optional[str] = None
    assignee_ids: frozenset[str] = field(default_factory=frozenset)
    department_id: Optional[str] = None
    position_level: Optional[int] = None

    @classmethod
    def standalone(cls) -> "ResourceRef":
        """Placeholder parent for a task created outside any project."""
        return cls(id=None)


class PredicateKind(str, enum.Enum):
    NOTHING = "nothing"
    EVERYTHING = "everything"
    OWNER = "owner"
    ASSIGNED = "assigned"
    DEPARTMENT = "department"
    SUBORDINATE = "subordinate"
    STANDALONE = "standalone"
    STANDALONE_OR_ASSIGNED = "standalone_or_assigned"


def _owner_id(resource, resource_group: str) -> Optional[str]:
    if resource_group == "user":
        return getattr(resource, "id", None)
    return getattr(resource, "user_id", None)


@dataclass(frozen=True)
class ScopePredicate:
    """
    Which instances of a resource group a principal may act on.

    scope is the effective token: own when a department or subordinate token
    fell back for lack of a department or level.
    """
    kind: PredicateKind
    resource_group: str
    scope: Scope
    principal_id: str
    department_id: Optional[str] = None
    level: Optional[int] = None

    @property
    def matches_nothing(self) -> bool:
        return self.kind == PredicateKind.NOTHING

    @property
    def matches_everything(self) -> bool:
        return self.kind == PredicateKind.EVERYTHING

    def _is_owner(self, resource) -> bool:
        return _owner_id(resource, self.resource_group) == self.principal_id

    def _is_assigned(self, resource) -> bool:
        if self._is_owner(resource):
            return True
        return self.principal_id in (getattr(resource, "assignee_ids", None) or ())

    def _is_standalone(self, resource) -> bool:
        return resource is None or getattr(resource, "id", None) is None

    def matches(self, resource) -> bool:
        """Evaluate the predicate against one resource instance."""
        kind = self.kind
        if kind == PredicateKind.NOTHING:
            return False
        if kind == PredicateKind.EVERYTHING:
            return True
        if kind == PredicateKind.STANDALONE:
            return self._is_standalone(resource)
        if kind == PredicateKind.STANDALONE_OR_ASSIGNED:
            return self._is_standalone(resource) or self._is_assigned(resource)
        if resource is None:
            return False
        if kind == PredicateKind.OWNER:
            return self._is_owner(resource)
        if kind == PredicateKind.ASSIGNED:
            return self._is_assigned(resource)
        if kind == PredicateKind.DEPARTMENT:
            if self.resource_group == "user":
                department_id = getattr(resource, "department_id", None)
            else:
                department_id = getattr(resource, "creator_department_id", None)
            return department_id is not None and department_id == self.department_id
        if kind == PredicateKind.SUBORDINATE:
            target = Rank(getattr(resource, "department_id", None), getattr(resource, "position_level", None))
            return is_subordinate(target, Rank(self.department_id, self.level))
        return False


def cap_for_unassigned(token: Scope) -> Scope:
    """Narrow a token to what an UNASSIGNED principal may hold."""
    if token.rank <= Scope.OWN.rank:
        return token
    if token in (Scope.ASSIGNED_PROJECT, Scope.ANY_PROJECT):
        return Scope.STANDALONE
    return Scope.OWN


def resolve_scope(principal, token: Scope, resource_group: str) -> ScopePredicate:
    """
    Translate a scope token into a predicate for the given resource group.

    Raises:
        InvalidPermissionQuery: For an unknown resource group, or a token that
            has no meaning for the group
    """
    if resource_group not in RESOURCE_GROUPS:
        raise InvalidPermissionQuery(resource_group, str(token))
    token = Scope.from_value(token) if not isinstance(token, Scope) else token

    if AccountStatus(principal.account_status) == AccountStatus.UNASSIGNED:
        token = cap_for_unassigned(token)

    def predicate(kind: PredicateKind, scope: Optional[Scope] = None, **extra) -> ScopePredicate:
        return ScopePredicate(
            kind=kind,
            resource_group=resource_group,
            scope=scope if scope is not None else token,
            principal_id=principal.id,
            **extra,
        )

    if token == Scope.NONE:
        return predicate(PredicateKind.NOTHING)
    if token in (Scope.ALL, Scope.ANY_PROJECT):
        return predicate(PredicateKind.EVERYTHING)
    if token == Scope.OWN:
        return predicate(PredicateKind.OWNER)
    if token == Scope.ASSIGNED:
        return predicate(PredicateKind.ASSIGNED)
    if token == Scope.STANDALONE:
        return predicate(PredicateKind.STANDALONE)
    if token == Scope.ASSIGNED_PROJECT:
        return predicate(PredicateKind.STANDALONE_OR_ASSIGNED)
    if token == Scope.DEPARTMENT:
        if principal.department_id is None:
            return predicate(PredicateKind.OWNER, scope=Scope.OWN)
        return predicate(PredicateKind.DEPARTMENT, department_id=principal.department_id)
    if token == Scope.SUBORDINATE:
        if resource_group != "user":
            raise InvalidPermissionQuery(resource_group, token.value, "subordinate scope only applies to users")
        if principal.department_id is None or principal.position_level is None:
            return predicate(PredicateKind.OWNER, scope=Scope.OWN)
        return predicate(
            PredicateKind.SUBORDINATE,
            department_id=principal.department_id,
            level=principal.position_level,
        )

    raise InvalidPermissionQuery(resource_group, token.value)

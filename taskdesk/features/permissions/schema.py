"""
Typed permission schema attached to positions.

Every field is restricted to its own closed set of scope tokens, so an invalid
token cannot be stored on a position: it fails validation on the way in.

Wire format (JSON column / API) keeps camelCase keys and uses JSON false as the
no-access token:

    {
        "project": {"create": true, "delete": "own", "edit": "assigned",
                    "view": "department", "assignUsers": false},
        "task": {"create": "any_project", "delete": "own", "edit": "assigned",
                 "createSubtask": "own"},
        "user": {"invite": false, "edit": false, "viewDetails": "subordinate"},
        "department": {"manage": false, "editHierarchy": false}
    }
"""
import enum
from dataclasses import dataclass
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel, to_snake

from taskdesk.features.permissions.account_status import AccountStatus
from taskdesk.features.permissions.errors import InvalidPermissionQuery


# ============================================================================
# Scope tokens
# ============================================================================

class Scope(str, enum.Enum):
    """Normalized scope token. NONE is the JSON `false` token."""
    NONE = "false"
    OWN = "own"
    STANDALONE = "standalone"
    ASSIGNED = "assigned"
    ASSIGNED_PROJECT = "assigned_project"
    SUBORDINATE = "subordinate"
    DEPARTMENT = "department"
    ALL = "all"
    ANY_PROJECT = "any_project"

    @classmethod
    def from_value(cls, value) -> "Scope":
        """Convert a stored field value (bool or token string) to a Scope."""
        if value is False or value is None:
            return cls.NONE
        if value is True:
            return cls.ALL
        return cls(value)

    @property
    def rank(self) -> int:
        return SCOPE_RANK[self]


# false < own/standalone < assigned < department < all
SCOPE_RANK: dict[Scope, int] = {
    Scope.NONE: 0,
    Scope.OWN: 1,
    Scope.STANDALONE: 1,
    Scope.ASSIGNED: 2,
    Scope.ASSIGNED_PROJECT: 2,
    Scope.SUBORDINATE: 2,
    Scope.DEPARTMENT: 3,
    Scope.ALL: 4,
    Scope.ANY_PROJECT: 4,
}


ProjectDeleteScope = Literal["own", "department", "all", False]
ProjectAccessScope = Literal["own", "assigned", "department", "all", False]
TaskCreateScope = Literal["standalone", "assigned_project", "any_project", False]
TaskScope = Literal["own", "assigned", "department", "all", False]
SubtaskScope = Literal["own", "assigned", False]
UserScope = Literal["subordinate", "department", "all", False]


# ============================================================================
# Permission models
# ============================================================================

class PermissionGroup(BaseModel):
    """Base for one resource group of the permission record."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
        frozen=True,
    )


class ProjectPermissions(PermissionGroup):
    create: bool = False
    delete: ProjectDeleteScope = False
    edit: ProjectAccessScope = False
    view: ProjectAccessScope = False
    assign_users: bool = False


class TaskPermissions(PermissionGroup):
    create: TaskCreateScope = False
    delete: TaskScope = False
    edit: TaskScope = False
    create_subtask: SubtaskScope = False


class UserPermissions(PermissionGroup):
    invite: bool = False
    edit: UserScope = False
    view_details: UserScope = False


class DepartmentPermissions(PermissionGroup):
    manage: bool = False
    edit_hierarchy: bool = False


class PositionPermissions(PermissionGroup):
    """Full permission record of a position. Missing fields mean no access."""
    project: ProjectPermissions = ProjectPermissions()
    task: TaskPermissions = TaskPermissions()
    user: UserPermissions = UserPermissions()
    department: DepartmentPermissions = DepartmentPermissions()

    def to_json(self) -> dict:
        """Serialize to the camelCase form stored on positions."""
        return self.model_dump(by_alias=True, mode="json")


# What an UNASSIGNED account without a position may do: keep its own
# personal projects and standalone tasks
UNASSIGNED_WORKSPACE = PositionPermissions(
    project=ProjectPermissions(create=True, delete="own", edit="own", view="own"),
    task=TaskPermissions(create="standalone", delete="own", edit="own", create_subtask="own"),
)


# ============================================================================
# Field domains and action vocabulary
# ============================================================================

BOOLEAN_DOMAIN = (Scope.NONE, Scope.ALL)
_ACCESS_DOMAIN = (Scope.NONE, Scope.OWN, Scope.ASSIGNED, Scope.DEPARTMENT, Scope.ALL)
_USER_DOMAIN = (Scope.NONE, Scope.SUBORDINATE, Scope.DEPARTMENT, Scope.ALL)

# (group, field) -> tokens the field accepts, weakest first
FIELD_DOMAINS: dict[tuple[str, str], tuple[Scope, ...]] = {
    ("project", "create"): BOOLEAN_DOMAIN,
    ("project", "delete"): (Scope.NONE, Scope.OWN, Scope.DEPARTMENT, Scope.ALL),
    ("project", "edit"): _ACCESS_DOMAIN,
    ("project", "view"): _ACCESS_DOMAIN,
    ("project", "assign_users"): BOOLEAN_DOMAIN,
    ("task", "create"): (Scope.NONE, Scope.STANDALONE, Scope.ASSIGNED_PROJECT, Scope.ANY_PROJECT),
    ("task", "delete"): _ACCESS_DOMAIN,
    ("task", "edit"): _ACCESS_DOMAIN,
    ("task", "create_subtask"): (Scope.NONE, Scope.OWN, Scope.ASSIGNED),
    ("user", "invite"): BOOLEAN_DOMAIN,
    ("user", "edit"): _USER_DOMAIN,
    ("user", "view_details"): _USER_DOMAIN,
    ("department", "manage"): BOOLEAN_DOMAIN,
    ("department", "edit_hierarchy"): BOOLEAN_DOMAIN,
}


@dataclass(frozen=True)
class ActionSpec:
    """
    One entry of the action vocabulary.

    field_group/field name the permission field the action is checked
    against; both None means every principal that passes the status gate
    may perform it.
    """
    resource_group: str
    action: str
    field_group: Optional[str]
    field: Optional[str]
    self_guarded: bool = False

    @property
    def key(self) -> str:
        return f"{self.resource_group}.{self.action}"


def _build_actions() -> dict[tuple[str, str], ActionSpec]:
    actions = {
        (group, field): ActionSpec(group, field, group, field)
        for group, field in FIELD_DOMAINS
    }
    derived = [
        ActionSpec("task", "view", "task", "edit"),
        ActionSpec("user", "update_status", "department", "manage", self_guarded=True),
        ActionSpec("user", "assign", "department", "manage", self_guarded=True),
        ActionSpec("user", "delete", "department", "manage", self_guarded=True),
        ActionSpec("department", "view", None, None),
        ActionSpec("department", "create", "department", "manage"),
        ActionSpec("department", "edit", "department", "manage"),
        ActionSpec("department", "delete", "department", "manage"),
        ActionSpec("department", "review_access", "department", "manage"),
        ActionSpec("position", "view", None, None),
        ActionSpec("position", "create", "department", "edit_hierarchy"),
        ActionSpec("position", "edit", "department", "edit_hierarchy"),
        ActionSpec("position", "delete", "department", "edit_hierarchy"),
    ]
    for spec in derived:
        actions[(spec.resource_group, spec.action)] = spec
    return actions


ACTIONS: dict[tuple[str, str], ActionSpec] = _build_actions()

RESOURCE_GROUPS = frozenset(group for group, _ in ACTIONS)


def normalize_action(action: str) -> str:
    """Accept both camelCase (updateStatus) and snake_case (update_status)."""
    return to_snake(action.strip())


def lookup_action(resource_group: str, action: str) -> ActionSpec:
    """
    Find an action in the vocabulary.

    Raises:
        InvalidPermissionQuery: If the pair is not part of the vocabulary
    """
    if not isinstance(resource_group, str) or not isinstance(action, str):
        raise InvalidPermissionQuery(str(resource_group), str(action))
    spec = ACTIONS.get((resource_group.strip().lower(), normalize_action(action)))
    if spec is None:
        raise InvalidPermissionQuery(resource_group, action)
    return spec


def floor_scope(domain: tuple[Scope, ...]) -> Scope:
    """Most restrictive token of a field: false, or own where false is not offered."""
    return Scope.NONE if Scope.NONE in domain else Scope.OWN


def field_domain(spec: ActionSpec) -> tuple[Scope, ...]:
    if spec.field is None:
        return (Scope.ALL,)
    return FIELD_DOMAINS[(spec.field_group, spec.field)]


def read_field(permissions: PositionPermissions, spec: ActionSpec) -> Scope:
    """Read the stored token for an action from a permission record, verbatim."""
    group = getattr(permissions, spec.field_group)
    return Scope.from_value(getattr(group, spec.field))


def get_permission(principal, resource_group: str, action: str) -> Scope:
    """
    Look up the scope token a principal holds for an action.

    A principal without a position (or whose position could not be loaded)
    gets the most restrictive token of the field rather than an error. The
    exception is an UNASSIGNED account, which reads UNASSIGNED_WORKSPACE.

    Raises:
        InvalidPermissionQuery: If the group/action pair is unknown
    """
    spec = lookup_action(resource_group, action)
    if spec.field is None:
        return Scope.ALL

    permissions = principal.permissions if principal.position_id is not None else None
    if permissions is None:
        if AccountStatus(principal.account_status) == AccountStatus.UNASSIGNED:
            return read_field(UNASSIGNED_WORKSPACE, spec)
        return floor_scope(field_domain(spec))

    return read_field(permissions, spec)

"""
Translate scope predicates into SQLAlchemy filter clauses.

    decision = authorize(principal, "view", "project")
    stmt = select(Project).where(scope_clause(decision.predicate))
"""
from sqlalchemy import ColumnElement, false, or_, select, true

from taskdesk.features.departments.models import Position
from taskdesk.features.permissions.errors import InvalidPermissionQuery
from taskdesk.features.permissions.resolver import PredicateKind, ScopePredicate
from taskdesk.features.projects.models import Project, ProjectUser
from taskdesk.features.tasks.models import Task, TaskUser
from taskdesk.features.users.models import User


def _owned_clause(predicate: ScopePredicate) -> ColumnElement[bool]:
    if predicate.resource_group == "project":
        return Project.user_id == predicate.principal_id
    if predicate.resource_group == "task":
        return Task.user_id == predicate.principal_id
    if predicate.resource_group == "user":
        return User.id == predicate.principal_id
    raise InvalidPermissionQuery(predicate.resource_group, predicate.kind.value, "no storage filter for this group")


def _assigned_clause(predicate: ScopePredicate) -> ColumnElement[bool]:
    if predicate.resource_group == "project":
        assigned = select(ProjectUser.project_id).where(ProjectUser.user_id == predicate.principal_id)
        return or_(Project.user_id == predicate.principal_id, Project.id.in_(assigned))
    if predicate.resource_group == "task":
        assigned = select(TaskUser.task_id).where(TaskUser.user_id == predicate.principal_id)
        return or_(Task.user_id == predicate.principal_id, Task.id.in_(assigned))
    return _owned_clause(predicate)


def _department_clause(predicate: ScopePredicate) -> ColumnElement[bool]:
    department_members = select(User.id).where(User.department_id == predicate.department_id)
    if predicate.resource_group == "project":
        return Project.creator_id.in_(department_members)
    if predicate.resource_group == "task":
        return Task.creator_id.in_(department_members)
    if predicate.resource_group == "user":
        return User.department_id == predicate.department_id
    raise InvalidPermissionQuery(predicate.resource_group, predicate.kind.value, "no storage filter for this group")


def _subordinate_clause(predicate: ScopePredicate) -> ColumnElement[bool]:
    lower_positions = select(Position.id).where(
        Position.department_id == predicate.department_id,
        Position.level > predicate.level,
    )
    return User.position_id.in_(lower_positions)


def scope_clause(predicate: ScopePredicate) -> ColumnElement[bool]:
    """
    Build a WHERE clause selecting exactly the rows the predicate matches.

    Raises:
        InvalidPermissionQuery: For predicates that only make sense for a
            single prospective resource (task creation scopes)
    """
    kind = predicate.kind
    if kind == PredicateKind.NOTHING:
        return false()
    if kind == PredicateKind.EVERYTHING:
        return true()
    if kind == PredicateKind.OWNER:
        return _owned_clause(predicate)
    if kind == PredicateKind.ASSIGNED:
        return _assigned_clause(predicate)
    if kind == PredicateKind.DEPARTMENT:
        return _department_clause(predicate)
    if kind == PredicateKind.SUBORDINATE:
        return _subordinate_clause(predicate)
    raise InvalidPermissionQuery(predicate.resource_group, kind.value, f"{kind.value} scope cannot filter a collection")

"""Tests for the organizational hierarchy and the scope resolver."""
import pytest

from taskdesk.features.departments.hierarchy import Rank, is_subordinate, same_department
from taskdesk.features.permissions.account_status import AccountStatus
from taskdesk.features.permissions.errors import InvalidPermissionQuery
from taskdesk.features.permissions.principal import Principal
from taskdesk.features.permissions.resolver import (
    PredicateKind,
    ResourceRef,
    cap_for_unassigned,
    resolve_scope,
)
from taskdesk.features.permissions.schema import Scope


def principal(department_id="d1", level=2, status=AccountStatus.ACTIVE, user_id="p") -> Principal:
    return Principal(
        id=user_id,
        account_status=status,
        department_id=department_id,
        position_id="pos" if level is not None else None,
        position_level=level,
    )


def project(owner="q", creator_department="d1", assignees=()) -> ResourceRef:
    return ResourceRef(
        id="r1",
        user_id=owner,
        creator_department_id=creator_department,
        assignee_ids=frozenset(assignees),
    )


def user(user_id="t", department_id="d1", level=3) -> ResourceRef:
    return ResourceRef(id=user_id, user_id=user_id, department_id=department_id, position_level=level)


class TestHierarchy:

    def test_same_department(self):
        assert same_department(Rank("d1", 1), Rank("d1", 3))
        assert not same_department(Rank("d1", 1), Rank("d2", 1))
        assert not same_department(Rank(None, 1), Rank(None, 1))

    def test_higher_level_number_is_subordinate(self):
        assert is_subordinate(Rank("d1", 3), Rank("d1", 2))
        assert not is_subordinate(Rank("d1", 2), Rank("d1", 3))

    def test_peers_are_not_subordinates(self):
        assert not is_subordinate(Rank("d1", 2), Rank("d1", 2))

    def test_other_department_is_never_subordinate(self):
        assert not is_subordinate(Rank("d2", 5), Rank("d1", 1))

    def test_missing_levels(self):
        assert not is_subordinate(Rank("d1", None), Rank("d1", 1))
        assert not is_subordinate(Rank("d1", 3), Rank("d1", None))


class TestResolveScope:

    def test_false_matches_nothing(self):
        predicate = resolve_scope(principal(), Scope.NONE, "project")
        assert predicate.matches_nothing
        assert not predicate.matches(project(owner="p"))

    def test_all_matches_everything(self):
        predicate = resolve_scope(principal(), Scope.ALL, "project")
        assert predicate.matches_everything
        assert predicate.matches(project(owner="x", creator_department="d9"))

    def test_own(self):
        predicate = resolve_scope(principal(), Scope.OWN, "task")
        assert predicate.kind == PredicateKind.OWNER
        assert predicate.matches(project(owner="p"))
        assert not predicate.matches(project(owner="q"))

    def test_assigned_includes_owner_and_assignment_rows(self):
        predicate = resolve_scope(principal(), Scope.ASSIGNED, "project")
        assert predicate.matches(project(owner="p"))
        assert predicate.matches(project(owner="q", assignees=["p"]))
        assert not predicate.matches(project(owner="q", assignees=["z"]))

    def test_department_compares_creator_department(self):
        predicate = resolve_scope(principal(department_id="d1"), Scope.DEPARTMENT, "project")
        assert predicate.matches(project(owner="q", creator_department="d1"))
        assert not predicate.matches(project(owner="q", creator_department="d2"))
        assert not predicate.matches(project(owner="q", creator_department=None))

    def test_department_without_department_falls_back_to_own(self):
        predicate = resolve_scope(principal(department_id=None), Scope.DEPARTMENT, "project")
        assert predicate.kind == PredicateKind.OWNER
        assert predicate.scope == Scope.OWN
        assert predicate.matches(project(owner="p", creator_department=None))
        assert not predicate.matches(project(owner="q", creator_department=None))

    def test_department_for_users_compares_user_department(self):
        predicate = resolve_scope(principal(department_id="d1"), Scope.DEPARTMENT, "user")
        assert predicate.matches(user(department_id="d1"))
        assert not predicate.matches(user(department_id="d2"))

    def test_subordinate(self):
        predicate = resolve_scope(principal(department_id="d1", level=2), Scope.SUBORDINATE, "user")
        assert predicate.matches(user(department_id="d1", level=3))
        assert not predicate.matches(user(department_id="d1", level=2))
        assert not predicate.matches(user(department_id="d1", level=1))
        assert not predicate.matches(user(department_id="d2", level=9))

    def test_subordinate_only_for_users(self):
        with pytest.raises(InvalidPermissionQuery):
            resolve_scope(principal(), Scope.SUBORDINATE, "project")

    def test_subordinate_without_level_falls_back_to_own(self):
        predicate = resolve_scope(principal(level=None), Scope.SUBORDINATE, "user")
        assert predicate.kind == PredicateKind.OWNER
        assert predicate.scope == Scope.OWN
        assert predicate.matches(user(user_id="p"))

    def test_task_creation_scopes(self):
        standalone = ResourceRef.standalone()
        mine = project(owner="p")
        theirs_assigned = project(owner="q", assignees=["p"])
        theirs = project(owner="q")

        predicate = resolve_scope(principal(), Scope.STANDALONE, "task")
        assert predicate.matches(standalone)
        assert not predicate.matches(mine)

        predicate = resolve_scope(principal(), Scope.ASSIGNED_PROJECT, "task")
        assert predicate.matches(standalone)
        assert predicate.matches(mine)
        assert predicate.matches(theirs_assigned)
        assert not predicate.matches(theirs)

        predicate = resolve_scope(principal(), Scope.ANY_PROJECT, "task")
        assert predicate.matches(theirs)

    def test_unknown_group_raises(self):
        with pytest.raises(InvalidPermissionQuery):
            resolve_scope(principal(), Scope.ALL, "invoice")

    def test_accepts_raw_stored_values(self):
        assert resolve_scope(principal(), False, "project").matches_nothing
        assert resolve_scope(principal(), True, "project").matches_everything
        assert resolve_scope(principal(), "own", "project").kind == PredicateKind.OWNER


class TestUnassignedCap:

    @pytest.mark.parametrize(
        "token, expected",
        [
            (Scope.NONE, Scope.NONE),
            (Scope.OWN, Scope.OWN),
            (Scope.ASSIGNED, Scope.OWN),
            (Scope.DEPARTMENT, Scope.OWN),
            (Scope.ALL, Scope.OWN),
            (Scope.SUBORDINATE, Scope.OWN),
            (Scope.STANDALONE, Scope.STANDALONE),
            (Scope.ASSIGNED_PROJECT, Scope.STANDALONE),
            (Scope.ANY_PROJECT, Scope.STANDALONE),
        ],
    )
    def test_cap(self, token, expected):
        assert cap_for_unassigned(token) == expected

    def test_unassigned_principal_never_exceeds_own(self):
        p = principal(status=AccountStatus.UNASSIGNED)
        predicate = resolve_scope(p, Scope.ALL, "project")
        assert predicate.scope == Scope.OWN
        assert predicate.matches(project(owner="p"))
        assert not predicate.matches(project(owner="q"))

    def test_unassigned_task_creation_is_standalone_only(self):
        p = principal(status=AccountStatus.UNASSIGNED)
        predicate = resolve_scope(p, Scope.ANY_PROJECT, "task")
        assert predicate.matches(ResourceRef.standalone())
        assert not predicate.matches(project(owner="p"))

"""Tests for the authorization engine."""
import pytest

from taskdesk.features.permissions.account_status import AccountStatus
from taskdesk.features.permissions.engine import authorize, can
from taskdesk.features.permissions.errors import DenialReason, InvalidPermissionQuery, Unauthenticated
from taskdesk.features.permissions.presets import ADMINISTRATOR, TEAM_LEAD, TEAM_MEMBER
from taskdesk.features.permissions.principal import Principal
from taskdesk.features.permissions.resolver import PredicateKind, ResourceRef
from taskdesk.features.permissions.schema import ACTIONS, PositionPermissions, Scope


def make_principal(
    user_id="p",
    status=AccountStatus.ACTIVE,
    permissions=TEAM_MEMBER,
    department_id="D",
    level=3,
) -> Principal:
    has_position = permissions is not None
    return Principal(
        id=user_id,
        account_status=status,
        department_id=department_id,
        position_id="pos-" + user_id if has_position else None,
        position_level=level if has_position else None,
        permissions=permissions,
    )


def user_ref(user_id, department_id, level) -> ResourceRef:
    return ResourceRef(id=user_id, user_id=user_id, department_id=department_id, position_level=level)


def resource(owner="other", department="D", assignees=()) -> ResourceRef:
    return ResourceRef(id="r", user_id=owner, creator_department_id=department, assignee_ids=frozenset(assignees))


VIEW_SUBORDINATES = PositionPermissions.model_validate({"user": {"viewDetails": "subordinate"}})


class TestStatusGate:

    @pytest.mark.parametrize(
        "status, reason",
        [
            (AccountStatus.PENDING_VERIFICATION, DenialReason.ACCOUNT_PENDING_VERIFICATION),
            (AccountStatus.SUSPENDED, DenialReason.ACCOUNT_SUSPENDED),
            (AccountStatus.ARCHIVED, DenialReason.ACCOUNT_ARCHIVED),
        ],
    )
    def test_blocked_statuses_deny_every_action(self, status, reason):
        principal = make_principal(status=status, permissions=ADMINISTRATOR, level=1)
        for spec in ACTIONS.values():
            decision = authorize(principal, spec.action, spec.resource_group)
            assert not decision
            assert decision.reason == reason
            assert decision.message

    def test_missing_principal_raises(self):
        with pytest.raises(Unauthenticated):
            authorize(None, "view", "project")


class TestDecisions:

    def test_false_token_denies_without_predicate(self):
        principal = make_principal(permissions=PositionPermissions())
        decision = authorize(principal, "view", "project")
        assert not decision
        assert decision.reason == DenialReason.NO_PERMISSION
        assert decision.predicate is None

    def test_list_check_returns_predicate(self):
        principal = make_principal(permissions=TEAM_LEAD, level=2)
        decision = authorize(principal, "view", "project")
        assert decision
        assert decision.scope == Scope.DEPARTMENT
        assert decision.predicate.kind == PredicateKind.DEPARTMENT
        assert decision.predicate.department_id == "D"

    def test_instance_check_in_scope(self):
        principal = make_principal(permissions=TEAM_LEAD, level=2)
        assert authorize(principal, "edit", "task", resource(owner="x", department="D"))

    def test_instance_check_out_of_scope(self):
        principal = make_principal(permissions=TEAM_LEAD, level=2)
        decision = authorize(principal, "edit", "task", resource(owner="x", department="E"))
        assert not decision
        assert decision.reason == DenialReason.OUT_OF_SCOPE

    def test_own_scope(self):
        principal = make_principal(permissions=TEAM_MEMBER)
        assert can(principal, "delete", "project", resource(owner="p"))
        assert not can(principal, "delete", "project", resource(owner="q"))

    def test_all_scope_matches_any_instance(self):
        principal = make_principal(permissions=ADMINISTRATOR, level=1)
        assert can(principal, "delete", "task", resource(owner="q", department="elsewhere"))

    def test_camel_case_actions(self):
        principal = make_principal(permissions=TEAM_LEAD, level=2)
        assert authorize(principal, "createSubtask", "task", resource(owner="q", assignees=["p"]))
        assert authorize(principal, "viewDetails", "user").action == "user.view_details"

    def test_unknown_action_raises(self):
        with pytest.raises(InvalidPermissionQuery):
            authorize(make_principal(), "archive", "project")

    def test_unconditional_actions(self):
        principal = make_principal(permissions=None, status=AccountStatus.UNASSIGNED, department_id=None)
        assert can(principal, "view", "department")
        assert can(principal, "view", "position")

    def test_task_creation_against_parent_project(self):
        principal = make_principal(permissions=PositionPermissions.model_validate({"task": {"create": "assigned_project"}}))
        assert can(principal, "create", "task", ResourceRef.standalone())
        assert can(principal, "create", "task", resource(owner="q", assignees=["p"]))
        assert not can(principal, "create", "task", resource(owner="q"))


class TestSelfModificationGuard:

    @pytest.mark.parametrize("action", ["updateStatus", "assign", "delete"])
    def test_denied_on_self_even_with_all_scope(self, action):
        principal = make_principal(permissions=ADMINISTRATOR, level=1)
        decision = authorize(principal, action, "user", principal)
        assert not decision
        assert decision.reason == DenialReason.SELF_MODIFICATION

    def test_allowed_on_others(self):
        principal = make_principal(permissions=ADMINISTRATOR, level=1)
        assert authorize(principal, "updateStatus", "user", user_ref("someone", "D", 3))

    def test_guard_precedes_permission_lookup(self):
        principal = make_principal(permissions=PositionPermissions())
        decision = authorize(principal, "updateStatus", "user", principal)
        assert decision.reason == DenialReason.SELF_MODIFICATION

    def test_status_gate_precedes_guard(self):
        principal = make_principal(status=AccountStatus.SUSPENDED, permissions=ADMINISTRATOR, level=1)
        decision = authorize(principal, "updateStatus", "user", principal)
        assert decision.reason == DenialReason.ACCOUNT_SUSPENDED


class TestUnassignedPrincipals:

    def test_no_position_never_exceeds_own(self):
        principal = make_principal(status=AccountStatus.UNASSIGNED, permissions=None, department_id=None)
        for spec in ACTIONS.values():
            decision = authorize(principal, spec.action, spec.resource_group)
            if decision:
                assert decision.predicate.scope.rank <= Scope.OWN.rank

    def test_unassigned_cannot_view_team_project(self):
        principal = make_principal(
            user_id="P", status=AccountStatus.UNASSIGNED, permissions=None, department_id=None,
        )
        decision = authorize(principal, "view", "project", resource(owner="someone-else"))
        assert not decision

    def test_unassigned_with_stale_position_is_capped(self):
        principal = make_principal(user_id="P", status=AccountStatus.UNASSIGNED, permissions=ADMINISTRATOR, level=1)
        decision = authorize(principal, "view", "project")
        assert decision.scope == Scope.OWN
        assert not authorize(principal, "view", "project", resource(owner="someone-else"))
        assert authorize(principal, "view", "project", resource(owner="P"))

    def test_unassigned_without_position_works_in_own_space(self):
        principal = make_principal(user_id="P", status=AccountStatus.UNASSIGNED, permissions=None, department_id=None)
        assert can(principal, "view", "project", resource(owner="P"))
        assert can(principal, "create", "task", ResourceRef.standalone())
        assert not can(principal, "create", "task", resource(owner="P"))
        decision = authorize(principal, "create", "project")
        assert decision.scope == Scope.OWN


class TestSubordinateScenario:
    """Q holds level 2 in department D with user.viewDetails = subordinate."""

    @pytest.fixture()
    def q(self):
        return make_principal(user_id="Q", permissions=VIEW_SUBORDINATES, department_id="D", level=2)

    def test_lower_level_same_department_is_allowed(self, q):
        assert authorize(q, "viewDetails", "user", user_ref("R", "D", 3))

    def test_higher_authority_is_denied(self, q):
        decision = authorize(q, "viewDetails", "user", user_ref("S", "D", 1))
        assert not decision
        assert decision.reason == DenialReason.OUT_OF_SCOPE

    def test_other_department_is_denied(self, q):
        assert not authorize(q, "viewDetails", "user", user_ref("T", "E", 3))

"""Tests for translating scope predicates into query filters."""
import pytest
import pytest_asyncio
from sqlalchemy import select

from taskdesk.features.permissions.account_status import AccountStatus
from taskdesk.features.permissions.errors import InvalidPermissionQuery
from taskdesk.features.permissions.filters import scope_clause
from taskdesk.features.permissions.principal import Principal
from taskdesk.features.permissions.resolver import resolve_scope
from taskdesk.features.permissions.schema import Scope
from taskdesk.features.projects.models import Project
from taskdesk.features.tasks.models import Task
from taskdesk.features.users.models import User


async def ids(session, model, token, principal, group):
    predicate = resolve_scope(principal, token, group)
    result = await session.execute(select(model.id).where(scope_clause(predicate)))
    return set(result.scalars().all())


@pytest_asyncio.fixture()
async def world(factory, org):
    other_department = await factory.department("Sales")
    other_position = await factory.position(other_department, level=3)

    lead = await factory.user(org["lead"])
    member = await factory.user(org["member"])
    outsider = await factory.user(other_position)
    admin = await factory.user(org["admin"])

    lead_project = await factory.project(lead)
    member_project = await factory.project(member, members=(lead,))
    outsider_project = await factory.project(outsider)

    return {
        "lead": lead,
        "member": member,
        "outsider": outsider,
        "admin": admin,
        "lead_project": lead_project,
        "member_project": member_project,
        "outsider_project": outsider_project,
        "lead_task": await factory.task(lead, lead_project),
        "member_task": await factory.task(member, member_project, assignees=(lead,)),
        "outsider_task": await factory.task(outsider),
    }


def as_principal(user) -> Principal:
    return Principal.from_user(user)


async def test_false_and_all(session, world):
    lead = as_principal(world["lead"])
    assert await ids(session, Project, Scope.NONE, lead, "project") == set()
    assert await ids(session, Project, Scope.ALL, lead, "project") == {
        world["lead_project"].id, world["member_project"].id, world["outsider_project"].id,
    }


async def test_own(session, world):
    lead = as_principal(world["lead"])
    assert await ids(session, Project, Scope.OWN, lead, "project") == {world["lead_project"].id}
    assert await ids(session, Task, Scope.OWN, lead, "task") == {world["lead_task"].id}


async def test_assigned_uses_assignment_rows(session, world):
    lead = as_principal(world["lead"])
    assert await ids(session, Project, Scope.ASSIGNED, lead, "project") == {
        world["lead_project"].id, world["member_project"].id,
    }
    assert await ids(session, Task, Scope.ASSIGNED, lead, "task") == {
        world["lead_task"].id, world["member_task"].id,
    }


async def test_department_follows_creator_department(session, world):
    lead = as_principal(world["lead"])
    assert await ids(session, Project, Scope.DEPARTMENT, lead, "project") == {
        world["lead_project"].id, world["member_project"].id,
    }
    outsider = as_principal(world["outsider"])
    assert await ids(session, Task, Scope.DEPARTMENT, outsider, "task") == {world["outsider_task"].id}


async def test_users_by_department_and_subordinate(session, world):
    lead = as_principal(world["lead"])
    assert await ids(session, User, Scope.DEPARTMENT, lead, "user") == {
        world["lead"].id, world["member"].id, world["admin"].id,
    }
    assert await ids(session, User, Scope.SUBORDINATE, lead, "user") == {world["member"].id}


async def test_filter_agrees_with_instance_check(session, world):
    lead = as_principal(world["lead"])
    for token in (Scope.OWN, Scope.ASSIGNED, Scope.DEPARTMENT, Scope.ALL):
        predicate = resolve_scope(lead, token, "project")
        result = await session.execute(select(Project))
        expected = {p.id for p in result.scalars().all() if predicate.matches(p.as_resource())}
        assert await ids(session, Project, token, lead, "project") == expected


async def test_unassigned_filter_is_own_only(session, world, factory):
    drifter = await factory.user(status=AccountStatus.UNASSIGNED)
    own_project = await factory.project(drifter)
    principal = as_principal(drifter)
    assert await ids(session, Project, Scope.ALL, principal, "project") == {own_project.id}


def test_task_creation_scopes_cannot_filter_collections():
    principal = Principal(id="p", account_status=AccountStatus.ACTIVE, department_id="d", position_id="x", position_level=2)
    with pytest.raises(InvalidPermissionQuery):
        scope_clause(resolve_scope(principal, Scope.STANDALONE, "task"))

"""API tests for scoped project and task access."""
from taskdesk.features.permissions.account_status import AccountStatus


class TestProjectScope:

    async def test_lead_sees_department_projects(self, client, factory, org, auth):
        lead = await factory.user(org["lead"])
        member = await factory.user(org["member"])
        outsider = await factory.user(await factory.position(await factory.department("Sales"), {"project": {"view": "own"}}))

        team_project = await factory.project(member)
        foreign_project = await factory.project(outsider)

        response = await client.get("/projects/", headers=auth(lead))
        assert response.status_code == 200
        assert [p["id"] for p in response.json()] == [team_project.id]

        response = await client.get(f"/projects/{foreign_project.id}", headers=auth(lead))
        assert response.status_code == 404

    async def test_own_scope_lists_own_projects(self, client, factory, org, auth):
        department = org["department"]
        viewer = await factory.user(await factory.position(department, {"project": {"view": "own"}}))
        mine = await factory.project(viewer)
        await factory.project(await factory.user(org["member"]))

        response = await client.get("/projects/", headers=auth(viewer))
        assert [p["id"] for p in response.json()] == [mine.id]

    async def test_assigned_scope_includes_membership(self, client, factory, org, auth):
        viewer = await factory.user(await factory.position(org["department"], {"project": {"view": "assigned"}}))
        owner = await factory.user(org["member"])
        shared = await factory.project(owner, members=(viewer,))
        await factory.project(owner)

        response = await client.get("/projects/", headers=auth(viewer))
        assert [p["id"] for p in response.json()] == [shared.id]

    async def test_edit_out_of_scope_is_forbidden(self, client, factory, org, auth):
        member = await factory.user(org["member"])
        other = await factory.user(org["member"])
        project = await factory.project(other)

        response = await client.patch(f"/projects/{project.id}", json={"name": "Mine now"}, headers=auth(member))
        assert response.status_code == 403
        detail = response.json()["detail"]
        assert detail["reason"] == "out_of_scope"
        assert detail["action"] == "project.edit"
        assert detail["error"]

    async def test_create_makes_caller_owner(self, client, factory, org, auth):
        member = await factory.user(org["member"])
        response = await client.post("/projects/", json={"name": "Launch", "color": "#3B82F6"}, headers=auth(member))
        assert response.status_code == 201
        body = response.json()
        assert body["user_id"] == member.id
        assert body["creator_id"] == member.id
        assert [(m["user_id"], m["role"]) for m in body["members"]] == [(member.id, "OWNER")]

    async def test_create_requires_permission(self, client, factory, org, auth):
        viewer = await factory.user(await factory.position(org["department"], {"project": {"view": "all"}}))
        response = await client.post("/projects/", json={"name": "Launch"}, headers=auth(viewer))
        assert response.status_code == 403

    async def test_personal_project_limit(self, client, factory, org, auth, session):
        member = await factory.user(org["member"])
        member.personal_project_limit = 1
        await session.commit()

        payload = {"name": "Notes", "type": "PERSONAL"}
        assert (await client.post("/projects/", json=payload, headers=auth(member))).status_code == 201
        response = await client.post("/projects/", json=payload, headers=auth(member))
        assert response.status_code == 400
        assert "limit" in response.json()["detail"]

    async def test_personal_projects_can_be_disabled(self, client, factory, org, auth, session):
        member = await factory.user(org["member"])
        member.can_create_personal_projects = False
        await session.commit()

        response = await client.post("/projects/", json={"name": "Notes", "type": "PERSONAL"}, headers=auth(member))
        assert response.status_code == 403

    async def test_delete_own_project(self, client, factory, org, auth):
        member = await factory.user(org["member"])
        project = await factory.project(member)
        assert (await client.delete(f"/projects/{project.id}", headers=auth(member))).status_code == 200
        assert (await client.get(f"/projects/{project.id}", headers=auth(member))).status_code == 404


class TestProjectMembers:

    async def test_add_and_remove_member(self, client, factory, org, auth):
        owner = await factory.user(org["member"])
        colleague = await factory.user(org["member"])
        project = await factory.project(owner)

        url = f"/projects/{project.id}/members"
        response = await client.post(url, json={"user_id": colleague.id}, headers=auth(owner))
        assert response.status_code == 201
        assert response.json()["role"] == "MEMBER"

        assert (await client.post(url, json={"user_id": colleague.id}, headers=auth(owner))).status_code == 409
        assert (await client.delete(f"{url}/{colleague.id}", headers=auth(owner))).status_code == 200

    async def test_owner_cannot_be_removed(self, client, factory, org, auth):
        owner = await factory.user(org["member"])
        project = await factory.project(owner)
        response = await client.delete(f"/projects/{project.id}/members/{owner.id}", headers=auth(owner))
        assert response.status_code == 400

    async def test_unknown_user(self, client, factory, org, auth):
        owner = await factory.user(org["member"])
        project = await factory.project(owner)
        response = await client.post(f"/projects/{project.id}/members", json={"user_id": "nobody"}, headers=auth(owner))
        assert response.status_code == 404


class TestTaskScope:

    async def test_member_sees_own_tasks_lead_sees_department(self, client, factory, org, auth):
        lead = await factory.user(org["lead"])
        member = await factory.user(org["member"])
        outsider = await factory.user(await factory.position(await factory.department("Sales")))

        member_task = await factory.task(member)
        lead_task = await factory.task(lead)
        foreign_task = await factory.task(outsider)

        response = await client.get("/tasks/", headers=auth(member))
        assert [t["id"] for t in response.json()] == [member_task.id]

        response = await client.get("/tasks/", headers=auth(lead))
        assert {t["id"] for t in response.json()} == {member_task.id, lead_task.id}

        assert (await client.get(f"/tasks/{foreign_task.id}", headers=auth(lead))).status_code == 404
        assert (await client.get(f"/tasks/{lead_task.id}", headers=auth(member))).status_code == 404

    async def test_create_in_project(self, client, factory, org, auth):
        member = await factory.user(org["member"])
        project = await factory.project(await factory.user(org["lead"]))

        response = await client.post("/tasks/", json={"title": "Ship", "project_id": project.id}, headers=auth(member))
        assert response.status_code == 201
        body = response.json()
        assert body["project_id"] == project.id
        assert body["assignees"][0]["user_id"] == member.id
        assert body["assignees"][0]["role"] == "OWNER"

    async def test_create_in_missing_project(self, client, factory, org, auth):
        member = await factory.user(org["member"])
        response = await client.post("/tasks/", json={"title": "Ship", "project_id": "missing"}, headers=auth(member))
        assert response.status_code == 404

    async def test_assigned_project_creation(self, client, factory, org, auth):
        creator = await factory.user(await factory.position(org["department"], {"task": {"create": "assigned_project"}}))
        owner = await factory.user(org["member"])
        shared = await factory.project(owner, members=(creator,))
        closed = await factory.project(owner)

        def create(project_id=None):
            return client.post("/tasks/", json={"title": "Work", "project_id": project_id}, headers=auth(creator))

        assert (await create()).status_code == 201
        assert (await create(shared.id)).status_code == 201
        response = await create(closed.id)
        assert response.status_code == 403
        assert response.json()["detail"]["reason"] == "out_of_scope"

    async def test_unassigned_user_creates_standalone_tasks_only(self, client, factory, org, auth, session):
        drifter = await factory.user(org["member"])
        own_project = await factory.project(drifter)
        drifter.account_status = AccountStatus.UNASSIGNED
        await session.commit()

        def create(project_id=None):
            return client.post("/tasks/", json={"title": "Work", "project_id": project_id}, headers=auth(drifter))

        assert (await create()).status_code == 201
        assert (await create(own_project.id)).status_code == 403

    async def test_account_without_position_cannot_create_tasks(self, client, factory, auth):
        stray = await factory.user(status=AccountStatus.ACTIVE)
        response = await client.post("/tasks/", json={"title": "Work"}, headers=auth(stray))
        assert response.status_code == 403
        assert response.json()["detail"]["reason"] == "no_permission"

    async def test_unassigned_user_sees_only_own_tasks(self, client, factory, org, auth, session):
        drifter = await factory.user(org["admin"])
        mine = await factory.task(drifter)
        await factory.task(await factory.user(org["member"]))

        drifter.account_status = AccountStatus.UNASSIGNED
        await session.commit()

        response = await client.get("/tasks/", headers=auth(drifter))
        assert [t["id"] for t in response.json()] == [mine.id]

    async def test_subtask_inherits_project(self, client, factory, org, auth):
        member = await factory.user(org["member"])
        project = await factory.project(member)
        parent = await factory.task(member, project)

        response = await client.post(f"/tasks/{parent.id}/subtasks", json={"title": "Step"}, headers=auth(member))
        assert response.status_code == 201
        body = response.json()
        assert body["parent_task_id"] == parent.id
        assert body["project_id"] == project.id

        response = await client.get("/tasks/", params={"top_level": True}, headers=auth(member))
        assert [t["id"] for t in response.json()] == [parent.id]

    async def test_completing_stamps_completed_at(self, client, factory, org, auth):
        member = await factory.user(org["member"])
        task = await factory.task(member)
        url = f"/tasks/{task.id}"

        response = await client.patch(url, json={"status": "COMPLETED"}, headers=auth(member))
        assert response.json()["completed_at"] is not None

        response = await client.patch(url, json={"status": "IN_PROGRESS"}, headers=auth(member))
        assert response.json()["completed_at"] is None

    async def test_add_assignee(self, client, factory, org, auth):
        member = await factory.user(org["member"])
        colleague = await factory.user(org["member"])
        task = await factory.task(member)
        url = f"/tasks/{task.id}/assignees"

        response = await client.post(url, json={"user_id": colleague.id}, headers=auth(member))
        assert response.status_code == 201
        assert (await client.post(url, json={"user_id": colleague.id}, headers=auth(member))).status_code == 409

    async def test_delete_out_of_scope(self, client, factory, org, auth):
        member = await factory.user(org["member"])
        task = await factory.task(await factory.user(org["lead"]))
        response = await client.delete(f"/tasks/{task.id}", headers=auth(member))
        assert response.status_code == 403

    async def test_null_for_required_field_is_rejected(self, client, factory, org, auth):
        member = await factory.user(org["member"])
        task = await factory.task(member)
        url = f"/tasks/{task.id}"

        for field in ("title", "status", "priority", "tags"):
            response = await client.patch(url, json={field: None}, headers=auth(member))
            assert response.status_code == 400
            assert field in response.json()

        response = await client.patch(url, json={"due_date": None}, headers=auth(member))
        assert response.status_code == 200

    async def test_paging_is_bounded(self, client, factory, org, auth):
        member = await factory.user(org["member"])
        assert (await client.get("/tasks/", params={"limit": -1}, headers=auth(member))).status_code == 400
        assert (await client.get("/projects/", params={"skip": -1}, headers=auth(member))).status_code == 400
        assert (await client.get("/projects/", params={"limit": 500}, headers=auth(member))).status_code == 400


class TestUnassignedWorkspace:
    """Fresh accounts hold no position but keep a personal workspace."""

    async def test_creates_personal_projects_only(self, client, factory, auth):
        newcomer = await factory.user(status=AccountStatus.UNASSIGNED)

        response = await client.post("/projects/", json={"name": "Notes", "type": "PERSONAL"}, headers=auth(newcomer))
        assert response.status_code == 201
        assert response.json()["user_id"] == newcomer.id

        response = await client.post("/projects/", json={"name": "Team", "type": "TEAM"}, headers=auth(newcomer))
        assert response.status_code == 403

    async def test_personal_project_limit_applies(self, client, factory, auth, session):
        newcomer = await factory.user(status=AccountStatus.UNASSIGNED)
        newcomer.personal_project_limit = 1
        await session.commit()

        payload = {"name": "Notes", "type": "PERSONAL"}
        assert (await client.post("/projects/", json=payload, headers=auth(newcomer))).status_code == 201
        assert (await client.post("/projects/", json=payload, headers=auth(newcomer))).status_code == 400

    async def test_lists_and_edits_own_projects(self, client, factory, org, auth):
        newcomer = await factory.user(status=AccountStatus.UNASSIGNED)
        mine = await factory.project(newcomer)
        theirs = await factory.project(await factory.user(org["member"]))

        response = await client.get("/projects/", headers=auth(newcomer))
        assert response.status_code == 200
        assert [p["id"] for p in response.json()] == [mine.id]

        assert (await client.patch(f"/projects/{mine.id}", json={"name": "Renamed"}, headers=auth(newcomer))).status_code == 200
        assert (await client.get(f"/projects/{theirs.id}", headers=auth(newcomer))).status_code == 404

    async def test_creates_standalone_tasks(self, client, factory, auth):
        newcomer = await factory.user(status=AccountStatus.UNASSIGNED)
        own_project = await factory.project(newcomer)

        response = await client.post("/tasks/", json={"title": "Work"}, headers=auth(newcomer))
        assert response.status_code == 201

        response = await client.post("/tasks/", json={"title": "Work", "project_id": own_project.id}, headers=auth(newcomer))
        assert response.status_code == 403

        response = await client.get("/tasks/", headers=auth(newcomer))
        assert len(response.json()) == 1

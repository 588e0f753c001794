import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./test-unused.db")
os.environ.setdefault("JWT_SECRET", "test-access-secret")
os.environ.setdefault("JWT_REFRESH_SECRET", "test-refresh-secret")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from collections.abc import AsyncIterator
from typing import Any, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from taskdesk.core.database.engine import build_engine, build_sessionmaker, get_db, init_db
from taskdesk.features.departments.models import Department, Position
from taskdesk.features.permissions.account_status import AccountStatus
from taskdesk.features.permissions.presets import ADMINISTRATOR, TEAM_LEAD, TEAM_MEMBER
from taskdesk.features.permissions.schema import PositionPermissions
from taskdesk.features.projects.models import Project, ProjectRole, ProjectUser
from taskdesk.features.tasks.models import Task, TaskRole, TaskUser
from taskdesk.features.users.auth import create_token
from taskdesk.features.users.dependencies import limiter
from taskdesk.features.users.models import User
from taskdesk.main import app


@pytest_asyncio.fixture()
async def sessionmaker(tmp_path) -> AsyncIterator[async_sessionmaker[AsyncSession]]:
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'taskdesk.db'}")
    await init_db(bind=engine)
    try:
        yield build_sessionmaker(engine)
    finally:
        await engine.dispose()


@pytest_asyncio.fixture()
async def session(sessionmaker) -> AsyncIterator[AsyncSession]:
    async with sessionmaker() as session:
        yield session


@pytest_asyncio.fixture()
async def client(sessionmaker) -> AsyncIterator[AsyncClient]:
    async def override_get_db():
        async with sessionmaker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    limiter.enabled = False
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as http_client:
        yield http_client
    app.dependency_overrides.clear()
    limiter.enabled = True


def auth_headers(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_token(user.id, user.email, 'access')}"}


class Factory:
    """Creates committed rows for API tests."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self._counter = 0

    def _next(self) -> int:
        self._counter += 1
        return self._counter

    async def _save(self, instance):
        self.session.add(instance)
        await self.session.commit()
        await self.session.refresh(instance)
        return instance

    async def department(self, name: Optional[str] = None) -> Department:
        return await self._save(Department(name=name or f"Department {self._next()}"))

    async def position(
        self,
        department: Department,
        permissions: PositionPermissions | dict[str, Any] = PositionPermissions(),
        level: int = 3,
        name: Optional[str] = None,
    ) -> Position:
        if isinstance(permissions, dict):
            permissions = PositionPermissions.model_validate(permissions)
        return await self._save(Position(
            name=name or f"Position {self._next()}",
            level=level,
            department_id=department.id,
            permissions=permissions.to_json(),
        ))

    async def user(
        self,
        position: Optional[Position] = None,
        status: AccountStatus = AccountStatus.ACTIVE,
        email: Optional[str] = None,
    ) -> User:
        n = self._next()
        return await self._save(User(
            email=email or f"user{n}@example.com",
            name=f"User {n}",
            account_status=status,
            email_verified=status != AccountStatus.PENDING_VERIFICATION,
            department_id=position.department_id if position is not None else None,
            position_id=position.id if position is not None else None,
        ))

    async def project(self, owner: User, members: tuple[User, ...] = (), name: Optional[str] = None) -> Project:
        project = Project(
            name=name or f"Project {self._next()}",
            user_id=owner.id,
            creator_id=owner.id,
            members=[ProjectUser(user_id=owner.id, role=ProjectRole.OWNER)]
            + [ProjectUser(user_id=member.id, role=ProjectRole.MEMBER) for member in members],
        )
        return await self._save(project)

    async def task(
        self,
        owner: User,
        project: Optional[Project] = None,
        assignees: tuple[User, ...] = (),
        title: Optional[str] = None,
    ) -> Task:
        task = Task(
            title=title or f"Task {self._next()}",
            user_id=owner.id,
            creator_id=owner.id,
            project_id=project.id if project is not None else None,
            assignees=[TaskUser(user_id=user.id, role=TaskRole.ASSIGNEE) for user in assignees],
        )
        return await self._save(task)


@pytest_asyncio.fixture()
async def factory(session) -> Factory:
    return Factory(session)


@pytest_asyncio.fixture()
async def org(factory):
    """A department with the three preset positions."""
    department = await factory.department("Engineering")
    return {
        "department": department,
        "admin": await factory.position(department, ADMINISTRATOR, level=1, name="Administrator"),
        "lead": await factory.position(department, TEAM_LEAD, level=2, name="Team Lead"),
        "member": await factory.position(department, TEAM_MEMBER, level=3, name="Team Member"),
    }


@pytest.fixture()
def auth():
    """Build bearer headers for a user."""
    return auth_headers

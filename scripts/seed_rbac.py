"""
Seed script to populate the default department, positions and an admin.

Run this script after database initialization to create:
- The "General" department
- Administrator (level 1), Team Lead (level 2) and Team Member (level 3)
  positions with the preset permission records
- Optionally an active admin user holding the Administrator position, whose
  tokens are printed so the API can be used right away

Usage:
    uv run python -m scripts.seed_rbac
    uv run python -m scripts.seed_rbac admin@example.com
"""
import asyncio
import sys
from datetime import datetime
from typing import Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from taskdesk.core.database.engine import get_db, init_db
from taskdesk.features.departments.models import Department, Position
from taskdesk.features.permissions.account_status import AccountStatus
from taskdesk.features.permissions.presets import ADMINISTRATOR, TEAM_LEAD, TEAM_MEMBER
from taskdesk.features.users.auth import create_token_pair
from taskdesk.features.users.models import User
from taskdesk.utils import get_logger


log = get_logger(__name__)


DEFAULT_DEPARTMENT = {
    "name": "General",
    "description": "Default department",
}

DEFAULT_POSITIONS = {
    "Administrator": {"level": 1, "permissions": ADMINISTRATOR},
    "Team Lead": {"level": 2, "permissions": TEAM_LEAD},
    "Team Member": {"level": 3, "permissions": TEAM_MEMBER},
}


async def seed_department(db: AsyncSession) -> Department:
    """Create the default department if it doesn't exist."""
    result = await db.execute(select(Department).where(Department.name == DEFAULT_DEPARTMENT["name"]))
    department = result.scalar_one_or_none()
    if department is not None:
        log.info(f"Department '{department.name}' already exists, skipping")
        return department

    department = Department(**DEFAULT_DEPARTMENT)
    db.add(department)
    await db.flush()
    log.info(f"Created department '{department.name}'")
    return department


async def seed_positions(db: AsyncSession, department: Department) -> dict[str, Position]:
    """Create the default positions in a department, keyed by name."""
    result = await db.execute(select(Position).where(Position.department_id == department.id))
    existing = {position.name: position for position in result.scalars().all()}

    positions = {}
    for name, position_config in DEFAULT_POSITIONS.items():
        if name in existing:
            log.info(f"Position '{name}' already exists, skipping")
            positions[name] = existing[name]
            continue

        position = Position(
            name=name,
            level=position_config["level"],
            department_id=department.id,
            permissions=position_config["permissions"].to_json(),
        )
        db.add(position)
        positions[name] = position
        log.info(f"Created position '{name}' (level {position_config['level']})")

    await db.flush()
    return positions


async def seed_admin(db: AsyncSession, email: str, department: Department, position: Position) -> User:
    """Create or promote an active admin user."""
    result = await db.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()
    if user is None:
        user = User(email=email, name="Administrator")
        db.add(user)
        log.info(f"Created admin user {email}")
    else:
        log.info(f"Promoting existing user {email} to administrator")

    user.email_verified = True
    user.verified_at = user.verified_at or datetime.now()
    user.department_id = department.id
    user.position_id = position.id
    user.account_status = AccountStatus.ACTIVE
    await db.flush()
    return user


async def main(admin_email: Optional[str] = None):
    """Main function to seed the default organization structure."""
    log.info("Starting RBAC seeding...")

    # Initialize database tables first
    log.info("Initializing database tables...")
    await init_db()

    # Get database session
    async for db in get_db():
        try:
            department = await seed_department(db)
            positions = await seed_positions(db, department)

            admin = None
            if admin_email:
                admin = await seed_admin(db, admin_email, department, positions["Administrator"])

            await db.commit()

            log.info("RBAC seeding completed successfully!")
            log.info("")
            log.info("Default positions:")
            for name, position_config in DEFAULT_POSITIONS.items():
                log.info(f"  - {name}: level {position_config['level']}")

            if admin is not None:
                tokens = create_token_pair(admin.id, admin.email)
                print(f"access_token={tokens['access_token']}")
                print(f"refresh_token={tokens['refresh_token']}")

        except Exception as e:
            log.error(f"Error seeding RBAC data: {e}", exc_info=True)
            await db.rollback()
            raise

        break  # Only use first session


if __name__ == "__main__":
    asyncio.run(main(sys.argv[1] if len(sys.argv) > 1 else None))

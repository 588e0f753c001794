"""
FastAPI dependencies for authentication.

    get_current_user      -> the User row behind the bearer token
    get_current_principal -> the Principal built from that row
    require_principal     -> the Principal, after the account status gate
"""
from typing import Annotated, Optional
from datetime import datetime
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from slowapi import Limiter
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from taskdesk.core.database.engine import get_db
from taskdesk.features.permissions.account_status import check_access
from taskdesk.features.permissions.errors import AccountNotActive, Unauthenticated
from taskdesk.features.permissions.principal import Principal
from taskdesk.features.users.auth import verify_token
from taskdesk.features.users.models import User
from taskdesk.utils import get_logger


log = get_logger(__name__)

security = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
    db: Annotated[AsyncSession, Depends(get_db)]
) -> User:
    """
    Get the current authenticated user from the bearer token.

    This dependency:
    1. Extracts the JWT from the Authorization header
    2. Verifies signature, expiry and token type
    3. Loads the user row fresh from the database
    4. Updates last_login_at timestamp and reloads server-set columns

    A token whose user no longer exists is an authentication failure.
    """
    if credentials is None:
        raise Unauthenticated("Access token required")

    payload = verify_token(credentials.credentials, "access")

    result = await db.execute(select(User).where(User.id == payload["sub"]))
    user = result.scalar_one_or_none()

    if user is None:
        log.info("Token subject %s no longer exists", payload["sub"])
        raise Unauthenticated("Invalid token - user not found")

    user.last_login_at = datetime.now()
    await db.flush()
    await db.refresh(user)

    return user


async def get_current_principal(
    user: Annotated[User, Depends(get_current_user)]
) -> Principal:
    """Build the authorization principal for the current user."""
    return Principal.from_user(user)


async def require_principal(
    principal: Annotated[Principal, Depends(get_current_principal)]
) -> Principal:
    """
    Require an account status that may act (ACTIVE or UNASSIGNED).

    Raises:
        AccountNotActive: For pending, suspended and archived accounts
    """
    gate = check_access(principal)
    if not gate:
        raise AccountNotActive(gate.status, gate.reason, gate.message)
    return principal


def get_authorization_header(request) -> str:
    """
    Extract authorization header for rate limiting.
    Used with slowapi Limiter.
    """
    auth = request.headers.get("Authorization", "")
    return auth or "anonymous"


limiter = Limiter(key_func=get_authorization_header)

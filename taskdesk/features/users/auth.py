"""
JWT helpers for access and refresh tokens.

Tokens carry identity only (`sub` = user id, plus email); account status and
position are re-read from the database on every request.
"""
import jwt
from datetime import datetime, timedelta, timezone
from typing import Literal

from taskdesk.core import config
from taskdesk.features.permissions.errors import Unauthenticated


TokenType = Literal["access", "refresh"]


def _secret_for(token_type: TokenType) -> str:
    return config.JWT_SECRET if token_type == "access" else config.JWT_REFRESH_SECRET


def create_token(user_id: str, email: str, token_type: TokenType = "access") -> str:
    """Sign a token of the given type for a user."""
    now = datetime.now(timezone.utc)
    if token_type == "access":
        expires = now + timedelta(minutes=config.ACCESS_TOKEN_EXPIRE_MINUTES)
    else:
        expires = now + timedelta(days=config.REFRESH_TOKEN_EXPIRE_DAYS)

    payload = {
        "sub": user_id,
        "email": email,
        "type": token_type,
        "iat": now,
        "exp": expires,
    }
    return jwt.encode(payload, _secret_for(token_type), algorithm=config.JWT_ALGORITHM)


def create_token_pair(user_id: str, email: str) -> dict:
    return {
        "access_token": create_token(user_id, email, "access"),
        "refresh_token": create_token(user_id, email, "refresh"),
        "token_type": "bearer",
    }


def verify_token(token: str, token_type: TokenType = "access") -> dict:
    """
    Verify a token and return its payload.

    Raises:
        Unauthenticated: If the token is malformed, expired, signed with the
            wrong secret, or of the wrong type
    """
    try:
        payload = jwt.decode(
            token,
            _secret_for(token_type),
            algorithms=[config.JWT_ALGORITHM],
            options={"require": ["sub", "exp"]},
        )
    except jwt.ExpiredSignatureError:
        raise Unauthenticated("Token has expired")
    except jwt.InvalidTokenError as e:
        raise Unauthenticated(f"Invalid token: {str(e)}")

    if payload.get("type") != token_type:
        raise Unauthenticated("Invalid token type")

    return payload

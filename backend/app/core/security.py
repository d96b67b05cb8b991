"""
Bearer-token authentication dependencies.

Tokens are HS256 JWTs issued by the account service (registration and
login live outside this backend). Claims used here:

    sub       user id (tourists) or admin id
    role      "user" | "admin"
    username  admin display name, stamped as ``resolved_by``
    exp       expiry
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from backend.app.core.config import Settings
from backend.app.core.errors import AuthenticationError, AuthorizationError

_bearer = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Principal:
    """Authenticated caller."""
    subject: str
    role: str = "user"
    username: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    @property
    def display_name(self) -> str:
        return self.username or self.subject


def create_access_token(
    subject: str,
    config: Settings,
    *,
    role: str = "user",
    username: Optional[str] = None,
    expires_in: Optional[timedelta] = None,
) -> str:
    """Mint a signed token (used by tooling and tests)."""
    expire = datetime.now(timezone.utc) + (
        expires_in or timedelta(hours=config.ACCESS_TOKEN_EXPIRE_HOURS)
    )
    claims = {"sub": subject, "role": role, "exp": expire}
    if username:
        claims["username"] = username
    return jwt.encode(claims, config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)


def decode_token(token: str, config: Settings) -> Principal:
    """Validate signature and expiry; raise AuthenticationError otherwise."""
    try:
        payload = jwt.decode(token, config.JWT_SECRET, algorithms=[config.JWT_ALGORITHM])
    except JWTError as exc:
        raise AuthenticationError("Invalid or expired token") from exc

    subject = payload.get("sub")
    if not subject:
        raise AuthenticationError()
    return Principal(
        subject=str(subject),
        role=payload.get("role", "user"),
        username=payload.get("username"),
    )


async def get_principal(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
) -> Principal:
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Access token required")
    return decode_token(credentials.credentials, request.app.state.settings)


async def get_current_user_id(principal: Principal = Depends(get_principal)) -> str:
    return principal.subject


async def require_admin(principal: Principal = Depends(get_principal)) -> Principal:
    """Dependency for admin-only routes."""
    if not principal.is_admin:
        raise AuthorizationError("Admin access required", error_code="ADMIN_REQUIRED")
    return principal

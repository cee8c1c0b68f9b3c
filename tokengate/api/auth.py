"""HTTP Basic authentication of API callers against the configured app users.

Each user carries one role; the role selects both the DSM API key used on
the caller's behalf and the fields the caller may see in plaintext.
"""
# ruff: noqa: B008  — Depends() in function defaults is standard FastAPI

from __future__ import annotations

import secrets
from collections.abc import Awaitable, Callable

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials
from pydantic import BaseModel

from tokengate.api.dependencies import get_gateway
from tokengate.gateway import Gateway, Role

security = HTTPBasic()


class Principal(BaseModel):
    username: str
    role: Role


def _unauthorized() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid credentials",
        headers={"WWW-Authenticate": "Basic"},
    )


async def require_auth(
    credentials: HTTPBasicCredentials = Depends(security),
    gateway: Gateway = Depends(get_gateway),
) -> Principal:
    """FastAPI dependency — resolve Basic credentials to a Principal or 401."""
    for user in gateway.credentials.config.app.users:
        if not secrets.compare_digest(credentials.username.encode("utf-8"), user.username.encode("utf-8")):
            continue
        if secrets.compare_digest(credentials.password.encode("utf-8"), user.password.encode("utf-8")):
            return Principal(username=user.username, role=user.role)
        raise _unauthorized()
    raise _unauthorized()


def require_role(*roles: Role) -> Callable[..., Awaitable[Principal]]:
    """Dependency factory — 403 unless the caller holds one of `roles`."""

    async def checker(principal: Principal = Depends(require_auth)) -> Principal:
        if principal.role not in roles:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
        return principal

    return checker

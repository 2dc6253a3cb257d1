"""Auth dependencies — access-token decoding and RBAC enforcement.

Tokens are issued by the identity service. The engine only verifies the
signature and reads ``sub`` (employee id) and ``role``; it keeps no sessions.
"""

from __future__ import annotations

import uuid
from typing import Callable

from fastapi import Depends, Request
from fastapi.exceptions import HTTPException
from jose import ExpiredSignatureError, JWTError, jwt

from leave_engine.auth.schemas import CurrentUser
from leave_engine.common.constants import UserRole
from leave_engine.common.exceptions import ForbiddenException
from leave_engine.config import settings

# Role hierarchy — each role implicitly includes lower roles
_ROLE_HIERARCHY: dict[UserRole, set[UserRole]] = {
    UserRole.system_admin: {UserRole.system_admin, UserRole.hr_admin, UserRole.employee},
    UserRole.hr_admin: {UserRole.hr_admin, UserRole.employee},
    UserRole.employee: {UserRole.employee},
}


def _extract_bearer(request: Request) -> str:
    """Extract Bearer token from Authorization header."""
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Missing or invalid Authorization header.")
    return auth_header[7:]


# ── Core dependency ─────────────────────────────────────────────────

async def get_current_user(request: Request) -> CurrentUser:
    """Decode the access token and return the caller's identity and role."""
    token = _extract_bearer(request)

    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
        )
    except ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token has expired.")
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid token.")

    if payload.get("type") != "access":
        raise HTTPException(status_code=401, detail="Invalid token type.")

    try:
        employee_id = uuid.UUID(payload["sub"])
    except (KeyError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid token subject.")

    role_str = payload.get("role", UserRole.employee.value)
    try:
        role = UserRole(role_str)
    except ValueError:
        role = UserRole.employee

    return CurrentUser(employee_id=employee_id, role=role)


def has_role(user: CurrentUser, *allowed_roles: UserRole) -> bool:
    """True when the user's role, expanded via hierarchy, covers one of *allowed_roles*."""
    effective_roles = _ROLE_HIERARCHY.get(user.role, {user.role})
    return bool(effective_roles.intersection(allowed_roles))


# ── Role-based dependency ───────────────────────────────────────────

def require_role(*allowed_roles: UserRole) -> Callable:
    """Return a FastAPI dependency that enforces role membership.

    Respects hierarchy — e.g. system_admin can access hr_admin endpoints.
    """

    async def _check(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if not has_role(user, *allowed_roles):
            raise ForbiddenException(
                detail=f"Role '{user.role.value}' is not permitted. Required: {[r.value for r in allowed_roles]}.",
            )
        return user

    return _check

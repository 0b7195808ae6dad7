"""Clic-Tools — FastAPI dependencies (auth, DB, permissions)."""
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from clictools.db.session import get_db

DbSession = Annotated[AsyncSession, Depends(get_db)]

# ── Permission keys ─────────────────────────────────────────────────────────
# Use these string constants everywhere — no raw strings in route files.
PERM_WAREHOUSE_ACCESS = "warehouse:access"
PERM_WAREHOUSE_LOCKS_MANAGE = "warehouse:locks:manage"

# ── Role → permissions matrix ────────────────────────────────────────────────
PERMISSION_MATRIX: dict[str, set[str]] = {
    "admin": {PERM_WAREHOUSE_ACCESS, PERM_WAREHOUSE_LOCKS_MANAGE},
    "warehouse": {PERM_WAREHOUSE_ACCESS},
    "viewer": set(),
}


class CurrentUser:
    """User identity from the JWT — set on request.state by middleware."""

    def __init__(self, id: int, name: str, email: str, role: str):
        self.id = id
        self.name = name
        self.email = email
        self.role = role

    def has_permission(self, permission: str) -> bool:
        return permission in PERMISSION_MATRIX.get(self.role, set())


async def require_auth(request: Request) -> CurrentUser:
    """Require authenticated user. Raise 401 if not logged in."""
    user = getattr(request.state, "user", None)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )
    return user


def require_permission(permission: str):
    """Dependency factory: require specific permission."""

    async def _check(user: CurrentUser = Depends(require_auth)) -> CurrentUser:
        if not user.has_permission(permission):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Permission denied: '{permission}' required. Your role: {user.role}",
            )
        return user

    return _check

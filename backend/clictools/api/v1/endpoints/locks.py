"""Clic-Tools — Lock administration endpoints."""
from fastapi import APIRouter, Depends, HTTPException, status

from clictools.api.deps import PERM_WAREHOUSE_LOCKS_MANAGE, CurrentUser, DbSession, require_permission
from clictools.schemas.common import ApiResponse
from clictools.schemas.location import LockedLocation
from clictools.services.lock_service import LockService

router = APIRouter()


@router.get("", response_model=ApiResponse[list[LockedLocation]])
async def list_active_locks(
    db: DbSession,
    user: CurrentUser = Depends(require_permission(PERM_WAREHOUSE_LOCKS_MANAGE)),
):
    """Locations currently held by a population session, oldest first."""
    locks = await LockService.get_active_locks(db)
    return ApiResponse(data=[LockedLocation.model_validate(l) for l in locks])


@router.delete("/{location_id}", response_model=ApiResponse[dict])
async def force_release_lock(
    location_id: int,
    db: DbSession,
    user: CurrentUser = Depends(require_permission(PERM_WAREHOUSE_LOCKS_MANAGE)),
):
    """Release a lock left behind by an abandoned browser session."""
    released = await LockService.force_release_lock(db, location_id, actor_id=user.id)
    if not released:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Location not found")
    return ApiResponse(data={"id": location_id, "is_locked": False})

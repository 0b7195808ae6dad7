"""Clic-Tools — Location endpoints (read side of the warehouse structure)."""
from fastapi import APIRouter, Depends, HTTPException, status

from clictools.api.deps import PERM_WAREHOUSE_ACCESS, CurrentUser, DbSession, require_permission
from clictools.schemas.common import ApiResponse
from clictools.schemas.location import ItemLocationRead, LocationRead
from clictools.services.assignment_service import AssignmentService
from clictools.services.location_service import LocationService, render_location_path, sort_by_code

router = APIRouter()


@router.get("", response_model=ApiResponse[list[LocationRead]])
async def list_locations(
    db: DbSession,
    user: CurrentUser = Depends(require_permission(PERM_WAREHOUSE_ACCESS)),
):
    """All locations with their current lock state."""
    items = await LocationService.get_all_locations(db)
    return ApiResponse(data=[LocationRead.model_validate(i) for i in items])


@router.get("/racks", response_model=ApiResponse[list[LocationRead]])
async def list_racks(
    db: DbSession,
    user: CurrentUser = Depends(require_permission(PERM_WAREHOUSE_ACCESS)),
):
    """Racks, naturally ordered by code."""
    racks = await LocationService.get_racks(db)
    return ApiResponse(data=[LocationRead.model_validate(r) for r in racks])


@router.get("/{id}/path", response_model=ApiResponse[str])
async def get_location_path(
    id: int,
    db: DbSession,
    user: CurrentUser = Depends(require_permission(PERM_WAREHOUSE_ACCESS)),
):
    """Full path (Building > Rack > Level > Bin) for a location."""
    all_locations = await LocationService.get_all_locations(db)
    if not any(l.id == id for l in all_locations):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Location not found")
    return ApiResponse(data=render_location_path(id, all_locations))


@router.get("/{id}/leaves", response_model=ApiResponse[list[LocationRead]])
async def list_leaves(
    id: int,
    db: DbSession,
    user: CurrentUser = Depends(require_permission(PERM_WAREHOUSE_ACCESS)),
):
    """Leaf locations under a node, naturally ordered by code."""
    if not await LocationService.get_by_id(db, id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Location not found")
    leaves = await LocationService.get_child_locations(db, [id])
    return ApiResponse(data=[LocationRead.model_validate(l) for l in sort_by_code(leaves)])


@router.get("/{id}/items", response_model=ApiResponse[list[ItemLocationRead]])
async def list_location_items(
    id: int,
    db: DbSession,
    user: CurrentUser = Depends(require_permission(PERM_WAREHOUSE_ACCESS)),
):
    """Products assigned to a location."""
    if not await LocationService.get_by_id(db, id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Location not found")
    items = await AssignmentService.get_location_items(db, id)
    return ApiResponse(data=[ItemLocationRead.model_validate(i) for i in items])


@router.delete("/items/{item_location_id}", response_model=ApiResponse[dict])
async def unassign_item(
    item_location_id: int,
    db: DbSession,
    user: CurrentUser = Depends(require_permission(PERM_WAREHOUSE_ACCESS)),
):
    """Remove a product-to-location mapping."""
    if not await AssignmentService.unassign_item_from_location(db, item_location_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Mapping not found")
    return ApiResponse(data={"id": item_location_id})

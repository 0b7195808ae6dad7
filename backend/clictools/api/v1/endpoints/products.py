"""Clic-Tools — Product lookup endpoints (scan/search during population)."""
from fastapi import APIRouter, Depends, HTTPException, Query, status

from clictools.api.deps import PERM_WAREHOUSE_ACCESS, CurrentUser, DbSession, require_permission
from clictools.schemas.common import ApiResponse
from clictools.schemas.location import ItemLocationRead
from clictools.schemas.product import ProductRead
from clictools.services.assignment_service import AssignmentService
from clictools.services.product_service import ProductService

router = APIRouter()


@router.get("", response_model=ApiResponse[list[ProductRead]])
async def search_products(
    db: DbSession,
    search: str = Query("", description="Code or description fragment, at least 2 characters"),
    limit: int = Query(20, ge=1, le=100),
    user: CurrentUser = Depends(require_permission(PERM_WAREHOUSE_ACCESS)),
):
    products = await ProductService.search(db, search, limit=limit)
    return ApiResponse(data=[
        ProductRead(id=p.id, description=p.description, label=ProductService.describe(p)) for p in products
    ])


@router.get("/{product_id}/locations", response_model=ApiResponse[list[ItemLocationRead]])
async def get_product_locations(
    product_id: str,
    db: DbSession,
    user: CurrentUser = Depends(require_permission(PERM_WAREHOUSE_ACCESS)),
):
    """Where a product has been placed."""
    if not await ProductService.get_by_id(db, product_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")
    items = await AssignmentService.get_item_locations(db, product_id)
    return ApiResponse(data=[ItemLocationRead.model_validate(i) for i in items])

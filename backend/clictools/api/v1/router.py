"""Clic-Tools — API v1 router aggregation."""
from fastapi import APIRouter

from clictools.api.v1.endpoints import (
    auth,
    locations,
    locks,
    products,
    wizard,
)

api_router = APIRouter()

api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(locations.router, prefix="/locations", tags=["locations"])
api_router.include_router(locks.router, prefix="/locks", tags=["locks"])
api_router.include_router(products.router, prefix="/products", tags=["products"])
api_router.include_router(wizard.router, prefix="/wizard", tags=["population-wizard"])

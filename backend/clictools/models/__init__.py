"""Clic-Tools — SQLAlchemy models."""
from clictools.models.audit import AuditLog
from clictools.models.location import ItemLocation, Location, LocationType
from clictools.models.product import Product
from clictools.models.user import User, UserRoleEnum
from clictools.models.wizard import WizardSession

__all__ = [
    "User", "UserRoleEnum",
    "Location", "LocationType", "ItemLocation",
    "WizardSession",
    "Product",
    "AuditLog",
]

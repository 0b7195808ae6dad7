"""Clic-Tools — Location, lock and item-location schemas."""
from datetime import datetime

from pydantic import BaseModel


class LocationRead(BaseModel):
    id: int
    name: str
    code: str
    location_type: str
    parent_id: int | None = None
    is_locked: bool = False
    locked_by: str | None = None
    locked_by_user_id: int | None = None
    locked_at: datetime | None = None

    model_config = {"from_attributes": True}


class LevelOption(LocationRead):
    """A level under the selected rack. Not selectable while another user holds it."""

    selectable: bool = True


class LockedLocation(BaseModel):
    id: int
    name: str
    code: str
    locked_by: str | None = None
    locked_by_user_id: int | None = None
    locked_at: datetime | None = None

    model_config = {"from_attributes": True}


class LockResult(BaseModel):
    """Outcome of a lock request. ``locked`` is True when the request was denied by a conflict."""

    locked: bool
    conflicts: list[LockedLocation] = []


class ItemLocationRead(BaseModel):
    id: int
    item_id: str
    location_id: int
    client_id: str | None = None
    updated_by: str
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}

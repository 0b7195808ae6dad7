"""Clic-Tools — Product schemas."""
from pydantic import BaseModel


class ProductRead(BaseModel):
    id: str
    description: str
    label: str

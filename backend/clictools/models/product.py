"""Clic-Tools — Product catalog (synchronized from the ERP, read-only here)."""
from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column

from clictools.db.base import Base


class Product(Base):
    __tablename__ = "products"

    id: Mapped[str] = mapped_column(String(100), primary_key=True)  # ERP item code
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

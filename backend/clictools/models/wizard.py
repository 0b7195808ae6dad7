"""Clic-Tools — Resumable population wizard session (one row per user)."""
from datetime import datetime

from sqlalchemy import JSON, DateTime, ForeignKey, Integer, func
from sqlalchemy.orm import Mapped, mapped_column

from clictools.db.base import Base


class WizardSession(Base):
    __tablename__ = "wizard_sessions"

    # PK on user_id: the table can never hold two sessions for the same user
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    rack_id: Mapped[int] = mapped_column(Integer, nullable=False)
    level_ids: Mapped[list[int]] = mapped_column(JSON, nullable=False, default=list)
    current_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

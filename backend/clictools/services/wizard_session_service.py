"""Clic-Tools — WizardSessionService: one resumable population session per user."""
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from clictools.models.wizard import WizardSession
from clictools.schemas.wizard import WizardSessionData


class WizardSessionService:

    @staticmethod
    async def get_active_wizard_session(db: AsyncSession, user_id: int) -> WizardSession | None:
        result = await db.execute(select(WizardSession).where(WizardSession.user_id == user_id))
        return result.scalar_one_or_none()

    @staticmethod
    async def save_wizard_session(db: AsyncSession, user_id: int, data: WizardSessionData) -> WizardSession:
        """Upsert: any earlier session of this user is overwritten."""
        session = await WizardSessionService.get_active_wizard_session(db, user_id)
        if session is None:
            session = WizardSession(user_id=user_id)
            db.add(session)
        session.rack_id = data.rack_id
        session.level_ids = list(data.level_ids)
        session.current_index = data.current_index
        await db.flush()
        await db.refresh(session)
        return session

    @staticmethod
    async def clear_wizard_session(db: AsyncSession, user_id: int) -> None:
        await db.execute(delete(WizardSession).where(WizardSession.user_id == user_id))
        await db.flush()

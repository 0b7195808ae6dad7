"""Clic-Tools — AuditService."""
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from clictools.models.audit import AuditLog

logger = logging.getLogger(__name__)

# ── Audit action constants ────────────────────────────────────────────────────
ACTION_WIZARD_STARTED = "wizard.started"
ACTION_WIZARD_FINISHED = "wizard.finished"
ACTION_WIZARD_ABANDONED = "wizard.abandoned"
ACTION_LOCK_FORCE_RELEASED = "lock.force_released"
ACTION_ITEM_LOCATION_ASSIGNED = "item_location.assigned"


async def log_audit(
    db: AsyncSession,
    actor_id: int | None,
    action: str,
    target_type: str | None = None,
    target_id: int | str | None = None,
    payload: dict | None = None,
) -> None:
    """Write an audit log entry. Call this from services/endpoints after the main action."""
    try:
        entry = AuditLog(
            actor_id=actor_id,
            action=action,
            target_type=target_type,
            target_id=str(target_id) if target_id is not None else None,
            payload=payload,
        )
        db.add(entry)
        # Not flushed here: the row is committed atomically with the main action.
    except Exception as exc:
        logger.error("Audit log write failed: %s", exc, exc_info=True)

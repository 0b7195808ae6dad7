"""Clic-Tools — LockService: advisory exclusive locks on location nodes."""
import logging
from collections.abc import Iterable
from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from clictools.models.location import Location
from clictools.schemas.location import LockedLocation, LockResult
from clictools.services.audit_service import ACTION_LOCK_FORCE_RELEASED, log_audit
from clictools.services.location_service import LocationNotFoundError

logger = logging.getLogger(__name__)


def _held_by_other(loc: Location, user_name: str, user_id: int | None) -> bool:
    if not loc.is_locked:
        return False
    if user_id is not None:
        return loc.locked_by_user_id != user_id
    return loc.locked_by != user_name


def _other_owner_clause(held, user_name: str, user_id: int | None):
    if user_id is not None:
        return held.locked_by_user_id.is_distinct_from(user_id)
    return held.locked_by.is_distinct_from(user_name)


class LockService:
    """All-or-nothing lock acquisition, idempotent release, admin force release."""

    @staticmethod
    async def lock_entity(
        db: AsyncSession,
        entity_ids: Iterable[int],
        user_name: str,
        user_id: int | None = None,
    ) -> LockResult:
        """
        Lock every id for the caller or none of them.

        Returns ``LockResult(locked=True, conflicts=[...])`` when any id is held by
        another user; nothing is written in that case. Ids already held by the
        caller are re-stamped.
        """
        ids = sorted(set(entity_ids))
        if not ids:
            raise ValueError("No locations given to lock")

        # Row locks in id order on PostgreSQL; SQLite serializes writers instead.
        result = await db.execute(
            select(Location).where(Location.id.in_(ids)).order_by(Location.id).with_for_update()
        )
        rows = list(result.scalars().all())
        missing = set(ids) - {r.id for r in rows}
        if missing:
            raise LocationNotFoundError(missing)

        conflicts = [r for r in rows if _held_by_other(r, user_name, user_id)]
        if conflicts:
            logger.warning(
                "Lock conflict for %s on %s (held: %s)",
                user_name, ids, [(c.id, c.locked_by) for c in conflicts],
            )
            return LockResult(locked=True, conflicts=[LockedLocation.model_validate(c) for c in conflicts])

        # Single guarded statement: updates all rows, or none if a conflicting lock appeared meanwhile.
        held = aliased(Location)
        conflict_exists = (
            select(held.id)
            .where(
                held.id.in_(ids),
                held.is_locked == True,
                _other_owner_clause(held, user_name, user_id),
            )
            .exists()
        )
        stmt = (
            update(Location)
            .where(Location.id.in_(ids), ~conflict_exists)
            .values(
                is_locked=True,
                locked_by=user_name,
                locked_by_user_id=user_id,
                locked_at=datetime.now(timezone.utc),
            )
        )
        upd = await db.execute(stmt, execution_options={"synchronize_session": False})
        for r in rows:
            await db.refresh(r)

        if upd.rowcount != len(ids):
            conflicts = [r for r in rows if _held_by_other(r, user_name, user_id)]
            logger.warning("Lock race lost by %s on %s", user_name, ids)
            return LockResult(locked=True, conflicts=[LockedLocation.model_validate(c) for c in conflicts])

        logger.info("Locked %s for %s", ids, user_name)
        return LockResult(locked=False)

    @staticmethod
    async def release_lock(db: AsyncSession, entity_ids: Iterable[int]) -> None:
        """Clear lock state on every id. Unlocked or unknown ids are a no-op."""
        ids = sorted(set(entity_ids))
        if not ids:
            return
        await db.execute(
            update(Location)
            .where(Location.id.in_(ids))
            .values(is_locked=False, locked_by=None, locked_by_user_id=None, locked_at=None)
        )
        await db.flush()
        logger.info("Released locks on %s", ids)

    @staticmethod
    async def get_active_locks(db: AsyncSession) -> list[Location]:
        result = await db.execute(
            select(Location).where(Location.is_locked == True).order_by(Location.locked_at, Location.id)
        )
        return list(result.scalars().all())

    @staticmethod
    async def force_release_lock(db: AsyncSession, location_id: int, actor_id: int | None = None) -> bool:
        """Administrative release of a single location regardless of holder."""
        result = await db.execute(select(Location).where(Location.id == location_id))
        loc = result.scalar_one_or_none()
        if not loc:
            return False
        previous_holder = loc.locked_by
        loc.is_locked = False
        loc.locked_by = None
        loc.locked_by_user_id = None
        loc.locked_at = None
        await db.flush()
        await log_audit(
            db, actor_id, ACTION_LOCK_FORCE_RELEASED,
            target_type="location", target_id=location_id,
            payload={"code": loc.code, "previous_holder": previous_holder},
        )
        logger.info("Lock on %s (%s) force-released, was held by %s", loc.id, loc.code, previous_holder)
        return True

"""Clic-Tools — AssignmentService: product-to-location mappings."""
import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from clictools.models.location import ItemLocation, Location
from clictools.services.location_service import LocationNotFoundError

logger = logging.getLogger(__name__)


class AssignmentService:
    """
    Item-to-location records.

    Re-assigning a product to a location it is already mapped to (same client)
    refreshes ``updated_by``/``updated_at`` on the existing row; it never adds a
    duplicate. Different products at the same location are separate rows.
    """

    @staticmethod
    async def assign_item_to_location(
        db: AsyncSession,
        item_id: str,
        location_id: int,
        updated_by: str,
        client_id: str | None = None,
    ) -> ItemLocation:
        item_id = (item_id or "").strip()
        if not item_id:
            raise ValueError("Product id is required")
        if await db.get(Location, location_id) is None:
            raise LocationNotFoundError([location_id])

        q = select(ItemLocation).where(
            ItemLocation.item_id == item_id,
            ItemLocation.location_id == location_id,
        )
        if client_id is None:
            q = q.where(ItemLocation.client_id.is_(None))
        else:
            q = q.where(ItemLocation.client_id == client_id)
        existing = (await db.execute(q)).scalar_one_or_none()

        now = datetime.now(timezone.utc)
        if existing:
            existing.updated_by = updated_by
            existing.updated_at = now
            mapping = existing
        else:
            mapping = ItemLocation(
                item_id=item_id,
                location_id=location_id,
                client_id=client_id,
                updated_by=updated_by,
                updated_at=now,
            )
            db.add(mapping)
        await db.flush()
        await db.refresh(mapping)
        logger.info("Item %s assigned to location %s by %s", item_id, location_id, updated_by)
        return mapping

    @staticmethod
    async def get_item_locations(db: AsyncSession, item_id: str) -> list[ItemLocation]:
        result = await db.execute(
            select(ItemLocation).where(ItemLocation.item_id == item_id).order_by(ItemLocation.id)
        )
        return list(result.scalars().all())

    @staticmethod
    async def get_location_items(db: AsyncSession, location_id: int) -> list[ItemLocation]:
        result = await db.execute(
            select(ItemLocation).where(ItemLocation.location_id == location_id).order_by(ItemLocation.id)
        )
        return list(result.scalars().all())

    @staticmethod
    async def unassign_item_from_location(db: AsyncSession, item_location_id: int) -> bool:
        mapping = await db.get(ItemLocation, item_location_id)
        if not mapping:
            return False
        await db.delete(mapping)
        await db.flush()
        logger.info("Item location mapping %s removed", item_location_id)
        return True

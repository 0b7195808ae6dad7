"""Clic-Tools — Seed dev users, products and a sample rack (run after migrations)."""
import asyncio
import os
import sys

# Add parent to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import select

from clictools.core.security import get_password_hash
from clictools.db.session import async_session_maker
from clictools.models import Location, LocationType, Product, User, UserRoleEnum

USERS = [
    ("Dev Admin", "admin@dev.local", UserRoleEnum.ADMIN),
    ("Bodega Uno", "bodega@dev.local", UserRoleEnum.WAREHOUSE),
]

PRODUCTS = [
    ("P100", "Tornillo hexagonal 1/4 x 2"),
    ("P200", "Tuerca de seguridad 1/4"),
    ("P300", "Arandela plana 1/4"),
    ("P400", "Broca HSS 6 mm"),
]


async def seed():
    async with async_session_maker() as session:
        existing = await session.execute(select(User).where(User.email == USERS[0][1]))
        if existing.scalar_one_or_none():
            print("Dev data already exists. Skipping seed.")
            return

        hashed = get_password_hash("dev123")
        for name, email, role in USERS:
            session.add(User(name=name, email=email, hashed_password=hashed, role=role.value))
        for code, description in PRODUCTS:
            session.add(Product(id=code, description=description))

        building = Location(name="Bodega Principal", code="BP", location_type=LocationType.BUILDING)
        session.add(building)
        await session.flush()
        rack = Location(name="Rack 01", code="R01", location_type=LocationType.RACK, parent_id=building.id)
        session.add(rack)
        await session.flush()

        # two levels with five bins each: R01-N1-B1 .. R01-N2-B5
        for level_no in (1, 2):
            level = Location(
                name=f"Nivel {level_no}",
                code=f"R01-N{level_no}",
                location_type=LocationType.SHELF,
                parent_id=rack.id,
            )
            session.add(level)
            await session.flush()
            for bin_no in range(1, 6):
                session.add(Location(
                    name=f"B{bin_no:02d}",
                    code=f"R01-N{level_no}-B{bin_no}",
                    location_type=LocationType.BIN,
                    parent_id=level.id,
                ))

        await session.commit()
        print("Seeded admin@dev.local / bodega@dev.local (password: dev123) and rack R01")


if __name__ == "__main__":
    asyncio.run(seed())
